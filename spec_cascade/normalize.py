from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import polars as pl

from .schema import (
    DEFAULT_LAYOUT,
    NameCode,
    SpecLayout,
    SpecRow,
    SpecTable,
    SpecTableError,
    is_blank,
)

LOGGER = logging.getLogger(__name__)


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    return str(value)


@dataclass
class NormalizationReport:
    raw_row_count: int
    columns: List[str]
    filled_cells: Dict[str, int] = field(default_factory=dict)
    skipped_headers: List[int] = field(default_factory=list)


def apply_fill_down(df: pl.DataFrame, columns: Iterable[str] | None = None) -> pl.DataFrame:
    """
    Forward-fill blank cells from the row above (blank -> null -> forward fill).

    Whitespace-only cells count as blank. A column that is blank from the top
    keeps "" until its first value appears. Missing columns are ignored.
    """

    targets = df.columns if columns is None else [c for c in columns if c in df.columns]
    if not targets:
        return df

    exprs = []
    for col in targets:
        text = pl.col(col).cast(pl.Utf8)
        exprs.append(
            pl.when(text.fill_null("").str.strip_chars().eq(""))
            .then(None)
            .otherwise(text)
            .forward_fill()
            .fill_null("")
            .alias(col)
        )
    return df.with_columns(exprs)


def _filled_counts(raw_df: pl.DataFrame, filled_df: pl.DataFrame) -> Dict[str, int]:
    """Per column, cells that were blank in raw_df and carry a value after fill-down."""

    if raw_df.is_empty():
        return {c: 0 for c in raw_df.columns}
    counts = pl.concat(
        [
            raw_df.select([pl.col(c).fill_null("").str.strip_chars().eq("").alias(c) for c in raw_df.columns]),
            filled_df.select([pl.col(c).fill_null("").str.strip_chars().ne("").alias(f"__filled_{c}") for c in raw_df.columns]),
        ],
        how="horizontal",
    ).select([(pl.col(c) & pl.col(f"__filled_{c}")).sum().alias(c) for c in raw_df.columns])
    return {c: int(counts[c][0]) for c in raw_df.columns}


def normalize_rows(
    headers: Sequence[Any],
    rows: Iterable[Sequence[Any]],
) -> tuple[SpecTable, NormalizationReport]:
    """
    Build a SpecTable from a header row and raw data rows.

    - Cells are coerced to text (None/NaN -> "")
    - Ragged rows are padded with blanks, extra cells dropped
    - Blank-header columns are skipped; duplicate headers keep the first column
    - Blank cells take the complete value of the previous row in that column
    """

    header_list = [_cell_text(h) for h in headers]
    if not header_list or all(is_blank(h) for h in header_list):
        raise SpecTableError("Spec sheet has no header row; nothing to normalize.")

    active: Dict[str, int] = {}
    skipped: List[int] = []
    for idx, name in enumerate(header_list):
        if is_blank(name):
            skipped.append(idx)
            continue
        if name in active:
            LOGGER.warning("Duplicate header %r at column %d ignored (first seen at %d)", name, idx, active[name])
            skipped.append(idx)
            continue
        active[name] = idx

    columns: Dict[str, List[str]] = {name: [] for name in active}
    raw_count = 0
    for raw in rows:
        raw_count += 1
        cells = list(raw)
        for name, idx in active.items():
            columns[name].append(_cell_text(cells[idx]) if idx < len(cells) else "")

    raw_df = pl.DataFrame(columns, schema={name: pl.Utf8 for name in active})
    filled_df = apply_fill_down(raw_df)

    spec_rows = tuple(
        SpecRow(values=raw_row, complete=complete_row)
        for raw_row, complete_row in zip(raw_df.iter_rows(named=True), filled_df.iter_rows(named=True))
    )
    table = SpecTable(headers=tuple(header_list), rows=spec_rows)

    report = NormalizationReport(
        raw_row_count=raw_count,
        columns=list(active),
        filled_cells=_filled_counts(raw_df, filled_df),
        skipped_headers=skipped,
    )
    LOGGER.info(
        "Normalized %d rows across %d columns (skipped header positions: %s)",
        raw_count,
        len(active),
        skipped,
    )
    return table, report


def build_spec_table(headers: Sequence[Any], rows: Iterable[Sequence[Any]]) -> SpecTable:
    """Shortcut for normalize_rows when the report is not needed."""

    table, _ = normalize_rows(headers, rows)
    return table


def spec_table_from_frame(df: pl.DataFrame) -> SpecTable:
    """Normalize an already-loaded Polars frame whose columns are the sheet headers."""

    if not df.columns:
        raise SpecTableError("Spec frame has no columns.")
    text_df = df.with_columns([pl.col(c).cast(pl.Utf8).fill_null("") for c in df.columns])
    return build_spec_table(df.columns, text_df.iter_rows())


def _trimmed(row: SpecRow, column: str) -> str:
    return (row.get(column) or "").strip()


def filter_by_series(table: SpecTable, series_name: str, layout: SpecLayout = DEFAULT_LAYOUT) -> SpecTable:
    """Keep rows whose series column (trimmed complete value) equals series_name."""

    column = table.header_at(layout.series_column)
    if is_blank(column):
        return table.with_rows([])
    matched = [row for row in table.rows if _trimmed(row, column) == series_name]
    LOGGER.debug("Series %r matched %d of %d rows", series_name, len(matched), len(table.rows))
    return table.with_rows(matched)


def classifications(table: SpecTable, layout: SpecLayout = DEFAULT_LAYOUT) -> List[str]:
    """Distinct non-blank classification names, sorted."""

    column = table.header_at(layout.classification_column)
    if is_blank(column):
        return []
    return sorted({_trimmed(row, column) for row in table.rows} - {""})


def series_names(
    table: SpecTable,
    classification: Optional[str] = None,
    layout: SpecLayout = DEFAULT_LAYOUT,
) -> List[str]:
    """
    Distinct non-blank series names, sorted.

    When classification is given only rows of that classification count; a
    table without a classification column matches every row.
    """

    series_col = table.header_at(layout.series_column)
    if is_blank(series_col):
        return []
    class_col = table.header_at(layout.classification_column)

    names = set()
    for row in table.rows:
        if classification is not None and not is_blank(class_col):
            if _trimmed(row, class_col) != classification:
                continue
        value = _trimmed(row, series_col)
        if value:
            names.add(value)
    return sorted(names)


def parse_name_codes(rows: Iterable[Sequence[Any]], *, skip_header: bool = True) -> Dict[str, NameCode]:
    """
    Parse Name_Code sheet rows (code | name | english name) into a lookup by name.

    Rows lacking a code or a name are skipped; a repeated name keeps the last row.
    """

    lookup: Dict[str, NameCode] = {}
    for pos, raw in enumerate(rows):
        if skip_header and pos == 0:
            continue
        cells = [_cell_text(c).strip() for c in raw]
        code = cells[0] if len(cells) > 0 else ""
        name = cells[1] if len(cells) > 1 else ""
        english = cells[2] if len(cells) > 2 else ""
        if not code or not name:
            continue
        lookup[name] = NameCode(code=code, name=name, english_name=english)
        LOGGER.debug("Name_Code mapping: %s -> %s", name, code)
    LOGGER.info("Loaded %d Name_Code mappings", len(lookup))
    return lookup


def code_for(name_codes: Mapping[str, NameCode] | None, series_name: str) -> str:
    """External command code for a series; "" when unmapped."""

    if not name_codes:
        return ""
    entry = name_codes.get(series_name)
    return entry.code if entry else ""


__all__ = [
    "NormalizationReport",
    "apply_fill_down",
    "build_spec_table",
    "classifications",
    "code_for",
    "filter_by_series",
    "normalize_rows",
    "parse_name_codes",
    "series_names",
    "spec_table_from_frame",
]
