"""
Workbook adapter: read the spec sheet and the Name_Code sheet as raw text cells.

Cell reading stays here so the rest of the package only ever sees header
lists and string rows.
"""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pandas as pd

from .normalize import NormalizationReport, normalize_rows, parse_name_codes
from .schema import DEFAULT_LAYOUT, NameCode, SpecLayout, SpecTable, SpecTableError

LOGGER = logging.getLogger(__name__)


def _excel_source(path_or_bytes: Any) -> Any:
    """
    Return a rewindable Excel source for pandas.

    Bytes/BytesIO inputs are rewound to position 0 so multiple readers can consume them.
    """

    if isinstance(path_or_bytes, BytesIO):
        path_or_bytes.seek(0)
        return path_or_bytes
    if isinstance(path_or_bytes, (bytes, bytearray)):
        return BytesIO(path_or_bytes)
    return path_or_bytes


def _sheet_rows(workbook: pd.ExcelFile, sheet: str | int) -> List[List[str]]:
    frame = workbook.parse(sheet_name=sheet, header=None, dtype=str, keep_default_na=False)
    frame = frame.fillna("")
    return [[str(cell) for cell in row] for row in frame.itertuples(index=False, name=None)]


def read_spec_sheet(workbook: pd.ExcelFile, layout: SpecLayout = DEFAULT_LAYOUT) -> Tuple[List[str], List[List[str]]]:
    """Header row and data rows of the spec sheet (named sheet if present, else the first)."""

    sheet: str | int = layout.spec_sheet if layout.spec_sheet in workbook.sheet_names else 0
    rows = _sheet_rows(workbook, sheet)
    if not rows:
        raise SpecTableError(f"Spec sheet {sheet!r} is empty.")
    LOGGER.info("Reading spec sheet %r: %d data rows", sheet, len(rows) - 1)
    return rows[0], rows[1:]


def read_name_codes(workbook: pd.ExcelFile, layout: SpecLayout = DEFAULT_LAYOUT) -> Dict[str, NameCode]:
    if layout.code_sheet not in workbook.sheet_names:
        LOGGER.warning("Workbook has no %r sheet; series codes will be empty.", layout.code_sheet)
        return {}
    rows = _sheet_rows(workbook, layout.code_sheet)
    if not rows:
        LOGGER.warning("%r sheet is empty; series codes will be empty.", layout.code_sheet)
        return {}
    return parse_name_codes(rows)


def load_spec_workbook(
    path_or_bytes: Any,
    layout: SpecLayout = DEFAULT_LAYOUT,
) -> Tuple[SpecTable, Dict[str, NameCode], NormalizationReport]:
    """
    Load a spec workbook into a normalized table plus its name -> code lookup.

    Raises FileNotFoundError for a missing path and SpecTableError for an
    empty spec sheet.
    """

    if isinstance(path_or_bytes, (str, Path)):
        path_or_bytes = Path(path_or_bytes)
        if not path_or_bytes.exists():
            raise FileNotFoundError(f"Workbook not found: {path_or_bytes}")

    with pd.ExcelFile(_excel_source(path_or_bytes), engine="openpyxl") as workbook:
        headers, rows = read_spec_sheet(workbook, layout)
        name_codes = read_name_codes(workbook, layout)

    table, report = normalize_rows(headers, rows)
    return table, name_codes, report


__all__ = ["load_spec_workbook", "read_name_codes", "read_spec_sheet"]
