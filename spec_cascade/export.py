"""
Export the cascading relationships of a spec table as an option/value schema.

The consumer of this schema has no tree: each value instead names the parent
option it depends on ("filter") and the parent enum ids under which it is
valid ("filter_Values"). The shape is

    Classification[] -> Series[] -> option[] -> values[]

and is serialized with the key order the downstream rules engine expects.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .normalize import classifications, code_for, filter_by_series, series_names
from .schema import (
    DEFAULT_LAYOUT,
    SENTINEL_ATOMS,
    ColumnKind,
    NameCode,
    SpecLayout,
    SpecTable,
    column_kind,
    first_value,
    split_values,
)

LOGGER = logging.getLogger(__name__)

COMBO = "COMBO"
LISTBOX = "LISTBOX"
EDITBOX = "EDITBOX"
CHECKBOX = "CHECKBOX"
UNCONSTRAINED = "-1"

_KIND_CONTROL = {
    ColumnKind.NORMAL: COMBO,
    ColumnKind.FREE_TEXT: EDITBOX,
    ColumnKind.BOOLEAN: CHECKBOX,
}


@dataclass
class OptionValue:
    enumid: int
    name: str
    desc: str = ""
    filter: List[str] = field(default_factory=lambda: [UNCONSTRAINED])
    filter_values: List[List[str]] = field(default_factory=lambda: [[UNCONSTRAINED]])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enumid": self.enumid,
            "name": self.name,
            "desc": self.desc,
            "filter": list(self.filter),
            "filter_Values": [list(group) for group in self.filter_values],
        }


@dataclass
class Option:
    id: int
    name: str
    type: str = COMBO
    default_value: str = "0"
    values: List[OptionValue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "default_Value": self.default_value,
            "values": [v.to_dict() for v in self.values],
            "type": self.type,
        }


@dataclass
class Series:
    id: int
    name: str
    cmd: str = ""
    options: List[Option] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "CMD": self.cmd,
            "id": self.id,
            "option": [o.to_dict() for o in self.options],
        }


@dataclass
class Classification:
    id: int
    name: str
    series: List[Series] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "id": self.id,
            "Series": [s.to_dict() for s in self.series],
        }


@dataclass
class ExportSchema:
    classifications: List[Classification] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"Classification": [c.to_dict() for c in self.classifications]}

    def iter_series(self):
        for classification in self.classifications:
            yield from classification.series

    def find_series(self, name: str) -> Optional[Series]:
        for series in self.iter_series():
            if series.name == name:
                return series
        return None


def _distinct_atoms(table: SpecTable, column: int) -> List[str]:
    seen: Dict[str, None] = {}
    for cell in table.complete_values(column):
        for atom in split_values(cell):
            seen.setdefault(atom, None)
    return list(seen)


def _value_relations(table: SpecTable, column: int, parent_column: int) -> Dict[str, Dict[str, None]]:
    """
    Distinct atoms of a column with the parent atoms observed beside them.

    Only the first atom of a multi-valued parent cell is recorded.
    """

    relations: Dict[str, Dict[str, None]] = {}
    parent_cells = table.complete_values(parent_column) if parent_column >= 0 else None
    for pos, cell in enumerate(table.complete_values(column)):
        atoms = split_values(cell)
        if not atoms:
            continue
        parent = first_value(parent_cells[pos]) if parent_cells is not None else None
        for atom in atoms:
            parents = relations.setdefault(atom, {})
            if parent is not None:
                parents.setdefault(parent, None)
    return relations


def _parent_column(hierarchy_columns: Sequence[int], column: int) -> int:
    try:
        pos = list(hierarchy_columns).index(column)
    except ValueError:
        return -1
    return hierarchy_columns[pos - 1] if pos > 0 else -1


def build_hierarchy_option(
    table: SpecTable,
    column: int,
    option_id: int,
    hierarchy_columns: Sequence[int],
    column_to_option: Mapping[int, int],
    layout: SpecLayout = DEFAULT_LAYOUT,
) -> Option:
    option = Option(
        id=option_id,
        name=table.header_at(column),
        type=LISTBOX if column == layout.multi_select_column else COMBO,
    )

    parent_column = _parent_column(hierarchy_columns, column)
    parent_option = column_to_option.get(parent_column)
    parent_enum = {v: i for i, v in enumerate(_distinct_atoms(table, parent_column))} if parent_column >= 0 else {}

    for enum_id, (value, parents) in enumerate(_value_relations(table, column, parent_column).items()):
        item = OptionValue(enumid=enum_id, name=value)
        if parent_option is not None:
            parent_ids = [str(parent_enum[p]) for p in parents if p in parent_enum]
            item.filter = [str(parent_option)]
            item.filter_values = [parent_ids or [UNCONSTRAINED]]
        option.values.append(item)
    return option


def build_leaf_option(
    table: SpecTable,
    column: int,
    option_id: int,
    hierarchy_columns: Sequence[int],
    column_to_option: Mapping[int, int],
) -> Optional[Option]:
    """Option for a leaf column, or None when the column is marked excluded (X)."""

    kind = column_kind(table.first_atom(column))
    if kind is ColumnKind.EXCLUDED:
        return None

    option = Option(id=option_id, name=table.header_at(column), type=_KIND_CONTROL[kind])
    last_hierarchy = hierarchy_columns[-1] if hierarchy_columns else -1
    parent_option = column_to_option.get(last_hierarchy)
    parent = str(parent_option) if parent_option is not None else UNCONSTRAINED

    enum_id = 0
    for value in _distinct_atoms(table, column):
        if value in SENTINEL_ATOMS:
            continue
        option.values.append(
            OptionValue(enumid=enum_id, name=value, filter=[parent], filter_values=[[UNCONSTRAINED]])
        )
        enum_id += 1
    return option


def build_options(table: SpecTable, layout: SpecLayout = DEFAULT_LAYOUT) -> List[Option]:
    """
    Options for every hierarchy column, then every leaf column.

    Ids are handed out in column order and only to options that carry at
    least one value; columns without values are skipped entirely.
    """

    hierarchy_columns = layout.hierarchy_columns(table)
    column_to_option: Dict[int, int] = {}
    options: List[Option] = []

    for column in hierarchy_columns:
        option = build_hierarchy_option(table, column, len(options), hierarchy_columns, column_to_option, layout)
        if option.values:
            column_to_option[column] = option.id
            options.append(option)
        else:
            LOGGER.debug("Hierarchy column %r has no values; skipped", option.name)

    for column in layout.leaf_columns(table):
        option = build_leaf_option(table, column, len(options), hierarchy_columns, column_to_option)
        if option is not None and option.values:
            column_to_option[column] = option.id
            options.append(option)
        else:
            LOGGER.debug("Leaf column %r excluded or without values; skipped", table.header_at(column))

    return options


def build_series(
    table: SpecTable,
    series_name: str,
    series_id: int,
    name_codes: Mapping[str, NameCode] | None = None,
    layout: SpecLayout = DEFAULT_LAYOUT,
) -> Optional[Series]:
    rows = filter_by_series(table, series_name, layout)
    if not rows.rows:
        return None
    return Series(
        id=series_id,
        name=series_name,
        cmd=code_for(name_codes, series_name),
        options=build_options(rows, layout),
    )


def build_export_schema(
    table: SpecTable,
    name_codes: Mapping[str, NameCode] | None = None,
    layout: SpecLayout = DEFAULT_LAYOUT,
) -> ExportSchema:
    """Whole-table schema: every classification with its series, ids starting at 1."""

    schema = ExportSchema()
    for class_id, class_name in enumerate(classifications(table, layout), start=1):
        classification = Classification(id=class_id, name=class_name)
        series_id = 1
        for name in series_names(table, class_name, layout):
            series = build_series(table, name, series_id, name_codes, layout)
            series_id += 1
            if series is not None:
                classification.series.append(series)
        schema.classifications.append(classification)

    LOGGER.info(
        "Exported %d classifications, %d series",
        len(schema.classifications),
        sum(1 for _ in schema.iter_series()),
    )
    return schema


def export_series(
    table: SpecTable,
    series_name: str,
    name_codes: Mapping[str, NameCode] | None = None,
    layout: SpecLayout = DEFAULT_LAYOUT,
    *,
    fallback_to_first: bool = False,
) -> Optional[Dict[str, Any]]:
    """
    Single-series payload {"Series": [...]} for one persisted unit.

    Returns None when no series has that name, unless fallback_to_first is set
    in which case the first exported series is used instead.
    """

    schema = build_export_schema(table, name_codes, layout)
    series = schema.find_series(series_name)
    if series is None and fallback_to_first:
        series = next(schema.iter_series(), None)
        if series is not None:
            LOGGER.warning("Series %r not found; falling back to %r", series_name, series.name)
    if series is None:
        LOGGER.info("Series %r not found in export", series_name)
        return None
    return {"Series": [series.to_dict()]}


def dumps(payload: Any, indent: int = 2) -> str:
    if hasattr(payload, "to_dict"):
        payload = payload.to_dict()
    return json.dumps(payload, ensure_ascii=False, indent=indent)


def write_json(payload: Any, path: Path, indent: int = 2) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dumps(payload, indent=indent), encoding="utf-8")
    LOGGER.info("Wrote %s", path)
    return path


__all__ = [
    "CHECKBOX",
    "COMBO",
    "EDITBOX",
    "LISTBOX",
    "Classification",
    "ExportSchema",
    "Option",
    "OptionValue",
    "Series",
    "build_export_schema",
    "build_hierarchy_option",
    "build_leaf_option",
    "build_options",
    "build_series",
    "dumps",
    "export_series",
    "write_json",
]
