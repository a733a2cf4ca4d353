from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

CLASSIFICATION_COLUMN = 0
SERIES_COLUMN = 1
HIERARCHY_FIRST_COLUMN = 2
HIERARCHY_LAST_COLUMN = 8
LEAF_FIRST_COLUMN = 9
MULTI_SELECT_COLUMN = 8
SPEC_SHEET_NAME = "규격정리"
CODE_SHEET_NAME = "Name_Code"

FREE_TEXT_ATOM = "E"
BOOLEAN_ATOM = "C"
EXCLUDED_ATOM = "X"
SENTINEL_ATOMS = frozenset({FREE_TEXT_ATOM, BOOLEAN_ATOM, EXCLUDED_ATOM})

_VALUE_SEPARATORS = re.compile(r"[,\n]")


class SpecTableError(ValueError):
    """Raised when the source sheet has no usable shape (no headers at all)."""


class ColumnKind(Enum):
    """How a leaf column is presented, decided once per column."""

    NORMAL = "normal"
    FREE_TEXT = "free_text"
    BOOLEAN = "boolean"
    EXCLUDED = "excluded"


def is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def split_values(cell: Optional[str]) -> List[str]:
    """
    Split a multi-value cell into its atomic values.

    Cells hold several values separated by commas or line breaks. Pieces are
    trimmed, empties dropped and duplicates removed in first-appearance order.
    """

    if is_blank(cell):
        return []
    seen = set()
    atoms: List[str] = []
    for piece in _VALUE_SEPARATORS.split(str(cell)):
        atom = piece.strip()
        if not atom or atom in seen:
            continue
        seen.add(atom)
        atoms.append(atom)
    return atoms


def first_value(cell: Optional[str]) -> Optional[str]:
    """First atomic value of a cell, or None for a blank cell."""

    atoms = split_values(cell)
    return atoms[0] if atoms else None


def column_kind(representative: Optional[str]) -> ColumnKind:
    """Map a column's representative atom onto its presentation kind."""

    if is_blank(representative):
        return ColumnKind.NORMAL
    token = str(representative).strip().upper()
    if token == FREE_TEXT_ATOM:
        return ColumnKind.FREE_TEXT
    if token == BOOLEAN_ATOM:
        return ColumnKind.BOOLEAN
    if token == EXCLUDED_ATOM:
        return ColumnKind.EXCLUDED
    return ColumnKind.NORMAL


@dataclass(frozen=True)
class SpecRow:
    """One sheet row: raw cells plus the forward-filled ("complete") cells."""

    values: Mapping[str, str]
    complete: Mapping[str, str]

    def __post_init__(self) -> None:
        # Rows are shared by every tree built from the table; keep them read-only.
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))
        object.__setattr__(self, "complete", MappingProxyType(dict(self.complete)))

    def get(self, column: str) -> str:
        return self.complete.get(column, "")


@dataclass(frozen=True)
class SpecTable:
    """
    Ordered headers plus normalized rows.

    Headers keep blank entries so that column indices match sheet positions;
    only non-blank, first-occurrence headers appear in the row mappings.
    """

    headers: Tuple[str, ...]
    rows: Tuple[SpecRow, ...] = ()

    @property
    def columns(self) -> List[str]:
        """Header names that carry data, in sheet order."""

        seen = set()
        names: List[str] = []
        for name in self.headers:
            if is_blank(name) or name in seen:
                continue
            seen.add(name)
            names.append(name)
        return names

    def header_at(self, index: int) -> str:
        if 0 <= index < len(self.headers):
            return self.headers[index]
        return ""

    def index_of(self, name: str) -> int:
        try:
            return self.headers.index(name)
        except ValueError:
            return -1

    def complete_values(self, index: int) -> List[str]:
        """Complete cell text of one column for every row ("" when unknown)."""

        name = self.header_at(index)
        if is_blank(name) or self.index_of(name) != index:
            return ["" for _ in self.rows]
        return [row.get(name) for row in self.rows]

    def first_atom(self, index: int) -> Optional[str]:
        """First atomic value found scanning the column top to bottom."""

        for cell in self.complete_values(index):
            atom = first_value(cell)
            if atom is not None:
                return atom
        return None

    def with_rows(self, rows: Iterable[SpecRow]) -> "SpecTable":
        return SpecTable(headers=self.headers, rows=tuple(rows))


@dataclass(frozen=True)
class NameCode:
    """One Name_Code sheet entry: series name -> external command code."""

    code: str
    name: str
    english_name: str = ""


@dataclass(frozen=True)
class SpecLayout:
    """Column positions (zero-based) and sheet names of a spec workbook."""

    classification_column: int = CLASSIFICATION_COLUMN
    series_column: int = SERIES_COLUMN
    hierarchy_first: int = HIERARCHY_FIRST_COLUMN
    hierarchy_last: int = HIERARCHY_LAST_COLUMN
    leaf_first: int = LEAF_FIRST_COLUMN
    multi_select_column: int = MULTI_SELECT_COLUMN
    spec_sheet: str = SPEC_SHEET_NAME
    code_sheet: str = CODE_SHEET_NAME

    def hierarchy_columns(self, table: SpecTable) -> List[int]:
        last = min(len(table.headers) - 1, self.hierarchy_last)
        return [i for i in range(self.hierarchy_first, last + 1) if not is_blank(table.headers[i])]

    def leaf_columns(self, table: SpecTable) -> List[int]:
        return [i for i in range(self.leaf_first, len(table.headers)) if not is_blank(table.headers[i])]


DEFAULT_LAYOUT = SpecLayout()


def normalize_hierarchy_columns(columns: Sequence[int]) -> Tuple[int, ...]:
    """Sort and de-duplicate hierarchy indices so level N maps to entry N."""

    return tuple(sorted({int(c) for c in columns}))
