from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .hierarchy import HierarchyNode, HierarchyTree
from .schema import (
    BOOLEAN_ATOM,
    DEFAULT_LAYOUT,
    FREE_TEXT_ATOM,
    SENTINEL_ATOMS,
    ColumnKind,
    SpecLayout,
    SpecTable,
    column_kind,
    is_blank,
    split_values,
)

LOGGER = logging.getLogger(__name__)


class SelectionPath(Mapping):
    """
    Immutable snapshot of the current cascade choices: column index -> value.

    Changing a level returns a new path with every deeper level dropped, so a
    path built through select()/clear() always holds a contiguous prefix.
    """

    __slots__ = ("_items",)

    def __init__(self, selections: Optional[Mapping] = None):
        items: Dict[int, str] = {}
        for column, value in (selections or {}).items():
            if is_blank(value):
                continue
            items[int(column)] = str(value)
        self._items = dict(sorted(items.items()))

    def __getitem__(self, column: int) -> str:
        return self._items[column]

    def __iter__(self) -> Iterator[int]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"SelectionPath({self._items!r})"

    def __hash__(self) -> int:
        return hash(tuple(self._items.items()))

    def select(self, column: int, value: Optional[str]) -> "SelectionPath":
        """Set one level; deeper levels are cleared. A blank value clears the level too."""

        kept = {c: v for c, v in self._items.items() if c < column}
        if not is_blank(value):
            kept[column] = str(value)
        return SelectionPath(kept)

    def clear(self, column: int) -> "SelectionPath":
        return self.select(column, None)

    def is_prefix(self, hierarchy_columns: Sequence[int]) -> bool:
        """True when the selected columns are exactly the first len(self) levels."""

        return list(self._items) == list(hierarchy_columns[: len(self._items)])


EMPTY_PATH = SelectionPath()


def _walk_to(tree: HierarchyTree, path: Mapping, stop_column: Optional[int]) -> Tuple[int, List[HierarchyNode]]:
    """
    Descend while the path supplies a value for each level.

    Returns (level reached, nodes at that level). Stops before stop_column's
    level, at the first level without a selection, or with an empty node list
    when a selection matches nothing. The terminal level is matched against
    the path, not descended past.
    """

    current = tree.roots()
    for level, column in enumerate(tree.hierarchy_columns):
        if column == stop_column:
            return level, current
        if column not in path:
            return level, []
        matching = [n for n in current if n.value == path[column]]
        if not matching or level == tree.depth - 1:
            return level, matching
        current = [child for n in matching for child in tree.children(n)]
    return tree.depth, []


def available_values(tree: HierarchyTree, path: Mapping, target_column: int) -> List[str]:
    """
    Values selectable at target_column given the choices made so far.

    Every level before the target must be selected; otherwise, or when a
    selection does not match the tree, the result is empty.
    """

    if target_column not in tree.hierarchy_columns:
        return []
    level, nodes = _walk_to(tree, path, target_column)
    if tree.hierarchy_columns[level] != target_column:
        return []
    values: List[str] = []
    for node in nodes:
        if node.value not in values:
            values.append(node.value)
    return values


def _leaf_atoms(tree: HierarchyTree, path: Mapping) -> Dict[str, List[str]]:
    if tree.depth == 0:
        return {}
    level, nodes = _walk_to(tree, path, None)
    if level != tree.depth - 1:
        return {}

    merged: Dict[str, List[str]] = {}
    for node in nodes:
        for column, cell in node.leaf_values.items():
            bucket = merged.setdefault(column, [])
            for atom in split_values(cell):
                if atom not in bucket:
                    bucket.append(atom)
    return merged


def leaf_values(tree: HierarchyTree, path: Mapping) -> Dict[str, List[str]]:
    """
    Leaf attributes for a fully resolved path: column -> distinct atomic values.

    Control atoms (E/C/X) are dropped; use leaf_controls() to learn how each
    column should be presented. An incomplete path yields {}.
    """

    return {
        column: [atom for atom in atoms if atom not in SENTINEL_ATOMS]
        for column, atoms in _leaf_atoms(tree, path).items()
    }


@dataclass(frozen=True)
class LeafControl:
    column_index: int
    column_name: str
    kind: ColumnKind
    values: Tuple[str, ...] = ()
    enabled: bool = False


def column_kinds(table: SpecTable, layout: SpecLayout = DEFAULT_LAYOUT) -> Dict[int, ColumnKind]:
    """Kind of every leaf column, decided from its first non-empty atomic value."""

    return {idx: column_kind(table.first_atom(idx)) for idx in layout.leaf_columns(table)}


def leaf_controls(
    tree: HierarchyTree,
    path: Mapping,
    table: SpecTable,
    layout: SpecLayout = DEFAULT_LAYOUT,
) -> List[LeafControl]:
    """
    Presentation state of every leaf column for the given path.

    NORMAL columns list their real values and are enabled when there is at
    least one; FREE_TEXT/BOOLEAN columns are enabled when the path's cells
    carry the E/C marker; EXCLUDED columns are never enabled.
    """

    atoms_by_column = _leaf_atoms(tree, path)
    controls: List[LeafControl] = []
    for idx, kind in column_kinds(table, layout).items():
        name = table.header_at(idx)
        atoms = atoms_by_column.get(name, [])
        real = tuple(a for a in atoms if a not in SENTINEL_ATOMS)
        if kind is ColumnKind.FREE_TEXT:
            enabled = FREE_TEXT_ATOM in atoms
        elif kind is ColumnKind.BOOLEAN:
            enabled = BOOLEAN_ATOM in atoms
        elif kind is ColumnKind.EXCLUDED:
            enabled = False
        else:
            enabled = bool(real)
        controls.append(LeafControl(idx, name, kind, real, enabled))
    return controls


def next_unresolved(tree: HierarchyTree, path: Mapping) -> Optional[int]:
    """First hierarchy column without a selection, or None when the path is complete."""

    for column in tree.hierarchy_columns:
        if column not in path:
            return column
    return None


def is_complete(tree: HierarchyTree, path: Mapping) -> bool:
    return tree.depth > 0 and next_unresolved(tree, path) is None


def default_path(tree: HierarchyTree, path: Mapping = EMPTY_PATH) -> SelectionPath:
    """
    Fill every unresolved level with its first available value.

    The given selections are kept as they are; filling stops at the first
    level that offers no value, so the result may still be incomplete.
    """

    current = path if isinstance(path, SelectionPath) else SelectionPath(path)
    while not is_complete(tree, current):
        column = next_unresolved(tree, current)
        choices = available_values(tree, current, column)
        if not choices:
            LOGGER.debug("No values available at column %s; default path stops", column)
            break
        current = current.select(column, choices[0])
    return current


__all__ = [
    "EMPTY_PATH",
    "LeafControl",
    "SelectionPath",
    "available_values",
    "column_kinds",
    "default_path",
    "is_complete",
    "leaf_controls",
    "leaf_values",
    "next_unresolved",
]
