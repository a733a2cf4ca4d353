"""
Cascading decision tree over the hierarchy columns of a spec table.

Every row contributes one path root -> leaf (or several, when a cell holds
multiple values). Nodes live in a flat arena and refer to their children by
index, so a tree is a plain list that can be rebuilt cheaply on every
category change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .normalize import filter_by_series
from .schema import (
    DEFAULT_LAYOUT,
    SpecLayout,
    SpecRow,
    SpecTable,
    is_blank,
    normalize_hierarchy_columns,
    split_values,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class HierarchyNode:
    """One distinct value at one hierarchy level."""

    index: int
    level: int
    column_index: int
    column_name: str
    value: str
    children: Tuple[int, ...] = ()
    # Only populated on terminal-level nodes: column -> complete cell text.
    leaf_values: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class HierarchyTree:
    hierarchy_columns: Tuple[int, ...]
    column_names: Tuple[str, ...]
    nodes: Tuple[HierarchyNode, ...]
    root_ids: Tuple[int, ...]

    @property
    def depth(self) -> int:
        return len(self.hierarchy_columns)

    def node(self, index: int) -> HierarchyNode:
        return self.nodes[index]

    def roots(self) -> List[HierarchyNode]:
        return [self.nodes[i] for i in self.root_ids]

    def children(self, node: HierarchyNode) -> List[HierarchyNode]:
        return [self.nodes[i] for i in node.children]

    def level_of(self, column_index: int) -> int:
        try:
            return self.hierarchy_columns.index(column_index)
        except ValueError:
            return -1

    def find_child(self, ids: Sequence[int], value: str) -> Optional[HierarchyNode]:
        for i in ids:
            if self.nodes[i].value == value:
                return self.nodes[i]
        return None

    def find_path(self, values: Sequence[str]) -> Optional[HierarchyNode]:
        """Follow values level by level from the roots; None when any step misses."""

        ids: Sequence[int] = self.root_ids
        found: Optional[HierarchyNode] = None
        for value in values:
            found = self.find_child(ids, value)
            if found is None:
                return None
            ids = found.children
        return found

    def walk(self) -> Iterator[HierarchyNode]:
        """Depth-first, insertion-ordered traversal."""

        stack = list(reversed(self.root_ids))
        while stack:
            node = self.nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def to_dict(self) -> List[Dict[str, Any]]:
        def render(node: HierarchyNode) -> Dict[str, Any]:
            payload: Dict[str, Any] = {"column": node.column_name, "value": node.value}
            if node.children:
                payload["children"] = [render(child) for child in self.children(node)]
            if node.leaf_values:
                payload["leaf"] = dict(node.leaf_values)
            return payload

        return [render(root) for root in self.roots()]


@dataclass
class _Draft:
    level: int
    column_index: int
    column_name: str
    value: str
    children: List[int] = field(default_factory=list)
    leaf_values: Dict[str, str] = field(default_factory=dict)


class _ArenaBuilder:
    def __init__(self, table: SpecTable, hierarchy_columns: Tuple[int, ...]):
        self.table = table
        self.columns = hierarchy_columns
        self.names = tuple(
            name if table.index_of(name) == c else ""
            for c, name in ((c, table.header_at(c)) for c in hierarchy_columns)
        )
        hierarchy_set = set(hierarchy_columns)
        self.leaf_names = [c for c in table.columns if table.index_of(c) not in hierarchy_set]
        self.drafts: List[_Draft] = []
        self.roots: List[int] = []
        # (parent id or -1, value, column index) -> node id
        self._lookup: Dict[Tuple[int, str, int], int] = {}

    def _child(self, parent: int, level: int, value: str) -> int:
        column = self.columns[level]
        key = (parent, value, column)
        existing = self._lookup.get(key)
        if existing is not None:
            return existing
        node_id = len(self.drafts)
        self.drafts.append(_Draft(level=level, column_index=column, column_name=self.names[level], value=value))
        siblings = self.roots if parent < 0 else self.drafts[parent].children
        siblings.append(node_id)
        self._lookup[key] = node_id
        return node_id

    def add_row(self, row: SpecRow, parent: int = -1, level: int = 0) -> None:
        if level >= len(self.columns):
            return
        name = self.names[level]
        cell = row.get(name) if not is_blank(name) else ""
        # A blank level ends this row's path; deeper levels are not visited.
        if is_blank(cell):
            return

        last = level == len(self.columns) - 1
        for value in split_values(cell):
            node_id = self._child(parent, level, value)
            if last:
                leaf = self.drafts[node_id].leaf_values
                for column in self.leaf_names:
                    leaf.setdefault(column, row.get(column))
            else:
                self.add_row(row, node_id, level + 1)

    def freeze(self) -> HierarchyTree:
        nodes = tuple(
            HierarchyNode(
                index=i,
                level=d.level,
                column_index=d.column_index,
                column_name=d.column_name,
                value=d.value,
                children=tuple(d.children),
                leaf_values=MappingProxyType(dict(d.leaf_values)),
            )
            for i, d in enumerate(self.drafts)
        )
        return HierarchyTree(
            hierarchy_columns=self.columns,
            column_names=self.names,
            nodes=nodes,
            root_ids=tuple(self.roots),
        )


def build_hierarchy_tree(
    table: SpecTable,
    hierarchy_columns: Sequence[int] | None = None,
    *,
    category: str | None = None,
    layout: SpecLayout = DEFAULT_LAYOUT,
) -> HierarchyTree:
    """
    Build the cascading tree for a table.

    hierarchy_columns defaults to the layout's hierarchy range; when category
    is given only rows of that series take part. Rebuilding from the same
    inputs yields an identical tree.
    """

    if category is not None:
        table = filter_by_series(table, category, layout)
    if hierarchy_columns is None:
        hierarchy_columns = layout.hierarchy_columns(table)
    columns = normalize_hierarchy_columns(hierarchy_columns)

    builder = _ArenaBuilder(table, columns)
    for row in table.rows:
        builder.add_row(row)
    tree = builder.freeze()

    LOGGER.info(
        "Built hierarchy tree: %d rows, %d levels, %d nodes, %d roots",
        len(table.rows),
        tree.depth,
        len(tree.nodes),
        len(tree.root_ids),
    )
    if tree.root_ids:
        LOGGER.debug("First level (%s): %s", tree.column_names[0], [n.value for n in tree.roots()])
    return tree


def format_tree(tree: HierarchyTree, *, show_leaves: bool = False, indent: str = "  ") -> str:
    """Plain-text outline of the tree, one node per line."""

    lines: List[str] = []

    def emit(node: HierarchyNode, depth: int) -> None:
        lines.append(f"{indent * depth}{node.column_name}: {node.value}")
        if show_leaves:
            for column, value in node.leaf_values.items():
                if not is_blank(value):
                    lines.append(f"{indent * (depth + 1)}- {column} = {value!r}")
        for child in tree.children(node):
            emit(child, depth + 1)

    for root in tree.roots():
        emit(root, 0)
    return "\n".join(lines)


__all__ = ["HierarchyNode", "HierarchyTree", "build_hierarchy_tree", "format_tree"]
