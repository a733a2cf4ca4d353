"""
Cascading part-specification resolution: forward-filled spec rows, a
decision tree for progressive filtering, and an enum-indexed option schema
export for downstream consumers.
"""

from .schema import (  # noqa: F401
    DEFAULT_LAYOUT,
    SENTINEL_ATOMS,
    ColumnKind,
    NameCode,
    SpecLayout,
    SpecRow,
    SpecTable,
    SpecTableError,
    column_kind,
    split_values,
)

from .normalize import (  # noqa: F401
    NormalizationReport,
    apply_fill_down,
    build_spec_table,
    classifications,
    filter_by_series,
    normalize_rows,
    parse_name_codes,
    series_names,
    spec_table_from_frame,
)

from .hierarchy import HierarchyNode, HierarchyTree, build_hierarchy_tree  # noqa: F401

from .resolve import (  # noqa: F401
    EMPTY_PATH,
    LeafControl,
    SelectionPath,
    available_values,
    default_path,
    leaf_controls,
    leaf_values,
    next_unresolved,
)

from .export import ExportSchema, build_export_schema, export_series  # noqa: F401

__all__ = [
    "DEFAULT_LAYOUT",
    "SENTINEL_ATOMS",
    "ColumnKind",
    "NameCode",
    "SpecLayout",
    "SpecRow",
    "SpecTable",
    "SpecTableError",
    "column_kind",
    "split_values",
    "NormalizationReport",
    "apply_fill_down",
    "build_spec_table",
    "classifications",
    "filter_by_series",
    "normalize_rows",
    "parse_name_codes",
    "series_names",
    "spec_table_from_frame",
    "HierarchyNode",
    "HierarchyTree",
    "build_hierarchy_tree",
    "EMPTY_PATH",
    "LeafControl",
    "SelectionPath",
    "available_values",
    "default_path",
    "leaf_controls",
    "leaf_values",
    "next_unresolved",
    "ExportSchema",
    "build_export_schema",
    "export_series",
]
