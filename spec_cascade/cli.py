from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import ConfigError, Settings, load_settings
from .export import build_export_schema, dumps, export_series, write_json
from .hierarchy import HierarchyTree, build_hierarchy_tree, format_tree
from .io import load_spec_workbook
from .resolve import SelectionPath, available_values, leaf_values
from .schema import SpecTable, SpecTableError

LOGGER = logging.getLogger(__name__)


def configure_logging(verbosity: int) -> None:
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")


def _resolve_column(table: SpecTable, token: str) -> int:
    """Column given as a header name or, failing that, a zero-based index."""

    token = token.strip()
    index = table.index_of(token) if token else -1
    if index >= 0:
        return index
    if token.isdigit():
        return int(token)
    raise SpecTableError(f"Unknown column: {token!r}")


def _parse_path(table: SpecTable, selections: Sequence[str]) -> SelectionPath:
    chosen = {}
    for item in selections or []:
        column, sep, value = item.partition("=")
        if not sep:
            raise SpecTableError(f"Selections must look like COLUMN=VALUE (got {item!r})")
        chosen[_resolve_column(table, column)] = value.strip()
    return SelectionPath(chosen)


def _emit(text: str, output: Optional[Path]) -> None:
    if output is None:
        sys.stdout.write(text + "\n")
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    LOGGER.info("Wrote %s", output)


def _load(args: argparse.Namespace, settings: Settings):
    return load_spec_workbook(args.workbook, settings.layout)


def _tree(args: argparse.Namespace, settings: Settings) -> tuple[SpecTable, HierarchyTree]:
    table, _, _ = _load(args, settings)
    tree = build_hierarchy_tree(table, category=args.category, layout=settings.layout)
    return table, tree


def cmd_export(args: argparse.Namespace, settings: Settings) -> int:
    table, name_codes, _ = _load(args, settings)
    schema = build_export_schema(table, name_codes, settings.layout)
    if args.output:
        write_json(schema, args.output, indent=settings.json_indent)
    else:
        _emit(dumps(schema, indent=settings.json_indent), None)
    return 0


def cmd_series(args: argparse.Namespace, settings: Settings) -> int:
    table, name_codes, _ = _load(args, settings)
    payload = export_series(
        table,
        args.name,
        name_codes,
        settings.layout,
        fallback_to_first=args.fallback_first,
    )
    if payload is None:
        LOGGER.error("No series named %r in %s", args.name, args.workbook)
        return 1
    _emit(dumps(payload, indent=settings.json_indent), args.output)
    return 0


def cmd_tree(args: argparse.Namespace, settings: Settings) -> int:
    _, tree = _tree(args, settings)
    _emit(format_tree(tree, show_leaves=args.leaves), None)
    return 0


def cmd_values(args: argparse.Namespace, settings: Settings) -> int:
    table, tree = _tree(args, settings)
    path = _parse_path(table, args.select)
    column = _resolve_column(table, args.column)
    for value in available_values(tree, path, column):
        sys.stdout.write(value + "\n")
    return 0


def cmd_leaf(args: argparse.Namespace, settings: Settings) -> int:
    table, tree = _tree(args, settings)
    path = _parse_path(table, args.select)
    _emit(json.dumps(leaf_values(tree, path), ensure_ascii=False, indent=settings.json_indent), None)
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Cascading part-specification tree and option schema export.",
    )
    parser.add_argument(
        "--layout",
        type=Path,
        help="YAML file describing column positions and sheet names.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (repeatable).",
    )
    subparsers = parser.add_subparsers(dest="command")

    export = subparsers.add_parser("export", help="Export the whole workbook as option schema JSON.")
    export.add_argument("workbook", type=Path)
    export.add_argument("-o", "--output", type=Path, help="Write JSON here instead of stdout.")
    export.set_defaults(func=cmd_export)

    series = subparsers.add_parser("series", help="Export a single series by name.")
    series.add_argument("workbook", type=Path)
    series.add_argument("name")
    series.add_argument("-o", "--output", type=Path, help="Write JSON here instead of stdout.")
    series.add_argument(
        "--fallback-first",
        action="store_true",
        help="Use the first series when the name is not found.",
    )
    series.set_defaults(func=cmd_series)

    tree = subparsers.add_parser("tree", help="Print the hierarchy tree.")
    tree.add_argument("workbook", type=Path)
    tree.add_argument("--category", help="Restrict to one series.")
    tree.add_argument("--leaves", action="store_true", help="Show leaf attributes under terminal nodes.")
    tree.set_defaults(func=cmd_tree)

    values = subparsers.add_parser("values", help="List values available for a hierarchy column.")
    values.add_argument("workbook", type=Path)
    values.add_argument("column", help="Column index or header name.")
    values.add_argument("--select", action="append", default=[], metavar="COL=VALUE")
    values.add_argument("--category", help="Restrict to one series.")
    values.set_defaults(func=cmd_values)

    leaf = subparsers.add_parser("leaf", help="Show leaf values for a complete selection.")
    leaf.add_argument("workbook", type=Path)
    leaf.add_argument("--select", action="append", default=[], metavar="COL=VALUE")
    leaf.add_argument("--category", help="Restrict to one series.")
    leaf.set_defaults(func=cmd_leaf)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    configure_logging(args.verbose)
    try:
        settings = load_settings(args.layout)
        return args.func(args, settings)
    except (ConfigError, SpecTableError, FileNotFoundError) as exc:
        LOGGER.error(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
