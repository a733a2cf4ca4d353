from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from openpyxl.utils import column_index_from_string

from .schema import DEFAULT_LAYOUT, SpecLayout

load_dotenv()

LAYOUT_ENV_KEY = "SPEC_CASCADE_LAYOUT"
SHEET_ENV_KEY = "SPEC_CASCADE_SHEET"
CODE_SHEET_ENV_KEY = "SPEC_CASCADE_CODE_SHEET"
INDENT_ENV_KEY = "SPEC_CASCADE_INDENT"

_COLUMN_KEYS = {
    "classification_column",
    "series_column",
    "hierarchy_first",
    "hierarchy_last",
    "leaf_first",
    "multi_select_column",
}
_SHEET_KEYS = {"spec_sheet", "code_sheet"}


class ConfigError(ValueError):
    """Raised when the YAML layout file is invalid."""


def _parse_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _column_index(key: str, value: Any) -> int:
    """
    Accept a zero-based index or an Excel column letter ("A" is 0).
    """

    if isinstance(value, bool):
        raise ConfigError(f"`{key}` must be a column index or letter, not a boolean")
    if isinstance(value, int):
        if value < 0:
            raise ConfigError(f"`{key}` must not be negative (got {value})")
        return value
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    try:
        return column_index_from_string(text.upper()) - 1
    except ValueError as exc:
        raise ConfigError(f"`{key}` is neither an index nor a column letter: {value!r}") from exc


def layout_from_mapping(raw: Dict[str, Any]) -> SpecLayout:
    unknown = set(raw) - _COLUMN_KEYS - _SHEET_KEYS
    if unknown:
        raise ConfigError(f"Unknown layout keys: {', '.join(sorted(unknown))}")

    values: Dict[str, Any] = {}
    for key, value in raw.items():
        if key in _COLUMN_KEYS:
            values[key] = _column_index(key, value)
        else:
            values[key] = str(value)

    layout = SpecLayout(**{f.name: values.get(f.name, getattr(DEFAULT_LAYOUT, f.name)) for f in fields(SpecLayout)})
    if layout.hierarchy_last < layout.hierarchy_first:
        raise ConfigError("`hierarchy_last` must not precede `hierarchy_first`")
    return layout


def load_layout(path: Optional[Path] = None) -> SpecLayout:
    """
    Load a SpecLayout from YAML; defaults when no file is given or it does not exist.

    The file may hold the keys at top level or under a `layout:` section.
    """

    if path is None:
        return DEFAULT_LAYOUT
    path = Path(path)
    if not path.exists():
        return DEFAULT_LAYOUT

    with path.open("r", encoding="utf-8") as handle:
        try:
            raw = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Layout file {path} must contain a mapping")
    section = raw.get("layout", raw)
    if not isinstance(section, dict):
        raise ConfigError("`layout` section must be a mapping")
    return layout_from_mapping(section)


@dataclass
class Settings:
    layout: SpecLayout
    layout_path: Optional[Path] = None
    json_indent: int = 2


def load_settings(layout_path: Optional[Path] = None) -> Settings:
    """
    Resolve runtime settings from an explicit layout path, the environment and .env.

    Sheet names from the environment override those in the layout file.
    """

    if layout_path is None and os.getenv(LAYOUT_ENV_KEY):
        layout_path = Path(os.environ[LAYOUT_ENV_KEY])
    layout = load_layout(layout_path)

    overrides: Dict[str, str] = {}
    if os.getenv(SHEET_ENV_KEY):
        overrides["spec_sheet"] = os.environ[SHEET_ENV_KEY]
    if os.getenv(CODE_SHEET_ENV_KEY):
        overrides["code_sheet"] = os.environ[CODE_SHEET_ENV_KEY]
    if overrides:
        layout = SpecLayout(**{**{f.name: getattr(layout, f.name) for f in fields(SpecLayout)}, **overrides})

    return Settings(
        layout=layout,
        layout_path=layout_path,
        json_indent=_parse_int(os.getenv(INDENT_ENV_KEY), 2),
    )
