from pathlib import Path

import pytest

from spec_cascade.config import (
    CODE_SHEET_ENV_KEY,
    INDENT_ENV_KEY,
    LAYOUT_ENV_KEY,
    SHEET_ENV_KEY,
    ConfigError,
    layout_from_mapping,
    load_layout,
    load_settings,
)
from spec_cascade.schema import DEFAULT_LAYOUT


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in (LAYOUT_ENV_KEY, SHEET_ENV_KEY, CODE_SHEET_ENV_KEY, INDENT_ENV_KEY):
        monkeypatch.delenv(key, raising=False)


def test_load_layout_defaults_without_file(tmp_path):
    assert load_layout(None) == DEFAULT_LAYOUT
    assert load_layout(tmp_path / "missing.yaml") == DEFAULT_LAYOUT


def test_load_layout_accepts_letters_and_layout_section(tmp_path):
    """Excel letters and a nested `layout:` section are both accepted."""

    path = Path(tmp_path) / "layout.yaml"
    path.write_text(
        "layout:\n"
        "  hierarchy_first: C\n"
        "  hierarchy_last: f\n"
        "  leaf_first: 7\n"
        "  multi_select_column: F\n"
        "  spec_sheet: Sheet1\n",
        encoding="utf-8",
    )

    layout = load_layout(path)

    assert (layout.hierarchy_first, layout.hierarchy_last) == (2, 5)
    assert layout.leaf_first == 7
    assert layout.multi_select_column == 5
    assert layout.spec_sheet == "Sheet1"
    assert layout.code_sheet == DEFAULT_LAYOUT.code_sheet
    assert layout.classification_column == 0


def test_layout_rejects_bad_values():
    with pytest.raises(ConfigError):
        layout_from_mapping({"hierarchy_columns": [2, 3]})
    with pytest.raises(ConfigError):
        layout_from_mapping({"leaf_first": -1})
    with pytest.raises(ConfigError):
        layout_from_mapping({"leaf_first": True})
    with pytest.raises(ConfigError):
        layout_from_mapping({"series_column": "B2"})
    with pytest.raises(ConfigError):
        layout_from_mapping({"hierarchy_first": 6, "hierarchy_last": 3})


def test_load_layout_rejects_invalid_yaml(tmp_path):
    broken = Path(tmp_path) / "broken.yaml"
    broken.write_text("layout: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_layout(broken)

    listing = Path(tmp_path) / "list.yaml"
    listing.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_layout(listing)


def test_load_settings_reads_environment(tmp_path, monkeypatch):
    path = Path(tmp_path) / "layout.yaml"
    path.write_text("hierarchy_last: 5\nspec_sheet: FromFile\n", encoding="utf-8")
    monkeypatch.setenv(LAYOUT_ENV_KEY, str(path))
    monkeypatch.setenv(CODE_SHEET_ENV_KEY, "Codes")
    monkeypatch.setenv(INDENT_ENV_KEY, "4")

    settings = load_settings()

    assert settings.layout_path == path
    assert settings.layout.hierarchy_last == 5
    assert settings.layout.spec_sheet == "FromFile"
    assert settings.layout.code_sheet == "Codes"
    assert settings.json_indent == 4


def test_environment_sheet_overrides_file_and_bad_indent_falls_back(tmp_path, monkeypatch):
    """Environment sheet names beat the file; an unparsable indent keeps the default."""

    path = Path(tmp_path) / "layout.yaml"
    path.write_text("spec_sheet: FromFile\n", encoding="utf-8")
    monkeypatch.setenv(SHEET_ENV_KEY, "FromEnv")
    monkeypatch.setenv(INDENT_ENV_KEY, "wide")

    settings = load_settings(path)

    assert settings.layout.spec_sheet == "FromEnv"
    assert settings.json_indent == 2
