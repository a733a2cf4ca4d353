import polars as pl
import pytest

from spec_cascade.normalize import (
    apply_fill_down,
    build_spec_table,
    classifications,
    code_for,
    filter_by_series,
    normalize_rows,
    parse_name_codes,
    series_names,
    spec_table_from_frame,
)
from spec_cascade.schema import SpecTableError, column_kind, ColumnKind, split_values


HEADERS = ["분류", "종류", "타입", "사이즈", "비고"]


def test_split_values_handles_commas_newlines_and_duplicates():
    assert split_values(" M10,\nM12 , M10,,\n") == ["M10", "M12"]
    assert split_values("X\r\nY") == ["X", "Y"]
    assert split_values("   ") == []
    assert split_values(None) == []


def test_column_kind_reads_sentinels_case_insensitively():
    assert column_kind("E") is ColumnKind.FREE_TEXT
    assert column_kind("c") is ColumnKind.BOOLEAN
    assert column_kind("X") is ColumnKind.EXCLUDED
    assert column_kind("M10") is ColumnKind.NORMAL
    assert column_kind(None) is ColumnKind.NORMAL


def test_blank_cells_inherit_previous_complete_value():
    """Blank cells take the previous row's complete value, chaining through inherited values."""

    table = build_spec_table(
        HEADERS,
        [
            ["볼트류", "육각볼트", "KS", "M8", "첫 비고"],
            ["", "", "ISO", "M10", ""],
            ["", "", "", "M12", "  "],
        ],
    )

    last = table.rows[2]
    assert last.complete["분류"] == "볼트류"
    assert last.complete["타입"] == "ISO"
    # Chain: row 3 inherits row 2's complete value, which itself was inherited.
    assert last.complete["비고"] == "첫 비고"
    # Raw values stay untouched.
    assert last.values["비고"] == "  "
    assert last.values["타입"] == ""


def test_non_blank_values_are_kept_verbatim():
    table = build_spec_table(HEADERS, [["A", "B", " KS ", "M8", "x"]])
    assert table.rows[0].complete["타입"] == " KS "


def test_all_blank_column_yields_empty_strings():
    table = build_spec_table(HEADERS, [["A", "B", "KS", "M8", ""], ["", "", "", "M10", None]])
    assert [row.complete["비고"] for row in table.rows] == ["", ""]


def test_missing_headers_raise():
    with pytest.raises(SpecTableError):
        build_spec_table([], [["a"]])
    with pytest.raises(SpecTableError):
        build_spec_table(["", "  "], [["a", "b"]])


def test_header_only_sheet_yields_no_rows():
    table = build_spec_table(HEADERS, [])
    assert table.rows == ()
    assert table.columns == HEADERS


def test_blank_and_duplicate_headers_are_skipped_but_positions_kept():
    """Blank and repeated headers are never read, but column indices still match the sheet."""

    table, report = normalize_rows(
        ["분류", "", "타입", "타입"],
        [["A", "ignored", "KS", "dup"]],
    )

    assert table.headers == ("분류", "", "타입", "타입")
    assert table.index_of("타입") == 2
    assert table.rows[0].complete == {"분류": "A", "타입": "KS"}
    assert report.skipped_headers == [1, 3]
    assert table.complete_values(3) == [""]


def test_ragged_rows_are_padded():
    """Short rows are padded with blanks and extra trailing cells are dropped."""

    table, report = normalize_rows(HEADERS, [["A", "B", "KS"], ["", "", "", "M10", "n", "extra"]])

    assert table.rows[0].complete["사이즈"] == ""
    assert table.rows[1].complete["타입"] == "KS"
    assert report.raw_row_count == 2
    assert report.filled_cells["분류"] == 1


def test_apply_fill_down_handles_empty_strings():
    df = pl.DataFrame({"A": ["", "", "x", ""], "B": ["1", " ", "2", ""]})
    filled = apply_fill_down(df, ["A", "B", "missing"])
    assert filled.to_dict(as_series=False) == {"A": ["", "", "x", "x"], "B": ["1", "1", "2", "2"]}


def test_spec_table_from_frame_coerces_cells_to_text():
    """Non-text and null cells from a polars frame become strings before fill-down."""

    df = pl.DataFrame({"타입": ["KS", None, "ISO"], "길이": [10, None, 20]})
    table = spec_table_from_frame(df)

    assert [row.complete["타입"] for row in table.rows] == ["KS", "KS", "ISO"]
    assert [row.complete["길이"] for row in table.rows] == ["10", "10", "20"]


def test_series_and_classification_listing():
    table = build_spec_table(
        HEADERS,
        [
            ["볼트류", "육각볼트", "KS", "M8", ""],
            ["", "", "ISO", "M10", ""],
            ["볼트류", "기초볼트", "KS", "M12", ""],
            ["너트류", "육각너트", "KS", "M8", ""],
        ],
    )

    assert classifications(table) == ["너트류", "볼트류"]
    assert series_names(table, "볼트류") == ["기초볼트", "육각볼트"]
    assert series_names(table) == ["기초볼트", "육각너트", "육각볼트"]
    assert series_names(table, "없는분류") == []

    filtered = filter_by_series(table, "육각볼트")
    assert [row.complete["사이즈"] for row in filtered.rows] == ["M8", "M10"]
    assert filter_by_series(table, "없음").rows == ()


def test_parse_name_codes_skips_header_and_incomplete_rows():
    """Rows missing a code or a name are ignored; a repeated name keeps its last code."""

    rows = [
        ["Name_Code", "NAME", "ENAME"],
        ["HB01", "육각볼트", "Hex Bolt"],
        ["", "무코드", "No code"],
        ["HN01", "육각너트"],
        ["HB02", "육각볼트", "Hex Bolt v2"],
    ]
    lookup = parse_name_codes(rows)

    assert set(lookup) == {"육각볼트", "육각너트"}
    assert lookup["육각볼트"].code == "HB02"
    assert lookup["육각너트"].english_name == ""
    assert code_for(lookup, "육각너트") == "HN01"
    assert code_for(lookup, "없음") == ""
    assert code_for(None, "육각볼트") == ""


def test_report_counts_only_cells_that_received_a_value():
    """Leading blanks and all-blank columns stay "" and are not counted as filled."""

    _, report = normalize_rows(
        ["타입", "비고", "사이즈"],
        [["KS", "", ""], ["", "", "M8"], ["ISO", "", ""], ["", "", ""]],
    )

    assert report.filled_cells == {"타입": 2, "비고": 0, "사이즈": 2}


def test_rows_are_read_only_after_normalization():
    """Tree builds read the rows again, so callers must not be able to change them."""

    table = build_spec_table(HEADERS, [["A", "B", "KS", "M8", ""]])
    row = table.rows[0]

    with pytest.raises(TypeError):
        row.complete["타입"] = "ISO"
    with pytest.raises(TypeError):
        row.values["타입"] = "ISO"
    assert row.get("타입") == "KS"
