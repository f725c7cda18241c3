from quantile_core import parse_csv_text


def test_header_and_rows_keep_column_order():
    rows = parse_csv_text("Date,P10,P50\n2024-01-01,1,2\n")
    assert rows == [{"Date": "2024-01-01", "P10": "1", "P50": "2"}]
    assert list(rows[0].keys()) == ["Date", "P10", "P50"]


def test_blank_lines_are_skipped_and_first_non_blank_is_header():
    text = "\n\n  \nDate,P50\n\n2024-01-01,3\n   \n2024-01-02,4\n"
    rows = parse_csv_text(text)
    assert [r["P50"] for r in rows] == ["3", "4"]


def test_quotes_and_surrounding_spaces_are_stripped():
    rows = parse_csv_text('"Date", "P50"\n"2024-01-01" , "7.5"\n')
    assert rows == [{"Date": "2024-01-01", "P50": "7.5"}]


def test_rows_with_wrong_field_count_are_dropped():
    text = "a,b,c\n1,2,3\n1,2\n1,2,3,4\n4,5,6\n"
    rows = parse_csv_text(text)
    assert rows == [{"a": "1", "b": "2", "c": "3"}, {"a": "4", "b": "5", "c": "6"}]


def test_quoted_comma_is_not_supported():
    # the simplified reader splits inside quotes, so the row no longer fits the header
    rows = parse_csv_text('name,p50\n"Smith, J",4\n')
    assert rows == []


def test_crlf_line_endings():
    rows = parse_csv_text("Date,P50\r\n2024-01-01,3\r\n")
    assert rows == [{"Date": "2024-01-01", "P50": "3"}]


def test_empty_input_yields_no_rows():
    assert parse_csv_text("") == []
    assert parse_csv_text("\n \n\t\n") == []


def test_header_only():
    assert parse_csv_text("Date,P10,P50\n") == []
