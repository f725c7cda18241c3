import pytest

from quantile_core import (
    detect_columns_from_headers,
    detect_percentile_columns,
    detect_quantile_columns,
    find_column,
    normalize_name,
    normalized_index,
    parse_csv_text,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("P90", "p90"),
        ("p_90", "p90"),
        ("P-90", "p90"),
        ("P 90", "p90"),
        ("  Time Stamp ", "timestamp"),
        ("P-90 Value", "p90value"),
        ("Médian", "mdian"),
    ],
)
def test_normalize_name(raw, expected):
    assert normalize_name(raw) == expected


def test_normalized_index_maps_back_to_original_header():
    index = normalized_index(["Date", "P-10", "p_50"])
    assert index == {"date": "Date", "p10": "P-10", "p50": "p_50"}


def test_find_column_uses_candidate_order():
    index = normalized_index(["time", "Date"])
    assert find_column(index, ["date", "ds", "timestamp", "time"]) == "Date"
    assert find_column(index, ["ds"]) is None


def test_full_detection(forecast_rows):
    det = detect_quantile_columns(forecast_rows)
    assert det.success is True
    assert det.date_col == "Date"
    assert (det.p10_col, det.p50_col, det.p90_col) == ("P10", "P50", "P90")
    assert det.all_columns == ["Date", "P10", "P50", "P90"]
    assert det.message == "Found 3 quantile columns"


@pytest.mark.parametrize("p90_header", ["P90", "p_90", "P-90", "P 90"])
def test_detection_is_insensitive_to_header_spelling(p90_header):
    det = detect_columns_from_headers(["ds", "q10", p90_header])
    assert det.success
    assert det.date_col == "ds"
    assert det.p10_col == "q10"
    assert det.p90_col == p90_header
    assert det.p50_col is None


def test_alternative_candidates():
    det = detect_columns_from_headers(["timestamp", "10", "Median", "90"])
    assert (det.date_col, det.p10_col, det.p50_col, det.p90_col) == ("timestamp", "10", "Median", "90")


def test_two_quantiles_are_enough_and_date_is_optional():
    det = detect_columns_from_headers(["P50", "P90"])
    assert det.success
    assert det.date_col is None
    assert det.message == "Found 2 quantile columns"


def test_single_quantile_fails():
    det = detect_columns_from_headers(["Date", "P50", "other"])
    assert not det.success
    assert det.message == "Insufficient quantile columns found (need at least 2 of P10/P50/P90)"


def test_no_quantile_like_headers():
    rows = parse_csv_text("Timestamp,Value\n2024-01-01,3\n")
    det = detect_quantile_columns(rows)
    assert det.success is False
    assert det.date_col == "Timestamp"
    assert "Insufficient quantile columns" in det.message


def test_no_rows_means_no_data():
    det = detect_quantile_columns([])
    assert det.success is False
    assert det.message == "No data provided"
    assert det.all_columns == []


def test_resolved_columns_exist_in_all_columns():
    det = detect_columns_from_headers(["DATE ", "Q-10", "p50", "x", "P90"])
    for col in (det.date_col, det.p10_col, det.p50_col, det.p90_col):
        assert col in det.all_columns


def test_quantile_columns_and_to_dict():
    det = detect_columns_from_headers(["Date", "P10", "P90"])
    assert det.quantile_columns == {"p10": "P10", "p90": "P90"}
    assert det.found_quantiles == 2
    payload = det.to_dict()
    assert payload["p50_col"] is None
    assert payload["success"] is True


def test_percentile_header_scan():
    headers = ["date", "p1", "P10", "p50", "p99", "p0", "p100", "p50x", "q10"]
    assert detect_percentile_columns(headers) == ["p1", "P10", "p50", "p99"]
