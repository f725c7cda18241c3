from quantile_core import chart_dimensions, parse_csv_text, run_pipeline


def test_forecast_example(forecast_result):
    det = forecast_result.detection
    assert det.success
    assert (det.date_col, det.p10_col, det.p50_col, det.p90_col) == ("Date", "P10", "P50", "P90")
    assert [r.date for r in forecast_result.records] == ["2024-01-01", "2024-01-02"]
    p50 = forecast_result.statistics["p50"]
    assert (p50.min, p50.max, p50.average, p50.count) == (10.0, 11.0, 10.5, 2)
    assert forecast_result.dimensions == chart_dimensions(2)
    assert forecast_result.date_range == ("2024-01-01", "2024-01-02")


def test_detection_failure_stops_before_building():
    result = run_pipeline("Timestamp,Value\n2024-01-01,1\n2024-01-02,2\n")
    assert not result.detection.success
    assert "Insufficient quantile columns" in result.detection.message
    assert result.records == []
    assert result.statistics == {}
    assert len(result.rows) == 2


def test_empty_file():
    result = run_pipeline("")
    assert result.detection.message == "No data provided"
    assert result.records == []
    assert result.dimensions.width == 360.0
    assert result.date_range is None


def test_non_numeric_cell_is_excluded_from_statistics():
    text = "Date,P10,P50,P90\n2024-01-01,1,2,abc\n2024-01-02,1,2,5\n"
    result = run_pipeline(text)
    assert result.records[0].p90 is None
    assert result.statistics["p90"].count == 1


def test_all_empty_quantiles_row_is_dropped():
    text = "Date,P10,P50,P90\n2024-01-01,1,2,3\n2024-01-02,,,\n"
    result = run_pipeline(text)
    assert len(result.records) == 1
    assert len(result.rows) == 2


def test_pipeline_is_idempotent(csv_text):
    text = csv_text(
        ["ds", "q10", "median", "q90"],
        [["2024-02-03", 1, 2, 3], ["2024-02-01", "", 4, 5], ["2024-02-02", "x", "", ""]],
    )
    first = run_pipeline(text)
    second = run_pipeline(text)
    assert first.detection == second.detection
    assert first.records == second.records
    assert first.statistics == second.statistics
    assert first.dimensions == second.dimensions


def test_row_count_and_sort_invariants(csv_text):
    rows = [[f"2024-03-{d:02d}", d, d + 1, d + 2] for d in (5, 1, 9, 3, 7)]
    rows.append(["2024-03-02", "", "", ""])
    text = csv_text(["Date", "P10", "P50", "P90"], rows)
    result = run_pipeline(text)
    assert len(result.records) == len(parse_csv_text(text)) - 1
    dates = [r.date for r in result.records]
    assert dates == sorted(dates)


def test_statistics_invariants(csv_text):
    rows = [[f"Row{i}", i * 1.5, "" if i % 3 else i, -i] for i in range(12)]
    result = run_pipeline(csv_text(["time", "p10", "p50", "p90"], rows))
    for role, stat in result.statistics.items():
        present = [r.value(role) for r in result.records if r.value(role) is not None]
        assert stat.count == len(present)
        assert stat.min <= stat.average <= stat.max
