import pytest

from quantile_core import (
    QuantileRecord,
    SummaryStatistic,
    detect_columns_from_headers,
    summarize_quantiles,
    summarize_values,
)


def test_p50_statistics_for_two_rows(forecast_result):
    stat = forecast_result.statistics["p50"]
    assert stat == SummaryStatistic(min=10.0, max=11.0, average=10.5, count=2)


def test_absent_values_do_not_count():
    det = detect_columns_from_headers(["Date", "P10", "P50", "P90"])
    records = [
        QuantileRecord("d1", 1.0, 2.0, None),
        QuantileRecord("d2", 3.0, 4.0, 9.0),
    ]
    stats = summarize_quantiles(records, det)
    assert stats["p90"].count == 1
    assert stats["p90"].average == 9.0
    assert stats["p10"] == SummaryStatistic(1.0, 3.0, 2.0, 2)


def test_role_without_values_is_omitted():
    det = detect_columns_from_headers(["P10", "P50", "P90"])
    records = [QuantileRecord("Row 1", 1.0, 2.0, None)]
    assert set(summarize_quantiles(records, det)) == {"p10", "p50"}


def test_unresolved_role_is_omitted():
    det = detect_columns_from_headers(["P10", "P50"])
    records = [QuantileRecord("Row 1", 1.0, 2.0, None)]
    assert "p90" not in summarize_quantiles(records, det)


def test_summarize_values_empty():
    assert summarize_values([]) is None


@pytest.mark.parametrize(
    "values",
    [
        [0.1, 0.1, 0.1],
        [1e16, 1.0, -1e16, 3.0],
        [-5.0, 2.5, 7.25, 100.0],
        [42.0],
    ],
)
def test_average_between_min_and_max(values):
    stat = summarize_values(values)
    assert stat.min <= stat.average <= stat.max
    assert stat.count == len(values)
