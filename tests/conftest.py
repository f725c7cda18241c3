import pytest

from quantile_core import parse_csv_text, run_pipeline


FORECAST_CSV = (
    "Date,P10,P50,P90\n"
    "2024-01-01,5,10,15\n"
    "2024-01-02,6,11,16\n"
)


@pytest.fixture
def forecast_text():
    return FORECAST_CSV


@pytest.fixture
def forecast_rows():
    return parse_csv_text(FORECAST_CSV)


@pytest.fixture
def forecast_result():
    return run_pipeline(FORECAST_CSV)


@pytest.fixture
def csv_text():
    def build(header, rows):
        lines = [",".join(header)]
        lines.extend(",".join(str(v) for v in row) for row in rows)
        return "\n".join(lines) + "\n"

    return build
