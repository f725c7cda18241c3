# quantile_core.py
# Core utilities for Quantile Canvas:
# upload validation and text loading
# simplified CSV parsing into row records
# column name normalization + quantile role detection
# quantile series building (numeric coercion, empty row drop, date sort)
# per-quantile summary statistics and chart sizing
# time-series anomaly flags (P50 spikes, P10 consecutive lows)

from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from quantile_roles import (
    DATE_ROLE,
    MIN_QUANTILES,
    QUANTILE_ROLES,
    ROLES,
)
import quantile_settings as settings

logger = logging.getLogger(__name__)

RowRecord = Dict[str, str]

# ------------------------------
# Data model
# ------------------------------
@dataclass(frozen=True)
class ColumnDetectionResult:
    date_col: Optional[str]
    p10_col: Optional[str]
    p50_col: Optional[str]
    p90_col: Optional[str]
    all_columns: List[str]
    success: bool
    message: str

    def column_for(self, role: str) -> Optional[str]:
        return getattr(self, f"{role}_col", None)

    @property
    def quantile_columns(self) -> Dict[str, str]:
        """Resolved quantile roles only, in p10/p50/p90 order."""
        out: Dict[str, str] = {}
        for role in QUANTILE_ROLES:
            col = self.column_for(role)
            if col:
                out[role] = col
        return out

    @property
    def found_quantiles(self) -> int:
        return len(self.quantile_columns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date_col": self.date_col,
            "p10_col": self.p10_col,
            "p50_col": self.p50_col,
            "p90_col": self.p90_col,
            "all_columns": list(self.all_columns),
            "success": self.success,
            "message": self.message,
        }


@dataclass(frozen=True)
class QuantileRecord:
    date: str
    p10: Optional[float] = None
    p50: Optional[float] = None
    p90: Optional[float] = None

    def value(self, role: str) -> Optional[float]:
        return getattr(self, role)

    @property
    def is_empty(self) -> bool:
        return all(self.value(r) is None for r in QUANTILE_ROLES)

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "p10": self.p10, "p50": self.p50, "p90": self.p90}


@dataclass(frozen=True)
class SummaryStatistic:
    min: float
    max: float
    average: float
    count: int


@dataclass(frozen=True)
class ChartDimensions:
    width: float
    height: float
    figsize: Tuple[float, float]


@dataclass(frozen=True)
class Anomaly:
    anomaly_type: str
    detected_date: str
    value: float
    z_score: float
    p90_value: Optional[float]
    week_before_value: Optional[float]
    description: str

    @property
    def priority(self) -> str:
        return ANOMALY_PRIORITY.get(self.anomaly_type, "Low")

    @property
    def progress(self) -> int:
        return ANOMALY_PROGRESS.get(self.anomaly_type, 10)


@dataclass
class PipelineResult:
    rows: List[RowRecord]
    detection: ColumnDetectionResult
    records: List[QuantileRecord] = field(default_factory=list)
    statistics: Dict[str, SummaryStatistic] = field(default_factory=dict)
    dimensions: Optional[ChartDimensions] = None

    @property
    def date_range(self) -> Optional[Tuple[str, str]]:
        if not self.records or not self.detection.date_col:
            return None
        return self.records[0].date, self.records[-1].date


SPIKE = "p50_median_spike"
CONSECUTIVE_LOW = "p10_consecutive_low"

ANOMALY_PRIORITY: Dict[str, str] = {SPIKE: "High", CONSECUTIVE_LOW: "Medium"}
ANOMALY_PROGRESS: Dict[str, int] = {SPIKE: 25, CONSECUTIVE_LOW: 50}

# ------------------------------
# Upload validation and IO
# ------------------------------
class UploadRejectedError(ValueError):
    """Raised before parsing when an upload has the wrong type or is too large."""


def validate_upload(filename: str, size_bytes: int, max_bytes: Optional[int] = None) -> None:
    limit = settings.MAX_UPLOAD_BYTES if max_bytes is None else int(max_bytes)
    name = str(filename or "").lower()
    if not name.endswith(settings.ALLOWED_EXTENSIONS):
        raise UploadRejectedError("Please select a CSV file.")
    if size_bytes > limit:
        mb = limit / (1024 * 1024)
        raise UploadRejectedError(f"Please select a file smaller than {mb:g}MB.")


def read_upload_text(data: bytes) -> str:
    """Decode uploaded bytes; a UTF-8 BOM is dropped and bad bytes are replaced."""
    return data.decode("utf-8-sig", errors="replace")


def load_csv_text(src) -> str:
    """
    Return the raw text of a CSV upload.

    Accepts:
      - an uploaded file like Streamlit's UploadedFile (anything with .read())
      - a path on disk
    Size and extension are validated first, so oversized or non-CSV input
    never reaches the parser.
    """
    if hasattr(src, "read") and not isinstance(src, (str, bytes)):
        data = src.read()
        name = getattr(src, "name", "upload.csv")
        validate_upload(name, len(data))
        return read_upload_text(data)

    path = str(src)
    with open(path, "rb") as f:
        data = f.read()
    validate_upload(path, len(data))
    return read_upload_text(data)

# ------------------------------
# CSV parsing
# ------------------------------
def _split_fields(line: str) -> List[str]:
    return [v.strip().replace('"', "") for v in line.split(",")]


def parse_csv_text(text: str) -> List[RowRecord]:
    """
    Simplified CSV reader: comma split, quotes stripped, no escaped commas.

    The first non-blank line is the header. Rows whose field count differs
    from the header are dropped without error.
    """
    if not text:
        return []
    lines = [ln for ln in text.split("\n") if ln.strip()]
    if not lines:
        return []

    headers = _split_fields(lines[0])
    rows: List[RowRecord] = []
    dropped = 0
    for line in lines[1:]:
        values = _split_fields(line)
        if len(values) != len(headers):
            dropped += 1
            continue
        rows.append(dict(zip(headers, values)))

    if dropped:
        logger.debug("Dropped %d rows with a field count different from the header (%d)", dropped, len(headers))
    return rows

# ------------------------------
# Column normalization and detection
# ------------------------------
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_PERCENTILE_HEADER = re.compile(r"^p(\d+)$", re.IGNORECASE)


def normalize_name(name: str) -> str:
    return _NON_ALNUM.sub("", str(name).lower())


def normalized_index(columns: Sequence[str]) -> Dict[str, str]:
    """Normalized key -> original header; a later header wins on key collisions."""
    return {normalize_name(c): c for c in columns}


def find_column(index: Dict[str, str], candidates: Sequence[str]) -> Optional[str]:
    for cand in candidates:
        key = normalize_name(cand)
        if key in index:
            return index[key]
    return None


def detect_columns_from_headers(columns: Sequence[str]) -> ColumnDetectionResult:
    """
    Resolve date/p10/p50/p90 roles from a header list.

    Each role takes the first of its candidates present in the normalized
    index. Success needs at least two quantile roles; the date role is
    optional and never affects success.
    """
    cols = list(columns)
    if not cols:
        return ColumnDetectionResult(
            date_col=None,
            p10_col=None,
            p50_col=None,
            p90_col=None,
            all_columns=[],
            success=False,
            message="No data provided",
        )

    index = normalized_index(cols)
    resolved: Dict[str, Optional[str]] = {r.name: find_column(index, r.candidates) for r in ROLES}

    found = [resolved[r] for r in QUANTILE_ROLES if resolved[r]]
    if len(set(found)) < len(found):
        logger.warning("Several quantile roles resolved to the same column: %s", resolved)

    success = len(found) >= MIN_QUANTILES
    if success:
        message = f"Found {len(found)} quantile columns"
    else:
        message = "Insufficient quantile columns found (need at least 2 of P10/P50/P90)"

    logger.info("Column detection: %s (%s)", message, {k: v for k, v in resolved.items() if v})
    return ColumnDetectionResult(
        date_col=resolved[DATE_ROLE],
        p10_col=resolved["p10"],
        p50_col=resolved["p50"],
        p90_col=resolved["p90"],
        all_columns=cols,
        success=success,
        message=message,
    )


def detect_quantile_columns(rows: Sequence[RowRecord]) -> ColumnDetectionResult:
    if not rows:
        return detect_columns_from_headers([])
    return detect_columns_from_headers(list(rows[0].keys()))


def detect_percentile_columns(headers: Iterable[str]) -> List[str]:
    """Headers shaped like p1..p99 (case-insensitive), in header order."""
    out: List[str] = []
    for h in headers:
        m = _PERCENTILE_HEADER.match(str(h).strip())
        if m and 1 <= int(m.group(1)) <= 99:
            out.append(h)
    return out

# ------------------------------
# Numerics and helpers
# ------------------------------
def parse_quantile_value(x) -> Optional[float]:
    """Float or None; blanks, text and non-finite values are absent, never zero."""
    if x is None:
        return None
    s = str(x).strip()
    if not s:
        return None
    try:
        v = float(s)
    except ValueError:
        return None
    if not np.isfinite(v):
        return None
    return v


def parse_date(x) -> Optional[pd.Timestamp]:
    if x is None or not str(x).strip():
        return None
    try:
        ts = pd.to_datetime(str(x).strip(), errors="coerce")
    except Exception:
        return None
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def records_to_frame(records: Sequence[QuantileRecord]) -> pd.DataFrame:
    """Series as a DataFrame (date + one float column per role, NaN where absent)."""
    df = pd.DataFrame([r.to_dict() for r in records], columns=["date", *QUANTILE_ROLES])
    for role in QUANTILE_ROLES:
        df[role] = pd.to_numeric(df[role], errors="coerce").astype(float)
    return df

# ------------------------------
# Series building
# ------------------------------
def _sort_by_date(records: List[QuantileRecord]) -> List[QuantileRecord]:
    stamps = [parse_date(r.date) for r in records]
    if any(ts is None for ts in stamps):
        logger.debug("Date column is not parseable for every record; keeping file order")
        return records
    order = sorted(range(len(records)), key=lambda i: stamps[i])
    return [records[i] for i in order]


def build_quantile_series(
    rows: Sequence[RowRecord],
    detection: ColumnDetectionResult,
) -> List[QuantileRecord]:
    """
    Turn row records into QuantileRecords.

    - date comes from the date column, else "Row {n}" (1-based row index)
    - unresolved roles stay absent
    - rows with every quantile absent are dropped
    - when a date column exists and every date parses, records are sorted
      ascending (stable); otherwise file order is kept as is
    """
    if not detection.success or not rows:
        return []

    cols = detection.quantile_columns
    records: List[QuantileRecord] = []
    for i, row in enumerate(rows):
        date = row.get(detection.date_col, "") if detection.date_col else f"Row {i + 1}"
        values = {role: parse_quantile_value(row.get(col)) for role, col in cols.items()}
        rec = QuantileRecord(date=date, **values)
        if rec.is_empty:
            continue
        records.append(rec)

    if len(records) < len(rows):
        logger.debug("Dropped %d rows without any quantile value", len(rows) - len(records))

    if detection.date_col:
        records = _sort_by_date(records)
    return records

# ------------------------------
# Summaries
# ------------------------------
def role_values(records: Sequence[QuantileRecord], role: str) -> np.ndarray:
    return np.array([r.value(role) for r in records if r.value(role) is not None], dtype=float)


def summarize_values(values: Sequence[float]) -> Optional[SummaryStatistic]:
    a = np.asarray(values, dtype=float)
    a = a[np.isfinite(a)]
    if a.size == 0:
        return None
    lo = float(np.min(a))
    hi = float(np.max(a))
    avg = float(np.sum(a)) / float(a.size)
    # float summation can land a hair outside [min, max] for near-constant series
    avg = float(np.clip(avg, lo, hi))
    return SummaryStatistic(min=lo, max=hi, average=avg, count=int(a.size))


def summarize_quantiles(
    records: Sequence[QuantileRecord],
    detection: ColumnDetectionResult,
) -> Dict[str, SummaryStatistic]:
    out: Dict[str, SummaryStatistic] = {}
    for role in detection.quantile_columns:
        stat = summarize_values(role_values(records, role))
        if stat is not None:
            out[role] = stat
    return out

# ------------------------------
# Chart sizing
# ------------------------------
def chart_figsize(record_count: int) -> Tuple[float, float]:
    w = max(settings.WIDTH_FLOOR, min(settings.WIDTH_CEILING, settings.WIDTH_PER_RECORD * max(0, record_count)))
    return float(w), float(settings.BASE_HEIGHT)


def chart_dimensions(record_count: int) -> ChartDimensions:
    w, h = chart_figsize(record_count)
    return ChartDimensions(
        width=w * settings.WIDTH_SCALE,
        height=h * settings.HEIGHT_SCALE,
        figsize=(w, h),
    )

# ------------------------------
# Anomalies
# ------------------------------
def _mean_std(values: np.ndarray) -> Tuple[float, float]:
    if values.size < 2:
        return float("nan"), 0.0
    return float(np.mean(values)), float(np.std(values))


def _lagged_p90(records: Sequence[QuantileRecord], pos: int, lag: int) -> Optional[float]:
    if pos < lag:
        return None
    return records[pos - lag].p90


def detect_anomalies(
    records: Sequence[QuantileRecord],
    spike_sigma: float = settings.SPIKE_SIGMA,
    low_sigma: float = settings.LOW_SIGMA,
    lag: int = settings.WEEK_LAG,
) -> List[Anomaly]:
    """
    Flag unusual points in a built series.

    p50_median_spike:    P50 above mean + spike_sigma * std
    p10_consecutive_low: P10 below mean - low_sigma * std at this and the
                         previous position
    Std is the population std over present values. Each anomaly carries the
    P90 at its position and the P90 `lag` positions earlier.
    """
    anomalies: List[Anomaly] = []

    p50 = role_values(records, "p50")
    mean50, std50 = _mean_std(p50)
    if std50 > 0:
        for pos, rec in enumerate(records):
            v = rec.p50
            if v is None or v <= mean50 + spike_sigma * std50:
                continue
            z = (v - mean50) / std50
            anomalies.append(
                Anomaly(
                    anomaly_type=SPIKE,
                    detected_date=rec.date,
                    value=v,
                    z_score=z,
                    p90_value=rec.p90,
                    week_before_value=_lagged_p90(records, pos, lag),
                    description=f"P50 median spike detected: {v:.2f} ({z:.1f}σ above mean)",
                )
            )

    p10 = role_values(records, "p10")
    mean10, std10 = _mean_std(p10)
    if std10 > 0:
        low = mean10 - low_sigma * std10
        for pos in range(1, len(records)):
            cur = records[pos].p10
            prev = records[pos - 1].p10
            if cur is None or prev is None:
                continue
            if cur < low and prev < low:
                anomalies.append(
                    Anomaly(
                        anomaly_type=CONSECUTIVE_LOW,
                        detected_date=records[pos].date,
                        value=cur,
                        z_score=(cur - mean10) / std10,
                        p90_value=records[pos].p90,
                        week_before_value=_lagged_p90(records, pos, lag),
                        description=(
                            f"P10 consecutive low detected: {prev:.2f} → {cur:.2f} "
                            "(both below normal range)"
                        ),
                    )
                )

    if anomalies:
        logger.info("Detected %d anomalies in %d records", len(anomalies), len(records))
    return anomalies


def summarize_anomalies(anomalies: Sequence[Anomaly]) -> Dict[str, int]:
    return {
        "total_anomalies": len(anomalies),
        "p50_spikes": sum(1 for a in anomalies if a.anomaly_type == SPIKE),
        "p10_consecutive_lows": sum(1 for a in anomalies if a.anomaly_type == CONSECUTIVE_LOW),
    }

# ------------------------------
# Pipeline
# ------------------------------
def run_pipeline(text: str) -> PipelineResult:
    """
    parse -> detect -> build -> summarize -> size, in one synchronous call.

    A failed detection stops before the series is built; the result still
    carries the detection diagnostics and zero-length chart sizing.
    """
    rows = parse_csv_text(text)
    detection = detect_quantile_columns(rows)
    if not detection.success:
        return PipelineResult(rows=rows, detection=detection, dimensions=chart_dimensions(0))

    records = build_quantile_series(rows, detection)
    return PipelineResult(
        rows=rows,
        detection=detection,
        records=records,
        statistics=summarize_quantiles(records, detection),
        dimensions=chart_dimensions(len(records)),
    )

# ------------------------------
# Explicit export surface
# ------------------------------
__all__ = [
    "RowRecord",
    "ColumnDetectionResult",
    "QuantileRecord",
    "SummaryStatistic",
    "ChartDimensions",
    "Anomaly",
    "PipelineResult",
    "UploadRejectedError",
    "validate_upload",
    "read_upload_text",
    "load_csv_text",
    "parse_csv_text",
    "normalize_name",
    "normalized_index",
    "find_column",
    "detect_columns_from_headers",
    "detect_quantile_columns",
    "detect_percentile_columns",
    "parse_quantile_value",
    "parse_date",
    "records_to_frame",
    "build_quantile_series",
    "role_values",
    "summarize_values",
    "summarize_quantiles",
    "chart_figsize",
    "chart_dimensions",
    "detect_anomalies",
    "summarize_anomalies",
    "run_pipeline",
]
