# quantile_settings.py
# Runtime knobs for Quantile Canvas: upload ceiling, chart sizing constants, logging.
# Values can be overridden through environment variables where noted.

from __future__ import annotations
import logging
import os
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# ------------------------------
# Upload limits
# ------------------------------
ALLOWED_EXTENSIONS = (".csv",)
MAX_UPLOAD_MB: float = _env_float("QUANTILE_CANVAS_MAX_UPLOAD_MB", 50.0)
MAX_UPLOAD_BYTES: int = int(MAX_UPLOAD_MB * 1024 * 1024)

# ------------------------------
# Chart sizing
# width = clamp(0.40 * n, 18, 300) inches, height fixed at 6 inches
# ------------------------------
WIDTH_PER_RECORD = 0.40
WIDTH_FLOOR = 18.0
WIDTH_CEILING = 300.0
BASE_HEIGHT = 6.0
# inch -> pixel approximations used by the page and the exports
WIDTH_SCALE = 20
HEIGHT_SCALE = 60

# ------------------------------
# Anomaly detection defaults
# ------------------------------
SPIKE_SIGMA = 2.0
LOW_SIGMA = 1.5
WEEK_LAG = 7

# ------------------------------
# Export labels
# ------------------------------
CHART_TITLE = "P10 / P50 / P90 (All rows from CSV)"
SVG_PREFIX = "sagemaker-quantiles"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once; level falls back to QUANTILE_CANVAS_LOG_LEVEL."""
    name = (level or os.getenv("QUANTILE_CANVAS_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)
