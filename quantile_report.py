# quantile_report.py
# Exports for Quantile Canvas:
# Plotly figure for the page, SVG chart export with injected title (matplotlib),
# PDF report (fpdf2) and the anomaly workbook (pandas + openpyxl).
# Renders compact line plots in the PDF; falls back to text previews if plotting fails.

from __future__ import annotations
import datetime as dt
import io
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import plotly.graph_objects as go  # noqa: E402
from fpdf import FPDF  # noqa: E402

from quantile_core import (  # noqa: E402
    Anomaly,
    ColumnDetectionResult,
    PipelineResult,
    QuantileRecord,
    chart_dimensions,
    chart_figsize,
    records_to_frame,
    summarize_anomalies,
)
from quantile_roles import ROLE_COLORS, ROLES_BY_NAME  # noqa: E402
import quantile_settings as settings  # noqa: E402

logger = logging.getLogger(__name__)


# --------------------- Small helpers ---------------------
def _latin1(s: str) -> str:
    """fpdf core fonts are latin-1; replace unsupported chars gracefully."""
    if not isinstance(s, str):
        return s
    # Map common Unicode punctuation to ASCII so we avoid "?" in the PDF
    replacements = {
        "—": "-",    # em dash
        "–": "-",    # en dash
        "−": "-",    # minus sign
        "…": "...",  # ellipsis
        "‘": "'",    # left single quote
        "’": "'",    # right single quote
        "“": '"',    # left double quote
        "”": '"',    # right double quote
        "→": "->",   # right arrow
        "σ": " sigma",
    }
    for k, v in replacements.items():
        s = s.replace(k, v)
    return s.encode("latin-1", "replace").decode("latin-1")


def _fmt_num(v: Any) -> str:
    if v is None:
        return "N/A"
    if isinstance(v, bool):
        return str(v)
    if isinstance(v, int):
        return str(v)
    if isinstance(v, float):
        if abs(v) >= 1e4 or (0 < abs(v) < 1e-3):
            return f"{v:.6f}"
        return f"{v:.4f}"
    return str(v)


def _fmt_2(v: Optional[float]) -> str:
    return "N/A" if v is None else f"{v:.2f}"


def _wrap(pdf: FPDF, text: str, w: float, line_h: float = 5.0) -> None:
    """Wrapper around multi_cell that always starts at the left margin."""
    if not text:
        return
    pdf.set_x(pdf.l_margin)
    pdf.multi_cell(w, line_h, _latin1(text))


def _kv(pdf: FPDF, title: str, value: str, w: float) -> None:
    """Key/value pair, constrained to total width w, starting at left margin."""
    pdf.set_x(pdf.l_margin)
    pdf.set_font("Helvetica", "B", 11)
    pdf.cell(w * 0.3, 6, _latin1(title))
    pdf.set_font("Helvetica", "", 11)
    pdf.multi_cell(w * 0.7, 6, _latin1(value))


def _section_title(pdf: FPDF, title: str, w: float) -> None:
    pdf.set_x(pdf.l_margin)
    pdf.set_font("Helvetica", "B", 13)
    pdf.cell(w, 7, _latin1(title))
    pdf.ln(8)


def _small_gap(pdf: FPDF) -> None:
    pdf.ln(2)


def _med_gap(pdf: FPDF) -> None:
    pdf.ln(4)


def _ensure_space(pdf: FPDF, needed_mm: float) -> None:
    """Start a new page when less than `needed_mm` of vertical space is left."""
    if pdf.get_y() + needed_mm > (pdf.h - pdf.b_margin):
        pdf.add_page()


def _as_rows(name: str, seq: Iterable[Optional[float]], max_rows: int = 120) -> List[str]:
    vals = list(seq)
    n = len(vals)
    if n == 0:
        return [f"{name}: (empty)"]
    rows = [f"{name} (first {min(n, max_rows)} of {n})"]
    chunk = 10
    for i in range(0, min(n, max_rows), chunk):
        part = ", ".join(_fmt_num(vals[j]) for j in range(i, min(i + chunk, min(n, max_rows))))
        rows.append(part)
    if n > max_rows:
        rows.append("... (truncated)")
    return rows


# --------------------- Charts ---------------------
def build_quantile_figure(
    records: Sequence[QuantileRecord],
    detection: ColumnDetectionResult,
    *,
    fixed_width: bool = False,
) -> go.Figure:
    """Interactive line chart, one trace per resolved quantile; absent values leave gaps."""
    df = records_to_frame(records)
    dims = chart_dimensions(len(records))
    fig = go.Figure()
    for role in detection.quantile_columns:
        fig.add_trace(
            go.Scatter(
                x=df["date"],
                y=df[role],
                mode="lines+markers",
                name=ROLES_BY_NAME[role].label,
                line={"width": 1, "color": ROLE_COLORS.get(role)},
                marker={"size": 6},
                connectgaps=False,
            )
        )
    fig.update_layout(
        title=settings.CHART_TITLE,
        xaxis_title=detection.date_col or "Row",
        yaxis_title="Value",
        height=int(max(360, dims.height)),
        legend={"orientation": "h"},
        margin={"l": 40, "r": 20, "t": 60, "b": 80},
    )
    if fixed_width:
        fig.update_layout(width=int(dims.width))
    return fig


def _draw_quantiles(ax, records: Sequence[QuantileRecord], detection: ColumnDetectionResult) -> None:
    df = records_to_frame(records)
    x = np.arange(len(df))
    for role in detection.quantile_columns:
        ax.plot(
            x,
            df[role].to_numpy(dtype=float),
            label=ROLES_BY_NAME[role].label,
            color=ROLE_COLORS.get(role),
            linewidth=1,
            marker="o",
            markersize=3,
        )
    if len(df):
        step = max(1, len(df) // 10)
        ticks = x[::step]
        ax.set_xticks(ticks)
        ax.set_xticklabels([df["date"].iloc[i] for i in ticks], rotation=45, ha="right", fontsize=8)
    ax.set_xlabel(detection.date_col or "Row")
    ax.set_ylabel("Value")
    ax.grid(True, alpha=0.3)
    if detection.found_quantiles > 1:
        ax.legend(loc="best", fontsize=8)


def export_svg(
    records: Sequence[QuantileRecord],
    detection: ColumnDetectionResult,
    title: str = settings.CHART_TITLE,
    subtitle: Optional[str] = None,
) -> bytes:
    """
    SVG bytes of the quantile chart.

    Figure size follows chart_figsize(len(records)), so dense series get a
    wider canvas. The title is drawn above the plot; the subtitle, if any,
    sits directly under it.
    """
    # text stays as <text> nodes rather than glyph paths
    with plt.rc_context({"svg.fonttype": "none"}):
        fig = plt.figure(figsize=chart_figsize(len(records)))
        try:
            ax = fig.add_subplot(111)
            _draw_quantiles(ax, records, detection)
            fig.suptitle(title, fontsize=16, fontweight="bold")
            if subtitle:
                ax.set_title(subtitle, fontsize=10)
            fig.tight_layout()
            buf = io.BytesIO()
            fig.savefig(buf, format="svg")
            return buf.getvalue()
        finally:
            plt.close(fig)


def svg_filename(today: Optional[dt.date] = None) -> str:
    day = today or dt.date.today()
    return f"{settings.SVG_PREFIX}-{day.isoformat()}.svg"


def _preview_png(
    records: Sequence[QuantileRecord],
    detection: ColumnDetectionResult,
    width_px: int = 1000,
    height_px: int = 400,
) -> Optional[bytes]:
    """Return PNG bytes of a compact quantile plot, or None if plotting fails."""
    try:
        fig = plt.figure(figsize=(width_px / 100, height_px / 100), dpi=100)
        ax = fig.add_subplot(111)
        _draw_quantiles(ax, records, detection)
        ax.set_title("Series preview")
        fig.tight_layout()
        buf = io.BytesIO()
        fig.savefig(buf, format="png", bbox_inches="tight")
        plt.close(fig)
        return buf.getvalue()
    except Exception:
        logger.warning("Series preview could not be rendered; using text rows", exc_info=True)
        plt.close("all")
        return None


# --------------------- PDF report ---------------------
def _headline(result: PipelineResult, anomalies: Sequence[Anomaly]) -> str:
    det = result.detection
    if not det.success:
        return f"Column detection failed: {det.message}. No series was built."
    parts = [f"{det.message}; {len(result.records)} data points ready for visualization."]
    rng = result.date_range
    if rng:
        parts.append(f"Date range {rng[0]} to {rng[1]}.")
    if anomalies:
        counts = summarize_anomalies(anomalies)
        parts.append(
            f"{counts['total_anomalies']} anomalies flagged "
            f"({counts['p50_spikes']} P50 spikes, {counts['p10_consecutive_lows']} P10 consecutive lows)."
        )
    return " ".join(parts)


def build_pdf(
    result: PipelineResult,
    anomalies: Optional[Sequence[Anomaly]] = None,
    *,
    metadata: Optional[Dict[str, Any]] = None,
    title: str = "Quantile Canvas Report",
) -> bytes:
    """
    Returns PDF bytes.
    """
    anomalies = list(anomalies or [])
    metadata = metadata or {}
    det = result.detection

    pdf = FPDF(orientation="P", unit="mm", format="A4")
    pdf.set_auto_page_break(auto=True, margin=12)
    pdf.add_page()

    SAFE_MARGIN = 8.0  # extra buffer so strict viewers do not clip
    W = pdf.w - pdf.l_margin - pdf.r_margin - SAFE_MARGIN

    # Header
    pdf.set_x(pdf.l_margin)
    pdf.set_font("Helvetica", "B", 18)
    pdf.cell(W, 10, _latin1(title), new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 10)
    pdf.cell(W, 6, _latin1(settings.CHART_TITLE), new_x="LMARGIN", new_y="NEXT")
    _med_gap(pdf)

    _section_title(pdf, "Quick summary", W)
    pdf.set_font("Helvetica", "", 11)
    _wrap(pdf, _headline(result, anomalies), W)
    _med_gap(pdf)

    _section_title(pdf, "Column detection", W)
    for role in ("date", "p10", "p50", "p90"):
        _kv(pdf, f"{ROLES_BY_NAME[role].label}:", det.column_for(role) or "not found", W)
    _kv(pdf, "Columns:", ", ".join(det.all_columns) or "(none)", W)
    _med_gap(pdf)

    if result.statistics:
        _section_title(pdf, "Summary statistics", W)
        pdf.set_font("Helvetica", "B", 11)
        colw = W / 5
        pdf.set_x(pdf.l_margin)
        for head in ("Quantile", "Min", "Max", "Average", "Count"):
            pdf.cell(colw, 6, head)
        pdf.ln(6)
        pdf.set_font("Helvetica", "", 11)
        for role, stat in result.statistics.items():
            pdf.set_x(pdf.l_margin)
            pdf.cell(colw, 6, ROLES_BY_NAME[role].label)
            pdf.cell(colw, 6, _fmt_num(stat.min))
            pdf.cell(colw, 6, _fmt_num(stat.max))
            pdf.cell(colw, 6, _fmt_num(stat.average))
            pdf.cell(colw, 6, str(stat.count))
            pdf.ln(6)
        _med_gap(pdf)

    if anomalies:
        _ensure_space(pdf, needed_mm=20)
        _section_title(pdf, "Anomalies", W)
        pdf.set_font("Helvetica", "", 10)
        for a in anomalies:
            _wrap(
                pdf,
                f"[{a.priority}] {a.detected_date}: {a.description} "
                f"(P90 {_fmt_2(a.p90_value)}, week before {_fmt_2(a.week_before_value)})",
                W,
            )
        _med_gap(pdf)

    if metadata:
        _section_title(pdf, "Metadata", W)
        for k, v in metadata.items():
            _kv(pdf, f"{k}:", _fmt_num(v), W)
        _med_gap(pdf)

    if result.records:
        _ensure_space(pdf, needed_mm=20)
        _section_title(pdf, "Series preview", W)
        img_bytes = _preview_png(result.records, det)
        if img_bytes:
            pdf.set_x(pdf.l_margin)
            pdf.image(io.BytesIO(img_bytes), w=W)
            _small_gap(pdf)
        else:
            pdf.set_font("Helvetica", "", 10)
            for role in det.quantile_columns:
                seq = [r.value(role) for r in result.records]
                for line in _as_rows(ROLES_BY_NAME[role].label, seq):
                    _wrap(pdf, line, W)
                _small_gap(pdf)

    return bytes(pdf.output())


# --------------------- Anomaly workbook ---------------------
ANOMALY_COLUMNS = [
    "Item Name",
    "Status",
    "Priority",
    "Date",
    "Owner",
    "Notes",
    "Progress (%)",
    "Anomaly Type",
    "P90 Value",
    "Week Before Value",
]
_COLUMN_WIDTHS = [30, 12, 10, 15, 25, 50, 12, 22, 12, 18]


def _item_name(description: str, limit: int = 100) -> str:
    return description[:limit] + ("..." if len(description) > limit else "")


def anomalies_frame(anomalies: Sequence[Anomaly], owner: str = "unknown") -> pd.DataFrame:
    rows = []
    for a in anomalies:
        rows.append(
            [
                _item_name(a.description),
                "Detected",
                a.priority,
                a.detected_date,
                owner,
                f"P90: {_fmt_2(a.p90_value)} | Week Before: {_fmt_2(a.week_before_value)}",
                a.progress,
                a.anomaly_type.replace("_", " ").title(),
                _fmt_2(a.p90_value),
                _fmt_2(a.week_before_value),
            ]
        )
    return pd.DataFrame(rows, columns=ANOMALY_COLUMNS)


def export_anomalies_xlsx(
    anomalies: Sequence[Anomaly],
    *,
    filename: str = "",
    total_rows: int = 0,
    total_columns: int = 0,
    owner: str = "unknown",
    generated_at: Optional[dt.datetime] = None,
) -> bytes:
    """
    Workbook with a Summary sheet and an All Anomalies sheet, one row per anomaly.
    """
    counts = summarize_anomalies(anomalies)
    stamp = (generated_at or dt.datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    summary = pd.DataFrame(
        [
            ["Anomaly Export Summary", ""],
            ["", ""],
            ["Upload Information", ""],
            ["File Name", filename],
            ["Total Rows", total_rows],
            ["Total Columns", total_columns],
            ["", ""],
            ["Anomaly Statistics", ""],
            ["Total Anomalies", counts["total_anomalies"]],
            ["P50 Median Spikes", counts["p50_spikes"]],
            ["P10 Consecutive Lows", counts["p10_consecutive_lows"]],
            ["", ""],
            ["Export Information", ""],
            ["Generated Date", stamp],
            ["Generated By", owner],
        ]
    )

    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        summary.to_excel(writer, sheet_name="Summary", index=False, header=False)
        anomalies_frame(anomalies, owner=owner).to_excel(writer, sheet_name="All Anomalies", index=False)
        sheet = writer.sheets["All Anomalies"]
        for i, width in enumerate(_COLUMN_WIDTHS):
            sheet.column_dimensions[chr(ord("A") + i)].width = width
    return buf.getvalue()


__all__ = [
    "build_quantile_figure",
    "export_svg",
    "svg_filename",
    "build_pdf",
    "anomalies_frame",
    "export_anomalies_xlsx",
    "ANOMALY_COLUMNS",
]
