# app_streamlit.py
# Quantile Canvas - Streamlit page for forecast quantile CSVs:
# CSV upload • Column detection diagnostics • Quantile chart with auto sizing
# Summary statistics • Anomaly flags • SVG / PDF / XLSX / CSV exports

from __future__ import annotations
import datetime as dt
import json
import logging
from typing import Optional

import pandas as pd
import streamlit as st

from quantile_core import (
    PipelineResult,
    UploadRejectedError,
    detect_anomalies,
    detect_percentile_columns,
    read_upload_text,
    records_to_frame,
    run_pipeline,
    summarize_anomalies,
    validate_upload,
)
from quantile_report import (
    anomalies_frame,
    build_pdf,
    build_quantile_figure,
    export_anomalies_xlsx,
    export_svg,
    svg_filename,
)
from quantile_roles import ROLES, ROLES_BY_NAME
import quantile_settings as settings

settings.configure_logging()
logger = logging.getLogger("quantile_canvas.app")

# ---------------- Translation helpers ----------------
# Persist language choice across reruns so top-of-page text also respects it
language = st.session_state.get("language_choice", "English")


def tr(en: str, es: str) -> str:
    """Simple inline translator for English / Spanish UI text."""
    return es if language == "Español" else en


@st.cache_data(show_spinner=False)
def analyze_text(text: str) -> PipelineResult:
    return run_pipeline(text)


def example_csv() -> bytes:
    dates = pd.date_range("2024-01-01", periods=21, freq="D")
    p50 = [100 + (i % 5) for i in range(21)]
    p50[14] = 140
    df = pd.DataFrame(
        {
            "Date": dates.strftime("%Y-%m-%d"),
            "P10": [v - 10 for v in p50],
            "P50": p50,
            "P90": [v + 10 for v in p50],
        }
    )
    return df.to_csv(index=False).encode("utf-8")


# ---------------- Page config ----------------
st.set_page_config(page_title="Quantile Canvas", page_icon="📈", layout="wide")
st.title(tr("Quantile Canvas", "Lienzo de cuantiles"))

with st.expander(tr("What does this page read?", "¿Qué lee esta página?")):
    st.write(
        tr(
            "Upload a forecast export with P10/P50/P90 quantile columns (for example a SageMaker Canvas "
            "CSV). Column names are matched ignoring case, spaces and punctuation, so 'P-90 Value' and "
            "'p90value' are the same column. At least two of the three quantiles are required.",
            "Sube una exportación de pronóstico con columnas de cuantiles P10/P50/P90 (por ejemplo un CSV "
            "de SageMaker Canvas). Los nombres se comparan sin mayúsculas, espacios ni puntuación. Se "
            "necesitan al menos dos de los tres cuantiles.",
        )
    )

# ---------------- Sidebar (inputs) ----------------
with st.sidebar:
    language = st.selectbox("Language / Idioma", ["English", "Español"], index=0)
    st.session_state["language_choice"] = language

    st.header(tr("Inputs", "Entradas"))
    upload = st.file_uploader(
        tr(
            f"Quantile CSV (max {settings.MAX_UPLOAD_MB:g}MB)",
            f"CSV de cuantiles (máx. {settings.MAX_UPLOAD_MB:g}MB)",
        ),
        type=["csv"],
        key="quantile_csv",
    )

    st.subheader(tr("Anomaly thresholds", "Umbrales de anomalías"))
    spike_sigma = st.number_input(
        tr("P50 spike (σ above mean)", "Pico P50 (σ sobre la media)"),
        min_value=0.5,
        max_value=6.0,
        value=float(settings.SPIKE_SIGMA),
        step=0.1,
    )
    low_sigma = st.number_input(
        tr("P10 low (σ below mean)", "Bajo P10 (σ bajo la media)"),
        min_value=0.5,
        max_value=6.0,
        value=float(settings.LOW_SIGMA),
        step=0.1,
    )
    owner = st.text_input(tr("Export owner", "Responsable de la exportación"), value="unknown")
    subtitle = st.text_input(tr("SVG subtitle (optional)", "Subtítulo SVG (opcional)"), value="")

    st.download_button(
        tr("Save example.csv", "Guardar example.csv"),
        example_csv(),
        file_name="example.csv",
        mime="text/csv",
    )

# ---------------- Core worker ----------------
def load_upload(file) -> Optional[str]:
    if file is None:
        return None
    data = file.getvalue()
    try:
        validate_upload(file.name, len(data))
    except UploadRejectedError as e:
        st.error(str(e))
        logger.info("Rejected upload %s: %s", file.name, e)
        return None
    return read_upload_text(data)


text = load_upload(upload)
result: Optional[PipelineResult] = analyze_text(text) if text is not None else None
anomalies = (
    detect_anomalies(result.records, spike_sigma=spike_sigma, low_sigma=low_sigma)
    if result is not None and result.records
    else []
)

# ---------------- Main UI ----------------
tab1, tab2, tab3, tab4, tab5 = st.tabs(
    [
        tr("Upload & detection", "Carga y detección"),
        tr("Visualization", "Visualización"),
        tr("Statistics", "Estadísticas"),
        tr("Anomalies", "Anomalías"),
        tr("Exports", "Exportaciones"),
    ]
)

# ---------- Tab 1 ----------
with tab1:
    if result is None:
        st.info(tr("Upload a CSV file in the sidebar to begin.", "Sube un archivo CSV en la barra lateral para comenzar."))
    else:
        det = result.detection
        st.caption(f"{upload.name} • {len(upload.getvalue()) / 1024:.1f} KB • {len(result.rows)} rows")
        if det.success:
            st.success(det.message)
        else:
            st.error(det.message)

        cols = st.columns(len(ROLES))
        for col, role in zip(cols, ROLES):
            col.metric(role.label, det.column_for(role.name) or tr("not found", "no encontrada"))

        percentile_cols = detect_percentile_columns(det.all_columns)
        if percentile_cols:
            st.write(tr("Percentile columns:", "Columnas de percentiles:"), ", ".join(percentile_cols))

        st.subheader(tr("All columns", "Todas las columnas"))
        st.code(json.dumps(det.to_dict(), indent=2))

        if result.rows:
            st.subheader(tr("Preview", "Vista previa"))
            st.dataframe(pd.DataFrame(result.rows[:10]), use_container_width=True)
        if det.success:
            st.success(
                tr(
                    f"Data processed successfully! {len(result.records)} data points ready for visualization.",
                    f"¡Datos procesados! {len(result.records)} puntos listos para visualizar.",
                )
            )

# ---------- Tab 2 ----------
with tab2:
    if result is None or not result.detection.success:
        st.info(
            tr(
                "No visualization available. Please upload a CSV file with quantile data first.",
                "No hay visualización. Sube primero un CSV con datos de cuantiles.",
            )
        )
    else:
        det = result.detection
        fig = build_quantile_figure(result.records, det)
        st.plotly_chart(fig, use_container_width=True)

        st.subheader(tr("Chart statistics", "Estadísticas del gráfico"))
        c1, c2, c3, c4 = st.columns(4)
        c1.metric(tr("Data points", "Puntos"), len(result.records))
        c2.metric(tr("Chart width", "Ancho del gráfico"), f"{result.dimensions.width:g}px")
        rng = result.date_range
        c3.metric(tr("Date range", "Rango de fechas"), f"{rng[0]} to {rng[1]}" if rng else "N/A")
        c4.metric(tr("Quantiles", "Cuantiles"), f"{det.found_quantiles}/3")

# ---------- Tab 3 ----------
with tab3:
    if result is None or not result.statistics:
        st.info(tr("Statistics appear once a series is built.", "Las estadísticas aparecen cuando hay una serie."))
    else:
        stats_rows = [
            {
                "quantile": ROLES_BY_NAME[role].label,
                "min": s.min,
                "max": s.max,
                "average": s.average,
                "count": s.count,
            }
            for role, s in result.statistics.items()
        ]
        st.dataframe(pd.DataFrame(stats_rows), use_container_width=True)

# ---------- Tab 4 ----------
with tab4:
    if result is None or not result.records:
        st.info(tr("Anomalies are computed on a built series.", "Las anomalías se calculan sobre una serie."))
    elif not anomalies:
        st.success(tr("No anomalies detected.", "No se detectaron anomalías."))
    else:
        counts = summarize_anomalies(anomalies)
        a1, a2, a3 = st.columns(3)
        a1.metric(tr("Total", "Total"), counts["total_anomalies"])
        a2.metric(tr("P50 spikes", "Picos P50"), counts["p50_spikes"])
        a3.metric(tr("P10 consecutive lows", "Bajos consecutivos P10"), counts["p10_consecutive_lows"])
        st.dataframe(anomalies_frame(anomalies, owner=owner), use_container_width=True)

# ---------- Tab 5 ----------
with tab5:
    if result is None or not result.detection.success:
        st.info(tr("Exports need a successful column detection.", "Las exportaciones requieren una detección correcta."))
    else:
        det = result.detection
        st.download_button(
            tr("Download chart SVG", "Descargar gráfico SVG"),
            export_svg(result.records, det, subtitle=subtitle or None),
            file_name=svg_filename(),
            mime="image/svg+xml",
        )
        st.download_button(
            tr("Download cleaned series CSV", "Descargar serie limpia CSV"),
            records_to_frame(result.records).to_csv(index=False).encode("utf-8"),
            file_name="quantile_series.csv",
            mime="text/csv",
        )
        st.download_button(
            tr("Download detection JSON", "Descargar JSON de detección"),
            json.dumps(det.to_dict(), indent=2).encode("utf-8"),
            file_name="detection.json",
            mime="application/json",
        )
        metadata = {
            "file": upload.name,
            "rows": len(result.rows),
            "columns": len(det.all_columns),
            "generated": dt.datetime.now().strftime("%Y-%m-%d %H:%M"),
        }
        st.download_button(
            tr("Download PDF report", "Descargar reporte PDF"),
            build_pdf(result, anomalies, metadata=metadata),
            file_name="quantile_report.pdf",
            mime="application/pdf",
        )
        st.download_button(
            tr("Download anomalies XLSX", "Descargar anomalías XLSX"),
            export_anomalies_xlsx(
                anomalies,
                filename=upload.name,
                total_rows=len(result.rows),
                total_columns=len(det.all_columns),
                owner=owner,
            ),
            file_name="anomaly-export.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
