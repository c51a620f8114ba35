# -*- coding: utf-8 -*-
"""
app_streamlit.py — Meteo Dashboard (sensori temperatura/umidità)
- KPI ultima media + health widget (età dell'ultima media in avg_data)
- Serie a bucket calcolata da raw_data con finestra selezionabile
- Auto-refresh opzionale + cache TTL breve
"""

from datetime import datetime, timedelta, timezone

import pandas as pd
import plotly.express as px
import streamlit as st

import db
import readings
from aggregation import bucket_series
from settings import load_settings

# -------------------- Setup & ENV --------------------
st.set_page_config(page_title="Meteo • Sensori", layout="wide", page_icon="🌡️")
SETTINGS = load_settings()
LOCAL_TZ = "Europe/Rome"


@st.cache_resource
def get_engine():
    eng = db.get_engine(SETTINGS)
    db.ensure_schema(eng)
    return eng


def autorefresh(seconds: int):
    ms = int(seconds * 1000)
    st.components.v1.html(f"<script>setTimeout(()=>window.parent.location.reload(), {ms});</script>", height=0)


# -------------------- Data access --------------------
@st.cache_data(ttl=30)
def load_history(limit: int) -> pd.DataFrame:
    df = pd.DataFrame(readings.fetch_history(get_engine(), limit))
    if df.empty:
        return df
    df["Time"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce", format="ISO8601")
    return df.dropna(subset=["Time"])


@st.cache_data(ttl=30)
def load_buckets(minutes: int, window: int, smooth: int) -> pd.DataFrame:
    end = datetime.now(timezone.utc)
    start = end - timedelta(minutes=minutes)
    raw = readings.fetch_raw_since(get_engine(), readings.to_iso(start - timedelta(seconds=window)))
    df = bucket_series(raw, window, start=start, end=end, smooth=smooth)
    df["Time"] = pd.to_datetime(df["timestamp"], utc=True, format="ISO8601").dt.tz_convert(LOCAL_TZ)
    return df


def _humanize_delta(minutes: int) -> str:
    m = int(minutes)
    if m < 60:
        return f"{m} min"
    h, r = divmod(m, 60)
    return f"{h}h {r}m" if r else f"{h}h"


def health_widget(hist: pd.DataFrame):
    st.markdown(
        """
        <style>
        .pill { display:inline-block; padding:6px 10px; border-radius:999px; font-weight:600; font-size:0.9rem; }
        .ok { background:#16a34a; color:white; }
        .warn { background:#f59e0b; color:black; }
        .crit { background:#ef4444; color:white; }
        .muted { color:#6b7280; font-size:0.9rem; }
        </style>
        """, unsafe_allow_html=True
    )
    if hist.empty:
        st.markdown('<span class="pill crit">HEALTH: sconosciuto</span> <span class="muted">Nessuna media calcolata</span>',
                    unsafe_allow_html=True)
        return
    ts = hist["Time"].max()
    age_min = int((pd.Timestamp.now(tz="UTC") - ts).total_seconds() // 60)
    window_min = max(1, int(SETTINGS.avg_window_seconds // 60))
    css, label = ("ok", "OK") if age_min <= 2 * window_min else (("warn", "RITARDO") if age_min <= 6 * window_min else ("crit", "FUORI SERVIZIO"))
    local = ts.tz_convert(LOCAL_TZ).strftime("%Y-%m-%d %H:%M")
    st.markdown(f'<span class="pill {css}">HEALTH: {label}</span> '
                f'<span class="muted">ultima media: {_humanize_delta(age_min)} fa • {local} {LOCAL_TZ}</span>',
                unsafe_allow_html=True)


# -------------------- Sidebar --------------------
with st.sidebar:
    st.title("Impostazioni")
    theme = st.radio("Tema grafici", ["Chiaro", "Scuro"], horizontal=True)
    template = "plotly_white" if theme == "Chiaro" else "plotly_dark"
    minutes = st.slider("Minuti di osservazioni", 10, 360, int(SETTINGS.historical_minutes), step=5)
    window = st.select_slider("Finestra media (s)", options=[10, 60, 300, 900, 3600],
                              value=int(SETTINGS.avg_window_seconds) if int(SETTINGS.avg_window_seconds) in (10, 60, 300, 900, 3600) else 300)
    smooth = st.slider("Media mobile (bucket)", 1, 12, 1)
    auto_ref = st.checkbox("Auto refresh ogni 60 secondi", value=True)
    if st.button("🔄 Aggiorna dati ora"):
        load_history.clear(); load_buckets.clear()

# -------------------- Header --------------------
st.markdown("## 🌡️ Sensori meteo")
if auto_ref:
    autorefresh(60)

hist = load_history(SETTINGS.history_limit)
health_widget(hist)

if not hist.empty:
    row = hist.iloc[-1]
    c1, c2 = st.columns(2)
    c1.metric("🌡️ Temp media", "—" if pd.isna(row["avg_temperature"]) else f"{row['avg_temperature']:.1f} °C")
    c2.metric("💧 UR media", "—" if pd.isna(row["avg_humidity"]) else f"{row['avg_humidity']:.0f} %")

series = load_buckets(minutes, window, smooth)
if series["samples"].sum() == 0:
    st.warning("Nessuna lettura nell'intervallo selezionato.")
else:
    st.plotly_chart(px.line(series, x="Time", y="avg_temperature", template=template,
                            title="Temperatura (°C)", markers=True), use_container_width=True)
    st.plotly_chart(px.line(series, x="Time", y="avg_humidity", template=template,
                            title="Umidità (%)", markers=True), use_container_width=True)
    st.plotly_chart(px.bar(series, x="Time", y="samples", template=template,
                           title="Letture per bucket"), use_container_width=True)

with st.expander("Ultime medie (avg_data)"):
    st.dataframe(hist.drop(columns=["Time"]) if not hist.empty else hist, use_container_width=True)
