# -*- coding: utf-8 -*-
"""
aggregation.py — Medie su finestra temporale
- Snapshot periodico: media per tipo sulla finestra (now - W, now] -> avg_data
  (fallback all'ultimo valore ricevuto se nella finestra non ci sono letture)
- Serie a bucket: raggruppa raw_data in finestre fisse allineate all'epoch,
  media per bucket, riempimento in avanti dei buchi e media mobile opzionale
- Timer periodico su thread daemon
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

import pandas as pd
from sqlalchemy.engine import Engine

from readings import SERIES_TYPES, fetch_window_means, insert_average, to_iso

log = logging.getLogger("aggregation")

SERIES_COLUMNS = {"temperature": "avg_temperature", "humidity": "avg_humidity"}
OUTPUT_COLUMNS = ["timestamp", "avg_temperature", "avg_humidity", "samples", "filled"]


class Aggregator:
    def __init__(self, engine: Engine, window_seconds: float = 300, min_gap_seconds: Optional[float] = None):
        self.engine = engine
        self.window = timedelta(seconds=float(window_seconds))
        gap = self.window.total_seconds() * 0.8 if min_gap_seconds is None else float(min_gap_seconds)
        self.min_gap = timedelta(seconds=gap)
        self._lock = threading.Lock()
        self._latest = {t: None for t in SERIES_TYPES}
        self._last_average_time = None

    def observe(self, rtype: str, value: float) -> None:
        if rtype not in self._latest:
            return
        with self._lock:
            self._latest[rtype] = value

    def latest(self) -> dict:
        with self._lock:
            last = self._last_average_time
            out = dict(self._latest)
        out["last_average_time"] = to_iso(last) if last is not None else None
        return out

    def compute_snapshot(self, now: datetime) -> Optional[dict]:
        end = to_iso(now)
        start = to_iso(now - self.window)
        means = fetch_window_means(self.engine, start, end)
        with self._lock:
            latest = dict(self._latest)

        avg = {}
        for rtype, col in SERIES_COLUMNS.items():
            v = means.get(rtype)
            avg[col] = float(v) if v is not None else latest[rtype]
        if avg["avg_temperature"] is None and avg["avg_humidity"] is None:
            return None
        avg["timestamp"] = end
        return avg

    def run_once(self, now: Optional[datetime] = None, force: bool = False) -> Optional[dict]:
        now = _utc(now).to_pydatetime() if now is not None else datetime.now(timezone.utc)
        with self._lock:
            last = self._last_average_time
        if not force and last is not None and (now - last) < self.min_gap:
            log.debug("Averages computed %s ago, skipping", now - last)
            return None

        avg = self.compute_snapshot(now)
        if avg is None:
            log.debug("No readings yet, nothing to average")
            return None
        avg["id"] = insert_average(self.engine, avg["avg_temperature"], avg["avg_humidity"], avg["timestamp"])
        with self._lock:
            self._last_average_time = now
        log.info("Stored %ss averages at %s: temperature=%s humidity=%s",
                 int(self.window.total_seconds()), avg["timestamp"],
                 avg["avg_temperature"], avg["avg_humidity"])
        return avg


def _utc(ts) -> pd.Timestamp:
    t = pd.Timestamp(ts)
    return t.tz_localize("UTC") if t.tzinfo is None else t.tz_convert("UTC")


def bucket_series(raw, window_seconds: float, start=None, end=None,
                  seed: Optional[dict] = None, smooth: int = 1) -> pd.DataFrame:
    """Raggruppa le letture grezze in bucket fissi e ne calcola la media.

    `raw` è un DataFrame (o lista di dict) con colonne type/value/timestamp.
    I bucket sono allineati all'epoch: [k*W, (k+1)*W). Con start/end la serie
    copre tutti i bucket dell'intervallo, anche vuoti. Un bucket senza letture
    per un tipo riprende il valore precedente ed è marcato `filled`; per il
    primo bucket vale l'ultima lettura prima di start, altrimenti `seed`.
    """
    freq = pd.Timedelta(seconds=float(window_seconds))
    if freq <= pd.Timedelta(0):
        raise ValueError("window_seconds must be positive")

    df = pd.DataFrame(raw, columns=["type", "value", "timestamp"])
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce", format="ISO8601")
    df["value"] = pd.to_numeric(df["value"], errors="coerce")
    df = df.dropna(subset=["timestamp", "value"])
    df = df[df["type"].isin(SERIES_TYPES)].copy()
    df["bucket"] = df["timestamp"].dt.floor(freq)

    seed = {t: (seed or {}).get(t) for t in SERIES_TYPES}
    if start is not None and end is not None:
        first = _utc(start).floor(freq)
        last = _utc(end).floor(freq)
        before = df[df["bucket"] < first].sort_values("timestamp")
        for rtype, v in before.groupby("type")["value"].last().items():
            seed[rtype] = v
        df = df[(df["bucket"] >= first) & (df["bucket"] <= last)]
    elif df.empty:
        return pd.DataFrame(columns=OUTPUT_COLUMNS)
    else:
        first, last = df["bucket"].min(), df["bucket"].max()
    index = pd.date_range(first, last, freq=freq)

    if df.empty:
        means = pd.DataFrame(index=index, columns=list(SERIES_TYPES), dtype=float)
        counts = pd.Series(0, index=index)
    else:
        means = df.groupby(["bucket", "type"])["value"].mean().unstack("type")
        means = means.reindex(index=index, columns=list(SERIES_TYPES)).astype(float)
        counts = df.groupby("bucket").size().reindex(index, fill_value=0)

    missing = means.isna()
    if len(means):
        for rtype in SERIES_TYPES:
            if seed[rtype] is not None and pd.isna(means.iloc[0][rtype]):
                means.iloc[0, means.columns.get_loc(rtype)] = float(seed[rtype])
    means = means.ffill()
    filled = (missing & means.notna()).any(axis=1)

    if smooth and int(smooth) > 1:
        means = means.rolling(int(smooth), min_periods=1).mean()

    out = pd.DataFrame({
        "timestamp": [to_iso(t) for t in index],
        "avg_temperature": means["temperature"].to_numpy(),
        "avg_humidity": means["humidity"].to_numpy(),
        "samples": counts.to_numpy().astype(int),
        "filled": filled.to_numpy().astype(bool),
    })
    return out


def series_records(df: pd.DataFrame) -> list:
    """DataFrame -> lista di dict serializzabile (NaN -> None)."""
    out = []
    for rec in df.to_dict(orient="records"):
        row = {}
        for k, v in rec.items():
            if isinstance(v, float) and pd.isna(v):
                row[k] = None
            elif hasattr(v, "item"):
                row[k] = v.item()
            else:
                row[k] = v
        out.append(row)
    return out


class PeriodicAverager(threading.Thread):
    def __init__(self, aggregator: Aggregator, interval: float = 60):
        super().__init__(name="periodic-averager", daemon=True)
        self.aggregator = aggregator
        self.interval = float(interval)
        self._stop_event = threading.Event()

    def run(self):
        log.info("Averaging every %ss over a %ss window", self.interval,
                 int(self.aggregator.window.total_seconds()))
        while not self._stop_event.wait(self.interval):
            try:
                self.aggregator.run_once()
            except Exception as e:
                log.error("Error calculating averages: %s", e)

    def stop(self, timeout: Optional[float] = None):
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)
