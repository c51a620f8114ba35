# -*- coding: utf-8 -*-
"""
readings.py — Letture sensore: validazione e accesso a raw_data / avg_data
- Timestamp normalizzati a ISO UTC con millisecondi e 'Z' (ordine lessicale = ordine temporale)
- Insert append-only, query per finestra, storico e dump tabelle
"""

import math
from collections import namedtuple
from datetime import datetime, timezone
from typing import Optional

import pandas as pd
from sqlalchemy import text
from sqlalchemy.engine import Engine

from db import TABLES

SERIES_TYPES = ("temperature", "humidity")

Reading = namedtuple("Reading", ["type", "value", "timestamp"])


class ReadingError(ValueError):
    """Payload di lettura non valido; il messaggio va restituito al client."""


def to_iso(ts) -> str:
    t = pd.Timestamp(ts)
    if t.tzinfo is None:
        t = t.tz_localize("UTC")
    t = t.tz_convert("UTC")
    return t.strftime("%Y-%m-%dT%H:%M:%S.") + f"{t.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def parse_timestamp(raw) -> str:
    try:
        if isinstance(raw, bool):
            raise ValueError(raw)
        if isinstance(raw, (int, float)):
            # epoch milliseconds, as sent by JS clients
            t = pd.to_datetime(raw, unit="ms", utc=True)
        else:
            t = pd.to_datetime(str(raw).strip(), utc=True)
    except (ValueError, TypeError, OverflowError):
        raise ReadingError("Invalid timestamp")
    if pd.isna(t):
        raise ReadingError("Invalid timestamp")
    return to_iso(t)


def parse_value(raw) -> float:
    if isinstance(raw, bool):
        raise ReadingError("Invalid value")
    try:
        v = float(raw.strip().replace(",", ".") if isinstance(raw, str) else raw)
    except (ValueError, TypeError):
        raise ReadingError("Invalid value")
    if math.isnan(v) or math.isinf(v):
        raise ReadingError("Invalid value")
    return v


def parse_reading(payload, now: Optional[str] = None) -> Reading:
    if not isinstance(payload, dict):
        raise ReadingError("Request body must be a JSON object")
    rtype = payload.get("type")
    value = payload.get("value")
    if not rtype or value is None or value == "":
        raise ReadingError("Missing required fields")
    if not isinstance(rtype, str) or not rtype.strip():
        raise ReadingError("Invalid type")

    ts = payload.get("timestamp")
    if ts in (None, ""):
        ts = now or utc_now_iso()
    else:
        ts = parse_timestamp(ts)
    return Reading(rtype.strip(), parse_value(value), ts)


# --------------------------- DB helpers ---------------------------
def _insert_returning_id(engine: Engine, sql: str, params: dict) -> int:
    with engine.begin() as cx:
        if engine.dialect.name == "sqlite":
            return cx.execute(text(sql), params).lastrowid
        return cx.execute(text(sql + " RETURNING id"), params).scalar_one()


def insert_reading(engine: Engine, reading: Reading) -> int:
    return _insert_returning_id(
        engine,
        "INSERT INTO raw_data (type, value, timestamp) VALUES (:type, :value, :timestamp)",
        reading._asdict(),
    )


def insert_average(engine: Engine, avg_temperature, avg_humidity, timestamp: str) -> int:
    return _insert_returning_id(
        engine,
        "INSERT INTO avg_data (avg_temperature, avg_humidity, timestamp) "
        "VALUES (:avg_temperature, :avg_humidity, :timestamp)",
        {"avg_temperature": avg_temperature, "avg_humidity": avg_humidity, "timestamp": timestamp},
    )


def fetch_history(engine: Engine, limit: int = 12) -> list:
    """Ultime `limit` medie in ordine cronologico."""
    with engine.connect() as cx:
        rows = cx.execute(text("""
            SELECT avg_temperature, avg_humidity, timestamp
            FROM avg_data
            ORDER BY timestamp DESC, id DESC
            LIMIT :n
        """), {"n": int(limit)}).mappings().all()
    return [dict(r) for r in reversed(rows)]


def fetch_raw_since(engine: Engine, cutoff: str) -> list:
    with engine.connect() as cx:
        rows = cx.execute(text("""
            SELECT type, value, timestamp
            FROM raw_data
            WHERE timestamp >= :cutoff
            ORDER BY timestamp ASC, id ASC
        """), {"cutoff": cutoff}).mappings().all()
    return [dict(r) for r in rows]


def fetch_window_means(engine: Engine, start: str, end: str) -> dict:
    """Media per tipo sulle letture con start < timestamp <= end."""
    with engine.connect() as cx:
        rows = cx.execute(text("""
            SELECT type, AVG(value) AS avg_value
            FROM raw_data
            WHERE timestamp > :start AND timestamp <= :end
              AND type IN ('temperature', 'humidity')
            GROUP BY type
        """), {"start": start, "end": end}).all()
    return {t: v for t, v in rows if v is not None}


def fetch_table(engine: Engine, table: str, limit: int = 100) -> pd.DataFrame:
    if table not in TABLES:
        raise KeyError(table)
    # store errors surface as SQLAlchemyError
    with engine.connect() as cx:
        res = cx.execute(
            text(f"SELECT * FROM {table} ORDER BY timestamp DESC, id DESC LIMIT :n"),
            {"n": int(limit)},
        )
        return pd.DataFrame(res.fetchall(), columns=list(res.keys()))
