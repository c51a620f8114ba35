# -*- coding: utf-8 -*-
"""
db.py — Connessione e schema del database meteo
- DATABASE_URL (postgres:// -> postgresql+psycopg2://) oppure SQLite in SQLITE_PATH
- Schema idempotente: raw_data (letture grezze) e avg_data (medie su finestra)
- Test di connettività con URL mascherato nei log
"""

import logging
import re
from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

log = logging.getLogger("db")

TABLES = ("raw_data", "avg_data")


def normalize_db_url(raw: str) -> str:
    u = (raw or "").strip()
    if not u:
        return u
    if u.startswith("postgres://"):
        u = "postgresql+psycopg2://" + u[len("postgres://"):]
    return u


def mask_url(u: str) -> str:
    if not u:
        return u
    return re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", u)


def get_db_url(settings) -> str:
    url = normalize_db_url(settings.database_url)
    if url:
        return url
    p = Path(settings.sqlite_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{p}"


def get_engine(settings, echo: bool = False) -> Engine:
    db_url = get_db_url(settings)
    connect_args = {}
    if db_url.startswith("sqlite"):
        # shared by the HTTP, timer and MQTT threads
        connect_args["check_same_thread"] = False
    return create_engine(db_url, echo=echo, future=True, pool_pre_ping=True, connect_args=connect_args)


def _schema(dialect: str):
    pk = "INTEGER PRIMARY KEY AUTOINCREMENT" if dialect == "sqlite" else "SERIAL PRIMARY KEY"
    return [
        f"""
        CREATE TABLE IF NOT EXISTS raw_data (
          id {pk},
          type TEXT NOT NULL,
          value REAL NOT NULL,
          timestamp TEXT NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS avg_data (
          id {pk},
          avg_temperature REAL,
          avg_humidity REAL,
          timestamp TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_raw_data_timestamp ON raw_data (timestamp)",
        "CREATE INDEX IF NOT EXISTS idx_avg_data_timestamp ON avg_data (timestamp)",
    ]


def ensure_schema(engine: Engine) -> None:
    """Crea raw_data e avg_data in modo idempotente (CREATE TABLE IF NOT EXISTS)."""
    with engine.begin() as conn:
        for stmt in _schema(engine.dialect.name):
            conn.execute(text(stmt))
    log.info("Database tables created or already exist")


def test_db_connectivity(engine: Engine) -> bool:
    where = mask_url(str(engine.url.render_as_string(hide_password=False)))
    try:
        with engine.connect() as cx:
            cx.execute(text("select 1"))
        log.info("DB connectivity OK: %s", where)
        return True
    except Exception as e:
        log.error("DB connectivity FAILED to %s -> %s", where, e)
        return False
