# -*- coding: utf-8 -*-
"""
check_db.py — Ispeziona il database meteo
Stampa tabelle disponibili, colonne, numero righe e 5 righe di esempio per:
- raw_data
- avg_data

Usa DATABASE_URL (Postgres, ecc.) oppure fallback a SQLite in SQLITE_PATH.
"""

import sys

import pandas as pd
from sqlalchemy import inspect, text

import db
from settings import load_settings


def show(eng, table: str, tables) -> None:
    if table not in tables:
        print(f"[i] Tabella '{table}' non trovata.\n")
        return
    with eng.connect() as cx:
        try:
            n = cx.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar_one()
            df = pd.read_sql(text(f"SELECT * FROM {table} ORDER BY timestamp DESC LIMIT 5"), cx)
        except Exception as e:
            print(f"[!] Errore leggendo '{table}':", e, "\n")
            return
    print(f"=== {table} ({n} righe) ===")
    print("Colonne:", list(df.columns))
    print("Sample (max 5 righe, più recenti):")
    print(df.head())
    print()


def main() -> int:
    settings = load_settings()
    eng = db.get_engine(settings)
    print(f"Connessione: {db.mask_url(db.get_db_url(settings))}\n")

    try:
        tables = inspect(eng).get_table_names()
    except Exception as e:
        print("Errore nel leggere le tabelle:", e)
        return 2

    print("Tabelle trovate:")
    for t in tables:
        print(" -", t)
    print()

    for t in db.TABLES:
        show(eng, t, tables)
    return 0


if __name__ == "__main__":
    sys.exit(main())
