# -*- coding: utf-8 -*-
"""
receiver.py — Ricevitore HTTP letture meteo (Flask)
- POST /api/weather/data: {type, value, timestamp?} -> raw_data
- GET  /api/weather/history | historical | buckets | latest
- /db-viewer: dump HTML di raw_data / avg_data per debug
- Medie su finestra calcolate all'avvio e poi da un timer periodico
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

from flask import Flask, abort, jsonify, request, send_from_directory
from flask_cors import CORS
from sqlalchemy.exc import SQLAlchemyError

import db
import readings
from aggregation import Aggregator, PeriodicAverager, bucket_series, series_records
from db_viewer import VIEWER_TABLES, render_index, render_table
from settings import load_settings, setup_logging

log = logging.getLogger("receiver")

PUBLIC_DIR = Path(__file__).resolve().parent / "public"

MAX_BUCKET_MINUTES = 7 * 24 * 60
MAX_BUCKETS = 10000


def _positive_int_arg(name: str, default):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        v = int(raw)
    except ValueError:
        raise readings.ReadingError(f"Invalid {name}")
    if v <= 0:
        raise readings.ReadingError(f"Invalid {name}")
    return v


def _bucket_range_args(default_window: int, default_minutes: int):
    window = _positive_int_arg("window", default_window)
    minutes = _positive_int_arg("minutes", default_minutes)
    if minutes > MAX_BUCKET_MINUTES:
        raise readings.ReadingError(f"minutes must be at most {MAX_BUCKET_MINUTES}")
    if window > minutes * 60:
        raise readings.ReadingError("window must not exceed the requested range")
    if minutes * 60 // window > MAX_BUCKETS:
        raise readings.ReadingError(f"Too many buckets (max {MAX_BUCKETS})")
    return window, minutes


def create_app(settings=None, engine=None, aggregator=None) -> Flask:
    settings = settings or load_settings()
    if engine is None:
        engine = db.get_engine(settings)
        db.ensure_schema(engine)
    if aggregator is None:
        aggregator = Aggregator(engine, settings.avg_window_seconds, settings.avg_min_gap_seconds)

    app = Flask(__name__, static_folder=str(PUBLIC_DIR), static_url_path="/static")
    CORS(app, origins=settings.cors_origins)
    app.extensions["weather"] = {"settings": settings, "engine": engine, "aggregator": aggregator}

    @app.errorhandler(readings.ReadingError)
    def bad_reading(e):
        return jsonify({"error": str(e)}), 400

    @app.post("/api/weather/data")
    def store_data():
        payload = request.get_json(silent=True)
        if payload is None:
            return jsonify({"error": "Request body must be JSON"}), 400
        reading = readings.parse_reading(payload)
        aggregator.observe(reading.type, reading.value)
        try:
            row_id = readings.insert_reading(engine, reading)
        except SQLAlchemyError as e:
            log.error("Error storing data: %s", e)
            return jsonify({"error": "Failed to store data"}), 500
        log.debug("Stored %s=%s at %s (id %s)", reading.type, reading.value, reading.timestamp, row_id)
        return jsonify({"message": "Data stored successfully", "id": row_id}), 201

    @app.get("/api/weather/history")
    def history():
        try:
            rows = readings.fetch_history(engine, settings.history_limit)
        except SQLAlchemyError as e:
            log.error("Error fetching historical data: %s", e)
            return jsonify({"error": "Failed to fetch historical data"}), 500
        return jsonify(rows)

    @app.get("/api/weather/historical")
    def historical():
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=settings.historical_minutes)
        try:
            rows = readings.fetch_raw_since(engine, readings.to_iso(cutoff))
        except SQLAlchemyError as e:
            log.error("Error fetching historical data: %s", e)
            return jsonify({"error": "Failed to fetch historical data"}), 500
        return jsonify(rows)

    @app.get("/api/weather/buckets")
    def buckets():
        window, minutes = _bucket_range_args(int(settings.avg_window_seconds),
                                             int(settings.historical_minutes))
        smooth = _positive_int_arg("smooth", 1)
        end = datetime.now(timezone.utc)
        try:
            start = end - timedelta(minutes=minutes)
            since = start - timedelta(seconds=window)
        except OverflowError:
            return jsonify({"error": "Requested range is out of bounds"}), 400
        try:
            # readings from the window before start seed the first bucket
            raw = readings.fetch_raw_since(engine, readings.to_iso(since))
        except SQLAlchemyError as e:
            log.error("Error fetching bucketed data: %s", e)
            return jsonify({"error": "Failed to fetch historical data"}), 500
        df = bucket_series(raw, window, start=start, end=end, seed=aggregator.latest(), smooth=smooth)
        return jsonify(series_records(df))

    @app.get("/api/weather/latest")
    def latest():
        return jsonify(aggregator.latest())

    @app.get("/db-viewer")
    def viewer_index():
        return render_index(VIEWER_TABLES)

    @app.get("/db-viewer/<slug>")
    def viewer_table(slug):
        table = VIEWER_TABLES.get(slug)
        if table is None:
            abort(404)
        try:
            df = readings.fetch_table(engine, table, settings.viewer_limit)
        except SQLAlchemyError as e:
            log.error("Error fetching %s: %s", table, e)
            return f"Error fetching data: {e}", 500, {"Content-Type": "text/plain; charset=utf-8"}
        return render_table(table, df, settings.viewer_limit, settings.viewer_refresh_seconds)

    @app.get("/")
    def index():
        return send_from_directory(PUBLIC_DIR, "index.html")

    return app


def main():
    settings = load_settings()
    setup_logging(settings.log_level)

    engine = db.get_engine(settings)
    if not db.test_db_connectivity(engine):
        raise SystemExit(3)
    db.ensure_schema(engine)

    aggregator = Aggregator(engine, settings.avg_window_seconds, settings.avg_min_gap_seconds)
    try:
        # initial data for the charts
        aggregator.run_once()
    except SQLAlchemyError as e:
        log.error("Error calculating averages: %s", e)
    averager = PeriodicAverager(aggregator, settings.avg_check_seconds)
    averager.start()

    ingestor = None
    if settings.mqtt_enabled:
        from mqtt_ingest import MqttIngestor
        ingestor = MqttIngestor(engine, aggregator, settings)
        ingestor.start()

    app = create_app(settings, engine, aggregator)
    log.info("Server running on http://%s:%s", settings.host, settings.port)
    try:
        app.run(host=settings.host, port=settings.port, debug=False)
    finally:
        averager.stop(timeout=5)
        if ingestor is not None:
            ingestor.stop()


if __name__ == "__main__":
    main()
