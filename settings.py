# -*- coding: utf-8 -*-
"""
settings.py — Configurazione da .env / variabili d'ambiente
- Valori numerici malformati -> default
- Finestra di media unica per tutte le varianti (300s, 60s, 10s)
- Setup logging con il formato comune agli script di ingest
"""

import os
import logging
from typing import Optional

from dotenv import load_dotenv

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def _get_float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name) or default)
    except Exception:
        return float(default)


def _get_int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name) or default)
    except Exception:
        return int(default)


def _get_bool_env(name: str, default: bool = False) -> bool:
    v = (os.getenv(name) or "").strip().lower()
    if not v:
        return default
    return v in ("1", "true", "yes", "on")


class Settings:
    def __init__(self):
        self.database_url = (os.getenv("DATABASE_URL") or "").strip()
        self.sqlite_path = (os.getenv("SQLITE_PATH") or "./data/weather.db").strip()
        self.host = (os.getenv("RECEIVER_HOST") or "0.0.0.0").strip()
        self.port = _get_int_env("PORT", 3000)

        self.avg_window_seconds = _get_float_env("AVG_WINDOW_SECONDS", 300)
        self.avg_check_seconds = _get_float_env("AVG_CHECK_SECONDS", 60)
        # 4 min on a 5 min window
        self.avg_min_gap_seconds = _get_float_env("AVG_MIN_GAP_SECONDS", self.avg_window_seconds * 0.8)
        self.history_limit = _get_int_env("HISTORY_LIMIT", 12)
        self.historical_minutes = _get_float_env("HISTORICAL_MINUTES", 45)

        self.viewer_limit = _get_int_env("VIEWER_LIMIT", 100)
        self.viewer_refresh_seconds = _get_int_env("VIEWER_REFRESH_SECONDS", 30)
        self.cors_origins = (os.getenv("CORS_ORIGINS") or "*").strip()

        self.mqtt_enabled = _get_bool_env("MQTT_ENABLED", False)
        self.mqtt_broker = (os.getenv("MQTT_BROKER") or "broker.hivemq.com").strip()
        self.mqtt_port = _get_int_env("MQTT_PORT", 1883)
        self.mqtt_client_id = (os.getenv("MQTT_CLIENT_ID") or "weather-receiver").strip()
        self.mqtt_topic_temperature = (os.getenv("MQTT_TOPIC_TEMPERATURE") or "weather/temperature").strip()
        self.mqtt_topic_humidity = (os.getenv("MQTT_TOPIC_HUMIDITY") or "weather/humidity").strip()

        self.receiver_url = (os.getenv("RECEIVER_URL") or "http://localhost:3000").strip().rstrip("/")
        self.log_level = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    load_dotenv(dotenv_path)
    return Settings()


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, (level or "INFO").upper(), logging.INFO),
                        format=LOG_FORMAT)
