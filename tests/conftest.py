from collections.abc import Iterator

import pytest
from sqlalchemy import text

import db
from aggregation import Aggregator
from receiver import create_app
from settings import Settings

# Variables read by Settings; cleared so a developer .env / shell does not leak in
ENV_VARS = [
    "DATABASE_URL", "SQLITE_PATH", "RECEIVER_HOST", "PORT", "AVG_WINDOW_SECONDS",
    "AVG_CHECK_SECONDS", "AVG_MIN_GAP_SECONDS", "HISTORY_LIMIT", "HISTORICAL_MINUTES",
    "VIEWER_LIMIT", "VIEWER_REFRESH_SECONDS", "CORS_ORIGINS", "MQTT_ENABLED", "MQTT_BROKER",
    "MQTT_PORT", "MQTT_CLIENT_ID", "MQTT_TOPIC_TEMPERATURE", "MQTT_TOPIC_HUMIDITY",
    "RECEIVER_URL", "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings(clean_env: None, tmp_path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "data" / "weather.db"))
    return Settings()


@pytest.fixture
def engine(settings: Settings) -> Iterator:
    eng = db.get_engine(settings)
    db.ensure_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def aggregator(engine) -> Aggregator:
    return Aggregator(engine, window_seconds=300, min_gap_seconds=240)


@pytest.fixture
def app(settings: Settings, engine, aggregator: Aggregator):
    app = create_app(settings, engine, aggregator)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def drop_table(engine):
    def _drop(table: str) -> None:
        with engine.begin() as cx:
            cx.execute(text(f"DROP TABLE {table}"))
    return _drop
