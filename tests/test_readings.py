from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

from readings import (
    Reading,
    ReadingError,
    fetch_history,
    fetch_raw_since,
    fetch_table,
    fetch_window_means,
    insert_average,
    insert_reading,
    parse_reading,
    parse_timestamp,
    to_iso,
)


def test_to_iso_normalizes_to_utc_millis() -> None:
    assert to_iso("2025-01-01T10:00:00+02:00") == "2025-01-01T08:00:00.000Z"
    assert to_iso(datetime(2025, 1, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)) == "2025-01-01T10:00:00.123Z"
    # naive times are taken as UTC
    assert to_iso(datetime(2025, 1, 1, 10, 0)) == "2025-01-01T10:00:00.000Z"


def test_parse_timestamp_epoch_millis() -> None:
    assert parse_timestamp(1735725600000) == "2025-01-01T10:00:00.000Z"


def test_parse_reading_defaults_timestamp() -> None:
    r = parse_reading({"type": "temperature", "value": 21.5}, now="2025-01-01T10:00:00.000Z")
    assert r == Reading("temperature", 21.5, "2025-01-01T10:00:00.000Z")


def test_parse_reading_keeps_client_timestamp() -> None:
    r = parse_reading({"type": "humidity", "value": "55,5", "timestamp": "2025-01-01T10:00:00Z"})
    assert r.value == 55.5
    assert r.timestamp == "2025-01-01T10:00:00.000Z"


def test_parse_reading_accepts_zero() -> None:
    assert parse_reading({"type": "temperature", "value": 0}).value == 0.0


@pytest.mark.parametrize("payload", [
    {"value": 1},
    {"type": "temperature"},
    {"type": "", "value": 1},
    {"type": "temperature", "value": None},
])
def test_parse_reading_missing_fields(payload) -> None:
    with pytest.raises(ReadingError, match="Missing required fields"):
        parse_reading(payload)


@pytest.mark.parametrize("value", ["warm", True, "nan", float("inf"), [1]])
def test_parse_reading_invalid_value(value) -> None:
    with pytest.raises(ReadingError, match="Invalid value"):
        parse_reading({"type": "temperature", "value": value})


def test_parse_reading_invalid_timestamp() -> None:
    with pytest.raises(ReadingError, match="Invalid timestamp"):
        parse_reading({"type": "temperature", "value": 1, "timestamp": "yesterday-ish"})


def test_parse_reading_rejects_non_object() -> None:
    with pytest.raises(ReadingError):
        parse_reading([1, 2])


def test_insert_and_fetch_raw_since(engine) -> None:
    insert_reading(engine, Reading("temperature", 20.0, "2025-01-01T10:02:00.000Z"))
    first = insert_reading(engine, Reading("humidity", 50.0, "2025-01-01T10:01:00.000Z"))
    insert_reading(engine, Reading("temperature", 19.0, "2025-01-01T09:00:00.000Z"))
    assert first > 0

    rows = fetch_raw_since(engine, "2025-01-01T10:00:00.000Z")
    assert rows == [
        {"type": "humidity", "value": 50.0, "timestamp": "2025-01-01T10:01:00.000Z"},
        {"type": "temperature", "value": 20.0, "timestamp": "2025-01-01T10:02:00.000Z"},
    ]


def test_fetch_history_is_chronological_and_limited(engine) -> None:
    for minute in range(15):
        insert_average(engine, 20.0 + minute, 50.0, f"2025-01-01T10:{minute:02d}:00.000Z")
    rows = fetch_history(engine, limit=12)
    assert len(rows) == 12
    assert rows[0]["timestamp"] == "2025-01-01T10:03:00.000Z"
    assert rows[-1]["timestamp"] == "2025-01-01T10:14:00.000Z"
    assert rows[-1]["avg_temperature"] == 34.0


def test_fetch_window_means_bounds(engine) -> None:
    # start is exclusive, end inclusive
    insert_reading(engine, Reading("temperature", 100.0, "2025-01-01T10:00:00.000Z"))
    insert_reading(engine, Reading("temperature", 20.0, "2025-01-01T10:01:00.000Z"))
    insert_reading(engine, Reading("temperature", 22.0, "2025-01-01T10:05:00.000Z"))
    insert_reading(engine, Reading("pressure", 1013.0, "2025-01-01T10:03:00.000Z"))
    means = fetch_window_means(engine, "2025-01-01T10:00:00.000Z", "2025-01-01T10:05:00.000Z")
    assert means == {"temperature": 21.0}


def test_fetch_table_newest_first(engine) -> None:
    insert_reading(engine, Reading("temperature", 20.0, "2025-01-01T10:00:00.000Z"))
    insert_reading(engine, Reading("temperature", 21.0, "2025-01-01T10:01:00.000Z"))
    df = fetch_table(engine, "raw_data", limit=1)
    assert list(df.columns) == ["id", "type", "value", "timestamp"]
    assert df["value"].tolist() == [21.0]


def test_fetch_table_rejects_unknown_table(engine) -> None:
    with pytest.raises(KeyError):
        fetch_table(engine, "sqlite_master")


def test_fetch_table_store_error_is_sqlalchemy_error(engine, drop_table) -> None:
    drop_table("raw_data")
    with pytest.raises(SQLAlchemyError):
        fetch_table(engine, "raw_data")


def test_fetch_table_all_null_column(engine) -> None:
    insert_average(engine, None, 50.0, "2025-01-01T10:00:00.000Z")
    df = fetch_table(engine, "avg_data")
    assert df["avg_temperature"].isna().all()
