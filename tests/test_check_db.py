import pytest

import check_db
from readings import Reading, insert_reading


def test_check_db_dumps_tables(engine, capsys: pytest.CaptureFixture) -> None:
    insert_reading(engine, Reading("temperature", 19.5, "2025-01-01T10:00:00.000Z"))
    assert check_db.main() == 0
    out = capsys.readouterr().out
    assert "sqlite:///" in out
    assert "=== raw_data (1 righe) ===" in out
    assert "=== avg_data (0 righe) ===" in out
    assert "19.5" in out
