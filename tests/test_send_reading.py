import json

import pytest
import requests

import send_reading


class FakeResponse:
    def __init__(self, status: int, body: dict):
        self.status_code = status
        self._body = body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._body


@pytest.fixture
def posted(monkeypatch: pytest.MonkeyPatch) -> list:
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append({"url": url, "json": json, "timeout": timeout})
        return FakeResponse(201, {"message": "Data stored successfully", "id": 7})

    monkeypatch.setattr(send_reading.requests, "post", fake_post)
    return calls


def test_send_reading_posts_json(posted: list) -> None:
    out = send_reading.send_reading("http://pi.local:3000/", "temperature", 20.5)
    assert out["id"] == 7
    assert posted == [{
        "url": "http://pi.local:3000/api/weather/data",
        "json": {"type": "temperature", "value": 20.5},
        "timeout": 15,
    }]


def test_send_reading_with_timestamp(posted: list) -> None:
    send_reading.send_reading("http://x", "humidity", 40, timestamp="2025-01-01T10:00:00Z")
    assert posted[0]["json"]["timestamp"] == "2025-01-01T10:00:00Z"


def test_main_prints_response(posted: list, clean_env: None, capsys: pytest.CaptureFixture) -> None:
    rc = send_reading.main(["humidity", "45", "--url", "http://pi.local:3000"])
    assert rc == 0
    assert json.loads(capsys.readouterr().out)["id"] == 7
    assert posted[0]["json"] == {"type": "humidity", "value": 45.0}


def test_main_reports_http_errors(monkeypatch: pytest.MonkeyPatch, clean_env: None,
                                  capsys: pytest.CaptureFixture) -> None:
    monkeypatch.setattr(send_reading.requests, "post",
                        lambda *a, **kw: FakeResponse(400, {"error": "Missing required fields"}))
    assert send_reading.main(["temperature", "20"]) == 1
    assert "[ERRORE]" in capsys.readouterr().err
