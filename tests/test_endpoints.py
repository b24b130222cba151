import json
import os
import sys
from unittest.mock import MagicMock

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from fastapi.testclient import TestClient

from crawler_tracker.bots import classify, is_bot
from crawler_tracker.config import Settings
from crawler_tracker.main import EMPTY_CSS, PIXEL_GIF, create_app
from crawler_tracker.store.base import StoreError
from crawler_tracker.store.memory import InMemoryEventStore

GPTBOT_UA = "Mozilla/5.0 (compatible; GPTBot/1.0)"


@pytest.fixture
def store():
    return InMemoryEventStore()


@pytest.fixture
def client(store):
    return TestClient(create_app(Settings(), store))


def _assert_no_cache(resp):
    assert "no-store" in resp.headers["cache-control"]
    assert "max-age=0" in resp.headers["cache-control"]


def test_pixel_returns_gif_and_records_event(client, store):
    resp = client.get("/pixel.gif", params={"token": "t0k", "page": "/blog"})

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/gif"
    assert resp.content == PIXEL_GIF
    assert resp.headers["access-control-allow-origin"] == "*"
    _assert_no_cache(resp)

    (key,) = store.list_keys("log:", 10)
    stored = json.loads(store.get(key))
    assert stored["page"] == "/blog"
    assert stored["token"] == "t0k"
    assert stored["path"] == "/pixel.gif"
    assert stored["method"] == "GET"
    assert stored["url"].startswith("http://testserver/pixel.gif?")
    assert "page=" in stored["url"]


def test_stylesheet_returns_css_and_records_event(client, store):
    resp = client.post("/log.css", params={"page": "/"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/css")
    assert resp.text == EMPTY_CSS
    _assert_no_cache(resp)

    (key,) = store.list_keys("log:", 10)
    assert json.loads(store.get(key))["method"] == "POST"


def test_record_key_carries_capture_time(client, store):
    client.get("/pixel.gif")

    (key,) = store.list_keys("log:", 10)
    prefix, millis, suffix = key.split(":", 2)
    assert prefix == "log"
    assert millis.isdigit()
    assert len(suffix) == 36


def test_beacon_survives_store_failure():
    failing = MagicMock()
    failing.put.side_effect = StoreError("unavailable")
    client = TestClient(create_app(Settings(), failing))

    resp = client.get("/pixel.gif", params={"page": "/"})

    assert resp.status_code == 200
    assert resp.content == PIXEL_GIF
    failing.put.assert_called_once()


def test_edge_metadata_is_recorded(client, store):
    client.get(
        "/pixel.gif",
        params={"page": "/about"},
        headers={
            "User-Agent": GPTBOT_UA,
            "Referer": "https://blog.example/about",
            "CF-Connecting-IP": "203.0.113.7",
            "CF-IPCountry": "US",
            "CF-IPCity": "San Jose",
            "CF-Ray": "8f1c2d3e4f5a6b7c-SJC",
            "CF-ASN": "13335",
            "CF-AS-Organization": "Cloudflare",
            "Accept": "image/avif,image/webp",
            "Accept-Language": "en-US",
        },
    )

    (event,) = client.get("/api/logs").json()
    assert event["ua"] == GPTBOT_UA
    assert event["referer"] == "https://blog.example/about"
    assert event["ip"] == "203.0.113.7"
    assert event["country"] == "US"
    assert event["city"] == "San Jose"
    assert event["colo"] == "SJC"
    assert event["asn"] == 13335
    assert event["asOrganization"] == "Cloudflare"
    assert event["headers"]["accept"] == "image/avif,image/webp"
    assert event["headers"]["accept-language"] == "en-US"


def test_missing_edge_fields_are_omitted(client, store):
    client.get("/pixel.gif", headers={"CF-ASN": "0"})

    (event,) = client.get("/api/logs").json()
    for field in ("country", "city", "colo", "asn", "asOrganization", "referer", "page", "token"):
        assert field not in event
    assert set(event["headers"]) == {"accept", "accept-language", "accept-encoding"}


def test_forwarded_for_used_when_no_cf_ip(client):
    client.get("/pixel.gif", headers={"X-Forwarded-For": "198.51.100.4, 10.0.0.1"})

    (event,) = client.get("/api/logs").json()
    assert event["ip"] == "198.51.100.4"


def test_logs_newest_first(client, store):
    for stamp in ("2025-11-05T10:00:00.000Z", "2025-11-05T12:00:00.000Z", "2025-11-05T11:00:00.000Z"):
        store.put(
            f"log:{stamp}",
            json.dumps({"ts": stamp, "method": "GET", "url": "u", "path": "/pixel.gif"}),
            60,
        )

    resp = client.get("/api/logs")

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/json"
    _assert_no_cache(resp)
    assert [event["ts"] for event in resp.json()] == [
        "2025-11-05T12:00:00.000Z",
        "2025-11-05T11:00:00.000Z",
        "2025-11-05T10:00:00.000Z",
    ]


@pytest.mark.parametrize("limit, expected", [("0", 1), ("-7", 1), ("3", 3), ("50", 10), ("5000", 10)])
def test_logs_limit_is_clamped(client, store, limit, expected):
    for index in range(10):
        store.put(
            f"log:{index:02d}",
            json.dumps({"ts": f"2025-11-05T12:00:{index:02d}.000Z", "method": "GET", "url": "u", "path": "/"}),
            60,
        )

    resp = client.get("/api/logs", params={"limit": limit})

    assert resp.status_code == 200
    assert len(resp.json()) == expected


def test_logs_limit_upper_bound_passed_to_store():
    store = MagicMock()
    store.list_keys.return_value = []
    client = TestClient(create_app(Settings(), store))

    assert client.get("/api/logs", params={"limit": "5000"}).json() == []
    store.list_keys.assert_called_once_with("log:", 1000)


def test_logs_skip_corrupted_record(client, store):
    store.put("log:1", json.dumps({"ts": "2025-11-05T12:00:00.000Z", "method": "GET", "url": "u", "path": "/"}), 60)
    store.put("log:2", "{broken", 60)
    store.put("log:3", json.dumps({"ts": "2025-11-05T13:00:00.000Z", "method": "GET", "url": "u", "path": "/"}), 60)

    resp = client.get("/api/logs")

    assert resp.status_code == 200
    assert len(resp.json()) == 2


def test_logs_error_when_store_unreachable():
    store = MagicMock()
    store.list_keys.side_effect = StoreError("store unreachable")
    client = TestClient(create_app(Settings(), store))

    resp = client.get("/api/logs")

    assert resp.status_code == 500
    assert resp.json() == {"error": "store unreachable"}
    assert resp.headers["access-control-allow-origin"] == "*"


def test_logs_token_not_enforced_by_default(client):
    assert client.get("/api/logs", params={"token": "wrong"}).status_code == 200
    assert client.get("/api/logs").status_code == 200


def test_logs_token_enforced_when_required(store):
    client = TestClient(create_app(Settings(token="s3cret", require_token=True), store))

    assert client.get("/api/logs").status_code == 403
    assert client.get("/api/logs", params={"token": "wrong"}).status_code == 403
    assert client.get("/api/logs", params={"token": "s3cret"}).status_code == 200


def test_logs_non_ascii_token_is_forbidden(store):
    client = TestClient(create_app(Settings(token="s3cret", require_token=True), store))

    assert client.get("/api/logs", params={"token": "é"}).status_code == 403
    assert client.get("/api/logs", params={"token": "s3crét"}).status_code == 403


def test_logs_non_ascii_configured_token(store):
    client = TestClient(create_app(Settings(token="clé", require_token=True), store))

    assert client.get("/api/logs", params={"token": "clé"}).status_code == 200
    assert client.get("/api/logs", params={"token": "cle"}).status_code == 403


def test_auth_disabled_notice_is_a_warning(store, caplog):
    with caplog.at_level("WARNING", logger="crawler_tracker"):
        create_app(Settings(), store)

    assert any("authentication disabled" in record.getMessage() and record.levelname == "WARNING" for record in caplog.records)


@pytest.mark.parametrize("path", ["/pixel.gif", "/log.css", "/api/logs"])
def test_options_preflight(client, store, path):
    resp = client.options(path)

    assert resp.status_code == 200
    assert resp.content == b""
    assert resp.headers["access-control-allow-origin"] == "*"
    assert resp.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
    assert store.list_keys("log:", 10) == []


def test_gptbot_visit_end_to_end(client):
    client.get("/pixel.gif", params={"page": "/blog", "token": "t0k"}, headers={"User-Agent": GPTBOT_UA})

    events = client.get("/api/logs").json()

    assert events[0]["page"] == "/blog"
    assert is_bot(events[0]["ua"]) is True
    assert classify(events[0]["ua"]) == "GPTBot (OpenAI)"


def test_visit_without_user_agent_end_to_end(client):
    del client.headers["user-agent"]
    client.get("/log.css", params={"page": "/"})

    events = client.get("/api/logs").json()

    assert len(events) == 1
    assert "ua" not in events[0]
    assert is_bot(events[0].get("ua")) is False
