import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from fastapi.testclient import TestClient

from crawler_tracker.config import Settings
from crawler_tracker.main import create_app
from crawler_tracker.store.memory import InMemoryEventStore


def test_healthz():
    client = TestClient(create_app(Settings(), InMemoryEventStore()))
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.text == "ok"


def test_index_lists_beacon_urls():
    settings = Settings(endpoint="https://tracker.example")
    client = TestClient(create_app(settings, InMemoryEventStore()))
    resp = client.get("/")
    assert resp.status_code == 200
    assert "https://tracker.example/pixel.gif" in resp.text
    assert "https://tracker.example/api/logs" in resp.text
