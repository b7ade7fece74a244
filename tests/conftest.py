import json
from urllib.parse import urlsplit

import pytest
import requests

from loradash.readings import SensorReading, from_millis
from loradash.server import create_app
from loradash.store import ReadingStore

# 2023-11-14T22:13:20Z
NOW_S = 1_700_000_000.0
NOW_MS = int(NOW_S * 1000)
HOUR_MS = 60 * 60 * 1000


class FakeClock:
    def __init__(self, now=NOW_S):
        self.now = now

    def __call__(self):
        return self.now


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self._text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._text is not None:
            return json.loads(self._text)
        return self._payload


class FakeSession:
    """Returns queued responses (or raises queued exceptions) and records every call."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({'url': url, 'params': params, 'timeout': timeout})
        item = self.responses.pop(0) if self.responses else FakeResponse(200, [])
        if isinstance(item, Exception):
            raise item
        return item


class FlaskSession:
    """requests-like session answering from a Flask test client."""

    def __init__(self, client):
        self.client = client
        self.calls = []

    def get(self, url, params=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append({'path': path, 'params': params, 'timeout': timeout})
        resp = self.client.get(path, query_string=params or {})
        return FakeResponse(resp.status_code, resp.get_json())


def make_reading(ms, **values):
    return SensorReading.from_payload(dict(values, fecha=from_millis(ms)))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    s = ReadingStore(str(tmp_path / 'sensores.db'))
    s.init_db()
    return s


@pytest.fixture
def app(store, clock, tmp_path):
    app = create_app(store, clock=clock, public_dir=str(tmp_path / 'public'))
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def flask_session(client):
    return FlaskSession(client)
