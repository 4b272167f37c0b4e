"""
Shared pytest fixtures: a fake aiohttp session, a numeric comparator and
temporary configuration files.
"""

import asyncio
import json
from typing import Callable, List, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

import pytest

from archsync.utils.logger import configure_logging


class FakeResponse:
    """Stand-in for an aiohttp response used as ``async with session.get(...)``."""

    def __init__(self, status: int = 200, payload=None, headers=None,
                 delay: float = 0.0, body_error: Optional[Exception] = None):
        self.status = status
        self.payload = payload
        self.headers = headers or {}
        self.delay = delay
        self.body_error = body_error

    async def json(self, content_type='application/json'):
        if self.body_error is not None:
            raise self.body_error
        return self.payload


class _FakeRequest:
    def __init__(self, session: 'FakeSession', method: str, url: str):
        self.session = session
        self.method = method
        self.url = url

    async def __aenter__(self):
        session = self.session
        session.active += 1
        session.peak = max(session.peak, session.active)
        try:
            response = session.respond(self.method, self.url)
            await asyncio.sleep(session.delay + response.delay)
        except BaseException:
            session.active -= 1
            raise
        return response

    async def __aexit__(self, exc_type, exc, tb):
        self.session.active -= 1
        return False


class FakeSession:
    """Records requests and tracks how many are in flight at once."""

    def __init__(self, get_handler: Callable[[str], FakeResponse],
                 head_handler: Optional[Callable[[str], FakeResponse]] = None,
                 delay: float = 0.0):
        self.get_handler = get_handler
        self.head_handler = head_handler
        self.delay = delay
        self.requests: List[Tuple[str, str]] = []
        self.active = 0
        self.peak = 0
        self.closed = False

    def respond(self, method: str, url: str) -> FakeResponse:
        self.requests.append((method, url))
        if method == 'GET':
            return self.get_handler(url)
        if self.head_handler is None:
            raise AssertionError(f"Unexpected HEAD request to {url}")
        return self.head_handler(url)

    def get(self, url, **kwargs):
        return _FakeRequest(self, 'GET', str(url))

    def head(self, url, **kwargs):
        return _FakeRequest(self, 'HEAD', str(url))

    async def close(self):
        self.closed = True

    @property
    def get_urls(self) -> List[str]:
        return [url for method, url in self.requests if method == 'GET']

    @property
    def head_urls(self) -> List[str]:
        return [url for method, url in self.requests if method == 'HEAD']


def requested_names(url: str) -> List[str]:
    """Package names carried by an RPC info URL."""
    return parse_qs(urlsplit(url).query).get('arg[]', [])


def aur_entry(name: str, version: str, **extra) -> dict:
    entry = {"Name": name, "Version": version}
    entry.update(extra)
    return entry


def info_payload(entries: List[dict]) -> dict:
    return {"version": 5, "type": "multiinfo", "resultcount": len(entries), "results": entries}


def numeric_compare(left: str, right: str) -> int:
    """vercmp-style comparison of dotted integer versions."""
    a = tuple(int(part) for part in left.split('.'))
    b = tuple(int(part) for part in right.split('.'))
    return (a > b) - (a < b)


@pytest.fixture
def compare():
    return numeric_compare


@pytest.fixture
def pauses(monkeypatch):
    """Replace real sleeps in the AUR client and record the requested delays."""
    recorded: List[int] = []

    async def fake_pause(delay_ms):
        recorded.append(delay_ms)

    monkeypatch.setattr('archsync.aur_client._pause', fake_pause)
    return recorded


@pytest.fixture
def config_file(tmp_path):
    """Write a configuration file and return its path."""
    def _write(data) -> str:
        path = tmp_path / "config.json"
        path.write_text(json.dumps(data) if not isinstance(data, str) else data, encoding='utf-8')
        return str(path)
    return _write


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    configure_logging(None, verbose=False)
