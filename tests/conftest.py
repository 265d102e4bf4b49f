"""Shared fixtures for the 4me SDK test suite."""

import json
from pathlib import Path

import httpx
import pytest

from sdk4me.client.client import Client
from sdk4me.config.settings import Settings, get_settings

API = "https://api.4me.com"
FIXTURES = Path(__file__).parent / "fixtures"


class FakeClock:
    """Monotonic clock that only moves forward when sleep() is called."""

    def __init__(self):
        self.now = 1000.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class Responder:
    """MockTransport handler replaying a sequence of responses.

    The last response repeats once the sequence is exhausted. Exceptions
    in the sequence are raised instead of returned.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def json_response(body, status_code: int = 200, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(body).encode(), headers=headers)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the environment, with retries disabled."""
    return Settings(
        _env_file=None,
        host=API,
        api_version="v1",
        access_token="secret",
        api_token="",
        account="",
        source="",
        user_agent="",
        max_retry_time=-1,
        block_at_rate_limit=False,
        max_throttle_time=3660,
        proxy_host="",
        ca_file="",
    )


@pytest.fixture
def make_client(settings, clock):
    """Factory fixture: a Client whose HTTP traffic goes to ``handler``.

    Usage:
        client = make_client(Responder(json_response({"name": "my name"})), max_retry_time=16)
    """
    clients = []

    def _make(handler, **options) -> Client:
        http_client = httpx.Client(transport=httpx.MockTransport(handler))
        client = Client(
            settings=settings, http_client=http_client, sleep=clock.sleep, clock=clock, **options
        )
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.close()


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set SDK4ME_* env vars and clear the settings cache.

    Usage:
        override_settings(ACCESS_TOKEN="token", MAX_RETRY_TIME="120")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(f"SDK4ME_{key.upper()}", str(value))
        get_settings.cache_clear()

    yield _override

    get_settings.cache_clear()


@pytest.fixture
def upload_file() -> str:
    return str(FIXTURES / "upload.txt")


@pytest.fixture
def people_csv() -> str:
    return str(FIXTURES / "people.csv")
