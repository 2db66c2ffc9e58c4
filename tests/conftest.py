"""Shared fixtures for the Virtual Key Gateway test suite."""

import json

import httpx
import pytest

from src.config.gateway import GatewayConfig
from src.config.settings import get_settings
from src.keys.store import VirtualKeyStore
from src.main import create_app
from src.proxy.upstream import UpstreamClient


@pytest.fixture
def gateway_config() -> GatewayConfig:
    """Config with one virtual key "abc" mapping to upstream key "real"."""
    return GatewayConfig(
        virtual_keys=VirtualKeyStore(["abc", "vk-team-2"]),
        upstream_api_key="real",
    )


@pytest.fixture
def virtual_keys_file(tmp_path):
    """Create a temp virtual keys file and return its path."""
    path = tmp_path / "virtual-api-keys.txt"
    path.write_text("vk-1\n  vk-2  \n\n", encoding="utf-8")
    return str(path)


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(OPENAI_API_KEY="sk-real", ACCESS_COUNT_LIMIT="10")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()


def upstream_response(
    status_code: int = 200,
    content: bytes = b"",
    headers: dict[str, str] | None = None,
    json_body=None,
) -> httpx.Response:
    """Build an unread, streaming response like a real transport returns.

    httpx reads responses built from plain bytes eagerly, which leaves
    nothing for the raw relay to stream.
    """
    headers = dict(headers or {})
    if json_body is not None:
        content = json.dumps(json_body).encode("utf-8")
        headers.setdefault("Content-Type", "application/json")
    headers["Content-Length"] = str(len(content))

    async def body():
        yield content

    return httpx.Response(status_code, headers=headers, content=body())


class UpstreamRecorder:
    """Stands in for the upstream API and records every request it receives."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.error: Exception | None = None
        # Called per request so each send gets a fresh response stream
        self.respond = lambda request: upstream_response(json_body={"object": "list", "data": []})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.respond(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def upstream_recorder() -> UpstreamRecorder:
    return UpstreamRecorder()


@pytest.fixture
def make_app_client(gateway_config, upstream_recorder):
    """Factory fixture: httpx AsyncClient wired to a gateway app.

    The upstream is an httpx.MockTransport backed by upstream_recorder.
    """
    def _make(config: GatewayConfig | None = None) -> httpx.AsyncClient:
        upstream = UpstreamClient(transport=httpx.MockTransport(upstream_recorder))
        app = create_app(gateway_config=config or gateway_config, upstream=upstream)
        transport = httpx.ASGITransport(app=app, client=("203.0.113.7", 51234))
        return httpx.AsyncClient(transport=transport, base_url="http://gateway.test")

    return _make


@pytest.fixture
def app_client(make_app_client) -> httpx.AsyncClient:
    return make_app_client()
