"""Pytest configuration helpers.

This conftest puts `backend/` on `sys.path` so tests can import the
`promptcraft` package regardless of how pytest is invoked, and points the
data directory at a throwaway location before any settings are loaded.
"""
import os
import sys
import tempfile

import httpx
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND = os.path.join(ROOT, "backend")
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="promptcraft-tests-")
for _key in (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GOOGLE_API_KEY",
    "XAI_API_KEY",
    "A1111_API_URL",
    "COMFYUI_API_URL",
    "INVOKEAI_API_URL",
):
    os.environ[_key] = ""
for _key in (
    "OPENAI_BASE_URL",
    "ANTHROPIC_BASE_URL",
    "GOOGLE_BASE_URL",
    "XAI_BASE_URL",
):
    os.environ.pop(_key, None)


class Recorder:
    """Collects requests seen by a MockTransport handler."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []
        self._handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)


@pytest.fixture
def mock_client():
    """Factory: build an AsyncClient whose responses come from ``handler``."""
    def _make(handler):
        recorder = Recorder(handler)
        client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        return client, recorder

    return _make


class FakeSleep:
    """Stands in for asyncio.sleep; records requested delays without waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_sleep():
    return FakeSleep()
