"""
Tests for the terminal client's HTTP call.

Run with:
$ pytest -q tests/test_cli.py
"""

import httpx

from agentic_chatbot.client import cli
from agentic_chatbot.config import settings


class _RecordingClient:
    """``httpx.Client`` stand-in that answers every POST with a fixed body."""

    instances = []

    def __init__(self, timeout=None):
        self.timeout = timeout
        self.posts = []
        _RecordingClient.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def post(self, url, json=None):
        self.posts.append((url, json))
        return httpx.Response(200, json={"result": "hi"})


def test_client_waits_for_every_timed_stage(monkeypatch) -> None:
    """Planner, execution and narration may each use a full server timeout."""

    monkeypatch.setattr(settings, "RESPONSE_TIMEOUT_SECONDS", 30)

    assert cli.client_timeout() > 3 * 30


def test_call_api_uses_client_timeout(monkeypatch) -> None:
    monkeypatch.setattr(settings, "RESPONSE_TIMEOUT_SECONDS", 10)
    monkeypatch.setattr(cli.httpx, "Client", _RecordingClient)
    _RecordingClient.instances.clear()

    body = cli.call_api("/chatbot", {"query": "hello", "messages": []})

    assert body == {"result": "hi"}
    (client,) = _RecordingClient.instances
    assert client.timeout == cli.client_timeout()
    assert client.posts[0][0].endswith("/chatbot")
