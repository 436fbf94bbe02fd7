"""Tests for the command-line client."""

from __future__ import annotations

import json

import pytest
import typer
from typer.testing import CliRunner

from section_cache.cli import main


class _Response:
    def __init__(self, payload, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload)

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        return self._payload


@pytest.fixture
def calls(monkeypatch: pytest.MonkeyPatch) -> list[tuple]:
    recorded: list[tuple] = []
    state = {"state": "idle", "running": False, "message": "", "errors": []}

    def fake_request(method, url, timeout=None, **kwargs):
        recorded.append((method, url, kwargs.get("json")))
        if url.endswith("/missing"):
            return _Response({"detail": "nope"}, status_code=404)
        return _Response(state)

    monkeypatch.setattr(main.requests, "request", fake_request)
    monkeypatch.delenv("SECC_HOST", raising=False)
    return recorded


def test_ingest_posts_run_request(calls) -> None:
    result = CliRunner().invoke(main.app, ["ingest", "--source", "src_1", "--force"])
    assert result.exit_code == 0
    assert calls == [("POST", "http://127.0.0.1:5173/runs", {"force_refresh": True, "sources": ["src_1"]})]
    assert json.loads(result.stdout)["state"] == "idle"


def test_host_from_environment(calls, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SECC_HOST", "http://backend:9000/")
    result = CliRunner().invoke(main.app, ["status"])
    assert result.exit_code == 0
    assert calls[0][:2] == ("GET", "http://backend:9000/runs/state")


def test_failed_request_exits_non_zero(calls) -> None:
    with pytest.raises(typer.Exit):
        main._request("GET", "/missing")


def test_sources_add(calls, tmp_path) -> None:
    result = CliRunner().invoke(main.app, ["sources", "add", str(tmp_path), "--label", "Docs"])
    assert result.exit_code == 0
    method, url, payload = calls[0]
    assert (method, url) == ("POST", "http://127.0.0.1:5173/sources")
    assert payload["kind"] == "folder"
    assert payload["label"] == "Docs"
