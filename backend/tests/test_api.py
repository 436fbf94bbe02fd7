"""API integration tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from section_cache.api import dependencies as deps
from section_cache.app import app


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_run_without_sources_is_not_found(client: TestClient) -> None:
    resp = client.post("/runs", json={})
    assert resp.status_code == 404


def test_register_source_and_train(tmp_path: Path, client: TestClient) -> None:
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "guide.md").write_text("# Intro\n\nHello there, this is the guide.\n\n# Usage\n\nRun it.")

    source_resp = client.post("/sources", json={"uri": str(docs), "kind": "folder", "label": "Docs"})
    assert source_resp.status_code == 200
    source = source_resp.json()
    assert source["uri"].startswith("file://")
    assert client.get("/sources").json()[0]["id"] == source["id"]

    run_resp = client.post("/runs", json={"sources": [source["id"]]})
    assert run_resp.status_code == 202
    deps.get_runner().join(timeout=10)

    state = client.get("/runs/state").json()
    assert state["state"] == "idle"
    assert state["running"] is False
    assert state["stats"]["processed"] == 1
    assert state["errors"] == []

    rerun = client.post("/runs", json={})
    assert rerun.status_code == 202
    deps.get_runner().join(timeout=10)
    assert client.get("/runs/state").json()["stats"]["skipped"] == 1


def test_unknown_source_is_rejected(client: TestClient) -> None:
    resp = client.post("/runs", json={"sources": ["src_missing"]})
    assert resp.status_code == 404


def test_cancel_when_idle(client: TestClient) -> None:
    resp = client.post("/runs/cancel")
    assert resp.status_code == 200
    assert resp.json()["state"] == "idle"


def test_metrics_endpoint(client: TestClient) -> None:
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "secc_run_duration_seconds" in resp.text
