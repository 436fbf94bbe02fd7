"""CLI entrypoint for Section Cache."""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Optional

import requests
import typer

app = typer.Typer(name="secc", help="Section Cache command-line interface")
sources_app = typer.Typer(name="sources")
app.add_typer(sources_app, name="sources")

DEFAULT_HOST = "http://127.0.0.1:5173"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("SECC_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    url = f"{_resolve_host(host)}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def ingest(
    source: Optional[list[str]] = typer.Option(None, "--source", help="Train a specific source ID (repeatable)"),
    force: bool = typer.Option(False, "--force", help="Re-embed files whose checksum is unchanged"),
    wait: bool = typer.Option(False, "--wait", help="Poll until the run finishes"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Start a training run over the registered sources."""
    body: dict[str, object] = {"force_refresh": force}
    if source:
        body["sources"] = list(source)
    state = _request("POST", "/runs", host=host, json=body).json()
    while wait and state["running"]:
        typer.echo(state["message"], err=True)
        time.sleep(1.0)
        state = _request("GET", "/runs/state", host=host).json()
    _echo(state)


@app.command()
def status(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    """Show the current run state."""
    _echo(_request("GET", "/runs/state", host=host).json())


@app.command()
def cancel(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    """Stop the active run after the file in progress."""
    _echo(_request("POST", "/runs/cancel", host=host).json())


@sources_app.command("list")
def list_sources(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List registered sources."""
    _echo(_request("GET", "/sources", host=host).json())


@sources_app.command("add")
def add_source(
    uri: Path = typer.Argument(..., help="Filesystem path of a folder or file"),
    label: Optional[str] = typer.Option(None, "--label", help="Friendly label"),
    include: Optional[str] = typer.Option(None, "--include", help="Include glob"),
    exclude: Optional[str] = typer.Option(None, "--exclude", help="Exclude glob"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Register a folder/file source."""
    path = uri.expanduser()
    payload = {
        "uri": str(path),
        "kind": "file" if path.is_file() else "folder",
        "label": label,
        "include_glob": include,
        "exclude_glob": exclude,
    }
    _echo(_request("POST", "/sources", host=host, json=payload).json())


if __name__ == "__main__":
    app()
