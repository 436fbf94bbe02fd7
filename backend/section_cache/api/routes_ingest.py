"""Training run API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from section_cache.api.dependencies import get_runner, get_store
from section_cache.core.errors import RunInProgressError
from section_cache.ingest.runner import BackgroundRunner
from section_cache.ingest.store import SectionStore
from section_cache.models.dto import RunRequest, RunStateResponse

router = APIRouter()


@router.post(
    "",
    response_model=RunStateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a training run in the background",
)
async def start_run(
    request: RunRequest,
    runner: BackgroundRunner = Depends(get_runner),
    store: SectionStore = Depends(get_store),
) -> RunStateResponse:
    sources = store.list_sources(request.sources)
    if not sources:
        raise HTTPException(status_code=404, detail="No matching sources")
    if request.sources:
        missing = set(request.sources) - {source.id for source in sources}
        if missing:
            raise HTTPException(status_code=404, detail=f"Unknown sources: {', '.join(sorted(missing))}")
    try:
        runner.start(sources, force_refresh=request.force_refresh)
    except RunInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return RunStateResponse(**runner.snapshot())


@router.get("/state", response_model=RunStateResponse, summary="Current run state")
async def run_state(runner: BackgroundRunner = Depends(get_runner)) -> RunStateResponse:
    return RunStateResponse(**runner.snapshot())


@router.post("/cancel", response_model=RunStateResponse, summary="Stop the active run after the current file")
async def cancel_run(runner: BackgroundRunner = Depends(get_runner)) -> RunStateResponse:
    runner.cancel()
    return RunStateResponse(**runner.snapshot())
