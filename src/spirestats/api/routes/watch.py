"""Live folder watch API routes."""

from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Request

from spirestats.api.dependencies import get_library
from spirestats.api.schemas import (
    RunResponse,
    WatchEventsResponse,
    WatchRequest,
    WatchStatusResponse,
)
from spirestats.collector.library import RunLibrary

router = APIRouter(prefix="/api/watch", tags=["watch"])


def _status(library: RunLibrary) -> WatchStatusResponse:
    watched = library.watcher.watched_path
    return WatchStatusResponse(
        watching=library.watcher.is_watching,
        watched_path=str(watched) if watched else None,
    )


@router.get("", response_model=WatchStatusResponse)
def watch_status(library: RunLibrary = Depends(get_library)) -> WatchStatusResponse:
    return _status(library)


@router.post("", response_model=WatchStatusResponse)
def start_watch(
    request: WatchRequest,
    library: RunLibrary = Depends(get_library),
) -> WatchStatusResponse:
    """Start watching a run folder for new .run files."""
    try:
        library.start_watching(Path(request.folder_path))
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _status(library)


@router.delete("", response_model=WatchStatusResponse)
def stop_watch(library: RunLibrary = Depends(get_library)) -> WatchStatusResponse:
    library.stop_watching()
    return _status(library)


@router.get("/events", response_model=WatchEventsResponse)
def drain_events(request: Request) -> WatchEventsResponse:
    """Runs detected since the last call. They are stored on the next load."""
    events = request.app.state.watch_events
    runs = []
    while events:
        runs.append(RunResponse(**events.popleft().to_dict()))
    return WatchEventsResponse(runs=runs)
