"""Runs API routes."""

from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException

from spirestats.api.dependencies import get_library
from spirestats.api.schemas import (
    ExportRequest,
    ExportResponse,
    ImportRequest,
    ImportResponse,
    LoadRunsRequest,
    LoadRunsResponse,
    RunFolderResponse,
    RunListResponse,
    RunResponse,
)
from spirestats.collector.library import RunLibrary
from spirestats.core.models import Run

router = APIRouter(prefix="/api/runs", tags=["runs"])


def _run_to_response(run: Run) -> RunResponse:
    return RunResponse(**run.to_dict())


@router.get("", response_model=RunListResponse)
def list_runs(library: RunLibrary = Depends(get_library)) -> RunListResponse:
    """Get every stored run, newest first. An empty list means no data yet."""
    runs = library.get_all_runs()
    return RunListResponse(runs=[_run_to_response(r) for r in runs], total=len(runs))


@router.post("/load", response_model=LoadRunsResponse)
def load_runs(
    request: LoadRunsRequest,
    library: RunLibrary = Depends(get_library),
) -> LoadRunsResponse:
    """Ingest a run folder and return the merged run list."""
    try:
        report = library.ingest(Path(request.folder_path))
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return LoadRunsResponse(
        runs=[_run_to_response(r) for r in report.runs],
        total=len(report.runs),
        inserted=len(report.inserted),
        duplicates=len(report.duplicates),
        failed=len(report.failed),
        rejected=len(report.rejected),
    )


@router.get("/folder", response_model=RunFolderResponse)
def get_run_folder(library: RunLibrary = Depends(get_library)) -> RunFolderResponse:
    """Get the last ingested run folder."""
    return RunFolderResponse(folder_path=library.get_run_folder())


@router.post("/export", response_model=ExportResponse)
def export_runs(
    request: ExportRequest,
    library: RunLibrary = Depends(get_library),
) -> ExportResponse:
    """Export every stored run to a JSON file inside the data directory."""
    try:
        path = library.export_all(Path(request.path) if request.path else None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ExportResponse(path=str(path), count=library.repository.get_run_count())


@router.post("/import", response_model=ImportResponse)
def import_runs(
    request: ImportRequest,
    library: RunLibrary = Depends(get_library),
) -> ImportResponse:
    """Import runs from an export file, replacing runs with the same id."""
    try:
        count = library.import_all(Path(request.path))
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid import file: {e}")
    return ImportResponse(imported=count)


@router.get("/{run_id}", response_model=RunResponse)
def get_run(run_id: str, library: RunLibrary = Depends(get_library)) -> RunResponse:
    run = library.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return _run_to_response(run)


@router.delete("/{run_id}")
def delete_run(run_id: str, library: RunLibrary = Depends(get_library)) -> dict:
    """Delete a stored run."""
    if not library.delete_run(run_id):
        raise HTTPException(status_code=404, detail="Run not found")
    return {"success": True, "run_id": run_id}
