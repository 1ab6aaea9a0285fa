"""Settings API routes."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from spirestats.api.dependencies import get_library
from spirestats.api.schemas import PreferencesResponse, PreferencesUpdateRequest
from spirestats.collector.library import RunLibrary

router = APIRouter(prefix="/api/settings", tags=["settings"])

# Preferences that can be written via API; run_folder follows ingestion
ALLOWED_SETTINGS = {
    "enable_stats_tooltip",
    "precalculate_stats",
    "low_memory_mode",
    "max_cache_size",
    "show_stats",
}


@router.get("", response_model=PreferencesResponse)
def get_settings(library: RunLibrary = Depends(get_library)) -> PreferencesResponse:
    return PreferencesResponse(**asdict(library.preferences))


@router.put("", response_model=PreferencesResponse)
def update_settings(
    request: PreferencesUpdateRequest,
    library: RunLibrary = Depends(get_library),
) -> PreferencesResponse:
    """
    Update preferences.

    Only whitelisted preferences can be modified via API. Changing the cache
    size, low-memory mode or stats visibility clears cached statistics.
    """
    changes = {k: v for k, v in request.model_dump(exclude_none=True).items() if k in ALLOWED_SETTINGS}
    try:
        prefs = library.update_preferences(**changes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PreferencesResponse(**asdict(prefs))
