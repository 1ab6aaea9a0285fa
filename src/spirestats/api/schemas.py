"""Pydantic schemas for API requests and responses."""

from typing import Any, Optional

from pydantic import BaseModel


class RunResponse(BaseModel):
    """Single stored run."""

    id: str
    character: str
    victory: bool
    ascension_level: int
    floor_reached: int
    playtime: int  # Seconds
    score: int
    timestamp: int
    run_data: dict[str, Any]


class RunListResponse(BaseModel):
    """Every stored run, newest first."""

    runs: list[RunResponse]
    total: int


class LoadRunsRequest(BaseModel):
    folder_path: str


class LoadRunsResponse(BaseModel):
    """Result of an ingest pass."""

    runs: list[RunResponse]
    total: int
    inserted: int
    duplicates: int
    failed: int
    rejected: int


class RunFolderResponse(BaseModel):
    folder_path: Optional[str] = None


class ExportRequest(BaseModel):
    path: Optional[str] = None


class ExportResponse(BaseModel):
    path: str
    count: int


class ImportRequest(BaseModel):
    path: str


class ImportResponse(BaseModel):
    imported: int


class CharacterStatsResponse(BaseModel):
    """Counts and derived rates (percent) for one character."""

    total_plays: int
    obtain_count: int
    victory_count: int
    recent50_plays: int
    recent50_obtain_count: int
    recent50_victory_count: int
    obtain_rate: float
    victory_obtain_rate: float
    win_rate: float
    recent50_obtain_rate: float
    recent50_win_rate: float


class ItemStatsResponse(BaseModel):
    """Statistics for one canonical card or relic key."""

    key: str
    kind: str
    ironclad: CharacterStatsResponse
    silent: CharacterStatsResponse
    defect: CharacterStatsResponse
    watcher: CharacterStatsResponse


class NeowBonusStatsResponse(BaseModel):
    """One Neow bonus; wins are victories on floor 57 or above."""

    total_selected: int
    total_wins: int
    last50_selected: int
    last50_wins: int
    total_win_rate: float
    last50_win_rate: float


class NeowStatsResponse(BaseModel):
    """Bonus statistics keyed by character ("ironclad", ...) and "all"."""

    characters: dict[str, dict[str, NeowBonusStatsResponse]]


class CacheInfoResponse(BaseModel):
    card_entries: int
    relic_entries: int
    max_size: int
    ttl_seconds: float
    age_seconds: float


class PreferencesResponse(BaseModel):
    enable_stats_tooltip: bool
    precalculate_stats: bool
    low_memory_mode: bool
    max_cache_size: int
    show_stats: bool
    run_folder: Optional[str] = None


class PreferencesUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    enable_stats_tooltip: Optional[bool] = None
    precalculate_stats: Optional[bool] = None
    low_memory_mode: Optional[bool] = None
    max_cache_size: Optional[int] = None
    show_stats: Optional[bool] = None


class WatchRequest(BaseModel):
    folder_path: str


class WatchStatusResponse(BaseModel):
    watching: bool
    watched_path: Optional[str] = None


class WatchEventsResponse(BaseModel):
    """Runs reported by the watcher since the last poll (not yet stored)."""

    runs: list[RunResponse]


class StatusResponse(BaseModel):
    """Server status."""

    status: str
    version: str
    run_count: int
    db_path: str
    run_folder: Optional[str] = None
    watching: bool
    watched_path: Optional[str] = None
    cache: CacheInfoResponse
