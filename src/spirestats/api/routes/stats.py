"""Card, relic and Neow bonus statistics API routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from spirestats.api.dependencies import get_library
from spirestats.api.schemas import (
    CacheInfoResponse,
    ItemStatsResponse,
    NeowBonusStatsResponse,
    NeowStatsResponse,
)
from spirestats.collector.library import RunLibrary
from spirestats.core.models import normalize_character
from spirestats.core.neow_stats import ALL_KEY

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/cards/{card_key}", response_model=ItemStatsResponse)
def card_stats(card_key: str, library: RunLibrary = Depends(get_library)) -> ItemStatsResponse:
    """
    Per-character statistics for a card.

    The key may be any spelling of the card ("Bash+1", "bash").
    """
    return ItemStatsResponse(**library.stats_for_card(card_key).to_dict())


@router.get("/relics/{relic_key}", response_model=ItemStatsResponse)
def relic_stats(relic_key: str, library: RunLibrary = Depends(get_library)) -> ItemStatsResponse:
    """Per-character statistics for a relic."""
    return ItemStatsResponse(**library.stats_for_relic(relic_key).to_dict())


@router.get("/neow", response_model=NeowStatsResponse)
def neow_stats(
    character: Optional[str] = None,
    library: RunLibrary = Depends(get_library),
) -> NeowStatsResponse:
    """
    Neow bonus statistics per character plus an "all" total.

    Pass `character` (any spelling, or "all") to get a single entry.
    """
    stats = library.neow_stats()

    if character is not None:
        if character.lower() == ALL_KEY:
            name = ALL_KEY
        else:
            resolved = normalize_character(character)
            if resolved is None:
                raise HTTPException(status_code=400, detail=f"Unknown character: {character}")
            name = resolved.value
        stats = {name: stats.get(name, {})}

    return NeowStatsResponse(
        characters={
            name: {
                bonus: NeowBonusStatsResponse(**entry.to_dict())
                for bonus, entry in by_bonus.items()
            }
            for name, by_bonus in stats.items()
        }
    )


@router.get("/cache", response_model=CacheInfoResponse)
def cache_info(library: RunLibrary = Depends(get_library)) -> CacheInfoResponse:
    return CacheInfoResponse(**library.stats_cache.info())


@router.delete("/cache", response_model=CacheInfoResponse)
def clear_cache(library: RunLibrary = Depends(get_library)) -> CacheInfoResponse:
    """Drop every cached statistic."""
    library.stats_cache.invalidate()
    return CacheInfoResponse(**library.stats_cache.info())
