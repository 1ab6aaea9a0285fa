"""
Per-item statistics across characters, with a bounded cache.

Statistics are derived data: they are computed from the stored run list on a
cache miss and can be thrown away at any time.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Sequence

from spirestats.config.logging import get_logger
from spirestats.config.settings import DEFAULT_CACHE_TTL_SECONDS
from spirestats.core.canonical import canonicalize_card, canonicalize_relic
from spirestats.core.models import (
    ALL_CHARACTERS,
    AllCharacterStats,
    Character,
    CharacterStats,
    ItemKind,
    Run,
)

logger = get_logger(__name__)

RECENT_WINDOW = 50
DEFAULT_MAX_CACHE_SIZE = 100

_CANONICALIZERS: dict[ItemKind, Callable[[object], str]] = {
    ItemKind.CARD: canonicalize_card,
    ItemKind.RELIC: canonicalize_relic,
}

# character -> (all runs of that character, most recent RECENT_WINDOW of them)
RunIndex = dict[Character, tuple[list[Run], list[Run]]]


def build_run_index(runs: Sequence[Run]) -> RunIndex:
    """Split runs by character and pick each character's most recent runs."""
    index: RunIndex = {}
    for character in ALL_CHARACTERS:
        own = [run for run in runs if run.character is character]
        recent = sorted(own, key=lambda run: run.timestamp, reverse=True)[:RECENT_WINDOW]
        index[character] = (own, recent)
    return index


def _is_obtained(run: Run, kind: ItemKind, key: str) -> bool:
    if kind is ItemKind.CARD:
        return key in run.run_data.card_keys
    return key in run.run_data.relic_keys


def compute_stats(
    kind: ItemKind,
    canonical_key: str,
    runs: Sequence[Run],
    index: Optional[RunIndex] = None,
) -> AllCharacterStats:
    """
    Compute statistics for one canonical key from scratch.

    Args:
        kind: Card or relic
        canonical_key: Already-canonicalized item key
        runs: Every stored run
        index: Precomputed split of runs (built here when omitted)
    """
    if index is None:
        index = build_run_index(runs)

    result = AllCharacterStats(key=canonical_key, kind=kind)
    for character in ALL_CHARACTERS:
        own, recent = index[character]
        stats = CharacterStats(total_plays=len(own), recent50_plays=len(recent))

        for run in own:
            if _is_obtained(run, kind, canonical_key):
                stats.obtain_count += 1
                if run.victory:
                    stats.victory_count += 1

        for run in recent:
            if _is_obtained(run, kind, canonical_key):
                stats.recent50_obtain_count += 1
                if run.victory:
                    stats.recent50_victory_count += 1

        result.by_character[character] = stats
    return result


class StatsCache:
    """
    Two bounded caches of AllCharacterStats, one for cards and one for relics.

    When a cache is full, the entry inserted first is evicted; lookups do not
    change the order. All entries expire together `ttl_seconds` after the last
    full invalidation.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_CACHE_SIZE,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock

        self._lock = threading.Lock()
        self._caches: dict[ItemKind, OrderedDict[str, AllCharacterStats]] = {
            kind: OrderedDict() for kind in ItemKind
        }
        self._index_source: Optional[Sequence[Run]] = None
        self._index: Optional[RunIndex] = None
        self._generation = 0
        self._last_invalidation = clock()

    @property
    def generation(self) -> int:
        """Incremented by every full invalidation."""
        with self._lock:
            return self._generation

    def stats_for(
        self,
        kind: ItemKind,
        key: str,
        runs: Sequence[Run],
        generation: Optional[int] = None,
    ) -> AllCharacterStats:
        """
        Statistics for a raw item key over runs.

        The key is canonicalized with the kind's rule before lookup. A miss
        computes synchronously and stores the result.

        Args:
            kind: Card or relic
            key: Raw item key
            runs: Every stored run
            generation: Cache generation read before runs was loaded. When the
                cache has been invalidated since, the result is computed but
                not stored.
        """
        canonical_key = _CANONICALIZERS[kind](key)

        with self._lock:
            if self._clock() - self._last_invalidation > self.ttl_seconds:
                logger.debug("Stats cache expired")
                self._invalidate_locked()

            cache = self._caches[kind]
            cached = cache.get(canonical_key)
            if cached is not None:
                return cached

            if generation is not None and generation != self._generation:
                logger.debug(f"Not caching {kind.value} stats for {canonical_key}: run list is stale")
                return compute_stats(kind, canonical_key, runs)

            if self._index_source is not runs or self._index is None:
                self._index = build_run_index(runs)
                self._index_source = runs

            stats = compute_stats(kind, canonical_key, runs, self._index)
            cache[canonical_key] = stats
            while len(cache) > self.max_size:
                evicted, _ = cache.popitem(last=False)
                logger.debug(f"Evicted {kind.value} stats: {evicted}")
            return stats

    def stats_for_card(
        self, card_key: str, runs: Sequence[Run], generation: Optional[int] = None
    ) -> AllCharacterStats:
        return self.stats_for(ItemKind.CARD, card_key, runs, generation)

    def stats_for_relic(
        self, relic_key: str, runs: Sequence[Run], generation: Optional[int] = None
    ) -> AllCharacterStats:
        return self.stats_for(ItemKind.RELIC, relic_key, runs, generation)

    def invalidate(self) -> None:
        """Drop every cached entry and the run index; restart the TTL."""
        with self._lock:
            self._invalidate_locked()

    def _invalidate_locked(self) -> None:
        for cache in self._caches.values():
            cache.clear()
        self._index_source = None
        self._index = None
        self._generation += 1
        self._last_invalidation = self._clock()

    def set_max_size(self, max_size: int) -> None:
        """Change the per-kind bound. Clears the cache."""
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        with self._lock:
            self.max_size = max_size
            self._invalidate_locked()

    def size(self, kind: ItemKind) -> int:
        with self._lock:
            return len(self._caches[kind])

    def keys(self, kind: ItemKind) -> list[str]:
        """Cached keys of one kind, oldest insertion first."""
        with self._lock:
            return list(self._caches[kind])

    def info(self) -> dict:
        with self._lock:
            return {
                "card_entries": len(self._caches[ItemKind.CARD]),
                "relic_entries": len(self._caches[ItemKind.RELIC]),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "age_seconds": max(0.0, self._clock() - self._last_invalidation),
            }


# Computed shortly after startup so the first tooltips are instant
POPULAR_CARDS = (
    "Strike", "Defend", "Bash", "Shrug It Off", "Battle Trance", "Feel No Pain", "Corruption",
    "Neutralize", "Survivor", "Backflip", "Catalyst", "Wraith Form",
    "Zap", "Dualcast", "Glacier", "Defragment", "Echo Form",
    "Eruption", "Vigilance", "Talk to the Hand", "Tantrum", "Vault",
)

POPULAR_RELICS = (
    "Burning Blood", "Ring of the Snake", "Cracked Core", "Pure Water",
    "Anchor", "Pen Nib", "Kunai", "Shuriken",
    "Dead Branch", "Mango", "Torii", "Incense Burner",
    "Data Disk",
)


class StatsPrewarmer:
    """
    Fills the cache with popular cards, then popular relics, in small batches.

    Runs on a daemon thread and can be cancelled at any point. The run list
    is re-read for every batch, so an invalidation mid-warm is picked up.
    """

    def __init__(
        self,
        cache: StatsCache,
        runs_provider: Callable[[], Sequence[Run]],
        batch_size: int = 5,
        initial_delay: float = 3.0,
        batch_pause: float = 0.3,
        phase_pause: float = 0.5,
        cards: Sequence[str] = POPULAR_CARDS,
        relics: Sequence[str] = POPULAR_RELICS,
    ) -> None:
        self.cache = cache
        self._runs_provider = runs_provider
        self.batch_size = batch_size
        self.initial_delay = initial_delay
        self.batch_pause = batch_pause
        self.phase_pause = phase_pause
        self.cards = tuple(cards)
        self.relics = tuple(relics)

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.completed = threading.Event()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self.completed.clear()
        self._thread = threading.Thread(target=self._run, name="stats-prewarm", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None

    def _run(self) -> None:
        if self._stop_event.wait(self.initial_delay):
            return
        try:
            if not self._warm(ItemKind.CARD, self.cards):
                return
            if self._stop_event.wait(self.phase_pause):
                return
            if not self._warm(ItemKind.RELIC, self.relics):
                return
            logger.info("Stats prewarm complete")
            self.completed.set()
        except Exception as e:
            logger.warning(f"Stats prewarm failed: {e}")

    def _warm(self, kind: ItemKind, keys: Sequence[str]) -> bool:
        for start in range(0, len(keys), self.batch_size):
            batch = keys[start:start + self.batch_size]
            # Generation before runs, so an invalidation in between is detected
            generation = self.cache.generation
            runs = self._runs_provider()
            for key in batch:
                self.cache.stats_for(kind, key, runs, generation)
            logger.debug(f"Prewarmed {kind.value} batch {start + 1}-{start + len(batch)}/{len(keys)}")
            if start + self.batch_size < len(keys) and self._stop_event.wait(self.batch_pause):
                return False
        return not self._stop_event.is_set()
