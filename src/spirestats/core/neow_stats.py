"""
Neow bonus statistics.

For every character, and for all characters together, counts how often each
starting bonus was chosen and how many of those runs were won. Only a
victory on floor 57 or above (the heart) counts as a win here.
"""

from typing import Optional, Sequence

from spirestats.core.models import ALL_CHARACTERS, NeowBonusStats, Run
from spirestats.core.stats_cache import RunIndex, build_run_index

WINNING_FLOOR = 57
ALL_KEY = "all"

_BONUS_PREFIX = "neowBonus."

# character value (or "all") -> bonus -> stats
NeowStats = dict[str, dict[str, NeowBonusStats]]


def neow_bonus_key(run: Run) -> Optional[str]:
    """The run's Neow bonus without the "neowBonus." prefix, if recorded."""
    bonus = run.run_data.neow_bonus
    if not bonus:
        return None
    if bonus.startswith(_BONUS_PREFIX):
        bonus = bonus[len(_BONUS_PREFIX):]
    return bonus or None


def is_heart_win(run: Run) -> bool:
    return run.victory and run.floor_reached >= WINNING_FLOOR


def compute_neow_stats(runs: Sequence[Run], index: Optional[RunIndex] = None) -> NeowStats:
    """
    Aggregate Neow bonus choices per character and across characters.

    Characters with no run that recorded a bonus are left out. The "all"
    entry sums the per-character counts.
    """
    if index is None:
        index = build_run_index(runs)

    result: NeowStats = {}
    for character in ALL_CHARACTERS:
        own, recent = index[character]
        by_bonus: dict[str, NeowBonusStats] = {}

        for run in own:
            bonus = neow_bonus_key(run)
            if bonus is None:
                continue
            stats = by_bonus.setdefault(bonus, NeowBonusStats())
            stats.total_selected += 1
            if is_heart_win(run):
                stats.total_wins += 1

        for run in recent:
            bonus = neow_bonus_key(run)
            if bonus is None:
                continue
            stats = by_bonus[bonus]
            stats.last50_selected += 1
            if is_heart_win(run):
                stats.last50_wins += 1

        if by_bonus:
            result[character.value] = by_bonus

    totals: dict[str, NeowBonusStats] = {}
    for by_bonus in result.values():
        for bonus, stats in by_bonus.items():
            total = totals.setdefault(bonus, NeowBonusStats())
            total.total_selected += stats.total_selected
            total.total_wins += stats.total_wins
            total.last50_selected += stats.last50_selected
            total.last50_wins += stats.last50_wins
    result[ALL_KEY] = totals

    return result
