"""Core domain models - dataclasses with no I/O dependencies."""

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, Optional

from spirestats.core.canonical import canonicalize_card, canonicalize_relic


class Character(Enum):
    """The four playable archetypes."""

    IRONCLAD = "ironclad"
    SILENT = "silent"
    DEFECT = "defect"
    WATCHER = "watcher"

    @property
    def folder_names(self) -> tuple[str, ...]:
        """Subdirectory names the game uses for this character's run files."""
        return _FOLDER_NAMES[self]

    @property
    def folder_name(self) -> str:
        """Canonical subdirectory name (as written by the game)."""
        return self.folder_names[0]


_FOLDER_NAMES: dict[Character, tuple[str, ...]] = {
    Character.IRONCLAD: ("IRONCLAD",),
    Character.SILENT: ("THE_SILENT", "SILENT"),
    Character.DEFECT: ("DEFECT",),
    Character.WATCHER: ("WATCHER",),
}

ALL_CHARACTERS: tuple[Character, ...] = tuple(Character)


def normalize_character(name: Any) -> Optional[Character]:
    """
    Map a raw character name to a Character.

    "THE_SILENT" -> SILENT, "Ironclad" -> IRONCLAD. Unknown names return None.
    """
    if not isinstance(name, str):
        return None
    cleaned = name.strip().lower()
    for prefix in ("the_", "the ", "the-"):
        if cleaned.startswith(prefix):
            cleaned = cleaned[len(prefix):].lstrip("_- ")
            break
    try:
        return Character(cleaned)
    except ValueError:
        return None


@dataclass(frozen=True)
class CardChoice:
    """One card reward screen: the card taken and the ones skipped."""

    picked: str
    not_picked: tuple[str, ...] = ()
    floor: int = 0


@dataclass(frozen=True)
class RelicObtained:
    """A relic picked up on a given floor."""

    key: str
    floor: int = 0


@dataclass
class RunData:
    """
    Structured view of a .run payload.

    Fields used by statistics are typed; everything else is kept verbatim
    in `extra` so the original payload can be reproduced.
    """

    master_deck: list[str] = field(default_factory=list)
    relics: list[str] = field(default_factory=list)
    card_choices: list[CardChoice] = field(default_factory=list)
    relics_obtained: list[RelicObtained] = field(default_factory=list)
    neow_bonus: Optional[str] = None
    neow_cost: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @cached_property
    def card_keys(self) -> frozenset[str]:
        """Canonical keys of every card in the final deck or picked on the way."""
        keys = {canonicalize_card(card) for card in self.master_deck}
        keys.update(canonicalize_card(choice.picked) for choice in self.card_choices)
        keys.discard("")
        return frozenset(keys)

    @cached_property
    def relic_keys(self) -> frozenset[str]:
        """Canonical keys of every relic held at the end or obtained on the way."""
        keys = {canonicalize_relic(relic) for relic in self.relics}
        keys.update(canonicalize_relic(relic.key) for relic in self.relics_obtained)
        keys.discard("")
        return frozenset(keys)

    def to_dict(self) -> dict[str, Any]:
        """Reproduce the payload as JSON-compatible data."""
        data = dict(self.extra)
        data["master_deck"] = list(self.master_deck)
        data["relics"] = list(self.relics)
        data["card_choices"] = [
            {"picked": c.picked, "not_picked": list(c.not_picked), "floor": c.floor}
            for c in self.card_choices
        ]
        data["relics_obtained"] = [
            {"key": r.key, "floor": r.floor} for r in self.relics_obtained
        ]
        if self.neow_bonus is not None:
            data["neow_bonus"] = self.neow_bonus
        if self.neow_cost is not None:
            data["neow_cost"] = self.neow_cost
        return data


@dataclass(frozen=True)
class Run:
    """A single recorded game attempt."""

    id: str
    character: Character
    victory: bool
    ascension_level: int
    floor_reached: int
    playtime: int  # Seconds
    score: int
    timestamp: int  # Seconds since epoch, unique per stored run
    run_data: RunData = field(default_factory=RunData, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "character": self.character.value,
            "victory": self.victory,
            "ascension_level": self.ascension_level,
            "floor_reached": self.floor_reached,
            "playtime": self.playtime,
            "score": self.score,
            "timestamp": self.timestamp,
            "run_data": self.run_data.to_dict(),
        }


class ItemKind(Enum):
    """Kinds of item the statistics layer aggregates over."""

    CARD = "card"
    RELIC = "relic"


def _percent(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator * 100


@dataclass
class CharacterStats:
    """Counts for one item and one character; rates derive from the counts."""

    total_plays: int = 0
    obtain_count: int = 0
    victory_count: int = 0
    recent50_plays: int = 0
    recent50_obtain_count: int = 0
    recent50_victory_count: int = 0

    @property
    def obtain_rate(self) -> float:
        return _percent(self.obtain_count, self.total_plays)

    @property
    def victory_obtain_rate(self) -> float:
        return _percent(self.victory_count, self.total_plays)

    @property
    def win_rate(self) -> float:
        return _percent(self.victory_count, self.obtain_count)

    @property
    def recent50_obtain_rate(self) -> float:
        return _percent(self.recent50_obtain_count, self.recent50_plays)

    @property
    def recent50_win_rate(self) -> float:
        return _percent(self.recent50_victory_count, self.recent50_obtain_count)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_plays": self.total_plays,
            "obtain_count": self.obtain_count,
            "victory_count": self.victory_count,
            "recent50_plays": self.recent50_plays,
            "recent50_obtain_count": self.recent50_obtain_count,
            "recent50_victory_count": self.recent50_victory_count,
            "obtain_rate": self.obtain_rate,
            "victory_obtain_rate": self.victory_obtain_rate,
            "win_rate": self.win_rate,
            "recent50_obtain_rate": self.recent50_obtain_rate,
            "recent50_win_rate": self.recent50_win_rate,
        }


@dataclass
class NeowBonusStats:
    """How often one Neow bonus was chosen, and how those runs ended."""

    total_selected: int = 0
    total_wins: int = 0
    last50_selected: int = 0
    last50_wins: int = 0

    @property
    def total_win_rate(self) -> float:
        return _percent(self.total_wins, self.total_selected)

    @property
    def last50_win_rate(self) -> float:
        return _percent(self.last50_wins, self.last50_selected)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_selected": self.total_selected,
            "total_wins": self.total_wins,
            "last50_selected": self.last50_selected,
            "last50_wins": self.last50_wins,
            "total_win_rate": self.total_win_rate,
            "last50_win_rate": self.last50_win_rate,
        }


@dataclass
class AllCharacterStats:
    """Statistics for one canonical item key across all four characters."""

    key: str
    kind: ItemKind
    by_character: dict[Character, CharacterStats] = field(
        default_factory=lambda: {c: CharacterStats() for c in ALL_CHARACTERS}
    )

    def __getitem__(self, character: Character) -> CharacterStats:
        return self.by_character[character]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"key": self.key, "kind": self.kind.value}
        for character in ALL_CHARACTERS:
            data[character.value] = self.by_character[character].to_dict()
        return data
