"""Run file parser - converts .run JSON payloads to Run objects."""

import json
import uuid
from pathlib import Path
from typing import Any, Optional

from spirestats.core.models import (
    CardChoice,
    Character,
    RelicObtained,
    Run,
    RunData,
    normalize_character,
)

RUN_FILE_EXTENSION = ".run"

# Keys mapped onto typed RunData fields; everything else goes to `extra`
_RUN_DATA_KEYS = frozenset(
    {"master_deck", "relics", "card_choices", "relics_obtained", "neow_bonus", "neow_cost"}
)


class RunParseError(ValueError):
    """A .run file could not be turned into a Run."""


def _as_int(value: Any, name: str) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise RunParseError(f"Field '{name}' is not an integer: {value!r}") from e


def _as_count(value: Any, name: str) -> int:
    number = _as_int(value, name)
    if number < 0:
        raise RunParseError(f"Field '{name}' must not be negative: {value!r}")
    return number


def _as_bool(value: Any, name: str) -> bool:
    """JSON true/false only; a missing value is False."""
    if value is None:
        return False
    if not isinstance(value, bool):
        raise RunParseError(f"Field '{name}' is not a boolean: {value!r}")
    return value


def _lenient_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def run_data_from_dict(payload: dict[str, Any]) -> RunData:
    """
    Build the structured payload view.

    Malformed entries inside the lists are dropped rather than rejected;
    unknown keys are kept verbatim.
    """
    card_choices = []
    for entry in payload.get("card_choices") or []:
        if not isinstance(entry, dict) or not isinstance(entry.get("picked"), str):
            continue
        card_choices.append(
            CardChoice(
                picked=entry["picked"],
                not_picked=tuple(_string_list(entry.get("not_picked"))),
                floor=_lenient_int(entry.get("floor", 0)),
            )
        )

    relics_obtained = []
    for entry in payload.get("relics_obtained") or []:
        if not isinstance(entry, dict) or not isinstance(entry.get("key"), str):
            continue
        relics_obtained.append(
            RelicObtained(key=entry["key"], floor=_lenient_int(entry.get("floor", 0)))
        )

    return RunData(
        master_deck=_string_list(payload.get("master_deck")),
        relics=_string_list(payload.get("relics")),
        card_choices=card_choices,
        relics_obtained=relics_obtained,
        neow_bonus=_optional_str(payload.get("neow_bonus")),
        neow_cost=_optional_str(payload.get("neow_cost")),
        extra={k: v for k, v in payload.items() if k not in _RUN_DATA_KEYS},
    )


def parse_run_payload(
    payload: Any,
    run_id: Optional[str] = None,
    character: Optional[Character] = None,
) -> Run:
    """
    Convert a decoded .run payload into a Run.

    Args:
        payload: Decoded JSON (must be an object)
        run_id: Identifier to use (normally the file stem)
        character: Archetype implied by the containing folder, if known

    Raises:
        RunParseError: Payload is not an object, the archetype cannot be
            resolved, a count is negative or not an integer, or victory
            is not a boolean
    """
    if not isinstance(payload, dict):
        raise RunParseError(f"Run payload must be a JSON object, got {type(payload).__name__}")

    if character is None:
        raw = payload.get("character_chosen") or payload.get("character")
        character = normalize_character(raw)
        if character is None:
            raise RunParseError(f"Unknown character: {raw!r}")

    if not run_id:
        play_id = payload.get("play_id")
        run_id = play_id if isinstance(play_id, str) and play_id else uuid.uuid4().hex

    return Run(
        id=run_id,
        character=character,
        victory=_as_bool(payload.get("victory"), "victory"),
        ascension_level=_as_count(payload.get("ascension_level"), "ascension_level"),
        floor_reached=_as_count(payload.get("floor_reached"), "floor_reached"),
        playtime=_as_count(payload.get("playtime"), "playtime"),
        score=_as_count(payload.get("score"), "score"),
        timestamp=_as_int(payload.get("timestamp"), "timestamp"),
        run_data=run_data_from_dict(payload),
    )


def parse_run_file(
    path: Path,
    content: str,
    character: Optional[Character] = None,
) -> Run:
    """
    Parse the text of a .run file.

    The archetype comes from `character` when given, else from the parent
    folder name (IRONCLAD, THE_SILENT, ...), else from the payload.
    """
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as e:
        raise RunParseError(f"Invalid JSON in {path.name}: {e}") from e

    if character is None:
        character = normalize_character(path.parent.name)

    return parse_run_payload(payload, run_id=path.stem, character=character)


def run_from_dict(data: Any) -> Run:
    """
    Rebuild a Run from its exported form (Run.to_dict()).

    Raises:
        RunParseError: Entry is not a well-formed exported run
    """
    if not isinstance(data, dict):
        raise RunParseError("Exported run must be a JSON object")

    run_id = data.get("id")
    if not isinstance(run_id, str) or not run_id:
        raise RunParseError(f"Exported run has no id: {run_id!r}")

    character = normalize_character(data.get("character"))
    if character is None:
        raise RunParseError(f"Unknown character in run {run_id}: {data.get('character')!r}")

    payload = data.get("run_data") or {}
    if not isinstance(payload, dict):
        raise RunParseError(f"run_data of {run_id} must be an object")

    return Run(
        id=run_id,
        character=character,
        victory=_as_bool(data.get("victory"), "victory"),
        ascension_level=_as_count(data.get("ascension_level"), "ascension_level"),
        floor_reached=_as_count(data.get("floor_reached"), "floor_reached"),
        playtime=_as_count(data.get("playtime"), "playtime"),
        score=_as_count(data.get("score"), "score"),
        timestamp=_as_int(data.get("timestamp"), "timestamp"),
        run_data=run_data_from_dict(payload),
    )
