"""
Canonical item keys.

Run files, card lists and user queries spell the same card or relic in many
ways ("Bash", "Bash+1", "bash"). Statistics are looked up and aggregated by the
canonical key only, so both stored payloads and incoming queries must pass
through the same function.
"""

import re
from typing import Any

# "+" or "+<n>" upgrade marker at the end of a card id
_UPGRADE_SUFFIX = re.compile(r"\+\d*$")
# Character color suffix: Strike_R, Defend_G, Zap_B, Eruption_P
_COLOR_SUFFIX = re.compile(r"_[rgbp]$", re.IGNORECASE)
# Composite ids built by card lists: "ironclad_Bash", "colorless_Apotheosis"
_CLASS_PREFIX = re.compile(r"^(ironclad|silent|defect|watcher|colorless|curse)_", re.IGNORECASE)
_LEADING_ARTICLE = re.compile(r"^the\s+", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

# Relic names whose generic normalization would not match the game's ids
RELIC_EXCEPTIONS: dict[str, str] = {
    "Data Disk": "DataDisk",
    "Frozen Egg": "FrozenEgg2",
    "Toxic Egg": "ToxicEgg2",
    "Molten Egg": "MoltenEgg2",
    "Gold-Plated Cables": "GoldPlatedCables",
    "Mercury Hourglass": "MercuryHourglass",
    "Bag of Marbles": "BagOfMarbles",
    "Bag of Preparation": "BagOfPreparation",
    "Orange Pellets": "OrangePellets",
    "Bronze Scales": "BronzeScales",
    "Wing Boots": "WingBoots",
    "Charon's Ashes": "CharonsAshes",
    "Symbiotic Virus": "SymbioticVirus",
    "Preserved Insect": "PreservedInsect",
    "Strike Dummy": "StrikeDummy",
    "Peace Pipe": "PeacePipe",
}

_RELIC_EXCEPTIONS_FOLDED = {name.lower(): key.lower() for name, key in RELIC_EXCEPTIONS.items()}


def canonicalize_card(label: Any) -> str:
    """
    Map a raw card label to its canonical key.

    Never raises; non-string input yields an empty key.
    """
    if not isinstance(label, str):
        return ""

    name = label.strip()
    name = _UPGRADE_SUFFIX.sub("", name)
    name = _COLOR_SUFFIX.sub("", name)
    name = _CLASS_PREFIX.sub("", name)
    name = _LEADING_ARTICLE.sub("", name)
    name = _WHITESPACE.sub("", name).lower()

    # Simple plural
    if name.endswith("s"):
        name = name[:-1]
    return name


def canonicalize_relic(label: Any) -> str:
    """
    Map a raw relic label to its canonical key.

    The exception table wins over the generic rule. Never raises.
    """
    if not isinstance(label, str):
        return ""

    name = label.strip()
    special = RELIC_EXCEPTIONS.get(name) or _RELIC_EXCEPTIONS_FOLDED.get(name.lower())
    if special:
        return special.lower()

    return _WHITESPACE.sub("", name).replace("-", "").lower()
