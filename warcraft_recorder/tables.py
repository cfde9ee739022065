"""Static lookup tables used to label detected sessions."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

ARENA_MAPS: Dict[str, str] = {
    "559": "Nagrand Arena",
    "562": "Blade's Edge Arena",
    "572": "Ruins of Lordaeron",
    "617": "Dalaran Sewers",
    "980": "Tol'viron Arena",
    "1134": "Tiger's Peak",
    "1552": "Black Rook Hold Arena",
    "1504": "Hook Point",
    "2167": "Maldraxxus Arena",
    "2620": "Empyrean Domain",
    "2563": "Enigma Crucible",
}

# Ordered: the first keyword found in a line wins.
ARENA_KEYWORDS: List[Tuple[str, str]] = [
    ("Nagrand", "Nagrand Arena"),
    ("Blade's Edge", "Blade's Edge Arena"),
    ("Blades Edge", "Blade's Edge Arena"),
    ("Ruins of Lordaeron", "Ruins of Lordaeron"),
    ("Dalaran", "Dalaran Sewers"),
    ("Tol'viron", "Tol'viron Arena"),
    ("Tolviron", "Tol'viron Arena"),
    ("Tiger's Peak", "The Tiger's Peak"),
    ("Tigers Peak", "The Tiger's Peak"),
    ("Black Rook", "Black Rook Hold Arena"),
    ("Hook Point", "Hook Point"),
    ("Maldraxxus", "Maldraxxus Arena"),
    ("Empyrean Domain", "The Empyrean Domain"),
    ("Enigma Crucible", "Enigma Crucible"),
]

DUNGEON_MAPS: Dict[str, str] = {
    "2284": "Sanguine Depths",
    "2285": "Spires of Ascension",
    "2286": "The Necrotic Wake",
    "2287": "Halls of Atonement",
    "2289": "Plaguefall",
    "2290": "Mists of Tirna Scithe",
    "2291": "De Other Side",
    "2293": "Theater of Pain",
}

RAID_INSTANCES: Dict[str, str] = {
    "2296": "Castle Nathria",
    "2450": "Sanctum of Domination",
    "2481": "Sepulcher of the First Ones",
    "2522": "Vault of the Incarnates",
    "2569": "Aberrus, the Shadowed Crucible",
}

DUNGEON_KEYWORDS: List[Tuple[str, str]] = [
    ("Necrotic Wake", "The Necrotic Wake"),
    *((name, name) for name in DUNGEON_MAPS.values() if name != "The Necrotic Wake"),
]

RAID_KEYWORDS: List[Tuple[str, str]] = [(name, name) for name in RAID_INSTANCES.values()]

# Difficulty words used by text encounter lines, checked in this order.
RAID_DIFFICULTY_WORDS: List[Tuple[str, int]] = [("Normal", 0), ("Heroic", 1), ("Mythic", 2)]

# ENCOUNTER_START difficulty IDs that belong to raids; dungeon IDs are ignored.
RAID_DIFFICULTY_IDS = frozenset({3, 4, 5, 6, 7, 9, 14, 15, 16, 17, 33})
RAID_DIFFICULTY_LEVELS: Dict[int, int] = {14: 0, 15: 1, 16: 2}

BATTLEGROUND_MAPS: Dict[str, str] = {
    "30": "Alterac Valley",
    "489": "Warsong Gulch",
    "529": "Arathi Basin",
    "566": "Eye of the Storm",
    "607": "Strand of the Ancients",
    "628": "Isle of Conquest",
    "726": "Twin Peaks",
    "1105": "Deepwind Gorge",
}

BATTLEGROUND_KEYWORDS: List[Tuple[str, str]] = [
    (name, name) for name in BATTLEGROUND_MAPS.values()
]


def lookup_keyword(text: str, table: Sequence[Tuple[str, str]]) -> Optional[str]:
    for keyword, name in table:
        if keyword in text:
            return name
    return None


def unknown_label(kind_name: str, identifier: Optional[str]) -> str:
    return f"Unknown {kind_name} (ID: {identifier or '?'})"
