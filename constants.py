"""
Canonical shared constants for the Qi Ascension game.

Realm, generator and faction catalogs plus the initial save payload.
Every other module reads the catalogs from here; nothing in this module is
persisted.
"""

from typing import Any, Dict, List

# ---------------------------------------------------------------------------
# Worlds & realms
# ---------------------------------------------------------------------------

WORLDS: List[str] = [
    "Mortal World",
    "Upper World",
    "Deity Realm",
    "Zenith Realm",
    "Sage Realms",
    "Primordial Chaos Realms",
    "Supreme Realms",
]

REALMS: List[Dict[str, Any]] = [
    # Mortal World (index 0)
    {"id": 1, "name": "Qi Refinement", "world_index": 0, "stages": 9, "description": "Refining qi into the body."},
    {"id": 2, "name": "Foundation Establishment", "world_index": 0, "stages": 9, "description": "Building the dao foundation."},
    {"id": 3, "name": "Golden Core", "world_index": 0, "stages": 9, "description": "Condensing a core of power."},
    {"id": 4, "name": "Nascent Soul", "world_index": 0, "stages": 9, "description": "Birthing the spiritual self."},
    {"id": 5, "name": "Soul Formation", "world_index": 0, "stages": 9, "description": "Expanding the soul's domain."},
    {"id": 6, "name": "Void Amalgamation", "world_index": 0, "stages": 9, "description": "Merging with the void."},
    {"id": 7, "name": "Body Integration", "world_index": 0, "stages": 9, "description": "Fusing body and spirit."},
    {"id": 8, "name": "Tribulation Transcendence", "world_index": 0, "stages": 9, "description": "Facing heavenly lightning."},
    {"id": 9, "name": "Mahayana", "world_index": 0, "stages": 9, "description": "The great vehicle of ascension."},
    # Upper World (index 1)
    {"id": 10, "name": "Loose Immortal", "world_index": 1, "stages": 4, "description": "Shedding the mortal coil."},
    {"id": 11, "name": "Earth Immortal", "world_index": 1, "stages": 4, "description": "Rooted in the immortal earth."},
    {"id": 12, "name": "Earth Immortal of Grand Unity", "world_index": 1, "stages": 4, "description": "One with the earth."},
    {"id": 13, "name": "Heaven Immortal", "world_index": 1, "stages": 4, "description": "Ascending to the heavens."},
    {"id": 14, "name": "Heaven Immortal of Grand Unity", "world_index": 1, "stages": 4, "description": "One with the heavens."},
    {"id": 15, "name": "True Immortal", "world_index": 1, "stages": 4, "description": "Understanding the true self."},
    {"id": 16, "name": "True Immortal of Grand Unity", "world_index": 1, "stages": 4, "description": "True unity achieved."},
    {"id": 17, "name": "Mystic Immortal", "world_index": 1, "stages": 4, "description": "Grasping mystic arts."},
    {"id": 18, "name": "Mystic Immortal of Grand Unity", "world_index": 1, "stages": 4, "description": "Mastery of mystic unity."},
    {"id": 19, "name": "Golden Immortal", "world_index": 1, "stages": 4, "description": "Indestructible golden body."},
    {"id": 20, "name": "Golden Immortal of Grand Unity", "world_index": 1, "stages": 4, "description": "Supreme golden unity."},
    {"id": 21, "name": "Immortal Emperor", "world_index": 1, "stages": 9, "description": "Ruler of immortals."},
    {"id": 22, "name": "Providence Immortal Emperor", "world_index": 1, "stages": 3, "description": "Governing fate."},
    {"id": 23, "name": "Great Dao Immortal Emperor", "world_index": 1, "stages": 3, "description": "Touching the Great Dao."},
    {"id": 24, "name": "Perfect Immortal Emperor", "world_index": 1, "stages": 3, "description": "Perfection achieved."},
    # Deity Realm (index 2)
    {"id": 25, "name": "Mystic Divine Origin", "world_index": 2, "stages": 6, "description": "Origin of divinity."},
    # Zenith Realm (index 3)
    {"id": 26, "name": "Zenith Heaven", "world_index": 3, "stages": 4, "description": "Peak of the heavens."},
    # Sage Realms (index 4)
    {"id": 27, "name": "Quasi-Sage", "world_index": 4, "stages": 3, "description": "Approaching sagehood."},
    {"id": 28, "name": "Heavenly Dao Sage", "world_index": 4, "stages": 4, "description": "Sage of the Heavenly Dao."},
    # Primordial Chaos Realms (index 5)
    {"id": 29, "name": "Freedom Primordial Chaos", "world_index": 5, "stages": 3, "description": "Chaos unbound."},
    {"id": 30, "name": "Great Dao Primordial Chaos", "world_index": 5, "stages": 4, "description": "Order within chaos."},
    # Supreme Realms (index 6)
    {"id": 31, "name": "Great Dao Supreme", "world_index": 6, "stages": 3, "description": "Supreme among the Dao."},
    {"id": 32, "name": "Dao Creator", "world_index": 6, "stages": 3, "description": "Creator of Daos."},
    {"id": 33, "name": "Creator Lord", "world_index": 6, "stages": 3, "description": "Lord of Creation."},
    {"id": 34, "name": "Final Ultimate Supreme", "world_index": 6, "stages": 3, "description": "The Absolute End."},
]

for _realm in REALMS:
    _realm["world"] = WORLDS[_realm["world_index"]]

REALM_BY_ID: Dict[int, Dict[str, Any]] = {r["id"]: r for r in REALMS}

MIN_REALM_ID = REALMS[0]["id"]
MAX_REALM_ID = REALMS[-1]["id"]

# ---------------------------------------------------------------------------
# Progression tuning
# ---------------------------------------------------------------------------

WORLD_MULTIPLIER_STEP = 1.0
REALM_MULTIPLIER_BASE = 1.9
STAGE_MULTIPLIER_BASE = 1.5
MULTIPLIER_ROUNDING_THRESHOLD = 1000.0

REQUIRED_QI_BASE = 100_000
REQUIRED_QI_GROWTH = 2.5

# Single growth constant for every generator price, displayed or charged.
GENERATOR_COST_GROWTH = 1.15

# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------

GENERATORS: List[Dict[str, Any]] = [
    {
        "key": "meditation_mat",
        "label": "Meditation Mat",
        "click_power_bonus": 1.0,
        "base_cost": 15,
        "base_production": 0.1,
        "description": "A simple mat to aid focus.",
    },
    {
        "key": "spirit_well",
        "label": "Spirit Well",
        "click_power_bonus": 8.0,
        "base_cost": 100,
        "base_production": 1.0,
        "description": "Draws ambient qi from the earth.",
    },
]

GENERATOR_BY_KEY: Dict[str, Dict[str, Any]] = {g["key"]: g for g in GENERATORS}
GENERATOR_KEYS: List[str] = [g["key"] for g in GENERATORS]

# ---------------------------------------------------------------------------
# Factions
# ---------------------------------------------------------------------------

FACTION_RIGHTEOUS = "righteous"
FACTION_DEMONIC = "demonic"
FACTION_HEAVENLY = "heavenly"

FACTIONS: List[Dict[str, str]] = [
    {"id": FACTION_RIGHTEOUS, "label": "Righteous Sect", "description": "+10% Click Power"},
    {"id": FACTION_DEMONIC, "label": "Demonic Path", "description": "+10% Click Power"},
    {"id": FACTION_HEAVENLY, "label": "Heavenly Dao", "description": "-10% Realm Breakthrough Cost"},
]

FACTION_BY_ID: Dict[str, Dict[str, str]] = {f["id"]: f for f in FACTIONS}

CLICK_BOOST_FACTIONS = frozenset({FACTION_RIGHTEOUS, FACTION_DEMONIC})
CLICK_BOOST_FACTOR = 1.1

QI_DISCOUNT_FACTIONS = frozenset({FACTION_HEAVENLY})
BREAKTHROUGH_DISCOUNT_FACTOR = 0.9

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

THEMES = ("light", "dark")
DEFAULT_THEME = "dark"

# ---------------------------------------------------------------------------
# Initial save payload (same JSON shape as the remote body)
# ---------------------------------------------------------------------------

INITIAL_STATE: Dict[str, Any] = {
    "resources": {"qi": 0.0, "totalQi": 0.0, "ascensionPoints": 0.0},
    "generators": {key: 0 for key in GENERATOR_KEYS},
    "realm": {
        "id": MIN_REALM_ID,
        "stage": 1,
        "name": REALMS[0]["name"],
        "world": REALMS[0]["world"],
        "multiplier": 1.0,
    },
    "faction": None,
    "upgrades": [],
    "achievements": [],
    "settings": {"theme": DEFAULT_THEME},
    "stats": {"qiPerTap": 1.0},
    "lastSaveTime": 0,
}
