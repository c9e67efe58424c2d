from __future__ import annotations

from typing import Dict, Tuple

# Mod token (lowercase) -> namespace prefix of extraction ids.
MOD_PREFIXES: Dict[str, str] = {
    "forestry": "forestry",
    "extrabees": "extrabees",
    "magicbees": "magicbees",
    "careerbees": "careerbees",
    "meatballcraft": "gendustry",
}

# Default merge order; earlier mods win collisions under keep-first.
MOD_ORDER: Tuple[str, ...] = (
    "forestry",
    "extrabees",
    "careerbees",
    "magicbees",
    "meatballcraft",
)

COLLISION_POLICIES = ("keep-first", "overwrite", "error")
DEFAULT_COLLISION_POLICY = "keep-first"

# Condition key in intermediate records -> requirement key in mutations.jsonc.
REQUIREMENT_KEYS: Tuple[Tuple[str, str], ...] = (
    ("temperature", "temperature"),
    ("humidity", "humidity"),
    ("biome", "biome"),
    ("dateRange", "dateRange"),
    ("timeOfDay", "timeOfDay"),
    ("block", "block"),
    ("requiredBlock", "block"),
    ("moonPhase", "moonPhase"),
    ("moonPhaseBonus", "moonPhaseBonus"),
    ("thaumcraftVis", "thaumcraftVis"),
    ("requireExplosion", "requireExplosion"),
    ("requirePlayer", "requirePlayer"),
    ("dimension", "dimension"),
)

SECRET_CONDITION = "isSecret"

COMB_MARKER = "comb"

BEES_FILE = "bees.jsonc"
MUTATIONS_FILE = "mutations.jsonc"
COMBS_FILE = "combs.jsonc"
DIAGNOSTICS_FILE = "diagnostics.json"

BUILD_CONFIG_FILES = ("beetree.jsonc", "beetree.json", ".beetree.json")
