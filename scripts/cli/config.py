from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from _fs import read_jsonc
from hierarchy import MAX_RELAXATION_PASSES
from reconcile.constants import (
    BUILD_CONFIG_FILES,
    COLLISION_POLICIES,
    DEFAULT_COLLISION_POLICY,
    MOD_ORDER,
    MOD_PREFIXES,
)

DEFAULT_OUT_DIR = "data"
INTERMEDIATE_SUFFIX = "_intermediate.json"


@dataclass
class BuildConfig:
    mods: List[str] = field(default_factory=lambda: list(MOD_ORDER))
    collision_policy: str = DEFAULT_COLLISION_POLICY
    max_passes: int = MAX_RELAXATION_PASSES
    mod_prefixes: Dict[str, str] = field(default_factory=lambda: dict(MOD_PREFIXES))
    out: Optional[str] = None
    source: Optional[str] = None


def parse_mods(value: str) -> List[str]:
    mods: List[str] = []
    for part in value.split(","):
        part = part.strip()
        if part and part not in mods:
            mods.append(part)
    return mods


def load_build_config(root: Path, warnings: List[str], path: Optional[Path] = None) -> BuildConfig:
    """Read beetree.jsonc (or an explicit file); bad entries fall back to defaults."""
    config = BuildConfig()
    candidates = [path] if path is not None else [root / name for name in BUILD_CONFIG_FILES]
    for candidate in candidates:
        if not candidate.exists():
            if path is not None:
                warnings.append(f"Config file not found: {candidate}")
            continue
        config.source = candidate.name
        try:
            payload = read_jsonc(candidate)
        except (OSError, json.JSONDecodeError) as exc:
            warnings.append(f"Failed to parse {candidate.name}: {exc}")
            return config
        if not isinstance(payload, dict):
            warnings.append(f"Invalid {candidate.name}: expected a JSON object")
            return config
        apply_config_payload(config, payload, warnings)
        return config
    return config


def apply_config_payload(config: BuildConfig, payload: Dict[str, Any], warnings: List[str]) -> None:
    mods = payload.get("mods")
    if isinstance(mods, str):
        config.mods = parse_mods(mods)
    elif isinstance(mods, list):
        config.mods = [str(item) for item in mods if isinstance(item, str) and item.strip()]
    elif mods is not None:
        warnings.append("Ignoring 'mods': expected a list of names or files")

    policy = payload.get("collision_policy")
    if policy is not None:
        if policy in COLLISION_POLICIES:
            config.collision_policy = policy
        else:
            warnings.append(
                f"Ignoring collision_policy {policy!r}: expected one of {', '.join(COLLISION_POLICIES)}"
            )

    max_passes = payload.get("max_passes")
    if max_passes is not None:
        if isinstance(max_passes, int) and not isinstance(max_passes, bool) and max_passes > 0:
            config.max_passes = max_passes
        else:
            warnings.append(f"Ignoring max_passes {max_passes!r}: expected a positive integer")

    prefixes = payload.get("mod_prefixes")
    if isinstance(prefixes, dict):
        for mod, prefix in prefixes.items():
            if isinstance(prefix, str) and prefix:
                config.mod_prefixes[str(mod).lower()] = prefix
    elif prefixes is not None:
        warnings.append("Ignoring 'mod_prefixes': expected an object")

    out = payload.get("out")
    if isinstance(out, str) and out.strip():
        config.out = out.strip()


def resolve_mod_paths(mods: List[str], input_dir: Path) -> List[Path]:
    """Map mod names to `<mod>_intermediate.json` under input_dir; paths pass through."""
    paths: List[Path] = []
    for mod in mods:
        if mod.endswith(".json") or "/" in mod:
            path = Path(mod)
            paths.append(path if path.is_absolute() else input_dir / path)
        else:
            paths.append(input_dir / f"{mod.lower()}{INTERMEDIATE_SUFFIX}")
    return paths


def resolve_out_dir(root: Path, out_arg: Optional[str], config: BuildConfig) -> Path:
    out = out_arg or config.out or DEFAULT_OUT_DIR
    out_path = Path(out)
    if out_path.is_absolute():
        return out_path
    return (root / out_path).resolve()
