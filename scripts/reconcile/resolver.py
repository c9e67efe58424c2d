from __future__ import annotations

from typing import Collection, List, Mapping, Optional

from .constants import MOD_PREFIXES


def mod_prefix(mod: str, prefixes: Mapping[str, str] = MOD_PREFIXES) -> str:
    token = mod.strip().lower()
    return prefixes.get(token, token)


def capitalize_words(name: str, separator: str = "_") -> str:
    """'TE_ENDEARING' -> 'Te Endearing'."""
    parts = [part for part in name.split(separator) if part]
    return " ".join(part[:1].upper() + part[1:].lower() for part in parts)


def name_patterns(prefix: str, name: str) -> List[str]:
    return [
        f"{prefix}.{name.lower()}",
        f"{prefix}.species{name}",
        f"{prefix}.species.{name.lower()}",
    ]


def reference_candidates(
    ref: str,
    prefixes: Mapping[str, str] = MOD_PREFIXES,
) -> List[str]:
    """Candidate species ids for a `Mod:Name` reference, in priority order."""
    if ":" not in ref:
        return []
    mod, name = ref.split(":", 1)
    mod = mod.strip()
    name = name.strip()
    if not mod or not name:
        return []
    prefix = mod_prefix(mod, prefixes)
    candidates = name_patterns(prefix, name)
    if "_" in name:
        spaced = capitalize_words(name)
        candidates.extend(name_patterns(prefix, spaced))
        joined = name.replace("_", "")
        candidates.extend(name_patterns(prefix, joined))
        # enum constants become storage keys with only the first letter kept upper
        leading = joined[:1] + joined[1:].lower()
        candidates.extend(name_patterns(prefix, leading))
    seen = set()
    ordered: List[str] = []
    for candidate in candidates:
        if candidate not in seen:
            seen.add(candidate)
            ordered.append(candidate)
    return ordered


def resolve_reference(
    ref: Optional[str],
    species_ids: Collection[str],
    *,
    symbols: Optional[Mapping[str, str]] = None,
    prefixes: Mapping[str, str] = MOD_PREFIXES,
) -> Optional[str]:
    if not ref:
        return None
    ref = ref.strip()
    if ref in species_ids:
        return ref
    if symbols:
        target = symbols.get(ref)
        if target is not None and target in species_ids:
            return target
    for candidate in reference_candidates(ref, prefixes):
        if candidate in species_ids:
            return candidate
    return None

