from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, Iterable, List, Mapping, Optional, Tuple

from records import MutationRecord, SpeciesRecord
from utils import DUPLICATE_MUTATION, UNRESOLVED_REFERENCE, Diagnostics
from .constants import MOD_PREFIXES, REQUIREMENT_KEYS, SECRET_CONDITION
from .resolver import resolve_reference


@dataclass
class ChildEntry:
    species: str
    probability: float
    requirements: Dict[str, Any] = field(default_factory=dict)
    is_secret: bool = False

    def requirements_key(self) -> str:
        return json.dumps(self.requirements, sort_keys=True, ensure_ascii=True)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"species": self.species, "probability": self.probability}
        if self.requirements:
            payload["requirements"] = self.requirements
        if self.is_secret:
            payload["isSecret"] = True
        return payload


@dataclass
class MutationGroup:
    parents: Tuple[str, str]
    children: List[ChildEntry] = field(default_factory=list)

    @property
    def key(self) -> str:
        return "|".join(self.parents)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "parents": list(self.parents),
            "children": [child.to_payload() for child in self.children],
        }


def parent_pair(parent1: str, parent2: str) -> Tuple[str, str]:
    first, second = sorted((parent1, parent2))
    return first, second


def _present(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, (str, list, tuple, dict, set)) and not value:
        return False
    return True


def requirements_from_conditions(conditions: Mapping[str, Any]) -> Dict[str, Any]:
    requirements: Dict[str, Any] = {}
    for source_key, target_key in REQUIREMENT_KEYS:
        value = conditions.get(source_key)
        if not _present(value) or target_key in requirements:
            continue
        requirements[target_key] = value
    return requirements


def resolve_mutation(
    mutation: MutationRecord,
    species_ids: Collection[str],
    *,
    symbols: Optional[Mapping[str, str]] = None,
    prefixes: Mapping[str, str] = MOD_PREFIXES,
) -> Tuple[Optional[Tuple[str, str, str]], List[str]]:
    """Resolve parent1/parent2/offspring; returns (ids or None, unresolved refs)."""
    resolved: List[Optional[str]] = []
    missing: List[str] = []
    for role, ref in (
        ("parent1", mutation.parent1),
        ("parent2", mutation.parent2),
        ("offspring", mutation.offspring),
    ):
        target = resolve_reference(ref, species_ids, symbols=symbols, prefixes=prefixes)
        if target is None:
            missing.append(f"{role}: {ref}")
        resolved.append(target)
    if missing:
        return None, missing
    return (resolved[0], resolved[1], resolved[2]), []  # type: ignore[return-value]


def aggregate_mutations(
    mutations: Iterable[MutationRecord],
    species: Mapping[str, SpeciesRecord],
    *,
    diagnostics: Diagnostics,
    symbols: Optional[Mapping[str, Mapping[str, str]]] = None,
    prefixes: Mapping[str, str] = MOD_PREFIXES,
    public: bool = True,
) -> List[MutationGroup]:
    """Group resolved mutations by unordered parent pair.

    `symbols` maps a record-set label to that set's symbol index; a mutation
    resolves symbolic names only against the set it came from. With `public`
    the groups use `Mod:Name` keys, otherwise extraction ids.
    """
    species_ids = species.keys()
    symbols = symbols or {}
    groups: Dict[Tuple[str, str], MutationGroup] = {}
    seen: Dict[Tuple[str, str], set] = {}

    def key_for(sid: str) -> str:
        return species[sid].key if public else sid

    for mutation in mutations:
        scope = symbols.get(mutation.origin or "")
        ids, missing = resolve_mutation(
            mutation, species_ids, symbols=scope, prefixes=prefixes
        )
        if ids is None:
            diagnostics.add(
                UNRESOLVED_REFERENCE,
                f"Skipping mutation {mutation.offspring}: missing {', '.join(missing)} "
                f"({mutation.describe_source()})",
                offspring=mutation.offspring,
                missing=missing,
                source=mutation.describe_source(),
            )
            continue
        parent1, parent2, offspring = (key_for(sid) for sid in ids)
        pair = parent_pair(parent1, parent2)
        group = groups.get(pair)
        if group is None:
            group = groups[pair] = MutationGroup(parents=pair)
            seen[pair] = set()
        entry = ChildEntry(
            species=offspring,
            probability=mutation.chance / 100,
            requirements=requirements_from_conditions(mutation.conditions),
            is_secret=bool(mutation.conditions.get(SECRET_CONDITION)),
        )
        identity = (entry.species, entry.requirements_key())
        if identity in seen[pair]:
            diagnostics.add(
                DUPLICATE_MUTATION,
                f"Duplicate mutation {pair[0]} + {pair[1]} -> {offspring} collapsed "
                f"({mutation.describe_source()})",
                parents=list(pair),
                offspring=offspring,
            )
            continue
        seen[pair].add(identity)
        group.children.append(entry)

    ordered = [groups[pair] for pair in sorted(groups)]
    for group in ordered:
        group.children.sort(key=lambda child: (child.species, child.requirements_key()))
    return ordered


def mutations_payload(groups: Iterable[MutationGroup]) -> List[Dict[str, Any]]:
    return [group.to_payload() for group in groups]


def groups_from_payload(payload: Any) -> List[MutationGroup]:
    """Read mutations.jsonc content back into groups (no re-resolution)."""
    groups: List[MutationGroup] = []
    if not isinstance(payload, list):
        return groups
    for raw in payload:
        if not isinstance(raw, dict):
            continue
        parents = raw.get("parents")
        if not isinstance(parents, list) or len(parents) != 2:
            continue
        group = MutationGroup(parents=(str(parents[0]), str(parents[1])))
        children = raw.get("children") or []
        # older datasets keyed children by species id
        if isinstance(children, dict):
            children = [dict(value or {}, species=key) for key, value in children.items()]
        for child in children:
            if not isinstance(child, dict) or not child.get("species"):
                continue
            group.children.append(
                ChildEntry(
                    species=str(child["species"]),
                    probability=float(child.get("probability") or 0.0),
                    requirements=dict(child.get("requirements") or {}),
                    is_secret=child.get("isSecret") is True,
                )
            )
        groups.append(group)
    return groups
