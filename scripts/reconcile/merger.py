from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from records import BranchRecord, MutationRecord, RecordSet, SpeciesRecord
from utils import ID_COLLISION, Diagnostics
from .constants import COLLISION_POLICIES, DEFAULT_COLLISION_POLICY


class MergeError(Exception):
    """Raised by the `error` collision policy once all collisions are recorded."""


@dataclass
class MergedDataset:
    species: Dict[str, SpeciesRecord] = field(default_factory=dict)
    mutations: List[MutationRecord] = field(default_factory=list)
    branches: Dict[str, BranchRecord] = field(default_factory=dict)
    owners: Dict[str, str] = field(default_factory=dict)
    symbols: Dict[str, Dict[str, str]] = field(default_factory=dict)
    labels: List[str] = field(default_factory=list)

    def strip_symbols(self) -> None:
        for record in self.species.values():
            record.symbol = None
        self.symbols = {}


def conflicting_fields(first: SpeciesRecord, second: SpeciesRecord) -> List[str]:
    left = first.identity()
    right = second.identity()
    return sorted(key for key in left if left[key] != right[key])


def merge_record_sets(
    record_sets: Iterable[RecordSet],
    *,
    diagnostics: Diagnostics,
    policy: str = DEFAULT_COLLISION_POLICY,
) -> MergedDataset:
    if policy not in COLLISION_POLICIES:
        raise ValueError(f"Unknown collision policy: {policy}")
    merged = MergedDataset()
    collisions = 0
    for record_set in record_sets:
        label = record_set.label
        merged.labels.append(label)
        merged.symbols[label] = record_set.symbol_index()
        for sid, record in record_set.species.items():
            existing = merged.species.get(sid)
            if existing is None:
                merged.species[sid] = record
                merged.owners[sid] = label
                continue
            collisions += 1
            fields = conflicting_fields(existing, record)
            first_owner = merged.owners[sid]
            if fields:
                note = f"conflicting {', '.join(fields)}"
            else:
                note = "identical records"
            keeper = label if policy == "overwrite" else first_owner
            diagnostics.add(
                ID_COLLISION,
                f"Species {sid} declared by {first_owner} and {label} ({note}); keeping {keeper}",
                id=sid,
                mods=[first_owner, label],
                fields=fields,
                kept=keeper,
            )
            if policy == "overwrite":
                merged.species[sid] = record
                merged.owners[sid] = label
        merged.mutations.extend(record_set.mutations)
        for bid, branch in record_set.branches.items():
            merged.branches.setdefault(bid, branch)
    if policy == "error" and collisions:
        raise MergeError(f"{collisions} species id collision(s); see diagnostics")
    return merged
