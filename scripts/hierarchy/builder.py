from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, TYPE_CHECKING

from records import split_public_key
from utils import (
    DANGLING_PARENT,
    MISSING_LINEAGE,
    NON_TERMINATING_RELAXATION,
    PROVISIONAL_GENERATION,
    RELAXATION_FALLBACK,
    Diagnostics,
)

if TYPE_CHECKING:
    from reconcile.mutations import MutationGroup

MAX_RELAXATION_PASSES = 20

FLAG_FORCED = "forced"
FLAG_PROVISIONAL = "provisional"
FLAG_MISSING_LINEAGE = "missing_lineage"
FLAG_DANGLING = "dangling"

# Nodes carrying these flags are exempt from the parent < child generation check.
FALLBACK_FLAGS = {FLAG_FORCED, FLAG_PROVISIONAL}


@dataclass
class HierarchyNode:
    id: str
    name: str
    mod: str
    generation: int = 0
    parent_combinations: List[List[str]] = field(default_factory=list)
    parents: List[str] = field(default_factory=list)
    children: List[str] = field(default_factory=list)
    flags: Set[str] = field(default_factory=set)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "mod": self.mod,
            "generation": self.generation,
            "parentCombinations": [list(combo) for combo in self.parent_combinations],
            "parents": list(self.parents),
            "children": list(self.children),
        }
        if self.flags:
            payload["flags"] = sorted(self.flags)
        return payload


@dataclass(frozen=True)
class HierarchyEdge:
    source: str
    target: str
    kind: str = "breeding"


@dataclass
class Hierarchy:
    nodes: List[HierarchyNode]
    edges: List[HierarchyEdge]
    node_map: Dict[str, HierarchyNode]
    diagnostics: Diagnostics
    passes: int = 0

    def get(self, node_id: str) -> Optional[HierarchyNode]:
        return self.node_map.get(node_id)

    def generations(self) -> Dict[int, List[str]]:
        grouped: Dict[int, List[str]] = defaultdict(list)
        for node in self.nodes:
            grouped[node.generation].append(node.id)
        return dict(sorted(grouped.items()))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "nodes": [node.to_payload() for node in self.nodes],
            "links": [
                {"source": edge.source, "target": edge.target, "type": edge.kind}
                for edge in self.edges
            ],
            "passes": self.passes,
        }


def _lineage_record(node_id: str) -> Dict[str, Any]:
    mod, name = split_public_key(node_id)
    return {"id": node_id, "name": name, "mod": mod, "parentCombinations": [], "children": []}


def lineage_from_dataset(
    bees: Mapping[str, Mapping[str, Any]],
    groups: Iterable[MutationGroup],
    *,
    placeholders: bool = True,
) -> Dict[str, Dict[str, Any]]:
    """Index mutations.jsonc groups by child: id -> {name, mod, parentCombinations, children}.

    Children missing from `bees` always get a placeholder record. Parents get
    one unless `placeholders` is off, in which case they stay dangling for
    the builder to report.
    """
    lineage: Dict[str, Dict[str, Any]] = {}
    for bee_id, info in bees.items():
        record = _lineage_record(bee_id)
        if isinstance(info, Mapping):
            record["name"] = info.get("name") or record["name"]
            record["mod"] = info.get("mod") or record["mod"]
        lineage[bee_id] = record
    for group in groups:
        parent1, parent2 = group.parents
        if placeholders:
            for parent in (parent1, parent2):
                lineage.setdefault(parent, _lineage_record(parent))
        for child in group.children:
            record = lineage.setdefault(child.species, _lineage_record(child.species))
            combo = [parent1, parent2]
            if combo not in record["parentCombinations"]:
                record["parentCombinations"].append(combo)
            for parent in (parent1, parent2):
                parent_record = lineage.get(parent)
                if parent_record is not None and child.species not in parent_record["children"]:
                    parent_record["children"].append(child.species)
    return lineage


def _normalize_combinations(
    node_id: str,
    raw: Any,
    diagnostics: Diagnostics,
) -> Optional[List[Tuple[str, str]]]:
    if raw is None:
        return None
    combos: List[Tuple[str, str]] = []
    for combo in raw if isinstance(raw, list) else []:
        if not isinstance(combo, (list, tuple)) or len(combo) != 2:
            diagnostics.warnings.append(f"{node_id}: ignoring malformed parent combination {combo!r}")
            continue
        pair = (str(combo[0]), str(combo[1]))
        if pair not in combos:
            combos.append(pair)
    return combos


def _combo_ready(combo: Tuple[str, str], generation: Mapping[str, int]) -> bool:
    return combo[0] in generation and combo[1] in generation


def _combo_depth(combo: Tuple[str, str], generation: Mapping[str, int]) -> int:
    return max(generation[combo[0]], generation[combo[1]])


def assign_generations(
    order: List[str],
    combinations: Mapping[str, Optional[List[Tuple[str, str]]]],
    *,
    diagnostics: Diagnostics,
    flags: Dict[str, Set[str]],
    max_passes: int = MAX_RELAXATION_PASSES,
) -> Tuple[Dict[str, int], int]:
    """Assign-once generation relaxation; returns (generation map, passes used).

    A node is assigned as soon as all of its live combinations (no unknown
    parent) are ready, taking 1 + the deepest ready combination. When a pass
    makes no progress, nodes with at least one ready combination are assigned
    from those alone and flagged provisional; this breaks lineage cycles.
    Nodes whose every combination names an unknown parent are forced to 0
    up front; whatever is left after the passes, or after `max_passes`, is
    forced to 0 as well.
    """
    known = set(order)
    generation: Dict[str, int] = {}
    live: Dict[str, List[Tuple[str, str]]] = {}

    for node_id in order:
        combos = combinations.get(node_id)
        if combos is None:
            generation[node_id] = 0
            flags[node_id].add(FLAG_MISSING_LINEAGE)
            diagnostics.add(
                MISSING_LINEAGE,
                f"{node_id} has no lineage data; treated as generation 0",
                id=node_id,
            )
            continue
        if not combos:
            generation[node_id] = 0
            continue
        live[node_id] = []
        reported: Set[str] = set()
        for combo in combos:
            missing = [parent for parent in combo if parent not in known]
            if not missing:
                live[node_id].append(combo)
                continue
            flags[node_id].add(FLAG_DANGLING)
            for parent in missing:
                if parent in reported:
                    continue
                reported.add(parent)
                diagnostics.add(
                    DANGLING_PARENT,
                    f"{node_id} names unknown parent {parent}",
                    id=node_id,
                    parent=parent,
                )
        if not live[node_id]:
            reason = "every parent combination names an unknown species"
            generation[node_id] = 0
            flags[node_id].add(FLAG_FORCED)
            diagnostics.add(
                RELAXATION_FALLBACK,
                f"{node_id} forced to generation 0: {reason}",
                id=node_id,
                reason=reason,
            )

    pending = [node_id for node_id in order if node_id not in generation]
    passes = 0
    changed = True
    while pending and changed and passes < max_passes:
        passes += 1
        changed = False
        for node_id in pending:
            combos = live[node_id]
            if combos and all(_combo_ready(combo, generation) for combo in combos):
                generation[node_id] = 1 + max(_combo_depth(combo, generation) for combo in combos)
                changed = True
        if not changed:
            snapshot = dict(generation)
            for node_id in pending:
                if node_id in generation:
                    continue
                ready = [combo for combo in live[node_id] if _combo_ready(combo, snapshot)]
                if not ready:
                    continue
                generation[node_id] = 1 + max(_combo_depth(combo, snapshot) for combo in ready)
                flags[node_id].add(FLAG_PROVISIONAL)
                diagnostics.add(
                    PROVISIONAL_GENERATION,
                    f"{node_id} assigned generation {generation[node_id]} from "
                    f"{len(ready)} of {len(live[node_id])} combinations (cyclic lineage)",
                    id=node_id,
                    generation=generation[node_id],
                )
                changed = True
        pending = [node_id for node_id in pending if node_id not in generation]

    capped = bool(pending) and changed and passes >= max_passes
    if capped:
        diagnostics.add(
            NON_TERMINATING_RELAXATION,
            f"Generation relaxation stopped after {passes} passes with {len(pending)} node(s) unassigned",
            passes=passes,
            pending=list(pending),
        )
    for node_id in pending:
        if capped:
            reason = "relaxation pass limit reached"
        else:
            reason = "no parent combination ever became ready"
        generation[node_id] = 0
        flags[node_id].add(FLAG_FORCED)
        diagnostics.add(
            RELAXATION_FALLBACK,
            f"{node_id} forced to generation 0: {reason}",
            id=node_id,
            reason=reason,
        )
    return generation, passes


def build_hierarchy(
    bees: Mapping[str, Any],
    *,
    diagnostics: Optional[Diagnostics] = None,
    max_passes: int = MAX_RELAXATION_PASSES,
) -> Hierarchy:
    """Build nodes, edges and generations from an id -> lineage record map.

    Each record may carry `name`, `mod` and `parentCombinations` (list of
    [parent1, parent2]). The hierarchy is only returned once every node has a
    generation.
    """
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    order = list(bees.keys())
    flags: Dict[str, Set[str]] = defaultdict(set)
    combinations: Dict[str, Optional[List[Tuple[str, str]]]] = {}
    for node_id in order:
        info = bees[node_id]
        raw = info.get("parentCombinations") if isinstance(info, Mapping) else None
        combinations[node_id] = _normalize_combinations(node_id, raw, diagnostics)

    generation, passes = assign_generations(
        order,
        combinations,
        diagnostics=diagnostics,
        flags=flags,
        max_passes=max_passes,
    )

    nodes: List[HierarchyNode] = []
    node_map: Dict[str, HierarchyNode] = {}
    for node_id in order:
        info = bees[node_id] if isinstance(bees[node_id], Mapping) else {}
        mod, short_name = split_public_key(node_id)
        combos = combinations[node_id] or []
        parents: List[str] = []
        for combo in combos:
            for parent in combo:
                if parent not in parents:
                    parents.append(parent)
        node = HierarchyNode(
            id=node_id,
            name=str(info.get("name") or short_name or node_id),
            mod=str(info.get("mod") or (mod if ":" in node_id else "Unknown")),
            generation=generation.get(node_id, 0),
            parent_combinations=[list(combo) for combo in combos],
            parents=parents,
            flags=set(flags.get(node_id, set())),
        )
        nodes.append(node)
        node_map[node_id] = node

    edges: List[HierarchyEdge] = []
    seen: Set[Tuple[str, str]] = set()
    for node in nodes:
        for parent in node.parents:
            parent_node = node_map.get(parent)
            if parent_node is None or (parent, node.id) in seen:
                continue
            seen.add((parent, node.id))
            edges.append(HierarchyEdge(source=parent, target=node.id))
            parent_node.children.append(node.id)

    return Hierarchy(
        nodes=nodes,
        edges=edges,
        node_map=node_map,
        diagnostics=diagnostics,
        passes=passes,
    )


def generation_violations(hierarchy: Hierarchy) -> List[HierarchyEdge]:
    """Edges where the child is not deeper than its parent, fallback nodes excluded."""
    violations: List[HierarchyEdge] = []
    for edge in hierarchy.edges:
        parent = hierarchy.node_map[edge.source]
        child = hierarchy.node_map[edge.target]
        if (parent.flags | child.flags) & FALLBACK_FLAGS:
            continue
        if child.generation <= parent.generation:
            violations.append(edge)
    return violations
