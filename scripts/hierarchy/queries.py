from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from utils import Diagnostics

from .builder import MAX_RELAXATION_PASSES, Hierarchy, assign_generations


def _walk(hierarchy: Hierarchy, node_id: str, *, upward: bool) -> Set[str]:
    start = hierarchy.get(node_id)
    if start is None:
        return set()
    seen: Set[str] = set()
    stack = list(start.parents if upward else start.children)
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        node = hierarchy.get(current)
        if node is None:
            continue
        seen.add(current)
        stack.extend(node.parents if upward else node.children)
    seen.discard(node_id)
    return seen


def ancestors(hierarchy: Hierarchy, node_id: str) -> Set[str]:
    """Every known species reachable through parent links, excluding `node_id`."""
    return _walk(hierarchy, node_id, upward=True)


def descendants(hierarchy: Hierarchy, node_id: str) -> Set[str]:
    return _walk(hierarchy, node_id, upward=False)


def lineage_path(hierarchy: Hierarchy, node_id: str) -> Set[str]:
    if hierarchy.get(node_id) is None:
        return set()
    return ancestors(hierarchy, node_id) | descendants(hierarchy, node_id) | {node_id}


def filtered_generations(
    hierarchy: Hierarchy,
    ids: Iterable[str],
    *,
    max_passes: int = MAX_RELAXATION_PASSES,
    diagnostics: Optional[Diagnostics] = None,
) -> Dict[str, int]:
    """Recompute generations inside a subset of the hierarchy.

    Parents outside the subset are dropped from each combination; a
    combination with one parent left counts as that parent paired with
    itself. A node whose parents all fall outside the subset is a root at 0.
    """
    subset: List[str] = []
    for node_id in ids:
        if hierarchy.get(node_id) is not None and node_id not in subset:
            subset.append(node_id)
    members = set(subset)
    combinations: Dict[str, Optional[List[Tuple[str, str]]]] = {}
    for node_id in subset:
        node = hierarchy.node_map[node_id]
        combos: List[Tuple[str, str]] = []
        for combo in node.parent_combinations:
            inside = [parent for parent in combo if parent in members]
            if not inside:
                continue
            pair = (inside[0], inside[-1])
            if pair not in combos:
                combos.append(pair)
        combinations[node_id] = combos
    generation, _ = assign_generations(
        subset,
        combinations,
        diagnostics=diagnostics if diagnostics is not None else Diagnostics(),
        flags=defaultdict(set),
        max_passes=max_passes,
    )
    return {node_id: generation[node_id] for node_id in subset}
