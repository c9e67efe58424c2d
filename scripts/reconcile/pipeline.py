from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from hierarchy import MAX_RELAXATION_PASSES, Hierarchy, build_hierarchy, lineage_from_dataset
from records import RecordError, RecordSet, load_record_set, save_record_set
from utils import Diagnostics, progress
from .combs import Comb, extract_combs
from .constants import DEFAULT_COLLISION_POLICY, MOD_PREFIXES
from .merger import MergedDataset, merge_record_sets
from .mutations import MutationGroup, aggregate_mutations
from .output import bees_payload, dataset_summary, write_dataset


@dataclass
class PipelineOptions:
    collision_policy: str = DEFAULT_COLLISION_POLICY
    prefixes: Mapping[str, str] = field(default_factory=lambda: dict(MOD_PREFIXES))
    max_passes: int = MAX_RELAXATION_PASSES
    save_intermediate: Optional[Path] = None
    quiet: bool = False


@dataclass
class PipelineContext:
    """State of one build run; created per invocation and discarded afterwards."""

    record_sets: List[RecordSet]
    options: PipelineOptions
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


@dataclass
class BuildResult:
    merged: MergedDataset
    bees: Dict[str, Dict[str, Any]]
    groups: List[MutationGroup]
    combs: Dict[str, Comb]
    hierarchy: Hierarchy
    diagnostics: Diagnostics

    def summary_lines(self) -> List[str]:
        return dataset_summary(
            self.bees,
            self.groups,
            self.combs,
            parsed_mutations=len(self.merged.mutations),
        )


def load_record_sets(paths: Sequence[Path], warnings: List[str]) -> List[RecordSet]:
    """Load intermediate files in order; unreadable files are skipped with a warning."""
    record_sets: List[RecordSet] = []
    for path in paths:
        if not path.exists():
            warnings.append(f"Intermediate file not found: {path}")
            continue
        try:
            record_sets.append(load_record_set(path))
        except (OSError, json.JSONDecodeError) as exc:
            warnings.append(f"Failed to read {path.name}: {exc}")
    return record_sets


def _progress(ctx: PipelineContext, message: str, done: bool = False) -> None:
    if not ctx.options.quiet:
        progress(message, done=done)


def run_pipeline(ctx: PipelineContext) -> BuildResult:
    """Merge, aggregate and shape the public dataset.

    Raises RecordError/MergeError only for structural problems; everything
    else lands in ctx.diagnostics.
    """
    if not ctx.record_sets:
        raise RecordError("No intermediate record sets to build from")
    options = ctx.options
    diagnostics = ctx.diagnostics

    _progress(ctx, f"Merging {len(ctx.record_sets)} record set(s)")
    merged = merge_record_sets(
        ctx.record_sets,
        diagnostics=diagnostics,
        policy=options.collision_policy,
    )
    _progress(ctx, f"Merged {len(merged.species)} species", done=True)

    _progress(ctx, f"Resolving {len(merged.mutations)} mutation(s)")
    groups = aggregate_mutations(
        merged.mutations,
        merged.species,
        diagnostics=diagnostics,
        symbols=merged.symbols,
        prefixes=options.prefixes,
    )
    # resolution is finished for every set; resolver hints must not leak out
    merged.strip_symbols()
    for record_set in ctx.record_sets:
        record_set.strip_symbols()
    _progress(ctx, f"Built {len(groups)} mutation group(s)", done=True)

    if options.save_intermediate:
        for record_set in ctx.record_sets:
            filename = f"{record_set.mod.lower()}_intermediate.json"
            save_record_set(options.save_intermediate / filename, record_set)

    bees = bees_payload(merged.species, diagnostics=diagnostics)
    combs = extract_combs(merged.species.values())

    _progress(ctx, "Assigning generations")
    hierarchy = build_hierarchy(
        lineage_from_dataset(bees, groups, placeholders=False),
        diagnostics=diagnostics,
        max_passes=options.max_passes,
    )
    _progress(
        ctx,
        f"Built hierarchy: {len(hierarchy.nodes)} nodes, {len(hierarchy.edges)} edges "
        f"in {hierarchy.passes} pass(es)",
        done=True,
    )
    return BuildResult(
        merged=merged,
        bees=bees,
        groups=groups,
        combs=combs,
        hierarchy=hierarchy,
        diagnostics=diagnostics,
    )


def build_dataset(ctx: PipelineContext, out_dir: Path) -> BuildResult:
    result = run_pipeline(ctx)
    written = write_dataset(
        out_dir,
        bees=result.bees,
        groups=result.groups,
        combs=result.combs,
        diagnostics=result.diagnostics,
    )
    for path in written:
        _progress(ctx, f"Wrote {path}", done=True)
    return result
