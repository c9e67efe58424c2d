#!/usr/bin/env python3
"""Bee breeding tree CLI: reconcile mod extracts, build the hierarchy, query lineage."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from _fs import read_jsonc
from hierarchy import (
    Hierarchy,
    ancestors,
    build_graph,
    build_hierarchy,
    descendants,
    export_graph_json,
    export_graphml,
    filtered_generations,
    lineage_from_dataset,
    lineage_path,
)
from records import RecordError
from reconcile import (
    BEES_FILE,
    COLLISION_POLICIES,
    MUTATIONS_FILE,
    MergeError,
    PipelineContext,
    PipelineOptions,
    build_dataset,
    groups_from_payload,
    load_record_sets,
)
from utils import Diagnostics, plural
from .config import (
    BuildConfig,
    load_build_config,
    parse_mods,
    resolve_mod_paths,
    resolve_out_dir,
)


def print_warnings(warnings: Sequence[str]) -> None:
    for warning in warnings:
        print(f"warning: {warning}", file=sys.stderr)


def load_config(args: argparse.Namespace, warnings: List[str]) -> BuildConfig:
    root = Path(args.root).resolve()
    config_path = Path(args.config) if getattr(args, "config", None) else None
    return load_build_config(root, warnings, path=config_path)


def run_build(args: argparse.Namespace) -> int:
    warnings: List[str] = []
    root = Path(args.root).resolve()
    config = load_config(args, warnings)
    if args.mods:
        config.mods = parse_mods(args.mods)
    if args.collision_policy:
        config.collision_policy = args.collision_policy
    if args.max_passes is not None:
        config.max_passes = args.max_passes

    if args.inputs:
        paths = [Path(item) for item in args.inputs]
    else:
        input_dir = Path(args.input_dir) if args.input_dir else root
        paths = resolve_mod_paths(config.mods, input_dir)
    record_sets = load_record_sets(paths, warnings)

    out_dir = resolve_out_dir(root, args.out, config)
    options = PipelineOptions(
        collision_policy=config.collision_policy,
        prefixes=config.mod_prefixes,
        max_passes=config.max_passes,
        save_intermediate=Path(args.save_intermediate) if args.save_intermediate else None,
        quiet=args.quiet,
    )
    ctx = PipelineContext(record_sets=record_sets, options=options)
    ctx.diagnostics.warnings.extend(warnings)
    try:
        result = build_dataset(ctx, out_dir)
    except (RecordError, MergeError) as exc:
        print_warnings(ctx.diagnostics.warnings)
        print(f"error: {exc}", file=sys.stderr)
        return 2

    lines = result.summary_lines()
    problems = result.diagnostics.problems()
    lines.append(f"DIAGNOSTICS: {plural(len(problems), 'problem')}")
    lines.extend(f"  {line}" for line in result.diagnostics.summary_lines(max_items=args.max_sample))
    lines.append(f"Artifacts: {out_dir}")
    print("\n".join(lines))
    return 0


def load_dataset(data_dir: Path) -> Tuple[Dict[str, Any], List[Any]]:
    bees = read_jsonc(data_dir / BEES_FILE)
    if not isinstance(bees, dict):
        raise RecordError(f"{BEES_FILE}: expected a JSON object")
    groups = groups_from_payload(read_jsonc(data_dir / MUTATIONS_FILE))
    return bees, groups


def load_hierarchy(args: argparse.Namespace, diagnostics: Diagnostics) -> Hierarchy:
    warnings: List[str] = []
    config = load_config(args, warnings)
    diagnostics.warnings.extend(warnings)
    data_dir = Path(args.data) if args.data else resolve_out_dir(Path(args.root).resolve(), None, config)
    bees, groups = load_dataset(data_dir)
    max_passes = args.max_passes if args.max_passes is not None else config.max_passes
    return build_hierarchy(
        lineage_from_dataset(bees, groups),
        diagnostics=diagnostics,
        max_passes=max_passes,
    )


def run_tree(args: argparse.Namespace) -> int:
    diagnostics = Diagnostics()
    try:
        hierarchy = load_hierarchy(args, diagnostics)
    except (OSError, json.JSONDecodeError, RecordError) as exc:
        print(json.dumps({"error": str(exc)}, ensure_ascii=True), file=sys.stderr)
        return 2

    include: Optional[set] = None
    if args.focus:
        if hierarchy.get(args.focus) is None:
            print(json.dumps({"error": f"unknown species: {args.focus}"}, ensure_ascii=True), file=sys.stderr)
            return 1
        include = lineage_path(hierarchy, args.focus)
    graph = build_graph(hierarchy, include=include)
    generations: Dict[str, int] = {}
    if include is not None:
        generations = filtered_generations(hierarchy, [node["id"] for node in graph["nodes"]])
        for node in graph["nodes"]:
            node["generation"] = generations[node["id"]]

    if args.format == "graphml":
        print(export_graphml(graph))
    elif args.format == "nodes":
        payload = hierarchy.to_payload()
        if include is not None:
            payload["nodes"] = [node for node in payload["nodes"] if node["id"] in include]
            for node in payload["nodes"]:
                node["generation"] = generations[node["id"]]
            payload["links"] = [
                link
                for link in payload["links"]
                if link["source"] in include and link["target"] in include
            ]
        print(json.dumps(payload, ensure_ascii=True, indent=2))
    else:
        print(export_graph_json(graph))
    print_warnings(diagnostics.summary_lines())
    return 0


def run_query(args: argparse.Namespace) -> int:
    diagnostics = Diagnostics()
    try:
        hierarchy = load_hierarchy(args, diagnostics)
    except (OSError, json.JSONDecodeError, RecordError) as exc:
        print(json.dumps({"error": str(exc)}, ensure_ascii=True), file=sys.stderr)
        return 2

    node = hierarchy.get(args.species)
    if args.direction == "ancestors":
        related = ancestors(hierarchy, args.species)
    elif args.direction == "descendants":
        related = descendants(hierarchy, args.species)
    else:
        related = lineage_path(hierarchy, args.species)
    output: Dict[str, Any] = {
        "species": args.species,
        "known": node is not None,
        args.direction: sorted(related),
    }
    if node is not None:
        output["generation"] = node.generation
        if node.flags:
            output["flags"] = sorted(node.flags)
    print(json.dumps(output, ensure_ascii=True, indent=2))
    return 0 if node is not None else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bee breeding tree builder")
    parser.add_argument("--root", default=".", help="Project root holding beetree.jsonc (default: .)")
    parser.add_argument("--config", default=None, help="Explicit build config file")
    parser.add_argument(
        "--max-passes",
        type=int,
        default=None,
        help="Generation relaxation pass limit (default: 20)",
    )
    subparsers = parser.add_subparsers(dest="command")

    build_parser_ = subparsers.add_parser(
        "build", help="Merge intermediate extracts into bees/mutations/combs jsonc"
    )
    build_parser_.add_argument(
        "inputs",
        nargs="*",
        help="Intermediate JSON files in merge order (default: from --mods)",
    )
    build_parser_.add_argument(
        "--mods",
        default=None,
        help="Comma-separated mods or files, merged in order (default: config or all mods)",
    )
    build_parser_.add_argument(
        "--input-dir",
        default=None,
        help="Directory holding <mod>_intermediate.json files (default: --root)",
    )
    build_parser_.add_argument(
        "--out", default=None, help="Output dir (relative to --root or absolute)"
    )
    build_parser_.add_argument(
        "--collision-policy",
        choices=list(COLLISION_POLICIES),
        default=None,
        help="How to treat species ids declared by more than one mod",
    )
    build_parser_.add_argument(
        "--save-intermediate",
        default=None,
        help="Re-emit the validated intermediate sets into this directory",
    )
    build_parser_.add_argument("--max-sample", type=int, default=5, help="Diagnostics shown per kind")
    build_parser_.add_argument("--quiet", action="store_true", help="Suppress progress output")

    tree_parser = subparsers.add_parser("tree", help="Export the breeding hierarchy as a graph")
    tree_parser.add_argument("--data", default=None, help="Directory with bees.jsonc/mutations.jsonc")
    tree_parser.add_argument("--format", choices=["json", "graphml", "nodes"], default="json")
    tree_parser.add_argument(
        "--focus",
        default=None,
        help="Only export this species' lineage, with generations recomputed inside it",
    )

    query_parser = subparsers.add_parser("query", help="List ancestors or descendants of a species")
    query_parser.add_argument("species", help="Species key, e.g. Forestry:Common")
    query_parser.add_argument(
        "--direction",
        choices=["ancestors", "descendants", "lineage"],
        default="ancestors",
    )
    query_parser.add_argument("--data", default=None, help="Directory with bees.jsonc/mutations.jsonc")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help(sys.stderr)
        return 1
    if args.command == "build":
        return run_build(args)
    if args.command == "tree":
        return run_tree(args)
    if args.command == "query":
        return run_query(args)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
