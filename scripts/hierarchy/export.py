from __future__ import annotations

import json
from typing import Dict, Iterable, List, Optional

from .builder import Hierarchy


def build_graph(hierarchy: Hierarchy, *, include: Optional[Iterable[str]] = None) -> Dict[str, object]:
    """Node/edge view of the hierarchy; `include` restricts it to a set of ids."""
    keep = set(include) if include is not None else None
    nodes: List[Dict[str, object]] = []
    for node in hierarchy.nodes:
        if keep is not None and node.id not in keep:
            continue
        entry: Dict[str, object] = {
            "id": node.id,
            "label": node.name,
            "mod": node.mod,
            "generation": node.generation,
        }
        if node.flags:
            entry["flags"] = sorted(node.flags)
        nodes.append(entry)

    edge_list: List[Dict[str, object]] = []
    for edge in hierarchy.edges:
        if keep is not None and (edge.source not in keep or edge.target not in keep):
            continue
        edge_list.append({"source": edge.source, "target": edge.target, "type": edge.kind})

    return {
        "directed": True,
        "nodes": nodes,
        "edges": edge_list,
    }


def export_graph_json(graph: Dict[str, object]) -> str:
    return json.dumps(graph, ensure_ascii=True, indent=2)


def export_graphml(graph: Dict[str, object]) -> str:
    def esc(value: object) -> str:
        text = "" if value is None else str(value)
        return (
            text.replace("&", "&amp;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
            .replace('"', "&quot;")
            .replace("'", "&apos;")
        )

    keys = [
        ("n_label", "node", "label", "string"),
        ("n_mod", "node", "mod", "string"),
        ("n_generation", "node", "generation", "int"),
        ("n_flags", "node", "flags", "string"),
        ("e_type", "edge", "type", "string"),
    ]

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<graphml xmlns="http://graphml.graphdrawing.org/xmlns">',
    ]
    for key_id, scope, name, key_type in keys:
        lines.append(
            f'<key id="{key_id}" for="{scope}" attr.name="{name}" attr.type="{key_type}"/>'
        )
    lines.append('<graph id="G" edgedefault="directed">')

    for node in graph.get("nodes", []):
        lines.append(f'<node id="{esc(node.get("id"))}">')
        lines.append(f'  <data key="n_label">{esc(node.get("label"))}</data>')
        lines.append(f'  <data key="n_mod">{esc(node.get("mod"))}</data>')
        lines.append(f'  <data key="n_generation">{esc(node.get("generation"))}</data>')
        if node.get("flags"):
            lines.append(f'  <data key="n_flags">{esc(",".join(node["flags"]))}</data>')
        lines.append("</node>")

    for edge in graph.get("edges", []):
        src = esc(edge.get("source"))
        dst = esc(edge.get("target"))
        lines.append(f'<edge source="{src}" target="{dst}">')
        lines.append(f'  <data key="e_type">{esc(edge.get("type"))}</data>')
        lines.append("</edge>")

    lines.append("</graph>")
    lines.append("</graphml>")
    return "\n".join(lines)
