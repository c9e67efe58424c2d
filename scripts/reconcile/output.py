from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from _fs import write_json, write_jsonc
from records import SpeciesRecord
from utils import KEY_COLLISION, Diagnostics
from .combs import Comb, combs_payload
from .constants import BEES_FILE, COMBS_FILE, DIAGNOSTICS_FILE, MUTATIONS_FILE
from .mutations import MutationGroup, mutations_payload


def bee_payload(record: SpeciesRecord) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "mod": record.mod,
        "name": record.name,
        "idealTemperature": record.temperature or "",
        "idealHumidity": record.humidity or "",
    }
    products = []
    for product in record.products:
        entry: Dict[str, Any] = {"item": product.item, "chance": product.chance}
        if product.is_specialty:
            entry["isSpecialty"] = True
        products.append(entry)
    payload["products"] = products
    if record.branch:
        payload["branch"] = record.branch
    if record.binomial:
        payload["binomial"] = record.binomial
    if record.dominant is not None:
        payload["dominant"] = record.dominant
    if record.colors:
        payload["colors"] = record.colors
    if record.has_effect is not None:
        payload["hasEffect"] = record.has_effect
    if record.is_secret is not None:
        payload["isSecret"] = record.is_secret
    return payload


def bees_payload(
    species: Mapping[str, SpeciesRecord],
    *,
    diagnostics: Diagnostics,
) -> Dict[str, Dict[str, Any]]:
    """Public species map keyed `Mod:Name`, sorted by mod then name."""
    ordered = sorted(species.values(), key=lambda rec: (rec.mod, rec.name, rec.id))
    output: Dict[str, Dict[str, Any]] = {}
    sources: Dict[str, str] = {}
    for record in ordered:
        key = record.key
        if key in output:
            diagnostics.add(
                KEY_COLLISION,
                f"{record.id} and {sources[key]} both publish as {key}; keeping {sources[key]}",
                key=key,
                ids=[sources[key], record.id],
            )
            continue
        sources[key] = record.id
        output[key] = bee_payload(record)
    return output


def dataset_summary(
    bees: Mapping[str, Any],
    groups: Iterable[MutationGroup],
    combs: Mapping[str, Comb],
    *,
    parsed_mutations: int,
) -> List[str]:
    groups = list(groups)
    emitted = sum(len(group.children) for group in groups)
    return [
        f"BEES: {len(bees)}",
        f"MUTATION_GROUPS: {len(groups)}",
        f"MUTATIONS: {emitted} ({parsed_mutations} parsed)",
        f"COMBS: {len(combs)}",
    ]


def write_dataset(
    out_dir: Path,
    *,
    bees: Mapping[str, Any],
    groups: Iterable[MutationGroup],
    combs: Mapping[str, Comb],
    diagnostics: Diagnostics,
) -> List[Path]:
    written = [
        write_jsonc(out_dir / BEES_FILE, dict(bees), "Bee Species Data"),
        write_jsonc(out_dir / MUTATIONS_FILE, mutations_payload(groups), "Breeding Pairs Data"),
        write_jsonc(out_dir / COMBS_FILE, combs_payload(dict(combs)), "Honeycomb Data"),
        write_json(out_dir / DIAGNOSTICS_FILE, diagnostics.to_payload()),
    ]
    return written
