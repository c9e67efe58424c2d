from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from records import SpeciesRecord
from .constants import COMB_MARKER


@dataclass
class CombProducer:
    bee: str
    chance: float


@dataclass
class Comb:
    id: str
    name: str
    producers: List[CombProducer] = field(default_factory=list)


def comb_display_name(comb_id: str) -> str:
    """'forestry:comb.honey_dew' -> 'Honey dew'."""
    name = comb_id.split(".")[-1]
    return name[:1].upper() + name[1:].replace("_", " ")


def is_comb(item: str) -> bool:
    return COMB_MARKER in item


def extract_combs(species: Iterable[SpeciesRecord]) -> Dict[str, Comb]:
    combs: Dict[str, Comb] = {}
    for record in species:
        for product in record.products:
            if not is_comb(product.item):
                continue
            comb = combs.get(product.item)
            if comb is None:
                comb = combs[product.item] = Comb(
                    id=product.item, name=comb_display_name(product.item)
                )
            comb.producers.append(CombProducer(bee=record.key, chance=product.chance))
    return combs


def combs_payload(combs: Dict[str, Comb]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    for comb_id in sorted(combs):
        comb = combs[comb_id]
        producers = sorted(comb.producers, key=lambda producer: (producer.bee, producer.chance))
        payload[comb_id] = {
            "name": comb.name,
            "producers": [{"bee": p.bee, "chance": p.chance} for p in producers],
        }
    return payload
