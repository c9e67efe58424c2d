from __future__ import annotations

import json
import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple


RECORD_VERSION = 1

# Extractors may tag a species with its source-local symbol (enum constant name).
SYMBOL_FIELDS = ("_enumName", "_symbol")


class RecordError(ValueError):
    """Raised when an intermediate record set is structurally unusable."""


def now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def public_key(mod: str, name: str) -> str:
    return f"{mod}:{name}"


def split_public_key(key: str) -> Tuple[str, str]:
    if ":" in key:
        mod, name = key.split(":", 1)
        return mod, name
    return "Unknown", key


@dataclass(frozen=True)
class SourceLocation:
    file: str
    line: Optional[int] = None

    def describe(self) -> str:
        if self.line is None:
            return self.file
        return f"{self.file}:{self.line}"


@dataclass(frozen=True)
class Product:
    item: str
    chance: float
    is_specialty: bool = False


@dataclass
class SpeciesRecord:
    id: str
    mod: str
    name: str
    branch: Optional[str] = None
    binomial: Optional[str] = None
    dominant: Optional[bool] = None
    colors: Optional[Dict[str, str]] = None
    temperature: Optional[str] = None
    humidity: Optional[str] = None
    has_effect: Optional[bool] = None
    is_secret: Optional[bool] = None
    products: List[Product] = field(default_factory=list)
    symbol: Optional[str] = None

    @property
    def key(self) -> str:
        return public_key(self.mod, self.name)

    def identity(self) -> Dict[str, Any]:
        """Fields compared when two mods declare the same id."""
        return {
            "mod": self.mod,
            "name": self.name,
            "branch": self.branch,
            "binomial": self.binomial,
            "dominant": self.dominant,
            "colors": self.colors,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "has_effect": self.has_effect,
            "is_secret": self.is_secret,
            "products": [(p.item, p.chance, p.is_specialty) for p in self.products],
        }


@dataclass
class MutationRecord:
    parent1: str
    parent2: str
    offspring: str
    chance: float
    conditions: Dict[str, Any] = field(default_factory=dict)
    source: Optional[SourceLocation] = None
    origin: Optional[str] = None

    def describe_source(self) -> str:
        return self.source.describe() if self.source else "(no source location)"


@dataclass(frozen=True)
class BranchRecord:
    id: str
    name: str
    scientific: Optional[str] = None


@dataclass
class RecordSet:
    """One extractor's output: species, mutations and branches of a single mod."""

    label: str
    species: Dict[str, SpeciesRecord] = field(default_factory=dict)
    mutations: List[MutationRecord] = field(default_factory=list)
    branches: Dict[str, BranchRecord] = field(default_factory=dict)

    @property
    def mod(self) -> str:
        for record in self.species.values():
            return record.mod
        return self.label

    def symbol_index(self) -> Dict[str, str]:
        return {
            record.symbol: sid
            for sid, record in self.species.items()
            if record.symbol
        }

    def strip_symbols(self) -> None:
        for record in self.species.values():
            record.symbol = None


def _as_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_float(value: Any, what: str) -> float:
    if isinstance(value, bool):
        raise RecordError(f"{what}: expected a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise RecordError(f"{what}: expected a number, got {value!r}") from None
    if not math.isfinite(number):
        raise RecordError(f"{what}: expected a finite number, got {value!r}")
    return number


def _products(raw: Any, sid: str) -> List[Product]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise RecordError(f"species {sid}: products must be a list")
    products: List[Product] = []
    for entry in raw:
        if not isinstance(entry, dict) or not _as_str(entry.get("item")):
            raise RecordError(f"species {sid}: product without an item")
        products.append(
            Product(
                item=str(entry["item"]).strip(),
                chance=_as_float(entry.get("chance", 0), f"species {sid} product chance"),
                is_specialty=entry.get("isSpecialty") is True,
            )
        )
    return products


def species_from_payload(sid: str, payload: Mapping[str, Any]) -> SpeciesRecord:
    if not isinstance(payload, Mapping):
        raise RecordError(f"species {sid}: expected an object")
    mod = _as_str(payload.get("mod"))
    name = _as_str(payload.get("name"))
    if not mod or not name:
        raise RecordError(f"species {sid}: 'mod' and 'name' are required")
    colors = payload.get("colors")
    symbol = None
    for key in SYMBOL_FIELDS:
        symbol = _as_str(payload.get(key))
        if symbol:
            break
    return SpeciesRecord(
        id=sid,
        mod=mod,
        name=name,
        branch=_as_str(payload.get("branch")),
        binomial=_as_str(payload.get("binomial")),
        dominant=_as_bool(payload.get("dominant")),
        colors=dict(colors) if isinstance(colors, dict) else None,
        temperature=_as_str(payload.get("temperature")),
        humidity=_as_str(payload.get("humidity")),
        has_effect=_as_bool(payload.get("hasEffect")),
        is_secret=_as_bool(payload.get("isSecret")),
        products=_products(payload.get("products"), sid),
        symbol=symbol,
    )


def mutation_from_payload(
    payload: Mapping[str, Any],
    index: int,
    origin: Optional[str] = None,
) -> MutationRecord:
    what = f"mutation #{index}"
    if not isinstance(payload, Mapping):
        raise RecordError(f"{what}: expected an object")
    refs = []
    for key in ("parent1", "parent2", "offspring"):
        value = _as_str(payload.get(key))
        if not value:
            raise RecordError(f"{what}: '{key}' is required")
        refs.append(value)
    conditions = payload.get("conditions") or {}
    if not isinstance(conditions, dict):
        raise RecordError(f"{what}: conditions must be an object")
    source = None
    raw_source = payload.get("source")
    if isinstance(raw_source, dict) and _as_str(raw_source.get("file")):
        line = raw_source.get("line")
        source = SourceLocation(
            file=str(raw_source["file"]),
            line=line if isinstance(line, int) and not isinstance(line, bool) else None,
        )
    chance = _as_float(payload.get("chance"), f"{what} chance")
    if not 0 <= chance <= 100:
        raise RecordError(f"{what} chance: expected a percentage between 0 and 100, got {chance!r}")
    return MutationRecord(
        parent1=refs[0],
        parent2=refs[1],
        offspring=refs[2],
        chance=chance,
        conditions=dict(conditions),
        source=source,
        origin=origin,
    )


def record_set_from_payload(payload: Any, label: str) -> RecordSet:
    if not isinstance(payload, dict):
        raise RecordError(f"{label}: expected a JSON object")
    bees = payload.get("bees") or {}
    mutations = payload.get("mutations") or []
    branches = payload.get("branches") or {}
    if not isinstance(bees, dict) or not isinstance(mutations, list) or not isinstance(branches, dict):
        raise RecordError(f"{label}: 'bees' and 'branches' must be objects, 'mutations' a list")

    record_set = RecordSet(label=label)
    for sid, raw in bees.items():
        record_set.species[sid] = species_from_payload(sid, raw)
    for index, raw in enumerate(mutations):
        record_set.mutations.append(mutation_from_payload(raw, index, origin=label))
    for bid, raw in branches.items():
        if not isinstance(raw, dict):
            raise RecordError(f"{label}: branch {bid} must be an object")
        record_set.branches[bid] = BranchRecord(
            id=bid,
            name=_as_str(raw.get("name")) or bid,
            scientific=_as_str(raw.get("scientific")),
        )
    return record_set


def species_to_payload(record: SpeciesRecord) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"mod": record.mod, "name": record.name}
    optional = {
        "binomial": record.binomial,
        "branch": record.branch,
        "dominant": record.dominant,
        "colors": record.colors,
        "temperature": record.temperature,
        "humidity": record.humidity,
        "hasEffect": record.has_effect,
        "isSecret": record.is_secret,
    }
    payload.update({key: value for key, value in optional.items() if value is not None})
    products = []
    for product in record.products:
        entry: Dict[str, Any] = {"item": product.item, "chance": product.chance}
        if product.is_specialty:
            entry["isSpecialty"] = True
        products.append(entry)
    payload["products"] = products
    return payload


def record_set_to_payload(record_set: RecordSet) -> Dict[str, Any]:
    mutations = []
    for mutation in record_set.mutations:
        entry: Dict[str, Any] = {
            "parent1": mutation.parent1,
            "parent2": mutation.parent2,
            "offspring": mutation.offspring,
            "chance": mutation.chance,
        }
        if mutation.conditions:
            entry["conditions"] = mutation.conditions
        if mutation.source:
            entry["source"] = {"file": mutation.source.file, "line": mutation.source.line}
        mutations.append(entry)
    return {
        "meta": {"version": RECORD_VERSION, "generated_at": now_iso(), "label": record_set.label},
        "bees": {sid: species_to_payload(rec) for sid, rec in record_set.species.items()},
        "mutations": mutations,
        "branches": {
            bid: {"name": branch.name, "scientific": branch.scientific}
            for bid, branch in record_set.branches.items()
        },
    }


def load_record_set(path: Path, label: Optional[str] = None) -> RecordSet:
    payload = json.loads(path.read_text(encoding="utf-8"))
    return record_set_from_payload(payload, label or path.stem)


def save_record_set(path: Path, record_set: RecordSet) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(record_set_to_payload(record_set), ensure_ascii=True, indent=2),
        encoding="utf-8",
    )
