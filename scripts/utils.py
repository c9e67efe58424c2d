from __future__ import annotations

import sys
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


UNRESOLVED_REFERENCE = "unresolved_reference"
ID_COLLISION = "id_collision"
KEY_COLLISION = "key_collision"
DUPLICATE_MUTATION = "duplicate_mutation"
DANGLING_PARENT = "dangling_parent"
MISSING_LINEAGE = "missing_lineage"
PROVISIONAL_GENERATION = "provisional_generation"
RELAXATION_FALLBACK = "relaxation_fallback"
NON_TERMINATING_RELAXATION = "non_terminating_relaxation"

# Kinds reported as plain information rather than data problems.
INFO_KINDS = {DUPLICATE_MUTATION}


@dataclass(frozen=True)
class Diagnostic:
    kind: str
    message: str
    detail: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class Diagnostics:
    entries: List[Diagnostic] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add(self, kind: str, message: str, **detail: Any) -> Diagnostic:
        entry = Diagnostic(kind=kind, message=message, detail=detail)
        self.entries.append(entry)
        return entry

    def of_kind(self, kind: str) -> List[Diagnostic]:
        return [entry for entry in self.entries if entry.kind == kind]

    def counts(self) -> Dict[str, int]:
        return dict(sorted(Counter(entry.kind for entry in self.entries).items()))

    def problems(self) -> List[Diagnostic]:
        return [entry for entry in self.entries if entry.kind not in INFO_KINDS]

    def summary_lines(self, max_items: int = 0) -> List[str]:
        lines: List[str] = []
        for kind, count in self.counts().items():
            lines.append(f"{kind}: {count}")
            if max_items > 0:
                for entry in self.of_kind(kind)[:max_items]:
                    lines.append(f"  {entry.message}")
        for warning in self.warnings:
            lines.append(f"warning: {warning}")
        return lines

    def to_payload(self) -> Dict[str, Any]:
        return {
            "counts": self.counts(),
            "entries": [
                {"kind": entry.kind, "message": entry.message, **dict(entry.detail)}
                for entry in self.entries
            ],
            "warnings": list(self.warnings),
        }


def progress(message: str, done: bool = False) -> None:
    """Print a progress message to stderr (doesn't interfere with stdout output)."""
    if done:
        print(f"  [done] {message}", file=sys.stderr)
    else:
        print(f"  [....] {message}", file=sys.stderr)


def plural(count: int, noun: str, suffix: Optional[str] = None) -> str:
    if count == 1:
        return f"{count} {noun}"
    return f"{count} {noun}{suffix or 's'}"
