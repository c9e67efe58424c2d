"""Filesystem helpers for the generated dataset.

Rules:
- generated files are JSON with a leading `//` comment header (jsonc)
- output is deterministic: same data in, byte-identical file out
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List

GENERATED_NOTE = "Generated from mod source files"
REGENERATE_NOTE = "Do not edit manually - regenerate with `beetree build`"


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def render_json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, indent=2)


def render_jsonc(obj: Any, title: str) -> str:
    header = [f"// {title}", f"// {GENERATED_NOTE}", f"// {REGENERATE_NOTE}", ""]
    return "\n".join(header) + "\n" + render_json(obj) + "\n"


def write_jsonc(path: Path, obj: Any, title: str) -> Path:
    ensure_dir(path.parent)
    path.write_text(render_jsonc(obj, title), encoding="utf-8")
    return path


def write_json(path: Path, obj: Any) -> Path:
    ensure_dir(path.parent)
    path.write_text(render_json(obj) + "\n", encoding="utf-8")
    return path


def strip_json_comments(text: str) -> str:
    """Remove // and /* */ comments from JSON-like text."""
    out: List[str] = []
    in_str = False
    escape = False
    idx = 0
    while idx < len(text):
        ch = text[idx]
        if in_str:
            out.append(ch)
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            idx += 1
            continue
        if ch == '"':
            in_str = True
            out.append(ch)
            idx += 1
            continue
        if ch == "/" and idx + 1 < len(text):
            nxt = text[idx + 1]
            if nxt == "/":
                idx = text.find("\n", idx + 2)
                if idx == -1:
                    break
                continue
            if nxt == "*":
                end = text.find("*/", idx + 2)
                if end == -1:
                    break
                idx = end + 2
                continue
        out.append(ch)
        idx += 1
    return "".join(out)


def read_jsonc(path: Path) -> Any:
    return json.loads(strip_json_comments(path.read_text(encoding="utf-8")))
