"""
Reporting helpers (table or JSON) for command results.

`print_rows` auto-selects relevant columns and produces a compact table that
fits CLI usage. JSON output is also supported for machine consumption.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List

_CANDIDATES = [
    "id",
    "result",
    "action",
    "status",
    "owner",
    "last_modified",
    "error",
]
_MANDATORY = {"id"}


def _normalize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    r = dict(row)
    err = r.get("error")
    r["error"] = str(err).strip()[:160] if isinstance(err, str) and err.strip() else None
    return r


def _present(v: Any) -> bool:
    return not (v is None or v == "" or v == [])


def _fmt(v: Any) -> str:
    if v is None or v == "":
        return "—"
    if isinstance(v, bool):
        return "✓" if v else "✗"
    return str(v)


def print_rows(rows: List[Dict[str, Any]], fmt: str = "table") -> None:
    """Render result rows as a table or JSON.

    Args:
        rows: List of dict rows with common fields (id, result, action, ...).
        fmt: Either ``"table"`` (default) or ``"json"``.
    """
    if fmt == "json":
        print(json.dumps(rows, indent=2, default=str))
        return

    norm_rows = [_normalize_row(r) for r in rows]
    if not norm_rows:
        print("(no pipelines)")
        return

    cols = [c for c in _CANDIDATES if c in _MANDATORY or any(_present(r.get(c)) for r in norm_rows)]

    widths = {c: len(c) for c in cols}
    for r in norm_rows:
        for c in cols:
            widths[c] = max(widths[c], len(_fmt(r.get(c))))

    print("| " + " | ".join(c.ljust(widths[c]) for c in cols) + " |")
    print("| " + " | ".join("-" * widths[c] for c in cols) + " |")
    for r in norm_rows:
        print("| " + " | ".join(_fmt(r.get(c)).ljust(widths[c]) for c in cols) + " |")


def print_object(obj: Dict[str, Any], fmt: str = "table") -> None:
    """Render a single observed pipeline."""
    if fmt == "json":
        print(json.dumps(obj, indent=2, default=str))
        return
    width = max(len(k) for k in obj) if obj else 0
    for key, value in obj.items():
        if key == "pipeline":
            continue
        if isinstance(value, dict):
            value = ", ".join(f"{k}={v}" for k, v in sorted(value.items())) or None
        print(f"{key.ljust(width)} : {_fmt(value)}")
    if "pipeline" in obj:
        print("pipeline:")
        print(obj["pipeline"])
