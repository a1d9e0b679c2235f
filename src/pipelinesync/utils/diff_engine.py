"""
Diff engine for PipelineSync.

Provides a minimal decision model to determine whether a pipeline should be
created, replaced or left as-is (NOOP), based on a field-by-field comparison
between the **desired** spec and the **existing** (observed) one.

There is no field-level patch: any single differing field means the whole
pipeline is replaced.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Tuple

from ..pipelines.models import PipelineSpec


Op = Literal["NOOP", "CREATE", "UPDATE"]


@dataclass(frozen=True)
class Decision:
    """Represents a diff outcome for a single desired pipeline.

    Attributes:
        op: One of ``"NOOP"``, ``"CREATE"`` or ``"UPDATE"``.
        reason: Human-friendly explanation of the decision.
        changed: Names of the differing fields (``settings.<name>`` for settings).
    """
    op: Op
    reason: str
    changed: Tuple[str, ...] = ()


def comparable(spec: PipelineSpec, setting_names: Optional[Tuple[str, ...]] = None) -> Dict[str, Any]:
    """Flatten the caller-significant fields of a spec into one comparable dict.

    Only ``setting_names`` are included (all of the spec's own settings by default).
    An empty description and no description compare equal.
    """
    names = tuple(spec.settings) if setting_names is None else setting_names
    out: Dict[str, Any] = {
        "description": spec.description or "",
        "definition": spec.definition,
    }
    for name in names:
        out[f"settings.{name}"] = spec.settings.get(name)
    return out


def decide(desired: PipelineSpec, existing: Optional[PipelineSpec]) -> Decision:
    """Compute a :class:`Decision` from desired vs existing states.

    Settings are compared on every key set on either side: a setting held
    remotely but absent from the desired spec is drift, and the replace
    clears it.
    """
    if existing is None:
        return Decision(op="CREATE", reason="Not found")

    keys = tuple(sorted(set(desired.settings) | set(existing.settings)))
    want = comparable(desired, keys)
    have = comparable(existing, keys)
    changed = tuple(k for k in want if want[k] != have[k])
    if changed:
        return Decision(op="UPDATE", reason=f"Field differs: {', '.join(changed)}", changed=changed)

    return Decision(op="NOOP", reason="Identical")
