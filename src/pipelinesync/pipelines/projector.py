"""
Drift projector: converts an observed pipeline into the caller's desired-state
shape so it can be compared to caller input, while keeping the remote-only
attributes (owner, last_modified) available read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..utils.diff_engine import Decision, decide
from .models import PipelineSpec, RemotePipeline


@dataclass(frozen=True)
class ObservedPipeline:
    spec: PipelineSpec
    owner: Optional[str] = None
    last_modified: Optional[str] = None

    @property
    def id(self) -> str:
        return self.spec.id

    def as_state(self) -> Dict[str, Any]:
        """Flatten into a plain dict (what the CLI prints as JSON)."""
        return {
            "id": self.spec.id,
            "description": self.spec.description,
            "pipeline": self.spec.definition,
            "settings": dict(self.spec.settings),
            "username": self.owner,
            "last_modified": self.last_modified,
        }


def project(remote: RemotePipeline) -> ObservedPipeline:
    return ObservedPipeline(
        spec=PipelineSpec(
            id=remote.id,
            definition=remote.definition,
            description=remote.description,
            settings=dict(remote.settings),
        ),
        owner=remote.owner,
        last_modified=remote.last_modified,
    )


def detect_drift(desired: PipelineSpec, observed: Optional[ObservedPipeline]) -> Decision:
    """Compare desired state with what was observed (None means absent)."""
    return decide(desired, observed.spec if observed else None)
