"""
Typed data model for Logstash pipelines.

- PipelineSpec: desired state supplied by the caller.
- RemotePipeline: observed state returned by Kibana (adds owner and
  last_modified, both remote-assigned).
- PipelineIndexEntry: lightweight listing record, existence checks only.
- SETTINGS_SCHEMA: the bounded set of tuning parameters a pipeline accepts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

SettingValue = Union[int, str]


@dataclass(frozen=True)
class SettingDef:
    """Declaration of one pipeline setting."""
    name: str
    type: type
    default: Optional[SettingValue] = None
    allowed: Tuple[str, ...] = ()
    minimum: Optional[int] = None


SETTINGS_SCHEMA: Dict[str, SettingDef] = {
    s.name: s
    for s in (
        # ms a worker waits for new events before flushing a batch
        SettingDef("batch_delay", int, default=50, minimum=1),
        # events a worker collects before running filters and outputs
        SettingDef("batch_size", int, minimum=1),
        SettingDef("workers", int, default=1, minimum=1),
        # events written to disk before forcing a checkpoint
        SettingDef("queue_checkpoint_writes", int, default=1024, minimum=1),
        SettingDef("queue_max_bytes", str, default="1gb"),
        SettingDef("queue_type", str, default="memory", allowed=("memory", "persisted")),
    )
}


def apply_setting_defaults(settings: Dict[str, SettingValue]) -> Dict[str, SettingValue]:
    """Return a copy of ``settings`` completed with schema defaults."""
    out = {name: d.default for name, d in SETTINGS_SCHEMA.items() if d.default is not None}
    out.update(settings)
    return out


@dataclass(frozen=True)
class PipelineSpec:
    id: str
    definition: str
    description: Optional[str] = None
    settings: Dict[str, SettingValue] = field(default_factory=dict)


@dataclass(frozen=True)
class RemotePipeline:
    id: str
    definition: str
    description: Optional[str] = None
    settings: Dict[str, SettingValue] = field(default_factory=dict)
    owner: Optional[str] = None
    last_modified: Optional[str] = None


@dataclass(frozen=True)
class PipelineIndexEntry:
    id: str
    last_modified: Optional[str] = None
    owner: Optional[str] = None
