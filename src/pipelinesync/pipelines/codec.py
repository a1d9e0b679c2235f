"""
Pipeline codec: pure translation between the typed model and Kibana's wire
representation.

Wire shapes (Logstash centralized pipeline management API):

    GET  /api/logstash/pipelines      {"pipelines": [{"id", "last_modified", "username"}, ...]}
    GET  /api/logstash/pipeline/{id}  {"description"?, "username", "pipeline", "settings"?: {...}}
    PUT  /api/logstash/pipeline/{id}  {"description"?, "pipeline", "settings"?: {...}}

Settings keys differ between API generations (``pipeline.batch.delay`` vs
``pipeline_batch_delay``). The key map is therefore a constructor argument
and must match the deployed Kibana version; the two forms are not
interchangeable on the wire.

The id is never written into a PUT body: it is part of the URL and some
Kibana versions reject a body repeating it. ``username`` and
``last_modified`` are remote-assigned and never sent back either.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from ..core.errors import ConfigError, DecodeError
from .models import (
    SETTINGS_SCHEMA,
    PipelineIndexEntry,
    PipelineSpec,
    RemotePipeline,
    SettingValue,
)

DOTTED_KEYS: Dict[str, str] = {
    "batch_delay": "pipeline.batch.delay",
    "batch_size": "pipeline.batch.size",
    "workers": "pipeline.workers",
    "queue_checkpoint_writes": "queue.checkpoint.writes",
    "queue_max_bytes": "queue.max_bytes",
    "queue_type": "queue.type",
}

UNDERSCORED_KEYS: Dict[str, str] = {
    "batch_delay": "pipeline_batch_delay",
    "batch_size": "pipeline_batch_size",
    "workers": "pipeline_workers",
    "queue_checkpoint_writes": "queue_checkpoint_writes",
    "queue_max_bytes": "queue_max_bytes",
    "queue_type": "queue_type",
}

KEY_STYLES: Dict[str, Dict[str, str]] = {
    "dotted": DOTTED_KEYS,
    "underscored": UNDERSCORED_KEYS,
}


def key_map_for(style: str, overrides: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Return the key map for a named style, optionally patched by ``overrides``."""
    base = KEY_STYLES.get((style or "").strip().lower())
    if base is None:
        raise ConfigError(f"Unknown settings key style '{style}' (expected one of {', '.join(KEY_STYLES)})")
    out = dict(base)
    out.update(overrides or {})
    return out


def _exact_int(value: Any) -> Optional[int]:
    """Integer value of ``value`` without truncation, None when it has none."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
    return None


class PipelineCodec:
    """Encode desired pipelines, decode observed ones."""

    def __init__(self, key_map: Optional[Mapping[str, str]] = None, *, index_key: str = "pipelines") -> None:
        key_map = dict(DOTTED_KEYS if key_map is None else key_map)
        unknown = sorted(k for k in key_map if k not in SETTINGS_SCHEMA)
        if unknown:
            raise ConfigError(f"Key map refers to unknown settings: {', '.join(unknown)}")
        wire_keys = list(key_map.values())
        if len(set(wire_keys)) != len(wire_keys):
            raise ConfigError("Key map must not map two settings to the same wire key")
        self.key_map = key_map
        self.reverse_map = {wire: name for name, wire in key_map.items()}
        self.index_key = index_key

    # ------------- encode -------------

    def encode(self, spec: PipelineSpec) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if spec.description:
            body["description"] = spec.description
        body["pipeline"] = spec.definition

        settings: Dict[str, SettingValue] = {}
        for name, value in spec.settings.items():
            if value is None:
                continue
            wire = self.key_map.get(name)
            if wire is None:
                raise ConfigError(f"No wire key configured for setting '{name}'")
            settings[wire] = value
        if settings:
            body["settings"] = settings
        return body

    # ------------- decode -------------

    def decode(
        self,
        body: Any,
        pipeline_id: str,
        entry: Optional[PipelineIndexEntry] = None,
    ) -> RemotePipeline:
        """Parse a GET body into a :class:`RemotePipeline`.

        ``entry`` (from the listing of the same invocation) supplies owner and
        last_modified when the body does not carry them.
        """
        if not isinstance(body, dict):
            raise DecodeError(f"Pipeline '{pipeline_id}': expected a JSON object, got {type(body).__name__}")
        definition = body.get("pipeline")
        if not isinstance(definition, str):
            raise DecodeError(f"Pipeline '{pipeline_id}': missing or invalid 'pipeline' field")

        description = body.get("description")
        if description is not None and not isinstance(description, str):
            raise DecodeError(f"Pipeline '{pipeline_id}': 'description' must be a string")

        owner = body.get("username") or (entry.owner if entry else None)
        last_modified = body.get("last_modified") or (entry.last_modified if entry else None)

        return RemotePipeline(
            id=pipeline_id,
            definition=definition,
            description=description or None,
            settings=self._decode_settings(body.get("settings"), pipeline_id),
            owner=owner,
            last_modified=last_modified,
        )

    def _decode_settings(self, raw: Any, pipeline_id: str) -> Dict[str, SettingValue]:
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise DecodeError(f"Pipeline '{pipeline_id}': 'settings' must be an object")

        out: Dict[str, SettingValue] = {}
        for wire, value in raw.items():
            name = self.reverse_map.get(wire)
            if name is None or value is None:
                # forward compatibility: fields we do not manage are ignored
                continue
            sdef = SETTINGS_SCHEMA[name]
            if sdef.type is int:
                as_int = _exact_int(value)
                if as_int is None:
                    raise DecodeError(f"Pipeline '{pipeline_id}': setting '{wire}' is not an integer: {value!r}")
                out[name] = as_int
            else:
                out[name] = str(value)
        return out

    def decode_index(self, body: Any) -> List[PipelineIndexEntry]:
        if not isinstance(body, dict) or not isinstance(body.get(self.index_key), list):
            raise DecodeError(f"Listing must be an object with a '{self.index_key}' list")

        entries: List[PipelineIndexEntry] = []
        for item in body[self.index_key]:
            if not isinstance(item, dict) or not isinstance(item.get("id"), str):
                raise DecodeError(f"Listing entry without a string 'id': {item!r}")
            entries.append(
                PipelineIndexEntry(
                    id=item["id"],
                    last_modified=item.get("last_modified"),
                    owner=item.get("username"),
                )
            )
        return entries
