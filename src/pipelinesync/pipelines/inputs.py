"""
Desired-state loader: reads pipeline declarations from YAML, XLSX or CSV.

YAML layout::

    pipelines:
      - id: main
        description: Beats ingestion
        pipeline: |
          input { beats { port => 5044 } }
          output { elasticsearch { hosts => ["es:9200"] } }
        settings:
          workers: 2
          queue_type: persisted
      - id: syslog
        pipeline_file: conf/syslog.conf

Tabular layout (XLSX sheet ``Pipelines`` or CSV): one row per pipeline,
columns ``id``, ``description``, ``pipeline`` or ``pipeline_file`` and one
column per setting (``batch_delay``, ``workers``, ...). Empty cells mean unset.

``pipeline_file`` paths are resolved relative to the input file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

import pandas as pd
import yaml

from ..core.errors import ValidationError
from ..utils.validators import require_columns, require_sheets, validate_setting
from .models import SETTINGS_SCHEMA, PipelineSpec, apply_setting_defaults

DEFAULT_SHEET = "Pipelines"
_DEFINITION_KEYS = ("pipeline", "definition")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    return isinstance(value, str) and value.strip() == ""


def _to_str(value: Any) -> Optional[str]:
    """Cell -> string, None for blanks; integral floats lose their '.0'."""
    if _is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _coerce_setting(name: str, value: Any, where: str) -> Any:
    sdef = SETTINGS_SCHEMA.get(name)
    if sdef is None:
        raise ValidationError(f"{where}: unknown setting '{name}'")
    if sdef.type is int and not isinstance(value, bool):
        # spreadsheets hand integers back as floats or strings
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
            value = int(value.strip())
    elif sdef.type is str and not isinstance(value, str):
        value = _to_str(value)
    try:
        return validate_setting(name, value)
    except ValidationError as exc:
        raise ValidationError(f"{where}: {exc}") from exc


def _read_definition(item: Dict[str, Any], base_dir: Path, where: str) -> str:
    for key in _DEFINITION_KEYS:
        text = item.get(key)
        if not _is_blank(text):
            return str(text)
    ref = _to_str(item.get("pipeline_file"))
    if ref:
        p = Path(ref)
        if not p.is_absolute():
            p = base_dir / p
        if not p.is_file():
            raise ValidationError(f"{where}: pipeline_file not found: {p}")
        return p.read_text(encoding="utf-8")
    raise ValidationError(f"{where}: one of 'pipeline' or 'pipeline_file' is required")


def build_spec(item: Dict[str, Any], *, base_dir: Path, where: str, apply_defaults: bool = True) -> PipelineSpec:
    """Build a :class:`PipelineSpec` from one declaration (YAML mapping or table row)."""
    pipeline_id = _to_str(item.get("id"))
    if not pipeline_id:
        raise ValidationError(f"{where}: 'id' is required")
    where = f"{where} ({pipeline_id})"

    raw_settings = item.get("settings")
    if raw_settings is None:
        # tabular rows carry one column per setting
        raw_settings = {k: item.get(k) for k in SETTINGS_SCHEMA if k in item}
    if not isinstance(raw_settings, dict):
        raise ValidationError(f"{where}: 'settings' must be a mapping")

    settings = {
        name: _coerce_setting(name, value, where)
        for name, value in raw_settings.items()
        if not _is_blank(value)
    }
    if apply_defaults:
        settings = apply_setting_defaults(settings)

    return PipelineSpec(
        id=pipeline_id.strip(),
        definition=_read_definition(item, base_dir, where),
        description=_to_str(item.get("description")),
        settings=settings,
    )


def _check_unique(specs: Iterable[PipelineSpec]) -> List[PipelineSpec]:
    seen: Set[str] = set()
    out: List[PipelineSpec] = []
    for spec in specs:
        if spec.id in seen:
            raise ValidationError(f"Duplicate pipeline id '{spec.id}'")
        seen.add(spec.id)
        out.append(spec)
    return out


def _load_yaml(path: Path, apply_defaults: bool) -> List[PipelineSpec]:
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    items = data.get("pipelines") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise ValidationError(f"{path}: top-level 'pipelines' list is required")
    specs = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"{path}: pipelines[{idx}] must be a mapping")
        specs.append(build_spec(item, base_dir=path.parent, where=f"pipelines[{idx}]", apply_defaults=apply_defaults))
    return specs


def _load_frame(df: pd.DataFrame, path: Path, context: str, apply_defaults: bool) -> List[PipelineSpec]:
    df = df.rename(columns=lambda c: str(c).strip().lower())
    require_columns(df, ["id"], context=context)
    if not any(c in df.columns for c in _DEFINITION_KEYS + ("pipeline_file",)):
        raise ValidationError(f"{context}: Missing required columns: pipeline (or pipeline_file)")

    specs = []
    for idx, row in df.iterrows():
        item = row.to_dict()
        if all(_is_blank(v) for v in item.values()):
            continue
        specs.append(build_spec(item, base_dir=path.parent, where=f"{context} row {idx + 2}", apply_defaults=apply_defaults))
    return specs


def load_specs(path: str, *, sheet: Optional[str] = None, apply_defaults: bool = True) -> List[PipelineSpec]:
    """Load desired pipelines from ``path`` (.yml/.yaml, .xlsx/.xlsm, .csv).

    Raises:
        FileNotFoundError: If the file does not exist.
        ValidationError: On malformed content.
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"{path}")

    ext = p.suffix.lower()
    if ext in (".yml", ".yaml"):
        specs = _load_yaml(p, apply_defaults)
    elif ext in (".xlsx", ".xlsm"):
        sheet_name = sheet or DEFAULT_SHEET
        try:
            sheets = pd.read_excel(p, sheet_name=None, engine="openpyxl", dtype=object)
        except (OSError, ValueError) as exc:
            raise ValidationError(f"Failed to read {path}: {exc}") from exc
        require_sheets(sheets, [sheet_name])
        specs = _load_frame(sheets[sheet_name], p, sheet_name, apply_defaults)
    elif ext == ".csv":
        df = pd.read_csv(p, dtype=object, keep_default_na=True, encoding="utf-8-sig")
        specs = _load_frame(df, p, p.name, apply_defaults)
    else:
        raise ValidationError(f"Unsupported input format '{ext}' (expected .yml, .yaml, .xlsx or .csv)")

    return _check_unique(specs)
