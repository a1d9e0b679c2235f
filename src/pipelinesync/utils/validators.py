"""
Validators: desired pipeline invariants, settings schema, input sheets/columns.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable

import pandas as pd

from ..core.errors import ValidationError
from ..pipelines.models import SETTINGS_SCHEMA, PipelineSpec, SettingValue


def require_sheets(xlsx_sheets: Dict[str, pd.DataFrame], required: Iterable[str]) -> None:
    """Ensure that all required sheet names are present."""
    missing = [s for s in required if s not in xlsx_sheets]
    if missing:
        raise ValidationError(f"Missing required sheets: {', '.join(missing)}")


def require_columns(
    df: pd.DataFrame,
    required: Iterable[str],
    context: str | None = None,
) -> None:
    """Ensure that all required columns are present in a DataFrame.

    Parameters
    ----------
    df : pandas.DataFrame
        The DataFrame to validate.
    required : Iterable[str]
        Column names that must be present in ``df``.
    context : str, optional
        Prepended to the error message (e.g. the sheet name).

    Raises
    ------
    ValidationError
        If one or more required columns are missing.
    """
    missing = [c for c in required if c not in df.columns]
    if missing:
        prefix = f"{context}: " if context else ""
        raise ValidationError(f"{prefix}Missing required columns: {', '.join(missing)}")


def validate_setting(name: str, value: Any) -> SettingValue:
    """Check one setting against the schema and return it with its declared type."""
    sdef = SETTINGS_SCHEMA.get(name)
    if sdef is None:
        raise ValidationError(f"Unknown setting '{name}' (expected one of {', '.join(SETTINGS_SCHEMA)})")

    if sdef.type is int:
        # bool is an int subclass, never a valid count
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"Setting '{name}' must be an integer, got {value!r}")
        if sdef.minimum is not None and value < sdef.minimum:
            raise ValidationError(f"Setting '{name}' must be at least {sdef.minimum}, got {value}")
    else:
        if not isinstance(value, str):
            raise ValidationError(f"Setting '{name}' must be a string, got {value!r}")
        if sdef.allowed and value not in sdef.allowed:
            raise ValidationError(f"Setting '{name}' must be one of {list(sdef.allowed)}, got {value!r}")
    return value


def validate_spec(spec: PipelineSpec) -> None:
    """Enforce the desired-state invariants before any remote call.

    Raises:
        ValidationError: On empty id/definition or an invalid setting.
    """
    if not spec.id:
        raise ValidationError("Pipeline id cannot be empty")
    if not spec.definition:
        raise ValidationError(f"Pipeline '{spec.id}': definition cannot be empty")
    for name, value in spec.settings.items():
        try:
            validate_setting(name, value)
        except ValidationError as exc:
            raise ValidationError(f"Pipeline '{spec.id}': {exc}") from exc
