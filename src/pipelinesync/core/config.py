from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv

from ..utils.auth import parse_two_part_id
from .errors import ConfigError


# ---------- Typed sections ----------

@dataclass
class AppSection:
    run_id: Optional[str] = None
    dry_run: bool = False


@dataclass
class KibanaSection:
    url: str = ""
    cloud_auth: str = ""     # secret – never log in clear text
    verify_tls: bool = True
    timeout_sec: int = 60
    suppress_tls_warnings: bool = False


@dataclass
class CodecSection:
    key_style: str = "dotted"
    key_map: Dict[str, str] = field(default_factory=dict)
    index_key: str = "pipelines"


@dataclass
class LoggingSection:
    base_dir: str = "logs"
    console_level: str = "INFO"   # INFO..CRITICAL
    file_level: str = "DEBUG"     # DEBUG..CRITICAL


@dataclass
class InputsSection:
    path: str = "./pipelines.yml"
    sheet: str = "Pipelines"
    apply_defaults: bool = True


@dataclass
class AppConfig:
    """Typed configuration object built by `load_config`."""
    app: AppSection
    kibana: KibanaSection
    codec: CodecSection
    logging: LoggingSection
    inputs: InputsSection

    @property
    def run_id(self) -> str:
        """
        Return a stable run identifier for this process.
        Generated lazily when first accessed if not provided.
        """
        if not self.app.run_id:
            self.app.run_id = uuid.uuid4().hex[:12]
        return self.app.run_id


# ---------- Defaults ----------

_DEFAULT_FILES: Tuple[str, ...] = (
    "./pipelinesync.yml",
    os.path.expanduser("~/.config/pipelinesync/config.yml"),
    "/etc/pipelinesync/config.yml",
)

_DEFAULTS: Dict[str, Any] = {
    "app": {"run_id": None, "dry_run": False},
    "kibana": {
        "url": "",
        "cloud_auth": "",
        "verify_tls": True,
        "timeout_sec": 60,
        "suppress_tls_warnings": False,
    },
    "codec": {"key_style": "dotted", "key_map": {}, "index_key": "pipelines"},
    "logging": {"base_dir": "logs", "console_level": "INFO", "file_level": "DEBUG"},
    "inputs": {"path": "./pipelines.yml", "sheet": "Pipelines", "apply_defaults": True},
}

# Plain variables honoured as fallbacks, as the Terraform provider did.
_LEGACY_ENV = {
    "KIBANA_URL": ("kibana", "url"),
    "CLOUD_AUTH": ("kibana", "cloud_auth"),
}


# ---------- Utilities ----------

def _deep_merge(base: Dict[str, Any], ext: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep-merge for dicts: maps merge recursively, lists/scalars override.
    `ext` wins over `base`. Returns a new dict.
    """
    if not ext:
        return dict(base)
    out: Dict[str, Any] = dict(base)
    for k, v in ext.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _read_yaml_file(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping: {path}")
    return data


def _load_first_existing(files: Tuple[str, ...]) -> Dict[str, Any]:
    for p in files:
        if os.path.exists(p):
            return _read_yaml_file(p)
    return {}


def _load_dotenv() -> None:
    """Load a .env from the working directory (or a parent) without overriding the shell."""
    env_path = find_dotenv(usecwd=True)
    if env_path:
        load_dotenv(env_path, override=False)


def _legacy_env() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for var, (section, key) in _LEGACY_ENV.items():
        val = os.environ.get(var)
        if val:
            out.setdefault(section, {})[key] = val
    return out


def _env_to_dict(prefix: str = "PSYNC_") -> Dict[str, Any]:
    """
    Convert PSYNC_FOO__BAR=val to {"foo": {"bar": "val"}} (lowercased keys).
    """
    out: Dict[str, Any] = {}
    plen = len(prefix)
    for key, val in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[plen:].lower().split("__")
        cursor = out
        for part in path[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[path[-1]] = val
    return out


def _interpolate_env(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values like "${VAR}" with os.environ["VAR"] when present.
    """
    def repl(v: Any) -> Any:
        if isinstance(v, str) and v.startswith("${") and v.endswith("}"):
            return os.environ.get(v[2:-1], "")
        return v

    def walk(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: walk(repl(v)) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(x) for x in obj]
        return repl(obj)

    return walk(cfg)


def _coerce_types(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Minimal type coercion for booleans and integers in known keys.
    """
    def to_bool(x: Any) -> bool:
        return str(x).strip().lower() in {"1", "true", "yes", "y", "on"}

    def walk(obj: Any, key_path: Tuple[str, ...] = ()) -> Any:
        if isinstance(obj, dict):
            return {k: walk(v, key_path + (k,)) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(v, key_path) for v in obj]
        if key_path[-1:] in [("verify_tls",), ("dry_run",), ("suppress_tls_warnings",), ("apply_defaults",)]:
            return to_bool(obj)
        if key_path[-1:] == ("timeout_sec",):
            try:
                return int(obj)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"{'.'.join(key_path)} must be an integer, got {obj!r}") from exc
        return obj

    return walk(cfg)


def _validate(cfg: Dict[str, Any]) -> None:
    """
    Validate the Kibana connection settings. Dry runs read remote state too,
    so they are held to the same requirements.
    """
    kibana = cfg.get("kibana", {})
    missing = []
    if not kibana.get("url"):
        missing.append("kibana.url (KIBANA_URL)")
    if not kibana.get("cloud_auth"):
        missing.append("kibana.cloud_auth (CLOUD_AUTH)")
    if missing:
        raise ConfigError(
            "Missing required configuration: " + ", ".join(missing)
            + ". Create a .env at the repo root or export them in your shell, e.g.\n"
            "  KIBANA_URL=https://kibana.example.local:5601\n"
            "  CLOUD_AUTH=elastic:***\n"
        )
    parse_two_part_id(kibana["cloud_auth"])
    if int(kibana.get("timeout_sec", 0)) <= 0:
        raise ConfigError("kibana.timeout_sec must be positive")


# ---------- Public API ----------

def load_config(
    cli_overrides: Optional[Dict[str, Any]] = None,
    files: Tuple[str, ...] = _DEFAULT_FILES,
    env_prefix: str = "PSYNC_",
    *,
    use_dotenv: bool = True,
    require_remote: bool = True,
) -> AppConfig:
    """
    Build an AppConfig from (in precedence order):
      1) CLI overrides
      2) Environment variables (prefix PSYNC_, nested via __)
      3) KIBANA_URL / CLOUD_AUTH plain variables (also read from .env)
      4) YAML file (first existing)
      5) Built-in defaults

    Also performs:
      - ${ENV_VAR} interpolation
      - basic type coercion (bool/int)
      - validation of the Kibana settings when ``require_remote``

    Raises:
        ConfigError: On unreadable files, bad values or missing required fields.
    """
    if use_dotenv:
        _load_dotenv()

    file_cfg = _load_first_existing(files)

    merged = _deep_merge(_DEFAULTS, file_cfg)
    merged = _deep_merge(merged, _legacy_env())
    merged = _deep_merge(merged, _env_to_dict(env_prefix))
    merged = _deep_merge(merged, cli_overrides or {})

    merged = _interpolate_env(merged)
    merged = _coerce_types(merged)

    if require_remote:
        _validate(merged)

    try:
        return AppConfig(
            app=AppSection(**merged.get("app", {})),
            kibana=KibanaSection(**merged.get("kibana", {})),
            codec=CodecSection(**merged.get("codec", {})),
            logging=LoggingSection(**merged.get("logging", {})),
            inputs=InputsSection(**merged.get("inputs", {})),
        )
    except TypeError as exc:
        raise ConfigError(f"Unknown configuration key: {exc}") from exc
