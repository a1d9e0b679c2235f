"""
Command-line interface for PipelineSync.

Usage (examples):
  - Plan (reads Kibana, no writes):
      pipelinesync plan --file ./pipelines.yml

  - Apply desired pipelines:
      pipelinesync apply --file ./pipelines.xlsx --kibana-url https://kibana:5601

  - Inspect / remove:
      pipelinesync list
      pipelinesync get main --format json
      pipelinesync delete main

Credentials come from CLOUD_AUTH (``username:password``), a .env file, the
config file or --cloud-auth.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Any, Dict, Iterable, Optional

from .core.config import AppConfig, load_config
from .core.context import CallContext
from .core.errors import ConfigError, ReconcileError, ValidationError
from .core.gateway import GatewayOptions, KibanaGateway
from .core.logging_setup import build_logger
from .pipelines.codec import PipelineCodec, key_map_for
from .pipelines.inputs import load_specs
from .pipelines.reconciler import PipelineReconciler
from .pipelines.sync import PipelineSync
from .utils.reporting import print_object, print_rows

EXIT_OK = 0
EXIT_GENERIC_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_VALIDATION_ERROR = 3
EXIT_NETWORK_ERROR = 4


def _summarize_counts(counts: Dict[str, int]) -> str:
    keys = ["create", "update", "noop", "error"]
    return " | ".join(f"{k.upper()}={counts.get(k, 0)}" for k in keys)


def _common_options() -> argparse.ArgumentParser:
    c = argparse.ArgumentParser(add_help=False)
    c.add_argument("--config", default=None, help="Config YAML (default: ./pipelinesync.yml, ~/.config/pipelinesync/config.yml)")
    c.add_argument("--kibana-url", default="", help="Kibana base URL (env KIBANA_URL)")
    c.add_argument("--cloud-auth", default="", help="username:password (env CLOUD_AUTH)")
    c.add_argument("--no-verify", action="store_true", help="Disable TLS verification")
    c.add_argument("--timeout-sec", type=int, default=None, help="Per-call HTTP timeout in seconds (default 60)")
    c.add_argument("--key-style", choices=["dotted", "underscored"], default=None,
                   help="Settings key format expected by the deployed Kibana")
    c.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    c.add_argument("--logs-dir", default=None, help="Logs base directory")
    c.add_argument("--console-level", default=None, help="Console log level (INFO..CRITICAL)")
    c.add_argument("--file-level", default=None, help="File log level (DEBUG..CRITICAL)")
    return c


def _build_arg_parser() -> argparse.ArgumentParser:
    common = _common_options()
    p = argparse.ArgumentParser(prog="pipelinesync", description="Declarative Logstash pipeline management for Kibana")
    sub = p.add_subparsers(dest="cmd", required=True)

    a = sub.add_parser("apply", parents=[common], help="Converge Kibana to the pipelines declared in a file")
    a.add_argument("--file", default=None, help="Desired pipelines (.yml, .xlsx or .csv; default: inputs.path)")
    a.add_argument("--sheet", default=None, help="XLSX sheet name (default: Pipelines)")
    a.add_argument("--dry-run", action="store_true", help="Plan only, no writes")
    a.add_argument("--no-defaults", action="store_true", help="Do not fill unset settings with their defaults")

    pl = sub.add_parser("plan", parents=[common], help="Show what apply would do")
    pl.add_argument("--file", default=None, help="Desired pipelines (.yml, .xlsx or .csv; default: inputs.path)")
    pl.add_argument("--sheet", default=None, help="XLSX sheet name (default: Pipelines)")
    pl.add_argument("--no-defaults", action="store_true", help="Do not fill unset settings with their defaults")

    g = sub.add_parser("get", parents=[common], help="Show the observed state of one pipeline")
    g.add_argument("pipeline_id")

    sub.add_parser("list", parents=[common], help="List pipelines known to Kibana")

    d = sub.add_parser("delete", parents=[common], help="Delete one pipeline (absent is not an error)")
    d.add_argument("pipeline_id")
    return p


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    out: Dict[str, Any] = {"app": {"dry_run": bool(getattr(args, "dry_run", False)) or args.cmd == "plan"}}
    kibana: Dict[str, Any] = {}
    if args.kibana_url:
        kibana["url"] = args.kibana_url
    if args.cloud_auth:
        kibana["cloud_auth"] = args.cloud_auth
    if args.no_verify:
        kibana["verify_tls"] = False
    if args.timeout_sec is not None:
        kibana["timeout_sec"] = args.timeout_sec
    if kibana:
        out["kibana"] = kibana
    if args.key_style:
        out["codec"] = {"key_style": args.key_style}
    log_cfg = {
        k: v for k, v in {
            "base_dir": args.logs_dir,
            "console_level": args.console_level,
            "file_level": args.file_level,
        }.items() if v
    }
    if log_cfg:
        out["logging"] = log_cfg
    return out


def _build_reconciler(cfg: AppConfig, logger: logging.LoggerAdapter) -> PipelineReconciler:
    gateway = KibanaGateway(
        cfg.kibana.url,
        cfg.kibana.cloud_auth,
        options=GatewayOptions(
            verify=bool(cfg.kibana.verify_tls),
            timeout_sec=float(cfg.kibana.timeout_sec),
            suppress_insecure_warning=bool(cfg.kibana.suppress_tls_warnings),
        ),
        logger=logger,
    )
    codec = PipelineCodec(
        key_map_for(cfg.codec.key_style, cfg.codec.key_map),
        index_key=cfg.codec.index_key,
    )
    return PipelineReconciler(gateway, codec, logger=logger)


def _apply_cmd(args: argparse.Namespace, cfg: AppConfig, reconciler: PipelineReconciler, logger) -> int:
    path = args.file or cfg.inputs.path
    specs = load_specs(
        path,
        sheet=args.sheet or cfg.inputs.sheet,
        apply_defaults=cfg.inputs.apply_defaults and not args.no_defaults,
    )
    logger.info("Loaded %s desired pipelines from %s", len(specs), path)

    result = PipelineSync(reconciler, logger=logger).run(specs, dry_run=cfg.app.dry_run)
    print_rows(result.rows, args.format)

    summary = _summarize_counts(result.counts())
    logger.info("%s summary: %s", "Plan" if cfg.app.dry_run else "Apply", summary)
    if args.format == "table":
        print(summary)
    if not result.any_error:
        return EXIT_OK
    if any(r.get("action") == "validate" for r in result.rows):
        return EXIT_VALIDATION_ERROR
    return EXIT_NETWORK_ERROR


def _get_cmd(args: argparse.Namespace, reconciler: PipelineReconciler) -> int:
    observed = reconciler.fetch(args.pipeline_id, CallContext())
    if observed is None:
        print(f"pipeline '{args.pipeline_id}' not found", file=sys.stderr)
        return EXIT_VALIDATION_ERROR
    print_object(observed.as_state(), args.format)
    return EXIT_OK


def _list_cmd(args: argparse.Namespace, reconciler: PipelineReconciler) -> int:
    rows = [
        {"id": e.id, "owner": e.owner, "last_modified": e.last_modified}
        for e in reconciler.list(CallContext())
    ]
    print_rows(rows, args.format)
    return EXIT_OK


def _delete_cmd(args: argparse.Namespace, reconciler: PipelineReconciler) -> int:
    deleted = reconciler.delete(args.pipeline_id, CallContext())
    status = "deleted" if deleted else "absent"
    print_rows([{"id": args.pipeline_id, "result": status}], args.format)
    return EXIT_OK


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    log = logging.getLogger("psync.cli")

    try:
        if args.config:
            if not os.path.isfile(args.config):
                raise ConfigError(f"Config file not found: {args.config}")
            cfg = load_config(_cli_overrides(args), files=(args.config,))
        else:
            cfg = load_config(_cli_overrides(args))

        logger = build_logger(
            run_id=cfg.run_id,
            action=args.cmd,
            base_dir=cfg.logging.base_dir,
            console_level=cfg.logging.console_level,
            file_level=cfg.logging.file_level,
            extra={"kibana": cfg.kibana.url},
        )
        log = logger
        logger.info("Starting pipelinesync %s (dry_run=%s)", args.cmd, cfg.app.dry_run)

        reconciler = _build_reconciler(cfg, logger)

        if args.cmd in ("apply", "plan"):
            return _apply_cmd(args, cfg, reconciler, logger)
        if args.cmd == "get":
            return _get_cmd(args, reconciler)
        if args.cmd == "list":
            return _list_cmd(args, reconciler)
        if args.cmd == "delete":
            return _delete_cmd(args, reconciler)
        parser.error("Unknown command")  # pragma: no cover

    except ConfigError as exc:
        log.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR
    except FileNotFoundError as exc:
        log.error("File not found: %s", exc)
        return EXIT_VALIDATION_ERROR
    except ValidationError as exc:
        log.error("Validation error: %s", exc)
        return EXIT_VALIDATION_ERROR
    except ReconcileError as exc:
        log.error("Remote error: %s", exc)
        return EXIT_NETWORK_ERROR
    except Exception as exc:  # pragma: no cover
        log.error("Unexpected error: %s", exc, exc_info=True)
        return EXIT_GENERIC_ERROR
    return EXIT_GENERIC_ERROR  # pragma: no cover


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
