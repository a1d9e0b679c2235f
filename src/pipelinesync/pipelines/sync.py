"""PipelineSync: reconciles a batch of desired pipelines, one row per pipeline.

Pipelines are independent: they are reconciled sequentially, in input order,
and a failure on one is recorded in its row without aborting the others.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..core.context import CallContext
from ..core.errors import ReconcileError, ValidationError
from .models import PipelineSpec
from .reconciler import PipelineReconciler


@dataclass
class SyncResult:
    """Aggregate result for a run across multiple pipelines."""
    rows: List[Dict[str, Any]]
    any_error: bool

    def counts(self) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for r in self.rows:
            out[r["result"]] = out.get(r["result"], 0) + 1
        return out


class PipelineSync:
    def __init__(
        self,
        reconciler: PipelineReconciler,
        *,
        call_timeout_sec: Optional[float] = None,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.reconciler = reconciler
        self.call_timeout_sec = call_timeout_sec
        self.log = logger or logging.getLogger("psync.sync")

    def _ctx(self) -> Optional[CallContext]:
        if self.call_timeout_sec is None:
            return None
        return CallContext.with_timeout(self.call_timeout_sec)

    def run(self, specs: Iterable[PipelineSpec], dry_run: bool = False) -> SyncResult:
        """Reconcile (or, in dry-run, plan) every spec.

        Row fields: id, result (create/update/noop/error), action (decision
        reason), status, owner, error.
        """
        rows: List[Dict[str, Any]] = []
        any_error = False

        for spec in specs:
            row: Dict[str, Any] = {"id": spec.id}
            try:
                if dry_run:
                    decision = self.reconciler.plan(spec, self._ctx())
                    row.update({
                        "result": decision.op.lower(),
                        "action": decision.reason,
                        "status": "Planned",
                    })
                else:
                    outcome = self.reconciler.reconcile(spec, self._ctx())
                    row.update({
                        "result": outcome.op.lower(),
                        "action": outcome.decision.reason,
                        "status": "Success",
                        "owner": outcome.observed.owner,
                    })
            except ValidationError as exc:
                self.log.error("invalid pipeline %s: %s", spec.id, exc)
                row.update({"result": "error", "action": "validate", "status": "Failed", "error": str(exc)})
                any_error = True
            except ReconcileError as exc:
                row.update({"result": "error", "action": exc.phase, "status": "Failed", "error": str(exc.cause)})
                any_error = True
            rows.append(row)

        return SyncResult(rows=rows, any_error=any_error)
