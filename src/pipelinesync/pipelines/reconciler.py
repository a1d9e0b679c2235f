"""
Pipeline reconciler: drives one desired pipeline to convergence.

Lifecycle of one ``reconcile`` call (nothing survives the call):

    validate -> resolve (listing) -> absent:  put -> confirm (get)
                                  -> present: read (get) -> diff -> changed:   put -> confirm (get)
                                                                 -> unchanged: read is the confirmation

- Remote calls are strictly sequential, each depends on the previous outcome.
- Any remote failure aborts the attempt and is raised as ReconcileError
  (phase + pipeline id), chained to the gateway error. No retry, no backoff:
  the caller re-invokes later.
- PUT is a full replace; there is no field-level patch.
- The only local recovery: not-found on delete is success.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..core.context import CallContext
from ..core.errors import GatewayError, ReconcileError, RemoteError
from ..core.gateway import KibanaGateway
from ..utils.diff_engine import Decision, decide
from ..utils.validators import validate_spec
from .codec import PipelineCodec
from .models import PipelineIndexEntry, PipelineSpec, RemotePipeline
from .projector import ObservedPipeline, project
from .resolver import IdentityResolver


@dataclass(frozen=True)
class ReconcileOutcome:
    """Result of one reconcile call."""
    decision: Decision
    remote: RemotePipeline
    observed: ObservedPipeline

    @property
    def op(self) -> str:
        return self.decision.op

    @property
    def changed(self) -> bool:
        return self.decision.op != "NOOP"


class PipelineReconciler:
    """Reconcile desired pipelines against Kibana.

    The gateway and codec are injected; the reconciler holds no other state,
    so one instance can serve concurrent calls for *different* ids. Calls for
    the same id must be serialized by the caller (PUT is last-write-wins).
    """

    def __init__(
        self,
        gateway: KibanaGateway,
        codec: Optional[PipelineCodec] = None,
        *,
        resolver: Optional[IdentityResolver] = None,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.gateway = gateway
        self.codec = codec or PipelineCodec()
        self.log = logger or logging.getLogger("psync.reconciler")
        self.resolver = resolver or IdentityResolver(gateway, self.codec, logger=self.log)

    # ---------------- entry points ----------------

    def reconcile(self, spec: PipelineSpec, ctx: Optional[CallContext] = None) -> ReconcileOutcome:
        validate_spec(spec)

        entry = self._call("resolve", spec.id, self.resolver.find, spec.id, ctx)
        if entry is None:
            decision = decide(spec, None)
        else:
            current = self._read("read", spec.id, ctx, entry)
            decision = decide(spec, project(current).spec)
            if decision.op == "NOOP":
                self.log.info("NOOP %s: %s", spec.id, decision.reason)
                return ReconcileOutcome(decision=decision, remote=current, observed=project(current))

        self.log.info("%s %s: %s", decision.op, spec.id, decision.reason)
        self._call("write", spec.id, self.gateway.put_pipeline, spec.id, self.codec.encode(spec), ctx)

        confirmed = self._read("confirm", spec.id, ctx)
        return ReconcileOutcome(decision=decision, remote=confirmed, observed=project(confirmed))

    def plan(self, spec: PipelineSpec, ctx: Optional[CallContext] = None) -> Decision:
        """Same comparison as :meth:`reconcile`, without any write."""
        validate_spec(spec)
        entry = self._call("resolve", spec.id, self.resolver.find, spec.id, ctx)
        if entry is None:
            return decide(spec, None)
        current = self._read("read", spec.id, ctx, entry)
        return decide(spec, project(current).spec)

    def fetch(self, pipeline_id: str, ctx: Optional[CallContext] = None) -> Optional[ObservedPipeline]:
        """Observed state of ``pipeline_id``, or None when it does not exist."""
        entry = self._call("fetch", pipeline_id, self.resolver.find, pipeline_id, ctx)
        if entry is None:
            self.log.info("pipeline '%s' not found remotely", pipeline_id)
            return None
        return project(self._read("fetch", pipeline_id, ctx, entry))

    def delete(self, pipeline_id: str, ctx: Optional[CallContext] = None) -> bool:
        """Delete ``pipeline_id``. Returns False when it was already absent."""
        try:
            self.gateway.delete_pipeline(pipeline_id, ctx)
        except RemoteError as exc:
            if exc.not_found:
                self.log.info("pipeline '%s' already absent", pipeline_id)
                return False
            raise ReconcileError("delete", pipeline_id, exc) from exc
        except GatewayError as exc:
            raise ReconcileError("delete", pipeline_id, exc) from exc
        self.log.info("DELETE %s", pipeline_id)
        return True

    def list(self, ctx: Optional[CallContext] = None) -> List[PipelineIndexEntry]:
        return self._call("list", None, self.resolver.list, ctx)

    # ---------------- internals ----------------

    def _read(
        self,
        phase: str,
        pipeline_id: str,
        ctx: Optional[CallContext],
        entry: Optional[PipelineIndexEntry] = None,
    ) -> RemotePipeline:
        body = self._call(phase, pipeline_id, self.gateway.get_pipeline, pipeline_id, ctx)
        try:
            return self.codec.decode(body, pipeline_id, entry)
        except GatewayError as exc:
            raise ReconcileError(phase, pipeline_id, exc) from exc

    def _call(self, phase: str, pipeline_id: Optional[str], fn, *args):
        try:
            return fn(*args)
        except GatewayError as exc:
            self.log.error("%s failed for %s: %s", phase, pipeline_id or "<all>", exc)
            raise ReconcileError(phase, pipeline_id, exc) from exc
