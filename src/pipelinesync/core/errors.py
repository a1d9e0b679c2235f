"""
Error taxonomy for PipelineSync.

- ValidationError: bad caller input, never reaches the network.
- ConfigError: runtime configuration cannot be resolved.
- TransportError: no remote verdict (connection, DNS, timeout, cancellation).
- RemoteError: the remote API processed the request and rejected it.
- DecodeError: the remote answered with a body we cannot interpret.
- ReconcileError: any of the gateway errors above, tagged with the phase
  of the reconciliation attempt that failed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class PipelineSyncError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(PipelineSyncError):
    """Raised when a desired pipeline (or an input file) is invalid."""


class ConfigError(PipelineSyncError):
    """Raised when runtime configuration cannot be resolved."""


class GatewayError(PipelineSyncError):
    """Base class for failures of a single remote call."""


@dataclass
class TransportError(GatewayError):
    """No remote verdict was obtained."""
    url: str
    message: str = ""

    def __str__(self) -> str:
        return f"TransportError(url={self.url}): {self.message or 'transport failure'}"


@dataclass
class RemoteError(GatewayError):
    """The remote system answered with a non-2xx status."""
    status: int
    message: str
    url: str = ""

    @property
    def not_found(self) -> bool:
        return self.status == 404

    def __str__(self) -> str:
        base = f"RemoteError(status={self.status}"
        if self.url:
            base += f", url={self.url}"
        return f"{base}): {self.message}"


@dataclass
class DecodeError(GatewayError):
    """The remote body is not in the expected shape."""
    message: str
    url: str = ""
    body: str = ""

    def __str__(self) -> str:
        base = f"DecodeError: {self.message}"
        if self.url:
            base += f" (url={self.url})"
        if self.body:
            base += f" body={self.body[:200]}"
        return base


class ReconcileError(PipelineSyncError):
    """A remote call failed during one phase of a reconciliation attempt.

    The original gateway error is available as ``cause`` (and as
    ``__cause__`` since it is always raised with ``raise ... from``).
    """

    def __init__(self, phase: str, pipeline_id: Optional[str], cause: GatewayError) -> None:
        self.phase = phase
        self.pipeline_id = pipeline_id
        self.cause = cause
        target = f" for pipeline '{pipeline_id}'" if pipeline_id else ""
        super().__init__(f"{phase} failed{target}: {cause}")

    @property
    def status(self) -> Optional[int]:
        """HTTP status of the underlying remote error, if any."""
        return getattr(self.cause, "status", None)
