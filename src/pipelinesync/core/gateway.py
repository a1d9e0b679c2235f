"""
KibanaGateway: JSON HTTP client for the Logstash centralized pipeline
management API exposed by Kibana.

This module provides the single remote gateway the reconciler talks to:
  * One method per remote primitive (list / get / put / delete)
  * Basic authentication split from a ``username:password`` composite
  * Fixed per-call timeout, shortened by the caller's :class:`CallContext`
  * Classified failures: TransportError, RemoteError, DecodeError

There is deliberately no retry here: a failed call is surfaced as-is and the
caller decides whether to try again later.

Example:
    gw = KibanaGateway("https://kibana.local:5601", "elastic:changeme")
    body = gw.get_pipeline("main")
"""
from __future__ import annotations

import json
import logging
import time
import warnings
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests
import urllib3

from ..utils.auth import parse_two_part_id
from .context import CallContext
from .errors import DecodeError, RemoteError, TransportError

JSON = Dict[str, Any]

_LOG_PREVIEW = 600
_REDACT_KEYS = {"authorization", "password", "cloud_auth", "api_key"}


def _short_json(obj: Any, limit: int = _LOG_PREVIEW) -> str:
    try:
        if isinstance(obj, (dict, list)):
            s = json.dumps(obj, ensure_ascii=False)
        else:
            s = str(obj)
        return s[:limit]
    except (TypeError, ValueError):
        return f"<unserializable:{type(obj).__name__}>"


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            if str(k).lower() in _REDACT_KEYS:
                out[k] = "***REDACTED***"
            else:
                out[k] = _redact(v)
        return out
    if isinstance(obj, list):
        return [_redact(x) for x in obj]
    return obj


@dataclass
class GatewayOptions:
    """Runtime options for :class:`KibanaGateway`.

    Attributes:
        verify: If False, TLS certificate verification is disabled.
        timeout_sec: Per-request timeout (seconds).
        suppress_insecure_warning: Silence urllib3 warnings when ``verify`` is False.
        list_path: Listing endpoint.
        item_path: Single pipeline endpoint, ``{id}`` is substituted (URL-quoted).
    """
    verify: bool = True
    timeout_sec: float = 60.0
    suppress_insecure_warning: bool = False
    list_path: str = "/api/logstash/pipelines"
    item_path: str = "/api/logstash/pipeline/{id}"


class KibanaGateway:
    """Remote gateway for Logstash pipelines.

    Args:
        base_url: Kibana base URL (e.g. ``https://kibana.local:5601``).
        cloud_auth: ``username:password`` composite used for basic auth.
        options: Optional :class:`GatewayOptions`.
        session: Optional pre-built :class:`requests.Session` (tests).
        logger: Optional logger / adapter.
    """

    def __init__(
        self,
        base_url: str,
        cloud_auth: str,
        *,
        options: Optional[GatewayOptions] = None,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.options = options or GatewayOptions()
        self.log = logger or logging.getLogger("psync.gateway")

        self.session = session or requests.Session()
        self.session.auth = parse_two_part_id(cloud_auth, "username", "password")
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
            "kbn-xsrf": "true",
            "Cache-Control": "no-cache",
        })

        if not self.options.verify and self.options.suppress_insecure_warning:
            warnings.filterwarnings("ignore", category=urllib3.exceptions.InsecureRequestWarning)

    # ---------------- public API ----------------

    def list_pipelines(self, ctx: Optional[CallContext] = None) -> JSON:
        """GET the full pipeline listing (no pagination)."""
        return self._req("GET", self.options.list_path, ctx=ctx)

    def get_pipeline(self, pipeline_id: str, ctx: Optional[CallContext] = None) -> JSON:
        """GET one pipeline. Raises RemoteError(404) when unknown on APIs that say so."""
        return self._req("GET", self._item(pipeline_id), ctx=ctx)

    def put_pipeline(self, pipeline_id: str, body: JSON, ctx: Optional[CallContext] = None) -> None:
        """PUT (create-or-replace) one pipeline. The API returns no body to trust."""
        self._req("PUT", self._item(pipeline_id), json_body=body, ctx=ctx)

    def delete_pipeline(self, pipeline_id: str, ctx: Optional[CallContext] = None) -> None:
        self._req("DELETE", self._item(pipeline_id), ctx=ctx)

    # ---------------- low-level ----------------

    def _item(self, pipeline_id: str) -> str:
        return self.options.item_path.format(id=quote(pipeline_id, safe=""))

    def _url(self, path: str) -> str:
        """Resolve an absolute URL from a relative *path*."""
        return f"{self.base_url}/{path.lstrip('/')}"

    def _req(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[JSON] = None,
        ctx: Optional[CallContext] = None,
    ) -> JSON:
        """Perform one HTTP request and return the JSON response (or empty dict).

        Raises:
            TransportError: Connection, DNS, timeout, or cancelled/expired context.
            RemoteError: Non-2xx response.
            DecodeError: 2xx response whose body is not JSON.
        """
        url = self._url(path)
        timeout = self.options.timeout_sec
        if ctx is not None:
            if ctx.cancelled:
                raise TransportError(url=url, message="request cancelled")
            if ctx.expired():
                raise TransportError(url=url, message="deadline exceeded")
            timeout = ctx.timeout_for(timeout)

        if json_body is not None:
            self.log.debug("%s %s payload=%s", method, path, _short_json(_redact(json_body)))

        start = time.monotonic()
        try:
            resp = self.session.request(
                method=method,
                url=url,
                json=json_body,
                timeout=timeout,
                verify=self.options.verify,
            )
        except requests.Timeout as exc:
            self.log.error("HTTP %s %s timed out after %.1fs", method, url, timeout)
            raise TransportError(url=url, message=f"timed out: {exc}") from exc
        except requests.RequestException as exc:
            self.log.error("HTTP %s %s failed: %s", method, url, exc)
            raise TransportError(url=url, message=str(exc)) from exc

        elapsed = (time.monotonic() - start) * 1000
        if not 200 <= resp.status_code < 300:
            err = RemoteError(status=resp.status_code, message=self._error_message(resp), url=url)
            self.log.warning("%s %s -> %s in %.1fms: %s", method, path, resp.status_code, elapsed, err.message)
            raise err

        self.log.debug("%s %s -> %s in %.1fms", method, path, resp.status_code, elapsed)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise DecodeError(message=f"Non-JSON response: {exc}", url=url, body=resp.text) from exc

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        """Remote message from ``{statusCode, error, message}``, else a generic one."""
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("message"), str) and payload["message"]:
            return payload["message"]
        text = (resp.text or "").strip()
        if text:
            return f"unknown error, status code: {resp.status_code}, message: {text[:200]}"
        return f"unknown error, status code: {resp.status_code}"
