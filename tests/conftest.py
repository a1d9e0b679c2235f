import base64
import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import unquote, urlparse

import pytest

from pipelinesync.core.errors import RemoteError, TransportError

AUTH = "elastic:changeme"
LIST_PATH = "/api/logstash/pipelines"
ITEM_PREFIX = "/api/logstash/pipeline/"


class FakeKibana:
    """In-process Kibana speaking the Logstash pipeline management API.

    Unknown ids on GET fail with a 500, like the Kibana versions that crash
    instead of answering 404.
    """

    def __init__(self) -> None:
        self.pipelines = {}
        self.calls = []          # (method, path)
        self.last_headers = {}
        self.last_body = None
        self.overrides = {}      # (method, path) -> (status, raw bytes)
        self.delay_sec = 0.0
        self.base_url = ""

    def seed(self, pipeline_id, pipeline, description=None, settings=None, username="elastic"):
        self.pipelines[pipeline_id] = {
            "description": description,
            "pipeline": pipeline,
            "settings": settings or {},
            "username": username,
            "last_modified": "2024-01-01T00:00:00.000Z",
        }

    def count(self, method, path=None):
        return sum(1 for m, p in self.calls if m == method and (path is None or p == path))

    def handler(self):
        kibana = self

        class _Handler(BaseHTTPRequestHandler):
            protocol_version = "HTTP/1.1"

            def _send_json(self, status, obj=None, raw=None):
                if raw is None:
                    raw = b"" if obj is None else json.dumps(obj).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(raw)))
                self.end_headers()
                self.wfile.write(raw)

            def _prelude(self):
                path = urlparse(self.path).path
                kibana.calls.append((self.command, path))
                kibana.last_headers = dict(self.headers)
                length = int(self.headers.get("Content-Length", "0"))
                body = self.rfile.read(length) if length else b""
                kibana.last_body = json.loads(body.decode("utf-8")) if body else None
                if kibana.delay_sec:
                    time.sleep(kibana.delay_sec)

                override = kibana.overrides.get((self.command, path))
                if override:
                    status, raw = override
                    self._send_json(status, raw=raw)
                    return None

                expected = "Basic " + base64.b64encode(AUTH.encode()).decode()
                if self.headers.get("Authorization", "") != expected:
                    self._send_json(401, {"statusCode": 401, "error": "Unauthorized", "message": "Unauthorized"})
                    return None
                if self.command in ("PUT", "DELETE") and self.headers.get("kbn-xsrf") != "true":
                    self._send_json(400, {"statusCode": 400, "error": "Bad Request",
                                          "message": "Request must contain a kbn-xsrf header."})
                    return None
                return path

            def do_GET(self):  # noqa: N802
                path = self._prelude()
                if path is None:
                    return
                if path == LIST_PATH:
                    items = [
                        {"id": pid, "last_modified": p["last_modified"], "username": p["username"]}
                        for pid, p in kibana.pipelines.items()
                    ]
                    self._send_json(200, {"pipelines": items})
                elif path.startswith(ITEM_PREFIX):
                    pid = unquote(path[len(ITEM_PREFIX):])
                    p = kibana.pipelines.get(pid)
                    if p is None:
                        self._send_json(500, {"statusCode": 500, "error": "Internal Server Error",
                                              "message": "An internal server error occurred"})
                        return
                    body = {"id": pid, "username": p["username"], "pipeline": p["pipeline"]}
                    if p["description"]:
                        body["description"] = p["description"]
                    if p["settings"]:
                        body["settings"] = p["settings"]
                    self._send_json(200, body)
                else:
                    self._send_json(404, {"statusCode": 404, "error": "Not Found", "message": "Not Found"})

            def do_PUT(self):  # noqa: N802
                path = self._prelude()
                if path is None:
                    return
                pid = unquote(path[len(ITEM_PREFIX):])
                body = kibana.last_body or {}
                if "id" in body or "username" in body:
                    self._send_json(400, {"statusCode": 400, "error": "Bad Request",
                                          "message": "[request body.id]: definition for this key is missing"})
                    return
                kibana.pipelines[pid] = {
                    "description": body.get("description"),
                    "pipeline": body["pipeline"],
                    "settings": body.get("settings") or {},
                    "username": "elastic",
                    "last_modified": "2024-02-02T00:00:00.000Z",
                }
                self._send_json(204)

            def do_DELETE(self):  # noqa: N802
                path = self._prelude()
                if path is None:
                    return
                pid = unquote(path[len(ITEM_PREFIX):])
                if kibana.pipelines.pop(pid, None) is None:
                    self._send_json(404, {"statusCode": 404, "error": "Not Found", "message": "Not Found"})
                    return
                self._send_json(204)

            def log_message(self, fmt, *args):  # silence test server logs
                return

        return _Handler


@pytest.fixture()
def kibana():
    fake = FakeKibana()
    server = ThreadingHTTPServer(("127.0.0.1", 0), fake.handler())
    host, port = server.server_address
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    fake.base_url = f"http://{host}:{port}"
    yield fake
    server.shutdown()
    server.server_close()
    thread.join(timeout=1.0)


class FakeGateway:
    """In-memory gateway recording every call; wire bodies use dotted keys."""

    def __init__(self) -> None:
        self.pipelines = {}
        self.calls = []
        self.put_bodies = []
        self.failures = {}       # op -> exception raised on the next call

    def seed(self, pipeline_id, pipeline, description=None, settings=None, username="elastic"):
        self.pipelines[pipeline_id] = {
            "pipeline": pipeline,
            "description": description,
            "settings": dict(settings or {}),
            "username": username,
            "last_modified": "t0",
        }

    def ops(self):
        return [op for op, _ in self.calls]

    def _record(self, op, arg=None):
        self.calls.append((op, arg))
        exc = self.failures.pop(op, None)
        if exc is not None:
            raise exc

    def list_pipelines(self, ctx=None):
        self._record("list")
        return {"pipelines": [
            {"id": pid, "last_modified": p["last_modified"], "username": p["username"]}
            for pid, p in self.pipelines.items()
        ]}

    def get_pipeline(self, pipeline_id, ctx=None):
        self._record("get", pipeline_id)
        p = self.pipelines.get(pipeline_id)
        if p is None:
            raise RemoteError(status=500, message="An internal server error occurred")
        body = {"username": p["username"], "pipeline": p["pipeline"]}
        if p["description"]:
            body["description"] = p["description"]
        if p["settings"]:
            body["settings"] = dict(p["settings"])
        return body

    def put_pipeline(self, pipeline_id, body, ctx=None):
        self._record("put", pipeline_id)
        self.put_bodies.append(body)
        self.pipelines[pipeline_id] = {
            "pipeline": body["pipeline"],
            "description": body.get("description"),
            "settings": dict(body.get("settings") or {}),
            "username": "elastic",
            "last_modified": f"t{len(self.put_bodies)}",
        }

    def delete_pipeline(self, pipeline_id, ctx=None):
        self._record("delete", pipeline_id)
        if self.pipelines.pop(pipeline_id, None) is None:
            raise RemoteError(status=404, message="Not Found")


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def transport_error():
    return TransportError(url="http://kibana", message="connection refused")
