"""Read-only health endpoint for container liveness checks.

Serves GET / with a small JSON status document from a daemon thread so it
keeps answering while the poll loop is busy with a job.
"""

import json
import threading
from collections.abc import Callable
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from hls_worker.logging.logger import Log

SERVICE_NAME = "hls-worker"


class HealthServer:
    def __init__(
        self,
        port: int,
        status_fn: Callable[[], dict[str, object]] | None = None,
        host: str = "0.0.0.0",
    ) -> None:
        self._host = host
        self._port = port
        self._status_fn = status_fn
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        """Bound port; differs from the configured one when started with port 0."""
        if self._server is None:
            return self._port
        return self._server.server_address[1]

    def start(self) -> None:
        handler = _make_handler(self._status)
        self._server = ThreadingHTTPServer((self._host, self._port), handler)
        self._server.daemon_threads = True
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="health-server", daemon=True
        )
        self._thread.start()
        Log.info(f"Health endpoint listening on port {self.port}")

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None

    def _status(self) -> dict[str, object]:
        status: dict[str, object] = {"ok": True, "service": SERVICE_NAME}
        if self._status_fn is not None:
            status.update(self._status_fn())
        return status


def _make_handler(
    status_fn: Callable[[], dict[str, object]],
) -> type[BaseHTTPRequestHandler]:
    class HealthHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:  # noqa: N802
            if self.path not in ("/", "/health"):
                self._send(HTTPStatus.NOT_FOUND, {"ok": False, "error": "not found"})
                return
            self._send(HTTPStatus.OK, status_fn())

        def _send(self, status: HTTPStatus, body: dict[str, object]) -> None:
            payload = json.dumps(body).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)

        def log_message(self, format: str, *args: object) -> None:  # noqa: A002
            Log.debug(f"health: {format % args}")

    return HealthHandler
