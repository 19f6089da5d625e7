from collections.abc import Generator

import httpx
import pytest

from hls_worker.health.server import HealthServer


@pytest.fixture()
def health() -> Generator[HealthServer, None, None]:
    server = HealthServer(0, status_fn=lambda: {"current_job": "j1"}, host="127.0.0.1")
    server.start()
    yield server
    server.stop()


class TestHealthServer:
    def test_reports_status(self, health: HealthServer) -> None:
        response = httpx.get(f"http://127.0.0.1:{health.port}/", trust_env=False)

        assert response.status_code == 200
        assert response.json() == {"ok": True, "service": "hls-worker", "current_job": "j1"}

    def test_unknown_path_is_404(self, health: HealthServer) -> None:
        response = httpx.get(f"http://127.0.0.1:{health.port}/nope", trust_env=False)

        assert response.status_code == 404

    def test_stop_is_idempotent(self) -> None:
        server = HealthServer(0, host="127.0.0.1")
        server.start()
        server.stop()
        server.stop()
