import os
import uuid
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest

from hls_worker.config.settings import Settings
from hls_worker.database.connection import close_pool, get_connection, init_pool
from hls_worker.database.models import JobRecord

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "hls_worker" / "database" / "schema.sql"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "hls_worker_test")
    os.environ.setdefault("SUPABASE_URL", "https://project.supabase.test")
    os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute(SCHEMA_PATH.read_text())
            conn.commit()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run.")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup(integration_pool: None) -> Generator[list[tuple[str, str]], None, None]:
    cleanup: list[tuple[str, str]] = []
    yield cleanup
    if not cleanup:
        return
    with get_connection() as conn:
        with conn.cursor() as cur:
            for table, row_id in cleanup:
                if table == "video_transcode_jobs":
                    cur.execute("DELETE FROM video_transcode_jobs WHERE id = %s", (row_id,))
                elif table == "posts":
                    cur.execute("DELETE FROM posts WHERE id = %s", (row_id,))
        conn.commit()


@pytest.fixture(autouse=True)
def isolate_job_table(request: pytest.FixtureRequest) -> None:
    """Park unrelated pending rows so claim tests only see their own jobs."""
    if "db_conn" not in request.fixturenames:
        return
    conn = request.getfixturevalue("db_conn")
    conn.execute(
        "UPDATE video_transcode_jobs SET status = 'failed' "
        "WHERE status IN ('pending', 'processing')"
    )
    conn.commit()


@pytest.fixture
def seed_job(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, str]],
) -> Callable[..., JobRecord]:
    """Factory inserting a job row (and its post) and registering cleanup."""

    def _seed(
        job_id: str | None = None,
        post_id: str | None = None,
        source_path: str = "raw/v1.mp4",
        status: str = "pending",
        attempts: int = 0,
    ) -> JobRecord:
        job_id = job_id or f"job-{uuid.uuid4()}"
        post_id = post_id or f"post-{uuid.uuid4()}"
        with db_conn.cursor() as cur:
            cur.execute(
                "INSERT INTO posts (id) VALUES (%s) ON CONFLICT (id) DO NOTHING",
                (post_id,),
            )
            cur.execute(
                """
                INSERT INTO video_transcode_jobs (id, post_id, source_path, status, attempts)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (job_id, post_id, source_path, status, attempts),
            )
        db_conn.commit()
        integration_cleanup.append(("video_transcode_jobs", job_id))
        integration_cleanup.append(("posts", post_id))
        return JobRecord(
            id=job_id,
            post_id=post_id,
            source_path=source_path,
            status=status,
            attempts=attempts,
        )

    return _seed


def expire_lease(conn: psycopg.Connection[Any], job_id: str) -> None:
    conn.execute(
        "UPDATE video_transcode_jobs SET lease_expires_at = NOW() - INTERVAL '1 minute' "
        "WHERE id = %s",
        (job_id,),
    )
    conn.commit()


@pytest.fixture
def expire() -> Callable[[psycopg.Connection[Any], str], None]:
    return expire_lease
