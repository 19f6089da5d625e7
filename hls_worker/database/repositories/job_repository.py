from typing import Any

import psycopg
from psycopg.rows import dict_row

from hls_worker.database.connection import get_connection
from hls_worker.database.models import JobRecord, JobStatus

_JOB_COLUMNS = """
    id, post_id, source_path, status, attempts, locked_by, locked_at,
    lease_expires_at, last_error, created_at, updated_at
"""


def _to_record(row: dict[str, Any]) -> JobRecord:
    return JobRecord(
        id=str(row["id"]),
        post_id=str(row["post_id"]),
        source_path=row["source_path"],
        status=row["status"],
        attempts=row["attempts"],
        locked_by=row["locked_by"],
        locked_at=row["locked_at"],
        lease_expires_at=row["lease_expires_at"],
        last_error=row["last_error"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class JobRepository:
    """Database operations for the video_transcode_jobs table.

    Every write is a conditional update guarded by the row's previous state,
    so concurrent workers never overwrite each other. Correctness depends on
    PostgreSQL evaluating the WHERE clause atomically with the update.
    """

    def __init__(self, max_attempts: int) -> None:
        self._max_attempts = max_attempts

    def find_claimable(self, conn: psycopg.Connection[Any]) -> JobRecord | None:
        """Return the oldest pending job, or a processing job whose lease expired.

        Pending rows are claimable regardless of attempts so an operator can
        reset a failed job by hand.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                SELECT {_JOB_COLUMNS}
                FROM video_transcode_jobs
                WHERE status = 'pending'
                   OR (
                    status = 'processing'
                    AND lease_expires_at < NOW()
                    AND attempts + 1 < %(max_attempts)s
                  )
                ORDER BY created_at
                LIMIT 1
                """,
                {"max_attempts": self._max_attempts},
            )
            row = cur.fetchone()
        conn.commit()

        if row is None:
            return None
        return _to_record(row)

    def try_claim(
        self,
        conn: psycopg.Connection[Any],
        candidate: JobRecord,
        owner: str,
        lease_seconds: int,
    ) -> JobRecord | None:
        """Compare-and-swap the candidate into 'processing' for this owner.

        The update only matches if the row still carries the status and owner
        observed by find_claimable. Returns None when another worker got there
        first. Taking over an expired lease counts the abandoned attempt.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                UPDATE video_transcode_jobs
                SET status = 'processing',
                    locked_by = %(owner)s,
                    locked_at = NOW(),
                    lease_expires_at = NOW() + %(lease_seconds)s * INTERVAL '1 second',
                    attempts = attempts
                        + CASE WHEN status = 'processing' THEN 1 ELSE 0 END,
                    updated_at = NOW()
                WHERE id = %(id)s
                  AND status = %(status)s
                  AND locked_by IS NOT DISTINCT FROM %(previous_owner)s
                  AND (
                    status = 'pending'
                    OR (status = 'processing' AND lease_expires_at < NOW())
                  )
                RETURNING {_JOB_COLUMNS}
                """,
                {
                    "owner": owner,
                    "lease_seconds": lease_seconds,
                    "id": candidate.id,
                    "status": candidate.status,
                    "previous_owner": candidate.locked_by,
                },
            )
            row = cur.fetchone()
        conn.commit()

        if row is None:
            return None
        return _to_record(row)

    def fail_exhausted_leases(self, conn: psycopg.Connection[Any]) -> int:
        """Fail expired leases whose abandoned attempt reaches the attempt ceiling.

        Returns the number of rows moved to 'failed'.
        """
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE video_transcode_jobs
                SET status = 'failed',
                    attempts = attempts + 1,
                    last_error = 'lease expired while processing (owner ' || COALESCE(locked_by, '?') || ')',
                    locked_by = NULL,
                    lease_expires_at = NULL,
                    updated_at = NOW()
                WHERE status = 'processing'
                  AND lease_expires_at < NOW()
                  AND attempts + 1 >= %s
                """,
                (self._max_attempts,),
            )
            count = cur.rowcount
        conn.commit()
        return count

    def mark_completed(self, job_id: str, owner: str) -> bool:
        """Mark a job completed. Returns False if this owner no longer holds it."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE video_transcode_jobs
                    SET status = 'completed', locked_by = NULL,
                        lease_expires_at = NULL, last_error = NULL,
                        updated_at = NOW()
                    WHERE id = %s AND status = 'processing' AND locked_by = %s
                    """,
                    (job_id, owner),
                )
                updated = cur.rowcount == 1
            conn.commit()
        return updated

    def mark_failed(self, job_id: str, owner: str, error: str) -> bool:
        """Mark a job permanently failed. Returns False if this owner no longer holds it."""
        return self._release(job_id, owner, error, JobStatus.FAILED)

    def requeue(self, job_id: str, owner: str, error: str) -> bool:
        """Count the failed attempt and return the job to pending."""
        return self._release(job_id, owner, error, JobStatus.PENDING)

    def _release(self, job_id: str, owner: str, error: str, status: JobStatus) -> bool:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE video_transcode_jobs
                    SET status = %s, attempts = attempts + 1, last_error = %s,
                        locked_by = NULL, lease_expires_at = NULL,
                        updated_at = NOW()
                    WHERE id = %s AND status = 'processing' AND locked_by = %s
                    """,
                    (status.value, error, job_id, owner),
                )
                updated = cur.rowcount == 1
            conn.commit()
        return updated

    def find_by_id(self, job_id: str) -> JobRecord | None:
        """Find a job by ID. Useful for tests."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_JOB_COLUMNS}
                    FROM video_transcode_jobs
                    WHERE id = %s
                    """,
                    (job_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _to_record(row)
