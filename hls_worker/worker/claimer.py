from hls_worker.database.connection import get_connection
from hls_worker.database.models import JobRecord, JobStatus
from hls_worker.database.repositories.job_repository import JobRepository
from hls_worker.logging.logger import Log


class JobClaimer:
    """Hands the oldest claimable job to this worker, or nothing.

    Claimable means pending, or processing with an expired lease (the owner
    crashed). Losing the compare-and-swap to another worker is not an error:
    the candidate is left alone and the next poll picks again.
    """

    def __init__(self, job_repo: JobRepository, owner: str, lease_seconds: int) -> None:
        self._job_repo = job_repo
        self._owner = owner
        self._lease_seconds = lease_seconds

    def claim_next(self) -> JobRecord | None:
        with get_connection() as conn:
            exhausted = self._job_repo.fail_exhausted_leases(conn)
            if exhausted:
                Log.warning(f"Failed {exhausted} job(s) whose lease expired on the last attempt")

            candidate = self._job_repo.find_claimable(conn)
            if candidate is None:
                return None

            job = self._job_repo.try_claim(conn, candidate, self._owner, self._lease_seconds)

        if job is None:
            Log.debug(f"Lost claim race for job {candidate.id}")
            return None
        if candidate.status == JobStatus.PROCESSING:
            Log.warning(
                f"Reclaimed job {job.id} from {candidate.locked_by} after lease expiry",
                job_id=job.id,
                attempts=job.attempts,
            )
        else:
            Log.info(f"Claimed job {job.id}", job_id=job.id, post_id=job.post_id)
        return job
