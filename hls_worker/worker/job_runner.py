from enum import StrEnum

from hls_worker.config.settings import Settings
from hls_worker.database.models import JobRecord
from hls_worker.database.repositories.job_repository import JobRepository
from hls_worker.logging.logger import Log
from hls_worker.processor.exceptions import ProcessorError, truncate_error
from hls_worker.processor.processor import Processor


class Outcome(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    REQUEUED = "requeued"
    LEASE_LOST = "lease_lost"


class JobRunner:
    """Run one claimed job and record its terminal state exactly once."""

    def __init__(
        self,
        processor: Processor,
        job_repo: JobRepository,
        settings: Settings,
    ) -> None:
        self._processor = processor
        self._job_repo = job_repo
        self._settings = settings

    def run(self, job: JobRecord) -> Outcome:
        """Execute a single job with error handling."""
        owner = self._settings.worker_id
        Log.info(
            f"Running job {job.id} (attempt {job.attempts + 1})",
            job_id=job.id,
            post_id=job.post_id,
        )
        try:
            context = self._processor.process(job)
        except Exception as exc:
            return self._handle_failure(job, exc)

        if not self._job_repo.mark_completed(job.id, owner):
            Log.warning(f"Job {job.id} finished but its lease was taken over; not marking completed")
            return Outcome.LEASE_LOST
        Log.info(f"Job {job.id} completed: {context.rendition_path}", job_id=job.id)
        return Outcome.COMPLETED

    def _handle_failure(self, job: JobRecord, exc: Exception) -> Outcome:
        """Fail the job, or return it to pending when the requeue policy allows."""
        owner = self._settings.worker_id
        error = truncate_error(
            f"{type(exc).__name__}: {exc}", self._settings.last_error_max_length
        )
        retryable = isinstance(exc, ProcessorError) and exc.retryable
        Log.error(f"Job {job.id} failed: {error}", job_id=job.id, retryable=retryable)

        if (
            self._settings.requeue_failed_jobs
            and retryable
            and job.attempts + 1 < self._settings.max_job_attempts
        ):
            if not self._job_repo.requeue(job.id, owner, error):
                Log.warning(f"Job {job.id} lease was taken over; failure not recorded")
                return Outcome.LEASE_LOST
            Log.warning(f"Job {job.id} will be retried (attempt {job.attempts + 1})")
            return Outcome.REQUEUED

        if not self._job_repo.mark_failed(job.id, owner, error):
            Log.warning(f"Job {job.id} lease was taken over; failure not recorded")
            return Outcome.LEASE_LOST
        Log.error(f"Job {job.id} permanently failed after {job.attempts + 1} attempts")
        return Outcome.FAILED
