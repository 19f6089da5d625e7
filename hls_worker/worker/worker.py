import threading
import time

from hls_worker.config.settings import Settings
from hls_worker.logging.logger import Log
from hls_worker.worker.claimer import JobClaimer
from hls_worker.worker.job_runner import JobRunner


class Worker:
    """Poll loop: tick every interval -> claim -> run.

    At most one job runs per process. A tick that finds the slot taken is
    skipped instead of queued.
    """

    def __init__(
        self,
        claimer: JobClaimer,
        job_runner: JobRunner,
        settings: Settings,
    ) -> None:
        self._claimer = claimer
        self._job_runner = job_runner
        self._settings = settings
        self._slot = threading.Semaphore(1)
        self._stop = threading.Event()
        self._current_job_id: str | None = None

    @property
    def current_job_id(self) -> str | None:
        """Id of the job being processed, if any."""
        return self._current_job_id

    def stop(self) -> None:
        """Ask the loop to exit after the current tick."""
        self._stop.set()

    def tick(self) -> bool:
        """Claim and run at most one job. Returns True if a job was run.

        Never raises: errors are logged so the loop keeps polling.
        """
        if not self._slot.acquire(blocking=False):
            Log.debug("Previous job still running, skipping tick")
            return False
        try:
            job = self._claimer.claim_next()
            if job is None:
                Log.debug("No jobs available")
                return False
            self._current_job_id = job.id
            outcome = self._job_runner.run(job)
            Log.info(f"Job {job.id} finished with outcome {outcome}")
            return True
        except Exception as exc:
            Log.exception(f"Poll tick failed, will retry: {exc}")
            return False
        finally:
            self._current_job_id = None
            self._slot.release()

    def run(self, max_ticks: int | None = None) -> None:
        """Main poll loop on a fixed interval. Runs until stopped or interrupted.

        If max_ticks is set, stop after that many ticks (for testing).
        """
        interval = self._settings.job_poll_interval_seconds
        Log.info(f"Worker {self._settings.worker_id} started, polling every {interval}s")
        ticks = 0
        next_tick = time.monotonic()
        try:
            while not self._stop.is_set():
                if max_ticks is not None and ticks >= max_ticks:
                    break
                self.tick()
                ticks += 1
                next_tick += interval
                delay = next_tick - time.monotonic()
                if delay <= 0:
                    # A long job overran the schedule; realign instead of bursting.
                    next_tick = time.monotonic()
                    continue
                if max_ticks is not None and ticks >= max_ticks:
                    break
                self._stop.wait(delay)
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")
        Log.info("Worker stopped")
