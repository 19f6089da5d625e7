import signal
import sys
from types import FrameType

from pydantic import ValidationError

from hls_worker.config.settings import Settings
from hls_worker.database.connection import close_pool, init_pool
from hls_worker.database.repositories.job_repository import JobRepository
from hls_worker.health.server import HealthServer
from hls_worker.logging.logger import Log
from hls_worker.processor.processor import build_processor
from hls_worker.storage.blob_store import BlobStoreClient
from hls_worker.worker.claimer import JobClaimer
from hls_worker.worker.job_runner import JobRunner
from hls_worker.worker.worker import Worker


def load_settings() -> Settings:
    """Load settings, exiting with status 1 if required configuration is missing."""
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        Log.configure("INFO")
        Log.error(f"Invalid or missing configuration, refusing to start: {exc}")
        sys.exit(1)


def main() -> None:
    """Entry point: settings -> pool -> clients -> health endpoint -> worker loop."""
    settings = load_settings()
    Log.configure(settings.log_level, worker=settings.worker_id)
    init_pool(settings)
    blob_store = BlobStoreClient(settings.supabase_url, settings.supabase_service_role_key)
    health: HealthServer | None = None

    try:
        processor = build_processor(settings, blob_store)
        job_repo = JobRepository(settings.max_job_attempts)
        claimer = JobClaimer(job_repo, settings.worker_id, settings.lease_duration_seconds)
        job_runner = JobRunner(processor, job_repo, settings)
        worker = Worker(claimer, job_runner, settings)

        def _handle_sigterm(_signum: int, _frame: FrameType | None) -> None:
            Log.info("SIGTERM received, stopping after the current job")
            worker.stop()

        signal.signal(signal.SIGTERM, _handle_sigterm)

        if settings.health_port:
            health = HealthServer(
                settings.health_port,
                status_fn=lambda: {
                    "worker_id": settings.worker_id,
                    "current_job": worker.current_job_id,
                },
            )
            health.start()

        worker.run()
    finally:
        if health is not None:
            health.stop()
        blob_store.close()
        close_pool()


if __name__ == "__main__":
    main()
