import shutil
import tempfile
from pathlib import Path

from hls_worker.config.settings import Settings
from hls_worker.database.models import JobRecord
from hls_worker.database.repositories.content_repository import ContentRepository
from hls_worker.logging.logger import Log
from hls_worker.processor.downloader import Downloader
from hls_worker.processor.pipeline import PipelineContext, PipelineStep
from hls_worker.processor.steps import (
    DownloadStep,
    PublishStep,
    RecordRenditionStep,
    TranscodeStep,
)
from hls_worker.processor.transcoder import Transcoder
from hls_worker.processor.uploader import TreeUploader
from hls_worker.storage.blob_store import BlobStoreClient


class Processor:
    """Runs the pipeline steps for one job inside a private scratch directory.

    Pipeline: download -> transcode -> publish -> record.
    The scratch directory is removed on every exit path.
    """

    def __init__(self, steps: list[PipelineStep], scratch_root: Path | None = None) -> None:
        self._steps = steps
        self._scratch_root = scratch_root

    def process(self, job: JobRecord) -> PipelineContext:
        """Run all steps for a claimed job. Stage errors propagate to the caller."""
        Log.info(f"Processing {job.source_path} for job {job.id}")
        scratch_dir = Path(
            tempfile.mkdtemp(prefix=f"hls-{job.id}-", dir=self._scratch_root)
        )
        context = PipelineContext(job=job, scratch_dir=scratch_dir)
        try:
            for step in self._steps:
                context = step.run(context)
            return context
        finally:
            try:
                shutil.rmtree(scratch_dir)
                Log.debug(f"Removed scratch directory {scratch_dir}")
            except OSError as exc:
                Log.warning(f"Could not remove scratch directory {scratch_dir}: {exc}")


def build_processor(settings: Settings, blob_store: BlobStoreClient) -> Processor:
    """Build a Processor with all required adapters."""
    downloader = Downloader(
        blob_store,
        settings.source_bucket,
        max_attempts=settings.io_max_attempts,
        backoff_base=settings.backoff_base_seconds,
        timeout_seconds=settings.download_timeout_seconds,
        signed_url_expires=settings.signed_url_expires_seconds,
        error_max_length=settings.last_error_max_length,
    )
    transcoder = Transcoder(
        settings.ffmpeg_binary,
        timeout_seconds=settings.transcode_timeout_seconds,
        segment_seconds=settings.hls_segment_seconds,
        keyframe_interval=settings.hls_keyframe_interval,
    )
    uploader = TreeUploader(
        blob_store,
        settings.output_bucket,
        max_attempts=settings.io_max_attempts,
        backoff_base=settings.backoff_base_seconds,
    )
    content_repo = ContentRepository(settings.content_tables)
    steps: list[PipelineStep] = [
        DownloadStep(downloader),
        TranscodeStep(transcoder),
        PublishStep(uploader),
        RecordRenditionStep(content_repo, blob_store, settings.output_bucket),
    ]
    scratch_root = Path(settings.scratch_root) if settings.scratch_root else None
    return Processor(steps=steps, scratch_root=scratch_root)
