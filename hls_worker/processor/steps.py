from pathlib import PurePosixPath

from hls_worker.database.repositories.content_repository import ContentRepository
from hls_worker.logging.logger import Log
from hls_worker.processor.downloader import Downloader
from hls_worker.processor.exceptions import RecordUpdateError
from hls_worker.processor.pipeline import PipelineContext, PipelineStep, Stage
from hls_worker.processor.transcoder import PLAYLIST_NAME, Transcoder
from hls_worker.processor.uploader import TreeUploader
from hls_worker.storage.blob_store import BlobStoreClient


def rendition_prefix(post_id: str, job_id: str) -> str:
    """Output namespace for a job. Unique per job, so concurrent jobs never collide."""
    return f"{post_id}/{job_id}"


class DownloadStep(PipelineStep):
    def __init__(self, downloader: Downloader) -> None:
        self._downloader = downloader

    def run(self, context: PipelineContext) -> PipelineContext:
        suffix = PurePosixPath(context.job.source_path).suffix or ".bin"
        source_file = context.scratch_dir / f"source{suffix}"
        self._downloader.fetch(context.job.source_path, source_file)
        context.source_file = source_file
        context.stage = Stage.DOWNLOADED
        return context


class TranscodeStep(PipelineStep):
    def __init__(self, transcoder: Transcoder) -> None:
        self._transcoder = transcoder

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.source_file is None:
            raise ValueError("PipelineContext.source_file must be set before transcoding")
        output_dir = context.scratch_dir / "hls"
        context.playlist_path = self._transcoder.transcode(context.source_file, output_dir)
        context.output_dir = output_dir
        context.stage = Stage.TRANSCODED
        Log.info(f"Job {context.job.id} transcoded into {output_dir}")
        return context


class PublishStep(PipelineStep):
    def __init__(self, uploader: TreeUploader) -> None:
        self._uploader = uploader

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.output_dir is None:
            raise ValueError("PipelineContext.output_dir must be set before publishing")
        prefix = rendition_prefix(context.job.post_id, context.job.id)
        context.rendition_prefix = prefix
        context.uploaded_keys = self._uploader.publish(context.output_dir, prefix)
        context.rendition_path = f"{prefix}/{PLAYLIST_NAME}"
        context.stage = Stage.PUBLISHED
        return context


class RecordRenditionStep(PipelineStep):
    """Best effort: the rendition is already published when this runs.

    A failed update leaves the content record stale while the job still
    completes; the publish is never rolled back for it.
    """

    def __init__(
        self,
        content_repo: ContentRepository,
        blob_store: BlobStoreClient,
        bucket: str,
    ) -> None:
        self._content_repo = content_repo
        self._blob_store = blob_store
        self._bucket = bucket

    def run(self, context: PipelineContext) -> PipelineContext:
        if not context.rendition_path:
            raise ValueError("PipelineContext.rendition_path must be set before recording")
        context.public_url = self._blob_store.public_url(self._bucket, context.rendition_path)
        try:
            updated = self._content_repo.update_rendition(
                context.job.post_id,
                rendition_path=context.rendition_path,
                public_url=context.public_url,
            )
        except RecordUpdateError as exc:
            Log.error(f"Job {context.job.id}: {exc}")
        except Exception:
            Log.exception(
                f"Job {context.job.id}: content record update for post "
                f"{context.job.post_id} failed unexpectedly"
            )
        else:
            if updated == 0:
                Log.warning(
                    f"Job {context.job.id}: no content record found for post {context.job.post_id}"
                )
            else:
                Log.info(f"Job {context.job.id}: updated {updated} content record(s)")
        context.stage = Stage.RECORDED
        return context
