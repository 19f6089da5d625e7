import os
import socket

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def default_worker_id() -> str:
    """Owner token written into claimed rows: hostname plus pid."""
    return f"hls-worker-{socket.gethostname()}-{os.getpid()}"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"
    worker_id: str = Field(default_factory=default_worker_id)

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "postgres"
    db_username: str = "postgres"
    db_password: str = "secret"

    # No defaults: the worker must refuse to start without them.
    supabase_url: str
    supabase_service_role_key: str

    source_bucket: str = "videos"
    output_bucket: str = "videos-hls"

    job_poll_interval_seconds: int = 5
    lease_duration_seconds: int = 14400
    max_job_attempts: int = 3
    requeue_failed_jobs: bool = False

    io_max_attempts: int = 3
    backoff_base_seconds: float = 1.5
    download_timeout_seconds: int = 300
    signed_url_expires_seconds: int = 600

    ffmpeg_binary: str = "ffmpeg"
    transcode_timeout_seconds: int = 7200
    hls_segment_seconds: int = 2
    hls_keyframe_interval: int = 48
    scratch_root: str | None = None

    content_tables: list[str] = ["posts"]

    health_port: int = 8080
    last_error_max_length: int = 1000

    # Headroom for uploads and backoff sleeps on top of the timed stages.
    lease_margin_seconds: int = 1800

    def longest_attempt_seconds(self) -> int:
        """Upper bound on how long one claimed attempt may legitimately run."""
        return (
            self.transcode_timeout_seconds
            + self.io_max_attempts * self.download_timeout_seconds
            + self.lease_margin_seconds
        )

    @model_validator(mode="after")
    def lease_outlasts_attempt(self) -> "Settings":
        longest = self.longest_attempt_seconds()
        if self.lease_duration_seconds <= longest:
            raise ValueError(
                f"lease_duration_seconds ({self.lease_duration_seconds}) must exceed "
                f"the longest attempt ({longest}s): transcode timeout plus "
                f"download attempts plus lease margin"
            )
        return self
