from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from hls_worker.database.models import JobRecord


class Stage(StrEnum):
    STARTED = "started"
    DOWNLOADED = "downloaded"
    TRANSCODED = "transcoded"
    PUBLISHED = "published"
    RECORDED = "recorded"


@dataclass(slots=True)
class PipelineContext:
    job: JobRecord
    scratch_dir: Path
    stage: Stage = Stage.STARTED
    source_file: Path | None = None
    output_dir: Path | None = None
    playlist_path: Path | None = None
    rendition_prefix: str = ""
    uploaded_keys: list[str] = field(default_factory=list)
    rendition_path: str = ""
    public_url: str = ""


class PipelineStep(ABC):
    @abstractmethod
    def run(self, context: PipelineContext) -> PipelineContext:
        raise NotImplementedError
