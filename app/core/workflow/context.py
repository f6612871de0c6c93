"""
Data structures for the media processing workflow.

Contains the run options, the per-run processing context, the job result,
and the scratch directory that owns every intermediate file of a run.
"""

import logging
import shutil
import tempfile
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.config import SCRATCH_ROOT
from app.core.pipeline_config import ArtifactFormat, AspectRatio, PipelineConfig
from app.core.repositories.models import Dimensions, Session

logger = logging.getLogger(__name__)


class PipelineOptions(BaseModel):
    """Per-run options supplied by the task payload."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    aspect_ratio: AspectRatio = AspectRatio.SQUARE
    overlay: bool = False
    ai_transform: bool = False


class JobOutput(BaseModel):
    """Result of a successful run; mirrors what is written to ``outputs``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    format: ArtifactFormat
    primary_url: str
    thumbnail_url: str
    dimensions: Dimensions
    size_bytes: int = Field(..., ge=0)
    processing_time_ms: int = Field(default=0, ge=0)


@dataclass
class RenderedArtifact:
    """Local files produced by an orchestrator, ready for upload."""

    primary_path: Path
    thumbnail_path: Path
    format: ArtifactFormat
    extension: str


@dataclass
class ProcessingContext:
    """Context for one session run."""

    session: Session
    options: PipelineOptions
    config: PipelineConfig
    scratch_dir: Path
    sessions: Any
    storage: Any
    api_key: Optional[str] = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def session_id(self) -> str:
        return self.session.id

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


@asynccontextmanager
async def scratch_directory(session_id: str, root: Optional[Path] = None) -> AsyncIterator[Path]:
    """
    Create an exclusively owned scratch directory for one run.

    The directory and everything in it is removed on every exit path,
    including errors and cancellation.
    """
    base = Path(root or SCRATCH_ROOT)
    base.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=f"{session_id}-", dir=base))
    logger.debug(f"Created scratch directory {path}")
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        logger.debug(f"Removed scratch directory {path}")
