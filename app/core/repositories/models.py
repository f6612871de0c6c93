"""
Pydantic models for session documents.

Field names are snake_case in Python and camelCase in Firestore; every model
accepts either on input and ``to_dict`` writes the Firestore spelling.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.core.pipeline_config import ArtifactFormat


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    FAILED = "failed"


class PipelineStep(str, Enum):
    """Values of ``processing.currentStep``, in pipeline order."""

    DOWNLOADING = "downloading"
    AI_TRANSFORM = "ai-transform"
    PROCESSING = "processing"
    UPLOADING = "uploading"


class FirestoreModel(BaseModel):
    """Base model mapping snake_case attributes to camelCase document fields."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Create from Firestore document dictionary."""
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Firestore-compatible dictionary."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class InputAsset(FirestoreModel):
    """A guest-submitted source frame."""

    url: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1, max_length=300)
    mime_type: str = Field(default="image/jpeg")
    size_bytes: int = Field(default=0, ge=0)
    uploaded_at: Optional[datetime] = None


class MediaReference(FirestoreModel):
    """Pointer to a stored media asset (overlays, reference images)."""

    media_asset_id: Optional[str] = None
    url: Optional[str] = None
    file_path: Optional[str] = None
    display_name: Optional[str] = None


class AiTransformSettings(FirestoreModel):
    """Per-session overrides for the AI transform step."""

    model: Optional[str] = None
    prompt: Optional[str] = None
    reference_images: List[str] = Field(default_factory=list)


class ProcessingError(FirestoreModel):
    code: str
    message: str = Field(default="", max_length=1000)
    timestamp: Optional[datetime] = None


class ProcessingState(FirestoreModel):
    state: ProcessingStatus
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    current_step: Optional[PipelineStep] = None
    attempt_number: Optional[int] = Field(default=None, ge=1)
    task_id: Optional[str] = None
    error: Optional[ProcessingError] = None


class Dimensions(FirestoreModel):
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)


class SessionOutputs(FirestoreModel):
    """Final artifact references; written once, on success."""

    primary_url: str = Field(..., min_length=1)
    thumbnail_url: str = Field(..., min_length=1)
    format: ArtifactFormat
    dimensions: Dimensions
    size_bytes: int = Field(..., ge=0)
    completed_at: Optional[datetime] = None
    processing_time_ms: int = Field(default=0, ge=0)


class Session(FirestoreModel):
    """The parts of a guest session document the pipeline reads and writes."""

    id: str = Field(..., min_length=1, max_length=200)
    project_id: str = Field(..., min_length=1, max_length=200)
    company_id: Optional[str] = None
    input_assets: List[InputAsset] = Field(default_factory=list)
    processing: Optional[ProcessingState] = None
    outputs: Optional[SessionOutputs] = None
    overlays: Dict[str, MediaReference] = Field(default_factory=dict)
    ai_transform: Optional[AiTransformSettings] = None

    @field_validator("overlays", mode="before")
    @classmethod
    def drop_empty_overlays(cls, v: Any) -> Any:
        """Firestore stores unset overlay slots as null."""
        if isinstance(v, dict):
            return {key: value for key, value in v.items() if value}
        return v or {}

    @property
    def is_completed(self) -> bool:
        return self.outputs is not None and self.processing is None
