"""
Pydantic models for request/response validation.

Provides type-safe, validated data structures for the task and health endpoints.
"""

import re
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.core.pipeline_config import OutputFormat
from app.core.workflow.context import JobOutput, PipelineOptions

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,200}$")


# -----------------------------------------------------------------------------
# Base Models
# -----------------------------------------------------------------------------

class BaseSchema(BaseModel):
    """Base schema with common configuration."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# -----------------------------------------------------------------------------
# Task Payloads
# -----------------------------------------------------------------------------

class ProcessMediaTask(BaseSchema):
    """Body of a queued media processing task."""
    session_id: str = Field(..., min_length=1, max_length=200, description="Session document ID")
    output_format: OutputFormat = Field(default=OutputFormat.IMAGE, description="Requested output format")
    options: PipelineOptions = Field(default_factory=PipelineOptions)

    @field_validator("session_id")
    @classmethod
    def validate_session_id(cls, v: str) -> str:
        if not SESSION_ID_PATTERN.match(v):
            raise ValueError("Invalid session ID format")
        return v


class TaskSkippedResponse(BaseSchema):
    """Returned when a redelivered task finds its session already completed."""
    status: Literal["skipped"] = "skipped"
    session_id: str
    reason: str = "already completed"


class ProcessMediaResponse(BaseSchema):
    status: Literal["completed"] = "completed"
    output: JobOutput


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------

class HealthResponse(BaseSchema):
    """Health check response."""
    status: str = "healthy"
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
