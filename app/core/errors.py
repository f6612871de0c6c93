"""
Error taxonomy for the media processing pipeline.

Every layer raises one of these typed exceptions. The orchestrators are the
single place that turns an exception into a session failure record, using
``error_code_for`` to pick the stored code and ``guest_message_for`` to pick
the text guests see.
"""

from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import ValidationError as PydanticValidationError

TranscodeErrorKind = Literal["validation", "timeout", "codec", "filesystem", "memory", "unknown"]

AiProviderErrorKind = Literal[
    "reference-image-not-found",
    "invalid-config",
    "api-error",
    "invalid-input-image",
    "timeout",
]


class ErrorCode(str, Enum):
    """Codes written to ``processing.error.code``."""

    VALIDATION = "VALIDATION"
    TIMEOUT = "TIMEOUT"
    CODEC = "CODEC"
    FILESYSTEM = "FILESYSTEM"
    MEMORY = "MEMORY"
    UNKNOWN = "UNKNOWN"
    REFERENCE_IMAGE_NOT_FOUND = "REFERENCE_IMAGE_NOT_FOUND"
    AI_CONFIG_INVALID = "AI_CONFIG_INVALID"
    AI_TRANSFORM_FAILED = "AI_TRANSFORM_FAILED"


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    code: ErrorCode = ErrorCode.UNKNOWN


class PipelineValidationError(PipelineError):
    """Raised when a session's inputs cannot be processed (missing assets, overlay, ...)."""

    code = ErrorCode.VALIDATION


class StorageError(PipelineError):
    """Raised when a blob cannot be downloaded or uploaded."""

    code = ErrorCode.FILESYSTEM


class FFmpegError(PipelineError):
    """Raised by the transcoder layer; ``kind`` is a best-effort classification."""

    def __init__(
        self,
        message: str,
        kind: TranscodeErrorKind = "unknown",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.details = details or {}

    @property
    def code(self) -> ErrorCode:  # type: ignore[override]
        return ErrorCode(self.kind.upper())

    def __repr__(self) -> str:
        return f"FFmpegError(kind={self.kind!r}, message={self.message!r})"


class AiProviderError(PipelineError):
    """Failure reported by the AI generation provider."""

    def __init__(self, message: str, kind: AiProviderErrorKind = "api-error"):
        super().__init__(message)
        self.message = message
        self.kind = kind


class AiTransformError(PipelineError):
    """Pipeline-level AI transform failure with an already-mapped code."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.message = message
        self.code = code  # type: ignore[misc]


AI_PROVIDER_ERROR_CODES: Dict[str, ErrorCode] = {
    "reference-image-not-found": ErrorCode.REFERENCE_IMAGE_NOT_FOUND,
    "invalid-config": ErrorCode.AI_CONFIG_INVALID,
    "api-error": ErrorCode.AI_TRANSFORM_FAILED,
    "invalid-input-image": ErrorCode.AI_TRANSFORM_FAILED,
    "timeout": ErrorCode.AI_TRANSFORM_FAILED,
}


def map_ai_provider_error(kind: str) -> ErrorCode:
    """Collapse a provider error kind into the pipeline AI taxonomy."""
    return AI_PROVIDER_ERROR_CODES.get(kind, ErrorCode.AI_TRANSFORM_FAILED)


def error_code_for(exc: BaseException) -> ErrorCode:
    """Pick the session error code for any exception raised during a run."""
    if isinstance(exc, AiProviderError):
        return map_ai_provider_error(exc.kind)
    if isinstance(exc, PipelineError):
        return exc.code
    if isinstance(exc, PydanticValidationError):
        return ErrorCode.VALIDATION
    return ErrorCode.UNKNOWN


# Client-safe messages; raw exception text only goes to the logs.
GUEST_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.VALIDATION: "The submitted photos could not be processed.",
    ErrorCode.TIMEOUT: "Processing took too long and was cancelled.",
    ErrorCode.CODEC: "An error occurred while processing your request.",
    ErrorCode.FILESYSTEM: "Unable to save the result. Please try again.",
    ErrorCode.MEMORY: "An error occurred while processing your request.",
    ErrorCode.UNKNOWN: "An unexpected error occurred.",
    ErrorCode.REFERENCE_IMAGE_NOT_FOUND: "A reference image for this experience is missing.",
    ErrorCode.AI_CONFIG_INVALID: "The AI effect for this experience is not configured correctly.",
    ErrorCode.AI_TRANSFORM_FAILED: "The AI service is temporarily unavailable.",
}


def guest_message_for(code: ErrorCode) -> str:
    return GUEST_MESSAGES.get(code, GUEST_MESSAGES[ErrorCode.UNKNOWN])
