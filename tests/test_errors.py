"""
Tests for the error taxonomy and code mapping.
"""

import pytest
from pydantic import BaseModel, ValidationError

from app.core.errors import (
    AiProviderError,
    AiTransformError,
    ErrorCode,
    FFmpegError,
    PipelineValidationError,
    StorageError,
    error_code_for,
    guest_message_for,
    map_ai_provider_error,
)


class _Strict(BaseModel):
    value: int


class TestErrorCodeFor:
    @pytest.mark.parametrize(
        "kind,code",
        [
            ("validation", ErrorCode.VALIDATION),
            ("timeout", ErrorCode.TIMEOUT),
            ("codec", ErrorCode.CODEC),
            ("filesystem", ErrorCode.FILESYSTEM),
            ("memory", ErrorCode.MEMORY),
            ("unknown", ErrorCode.UNKNOWN),
        ],
    )
    def test_ffmpeg_kinds_map_one_to_one(self, kind, code):
        assert error_code_for(FFmpegError("failed", kind)) == code

    def test_storage_error(self):
        assert error_code_for(StorageError("missing")) == ErrorCode.FILESYSTEM

    def test_pipeline_validation(self):
        assert error_code_for(PipelineValidationError("no assets")) == ErrorCode.VALIDATION

    def test_pydantic_validation(self):
        with pytest.raises(ValidationError) as exc_info:
            _Strict(value="not a number")
        assert error_code_for(exc_info.value) == ErrorCode.VALIDATION

    def test_ai_transform_error_keeps_code(self):
        exc = AiTransformError(ErrorCode.REFERENCE_IMAGE_NOT_FOUND, "missing")
        assert error_code_for(exc) == ErrorCode.REFERENCE_IMAGE_NOT_FOUND

    def test_ai_provider_error_is_mapped(self):
        assert error_code_for(AiProviderError("bad", kind="invalid-config")) == ErrorCode.AI_CONFIG_INVALID

    def test_anything_else_is_unknown(self):
        assert error_code_for(RuntimeError("boom")) == ErrorCode.UNKNOWN


class TestMapAiProviderError:
    @pytest.mark.parametrize(
        "kind,code",
        [
            ("reference-image-not-found", ErrorCode.REFERENCE_IMAGE_NOT_FOUND),
            ("invalid-config", ErrorCode.AI_CONFIG_INVALID),
            ("api-error", ErrorCode.AI_TRANSFORM_FAILED),
            ("invalid-input-image", ErrorCode.AI_TRANSFORM_FAILED),
            ("timeout", ErrorCode.AI_TRANSFORM_FAILED),
            ("something-new", ErrorCode.AI_TRANSFORM_FAILED),
        ],
    )
    def test_mapping(self, kind, code):
        assert map_ai_provider_error(kind) == code


class TestGuestMessages:
    def test_every_code_has_a_message(self):
        for code in ErrorCode:
            assert guest_message_for(code)

    def test_messages_do_not_leak_internals(self):
        for code in ErrorCode:
            message = guest_message_for(code).lower()
            assert "ffmpeg" not in message
            assert "stderr" not in message
