"""
AI transform step.

Loads reference images, sends the guest's frame to the image generation
provider, and writes the result into the scratch directory. The step records
its own failure on the session before raising, so guests see an AI-specific
error code rather than a generic one.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from app.config import AI_TRANSFORM_PROMPT, AI_TRANSFORM_TIMEOUT_SECONDS, GEMINI_IMAGE_MODEL
from app.core.errors import (
    AiProviderError,
    AiTransformError,
    StorageError,
    guest_message_for,
    map_ai_provider_error,
)
from app.core.gemini import GeminiImageClient, ImageGenerationRequest, ReferenceImage
from app.core.pipeline_config import AspectRatio, ai_aspect_ratio
from app.core.repositories.models import PipelineStep, Session

logger = logging.getLogger(__name__)

AI_OUTPUT_FILENAME = "ai-transformed.jpg"


@dataclass
class AiTransformConfig:
    model: str
    prompt: str
    aspect_ratio: str
    reference_images: List[str] = field(default_factory=list)


def resolve_ai_transform_config(session: Session, aspect_ratio: AspectRatio) -> AiTransformConfig:
    """Build the AI config from the session's ``aiTransform`` overrides and service defaults."""
    settings = session.ai_transform
    return AiTransformConfig(
        model=(settings.model if settings and settings.model else GEMINI_IMAGE_MODEL),
        prompt=(settings.prompt if settings and settings.prompt else AI_TRANSFORM_PROMPT),
        aspect_ratio=ai_aspect_ratio(aspect_ratio),
        reference_images=list(settings.reference_images) if settings else [],
    )


def validate_ai_transform_config(config: AiTransformConfig) -> None:
    """
    Raises:
        AiProviderError: kind ``invalid-config`` for a blank model/prompt or a
            reference path outside ``media/{companyId}/ai-reference/``.
    """
    if not config.model or not config.model.strip():
        raise AiProviderError("Model name is required in AI config", kind="invalid-config")
    if not config.prompt or not config.prompt.strip():
        raise AiProviderError("Prompt is required in AI config", kind="invalid-config")
    for path in config.reference_images:
        if not path or not path.strip():
            raise AiProviderError("Reference image path cannot be empty", kind="invalid-config")
        if not path.startswith("media/") or "/ai-reference/" not in path:
            raise AiProviderError(
                f"Invalid reference image path format: {path}. "
                "Expected: media/{companyId}/ai-reference/{filename}",
                kind="invalid-config",
            )


async def _load_reference_images(paths: List[str], storage) -> List[ReferenceImage]:
    images = []
    for path in paths:
        try:
            data = await asyncio.to_thread(storage.download_bytes, path)
        except StorageError as e:
            raise AiProviderError(f"Reference image not found: {path}", kind="reference-image-not-found") from e
        images.append(ReferenceImage(data=data, label=Path(path).stem))
        logger.debug(f"Loaded reference image {path} ({len(data)} bytes)")
    return images


async def apply_ai_transform(
    input_path: Path,
    scratch_dir: Path,
    config: AiTransformConfig,
    *,
    session_id: str,
    sessions,
    storage,
    api_key: Optional[str],
    client_factory: Optional[Callable[[str], GeminiImageClient]] = None,
) -> Path:
    """
    Transform one frame with the image generation provider.

    Args:
        input_path: Downloaded source frame.
        scratch_dir: Run scratch directory; the result is written here.
        config: Resolved AI settings.
        session_id: Session to report progress and failures on.
        sessions: Session repository.
        storage: Storage gateway used to load reference images.
        api_key: Provider API key.
        client_factory: Builds the provider client from the API key,
            defaults to ``GeminiImageClient``.

    Returns:
        Path of the transformed JPEG.

    Raises:
        AiTransformError: With the mapped AI error code, after the failure
            has been recorded on the session.
    """
    await asyncio.to_thread(sessions.update_step, session_id, PipelineStep.AI_TRANSFORM)
    start = time.monotonic()

    try:
        if not api_key or not api_key.strip():
            raise AiProviderError("AI provider API key is not configured", kind="invalid-config")
        validate_ai_transform_config(config)

        references = await _load_reference_images(config.reference_images, storage)
        image_bytes = await asyncio.to_thread(Path(input_path).read_bytes)

        client = (client_factory or GeminiImageClient)(api_key)
        request = ImageGenerationRequest(
            model=config.model,
            prompt=config.prompt,
            aspect_ratio=config.aspect_ratio,
            reference_images=references,
        )
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(client.transform_image, image_bytes, request),
                timeout=AI_TRANSFORM_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as e:
            raise AiProviderError("AI transform timed out", kind="timeout") from e

        output_path = Path(scratch_dir) / AI_OUTPUT_FILENAME
        await asyncio.to_thread(output_path.write_bytes, result)
    except AiProviderError as e:
        code = map_ai_provider_error(e.kind)
        logger.error(f"AI transform failed for session {session_id} ({e.kind} -> {code.value}): {e}")
        await _record_ai_failure(sessions, session_id, code)
        raise AiTransformError(code, str(e)) from e
    except (OSError, ValueError) as e:
        code = map_ai_provider_error("api-error")
        logger.error(f"AI transform failed for session {session_id}: {e}", exc_info=True)
        await _record_ai_failure(sessions, session_id, code)
        raise AiTransformError(code, f"AI transform failed: {e}") from e
    except Exception as e:
        code = map_ai_provider_error("api-error")
        logger.error(f"Unexpected AI transform error for session {session_id}: {e}", exc_info=True)
        await _record_ai_failure(sessions, session_id, code)
        raise AiTransformError(code, f"AI transform failed: {e}") from e

    logger.info(
        f"AI transform completed for session {session_id} in {time.monotonic() - start:.2f}s "
        f"({len(result)} bytes)"
    )
    return output_path


async def _record_ai_failure(sessions, session_id: str, code) -> None:
    try:
        await asyncio.to_thread(sessions.mark_failed, session_id, code, guest_message_for(code))
    except Exception as e:
        logger.error(f"Failed to record AI failure for session {session_id}: {e}")
