"""
Gemini image generation client.

Wraps the ``google-genai`` SDK for image-to-image generation: the guest's
frame, optional labelled reference images and a text prompt go in, a single
JPEG comes out. Every failure is raised as ``AiProviderError`` with one of
the provider error kinds.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from app.config import AI_TRANSFORM_TIMEOUT_SECONDS
from app.core.errors import AiProviderError

logger = logging.getLogger(__name__)

# HTTP status codes the SDK reports for deadline failures.
TIMEOUT_STATUS_CODES = {408, 504}


@dataclass
class ReferenceImage:
    data: bytes
    label: str
    mime_type: str = "image/jpeg"


@dataclass
class ImageGenerationRequest:
    """Parameters for a single image generation call."""

    model: str
    prompt: str
    aspect_ratio: str
    reference_images: List[ReferenceImage] = field(default_factory=list)
    input_mime_type: str = "image/jpeg"


class GeminiImageClient:
    """
    Thin wrapper around ``genai.Client`` for image output.

    The SDK call is blocking; async callers run ``transform_image`` in a
    worker thread.
    """

    def __init__(self, api_key: Optional[str], timeout_seconds: float = AI_TRANSFORM_TIMEOUT_SECONDS):
        if not api_key or not api_key.strip():
            raise AiProviderError("Gemini API key is required", kind="invalid-config")
        self._client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
        )

    @staticmethod
    def _validate_request(request: ImageGenerationRequest) -> None:
        if not request.model or not request.model.strip():
            raise AiProviderError("Model name is required", kind="invalid-config")
        if not request.prompt or not request.prompt.strip():
            raise AiProviderError("Prompt is required", kind="invalid-config")
        for ref in request.reference_images:
            if not ref.data:
                raise AiProviderError(
                    f"Reference image {ref.label} is empty",
                    kind="reference-image-not-found",
                )

    @staticmethod
    def _build_contents(image_bytes: bytes, request: ImageGenerationRequest) -> List[types.Part]:
        # Source first, labelled references next, prompt last.
        parts = [
            types.Part.from_text(text="Image Reference ID: <source_image>"),
            types.Part.from_bytes(data=image_bytes, mime_type=request.input_mime_type),
        ]
        for ref in request.reference_images:
            parts.append(types.Part.from_text(text=f"Image Reference ID: <ref_{ref.label}>"))
            parts.append(types.Part.from_bytes(data=ref.data, mime_type=ref.mime_type))
        parts.append(types.Part.from_text(text=request.prompt))
        return parts

    @staticmethod
    def _extract_image(response) -> bytes:
        for candidate in getattr(response, "candidates", None) or []:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                inline = getattr(part, "inline_data", None)
                if inline is not None and inline.data:
                    return inline.data
        raise AiProviderError("Gemini response contained no image data", kind="api-error")

    def transform_image(self, image_bytes: bytes, request: ImageGenerationRequest) -> bytes:
        """
        Generate a transformed image from ``image_bytes``.

        Returns:
            Raw bytes of the generated JPEG.

        Raises:
            AiProviderError: On invalid input/config, SDK failure, timeout, or
                a response without image data.
        """
        if not image_bytes:
            raise AiProviderError("Input image is empty", kind="invalid-input-image")
        self._validate_request(request)

        logger.info(
            f"Gemini image generation: model={request.model}, aspect={request.aspect_ratio}, "
            f"refs={len(request.reference_images)}, input={len(image_bytes)} bytes"
        )
        start = time.monotonic()

        config = types.GenerateContentConfig(
            response_modalities=["IMAGE"],
            image_config=types.ImageConfig(aspect_ratio=request.aspect_ratio),
        )

        try:
            response = self._client.models.generate_content(
                model=request.model,
                contents=self._build_contents(image_bytes, request),
                config=config,
            )
        except genai_errors.APIError as e:
            kind = "timeout" if e.code in TIMEOUT_STATUS_CODES else "api-error"
            logger.error(f"Gemini API error ({e.code}): {e}")
            raise AiProviderError(f"Gemini API error: {e}", kind=kind) from e
        except TimeoutError as e:
            raise AiProviderError("Gemini request timed out", kind="timeout") from e
        except Exception as e:
            if "timeout" in type(e).__name__.lower():
                raise AiProviderError("Gemini request timed out", kind="timeout") from e
            logger.error(f"Gemini request failed: {e}", exc_info=True)
            raise AiProviderError(f"Gemini request failed: {e}", kind="api-error") from e

        data = self._extract_image(response)
        logger.info(f"Gemini image generation completed in {time.monotonic() - start:.2f}s ({len(data)} bytes)")
        return data
