"""
Steps shared by the image, GIF and video orchestrators.

``run_pipeline`` is the single place that turns an exception into a session
failure record; the orchestrators only describe how to render their format.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from app.core import media
from app.core.errors import PipelineValidationError, error_code_for, guest_message_for
from app.core.pipeline_config import OutputFormat, resolve_pipeline_config
from app.core.repositories.models import (
    Dimensions,
    InputAsset,
    PipelineStep,
    Session,
    SessionOutputs,
)
from app.core.storage import build_output_key, build_overlay_key, resolve_storage_key
from app.core.workflow.context import (
    JobOutput,
    PipelineOptions,
    ProcessingContext,
    RenderedArtifact,
    scratch_directory,
)

logger = logging.getLogger(__name__)

OVERLAY_FILENAME = "overlay.png"
THUMBNAIL_FILENAME = "thumb.jpg"

Renderer = Callable[[ProcessingContext], Awaitable[RenderedArtifact]]


def validate_input_assets(session: Session, minimum: int, description: str) -> None:
    """Fail fast, before any storage call, when there are too few input assets."""
    count = len(session.input_assets)
    if count < minimum:
        raise PipelineValidationError(
            f"{description} requires at least {minimum} input asset(s), session {session.id} has {count}"
        )


async def gather_settled(*aws: Awaitable) -> list:
    """
    Like ``asyncio.gather`` but waits for every awaitable before raising.

    Storage calls run in worker threads that cannot be cancelled, so the
    scratch directory must not be removed until all of them have returned.
    The first exception, in argument order, is re-raised.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


async def advance(ctx: ProcessingContext, step: PipelineStep) -> None:
    await asyncio.to_thread(ctx.sessions.update_step, ctx.session_id, step)


async def download_input_frames(
    ctx: ProcessingContext,
    assets: Optional[Sequence[InputAsset]] = None,
) -> List[Path]:
    """
    Download input assets concurrently as ``frame-001.jpg``, ``frame-002.jpg``, ...

    The returned list follows the asset order regardless of completion
    order. Any failed download fails the whole step.
    """
    assets = list(ctx.session.input_assets if assets is None else assets)
    try:
        keys = [resolve_storage_key(asset.url) for asset in assets]
    except ValueError as e:
        raise PipelineValidationError(f"Invalid input asset reference: {e}") from e

    paths = [ctx.scratch_dir / media.frame_filename(index) for index in range(1, len(assets) + 1)]
    await gather_settled(
        *(asyncio.to_thread(ctx.storage.download, key, path) for key, path in zip(keys, paths))
    )
    logger.info(f"Downloaded {len(paths)} frame(s) for session {ctx.session_id}")
    return paths


def resolve_overlay_key(session: Session, aspect_ratio: str) -> str:
    """
    Storage key of the branding overlay for an aspect ratio.

    An explicit media reference on the session wins over the company
    convention path.
    """
    reference = session.overlays.get(aspect_ratio)
    if reference is not None:
        try:
            return resolve_storage_key(reference)
        except ValueError as e:
            raise PipelineValidationError(f"Invalid overlay reference for {aspect_ratio}: {e}") from e
    if not session.company_id:
        raise PipelineValidationError(
            f"No overlay configured for {aspect_ratio} and session {session.id} has no company"
        )
    return build_overlay_key(session.company_id, aspect_ratio)


async def apply_brand_overlay(ctx: ProcessingContext, base_path: Path, output_path: Path) -> Path:
    """Download the overlay for the run's aspect ratio and composite it over ``base_path``."""
    aspect_ratio = ctx.config.aspect_ratio.value
    overlay_key = resolve_overlay_key(ctx.session, aspect_ratio)
    overlay_path = ctx.scratch_dir / OVERLAY_FILENAME
    await asyncio.to_thread(ctx.storage.download, overlay_key, overlay_path)
    await media.apply_overlay(base_path, overlay_path, output_path)
    return output_path


async def upload_artifacts(ctx: ProcessingContext, artifact: RenderedArtifact) -> Tuple[str, str]:
    """Upload primary output and thumbnail concurrently; returns their public URLs."""
    project_id = ctx.session.project_id
    primary_key = build_output_key(project_id, ctx.session_id, "output", artifact.extension)
    thumb_key = build_output_key(project_id, ctx.session_id, "thumb", "jpg")
    primary_url, thumbnail_url = await gather_settled(
        asyncio.to_thread(ctx.storage.upload, artifact.primary_path, primary_key),
        asyncio.to_thread(ctx.storage.upload, artifact.thumbnail_path, thumb_key),
    )
    return primary_url, thumbnail_url


def build_outputs(
    ctx: ProcessingContext,
    artifact: RenderedArtifact,
    primary_url: str,
    thumbnail_url: str,
) -> SessionOutputs:
    return SessionOutputs(
        primary_url=primary_url,
        thumbnail_url=thumbnail_url,
        format=artifact.format,
        dimensions=Dimensions(width=ctx.config.output_width, height=ctx.config.output_height),
        size_bytes=artifact.primary_path.stat().st_size,
        processing_time_ms=ctx.elapsed_ms(),
    )


async def record_failure(sessions, session_id: str, exc: BaseException) -> None:
    """
    Mark the session failed for ``exc``.

    A failure while writing the record is logged and never replaces the
    original exception.
    """
    code = error_code_for(exc)
    logger.error(f"Session {session_id} failed with {code.value}: {exc}", exc_info=exc)
    try:
        await asyncio.to_thread(sessions.mark_failed, session_id, code, guest_message_for(code))
    except Exception as e:
        logger.error(f"Failed to record failure for session {session_id}: {e}")


async def run_pipeline(
    session_id: str,
    output_format: OutputFormat,
    options: PipelineOptions,
    render: Renderer,
    *,
    minimum_assets: int,
    sessions,
    storage,
    api_key: Optional[str] = None,
    session: Optional[Session] = None,
) -> JobOutput:
    """
    Run one orchestrator end to end.

    Steps:
        1. Load the session and validate its inputs
        2. Mark running (``downloading``) inside a fresh scratch directory
        3. Render the artifact with ``render``
        4. Upload output and thumbnail, then finalize the session

    Raises:
        Whatever the failing step raised, after the session has been marked failed.
    """
    try:
        if session is None:
            session = await asyncio.to_thread(sessions.get_session, session_id)
        config = resolve_pipeline_config(output_format, options.aspect_ratio)
        validate_input_assets(session, minimum_assets, f"{config.output_format.value} output")

        async with scratch_directory(session_id) as scratch_dir:
            ctx = ProcessingContext(
                session=session,
                options=options,
                config=config,
                scratch_dir=scratch_dir,
                sessions=sessions,
                storage=storage,
                api_key=api_key,
            )
            logger.info(
                f"Processing session {session_id}: format={config.output_format.value}, "
                f"aspect={config.aspect_ratio.value}, overlay={options.overlay}, "
                f"ai_transform={options.ai_transform}, frames={len(session.input_assets)}"
            )
            await asyncio.to_thread(sessions.mark_running, session_id, PipelineStep.DOWNLOADING)

            artifact = await render(ctx)

            await advance(ctx, PipelineStep.UPLOADING)
            primary_url, thumbnail_url = await upload_artifacts(ctx, artifact)
            outputs = build_outputs(ctx, artifact, primary_url, thumbnail_url)
            await asyncio.to_thread(sessions.finalize, session_id, outputs)
    except Exception as exc:
        await record_failure(sessions, session_id, exc)
        raise

    logger.info(
        f"Session {session_id} completed: {outputs.format.value} "
        f"{outputs.dimensions.width}x{outputs.dimensions.height}, "
        f"{outputs.size_bytes} bytes in {outputs.processing_time_ms}ms"
    )
    return JobOutput(
        session_id=session_id,
        format=outputs.format,
        primary_url=outputs.primary_url,
        thumbnail_url=outputs.thumbnail_url,
        dimensions=outputs.dimensions,
        size_bytes=outputs.size_bytes,
        processing_time_ms=outputs.processing_time_ms,
    )
