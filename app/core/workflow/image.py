"""
Single image orchestrator.

download -> [ai-transform] -> scale/crop -> [overlay] -> thumbnail -> upload
"""

import logging
from typing import Optional

from app.core import media
from app.core.ai_transform import apply_ai_transform, resolve_ai_transform_config
from app.core.pipeline_config import ArtifactFormat, OutputFormat
from app.core.repositories.models import PipelineStep, Session
from app.core.workflow.context import JobOutput, PipelineOptions, ProcessingContext, RenderedArtifact
from app.core.workflow.steps import (
    THUMBNAIL_FILENAME,
    advance,
    apply_brand_overlay,
    download_input_frames,
    run_pipeline,
)

logger = logging.getLogger(__name__)


async def render_image(ctx: ProcessingContext) -> RenderedArtifact:
    frames = await download_input_frames(ctx, ctx.session.input_assets[:1])
    source = frames[0]

    if ctx.options.ai_transform:
        ai_config = resolve_ai_transform_config(ctx.session, ctx.config.aspect_ratio)
        source = await apply_ai_transform(
            source,
            ctx.scratch_dir,
            ai_config,
            session_id=ctx.session_id,
            sessions=ctx.sessions,
            storage=ctx.storage,
            api_key=ctx.api_key,
        )

    await advance(ctx, PipelineStep.PROCESSING)
    scaled = ctx.scratch_dir / "scaled.jpg"
    await media.scale_and_crop(source, scaled, ctx.config.output_width, ctx.config.output_height)

    final = scaled
    if ctx.options.overlay:
        final = await apply_brand_overlay(ctx, scaled, ctx.scratch_dir / "output.jpg")

    # Thumbnail the composited result so it matches what the guest receives
    thumbnail = ctx.scratch_dir / THUMBNAIL_FILENAME
    await media.generate_thumbnail(final, thumbnail)

    return RenderedArtifact(final, thumbnail, ArtifactFormat.IMAGE, "jpg")


async def process_image_session(
    session_id: str,
    options: PipelineOptions,
    *,
    sessions,
    storage,
    api_key: Optional[str] = None,
    session: Optional[Session] = None,
) -> JobOutput:
    """Process a session into a single still image."""
    return await run_pipeline(
        session_id,
        OutputFormat.IMAGE,
        options,
        render_image,
        minimum_assets=1,
        sessions=sessions,
        storage=storage,
        api_key=api_key,
        session=session,
    )
