"""
Short MP4 orchestrator.
"""

import logging
from typing import Optional

from app.core import media
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


async def render_video(ctx: ProcessingContext) -> RenderedArtifact:
    frames = await download_input_frames(ctx)

    await advance(ctx, PipelineStep.PROCESSING)
    assembled = ctx.scratch_dir / "assembled.mp4"
    await media.create_mp4(frames, assembled, ctx.config.output_width, ctx.config.output_height)

    final = assembled
    if ctx.options.overlay:
        final = await apply_brand_overlay(ctx, assembled, ctx.scratch_dir / "output.mp4")

    # Video thumbnails come from the first source frame
    thumbnail = ctx.scratch_dir / THUMBNAIL_FILENAME
    await media.generate_thumbnail(frames[0], thumbnail)

    return RenderedArtifact(final, thumbnail, ArtifactFormat.MP4, "mp4")


async def process_video_session(
    session_id: str,
    options: PipelineOptions,
    *,
    sessions,
    storage,
    api_key: Optional[str] = None,
    session: Optional[Session] = None,
) -> JobOutput:
    """Process a multi-frame session into an MP4 slideshow."""
    return await run_pipeline(
        session_id,
        OutputFormat.VIDEO,
        options,
        render_video,
        minimum_assets=2,
        sessions=sessions,
        storage=storage,
        api_key=api_key,
        session=session,
    )
