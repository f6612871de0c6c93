"""
Boomerang GIF orchestrator.

Frames play forward then back through the interior frames, so the loop
never shows an endpoint twice in a row. Repeated entries reference the same
downloaded file.
"""

import logging
from typing import Optional

from app.core import media
from app.core.pipeline_config import ArtifactFormat, OutputFormat, build_boomerang_sequence
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


async def render_gif(ctx: ProcessingContext) -> RenderedArtifact:
    frames = await download_input_frames(ctx)

    await advance(ctx, PipelineStep.PROCESSING)
    sequence = build_boomerang_sequence(frames)
    logger.debug(f"Boomerang sequence for {ctx.session_id}: {len(frames)} frames -> {len(sequence)} entries")

    assembled = ctx.scratch_dir / "assembled.gif"
    await media.create_gif(sequence, assembled, ctx.config.output_width, fps=ctx.config.fps)

    cropped = ctx.scratch_dir / "cropped.gif"
    await media.scale_and_crop(
        assembled,
        cropped,
        ctx.config.output_width,
        ctx.config.output_height,
        animated=True,
    )

    final = cropped
    if ctx.options.overlay:
        final = await apply_brand_overlay(ctx, cropped, ctx.scratch_dir / "output.gif")

    thumbnail = ctx.scratch_dir / THUMBNAIL_FILENAME
    await media.generate_thumbnail(final, thumbnail)

    return RenderedArtifact(final, thumbnail, ArtifactFormat.GIF, "gif")


async def process_gif_session(
    session_id: str,
    options: PipelineOptions,
    *,
    sessions,
    storage,
    api_key: Optional[str] = None,
    session: Optional[Session] = None,
) -> JobOutput:
    """Process a multi-frame session into a looping boomerang GIF."""
    return await run_pipeline(
        session_id,
        OutputFormat.GIF,
        options,
        render_gif,
        minimum_assets=2,
        sessions=sessions,
        storage=storage,
        api_key=api_key,
        session=session,
    )
