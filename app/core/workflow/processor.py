"""
Format dispatch for a session run.
"""

import asyncio
import logging
from typing import Optional

from app.core.pipeline_config import OutputFormat, reconcile_output_format
from app.core.repositories.models import Session
from app.core.workflow.context import JobOutput, PipelineOptions
from app.core.workflow.gif import process_gif_session
from app.core.workflow.image import process_image_session
from app.core.workflow.video import process_video_session
from app.core.workflow.steps import record_failure

logger = logging.getLogger(__name__)

ORCHESTRATORS = {
    OutputFormat.IMAGE: process_image_session,
    OutputFormat.GIF: process_gif_session,
    OutputFormat.VIDEO: process_video_session,
}


async def process_session(
    session_id: str,
    output_format: OutputFormat,
    options: PipelineOptions,
    *,
    sessions,
    storage,
    api_key: Optional[str] = None,
    session: Optional[Session] = None,
) -> JobOutput:
    """
    Process a session with the orchestrator matching its frames.

    The requested format is reconciled with the number of input assets
    first: one frame always yields an image, several frames never do.

    Args:
        session_id: Session document ID
        output_format: Format requested by the caller
        options: Aspect ratio, overlay and AI transform flags
        sessions: Session repository
        storage: Storage gateway
        api_key: AI provider key, required only when ``options.ai_transform``
        session: Already-loaded session, to skip a second read

    Returns:
        JobOutput describing the uploaded artifact
    """
    if session is None:
        try:
            session = await asyncio.to_thread(sessions.get_session, session_id)
        except Exception as exc:
            await record_failure(sessions, session_id, exc)
            raise

    frame_count = len(session.input_assets)
    if frame_count:
        actual_format = reconcile_output_format(output_format, frame_count)
    else:
        # The image orchestrator rejects an empty session and records the failure
        actual_format = OutputFormat.IMAGE

    if actual_format != OutputFormat(output_format):
        logger.info(
            f"Session {session_id}: requested {OutputFormat(output_format).value}, "
            f"using {actual_format.value} for {frame_count} frame(s)"
        )

    orchestrator = ORCHESTRATORS[actual_format]
    return await orchestrator(
        session_id,
        options,
        sessions=sessions,
        storage=storage,
        api_key=api_key,
        session=session,
    )
