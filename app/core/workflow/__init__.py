"""
Media processing workflow package.

Module Structure:
- context.py: Run options, processing context, job result, scratch directory
- steps.py: Shared steps and the failure-recording pipeline runner
- image.py: Single image orchestrator
- gif.py: Boomerang GIF orchestrator
- video.py: MP4 orchestrator
- processor.py: Format reconciliation and dispatch
"""

# Data structures
from app.core.workflow.context import (
    JobOutput,
    PipelineOptions,
    ProcessingContext,
    RenderedArtifact,
    scratch_directory,
)

# Orchestrators
from app.core.workflow.image import process_image_session
from app.core.workflow.gif import process_gif_session
from app.core.workflow.video import process_video_session

# Main entry point
from app.core.workflow.processor import process_session

__all__ = [
    # Data structures
    "JobOutput",
    "PipelineOptions",
    "ProcessingContext",
    "RenderedArtifact",
    "scratch_directory",
    # Orchestrators
    "process_image_session",
    "process_gif_session",
    "process_video_session",
    # Main entry point
    "process_session",
]
