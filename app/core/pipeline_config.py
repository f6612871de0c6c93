"""
Pipeline configuration resolution.

Pure functions mapping (output format, aspect ratio) to concrete output
dimensions and frame timing, plus the frame-count based format override.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Sequence, Tuple, TypeVar

T = TypeVar("T")


class OutputFormat(str, Enum):
    """Format requested for a run."""

    IMAGE = "image"
    GIF = "gif"
    VIDEO = "video"


class ArtifactFormat(str, Enum):
    """Format discriminant written to ``outputs.format``."""

    IMAGE = "image"
    GIF = "gif"
    MP4 = "mp4"


class AspectRatio(str, Enum):
    SQUARE = "square"
    STORY = "story"


DIMENSIONS: Dict[AspectRatio, Tuple[int, int]] = {
    AspectRatio.SQUARE: (1080, 1080),
    AspectRatio.STORY: (1080, 1920),
}

# (seconds per frame, frames per second)
FRAME_TIMING: Dict[OutputFormat, Tuple[float, float]] = {
    OutputFormat.IMAGE: (0.0, 0.0),
    OutputFormat.GIF: (0.5, 2.0),
    OutputFormat.VIDEO: (0.2, 5.0),
}

# Aspect ratio strings understood by the image generation model
AI_ASPECT_RATIOS: Dict[AspectRatio, str] = {
    AspectRatio.SQUARE: "1:1",
    AspectRatio.STORY: "9:16",
}


@dataclass(frozen=True)
class PipelineConfig:
    output_format: OutputFormat
    aspect_ratio: AspectRatio
    output_width: int
    output_height: int
    frame_duration: float
    fps: float


def resolve_pipeline_config(output_format: OutputFormat, aspect_ratio: AspectRatio) -> PipelineConfig:
    output_format = OutputFormat(output_format)
    aspect_ratio = AspectRatio(aspect_ratio)
    width, height = DIMENSIONS[aspect_ratio]
    frame_duration, fps = FRAME_TIMING[output_format]
    return PipelineConfig(
        output_format=output_format,
        aspect_ratio=aspect_ratio,
        output_width=width,
        output_height=height,
        frame_duration=frame_duration,
        fps=fps,
    )


def reconcile_output_format(requested: OutputFormat, frame_count: int) -> OutputFormat:
    """
    Reconcile the client's requested format with the frames actually supplied.

    A single photo is always an image. Several photos asked for as an image
    become a GIF so extra frames are never dropped. GIF and video requests
    with several frames pass through unchanged.
    """
    if frame_count < 1:
        raise ValueError("At least one input frame is required")

    requested = OutputFormat(requested)
    if frame_count == 1:
        return OutputFormat.IMAGE
    if requested == OutputFormat.IMAGE:
        return OutputFormat.GIF
    return requested


def build_boomerang_sequence(frames: Sequence[T]) -> List[T]:
    """
    Forward pass followed by the reversed interior frames.

    ``[A, B, C, D] -> [A, B, C, D, C, B]``: the endpoints are never repeated
    back to back when the GIF loops. Entries are references to the same
    items, not copies.
    """
    frames = list(frames)
    return frames + frames[1:-1][::-1]


def ai_aspect_ratio(aspect_ratio: AspectRatio) -> str:
    return AI_ASPECT_RATIOS[AspectRatio(aspect_ratio)]
