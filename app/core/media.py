"""
Transcoder operations built on the FFmpeg runner.

Each operation validates its inputs, runs one FFmpeg command with an
operation-specific timeout, and checks that the output file is non-empty.
Nothing here retries; failures surface as ``FFmpegError``.
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Sequence, Union

from app.config import MAX_INPUT_FILE_BYTES, THUMBNAIL_WIDTH
from app.core.errors import FFmpegError
from app.core.utils.ffmpeg import run_ffmpeg

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Timeouts by operation type (seconds)
TIMEOUTS: Dict[str, float] = {
    "image_scale": 30,
    "thumbnail": 15,
    "overlay": 45,  # works for image/gif/video bases
    "gif_small": 45,  # fewer than GIF_FRAME_THRESHOLD frames
    "gif_large": 90,
    "mp4_short": 60,  # fewer than MP4_FRAME_THRESHOLD frames
    "mp4_long": 120,
}

GIF_FRAME_THRESHOLD = 5
MP4_FRAME_THRESHOLD = 10
MP4_FPS = 5

FRAME_PATTERN = "frame-%03d.jpg"
CONCAT_FILENAME = "concat.txt"
PALETTE_FILENAME = "palette.png"


def frame_filename(index: int) -> str:
    """1-based numbered frame name matching ``FRAME_PATTERN``."""
    return FRAME_PATTERN % index


def validate_input_file(path: PathLike) -> None:
    """
    Ensure an input exists, is non-empty, and is below the size ceiling.

    Raises:
        FFmpegError: kind ``validation`` when any check fails.
    """
    try:
        size = Path(path).stat().st_size
    except FileNotFoundError as e:
        raise FFmpegError(
            "Input file not found",
            "validation",
            {"file_path": str(path), "error": str(e)},
        ) from e

    if size == 0:
        raise FFmpegError("Input file is empty", "validation", {"file_path": str(path), "size": 0})

    if size > MAX_INPUT_FILE_BYTES:
        raise FFmpegError(
            "Input file exceeds maximum size (50MB)",
            "validation",
            {"file_path": str(path), "size": size, "max_size": MAX_INPUT_FILE_BYTES},
        )


def validate_output_file(path: PathLike, description: str) -> None:
    """Catch FFmpeg runs that exit 0 but leave an empty or missing file."""
    output = Path(path)
    if not output.exists() or output.stat().st_size == 0:
        raise FFmpegError(
            f"FFmpeg produced empty output for {description}",
            "unknown",
            {"output_path": str(output)},
        )


def _scale_crop_filter(width: int, height: int) -> str:
    return (
        f"scale={width}:{height}:flags=lanczos:force_original_aspect_ratio=increase,"
        f"crop={width}:{height}:(iw-{width})/2:(ih-{height})/2"
    )


async def scale_and_crop(
    input_path: PathLike,
    output_path: PathLike,
    width: int,
    height: int,
    *,
    animated: bool = False,
) -> None:
    """
    Scale media to cover ``width``x``height`` and center-crop to exactly that size.

    Args:
        input_path: Source image (or GIF when ``animated``).
        output_path: Destination file.
        width: Target width.
        height: Target height.
        animated: Use the GIF timeout and skip the still-image quality flag.
    """
    validate_input_file(input_path)

    args = ["-i", str(input_path), "-vf", _scale_crop_filter(width, height)]
    if not animated:
        args += ["-q:v", "2"]
    args += ["-y", str(output_path)]

    description = "GIF scaling and cropping" if animated else "Image scaling"
    await run_ffmpeg(
        args,
        timeout_seconds=TIMEOUTS["gif_large"] if animated else TIMEOUTS["image_scale"],
        description=description,
    )
    validate_output_file(output_path, description)


async def generate_thumbnail(
    input_path: PathLike,
    output_path: PathLike,
    width: int = THUMBNAIL_WIDTH,
) -> None:
    """Single-frame Lanczos thumbnail; works for stills and the first frame of GIF/MP4."""
    validate_input_file(input_path)

    args = [
        "-i", str(input_path),
        "-vf", f"scale={width}:-1:flags=lanczos",
        "-q:v", "2",
        "-frames:v", "1",
        "-y", str(output_path),
    ]
    await run_ffmpeg(args, timeout_seconds=TIMEOUTS["thumbnail"], description="Thumbnail generation")
    validate_output_file(output_path, "thumbnail")


def _concat_quote(path: Path) -> str:
    # concat demuxer: close the quote, escaped quote, reopen
    return "'" + str(path).replace("'", "'\\''") + "'"


def build_concat_script(frame_paths: Sequence[PathLike], fps: float) -> str:
    """
    Build an FFmpeg concat-demuxer play-list.

    Entries may repeat (boomerang ordering). The last entry gets no
    ``duration`` line so the animation does not end on a trailing delay.
    """
    frame_duration = 1 / fps
    lines: List[str] = []
    for index, frame in enumerate(frame_paths):
        lines.append(f"file {_concat_quote(Path(frame).resolve())}")
        if index < len(frame_paths) - 1:
            lines.append(f"duration {frame_duration:g}")
    return "\n".join(lines)


async def _generate_palette(concat_path: Path, palette_path: Path, width: int) -> None:
    args = [
        "-f", "concat",
        "-safe", "0",
        "-i", str(concat_path),
        "-vf", f"scale={width}:-1:flags=lanczos,palettegen=stats_mode=diff:max_colors=256",
        "-frames:v", "1",
        "-y", str(palette_path),
    ]
    await run_ffmpeg(args, timeout_seconds=TIMEOUTS["gif_small"], description="GIF palette generation")
    validate_output_file(palette_path, "GIF palette")


async def create_gif(
    frame_paths: Sequence[PathLike],
    output_path: PathLike,
    width: int,
    fps: float = 2,
) -> None:
    """
    Create a palette-quantized GIF from an ordered frame play-list.

    ``frame_paths`` may contain the same path several times; only the
    unique files are validated and nothing is copied on disk. The concat
    script and palette are written next to the first frame and removed
    afterwards.
    """
    if not frame_paths:
        raise FFmpegError("No frames provided for GIF", "validation", {"frame_count": 0})

    for frame in dict.fromkeys(str(p) for p in frame_paths):
        validate_input_file(frame)

    frame_dir = Path(frame_paths[0]).parent
    concat_path = frame_dir / CONCAT_FILENAME
    palette_path = frame_dir / PALETTE_FILENAME

    try:
        await asyncio.to_thread(
            concat_path.write_text, build_concat_script(frame_paths, fps), "utf-8"
        )
        await _generate_palette(concat_path, palette_path, width)

        args = [
            "-f", "concat",
            "-safe", "0",
            "-i", str(concat_path),
            "-i", str(palette_path),
            "-filter_complex",
            f"scale={width}:-1:flags=lanczos[x];"
            "[x][1:v]paletteuse=dither=bayer:bayer_scale=5:diff_mode=rectangle",
            "-loop", "0",
            "-y", str(output_path),
        ]
        timeout = TIMEOUTS["gif_small"] if len(frame_paths) < GIF_FRAME_THRESHOLD else TIMEOUTS["gif_large"]
        await run_ffmpeg(args, timeout_seconds=timeout, description="GIF creation")
        validate_output_file(output_path, "GIF")
    finally:
        # Frames belong to the caller's scratch dir; only our helpers go here
        for helper in (concat_path, palette_path):
            helper.unlink(missing_ok=True)


async def create_mp4(
    frame_paths: Sequence[PathLike],
    output_path: PathLike,
    width: int,
    height: int,
) -> None:
    """
    Assemble numbered frames into a broadly compatible H.264 MP4.

    Frames must be the ``frame-001.jpg``, ``frame-002.jpg``, ... sequence in
    a single directory; the image2 demuxer reads them by pattern.
    """
    if not frame_paths:
        raise FFmpegError("No frames provided for MP4", "validation", {"frame_count": 0})

    for frame in frame_paths:
        validate_input_file(frame)

    frame_pattern = Path(frame_paths[0]).parent / FRAME_PATTERN

    args = [
        "-framerate", str(MP4_FPS),
        "-i", str(frame_pattern),
        "-c:v", "libx264",
        "-preset", "medium",
        "-crf", "22",
        "-pix_fmt", "yuv420p",
        "-profile:v", "baseline",
        "-level", "3.0",
        "-r", str(MP4_FPS),
        "-g", "15",
        "-keyint_min", "15",
        "-movflags", "+faststart",
        "-vf", f"scale={width}:{height}:flags=lanczos,pad=ceil(iw/2)*2:ceil(ih/2)*2",
        "-an",
        "-y", str(output_path),
    ]
    timeout = TIMEOUTS["mp4_short"] if len(frame_paths) < MP4_FRAME_THRESHOLD else TIMEOUTS["mp4_long"]
    await run_ffmpeg(args, timeout_seconds=timeout, description="MP4 creation")
    validate_output_file(output_path, "MP4")


async def apply_overlay(
    input_path: PathLike,
    overlay_path: PathLike,
    output_path: PathLike,
) -> None:
    """
    Composite a transparent PNG at (0,0) over every frame of the base media.

    The overlay is expected to already match the output dimensions.
    """
    validate_input_file(input_path)
    validate_input_file(overlay_path)

    args = [
        "-i", str(input_path),
        "-i", str(overlay_path),
        "-filter_complex", "[0:v][1:v]overlay=0:0",
        "-y", str(output_path),
    ]
    await run_ffmpeg(args, timeout_seconds=TIMEOUTS["overlay"], description="Overlay composition")
    validate_output_file(output_path, "overlay composition")
