"""
Core utility modules for FFmpeg process execution.
"""

from app.core.utils.ffmpeg import (
    FFmpegResult,
    classify_ffmpeg_error,
    filter_benign_warnings,
    run_ffmpeg,
)

__all__ = ["FFmpegResult", "classify_ffmpeg_error", "filter_benign_warnings", "run_ffmpeg"]
