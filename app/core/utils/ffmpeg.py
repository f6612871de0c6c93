"""
FFmpeg process runner with timeouts and error classification.

Every transcoder operation goes through ``run_ffmpeg``: it spawns the binary
without stdin, buffers stdout/stderr, kills the child when the wall-clock
timeout expires, and turns non-zero exits into ``FFmpegError`` with a kind
guessed from stderr text.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from app.config import FFMPEG_PATH
from app.core.errors import FFmpegError, TranscodeErrorKind

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0

# Patterns for known benign warnings that should be filtered
BENIGN_WARNING_PATTERNS = [
    r"\[.*\] .* does not support hardware acceleration",
    r"\[.*\] .* hardware acceleration disabled",
    r"\[swscaler @ .*\] deprecated pixel format used",
    r"\[image2 @ .*\] The specified filename .* does not contain an image sequence pattern",
]

# Checked in order; first match wins.
ERROR_PATTERNS: list[tuple[TranscodeErrorKind, tuple[str, ...]]] = [
    ("validation", ("invalid data", "no such file", "does not exist")),
    ("codec", ("unknown encoder", "encoder not found", "codec not currently supported")),
    ("filesystem", ("permission denied", "no space left", "read only")),
    ("memory", ("cannot allocate memory", "out of memory")),
]


@dataclass
class FFmpegResult:
    """Output of a successful FFmpeg run."""

    stdout: str
    stderr: str
    elapsed_seconds: float


def filter_benign_warnings(stderr: str) -> tuple[str, list[str]]:
    """
    Filter out known benign warnings from FFmpeg stderr.

    Args:
        stderr: Raw stderr output from FFmpeg.

    Returns:
        Tuple of (filtered_stderr, filtered_warnings_list).
    """
    filtered_lines = []
    filtered_warnings = []

    for line in stderr.split("\n"):
        if any(re.search(pattern, line, re.IGNORECASE) for pattern in BENIGN_WARNING_PATTERNS):
            filtered_warnings.append(line)
        else:
            filtered_lines.append(line)

    return "\n".join(filtered_lines), filtered_warnings


def classify_ffmpeg_error(stderr: str) -> TranscodeErrorKind:
    """
    Guess the failure kind from stderr text.

    This is diagnostic metadata only: FFmpeg wording changes between
    releases, so callers must not branch on anything finer than the kind.
    """
    stderr_lower = stderr.lower()
    for kind, needles in ERROR_PATTERNS:
        if any(needle in stderr_lower for needle in needles):
            return kind
    return "unknown"


async def run_ffmpeg(
    args: Sequence[str],
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    description: str = "FFmpeg operation",
    binary: Optional[str] = None,
) -> FFmpegResult:
    """
    Run an FFmpeg command with a hard timeout.

    Args:
        args: Arguments passed after the binary.
        timeout_seconds: Wall-clock limit; the child is killed when it expires.
        description: Human-readable operation name used in logs and errors.
        binary: Executable to spawn, defaults to ``FFMPEG_PATH``.

    Returns:
        FFmpegResult with decoded stdout/stderr.

    Raises:
        FFmpegError: On spawn failure, timeout, or non-zero exit code.
    """
    executable = binary or FFMPEG_PATH
    logger.debug("FFmpeg command: %s %s", executable, " ".join(args))
    start = time.monotonic()

    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise FFmpegError(
            f"{description} failed: {e}",
            "unknown",
            {"binary": executable, "error": str(e)},
        ) from e

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout_seconds
        )
    except asyncio.TimeoutError:
        process.kill()
        # Drain whatever the child wrote before it was killed
        stdout_bytes, stderr_bytes = await process.communicate()
        stderr = stderr_bytes.decode(errors="replace") if stderr_bytes else ""
        logger.error("%s timed out after %.1fs", description, timeout_seconds)
        raise FFmpegError(
            f"{description} timed out after {timeout_seconds:g}s",
            "timeout",
            {"timeout_seconds": timeout_seconds, "stderr": stderr},
        )
    except asyncio.CancelledError:
        process.kill()
        raise

    stdout = stdout_bytes.decode(errors="replace") if stdout_bytes else ""
    stderr = stderr_bytes.decode(errors="replace") if stderr_bytes else ""
    stderr, warnings = filter_benign_warnings(stderr)
    if warnings:
        logger.debug("Filtered %d benign FFmpeg warnings", len(warnings))

    elapsed = time.monotonic() - start

    if process.returncode != 0:
        kind = classify_ffmpeg_error(stderr)
        logger.error(
            "%s failed with exit code %s (kind=%s): %s",
            description,
            process.returncode,
            kind,
            stderr[-2000:],
        )
        raise FFmpegError(
            f"{description} failed with exit code {process.returncode}",
            kind,
            {"exit_code": process.returncode, "stderr": stderr, "stdout": stdout},
        )

    logger.info("%s completed in %.2fs", description, elapsed)
    return FFmpegResult(stdout=stdout, stderr=stderr, elapsed_seconds=elapsed)
