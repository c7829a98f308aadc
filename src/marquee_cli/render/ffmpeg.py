from __future__ import annotations

import logging
import shutil
import subprocess
from typing import List, Optional

logger = logging.getLogger(__name__)

CORRUPT_SIGNATURES = (
    "moov atom not found",
    "invalid data found when processing input",
)


class GenerationError(RuntimeError):
    """Base class for failures of the external media generator."""


class FFmpegNotFoundError(GenerationError):
    """Raised when ffmpeg is not installed."""

    def __init__(self):
        super().__init__("ffmpeg not found. Install ffmpeg and make sure it is on PATH")


class ToolFailureError(GenerationError):
    """Raised when ffmpeg exits with a non-zero status."""

    def __init__(self, returncode: int, stderr: str):
        self.returncode = returncode
        self.stderr = stderr
        tail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        super().__init__(f"ffmpeg failed with exit code {returncode}: {tail}")


class ToolTimeoutError(GenerationError):
    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"ffmpeg did not finish within {timeout:g}s and was killed")


class CorruptSourceError(GenerationError):
    """The input file is unreadable by the tool; retrying it is pointless."""

    def __init__(self, source: str, stderr: str):
        self.source = source
        self.stderr = stderr
        super().__init__(f"Corrupt source file: {source}")


def check_ffmpeg() -> bool:
    """Check if ffmpeg is available on PATH."""
    return shutil.which("ffmpeg") is not None


def is_corrupt_source_output(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(sig in lowered for sig in CORRUPT_SIGNATURES)


def run_ffmpeg(cmd: List[str], timeout: Optional[float] = None) -> None:
    """Run an ffmpeg command with a hard wall-clock timeout.

    Raises:
        ToolTimeoutError: the process ran past ``timeout`` and was killed
        ToolFailureError: non-zero exit status, stderr attached
    """
    logger.debug("Running: %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise ToolTimeoutError(timeout or 0.0) from e

    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace") if proc.stderr else ""
        raise ToolFailureError(proc.returncode, stderr)
