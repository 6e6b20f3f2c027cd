"""Thin wrapper around the ffmpeg and ffprobe command line tools."""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


class FFmpegError(Exception):
    """An ffmpeg invocation failed."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class FFmpegRunner:
    """Runs the few ffmpeg operations the merge pipeline needs."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe",
                 timeout: float = 300):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    def _run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        logger.debug(f"Executing: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise FFmpegError(f"Executable not found: {cmd[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise FFmpegError(f"{cmd[0]} timed out after {self.timeout}s") from e

        if result.returncode != 0:
            tail = "\n".join(result.stderr.strip().splitlines()[-5:])
            raise FFmpegError(
                f"{Path(cmd[0]).name} exited with code {result.returncode}: {tail}",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result

    def concat(self, list_file: Path, output_path: Path) -> None:
        """Stream-copy the files named in a concat list into one file.

        All inputs must share container and codec; nothing is re-encoded.
        """
        cmd = [self.ffmpeg_path, "-y", "-hide_banner", "-loglevel", "error",
               "-f", "concat", "-safe", "0", "-i", str(list_file),
               "-c", "copy", str(output_path)]
        self._run(cmd)

    def mix(self, inputs: Sequence[Path], output_path: Path) -> None:
        """Mix audio inputs into one file lasting as long as the longest input."""
        cmd = [self.ffmpeg_path, "-y", "-hide_banner", "-loglevel", "error"]
        for path in inputs:
            cmd += ["-i", str(path)]
        cmd += ["-filter_complex", f"amix=inputs={len(inputs)}:duration=longest",
                str(output_path)]
        self._run(cmd)

    def probe_duration(self, path: Path) -> Optional[float]:
        """Get a media file's duration in seconds, or None if it cannot be read."""
        cmd = [self.ffprobe_path, "-v", "error",
               "-show_entries", "format=duration",
               "-of", "default=noprint_wrappers=1:nokey=1", str(path)]
        try:
            result = self._run(cmd)
            return float(result.stdout.strip())
        except (FFmpegError, ValueError) as e:
            logger.debug(f"Could not probe duration of {path}: {e}")
            return None


def write_concat_list(list_file: Path, inputs: Sequence[Path]) -> None:
    """Write an ffmpeg concat demuxer list with absolute, quoted paths."""
    lines = []
    for path in inputs:
        quoted = str(Path(path).absolute()).replace("\\", "/").replace("'", "'\\''")
        lines.append(f"file '{quoted}'")
    list_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
