"""Out-of-band merge job: clearcast-merge SESSION_KEY."""

import sys
import argparse
import logging
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from ..config import ClearCastConfig
from ..config.log_setup import setup_logging
from ..models.recording import MergeResult
from ..storage.chunk_store import ChunkStore
from .ffmpeg import FFmpegRunner
from .pipeline import MergeError, MergePipeline

logger = logging.getLogger(__name__)


def build_pipeline(config: ClearCastConfig) -> MergePipeline:
    """Create a merge pipeline wired from configuration."""
    chunk_store = ChunkStore(
        data_dir=config.get_data_directory(),
        output_dirname=config.get('merge.output_dirname', 'merged'),
        container=config.get('recording.container', 'webm'),
    )
    ffmpeg = FFmpegRunner(
        ffmpeg_path=config.get('merge.ffmpeg_path', 'ffmpeg'),
        ffprobe_path=config.get('merge.ffprobe_path', 'ffprobe'),
        timeout=config.get('merge.timeout_seconds', 300),
    )
    return MergePipeline(
        chunk_store,
        ffmpeg,
        min_chunk_bytes=config.get('recording.min_chunk_bytes', 8000),
        final_filename=config.get('merge.final_filename', 'final-meeting.mp3'),
    )


def _format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    minutes, secs = divmod(int(round(seconds)), 60)
    return f"{minutes}:{secs:02d}"


def render_report(result: MergeResult, console: Console) -> None:
    """Print a per-participant summary of a merge."""
    table = Table(title=f"Merge report: {result.session_key}")
    table.add_column("Participant", style="cyan")
    table.add_column("Name")
    table.add_column("Chunks", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Status")

    for track in result.tracks:
        table.add_row(track.participant_id, track.display_name or "-", str(track.chunk_count),
                      _format_duration(track.duration_seconds), "[green]merged[/green]")
    for participant_id in result.skipped:
        table.add_row(participant_id, "-", "0", "-", "[yellow]no valid chunks[/yellow]")
    for participant_id in result.failed:
        table.add_row(participant_id, "-", "-", "-", "[red]concat failed[/red]")

    console.print(table)
    if result.mixed:
        console.print(f"Final mix: {result.mix_path} ({_format_duration(result.mix_duration_seconds)})")
    else:
        console.print("No final mix (fewer than two tracks)")


def main(argv: Optional[List[str]] = None) -> int:
    """Merge one session's chunks into tracks and a final mix.

    Returns:
        Process exit code: 0 on success or nothing to mix, 1 on fatal failure
    """
    parser = argparse.ArgumentParser(
        description="ClearCast - merge a session's recorded chunks"
    )

    parser.add_argument(
        "session_key",
        help="Session whose chunks should be merged"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: INFO)"
    )

    args = parser.parse_args(argv)
    console = Console()

    try:
        config = ClearCastConfig(args.config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return 1

    setup_logging(config, args.log_level, name="ClearCast merge")

    try:
        result = build_pipeline(config).run(args.session_key)
    except MergeError as e:
        logger.error(f"Merge of {args.session_key} failed: {e}")
        console.print(f"[red]Merge failed:[/red] {e}")
        return 1

    render_report(result, console)
    return 0


if __name__ == "__main__":
    sys.exit(main())
