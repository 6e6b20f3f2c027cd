"""Merge pipeline: per-participant concatenation followed by a final mix."""

import logging
import os
from pathlib import Path
from typing import List, Optional

from ..models.recording import MergeResult, ParticipantTrack, RecordingChunk
from ..storage.chunk_store import ChunkStore
from .ffmpeg import FFmpegError, FFmpegRunner, write_concat_list

logger = logging.getLogger(__name__)


class MergeError(Exception):
    """A merge step that aborts the whole invocation."""


class StorageSetupError(MergeError):
    """The session or output directories could not be prepared."""


class MixError(MergeError):
    """The final mix step failed."""


class MergePipeline:
    """Turns a session's chunk store into per-participant tracks and a mix.

    Re-running on an unchanged store re-derives the same outputs. Every
    output is written beside its final name and renamed into place, so a
    crashed or overlapping run never leaves a half-written track behind.
    """

    def __init__(self, chunk_store: ChunkStore, ffmpeg: Optional[FFmpegRunner] = None,
                 min_chunk_bytes: int = 8000, final_filename: str = "final-meeting.mp3"):
        """Initialize merge pipeline.

        Args:
            chunk_store: Source of chunks; also defines the output directory
            ffmpeg: Runner for concat/mix/probe
            min_chunk_bytes: Chunks at or below this size are skipped
            final_filename: Name of the mixed file inside the output directory
        """
        self.chunk_store = chunk_store
        self.ffmpeg = ffmpeg or FFmpegRunner()
        self.min_chunk_bytes = min_chunk_bytes
        self.final_filename = final_filename

    def run(self, session_key: str) -> MergeResult:
        """Merge one session.

        Raises:
            StorageSetupError: directories could not be created
            MixError: the final mix failed
        """
        output_dir = self._prepare_directories(session_key)
        result = MergeResult(session_key=session_key, output_dir=output_dir)

        logger.info(f"Starting merge for session {session_key}")
        participants = self.chunk_store.list_participants(session_key)
        logger.info(f"Found {len(participants)} participant directories: {', '.join(participants) or 'None'}")

        for participant_id in participants:
            chunks = self.chunk_store.list_chunks(session_key, participant_id)
            valid = [c for c in chunks if c.is_valid(self.min_chunk_bytes)]
            logger.info(f"Participant {participant_id}: {len(chunks)} chunks, {len(valid)} valid")

            if not valid:
                logger.warning(f"No valid audio chunks for {participant_id}, excluding from mix")
                result.skipped.append(participant_id)
                continue

            try:
                track = self._concatenate(session_key, participant_id, valid, output_dir)
            except (FFmpegError, OSError) as e:
                logger.error(f"Concatenation failed for {participant_id}: {e}")
                result.failed.append(participant_id)
                continue

            result.tracks.append(track)

        if len(result.tracks) < 2:
            logger.warning(
                f"Need at least two tracks to mix, have {len(result.tracks)}; skipping final mix")
            return result

        result.mix_path = self._mix(result.tracks, output_dir / self.final_filename)
        result.mix_duration_seconds = self.ffmpeg.probe_duration(result.mix_path)
        logger.info(f"Final meeting audio created: {result.mix_path}")
        return result

    def _prepare_directories(self, session_key: str) -> Path:
        try:
            output_dir = self.chunk_store.get_output_path(session_key)
            output_dir.mkdir(parents=True, exist_ok=True)
        except (OSError, ValueError) as e:
            raise StorageSetupError(f"Could not prepare directories for {session_key}: {e}") from e
        return output_dir

    def _concatenate(self, session_key: str, participant_id: str,
                     chunks: List[RecordingChunk], output_dir: Path) -> ParticipantTrack:
        output_path = output_dir / f"full-{participant_id}.{self.chunk_store.container}"
        list_file = _temporary_sibling(output_dir / f"{participant_id}-chunks.txt")
        tmp_path = _temporary_sibling(output_path)

        logger.info(f"Concatenating {len(chunks)} chunks for {participant_id}")
        try:
            write_concat_list(list_file, [c.path for c in chunks])
            self.ffmpeg.concat(list_file, tmp_path)
            os.replace(tmp_path, output_path)
        finally:
            _discard(tmp_path)
            _discard(list_file)

        info = self.chunk_store.load_participant_info(session_key, participant_id) or {}
        return ParticipantTrack(
            participant_id=participant_id,
            path=output_path,
            chunk_count=len(chunks),
            display_name=info.get("display_name"),
            duration_seconds=self.ffmpeg.probe_duration(output_path),
        )

    def _mix(self, tracks: List[ParticipantTrack], output_path: Path) -> Path:
        logger.info(f"Mixing {len(tracks)} tracks into {output_path}")
        tmp_path = _temporary_sibling(output_path)
        try:
            self.ffmpeg.mix([t.path for t in tracks], tmp_path)
            os.replace(tmp_path, output_path)
        except (FFmpegError, OSError) as e:
            raise MixError(f"Final mix failed: {e}") from e
        finally:
            _discard(tmp_path)
        return output_path


def _temporary_sibling(path: Path) -> Path:
    # Keep the real suffix so ffmpeg picks the same muxer
    return path.with_name(f".{path.stem}.{os.getpid()}.tmp{path.suffix}")


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
