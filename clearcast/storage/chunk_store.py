"""Chunk storage: where uploaded audio chunks live and how they are ordered."""

import json
import logging
import re
import threading
import time
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional, List, Tuple

from ..models.recording import ChunkUploadResult, RecordingChunk


logger = logging.getLogger(__name__)

PARTICIPANT_INFO_FILE = "participant.json"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_MAX_COMPONENT_LENGTH = 128


def safe_component(value: Optional[str], what: str = "path component") -> str:
    """Turn an identifier into a single safe directory name.

    Raises:
        ValueError: if nothing usable is left
    """
    cleaned = _UNSAFE_CHARS.sub("_", (value or "").strip())[:_MAX_COMPONENT_LENGTH]
    if not cleaned or cleaned in (".", ".."):
        raise ValueError(f"Invalid {what}: {value!r}")
    return cleaned


class ChunkStore:
    """Stores audio chunks as <data_dir>/<session>/<participant>/audio-<ms>-<seq>.<ext>.

    Each chunk gets a sequence number when it is saved; merge ordering
    follows that number rather than directory listing order.
    """

    def __init__(self, data_dir: str = "./uploads", output_dirname: str = "merged",
                 container: str = "webm"):
        """Initialize chunk store with data directory.

        Args:
            data_dir: Base directory for all sessions
            output_dirname: Reserved per-session directory for merge output
            container: File extension of chunks (all chunks share one format)
        """
        self.data_dir = Path(data_dir)
        self.output_dirname = output_dirname
        self.container = container
        self._chunk_name = re.compile(
            rf"^audio-(\d+)(?:-(\d+))?\.{re.escape(container)}$")

        self._lock = threading.Lock()

        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"ChunkStore initialized with data_dir: {self.data_dir}")

    def get_session_path(self, session_key: str) -> Path:
        return self.data_dir / safe_component(session_key, "session key")

    def get_participant_path(self, session_key: str, participant_id: str) -> Path:
        participant = safe_component(participant_id, "participant id")
        if participant == self.output_dirname:
            raise ValueError(f"Participant id {participant_id!r} is reserved")
        return self.get_session_path(session_key) / participant

    def get_output_path(self, session_key: str) -> Path:
        return self.get_session_path(session_key) / self.output_dirname

    def save_chunk(self, session_key: str, participant_id: str, data: bytes,
                   display_name: Optional[str] = None,
                   timestamp_ms: Optional[int] = None) -> ChunkUploadResult:
        """Persist one uploaded chunk.

        Args:
            session_key: Session the chunk belongs to
            participant_id: Connection id of the recording participant
            data: Encoded audio bytes
            display_name: Optional name recorded in participant.json
            timestamp_ms: Generation time; defaults to now

        Returns:
            ChunkUploadResult with the stored path and sequence number

        Raises:
            ValueError: invalid session or participant identifiers
            OSError: the chunk could not be written
        """
        participant_path = self.get_participant_path(session_key, participant_id)
        participant_path.mkdir(parents=True, exist_ok=True)

        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)

        with self._lock:
            sequence = self._next_sequence(session_key, participant_id, participant_path)
            filename = f"audio-{timestamp_ms}-{sequence:06d}.{self.container}"
            chunk_path = participant_path / filename

            try:
                with open(chunk_path, 'wb') as f:
                    f.write(data)
            except Exception as e:
                logger.error(f"Error saving chunk {chunk_path}: {e}")
                raise

            self._update_participant_info(participant_path, participant_id, display_name)

        logger.info(f"Chunk saved: {chunk_path} ({len(data)} bytes, seq {sequence})")
        return ChunkUploadResult(
            success=True,
            session_key=session_key,
            participant_id=participant_id,
            path=str(chunk_path),
            file=filename,
            sequence=sequence,
            size_bytes=len(data),
        )

    def _next_sequence(self, session_key: str, participant_id: str, participant_path: Path) -> int:
        """Issue the next sequence number from what is on disk; caller holds the lock."""
        existing = [c.sequence for c in self._scan_chunks(session_key, participant_id, participant_path)
                    if c.sequence is not None]
        return max(existing, default=0) + 1

    def _update_participant_info(self, participant_path: Path, participant_id: str,
                                 display_name: Optional[str]) -> None:
        info_file = participant_path / PARTICIPANT_INFO_FILE
        now = datetime.now().isoformat()
        info = self._read_json(info_file) or {
            "participant_id": participant_id,
            "display_name": None,
            "first_upload": now,
        }
        if display_name:
            info["display_name"] = display_name
        info["last_upload"] = now

        with open(info_file, 'w') as f:
            json.dump(info, f, indent=2)

    def load_participant_info(self, session_key: str, participant_id: str) -> Optional[Dict[str, Any]]:
        """Load participant.json for a participant, or None if missing/unreadable."""
        info_file = self._stored_participant_path(session_key, participant_id) / PARTICIPANT_INFO_FILE
        return self._read_json(info_file)

    @staticmethod
    def _read_json(path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except Exception as e:
            logger.error(f"Error loading {path}: {e}")
            return None

    def list_participants(self, session_key: str) -> List[str]:
        """List participant directories of a session, excluding merge output."""
        session_path = self.get_session_path(session_key)
        if not session_path.is_dir():
            return []

        participants = []
        for path in sorted(session_path.iterdir()):
            try:
                if path.is_dir() and path.name != self.output_dirname:
                    participants.append(path.name)
            except OSError as e:
                logger.warning(f"Could not stat '{path}': {e}. Skipping.")
        return participants

    def _stored_participant_path(self, session_key: str, participant_id: str) -> Path:
        """Directory to read a participant's files from.

        Names returned by list_participants are existing directories and are
        used as they are, even when they would not survive sanitizing.
        """
        session_path = self.get_session_path(session_key)
        if participant_id in self.list_participants(session_key):
            return session_path / participant_id
        return self.get_participant_path(session_key, participant_id)

    def list_chunks(self, session_key: str, participant_id: str) -> List[RecordingChunk]:
        """List a participant's chunks in recording order.

        Sequenced chunks are ordered by sequence number. Chunks named only
        with a timestamp are ordered numerically by that timestamp and come
        first. Anything else sorts last by name.
        """
        participant_path = self._stored_participant_path(session_key, participant_id)
        chunks = self._scan_chunks(session_key, participant_id, participant_path)
        chunks.sort(key=self._sort_key)
        return chunks

    def _scan_chunks(self, session_key: str, participant_id: str, participant_path: Path) -> List[RecordingChunk]:
        if not participant_path.is_dir():
            return []

        chunks = []
        for path in participant_path.iterdir():
            if path.suffix != f".{self.container}":
                continue
            try:
                if not path.is_file():
                    continue
                size = path.stat().st_size
            except OSError as e:
                logger.warning(f"Could not stat chunk '{path}': {e}. Skipping.")
                continue

            match = self._chunk_name.match(path.name)
            chunks.append(RecordingChunk(
                session_key=session_key,
                participant_id=participant_id,
                path=path,
                size_bytes=size,
                timestamp_ms=int(match.group(1)) if match else None,
                sequence=int(match.group(2)) if match and match.group(2) else None,
            ))
        return chunks

    @staticmethod
    def _sort_key(chunk: RecordingChunk) -> Tuple[int, int, str]:
        if chunk.sequence is not None:
            return (1, chunk.sequence, chunk.path.name)
        if chunk.timestamp_ms is not None:
            return (0, chunk.timestamp_ms, chunk.path.name)
        return (2, 0, chunk.path.name)
