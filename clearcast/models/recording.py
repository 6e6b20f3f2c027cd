"""Recording and merge data models."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional


class RecordingState(Enum):
    """Per-participant recording lifecycle."""
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"


@dataclass
class RecordingChunk:
    """One uploaded interval of audio for a (session, participant) pair."""
    session_key: str
    participant_id: str
    path: Path
    size_bytes: int
    sequence: Optional[int] = None      # Issued at upload; None for legacy names
    timestamp_ms: Optional[int] = None  # Embedded in the filename

    def is_valid(self, min_bytes: int) -> bool:
        """Chunks at or below the threshold are treated as empty or corrupt."""
        return self.size_bytes > min_bytes


@dataclass
class ChunkUploadResult:
    """Response of the chunk ingestion contract."""
    success: bool
    session_key: str
    participant_id: str
    path: Optional[str] = None
    file: Optional[str] = None
    sequence: Optional[int] = None
    size_bytes: int = 0
    error: Optional[str] = None


@dataclass
class ParticipantTrack:
    """The concatenation of one participant's valid chunks."""
    participant_id: str
    path: Path
    chunk_count: int
    display_name: Optional[str] = None
    duration_seconds: Optional[float] = None


@dataclass
class MergeResult:
    """Outcome of one merge pipeline invocation."""
    session_key: str
    output_dir: Path
    tracks: List[ParticipantTrack] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)  # No valid chunks
    failed: List[str] = field(default_factory=list)   # Concatenation failed
    mix_path: Optional[Path] = None
    mix_duration_seconds: Optional[float] = None

    @property
    def mixed(self) -> bool:
        return self.mix_path is not None
