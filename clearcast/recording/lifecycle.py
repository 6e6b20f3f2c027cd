"""Per-participant recording lifecycle with a fixed chunk cadence."""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from threading import Thread, Event
from typing import Callable, Optional

from ..models.recording import RecordingState

logger = logging.getLogger(__name__)


class MediaAccessError(Exception):
    """The local audio source could not be opened."""


class PeerEvent(Enum):
    """Media channel events that drive the recorder."""
    CONNECTED = "connected"
    CLOSED = "closed"
    ERROR = "error"


class ChunkSource(ABC):
    """Encoded local audio, handed out one interval at a time."""

    def open(self) -> None:
        """Acquire the device. Raises MediaAccessError when access is denied."""
        pass

    @abstractmethod
    def read_chunk(self) -> bytes:
        """Return the encoded audio captured since the previous call."""
        pass

    def close(self) -> None:
        pass


class ParticipantRecorder:
    """Records one participant's audio as a series of self-contained chunks.

    Idle -> Recording when the peer connection comes up, Recording -> Stopped
    on a local stop or a stop-recording broadcast. Stopped is terminal.
    """

    def __init__(
        self,
        source: ChunkSource,
        on_chunk: Callable[[bytes], object],
        chunk_interval: float = 5.0,
        container: str = "webm",
    ):
        """Initialize recorder.

        Args:
            source: Where chunk bytes come from
            on_chunk: Called with each non-empty chunk (usually an uploader)
            chunk_interval: Seconds between chunk reads
            container: Container format of every chunk this recorder produces
        """
        self.source = source
        self.on_chunk = on_chunk
        self.chunk_interval = chunk_interval
        self.container = container

        self.state = RecordingState.IDLE
        self._state_lock = threading.Lock()

        self.recording_thread: Optional[Thread] = None
        self.stop_event = Event()

        self.start_time: Optional[datetime] = None
        self.total_chunks = 0
        self.empty_chunks = 0

    def on_peer_event(self, event: PeerEvent) -> None:
        """React to a media channel event."""
        if event == PeerEvent.CONNECTED:
            self.start()
        else:
            logger.info(f"Peer channel {event.value}; stopping recorder")
            self.stop()

    def on_stop_signal(self) -> None:
        """Handle a stop-recording broadcast from the coordinator."""
        logger.info("Received stop-recording")
        self.stop()

    def start(self) -> bool:
        """Start recording in a background thread."""
        with self._state_lock:
            if self.state != RecordingState.IDLE:
                logger.warning(f"Ignoring start: recorder is {self.state.value}")
                return False
            self.state = RecordingState.RECORDING

        logger.info(f"Starting recording ({self.container}, {self.chunk_interval}s chunks)")
        self.stop_event.clear()
        self.start_time = datetime.now()

        self.recording_thread = Thread(target=self._record_continuously, daemon=True)
        self.recording_thread.name = "ParticipantRecorderThread"
        self.recording_thread.start()
        return True

    def stop(self, timeout: float = 10.0) -> bool:
        """Stop recording and wait for the final chunk to be handed off."""
        with self._state_lock:
            if self.state != RecordingState.RECORDING:
                logger.warning(f"Ignoring stop: recorder is {self.state.value}")
                return False
            self.state = RecordingState.STOPPED

        logger.info("Stopping recording")
        self.stop_event.set()

        if (self.recording_thread and self.recording_thread.is_alive()
                and self.recording_thread is not threading.current_thread()):
            self.recording_thread.join(timeout=timeout)
            if self.recording_thread.is_alive():
                logger.warning("Recording thread did not stop cleanly")

        logger.info(f"Recording stopped. Total chunks: {self.total_chunks}")
        return True

    @property
    def is_recording(self) -> bool:
        return self.state == RecordingState.RECORDING

    def _emit(self, data: bytes) -> None:
        if not data:
            self.empty_chunks += 1
            logger.debug("Skipping empty chunk")
            return

        self.total_chunks += 1
        try:
            self.on_chunk(data)
        except Exception as e:
            logger.error(f"Chunk handler failed on chunk {self.total_chunks}: {e}")

    def _read(self) -> bytes:
        try:
            return self.source.read_chunk()
        except Exception as e:
            logger.error(f"Error reading chunk: {e}")
            return b""

    def _record_continuously(self) -> None:
        """Internal method: chunking loop in background thread."""
        try:
            while not self.stop_event.wait(self.chunk_interval):
                self._emit(self._read())
            # Flush whatever was captured since the last interval
            self._emit(self._read())
        finally:
            self.source.close()
