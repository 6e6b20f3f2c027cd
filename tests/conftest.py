"""Pytest configuration and fixtures for ClearCast tests."""

import pytest
import tempfile
import logging
from pathlib import Path
from typing import List

from clearcast.signaling.port import QueueSignalingPort
from clearcast.signaling.registry import SessionRegistry
from clearcast.signaling.coordinator import SessionCoordinator
from clearcast.storage.chunk_store import ChunkStore
from clearcast.merge.ffmpeg import FFmpegError


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external processes or sockets")
    config.addinivalue_line("markers", "integration: tests that run a server or ffmpeg")


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def chunk_store(temp_data_dir):
    return ChunkStore(temp_data_dir)


@pytest.fixture
def port():
    return QueueSignalingPort()


class RecordingScheduler:
    """Stands in for MergeScheduler and remembers what was scheduled."""

    def __init__(self):
        self.scheduled: List[str] = []

    def schedule(self, session_key: str):
        self.scheduled.append(session_key)


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def coordinator(port, scheduler):
    return SessionCoordinator(SessionRegistry(), port, merge_scheduler=scheduler)


def message_types(port: QueueSignalingPort, connection_id: str) -> List[str]:
    """Drain a connection's inbox and return the message types in order."""
    return [m.type for m in port.drain(connection_id)]


class FakeTimer:
    """threading.Timer replacement that only fires when told to."""

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)


class FakeTimerFactory:

    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, interval, function, args=None, kwargs=None):
        timer = FakeTimer(interval, function, args, kwargs)
        self.timers.append(timer)
        return timer

    def fire_all(self):
        """Fire every timer armed so far, including ones armed while firing."""
        fired = 0
        while fired < len(self.timers):
            self.timers[fired].fire()
            fired += 1


@pytest.fixture
def timer_factory():
    return FakeTimerFactory()


class FakeClock:

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def write_chunk(data_dir, session_key: str, participant_id: str, name: str, size: int = 9000) -> Path:
    """Place a chunk file directly in the store layout."""
    directory = Path(data_dir) / session_key / participant_id
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(b"\x1a" * size)
    return path


class FakeFFmpeg:
    """In-process stand-in for FFmpegRunner.

    concat writes the ordered input names into the output so tests can
    check ordering; mix writes the input track names.
    """

    def __init__(self, fail_concat_for=(), fail_mix=False, duration=5.0):
        self.fail_concat_for = set(fail_concat_for)
        self.fail_mix = fail_mix
        self.duration = duration
        self.concat_calls = []
        self.mix_calls = []

    def concat(self, list_file: Path, output_path: Path) -> None:
        lines = Path(list_file).read_text(encoding="utf-8").splitlines()
        names = [Path(line[len("file '"):-1]).name for line in lines]
        self.concat_calls.append((Path(list_file), Path(output_path), names))
        if any(token in str(output_path) for token in self.fail_concat_for):
            raise FFmpegError("concat failed", returncode=1, stderr="Invalid data found")
        Path(output_path).write_text("\n".join(names))

    def mix(self, inputs, output_path: Path) -> None:
        self.mix_calls.append(([Path(p) for p in inputs], Path(output_path)))
        if self.fail_mix:
            raise FFmpegError("mix failed", returncode=1, stderr="amix error")
        Path(output_path).write_text("\n".join(Path(p).name for p in inputs))

    def probe_duration(self, path: Path):
        return self.duration


@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpeg()
