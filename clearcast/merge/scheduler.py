"""Grace-delayed merge scheduling, serialized per session key."""

import logging
import subprocess
import sys
import threading
import time
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class SubprocessMergeRunner:
    """Runs the merge job out of process: python -m clearcast.merge <key>."""

    def __init__(self, config_path: Optional[str] = None, timeout: Optional[float] = None):
        self.config_path = config_path
        self.timeout = timeout

    def build_command(self, session_key: str) -> List[str]:
        cmd = [sys.executable, "-m", "clearcast.merge", session_key]
        if self.config_path:
            cmd += ["--config", self.config_path]
        return cmd

    def __call__(self, session_key: str) -> int:
        cmd = self.build_command(session_key)
        logger.info(f"Running merge job: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            logger.error(f"Merge job for {session_key} timed out after {self.timeout}s")
            return -1

        if result.stderr:
            logger.warning(f"Merge stderr for {session_key}:\n{result.stderr.strip()}")
        if result.returncode != 0:
            logger.error(f"Merge job for {session_key} failed with exit code {result.returncode}")
        else:
            logger.info(f"Merge completed for {session_key}:\n{result.stdout.strip()}")
        return result.returncode


class MergeScheduler:
    """Schedules a merge for a session once its chunks have had time to land.

    A merge fires grace_delay seconds after schedule(). If uploads for the
    session were reported less than settle_seconds before that, it is pushed
    back by settle_seconds, never beyond max_wait seconds after scheduling.
    Merges of one session never overlap; different sessions run in parallel.
    Per-session state is forgotten once a session has nothing pending or
    running.
    """

    def __init__(self, runner: Callable[[str], object], grace_delay: float = 8.0,
                 settle_seconds: float = 0.0, max_wait: Optional[float] = None,
                 timer_factory: Callable[..., threading.Timer] = threading.Timer,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize scheduler.

        Args:
            runner: Called with a session key to perform the merge
            grace_delay: Seconds between schedule() and the merge
            settle_seconds: Quiet period required after the last upload
            max_wait: Upper bound on total delay; defaults to grace_delay
            timer_factory: threading.Timer-compatible constructor
            clock: Monotonic time source
        """
        self.runner = runner
        self.grace_delay = grace_delay
        self.settle_seconds = settle_seconds
        self.max_wait = max(max_wait if max_wait is not None else grace_delay, grace_delay)
        self.timer_factory = timer_factory
        self.clock = clock

        self._lock = threading.Lock()
        self._run_locks: Dict[str, threading.Lock] = {}
        self._run_users: Dict[str, int] = {}
        self._last_upload: Dict[str, float] = {}
        self._pending: Dict[int, threading.Timer] = {}
        self._pending_keys: Dict[int, str] = {}
        self._next_id = 0
        self._shutdown = False

        logger.info(f"MergeScheduler initialized: grace={grace_delay}s, "
                    f"settle={settle_seconds}s, max_wait={self.max_wait}s")

    def schedule(self, session_key: str) -> Optional[threading.Thread]:
        """Arm a merge for session_key after the grace delay.

        Returns:
            The armed timer. After shutdown() no timer is armed; the merge
            starts at once on a worker thread, which is returned instead.
        """
        with self._lock:
            if self._shutdown:
                worker = threading.Thread(target=self.run_now, args=(session_key,),
                                          name=f"merge-{session_key}")
            else:
                worker = None
                job_id = self._next_id
                self._next_id += 1
                deadline = self.clock() + self.max_wait
                timer = self._register(job_id, session_key, self.grace_delay, deadline)

        if worker is not None:
            logger.info(f"Scheduler shut down; merging {session_key} now")
            worker.start()
            return worker

        logger.info(f"Merge for {session_key} scheduled in {self.grace_delay}s")
        timer.start()
        return timer

    def _register(self, job_id: int, session_key: str, delay: float, deadline: float) -> threading.Timer:
        """Create and record a timer; caller holds the lock and starts it."""
        timer = self.timer_factory(delay, self._on_timer, args=(job_id, session_key, deadline))
        timer.daemon = True
        self._pending[job_id] = timer
        self._pending_keys[job_id] = session_key
        return timer

    def note_upload(self, session_key: str) -> None:
        """Record that a chunk for session_key just landed."""
        with self._lock:
            self._last_upload[session_key] = self.clock()

    def _on_timer(self, job_id: int, session_key: str, deadline: float) -> None:
        with self._lock:
            if self._pending.pop(job_id, None) is None:
                return  # Already run by shutdown()
            self._pending_keys.pop(job_id, None)

            last_upload = self._last_upload.get(session_key)
            now = self.clock()
            postpone = (not self._shutdown and self.settle_seconds > 0 and last_upload is not None
                        and now - last_upload < self.settle_seconds and now < deadline)
            if postpone:
                delay = min(self.settle_seconds, deadline - now)
                timer = self._register(job_id, session_key, delay, deadline)

        if postpone:
            logger.info(f"Uploads still arriving for {session_key}; postponing merge by {delay:.1f}s")
            timer.start()
            return

        self.run_now(session_key)

    def run_now(self, session_key: str) -> None:
        """Run the merge immediately, waiting for any merge of the same key."""
        with self._lock:
            lock = self._run_locks.get(session_key)
            if lock is None:
                lock = threading.Lock()
                self._run_locks[session_key] = lock
            self._run_users[session_key] = self._run_users.get(session_key, 0) + 1

        try:
            with lock:
                try:
                    self.runner(session_key)
                except Exception as e:
                    logger.error(f"Merge for {session_key} raised: {e}", exc_info=True)
        finally:
            self._release(session_key)

    def _release(self, session_key: str) -> None:
        with self._lock:
            self._run_users[session_key] -= 1
            if self._run_users[session_key] > 0:
                return
            del self._run_users[session_key]
            del self._run_locks[session_key]
            if session_key not in self._pending_keys.values():
                self._last_upload.pop(session_key, None)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def tracked_sessions(self) -> int:
        """Number of session keys with upload or run state held."""
        with self._lock:
            return len(set(self._last_upload) | set(self._run_locks))

    def shutdown(self) -> None:
        """Cancel timers and run their merges now instead of dropping them."""
        with self._lock:
            self._shutdown = True
            pending = list(self._pending.items())
            keys = dict(self._pending_keys)
            self._pending.clear()
            self._pending_keys.clear()

        for job_id, timer in pending:
            timer.cancel()
        if pending:
            logger.info(f"Running {len(pending)} pending merge(s) before shutdown")
        for job_id, _ in pending:
            self.run_now(keys[job_id])
