"""Session registry: which connection is in which session."""

import logging
import threading
from contextlib import ExitStack, contextmanager
from datetime import datetime
from typing import Dict, List, Optional

from ..models.session import (
    Departure,
    JoinResult,
    JoinStatus,
    Participant,
    Role,
    Session,
)

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Tracks active sessions and their members.

    A connection belongs to at most one session. Every mutation of a
    session, and every lookup the relay depends on, runs under that
    session key's lock. When a join touches two sessions (leaving one,
    entering another) both locks are taken in sorted key order. A key's
    lock is forgotten once no session exists under that key.
    """

    def __init__(self, capacity: int = 2):
        """Initialize registry.

        Args:
            capacity: Maximum members per session
        """
        self.capacity = capacity
        self._sessions: Dict[str, Session] = {}
        self._memberships: Dict[str, str] = {}  # connection id -> session key

        # Guards the two tables above and the lock table itself
        self._guard = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}

        logger.info(f"SessionRegistry initialized (capacity={capacity})")

    def _lock_entry(self, session_key: str) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(session_key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[session_key] = lock
            return lock

    @contextmanager
    def _locked(self, *session_keys: str):
        """Hold the locks of the given session keys, taken in sorted order.

        A lock fetched from the table may be dropped by its previous holder
        while we wait on it, so once acquired it must still be the registered
        one or we start over. On exit, locks of keys that no longer have a
        session are removed from the table before being released.
        """
        keys = sorted(set(session_keys))
        while True:
            with ExitStack() as stack:
                held = []
                for key in keys:
                    lock = self._lock_entry(key)
                    stack.enter_context(lock)
                    held.append((key, lock))

                with self._guard:
                    current = all(self._key_locks.get(key) is lock for key, lock in held)
                if not current:
                    continue

                try:
                    yield
                finally:
                    with self._guard:
                        for key in keys:
                            if key not in self._sessions:
                                self._key_locks.pop(key, None)
                return

    def join(self, connection_id: str, session_key: str,
             display_name: Optional[str] = None) -> JoinResult:
        """Add a connection to a session, creating the session if needed.

        Args:
            connection_id: Joining connection
            session_key: Session to join
            display_name: Optional human-readable name

        Returns:
            JoinResult describing the role and peer, or a room-full rejection
        """
        while True:
            previous_key = self.session_of(connection_id)
            keys = [session_key] + ([previous_key] if previous_key else [])

            with self._locked(*keys):
                # Membership may have moved while we were waiting on the locks
                if self.session_of(connection_id) != previous_key:
                    continue

                if previous_key == session_key:
                    logger.debug(f"{connection_id} already in session {session_key}")
                    session = self._sessions[session_key]
                    peers = [m for m in session.member_ids if m != connection_id]
                    return JoinResult(
                        session_key=session_key,
                        status=JoinStatus.ALREADY_JOINED,
                        peer_id=peers[0] if peers else None,
                    )

                target = self._sessions.get(session_key)
                if target is not None and len(target.participants) >= self.capacity:
                    logger.warning(
                        f"Session {session_key} is full "
                        f"({len(target.participants)}/{self.capacity}), rejecting {connection_id}")
                    return JoinResult(session_key=session_key, status=JoinStatus.ROOM_FULL)

                left_behind = []
                if previous_key is not None:
                    logger.info(f"{connection_id} leaving previous session {previous_key}")
                    left_behind = self._remove_locked(connection_id, previous_key).remaining

                if target is None:
                    target = Session(key=session_key)
                    with self._guard:
                        self._sessions[session_key] = target
                    logger.info(f"Created session {session_key}")

                peer_id = target.member_ids[0] if target.participants else None
                target.participants.append(Participant(connection_id, display_name))
                with self._guard:
                    self._memberships[connection_id] = session_key

                logger.info(f"{connection_id} joined session {session_key}: {target.member_ids}")
                return JoinResult(
                    session_key=session_key,
                    status=JoinStatus.JOINED,
                    role=Role.INITIATOR if peer_id else Role.AWAITING,
                    peer_id=peer_id,
                    previous_session_key=previous_key,
                    left_behind=left_behind,
                )

    def depart(self, connection_id: str) -> Optional[Departure]:
        """Remove a connection from its session.

        Returns:
            Departure with the members left behind, or None if the
            connection was not in any session
        """
        while True:
            session_key = self.session_of(connection_id)
            if session_key is None:
                logger.debug(f"{connection_id} is not in any session")
                return None

            with self._locked(session_key):
                if self.session_of(connection_id) != session_key:
                    continue
                return self._remove_locked(connection_id, session_key)

    def leave(self, connection_id: str) -> Optional[str]:
        """Remove a connection from its session.

        Returns:
            The session key it left, or None (a no-op) if it had none
        """
        departure = self.depart(connection_id)
        return departure.session_key if departure else None

    def _remove_locked(self, connection_id: str, session_key: str) -> Departure:
        """Remove membership; caller holds the session key's lock."""
        session = self._sessions[session_key]
        session.participants = [p for p in session.participants
                                if p.connection_id != connection_id]
        terminated = not session.participants

        with self._guard:
            self._memberships.pop(connection_id, None)
            if terminated:
                session.terminated_at = datetime.now()
                del self._sessions[session_key]

        if terminated:
            logger.info(f"Session {session_key} terminated (last member {connection_id} left)")
        else:
            logger.info(f"{connection_id} left session {session_key}, remaining: {session.member_ids}")

        return Departure(
            session_key=session_key,
            connection_id=connection_id,
            remaining=session.member_ids,
            terminated=terminated,
        )

    def session_of(self, connection_id: str) -> Optional[str]:
        """Get the key of the session a connection is in."""
        with self._guard:
            return self._memberships.get(connection_id)

    def get_session(self, session_key: str) -> Optional[Session]:
        with self._guard:
            return self._sessions.get(session_key)

    def members(self, session_key: str) -> List[str]:
        """Get connection ids currently in a session, in join order."""
        with self._locked(session_key):
            session = self.get_session(session_key)
            return session.member_ids if session else []

    def shared_session(self, first_id: str, second_id: str) -> Optional[str]:
        """Get the session key both connections are in, if any."""
        session_key = self.session_of(second_id)
        if session_key is None:
            return None
        with self._locked(session_key):
            session = self.get_session(session_key)
            if session and session.has_member(first_id) and session.has_member(second_id):
                return session_key
            return None

    def mark_ended(self, session_key: str) -> Optional[List[str]]:
        """Record an explicit end of a session.

        Returns:
            Current members, or None if the session does not exist
        """
        with self._locked(session_key):
            session = self.get_session(session_key)
            if session is None:
                return None
            if session.ended_at is None:
                session.ended_at = datetime.now()
            return session.member_ids

    def active_sessions(self) -> List[str]:
        with self._guard:
            return sorted(self._sessions)
