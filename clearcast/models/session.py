"""Session-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class JoinStatus(Enum):
    """Outcome of a join request."""
    JOINED = "joined"
    ALREADY_JOINED = "already-joined"
    ROOM_FULL = "room-full"


class Role(Enum):
    """Negotiation role handed to a participant when it joins."""
    INITIATOR = "initiator"
    RECEIVER = "receiver"
    AWAITING = "awaiting"


@dataclass
class Participant:
    """One connected end of a session."""
    connection_id: str
    display_name: Optional[str] = None
    joined_at: datetime = field(default_factory=datetime.now)


@dataclass
class Session:
    """A named meeting holding up to two participants."""
    key: str
    participants: List[Participant] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    terminated_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None  # Set by an explicit end-session

    @property
    def member_ids(self) -> List[str]:
        return [p.connection_id for p in self.participants]

    def has_member(self, connection_id: str) -> bool:
        return connection_id in self.member_ids


@dataclass
class JoinResult:
    """Result of SessionRegistry.join()."""
    session_key: str
    status: JoinStatus
    role: Optional[Role] = None
    peer_id: Optional[str] = None
    previous_session_key: Optional[str] = None
    left_behind: List[str] = field(default_factory=list)  # Members of the previous session

    @property
    def accepted(self) -> bool:
        return self.status != JoinStatus.ROOM_FULL


@dataclass
class Departure:
    """A removal from a session, with the members left behind."""
    session_key: str
    connection_id: str
    remaining: List[str] = field(default_factory=list)
    terminated: bool = False
