"""Signaling ports: how the coordinator reaches connected participants."""

import logging
import queue
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from pubsub import pub

from ..models.events import OutboundMessage

logger = logging.getLogger(__name__)

OUTBOUND_TOPIC = "signaling.outbound"


class SignalingPort(ABC):
    """Transport-independent channel to individual connections."""

    @abstractmethod
    def send(self, connection_id: str, message: OutboundMessage) -> None:
        """Deliver a message to one connection. Must not block."""
        pass


class PubSubSignalingPort(SignalingPort):
    """Publishes outbound messages on a pubsub topic.

    Transports subscribe to the topic and forward messages addressed to the
    connections they own.
    """

    def __init__(self, topic: str = OUTBOUND_TOPIC):
        """Initialize publisher.

        Args:
            topic: Pub/sub topic name for outbound messages
        """
        self.topic = topic
        logger.info(f"PubSubSignalingPort initialized with topic: {topic}")

    def send(self, connection_id: str, message: OutboundMessage) -> None:
        pub.sendMessage(self.topic, connection_id=connection_id, message=message)
        logger.debug(f"Published {message.type} for {connection_id}")


class QueueSignalingPort(SignalingPort):
    """In-process port with a receive queue per connection."""

    def __init__(self):
        self._inboxes: Dict[str, "queue.Queue[OutboundMessage]"] = {}
        self._lock = threading.Lock()

    def _inbox(self, connection_id: str) -> "queue.Queue[OutboundMessage]":
        with self._lock:
            inbox = self._inboxes.get(connection_id)
            if inbox is None:
                inbox = queue.Queue()
                self._inboxes[connection_id] = inbox
            return inbox

    def send(self, connection_id: str, message: OutboundMessage) -> None:
        self._inbox(connection_id).put(message)

    def receive(self, connection_id: str, timeout: Optional[float] = None) -> Optional[OutboundMessage]:
        """Take the next message for a connection.

        Args:
            connection_id: Recipient
            timeout: Seconds to wait; None returns immediately

        Returns:
            The message, or None if nothing arrived
        """
        try:
            if timeout is None:
                return self._inbox(connection_id).get_nowait()
            return self._inbox(connection_id).get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self, connection_id: str) -> List[OutboundMessage]:
        """Take every pending message for a connection."""
        messages = []
        while True:
            message = self.receive(connection_id)
            if message is None:
                return messages
            messages.append(message)
