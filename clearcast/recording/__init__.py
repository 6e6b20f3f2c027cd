"""Participant-side recording: lifecycle, chunk upload and call handling."""

from .lifecycle import ChunkSource, MediaAccessError, ParticipantRecorder, PeerEvent
from .participant import CallParticipant
from .uploader import ChunkUploader

__all__ = [
    'ChunkSource',
    'MediaAccessError',
    'ParticipantRecorder',
    'PeerEvent',
    'CallParticipant',
    'ChunkUploader',
]
