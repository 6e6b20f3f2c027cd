"""Chunk storage for uploaded recordings."""

from .chunk_store import ChunkStore

__all__ = ['ChunkStore']
