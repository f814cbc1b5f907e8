"""Shared schemas for the relay service."""

from .stream_state import StreamState

__all__ = [
    "StreamState",
]
