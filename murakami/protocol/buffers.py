"""Providers of byte buffers used while decoding record payloads."""

from __future__ import annotations

from typing import Protocol


class BufferProvider(Protocol):
    """A pool of reusable byte buffers."""

    def get(self, buffer_size: int) -> bytearray:
        """Return a buffer of at least ``buffer_size`` bytes; raise if none is available."""

    def put(self, buf: bytearray) -> None:
        """Hand a buffer back for reuse; never blocks and may discard it."""


class EagerAllocationBufferProvider:
    """Allocates a fresh buffer on every request and keeps nothing."""

    def get(self, buffer_size: int) -> bytearray:
        """Return a new zero-filled buffer of exactly ``buffer_size`` bytes."""
        if buffer_size < 0:
            raise ValueError(f"buffer size must not be negative, got {buffer_size}")
        return bytearray(buffer_size)

    def put(self, buf: bytearray) -> None:
        """Accept a returned buffer and discard it; nothing is pooled."""
        if not isinstance(buf, (bytes, bytearray, memoryview)):
            raise TypeError(f"expected a bytes-like buffer, got {type(buf).__name__}")