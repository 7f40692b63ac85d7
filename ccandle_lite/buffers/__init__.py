"""
Buffer ownership layer.

Provides:
- UnownedString / OwnedString: C-layout string structs
- BorrowedBuffer: read-only view over caller-owned bytes
- BufferAllocator: single allocation and release path for results
- TransferredBuffer: result buffer owned by the caller until released
"""

from ccandle_lite.buffers.types import OwnedString, UnownedString
from ccandle_lite.buffers.borrowed import BorrowedBuffer, as_text
from ccandle_lite.buffers.allocator import BufferAllocator, TransferredBuffer

__all__ = [
    "OwnedString",
    "UnownedString",
    "BorrowedBuffer",
    "as_text",
    "BufferAllocator",
    "TransferredBuffer",
]
