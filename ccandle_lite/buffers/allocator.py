"""
Allocator for buffers whose ownership is transferred to the caller.

This module implements the single allocation path and the single release entry
point for result strings. Every allocation is recorded in a live table keyed by
data address so that release can verify the buffer came from here, has not been
released already, and still describes the layout that was allocated.

The allocator supports:
- Exactly one allocation per result, with a trailing NUL byte
- Release with layout verification (length and capacity must match)
- Poisoning of released structs and memory
- Allocation statistics for leak checks
- Thread-safe operations
"""

import ctypes
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Dict, Union

from ccandle_lite.buffers.types import OwnedString
from ccandle_lite.errors import (
    BufferMisuseError,
    DoubleReleaseError,
    report_misuse,
)

logger = logging.getLogger(__name__)

# Written over released memory so reads through a stale pointer are obvious.
POISON_BYTE = 0xDD

# Released structs kept alive (poisoned) so a stale pointer from the C side
# still reads NULL and a second release is detected.
TOMBSTONE_LIMIT = 1024

_FACTORY_TOKEN = object()


@dataclass
class _Allocation:
    storage: ctypes.Array
    struct: OwnedString
    length: int
    capacity: int


class TransferredBuffer:
    """A result buffer owned by the caller until it is released.

    Instances are only created by :meth:`BufferAllocator.allocate_text` and
    :meth:`BufferAllocator.allocate_bytes`.

    Attributes:
        struct: The C-layout OwnedString handed across the boundary.
    """

    __slots__ = ("struct", "_allocator")

    def __init__(self, struct: OwnedString, allocator: "BufferAllocator", _token: object = None) -> None:
        if _token is not _FACTORY_TOKEN:
            raise TypeError("TransferredBuffer can only be created by BufferAllocator")
        self.struct = struct
        self._allocator = allocator

    @property
    def length(self) -> int:
        return self.struct.length

    @property
    def capacity(self) -> int:
        return self.struct.capacity

    @property
    def released(self) -> bool:
        return not self.struct.data

    def __len__(self) -> int:
        return self.struct.length

    def tobytes(self) -> bytes:
        """Copy the buffer contents out.

        Raises:
            BufferMisuseError: If the buffer has already been released.
        """
        if self.released:
            raise BufferMisuseError("buffer has been released")
        return ctypes.string_at(self.struct.data, self.struct.length)

    def text(self) -> str:
        """Return the buffer contents decoded as UTF-8."""
        return self.tobytes().decode("utf-8")

    def release(self) -> None:
        """Return the buffer to the allocator that produced it."""
        self._allocator.release(self)

    def __enter__(self) -> "TransferredBuffer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.released:
            self.release()

    def __repr__(self) -> str:
        return f"TransferredBuffer(length={self.length}, capacity={self.capacity})"


class BufferAllocator:
    """Single allocation and release path for transferred buffers.

    Attributes:
        strict_misuse: Raise on double or mismatched release instead of logging.
    """

    def __init__(self, strict_misuse: bool = True) -> None:
        """Initialize an empty allocator.

        Args:
            strict_misuse: Raise MisuseError subclasses on bad releases.
        """
        self.strict_misuse = strict_misuse

        # Live allocations: data address -> allocation record
        self._live: Dict[int, _Allocation] = {}

        self._allocations = 0
        self._releases = 0
        self._tombstones: deque = deque(maxlen=TOMBSTONE_LIMIT)

        self.lock = threading.Lock()

    def allocate_text(self, text: str) -> TransferredBuffer:
        """Allocate a transferred buffer holding the UTF-8 encoding of ``text``."""
        return self.allocate_bytes(text.encode("utf-8"))

    def allocate_bytes(self, payload: bytes) -> TransferredBuffer:
        """Allocate a transferred buffer holding a copy of ``payload``.

        The allocation is ``len(payload) + 1`` bytes so the data is also a valid
        NUL-terminated C string. An empty payload still yields a non-null buffer.

        Args:
            payload: Bytes to copy into the new buffer.

        Returns:
            TransferredBuffer owned by the caller.
        """
        length = len(payload)
        capacity = length + 1
        storage = ctypes.create_string_buffer(bytes(payload), capacity)
        struct = OwnedString(
            ctypes.cast(storage, ctypes.POINTER(ctypes.c_uint8)),
            length,
            capacity,
        )

        with self.lock:
            self._live[ctypes.addressof(storage)] = _Allocation(
                storage=storage,
                struct=struct,
                length=length,
                capacity=capacity,
            )
            self._allocations += 1

        return TransferredBuffer(struct, self, _token=_FACTORY_TOKEN)

    def release(self, buffer: Union[TransferredBuffer, OwnedString]) -> None:
        """Release a buffer produced by this allocator.

        Args:
            buffer: The TransferredBuffer, or the OwnedString struct it holds as
                seen through the pointer handed to the C side.

        Raises:
            DoubleReleaseError: If the buffer was already released.
            BufferMisuseError: If the buffer was not produced by this allocator,
                is a by-value copy of the struct, or its length or capacity no
                longer match the allocation.
        """
        struct = buffer.struct if isinstance(buffer, TransferredBuffer) else buffer
        if not isinstance(struct, OwnedString):
            report_misuse(
                BufferMisuseError(f"cannot release {type(buffer).__name__}"),
                self.strict_misuse,
                logger,
            )
            return

        with self.lock:
            address = struct.address
            if address == 0:
                error = DoubleReleaseError("buffer was already released")
            else:
                allocation = self._live.get(address)
                if allocation is None:
                    error = BufferMisuseError(
                        f"buffer at {address:#x} was not allocated by this allocator "
                        "or was already released"
                    )
                elif ctypes.addressof(struct) != ctypes.addressof(allocation.struct):
                    error = BufferMisuseError(
                        f"buffer at {address:#x} must be released through the OwnedString "
                        "it was returned in, not a copy"
                    )
                elif (struct.length, struct.capacity) != (allocation.length, allocation.capacity):
                    error = BufferMisuseError(
                        f"buffer layout mismatch: released length={struct.length} "
                        f"capacity={struct.capacity}, allocated length={allocation.length} "
                        f"capacity={allocation.capacity}"
                    )
                else:
                    error = None
                    del self._live[address]
                    self._releases += 1
                    ctypes.memset(address, POISON_BYTE, allocation.capacity)
                    for owned in (allocation.struct, struct):
                        owned.data = None
                        owned.length = 0
                        owned.capacity = 0
                    self._tombstones.append(allocation.struct)

        if error is not None:
            report_misuse(error, self.strict_misuse, logger)

    def get_stats(self) -> Dict[str, int]:
        """Get allocation statistics.

        Returns:
            Dictionary with keys:
            - allocations: Buffers allocated so far
            - releases: Buffers released so far
            - live: Buffers currently owned by callers
            - live_bytes: Total capacity of live buffers
        """
        with self.lock:
            return {
                "allocations": self._allocations,
                "releases": self._releases,
                "live": len(self._live),
                "live_bytes": sum(a.capacity for a in self._live.values()),
            }
