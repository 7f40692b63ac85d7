"""
Borrowed (caller-owned) buffers.

A BorrowedBuffer is a read-only view over bytes that belong to the caller. The
runtime copies what it needs out of the view during the call and never keeps
the pointer afterwards.
"""

import ctypes
from typing import Optional, Union

from ccandle_lite.buffers.types import UnownedString
from ccandle_lite.errors import InvalidInputError


class BorrowedBuffer:
    """Read-only view over caller-owned bytes.

    Attributes:
        struct: The C-layout view handed across the boundary.
    """

    __slots__ = ("struct", "_keepalive")

    def __init__(self, struct: UnownedString, keepalive: Optional[object] = None) -> None:
        """Wrap an UnownedString.

        Args:
            struct: View over the caller's bytes.
            keepalive: Python object owning the bytes, held so the memory stays
                valid while this view exists.
        """
        self.struct = struct
        self._keepalive = keepalive

    @classmethod
    def from_bytes(cls, data: bytes) -> "BorrowedBuffer":
        """Create a view over a bytes object owned by the caller."""
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError(f"expected bytes, got {type(data).__name__}")
        length = len(data)
        if length == 0:
            return cls(UnownedString(None, 0))
        storage = (ctypes.c_uint8 * length).from_buffer_copy(data)
        pointer = ctypes.cast(storage, ctypes.POINTER(ctypes.c_uint8))
        return cls(UnownedString(pointer, length), keepalive=storage)

    @classmethod
    def from_str(cls, text: str) -> "BorrowedBuffer":
        """Create a view over the UTF-8 encoding of ``text``."""
        return cls.from_bytes(text.encode("utf-8"))

    @classmethod
    def from_struct(cls, struct: UnownedString) -> "BorrowedBuffer":
        """Wrap a view received from the C side."""
        return cls(struct)

    def __len__(self) -> int:
        return self.struct.length

    def as_bytes(self) -> bytes:
        """Copy the viewed bytes out.

        Raises:
            InvalidInputError: If the view has a null pointer and a non-zero length.
        """
        length = self.struct.length
        if not self.struct.data:
            if length != 0:
                raise InvalidInputError(
                    f"borrowed buffer has a null data pointer but length {length}"
                )
            return b""
        return ctypes.string_at(self.struct.data, length)

    def as_str(self) -> str:
        """Decode the viewed bytes as UTF-8.

        Raises:
            InvalidInputError: If the bytes are not valid UTF-8.
        """
        raw = self.as_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidInputError(
                f"borrowed buffer is not valid UTF-8 at byte {e.start}: {e.reason}"
            ) from e

    def __repr__(self) -> str:
        return f"BorrowedBuffer(length={self.struct.length})"


BorrowedInput = Union[BorrowedBuffer, UnownedString, bytes, bytearray, str]


def as_text(value: BorrowedInput) -> str:
    """Decode any supported borrowed input to text.

    Args:
        value: A BorrowedBuffer, UnownedString, bytes, or already-decoded str.

    Returns:
        Decoded text.

    Raises:
        InvalidInputError: If the input is not valid UTF-8 or has an unsupported type.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, BorrowedBuffer):
        return value.as_str()
    if isinstance(value, UnownedString):
        return BorrowedBuffer.from_struct(value).as_str()
    if isinstance(value, (bytes, bytearray)):
        return BorrowedBuffer.from_bytes(bytes(value)).as_str()
    raise InvalidInputError(
        f"expected str, bytes, UnownedString or BorrowedBuffer, got {type(value).__name__}"
    )
