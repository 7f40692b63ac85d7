"""
C-layout string structs that cross the language boundary.

Layouts match the public header:

    struct UnownedString { const uint8_t *data; size_t length; };
    struct OwnedString   { uint8_t *data; size_t length; size_t capacity; };
"""

import ctypes


class UnownedString(ctypes.Structure):
    """Caller-owned bytes lent for the duration of one call.

    The runtime never frees, mutates, or keeps a pointer to this data.
    """

    _fields_ = [
        ("data", ctypes.POINTER(ctypes.c_uint8)),
        ("length", ctypes.c_size_t),
    ]

    def __repr__(self) -> str:
        address = ctypes.cast(self.data, ctypes.c_void_p).value
        return f"UnownedString(data={address!r}, length={self.length})"


class OwnedString(ctypes.Structure):
    """Runtime-allocated bytes whose ownership moves to the caller.

    Must be handed back through the runtime's release entry point exactly
    once. ``capacity`` is the size of the underlying allocation and is checked
    on release.
    """

    _fields_ = [
        ("data", ctypes.POINTER(ctypes.c_uint8)),
        ("length", ctypes.c_size_t),
        ("capacity", ctypes.c_size_t),
    ]

    @property
    def address(self) -> int:
        """Integer address of the data, or 0 for a poisoned struct."""
        return ctypes.cast(self.data, ctypes.c_void_p).value or 0

    def __repr__(self) -> str:
        return (
            f"OwnedString(data={self.address}, length={self.length}, "
            f"capacity={self.capacity})"
        )
