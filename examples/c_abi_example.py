"""
Example: drive the runtime through its C ABI function table.

The calls below go through the same C function pointers a host would call,
using ctypes on the Python side to play the part of the C caller.
"""

import ctypes

from ccandle_lite.buffers.types import OwnedString, UnownedString
from ccandle_lite.ffi import Status, export_api

api = export_api()
print(f"ABI version: {api.abi_version}")


def unowned(data: bytes, keep: list) -> UnownedString:
    storage = (ctypes.c_uint8 * len(data)).from_buffer_copy(data)
    keep.append(storage)
    return UnownedString(ctypes.cast(storage, ctypes.POINTER(ctypes.c_uint8)), len(data))


def last_error() -> str:
    view = UnownedString()
    api.last_error(ctypes.byref(view))
    return ctypes.string_at(view.data, view.length).decode("utf-8") if view.length else ""


keep = []
model = ctypes.c_uint64(0)
status = api.load_model(unowned(b"mistral", keep), ctypes.byref(model))
if status != Status.OK:
    raise SystemExit(f"load failed ({Status(status).name}): {last_error()}")

result = ctypes.POINTER(OwnedString)()
status = api.run_model(model.value, unowned(b"write a haiku about a redpanda", keep), 100, ctypes.byref(result))
if status == Status.OK:
    owned = result.contents
    print(ctypes.string_at(owned.data, owned.length).decode("utf-8"))
    api.delete_owned_string(result)
else:
    print(f"generation failed ({Status(status).name}): {last_error()}")

api.delete_model(model.value)
