"""
C ABI for the runtime.

Exceptions cannot cross into C, so every entry point returns a status code and
writes results through out-parameters. On failure out-parameters are left
zero/NULL and a message is available from ``ccandle_last_error`` on the same
thread.

    int ccandle_load_model(UnownedString name, uint64_t *out_model);
    int ccandle_delete_model(uint64_t model);
    int ccandle_run_model(uint64_t model, UnownedString prompt,
                          size_t max_tokens, OwnedString **out);
    int ccandle_delete_owned_string(OwnedString *s);
    int ccandle_last_error(UnownedString *out);

Model handles cross as opaque non-zero ids. ``export_api`` packs the entry
points into a struct of C function pointers a host can call.
"""

import ctypes
import functools
import logging
import os
import threading
from enum import IntEnum

from ccandle_lite.api import current_runtime, get_runtime
from ccandle_lite.buffers.borrowed import BorrowedBuffer
from ccandle_lite.buffers.types import OwnedString, UnownedString
from ccandle_lite.errors import (
    BufferMisuseError,
    CCandleError,
    GenerationError,
    InvalidInputError,
    MisuseError,
    ModelLoadError,
    ModelLookupError,
)

logger = logging.getLogger(__name__)

ABI_VERSION = 1


class Status(IntEnum):
    """Status codes returned by every entry point."""

    OK = 0
    LOOKUP_FAILED = 1
    LOAD_FAILED = 2
    INVALID_INPUT = 3
    GENERATION_FAILED = 4
    MISUSE = 5
    INTERNAL = 6


_STATUS_BY_ERROR = (
    (ModelLookupError, Status.LOOKUP_FAILED),
    (ModelLoadError, Status.LOAD_FAILED),
    (InvalidInputError, Status.INVALID_INPUT),
    (GenerationError, Status.GENERATION_FAILED),
    (MisuseError, Status.MISUSE),
)


def status_for(error: BaseException) -> Status:
    """Map an exception to the status code reported across the boundary."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return Status.INTERNAL


_last_error = threading.local()


def _set_last_error(message: str) -> None:
    _last_error.message = message.encode("utf-8", errors="replace")


def _clear_last_error() -> None:
    _last_error.message = b""


def _abort_on_misuse() -> bool:
    # Never builds a runtime: this runs inside an exception handler
    runtime = current_runtime()
    return runtime is not None and runtime.config.abort_on_misuse


def _boundary(func):
    """Convert the wrapped entry point's exceptions into status codes."""

    @functools.wraps(func)
    def wrapper(*args) -> int:
        try:
            func(*args)
        except CCandleError as e:
            status = status_for(e)
            _set_last_error(str(e))
            if status is Status.MISUSE:
                logger.error("%s: contract violation: %s", func.__name__, e)
                if _abort_on_misuse():
                    logger.critical("aborting on misuse")
                    os.abort()
            return int(status)
        except Exception as e:
            # Nothing may propagate into C; report it as an internal failure
            logger.exception("%s: unexpected error", func.__name__)
            _set_last_error(f"{type(e).__name__}: {e}")
            return int(Status.INTERNAL)
        _clear_last_error()
        return int(Status.OK)

    return wrapper


@_boundary
def ccandle_load_model(model_name: UnownedString, out_model) -> None:
    """Load a model by canonical name and write its id to ``*out_model``."""
    if not out_model:
        raise InvalidInputError("out_model is NULL")
    out_model[0] = 0
    handle = get_runtime().load_model(BorrowedBuffer.from_struct(model_name))
    out_model[0] = handle.id


@_boundary
def ccandle_delete_model(model: int) -> None:
    """Release the model with id ``model``."""
    get_runtime().registry.release_id(model)


@_boundary
def ccandle_run_model(model: int, prompt: UnownedString, max_tokens: int, out) -> None:
    """Generate from ``prompt`` and write a new OwnedString pointer to ``*out``."""
    if not out:
        raise InvalidInputError("out is NULL")
    out[0] = ctypes.POINTER(OwnedString)()
    runtime = get_runtime()
    handle = runtime.registry.get(model)
    buffer = runtime.generate(handle, BorrowedBuffer.from_struct(prompt), max_tokens)
    out[0] = ctypes.pointer(buffer.struct)


@_boundary
def ccandle_delete_owned_string(owned) -> None:
    """Release an OwnedString returned by ``ccandle_run_model``."""
    if not owned:
        raise BufferMisuseError("cannot release a NULL OwnedString")
    get_runtime().release_buffer(owned.contents)


def ccandle_last_error(out) -> int:
    """Write a view of the calling thread's last error message to ``*out``.

    The view stays valid until the next entry point call on this thread.
    """
    if not out:
        return int(Status.INVALID_INPUT)
    message = getattr(_last_error, "message", b"")
    if message:
        storage = ctypes.create_string_buffer(message, len(message))
        _last_error.view = storage
        out[0] = UnownedString(ctypes.cast(storage, ctypes.POINTER(ctypes.c_uint8)), len(message))
    else:
        out[0] = UnownedString(None, 0)
    return int(Status.OK)


def last_error_message() -> str:
    """The calling thread's last error message, for Python callers."""
    return getattr(_last_error, "message", b"").decode("utf-8")


LOAD_MODEL_FN = ctypes.CFUNCTYPE(ctypes.c_int, UnownedString, ctypes.POINTER(ctypes.c_uint64))
DELETE_MODEL_FN = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_uint64)
RUN_MODEL_FN = ctypes.CFUNCTYPE(
    ctypes.c_int,
    ctypes.c_uint64,
    UnownedString,
    ctypes.c_size_t,
    ctypes.POINTER(ctypes.POINTER(OwnedString)),
)
DELETE_OWNED_STRING_FN = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.POINTER(OwnedString))
LAST_ERROR_FN = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.POINTER(UnownedString))


class CCandleApi(ctypes.Structure):
    """Function table handed to a C host."""

    _fields_ = [
        ("abi_version", ctypes.c_uint32),
        ("load_model", LOAD_MODEL_FN),
        ("delete_model", DELETE_MODEL_FN),
        ("run_model", RUN_MODEL_FN),
        ("delete_owned_string", DELETE_OWNED_STRING_FN),
        ("last_error", LAST_ERROR_FN),
    ]


_api = None
_api_lock = threading.Lock()


def export_api() -> CCandleApi:
    """Return the function table, building it once.

    The table lives for the rest of the process so the function pointers
    inside it stay valid. Pass ``ctypes.addressof(export_api())`` to the host.
    """
    global _api
    with _api_lock:
        if _api is None:
            _api = CCandleApi(
                ABI_VERSION,
                LOAD_MODEL_FN(ccandle_load_model),
                DELETE_MODEL_FN(ccandle_delete_model),
                RUN_MODEL_FN(ccandle_run_model),
                DELETE_OWNED_STRING_FN(ccandle_delete_owned_string),
                LAST_ERROR_FN(ccandle_last_error),
            )
        return _api
