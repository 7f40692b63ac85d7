"""
Exception types raised across the ccandle-lite runtime.

Every failure that can reach a caller maps to exactly one of these types. The
C-ABI layer (``ccandle_lite.ffi``) converts them to status codes; Python callers
of ``ccandle_lite.api`` see them directly.

Hierarchy:
- CCandleError: base class for all runtime errors
- ModelLookupError: model name not in the catalog
- ModelLoadError: catalog match, but artifacts could not be loaded
- InvalidInputError: borrowed input failed validation (encoding, budget)
- GenerationError: engine failed mid-generation
- MisuseError: caller broke the ownership contract
"""


class CCandleError(Exception):
    """Base class for all ccandle-lite errors."""


class ModelLookupError(CCandleError, LookupError):
    """Requested model name is empty or not in the supported catalog."""

    def __init__(self, name: str, known=()):
        self.name = name
        self.known = tuple(known)
        if known:
            message = f"Unknown model {name!r}; supported models: {', '.join(self.known)}"
        else:
            message = f"Unknown model {name!r}"
        super().__init__(message)


class ModelLoadError(CCandleError, RuntimeError):
    """Model artifacts could not be fetched, parsed, or initialized."""


class InvalidInputError(CCandleError, ValueError):
    """A borrowed buffer or argument failed validation."""


class GenerationError(CCandleError, RuntimeError):
    """The inference engine failed while generating."""


class MisuseError(CCandleError, RuntimeError):
    """The caller violated the ownership or lifecycle contract."""


class HandleMisuseError(MisuseError):
    """A released, unknown, or foreign model handle was used."""


class DoubleReleaseError(MisuseError):
    """A handle or buffer was released more than once."""


class BufferMisuseError(MisuseError):
    """A buffer was released through the wrong path or with a mismatched layout."""


class ConcurrentUseError(MisuseError):
    """A second generation was started on a handle that is already generating."""


def report_misuse(error: MisuseError, strict: bool, logger) -> None:
    """Raise ``error`` in strict mode, otherwise log it and carry on.

    Args:
        error: The detected contract violation.
        strict: Whether misuse should be raised.
        logger: Logger of the module that detected the misuse.

    Raises:
        MisuseError: When ``strict`` is True.
    """
    if strict:
        raise error
    logger.error("ignoring ownership misuse: %s", error)
