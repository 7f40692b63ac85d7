"""
Opaque model handles.
"""

import threading
from enum import Enum

from ccandle_lite.engine.base import InferenceEngine
from ccandle_lite.errors import HandleMisuseError
from ccandle_lite.registry.catalog import ModelSpec


class HandleState(Enum):
    """Lifecycle state of a model handle."""

    LIVE = "live"  # Issued and usable
    RELEASED = "released"  # Released; every further use is misuse


class ModelHandle:
    """Caller-held reference to a fully loaded model.

    Only ModelRegistry creates handles, and only after the engine loaded
    successfully. Callers treat handles as opaque: the registry owns the
    engine reference and the lock that limits each handle to one in-flight
    generation.

    Attributes:
        id: Process-unique non-zero id; never reused.
        spec: Catalog entry the handle was loaded from.
        state: Current lifecycle state.
        lock: Held for the duration of a generation on this handle.
    """

    def __init__(self, handle_id: int, spec: ModelSpec, engine: InferenceEngine, owner: object) -> None:
        self.id = handle_id
        self.spec = spec
        self.state = HandleState.LIVE
        self.lock = threading.Lock()
        self._engine = engine
        self._owner = owner

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def is_live(self) -> bool:
        return self.state is HandleState.LIVE

    @property
    def engine(self) -> InferenceEngine:
        """The loaded engine.

        Raises:
            HandleMisuseError: If the handle has been released.
        """
        engine = self._engine
        if self.state is not HandleState.LIVE or engine is None:
            raise HandleMisuseError(f"model handle {self.id} ({self.name}) has been released")
        return engine

    def _poison(self) -> InferenceEngine:
        """Mark the handle released and hand back the engine for teardown."""
        engine = self._engine
        self._engine = None
        self.state = HandleState.RELEASED
        return engine

    def __repr__(self) -> str:
        return f"ModelHandle(id={self.id}, name={self.name!r}, state={self.state.value})"
