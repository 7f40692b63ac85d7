"""
Model registry: resolves catalog names to loaded models and owns handle lifetimes.

Loads either fully succeed (a handle is issued) or fully fail (an error is
raised and nothing is recorded). Each handle is released exactly once; a
second release, or a release through a registry that did not issue the
handle, is reported as misuse.
"""

import logging
import threading
import time
from typing import Dict, List, Optional

from ccandle_lite.buffers.borrowed import BorrowedInput, as_text
from ccandle_lite.config import RuntimeConfig
from ccandle_lite.errors import (
    ConcurrentUseError,
    DoubleReleaseError,
    HandleMisuseError,
    ModelLoadError,
    ModelLookupError,
    report_misuse,
)
from ccandle_lite.registry.catalog import DEFAULT_CATALOG, ModelCatalog, ModelSpec
from ccandle_lite.registry.handle import HandleState, ModelHandle

logger = logging.getLogger(__name__)


class ModelRegistry:
    """Issues and releases model handles.

    Attributes:
        catalog: Supported models.
        config: Runtime configuration passed to engine loaders.
    """

    def __init__(
        self,
        catalog: ModelCatalog = DEFAULT_CATALOG,
        config: Optional[RuntimeConfig] = None,
        engine_loader=None,
    ) -> None:
        """Initialize the registry.

        Args:
            catalog: Supported models.
            config: Runtime configuration; defaults to ``RuntimeConfig()``.
            engine_loader: ``(ModelSpec, RuntimeConfig) -> InferenceEngine``;
                defaults to the backend dispatcher in ``ccandle_lite.engine.loader``.
        """
        if engine_loader is None:
            from ccandle_lite.engine.loader import load_engine
            engine_loader = load_engine

        self.catalog = catalog
        self.config = config or RuntimeConfig()
        self._engine_loader = engine_loader

        # Live handles: id -> handle
        self._handles: Dict[int, ModelHandle] = {}
        self._last_id = 0

        # Guards the handle table only; loading runs outside it
        self.lock = threading.Lock()

    def resolve(self, name: BorrowedInput) -> ModelSpec:
        """Decode ``name`` and find its catalog entry.

        Raises:
            InvalidInputError: If the name is not valid UTF-8.
            ModelLookupError: If the name is empty or unknown.
        """
        text = as_text(name)
        spec = self.catalog.lookup(text) if text else None
        if spec is None:
            raise ModelLookupError(text, self.catalog.names())
        return spec

    def load(self, name: BorrowedInput) -> ModelHandle:
        """Load a model by canonical name.

        Blocks for the whole load, which may download weights.

        Returns:
            A live handle owned by the caller.

        Raises:
            InvalidInputError: If the name is not valid UTF-8.
            ModelLookupError: If the name is empty or unknown.
            ModelLoadError: If the engine could not be loaded.
        """
        spec = self.resolve(name)

        logger.info("loading model %s (%s)", spec.name, spec.repo_id)
        started = time.perf_counter()
        try:
            engine = self._engine_loader(spec, self.config)
        except ModelLoadError:
            raise
        except Exception as e:
            raise ModelLoadError(f"Failed to load model {spec.name!r}: {str(e)}") from e
        if engine is None:
            raise ModelLoadError(f"engine loader returned no engine for {spec.name!r}")

        with self.lock:
            self._last_id += 1
            handle = ModelHandle(self._last_id, spec, engine, owner=self)
            self._handles[handle.id] = handle

        logger.info(
            "loaded model %s as handle %d in %.2fs",
            spec.name, handle.id, time.perf_counter() - started,
        )
        return handle

    def get(self, handle_id: int) -> ModelHandle:
        """Look up a live handle by id.

        Raises:
            HandleMisuseError: If no live handle has this id.
        """
        with self.lock:
            handle = self._handles.get(handle_id)
            issued = isinstance(handle_id, int) and 0 < handle_id <= self._last_id
        if handle is None:
            if issued:
                raise HandleMisuseError(f"model handle {handle_id} has been released")
            raise HandleMisuseError(f"unknown model handle {handle_id!r}")
        return handle

    def release_id(self, handle_id: int) -> None:
        """Release a handle by id (the C-ABI path).

        Raises:
            DoubleReleaseError: If the id belonged to a handle already released.
            HandleMisuseError: If the id was never issued by this registry.
        """
        with self.lock:
            handle = self._handles.get(handle_id)
            issued = isinstance(handle_id, int) and 0 < handle_id <= self._last_id
        if handle is None:
            if issued:
                error = DoubleReleaseError(f"model handle {handle_id} was already released")
            else:
                error = HandleMisuseError(f"unknown model handle {handle_id!r}")
            report_misuse(error, self.config.strict_misuse, logger)
            return
        self.release(handle)

    def release(self, handle: ModelHandle) -> None:
        """Release a handle and tear down its engine.

        Raises:
            DoubleReleaseError: If the handle was already released.
            HandleMisuseError: If the handle was not issued by this registry.
            ConcurrentUseError: If a generation is still running on the handle.
                Raised regardless of ``strict_misuse``: the release did not happen.
        """
        if not isinstance(handle, ModelHandle):
            report_misuse(
                HandleMisuseError(f"cannot release {type(handle).__name__} as a model handle"),
                self.config.strict_misuse,
                logger,
            )
            return

        engine = None
        with self.lock:
            if handle._owner is not self:
                error = HandleMisuseError(
                    f"model handle {handle.id} was issued by a different registry"
                )
            elif handle.state is HandleState.RELEASED:
                error = DoubleReleaseError(f"model handle {handle.id} was already released")
            elif not handle.lock.acquire(blocking=False):
                raise ConcurrentUseError(
                    f"model handle {handle.id} is generating and cannot be released"
                )
            else:
                try:
                    self._handles.pop(handle.id, None)
                    engine = handle._poison()
                finally:
                    handle.lock.release()
                error = None

        if error is not None:
            report_misuse(error, self.config.strict_misuse, logger)
            return

        engine.close()
        logger.info("released model handle %d (%s)", handle.id, handle.name)

    def live_handles(self) -> List[int]:
        """Ids of handles issued and not yet released."""
        with self.lock:
            return sorted(self._handles)

    def close(self) -> None:
        """Release every live handle."""
        with self.lock:
            handles = list(self._handles.values())
        for handle in handles:
            self.release(handle)
