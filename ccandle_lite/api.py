"""
Python-facing boundary API.

Four operations mirror the C ABI one to one:

    handle = load_model("mistral")
    buffer = generate(handle, "write a haiku about a redpanda", 100)
    print(buffer.text())
    release_buffer(buffer)
    release_model(handle)

Failures raise the typed exceptions in ``ccandle_lite.errors``. All four
operations go through a process-wide Runtime created on first use; tests and
embedders can install their own with ``install_runtime``.
"""

import logging
import threading
from typing import Optional

from ccandle_lite.buffers.allocator import BufferAllocator, TransferredBuffer
from ccandle_lite.buffers.borrowed import BorrowedInput
from ccandle_lite.config import RuntimeConfig
from ccandle_lite.core.session import GenerationOrchestrator
from ccandle_lite.registry.catalog import DEFAULT_CATALOG, ModelCatalog
from ccandle_lite.registry.handle import ModelHandle
from ccandle_lite.registry.registry import ModelRegistry

logger = logging.getLogger(__name__)


class Runtime:
    """Registry, allocator and orchestrator wired to one configuration.

    Attributes:
        config: Runtime configuration shared by every component.
        allocator: Single allocation path for result buffers.
        registry: Issues and releases model handles.
        orchestrator: Runs generation calls.
    """

    def __init__(
        self,
        catalog: Optional[ModelCatalog] = None,
        config: Optional[RuntimeConfig] = None,
        engine_loader=None,
    ) -> None:
        """Initialize runtime.

        Args:
            catalog: Supported models; defaults to ``config.catalog_path`` when
                set, otherwise the built-in catalog
            config: Runtime configuration; defaults to ``RuntimeConfig.from_env()``
            engine_loader: Engine loader override (see ModelRegistry)
        """
        self.config = config or RuntimeConfig.from_env()
        if catalog is None:
            if self.config.catalog_path:
                catalog = ModelCatalog.from_json(self.config.catalog_path)
            else:
                catalog = DEFAULT_CATALOG

        self.allocator = BufferAllocator(strict_misuse=self.config.strict_misuse)
        self.registry = ModelRegistry(catalog, self.config, engine_loader=engine_loader)
        self.orchestrator = GenerationOrchestrator(self.allocator, self.config)

    def load_model(self, name: BorrowedInput) -> ModelHandle:
        return self.registry.load(name)

    def release_model(self, handle: ModelHandle) -> None:
        self.registry.release(handle)

    def generate(self, handle: ModelHandle, prompt: BorrowedInput, max_tokens: int) -> TransferredBuffer:
        return self.orchestrator.generate(handle, prompt, max_tokens)

    def release_buffer(self, buffer) -> None:
        self.allocator.release(buffer)

    def close(self) -> None:
        """Release every live model handle. Outstanding buffers stay valid."""
        self.registry.close()


_runtime: Optional[Runtime] = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Return the process-wide runtime, creating it on first use."""
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = Runtime()
            logger.debug("created default runtime with %r", _runtime.config)
        return _runtime


def current_runtime() -> Optional[Runtime]:
    """Return the process-wide runtime if one exists, without creating it."""
    with _runtime_lock:
        return _runtime


def install_runtime(runtime: Runtime) -> Optional[Runtime]:
    """Replace the process-wide runtime; returns the previous one (not closed)."""
    global _runtime
    with _runtime_lock:
        previous, _runtime = _runtime, runtime
    return previous


def reset_runtime() -> None:
    """Close and drop the process-wide runtime."""
    previous = install_runtime(None)
    if previous is not None:
        previous.close()


def load_model(name: BorrowedInput) -> ModelHandle:
    """Load a model by canonical name; blocks for the whole load."""
    return get_runtime().load_model(name)


def release_model(handle: ModelHandle) -> None:
    """Release a handle returned by ``load_model``. Call exactly once."""
    get_runtime().release_model(handle)


def generate(handle: ModelHandle, prompt: BorrowedInput, max_tokens: int) -> TransferredBuffer:
    """Generate up to ``max_tokens`` tokens; the returned buffer must be released."""
    return get_runtime().generate(handle, prompt, max_tokens)


def release_buffer(buffer) -> None:
    """Release a buffer returned by ``generate``. Call exactly once."""
    get_runtime().release_buffer(buffer)
