"""
Tests for ModelRegistry - handle issue, lookup and release.

This module tests:
- Name resolution against the catalog
- Atomic loading (no handle on failure)
- Handle identity and id uniqueness
- Release exactly once, with misuse detection
- Release while a generation is in flight
"""

import logging
import threading

import pytest

from ccandle_lite.buffers.allocator import BufferAllocator
from ccandle_lite.config import RuntimeConfig
from ccandle_lite.core.session import GenerationOrchestrator
from ccandle_lite.errors import (
    ConcurrentUseError,
    DoubleReleaseError,
    HandleMisuseError,
    InvalidInputError,
    ModelLoadError,
    ModelLookupError,
)
from ccandle_lite.registry.handle import HandleState, ModelHandle
from ccandle_lite.registry.registry import ModelRegistry

from tests.data import UNKNOWN_MODEL_NAMES
from tests.fakes import EngineFactory


@pytest.mark.unit
def test_load_issues_live_handle(registry, engine_factory) -> None:
    """Test that loading a catalog name returns a live handle on a loaded engine."""
    handle = registry.load("mistral")

    assert isinstance(handle, ModelHandle)
    assert handle.is_live
    assert handle.id != 0
    assert handle.name == "mistral"
    assert handle.engine is engine_factory.engines[0]
    assert engine_factory.specs[0].repo_id == "mistralai/Mistral-7B-v0.1"
    assert registry.live_handles() == [handle.id]


@pytest.mark.unit
def test_load_accepts_borrowed_bytes(registry) -> None:
    """Test that the name may arrive as UTF-8 bytes."""
    handle = registry.load(b"tiny")

    assert handle.name == "tiny"


@pytest.mark.unit
@pytest.mark.parametrize("name", UNKNOWN_MODEL_NAMES + [""])
def test_unknown_name_raises_lookup_error(registry, engine_factory, name: str) -> None:
    """Test that unknown or empty names fail before any loading happens."""
    with pytest.raises(ModelLookupError) as exc_info:
        registry.load(name)

    assert exc_info.value.name == name
    assert "mistral" in str(exc_info.value)
    assert engine_factory.specs == []
    assert registry.live_handles() == []


@pytest.mark.unit
def test_invalid_utf8_name(registry) -> None:
    """Test that a non-UTF-8 name is invalid input, not a lookup failure."""
    with pytest.raises(InvalidInputError):
        registry.load(b"\xffmistral")


@pytest.mark.unit
def test_load_failure_is_atomic(registry, engine_factory) -> None:
    """Test that a loader failure raises ModelLoadError and issues no handle."""
    engine_factory.error = OSError("connection reset while downloading weights")

    with pytest.raises(ModelLoadError, match="connection reset") as exc_info:
        registry.load("mistral")

    assert isinstance(exc_info.value.__cause__, OSError)
    assert registry.live_handles() == []

    # A later successful load still gets a fresh handle
    engine_factory.error = None
    handle = registry.load("mistral")
    assert handle.is_live


@pytest.mark.unit
def test_load_error_passes_through_unwrapped(registry, engine_factory) -> None:
    """Test that a ModelLoadError from the loader is re-raised as-is."""
    original = ModelLoadError("cannot find the </s> token")
    engine_factory.error = original

    with pytest.raises(ModelLoadError) as exc_info:
        registry.load("mistral")

    assert exc_info.value is original


@pytest.mark.unit
def test_loader_returning_none_is_a_load_error(test_catalog) -> None:
    """Test that a loader returning no engine counts as a failed load."""
    registry = ModelRegistry(test_catalog, RuntimeConfig(), engine_loader=lambda spec, config: None)

    with pytest.raises(ModelLoadError):
        registry.load("mistral")
    assert registry.live_handles() == []


@pytest.mark.unit
def test_handles_are_distinct_and_ids_never_reused(registry, engine_factory) -> None:
    """Test that two loads give independent handles and ids are not recycled."""
    first = registry.load("mistral")
    second = registry.load("mistral")

    assert first is not second
    assert first.id != second.id
    assert first.engine is not second.engine

    registry.release(first)
    third = registry.load("mistral")

    assert third.id not in (first.id, second.id)
    assert second.is_live

    # Releasing one handle leaves the other fully usable
    first_engine, second_engine = engine_factory.engines[:2]
    assert first_engine.closed
    assert not second_engine.closed
    orchestrator = GenerationOrchestrator(BufferAllocator(), RuntimeConfig())
    assert orchestrator.generate_text(second, "hello", 2) == "hello from"
    assert second_engine.calls == 2


@pytest.mark.unit
def test_release_tears_down_engine(registry, engine_factory) -> None:
    """Test that release closes the engine and poisons the handle."""
    handle = registry.load("mistral")
    engine = engine_factory.engines[0]

    registry.release(handle)

    assert engine.closed
    assert handle.state is HandleState.RELEASED
    assert not handle.is_live
    assert registry.live_handles() == []
    with pytest.raises(HandleMisuseError, match="released"):
        handle.engine


@pytest.mark.unit
def test_double_release_detected(registry) -> None:
    """Test that a second release of the same handle is misuse."""
    handle = registry.load("mistral")
    registry.release(handle)

    with pytest.raises(DoubleReleaseError):
        registry.release(handle)


@pytest.mark.unit
def test_release_foreign_handle(registry, test_catalog) -> None:
    """Test that a handle can only be released by the registry that issued it."""
    other = ModelRegistry(test_catalog, RuntimeConfig(), engine_loader=EngineFactory())
    handle = other.load("mistral")

    with pytest.raises(HandleMisuseError, match="different registry"):
        registry.release(handle)

    assert handle.is_live
    other.release(handle)


@pytest.mark.unit
@pytest.mark.parametrize("value", [None, 1, "mistral"])
def test_release_non_handle(registry, value) -> None:
    """Test that releasing something that is not a handle is misuse."""
    with pytest.raises(HandleMisuseError):
        registry.release(value)


@pytest.mark.unit
def test_get_by_id(registry) -> None:
    """Test id lookup for live, released and never-issued ids."""
    handle = registry.load("mistral")

    assert registry.get(handle.id) is handle

    registry.release(handle)
    with pytest.raises(HandleMisuseError, match="has been released"):
        registry.get(handle.id)
    with pytest.raises(HandleMisuseError, match="unknown model handle"):
        registry.get(999)
    with pytest.raises(HandleMisuseError, match="unknown model handle"):
        registry.get(0)


@pytest.mark.unit
def test_release_id(registry, engine_factory) -> None:
    """Test releasing by id, including double and unknown ids."""
    handle = registry.load("mistral")

    registry.release_id(handle.id)

    assert engine_factory.engines[0].closed
    with pytest.raises(DoubleReleaseError):
        registry.release_id(handle.id)
    with pytest.raises(HandleMisuseError, match="unknown"):
        registry.release_id(12345)


@pytest.mark.unit
def test_lenient_mode_logs_double_release(test_catalog, caplog) -> None:
    """Test that strict_misuse=False logs misuse instead of raising."""
    factory = EngineFactory()
    registry = ModelRegistry(test_catalog, RuntimeConfig(strict_misuse=False), engine_loader=factory)
    handle = registry.load("mistral")
    registry.release(handle)

    with caplog.at_level(logging.ERROR, logger="ccandle_lite.registry.registry"):
        registry.release(handle)
        registry.release_id(handle.id)

    assert caplog.text.count("already released") == 2
    assert len(factory.engines) == 1


@pytest.mark.unit
def test_release_during_generation_is_rejected(registry) -> None:
    """Test that a handle cannot be released while a generation holds it."""
    handle = registry.load("mistral")

    with handle.lock:
        with pytest.raises(ConcurrentUseError):
            registry.release(handle)
        assert handle.is_live

    registry.release(handle)
    assert not handle.is_live


@pytest.mark.unit
def test_release_during_generation_raises_in_lenient_mode(test_catalog, engine_factory) -> None:
    """Test that a release that cannot happen is never silently ignored."""
    registry = ModelRegistry(test_catalog, RuntimeConfig(strict_misuse=False), engine_loader=engine_factory)
    handle = registry.load("mistral")

    with handle.lock:
        with pytest.raises(ConcurrentUseError):
            registry.release(handle)
        with pytest.raises(ConcurrentUseError):
            registry.release_id(handle.id)

    assert handle.is_live
    assert registry.live_handles() == [handle.id]
    assert not engine_factory.engines[0].closed

    registry.release(handle)
    assert engine_factory.engines[0].closed


@pytest.mark.unit
def test_close_releases_everything(registry, engine_factory) -> None:
    """Test that close releases every live handle."""
    handles = [registry.load("mistral"), registry.load("tiny")]

    registry.close()

    assert registry.live_handles() == []
    assert all(not h.is_live for h in handles)
    assert all(engine.closed for engine in engine_factory.engines)


@pytest.mark.unit
def test_concurrent_loads_get_unique_ids(registry) -> None:
    """Test that loads from several threads never share an id."""
    handles = []
    lock = threading.Lock()

    def worker() -> None:
        handle = registry.load("mistral")
        with lock:
            handles.append(handle)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    ids = [h.id for h in handles]
    assert len(ids) == 16
    assert len(set(ids)) == 16
    assert registry.live_handles() == sorted(ids)
