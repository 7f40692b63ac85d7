"""
Generation session orchestrator.

Drives one model handle through prompt -> tokens -> detokenize -> result
buffer. A call either returns a complete transferred buffer or raises; partial
output is never delivered.
"""

import logging
import numbers
from typing import Optional

from ccandle_lite.buffers.allocator import BufferAllocator, TransferredBuffer
from ccandle_lite.buffers.borrowed import BorrowedInput, as_text
from ccandle_lite.config import RuntimeConfig
from ccandle_lite.core.request import GenerationRequest, RequestState, StopReason
from ccandle_lite.engine.base import InferenceEngine
from ccandle_lite.errors import (
    ConcurrentUseError,
    GenerationError,
    HandleMisuseError,
    InvalidInputError,
)
from ccandle_lite.registry.handle import ModelHandle

logger = logging.getLogger(__name__)


def validate_max_tokens(max_tokens) -> int:
    """Check that the token budget is a non-negative integer.

    Raises:
        InvalidInputError: If the budget is negative or not an integer.
    """
    if isinstance(max_tokens, bool) or not isinstance(max_tokens, numbers.Integral):
        raise InvalidInputError(
            f"max_tokens must be a non-negative integer, got {type(max_tokens).__name__}"
        )
    if max_tokens < 0:
        raise InvalidInputError(f"max_tokens must be non-negative, got {max_tokens}")
    return int(max_tokens)


class GenerationOrchestrator:
    """Runs generation calls and hands results out as transferred buffers.

    Attributes:
        allocator: The only path results are allocated through.
        config: Runtime configuration (per-handle concurrency policy).
    """

    def __init__(self, allocator: BufferAllocator, config: Optional[RuntimeConfig] = None) -> None:
        self.allocator = allocator
        self.config = config or RuntimeConfig()

    def generate(self, handle: ModelHandle, prompt: BorrowedInput, max_tokens: int) -> TransferredBuffer:
        """Generate up to ``max_tokens`` tokens continuing ``prompt``.

        Args:
            handle: Live model handle.
            prompt: Prompt as a borrowed buffer, bytes, or str. May be empty.
            max_tokens: Token budget; zero yields an empty result.

        Returns:
            TransferredBuffer holding the generated text (prompt excluded). The
            caller must release it exactly once.

        Raises:
            HandleMisuseError: If the handle is not a live handle.
            ConcurrentUseError: If the handle is already generating and
                ``serialize_generation`` is off.
            InvalidInputError: If the prompt is not valid UTF-8 or the budget is invalid.
            GenerationError: If the engine fails; no buffer is produced.
        """
        if not isinstance(handle, ModelHandle):
            raise HandleMisuseError(f"expected a ModelHandle, got {type(handle).__name__}")
        if not handle.is_live:
            raise HandleMisuseError(f"model handle {handle.id} ({handle.name}) has been released")

        text = as_text(prompt)
        budget = validate_max_tokens(max_tokens)

        if not handle.lock.acquire(blocking=self.config.serialize_generation):
            raise ConcurrentUseError(
                f"model handle {handle.id} already has a generation in flight"
            )
        try:
            # Re-check: the handle may have been released while we waited
            engine = handle.engine
            request = GenerationRequest(handle=handle, prompt=text, max_tokens=budget)
            result = self._run(engine, request)
        finally:
            handle.lock.release()

        return self.allocator.allocate_text(result)

    def generate_text(self, handle: ModelHandle, prompt: BorrowedInput, max_tokens: int) -> str:
        """Generate and return the text directly, releasing the buffer internally."""
        with self.generate(handle, prompt, max_tokens) as buffer:
            return buffer.text()

    def _run(self, engine: InferenceEngine, request: GenerationRequest) -> str:
        if request.max_tokens == 0:
            request.stop_reason = StopReason.LENGTH
            request.finish(RequestState.COMPLETED)
            return ""

        request.state = RequestState.DECODING
        try:
            state = engine.start(engine.tokenize(request.prompt))
            request.generated_tokens = state.generated_tokens

            while not request.is_finished():
                token = engine.generate_next(state)
                if token is None:
                    request.stop_reason = StopReason.EOS
                    break
                state.generated_tokens.append(token)
            else:
                request.stop_reason = StopReason.LENGTH

            text = engine.decode_generated(state)
            if not isinstance(text, str):
                raise TypeError(f"detokenize returned {type(text).__name__}, expected str")
        except Exception as e:
            request.finish(RequestState.FAILED)
            logger.warning(
                "generation %s on handle %d failed after %d tokens: %s",
                request.request_id, request.handle.id, len(request.generated_tokens), e,
            )
            raise GenerationError(
                f"generation failed on model {request.handle.name!r}: {str(e)}"
            ) from e

        request.finish(RequestState.COMPLETED)
        logger.debug(
            "generation %s on handle %d: %d tokens, stop=%s, %.3fs",
            request.request_id, request.handle.id, len(request.generated_tokens),
            request.stop_reason.value, request.elapsed,
        )
        return text
