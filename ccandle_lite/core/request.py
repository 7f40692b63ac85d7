"""
Request dataclass for a single generation call.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ccandle_lite.registry.handle import ModelHandle


class RequestState(Enum):
    """State of a generation request."""

    WAITING = "waiting"  # Validated, not yet started
    DECODING = "decoding"  # Engine is producing tokens
    COMPLETED = "completed"  # Result text assembled
    FAILED = "failed"  # Engine error; output discarded


class StopReason(Enum):
    """Why decoding stopped."""

    LENGTH = "length"  # Token budget reached
    EOS = "eos"  # Engine signalled a terminal condition


@dataclass
class GenerationRequest:
    """Represents one generate call from validation to result.

    Attributes:
        handle: Live handle the request runs on
        prompt: Decoded prompt text
        max_tokens: Upper bound on generated tokens
        request_id: Identifier used in log lines
        state: Current state of the request
        generated_tokens: Token ids generated so far
        stop_reason: Why decoding stopped, once it has
        started_at: perf_counter timestamp at creation
        finished_at: perf_counter timestamp at completion or failure
    """

    handle: ModelHandle
    prompt: str
    max_tokens: int
    request_id: str = field(default_factory=lambda: f"gen_{uuid.uuid4().hex[:8]}")
    state: RequestState = RequestState.WAITING
    generated_tokens: List[int] = field(default_factory=list)
    stop_reason: Optional[StopReason] = None
    started_at: float = field(default_factory=time.perf_counter)
    finished_at: Optional[float] = None

    def is_completed(self) -> bool:
        """Check if request is completed."""
        return self.state == RequestState.COMPLETED

    def is_finished(self) -> bool:
        """Check if request has reached its token budget."""
        return len(self.generated_tokens) >= self.max_tokens

    def finish(self, state: RequestState) -> None:
        self.state = state
        self.finished_at = time.perf_counter()

    @property
    def elapsed(self) -> float:
        """Seconds from creation to finish (or now, if still running)."""
        end = self.finished_at if self.finished_at is not None else time.perf_counter()
        return end - self.started_at
