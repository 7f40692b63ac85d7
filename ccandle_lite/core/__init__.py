"""
Generation session orchestration.

Provides:
- GenerationOrchestrator: runs generate calls and allocates result buffers
- GenerationRequest: state of one generate call
- RequestState / StopReason: request lifecycle enums
"""

from ccandle_lite.core.request import GenerationRequest, RequestState, StopReason
from ccandle_lite.core.session import GenerationOrchestrator, validate_max_tokens

__all__ = [
    "GenerationOrchestrator",
    "GenerationRequest",
    "RequestState",
    "StopReason",
    "validate_max_tokens",
]
