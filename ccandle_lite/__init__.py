"""
ccandle_lite: a foreign-callable text generation runtime.

This package loads pretrained causal language models by canonical name, runs
autoregressive generation with a token budget, and hands results across a
language boundary with an explicit ownership protocol:
- Model handles: issued by the registry, released exactly once
- Borrowed buffers: caller-owned input, never retained
- Transferred buffers: runtime-allocated results, released exactly once
- C ABI (``ccandle_lite.ffi``): status codes instead of exceptions
"""

__version__ = "0.1.0"
__author__ = "ccandle-lite contributors"

from ccandle_lite.api import (
    Runtime,
    generate,
    get_runtime,
    load_model,
    release_buffer,
    release_model,
)
from ccandle_lite.config import RuntimeConfig

__all__ = [
    "Runtime",
    "RuntimeConfig",
    "generate",
    "get_runtime",
    "load_model",
    "release_buffer",
    "release_model",
]
