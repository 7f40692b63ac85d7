"""
Inference engine collaborator.

Provides:
- InferenceEngine: tokenize / generate_next / detokenize interface
- GenerationState: per-call decoding state
- HFTextGenerationEngine: transformers-backed engine
- SamplingParams / LogitsProcessor: next-token selection

Engine loading (``ccandle_lite.engine.loader``) is imported on demand because it
depends on the registry's catalog types.
"""

from ccandle_lite.engine.base import GenerationState, InferenceEngine
from ccandle_lite.engine.sampling import LogitsProcessor, SamplingParams
from ccandle_lite.engine.hf_engine import HFTextGenerationEngine

__all__ = [
    "GenerationState",
    "InferenceEngine",
    "LogitsProcessor",
    "SamplingParams",
    "HFTextGenerationEngine",
]
