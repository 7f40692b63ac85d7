"""
Engine loading utilities.

This module resolves a catalog entry into a ready inference engine: it picks the
device and dtype, fetches tokenizer and weights from the HuggingFace hub (or a
local directory), resolves the end-of-sequence token, and wraps every failure in
ModelLoadError so a half-built engine never escapes.
"""

import logging
from typing import Callable, Dict, Optional

import torch
from transformers import AutoModelForCausalLM, AutoTokenizer

from ccandle_lite.config import RuntimeConfig
from ccandle_lite.engine.base import InferenceEngine
from ccandle_lite.engine.hf_engine import HFTextGenerationEngine
from ccandle_lite.errors import ModelLoadError
from ccandle_lite.registry.catalog import ModelSpec

logger = logging.getLogger(__name__)

_TORCH_DTYPES = {
    "float16": torch.float16,
    "bfloat16": torch.bfloat16,
    "float32": torch.float32,
}


def select_device(requested: Optional[str] = None) -> str:
    """Return the requested device, or CUDA when available and CPU otherwise."""
    if requested:
        return requested
    return "cuda" if torch.cuda.is_available() else "cpu"


def select_dtype(requested: Optional[str], device: str) -> str:
    """Return the requested dtype, or bfloat16 on CUDA and float32 elsewhere."""
    if requested:
        return requested
    return "bfloat16" if device == "cuda" else "float32"


def resolve_eos_token_id(tokenizer, eos_token: Optional[str]) -> int:
    """Find the token id that ends generation.

    Args:
        tokenizer: Loaded tokenizer.
        eos_token: Explicit token text from the catalog, or None to use the
            tokenizer's own EOS token.

    Raises:
        ModelLoadError: If the token cannot be found.
    """
    if eos_token is not None:
        vocab = tokenizer.get_vocab()
        if eos_token not in vocab:
            raise ModelLoadError(f"cannot find the {eos_token} token")
        return vocab[eos_token]
    if tokenizer.eos_token_id is None:
        raise ModelLoadError("tokenizer defines no end-of-sequence token")
    return tokenizer.eos_token_id


def load_hf_engine(spec: ModelSpec, config: RuntimeConfig) -> HFTextGenerationEngine:
    """Load tokenizer and causal LM weights for ``spec``.

    Args:
        spec: Catalog entry to load.
        config: Runtime configuration (device, dtype, cache, token).

    Returns:
        Ready HFTextGenerationEngine.

    Raises:
        ModelLoadError: If artifacts cannot be fetched or initialized.
    """
    device = select_device(config.device)
    dtype = select_dtype(config.dtype, device)

    try:
        tokenizer = AutoTokenizer.from_pretrained(
            spec.repo_id,
            revision=spec.revision,
            token=config.hf_token,
            cache_dir=config.cache_dir,
        )
        eos_token_id = resolve_eos_token_id(tokenizer, spec.eos_token)

        model = AutoModelForCausalLM.from_pretrained(
            spec.repo_id,
            revision=spec.revision,
            token=config.hf_token,
            cache_dir=config.cache_dir,
            torch_dtype=_TORCH_DTYPES[dtype],
        )
        model.to(device)
        model.eval()
    except ModelLoadError:
        raise
    except Exception as e:
        raise ModelLoadError(
            f"Failed to load model {spec.name!r} from {spec.repo_id}: {str(e)}"
        ) from e

    logger.info(
        "loaded %s from %s (revision=%s, device=%s, dtype=%s)",
        spec.name, spec.repo_id, spec.revision, device, dtype,
    )
    return HFTextGenerationEngine(
        model=model,
        tokenizer=tokenizer,
        eos_token_id=eos_token_id,
        sampling_params=spec.sampling_params(),
        device=device,
    )


EngineLoader = Callable[[ModelSpec, RuntimeConfig], InferenceEngine]

ENGINE_BACKENDS: Dict[str, EngineLoader] = {
    "hf": load_hf_engine,
}


def load_engine(spec: ModelSpec, config: RuntimeConfig) -> InferenceEngine:
    """Load the engine for ``spec`` through its backend.

    Raises:
        ModelLoadError: If the backend is unknown or loading fails.
    """
    loader = ENGINE_BACKENDS.get(spec.backend)
    if loader is None:
        raise ModelLoadError(
            f"unknown engine backend {spec.backend!r} for model {spec.name!r}"
        )
    return loader(spec, config)
