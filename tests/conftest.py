"""
Pytest configuration and shared fixtures for ccandle-lite tests.

This module provides reusable fixtures for testing, including:
- A scripted engine factory standing in for real model loading
- Registry, allocator, orchestrator and runtime wired to that factory
- A tiny randomly initialized GPT-2 checkpoint saved to disk (integration)
- CPU device enforcement and offline HuggingFace hub access
"""

import os

# Force CPU-only, offline testing before torch / transformers are imported
os.environ["CUDA_VISIBLE_DEVICES"] = ""
os.environ.setdefault("HF_HUB_OFFLINE", "1")

import pytest
import torch

from ccandle_lite.api import Runtime, install_runtime, reset_runtime
from ccandle_lite.buffers.allocator import BufferAllocator
from ccandle_lite.config import RuntimeConfig
from ccandle_lite.core.session import GenerationOrchestrator
from ccandle_lite.registry.catalog import ModelCatalog, ModelSpec
from ccandle_lite.registry.registry import ModelRegistry

from tests.fakes import EngineFactory


TINY_VOCAB = [
    "<unk>", "<s>", "</s>", "hello", "world", "write", "a", "haiku",
    "about", "red", "panda", "the", "engine", "from", "is", "blue",
]


@pytest.fixture
def engine_factory() -> EngineFactory:
    """Engine loader producing ScriptedEngine instances."""
    return EngineFactory()


@pytest.fixture
def test_catalog() -> ModelCatalog:
    """Catalog with the built-in model plus a second small entry."""
    return ModelCatalog.of(
        "test",
        [
            ModelSpec(name="mistral", repo_id="mistralai/Mistral-7B-v0.1", eos_token="</s>"),
            ModelSpec(name="tiny", repo_id="local/tiny"),
        ],
    )


@pytest.fixture
def runtime_config() -> RuntimeConfig:
    return RuntimeConfig(device="cpu")


@pytest.fixture
def registry(test_catalog, runtime_config, engine_factory) -> ModelRegistry:
    registry = ModelRegistry(test_catalog, runtime_config, engine_loader=engine_factory)
    yield registry
    registry.close()


@pytest.fixture
def allocator() -> BufferAllocator:
    return BufferAllocator()


@pytest.fixture
def orchestrator(allocator, runtime_config) -> GenerationOrchestrator:
    return GenerationOrchestrator(allocator, runtime_config)


@pytest.fixture
def handle(registry):
    """A live handle on the scripted 'mistral' entry."""
    return registry.load("mistral")


@pytest.fixture
def runtime(test_catalog, runtime_config, engine_factory) -> Runtime:
    """Process-wide runtime backed by the scripted engine factory.

    Installed for the duration of the test so ``ccandle_lite.api`` and
    ``ccandle_lite.ffi`` route through it.
    """
    runtime = Runtime(catalog=test_catalog, config=runtime_config, engine_loader=engine_factory)
    install_runtime(runtime)
    yield runtime
    reset_runtime()


@pytest.fixture(scope="session")
def tiny_model_dir(tmp_path_factory) -> str:
    """
    Build a tiny GPT-2 checkpoint and word-level tokenizer on disk.

    This fixture:
    - Creates a 16-word word-level tokenizer with <s> / </s> special tokens
    - Randomly initializes a 2-layer GPT-2 with a fixed seed
    - Saves both with save_pretrained so AutoTokenizer / AutoModelForCausalLM
      can load them from the directory without network access

    Returns:
        str: Path to the checkpoint directory
    """
    from tokenizers import Tokenizer, models, pre_tokenizers
    from transformers import GPT2Config, GPT2LMHeadModel, PreTrainedTokenizerFast

    path = tmp_path_factory.mktemp("tiny-gpt2")

    vocab = {word: index for index, word in enumerate(TINY_VOCAB)}
    word_level = Tokenizer(models.WordLevel(vocab=vocab, unk_token="<unk>"))
    word_level.pre_tokenizer = pre_tokenizers.Whitespace()
    tokenizer = PreTrainedTokenizerFast(
        tokenizer_object=word_level,
        unk_token="<unk>",
        bos_token="<s>",
        eos_token="</s>",
    )
    tokenizer.save_pretrained(str(path))

    config = GPT2Config(
        vocab_size=len(TINY_VOCAB),
        n_positions=128,
        n_embd=32,
        n_layer=2,
        n_head=2,
        bos_token_id=vocab["<s>"],
        eos_token_id=vocab["</s>"],
    )
    torch.manual_seed(0)
    model = GPT2LMHeadModel(config)
    model.save_pretrained(str(path))

    return str(path)


@pytest.fixture
def tiny_catalog(tiny_model_dir) -> ModelCatalog:
    """Catalog pointing at the on-disk tiny checkpoint."""
    return ModelCatalog.of(
        "tiny-test",
        [
            ModelSpec(name="tiny-gpt2", repo_id=tiny_model_dir, eos_token="</s>"),
            ModelSpec(name="tiny-missing-eos", repo_id=tiny_model_dir, eos_token="<eot>"),
            ModelSpec(name="tiny-sampled", repo_id=tiny_model_dir, temperature=0.8, top_p=0.9, seed=7),
        ],
    )
