"""
Tests for sampling strategies and the seeded LogitsProcessor.
"""

import pytest
import torch

from ccandle_lite.engine.sampling import (
    LogitsProcessor,
    SamplingParams,
    apply_repetition_penalty,
    greedy_sampling,
    temperature_scaling,
    top_p_sampling,
)


@pytest.mark.unit
def test_sampling_params_defaults() -> None:
    """Test the default generation parameters."""
    params = SamplingParams()

    assert params.seed == 299792458
    assert params.temperature is None
    assert params.top_p is None
    assert params.repeat_penalty == 1.1
    assert params.repeat_last_n == 64


@pytest.mark.unit
@pytest.mark.parametrize(
    "kwargs",
    [
        {"temperature": -0.1},
        {"top_p": 0.0},
        {"top_p": 1.5},
        {"repeat_penalty": 0.0},
        {"repeat_last_n": -1},
    ],
)
def test_sampling_params_validation(kwargs) -> None:
    """Test that out-of-range parameters are rejected."""
    with pytest.raises(ValueError):
        SamplingParams(**kwargs)


@pytest.mark.unit
def test_greedy_sampling() -> None:
    """Test argmax selection."""
    logits = torch.tensor([0.1, 2.0, -1.0, 1.9])

    assert greedy_sampling(logits).item() == 1


@pytest.mark.unit
def test_temperature_scaling() -> None:
    """Test that logits are divided by the temperature."""
    logits = torch.tensor([1.0, 2.0, 4.0])

    scaled = temperature_scaling(logits, 2.0)

    assert torch.allclose(scaled, torch.tensor([0.5, 1.0, 2.0]))


@pytest.mark.unit
def test_top_p_keeps_smallest_nucleus() -> None:
    """Test that top-p masks tokens outside the nucleus and keeps the crossing token."""
    # probs ~ [0.64, 0.24, 0.09, 0.03]
    logits = torch.log(torch.tensor([0.64, 0.24, 0.09, 0.03]))

    filtered = top_p_sampling(logits, 0.7)

    assert torch.isfinite(filtered[0])
    assert torch.isfinite(filtered[1])
    assert filtered[2] == float("-inf")
    assert filtered[3] == float("-inf")


@pytest.mark.unit
def test_top_p_always_keeps_best_token() -> None:
    """Test that even a tiny p keeps the most likely token."""
    logits = torch.tensor([5.0, 1.0, 0.0])

    filtered = top_p_sampling(logits, 0.01)

    assert torch.isfinite(filtered[0])
    assert torch.isinf(filtered[1:]).all()


@pytest.mark.unit
def test_top_p_one_is_identity() -> None:
    """Test that p=1.0 disables filtering."""
    logits = torch.tensor([1.0, 2.0, 3.0])

    assert torch.equal(top_p_sampling(logits, 1.0), logits)


@pytest.mark.unit
def test_repetition_penalty() -> None:
    """Test that seen tokens are penalized once, by sign, without touching the input."""
    logits = torch.tensor([2.0, -2.0, 3.0, 1.0])

    penalized = apply_repetition_penalty(logits, [0, 1, 1, 0], 2.0)

    assert torch.allclose(penalized, torch.tensor([1.0, -4.0, 3.0, 1.0]))
    assert torch.equal(logits, torch.tensor([2.0, -2.0, 3.0, 1.0]))


@pytest.mark.unit
def test_repetition_penalty_noop_cases() -> None:
    """Test that a unit penalty or empty history leaves logits unchanged."""
    logits = torch.tensor([1.0, 2.0])

    assert apply_repetition_penalty(logits, [0, 1], 1.0) is logits
    assert apply_repetition_penalty(logits, [], 1.5) is logits


@pytest.mark.unit
def test_processor_greedy_by_default() -> None:
    """Test that temperature=None decodes greedily."""
    processor = LogitsProcessor(SamplingParams(repeat_penalty=1.0))

    assert processor.process(torch.tensor([0.0, 3.0, 1.0]), context=[]) == 1


@pytest.mark.unit
def test_processor_penalty_changes_greedy_choice() -> None:
    """Test that the repeat penalty can push greedy decoding off a repeated token."""
    processor = LogitsProcessor(SamplingParams(repeat_penalty=2.0, repeat_last_n=4))
    logits = torch.tensor([3.0, 2.0])

    assert processor.process(logits, context=[]) == 0
    assert processor.process(logits, context=[0]) == 1


@pytest.mark.unit
def test_processor_penalty_window() -> None:
    """Test that only the last repeat_last_n tokens are penalized."""
    processor = LogitsProcessor(SamplingParams(repeat_penalty=2.0, repeat_last_n=2))
    logits = torch.tensor([3.0, 2.0, 0.0])

    # Token 0 is outside the window of the last two tokens
    assert processor.process(logits, context=[0, 2, 2]) == 0


@pytest.mark.unit
def test_processor_sampling_is_seeded() -> None:
    """Test that two processors with the same seed sample the same stream."""
    params = SamplingParams(seed=7, temperature=1.0, repeat_penalty=1.0)
    logits = torch.zeros(32)

    first = LogitsProcessor(params)
    second = LogitsProcessor(params)

    stream_a = [first.process(logits, []) for _ in range(20)]
    stream_b = [second.process(logits, []) for _ in range(20)]

    assert stream_a == stream_b
    assert all(0 <= token < 32 for token in stream_a)


@pytest.mark.unit
def test_processor_top_p_restricts_samples() -> None:
    """Test that sampled tokens always come from the nucleus."""
    processor = LogitsProcessor(SamplingParams(seed=3, temperature=1.0, top_p=0.5, repeat_penalty=1.0))
    logits = torch.tensor([10.0, 0.0, 0.0, 0.0])

    samples = {processor.process(logits, []) for _ in range(20)}

    assert samples == {0}
