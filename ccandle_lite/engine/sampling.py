"""
Sampling strategies for text generation.

This module implements next-token selection on a 1-D logits vector: greedy
argmax, temperature scaling, top-p filtering, and a repeat penalty over recent
context.
"""

import torch
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass
class SamplingParams:
    """Parameters for sampling strategies.

    ``temperature=None`` (or 0) selects greedy decoding.
    """
    seed: int = 299792458
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    repeat_penalty: float = 1.1
    repeat_last_n: int = 64

    def __post_init__(self) -> None:
        if self.temperature is not None and self.temperature < 0:
            raise ValueError(f"temperature must be non-negative, got {self.temperature}")
        if self.top_p is not None and not 0.0 < self.top_p <= 1.0:
            raise ValueError(f"top_p must be in (0, 1], got {self.top_p}")
        if self.repeat_penalty <= 0:
            raise ValueError(f"repeat_penalty must be positive, got {self.repeat_penalty}")
        if self.repeat_last_n < 0:
            raise ValueError(f"repeat_last_n must be non-negative, got {self.repeat_last_n}")


def greedy_sampling(logits: torch.Tensor) -> torch.Tensor:
    """Greedy sampling (argmax)."""
    return logits.argmax(dim=-1)


def temperature_scaling(logits: torch.Tensor, temperature: float) -> torch.Tensor:
    """Apply temperature scaling."""
    return logits / temperature


def top_p_sampling(logits: torch.Tensor, p: float) -> torch.Tensor:
    """Top-p (nucleus) filtering: mask tokens outside the smallest set with mass >= p."""
    if p >= 1.0:
        return logits

    sorted_logits, sorted_indices = torch.sort(logits, descending=True, dim=-1)
    cumulative_probs = torch.cumsum(torch.softmax(sorted_logits, dim=-1), dim=-1)

    # Shift right so the token crossing the threshold is kept
    sorted_indices_to_remove = cumulative_probs > p
    sorted_indices_to_remove[..., 1:] = sorted_indices_to_remove[..., :-1].clone()
    sorted_indices_to_remove[..., 0] = False

    indices_to_remove = sorted_indices_to_remove.scatter(-1, sorted_indices, sorted_indices_to_remove)
    return logits.masked_fill(indices_to_remove, float('-inf'))


def apply_repetition_penalty(
    logits: torch.Tensor, previous_tokens: Sequence[int], penalty: float
) -> torch.Tensor:
    """Penalize tokens already present in ``previous_tokens``.

    Non-negative logits are divided by the penalty, negative ones multiplied.
    Each token is penalized once regardless of how often it occurs.
    """
    if penalty == 1.0 or not previous_tokens:
        return logits

    index = torch.tensor(sorted(set(previous_tokens)), dtype=torch.long, device=logits.device)
    scores = logits.index_select(-1, index)
    scores = torch.where(scores >= 0, scores / penalty, scores * penalty)

    logits = logits.clone()
    logits[index] = scores
    return logits


class LogitsProcessor:
    """Seeded next-token sampler.

    Each processor owns its own torch.Generator so two engines never share a
    random stream.
    """

    def __init__(self, params: SamplingParams) -> None:
        self.params = params
        self.generator = torch.Generator(device="cpu")
        self.generator.manual_seed(params.seed)

    def process(self, logits: torch.Tensor, context: Sequence[int]) -> int:
        """Select the next token id from a 1-D logits vector.

        Args:
            logits: Scores over the vocabulary, shape [vocab_size].
            context: All token ids so far (prompt and generated).
        """
        logits = logits.to(torch.float32)
        if self.params.repeat_last_n > 0:
            recent = list(context)[-self.params.repeat_last_n:]
            logits = apply_repetition_penalty(logits, recent, self.params.repeat_penalty)

        temperature = self.params.temperature
        if temperature is None or temperature < 1e-7:
            return int(greedy_sampling(logits).item())

        logits = temperature_scaling(logits, temperature)
        if self.params.top_p is not None:
            logits = top_p_sampling(logits, self.params.top_p)

        probs = torch.softmax(logits, dim=-1).cpu()
        return int(torch.multinomial(probs, num_samples=1, generator=self.generator).item())
