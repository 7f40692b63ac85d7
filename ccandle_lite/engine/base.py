"""
Inference engine interface.

The orchestrator drives generation through this interface only. Engines own
model weights, the tokenizer, and any per-sequence cache; callers see token ids
and text.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class GenerationState:
    """Per-call decoding state.

    Attributes:
        prompt_tokens: Token ids of the encoded prompt.
        generated_tokens: Token ids produced so far (prompt excluded).
        cache: Engine-private state carried between steps (e.g. a KV cache).
    """

    prompt_tokens: List[int]
    generated_tokens: List[int] = field(default_factory=list)
    cache: Any = None

    @property
    def tokens(self) -> List[int]:
        """Full sequence: prompt followed by generated tokens."""
        return self.prompt_tokens + self.generated_tokens


class InferenceEngine(ABC):
    """Tokenize, predict and detokenize for one loaded model."""

    @abstractmethod
    def tokenize(self, text: str) -> List[int]:
        """Encode text to token ids."""
        raise NotImplementedError

    def start(self, prompt_tokens: List[int]) -> GenerationState:
        """Create decoding state for a new sequence."""
        return GenerationState(prompt_tokens=list(prompt_tokens))

    @abstractmethod
    def generate_next(self, state: GenerationState) -> Optional[int]:
        """Predict the next token.

        Returns:
            The next token id, or None when the model reached a terminal
            condition (end of sequence). The caller appends returned tokens to
            ``state.generated_tokens``.
        """
        raise NotImplementedError

    @abstractmethod
    def detokenize(self, tokens: List[int]) -> str:
        """Decode token ids to text."""
        raise NotImplementedError

    def decode_generated(self, state: GenerationState) -> str:
        """Decode the generated tokens of ``state`` (prompt excluded)."""
        return self.detokenize(list(state.generated_tokens))

    def close(self) -> None:
        """Release model resources. Further calls are not allowed."""
