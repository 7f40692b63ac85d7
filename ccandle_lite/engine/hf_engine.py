"""
Text generation engine backed by HuggingFace transformers.
"""

import logging
from typing import List, Optional

import torch

from ccandle_lite.engine.base import GenerationState, InferenceEngine
from ccandle_lite.engine.sampling import LogitsProcessor, SamplingParams

logger = logging.getLogger(__name__)


class HFTextGenerationEngine(InferenceEngine):
    """Autoregressive decoding over a transformers causal LM.

    The first step feeds the whole prompt; later steps feed only the tokens
    added since the previous step and reuse the KV cache kept in
    ``GenerationState.cache``.
    """

    def __init__(
        self,
        model,
        tokenizer,
        eos_token_id: int,
        sampling_params: SamplingParams,
        device: str = "cpu",
    ):
        """Initialize engine.

        Args:
            model: Loaded causal LM, already on ``device`` and in eval mode
            tokenizer: Tokenizer matching the model
            eos_token_id: Token id that ends generation
            sampling_params: Sampling configuration for this engine
            device: Device the model lives on
        """
        self.model = model
        self.tokenizer = tokenizer
        self.eos_token_id = eos_token_id
        self.sampling_params = sampling_params
        self.device = device
        self.logits_processor = LogitsProcessor(sampling_params)

    def tokenize(self, text: str) -> List[int]:
        """Tokenize input text.

        Args:
            text: Input text to tokenize (may be empty)

        Returns:
            Token ids, including any special tokens the tokenizer adds
        """
        return list(self.tokenizer.encode(text, add_special_tokens=True))

    def start(self, prompt_tokens: List[int]) -> GenerationState:
        """Create decoding state, seeding an empty prompt with BOS (or EOS)."""
        tokens = list(prompt_tokens)
        if not tokens:
            seed_token = self.tokenizer.bos_token_id
            if seed_token is None:
                seed_token = self.eos_token_id
            tokens = [seed_token]
        return GenerationState(prompt_tokens=tokens)

    def generate_next(self, state: GenerationState) -> Optional[int]:
        """Run one forward pass and sample the next token.

        Returns:
            Next token id, or None when the end-of-sequence token was sampled
        """
        past_key_values, consumed = state.cache if state.cache is not None else (None, 0)
        tokens = state.tokens
        new_tokens = tokens[consumed:]
        if not new_tokens:
            raise RuntimeError("generate_next called without appending the previous token")

        input_ids = torch.tensor([new_tokens], dtype=torch.long, device=self.device)
        with torch.no_grad():
            outputs = self.model(
                input_ids=input_ids,
                past_key_values=past_key_values,
                use_cache=True,
            )

        state.cache = (outputs.past_key_values, len(tokens))
        next_token_logits = outputs.logits[0, -1, :]
        next_token = self.logits_processor.process(next_token_logits, tokens)

        if next_token == self.eos_token_id:
            return None
        return next_token

    def detokenize(self, tokens: List[int]) -> str:
        """Detokenize token ids to text, dropping special tokens."""
        if not tokens:
            return ""
        return self.tokenizer.decode(tokens, skip_special_tokens=True)

    def decode_generated(self, state: GenerationState) -> str:
        """Decode the continuation with the prompt as context.

        Tokenizers such as SentencePiece drop the leading space of a sequence
        when decoding it alone, so the full sequence is decoded and the decoded
        prompt is cut off the front.
        """
        if not state.generated_tokens:
            return ""
        prefix = self.detokenize(state.prompt_tokens)
        full = self.detokenize(state.tokens)
        if full.startswith(prefix):
            return full[len(prefix):]
        return self.detokenize(list(state.generated_tokens))

    def close(self) -> None:
        """Drop model and tokenizer references and return cached device memory."""
        self.model = None
        self.tokenizer = None
        if self.device == "cuda" and torch.cuda.is_available():
            torch.cuda.empty_cache()
        logger.debug("engine closed")
