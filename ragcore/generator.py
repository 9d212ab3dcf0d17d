"""
Generator Module

WHAT THIS DOES:
Sends an assembled prompt (question + retrieved context) to a chat model and
returns the answer with its token cost. This is the "G" in RAG.

The prompt itself is built by ragcore.prompts; this module only talks to
the model. Keeping them apart means prompt wording can be tested without
any API access.

TEMPERATURE:
- 0.0: Always pick the most likely token (deterministic)
- 0.7: Good balance for Q&A (default)
- 1.0: More creative/random
"""

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from openai import OpenAI, OpenAIError

from config.settings import get_settings
from ragcore.exceptions import GenerationFailure
from ragcore.logger import get_logger

logger = get_logger(__name__)


@dataclass
class GenerationResult:
    """
    Result of generating an answer.

    - text: What we show the user
    - tokens_used: Total tokens billed for the call (0 if not reported)
    - model: Which model answered
    """
    text: str
    tokens_used: int
    model: str = ""


@runtime_checkable
class GenerationProvider(Protocol):
    """Anything that turns a prompt into text plus a token count."""

    def generate(self, prompt: str, model: str) -> GenerationResult:
        ...


class Generator:
    """
    Generate answers with the OpenAI chat completions API.

    RESPONSIBILITIES:
    1. Call the API with a single user message
    2. Turn SDK errors into GenerationFailure
    3. Report usage for cost monitoring
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        client: Optional[OpenAI] = None
    ):
        """
        Initialize the generator.

        Args:
            api_key: API key (defaults to settings)
            model: Default chat model (defaults to settings)
            base_url: Optional API base URL (defaults to settings)
            temperature: Sampling temperature (defaults to settings)
            max_tokens: Maximum tokens in the response (defaults to settings)
            client: Pre-built OpenAI client, mainly for tests
        """
        if (model is None or temperature is None or max_tokens is None
                or (client is None and api_key is None)):
            config = get_settings().openai
            api_key = api_key or config.api_key
            model = model or config.chat_model
            base_url = base_url or config.base_url
            temperature = config.temperature if temperature is None else temperature
            max_tokens = config.max_tokens if max_tokens is None else max_tokens

        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or OpenAI(api_key=api_key, base_url=base_url)

    def generate(self, prompt: str, model: Optional[str] = None) -> GenerationResult:
        """
        Generate an answer for an already-assembled prompt.

        Args:
            prompt: Full prompt text (context + question + instructions)
            model: Chat model for this call (defaults to the client's model)

        Raises:
            GenerationFailure: the API call failed
        """
        model = model or self.model

        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens
            )
        except OpenAIError as exc:
            logger.error("Chat completion failed (model=%s): %s", model, exc)
            raise GenerationFailure(f"Chat completion failed: {exc}") from exc

        if not response.choices:
            raise GenerationFailure("Chat completion returned no choices")

        usage = getattr(response, "usage", None)
        tokens_used = getattr(usage, "total_tokens", 0) or 0

        return GenerationResult(
            text=response.choices[0].message.content or "",
            tokens_used=tokens_used,
            model=model
        )

    def test_connection(self) -> bool:
        """Check the API is reachable with the configured credentials."""
        try:
            self.client.models.list()
            return True
        except OpenAIError as exc:
            logger.warning("OpenAI connection failed: %s", exc)
            return False

    def close(self):
        self.client.close()
