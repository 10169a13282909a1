"""Interface definition for text generation services.

Translation strategies and the sub-symbolic query fallback talk to a
language model only through this interface:

1. Generation:
   - Plain text or JSON-constrained output
   - Token usage and latency reported with every call

2. Failure:
   - Provider failures surface as ProviderError
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Generation:
    """Text produced by one generation call, with its cost."""
    text: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency: float = 0.0  # seconds


class GenerationService(ABC):
    """Base interface for generation services.

    Usage Examples:
    ```python
    generation = await service.generate("Translate: Tweety is a canary.")
    print(generation.text, generation.prompt_tokens)

    # Ask for JSON output
    generation = await service.generate(prompt, json_output=True)
    ```
    """

    @abstractmethod
    async def generate(self, prompt: str, json_output: bool = False) -> Generation:
        """Generate text for a prompt.

        Args:
            prompt: Fully rendered prompt
            json_output: Ask the model for a JSON response

        Returns:
            Generation with text, token counts and latency

        Raises:
            ProviderError: If the underlying service fails
        """
        pass
