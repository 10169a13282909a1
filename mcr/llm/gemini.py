"""Gemini-backed generation service."""

import os
import time
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from mcr.interfaces.generation import Generation, GenerationService
from mcr.utils.exceptions import ConfigError, ProviderError
from mcr.utils.logging import get_logger


class GeminiGenerationService(GenerationService):
    """Generation service using the google-genai async client."""

    def __init__(self, config: Dict[str, Any], client: Optional[Any] = None):
        """Initialize the service.

        Args:
            config: Configuration dictionary with an 'llm' section
            client: Pre-built async client (genai.Client(...).aio), mainly for tests

        Raises:
            ConfigError: If the 'llm' section is missing or no API key is available
        """
        self.logger = get_logger(f"mcr.llm.{self.__class__.__name__.lower()}")

        llm_config = config.get("llm")
        if not llm_config:
            raise ConfigError("Missing 'llm' section in config")

        self.model = llm_config.get("model", "gemini-2.0-flash")
        self.temperature = llm_config.get("temperature", 0.0)

        if client is None:
            api_key = llm_config.get("api_key") or os.getenv("GEMINI_API_KEY")
            if not api_key:
                raise ConfigError("No Gemini API key: set llm.api_key or GEMINI_API_KEY")
            client = genai.Client(api_key=api_key).aio
        self.client = client

    async def generate(self, prompt: str, json_output: bool = False) -> Generation:
        self.logger.debug(f"Prompt:\n{prompt}\n")
        config_kwargs = {"temperature": self.temperature}
        if json_output:
            config_kwargs["response_mime_type"] = "application/json"

        start = time.perf_counter()
        try:
            response = await self.client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(**config_kwargs)
            )
            text = response.text or ""
        except Exception as e:
            raise ProviderError(f"Error calling LLM: {str(e)}") from e
        latency = time.perf_counter() - start

        usage = getattr(response, "usage_metadata", None)
        prompt_tokens = getattr(usage, "prompt_token_count", None) or 0
        completion_tokens = getattr(usage, "candidates_token_count", None) or 0

        self.logger.debug(f"Response ({latency:.2f}s, {prompt_tokens}+{completion_tokens} tokens):\n{text}\n")
        return Generation(
            text=text,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency=latency
        )
