"""Retrying, strategy-ordered translation with feedback."""

import asyncio
from typing import Callable, List, Optional

from mcr.core.results import TranslationResult
from mcr.interfaces.knowledge_engine import KnowledgeEngine
from mcr.interfaces.translation import TranslationStrategy
from mcr.utils.exceptions import (
    APIError, ConfigError, MalformedOutput, TranslationError, TranslationExhausted,
)
from mcr.utils.logging import get_logger

logger = get_logger(__name__)

UsageCallback = Callable[[int, int, float], None]


class TranslationPipeline:
    """Tries each strategy in order, for up to max_attempts rounds.

    A result is accepted as soon as it passes the engine's syntax check.
    Ontology membership is not checked here; the session does that when
    the result is asserted or queried.
    """

    def __init__(
        self,
        strategies: List[TranslationStrategy],
        engine: KnowledgeEngine,
        max_attempts: int = 2,
        retry_delay: float = 0.5,
        usage_callback: Optional[UsageCallback] = None
    ):
        if not strategies:
            raise ConfigError("At least one translation strategy is required")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if retry_delay < 0:
            raise ValueError("retry_delay cannot be negative")
        self.strategies = list(strategies)
        self.engine = engine
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.usage_callback = usage_callback

    def _record(self, prompt_tokens: int, completion_tokens: int, latency: float) -> None:
        if self.usage_callback is not None:
            self.usage_callback(prompt_tokens, completion_tokens, latency)

    async def translate(self, text: str, ontology_terms: List[str]) -> TranslationResult:
        """Translate text into syntactically valid Prolog.

        Raises:
            ValueError: If text is empty
            TranslationExhausted: If no strategy produced valid output
                within the attempt bound
        """
        if text is None or not text.strip():
            raise ValueError("Text to translate cannot be empty")

        feedback: Optional[str] = None
        invocations = 0

        for attempt in range(1, self.max_attempts + 1):
            for strategy in self.strategies:
                invocations += 1
                try:
                    result = await strategy.translate(text, ontology_terms, feedback)
                except MalformedOutput as e:
                    if e.usage is not None:
                        self._record(e.usage.prompt_tokens, e.usage.completion_tokens, e.usage.latency)
                    feedback = f"{e} Output was: {e.raw}" if e.raw else str(e)
                    logger.debug(f"Attempt {attempt} with {strategy.name} produced malformed output: {e}")
                    continue
                except (TranslationError, APIError) as e:
                    feedback = str(e)
                    logger.warning(f"Attempt {attempt} with {strategy.name} failed: {e}")
                    continue
                except Exception as e:
                    feedback = str(e) or type(e).__name__
                    logger.error(f"Attempt {attempt} with {strategy.name} raised {type(e).__name__}: {e}")
                    continue

                self._record(result.prompt_tokens, result.completion_tokens, result.latency)
                error = self.engine.syntax_error(result.content)
                if error is None:
                    logger.debug(f"Translated with {strategy.name} on attempt {attempt}: {result.content}")
                    return result
                feedback = f"The output '{result.content}' is not valid Prolog: {error}"
                logger.debug(f"Attempt {attempt} with {strategy.name} rejected: {error}")

            if attempt < self.max_attempts:
                await asyncio.sleep(self.retry_delay)

        logger.warning(f"Translation exhausted after {invocations} strategy calls: {feedback}")
        raise TranslationExhausted(
            f"Translation failed after {invocations} attempts. Last error: {feedback}",
            last_feedback=feedback,
            invocations=invocations
        )
