"""Interface definition for translation strategies.

A strategy turns natural-language text into Prolog clause or query text:

1. Prompting:
   - Ontology terms embedded as a hint
   - Feedback from a rejected previous attempt embedded when present

2. Parsing:
   - Generation output turned into clause/query text
   - Unparseable output reported as MalformedOutput with the raw text

3. Accounting:
   - Token usage and latency of every generation call reported back
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from mcr.core.results import TranslationResult


class TranslationStrategy(ABC):
    """Base interface for translation strategies."""

    name: str = "strategy"

    @abstractmethod
    async def translate(
        self,
        text: str,
        ontology_terms: List[str],
        feedback: Optional[str] = None
    ) -> TranslationResult:
        """Translate text into Prolog.

        Args:
            text: Natural-language input
            ontology_terms: Allowed predicate names and synonyms
            feedback: Why the previous attempt was rejected, if any

        Returns:
            TranslationResult with the clause or query text and usage

        Raises:
            MalformedOutput: Output could not be parsed
            ProviderError: Generation service failed
        """
        pass
