"""Strategy registry.

Strategies are looked up by name once, when a session is built, so an
unknown name is a configuration error rather than a failure in the
middle of a translation.
"""

from enum import Enum
from typing import Dict, List, Optional

from mcr.interfaces.generation import GenerationService
from mcr.interfaces.translation import TranslationStrategy
from mcr.translation.prompts import PromptLibrary
from mcr.translation.strategies import (
    AgenticStrategy, DirectStrategy, FewShotStrategy, StructuredStrategy,
)
from mcr.utils.exceptions import ConfigError


class StrategyKind(str, Enum):
    """Built-in strategies."""
    DIRECT = "direct"
    STRUCTURED = "structured"
    FEW_SHOT = "few_shot"
    AGENTIC = "agentic"


# Alternative spellings accepted in configs
ALIASES = {
    "json": StrategyKind.STRUCTURED.value,
    "fewshot": StrategyKind.FEW_SHOT.value,
    "few-shot": StrategyKind.FEW_SHOT.value,
}


class StrategyRegistry:
    """Name to strategy map, built at startup."""

    def __init__(self):
        self._strategies: Dict[str, TranslationStrategy] = {}

    @staticmethod
    def normalize(name: str) -> str:
        key = name.strip().lower()
        return ALIASES.get(key, key)

    def register(self, name: str, strategy: TranslationStrategy) -> None:
        if not isinstance(strategy, TranslationStrategy):
            raise ConfigError(f"Strategy '{name}' does not implement TranslationStrategy")
        self._strategies[self.normalize(name)] = strategy

    def get(self, name: str) -> TranslationStrategy:
        key = self.normalize(name)
        if key not in self._strategies:
            available = ", ".join(self._strategies) or "none"
            raise ConfigError(f"Unknown translation strategy '{name}'. Available: {available}")
        return self._strategies[key]

    def __contains__(self, name: str) -> bool:
        return self.normalize(name) in self._strategies

    def names(self) -> List[str]:
        return list(self._strategies)

    def resolve(self, names: List[str]) -> List[TranslationStrategy]:
        """Look up a pipeline's strategy order.

        Raises:
            ConfigError: If the list is empty, a name is unknown, or the
                agentic strategy is listed (it produces actions, not clauses)
        """
        if not names:
            raise ConfigError("At least one translation strategy is required")
        strategies = []
        for name in names:
            if self.normalize(name) == StrategyKind.AGENTIC.value:
                raise ConfigError("The agentic strategy is only used for reasoning, not in a translation pipeline")
            strategies.append(self.get(name))
        return strategies

    def agentic(self) -> Optional[AgenticStrategy]:
        strategy = self._strategies.get(StrategyKind.AGENTIC.value)
        return strategy if isinstance(strategy, AgenticStrategy) else None


def build_default_registry(
    generation_service: GenerationService,
    prompts: Optional[PromptLibrary] = None
) -> StrategyRegistry:
    """Registry with every built-in strategy sharing one generation service."""
    prompts = prompts or PromptLibrary()
    registry = StrategyRegistry()
    registry.register(StrategyKind.DIRECT.value, DirectStrategy(generation_service, prompts))
    registry.register(StrategyKind.STRUCTURED.value, StructuredStrategy(generation_service, prompts))
    registry.register(StrategyKind.FEW_SHOT.value, FewShotStrategy(generation_service, prompts))
    registry.register(StrategyKind.AGENTIC.value, AgenticStrategy(generation_service, prompts))
    return registry
