"""Top-level manager.

Owns the strategy registry, the live sessions and the process-wide usage
counter. Sessions report usage into the manager's counter as they go, so
`MCR.usage()` is the sum of every session's contributions.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from mcr.core.metrics import UsageCounter, UsageMetrics
from mcr.core.results import RevalidationReport
from mcr.core.session import Session
from mcr.interfaces.generation import GenerationService
from mcr.interfaces.knowledge_engine import KnowledgeEngine
from mcr.interfaces.translation import TranslationStrategy
from mcr.ontology.ontology_schema import OntologyConfig
from mcr.translation.prompts import PromptLibrary
from mcr.translation.registry import StrategyRegistry, build_default_registry
from mcr.utils.config import (
    copy_config, get_config, load_config_and_logging, merge_with_defaults, validate_config,
)
from mcr.utils.exceptions import ConfigError
from mcr.utils.logging import get_logger

logger = get_logger(__name__)


class MCR:
    """Factory and registry for reasoning sessions."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        generation_service: Optional[GenerationService] = None,
        registry: Optional[StrategyRegistry] = None
    ):
        """Initialize the manager.

        Args:
            config: Application config; missing sections use defaults
            generation_service: Shared model client; without one, sessions
                only support symbolic operations
            registry: Strategy registry; the built-in strategies when omitted
        """
        self.config = merge_with_defaults(config or {})
        validate_config(self.config)
        self.generation_service = generation_service
        self.prompts = PromptLibrary()
        if registry is None:
            registry = (
                build_default_registry(generation_service, self.prompts)
                if generation_service is not None else StrategyRegistry()
            )
        self.registry = registry
        self._usage = UsageCounter()
        self._sessions: Dict[str, Session] = {}

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None,
                    config_path: Optional[Path] = None) -> 'MCR':
        """Build a manager with the Gemini generation service.

        Loads config.json (and configures logging) when no config is given.

        Raises:
            ConfigError: If the config is invalid or no API key is available
        """
        from mcr.llm.gemini import GeminiGenerationService

        if config is None:
            config = load_config_and_logging(config_path)
        config = merge_with_defaults(config)
        return cls(config, GeminiGenerationService(config))

    def register_strategy(self, name: str, strategy: TranslationStrategy) -> None:
        """Add a strategy under a new name; sessions created afterwards can use it."""
        self.registry.register(name, strategy)
        logger.info(f"Registered translation strategy {name}")

    def create_session(
        self,
        ontology: Optional[Union[OntologyConfig, Dict[str, Any]]] = None,
        session_id: Optional[str] = None,
        strategies: Optional[List[str]] = None,
        program: Optional[List[str]] = None,
        engine: Optional[KnowledgeEngine] = None
    ) -> Session:
        """Create a session with its own ontology store and program.

        Args:
            ontology: Ontology config for the session
            session_id: Identifier, generated when omitted
            strategies: Pipeline strategy names; config `translation.strategies` when omitted
            program: Initial clauses
            engine: Knowledge engine; the in-process engine when omitted

        Raises:
            ConfigError: On unknown strategy names or a duplicate session id
        """
        if session_id is not None and session_id in self._sessions:
            raise ConfigError(f"Session {session_id} already exists")

        resolved = None
        if self.registry.names():
            names = strategies or get_config(self.config, "translation.strategies", ["direct", "structured"])
            resolved = self.registry.resolve(names)
        elif strategies:
            raise ConfigError("No translation strategies are registered")

        session = Session(
            session_id=session_id,
            ontology=ontology,
            config=copy_config(self.config),
            generation_service=self.generation_service,
            strategies=resolved,
            agentic_strategy=self.registry.agentic(),
            engine=engine,
            usage_callback=self._usage.add,
            program=program,
            prompts=self.prompts
        )
        self._sessions[session.session_id] = session
        return session

    async def load_session(self, snapshot: Union[str, Dict[str, Any]]) -> Session:
        """Create a session from saved state, keyed by the saved id."""
        session = self.create_session()
        del self._sessions[session.session_id]
        report: RevalidationReport = await session.load_state(snapshot)
        if report.dropped:
            logger.warning(f"Loaded session {session.session_id} without {len(report.dropped)} invalid clauses")
        if session.session_id in self._sessions:
            raise ConfigError(f"Session {session.session_id} already exists")
        self._sessions[session.session_id] = session
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session is not None:
            return session
        # a session's id changes when state is loaded into it
        for candidate in self._sessions.values():
            if candidate.session_id == session_id:
                return candidate
        return None

    def release_session(self, session_id: str) -> bool:
        session = self.get_session(session_id)
        if session is None:
            return False
        for key, candidate in list(self._sessions.items()):
            if candidate is session:
                del self._sessions[key]
        logger.info(f"Released session {session_id}")
        return True

    def sessions(self) -> List[str]:
        return [session.session_id for session in self._sessions.values()]

    def usage(self) -> UsageMetrics:
        return self._usage.snapshot()
