"""Reasoning session.

A session owns an ordered Prolog program, the ontology store the program
is validated against, a translation pipeline and its own usage counter.
Every clause in the program validates against the current ontology; a
reload drops the clauses that no longer do.

Public operations return result models instead of raising. Only contract
violations (empty text, negative bounds, malformed configs) raise.
"""

import asyncio
import json
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union

from mcr.core.metrics import UsageCounter, UsageMetrics
from mcr.core.reasoning import ReasoningLoop
from mcr.core.results import (
    AssertionResult, DroppedClause, OperationResult, QueryResult, ReasoningResult,
    RevalidationReport, TranslationResult,
)
from mcr.interfaces.generation import GenerationService
from mcr.interfaces.knowledge_engine import KnowledgeEngine, Solution
from mcr.interfaces.translation import TranslationStrategy
from mcr.ontology.manager import OntologyManager
from mcr.ontology.ontology_schema import OntologyConfig, validate_session_state
from mcr.prolog.engine import PrologEngine
from mcr.prolog.parser import classify, parse_clause
from mcr.prolog.terms import ClauseKind
from mcr.translation.pipeline import TranslationPipeline
from mcr.translation.prompts import PromptLibrary
from mcr.translation.registry import build_default_registry
from mcr.translation.strategies import AgenticStrategy
from mcr.utils.config import get_config, get_default_config
from mcr.utils.exceptions import (
    APIError, Cancelled, ConfigError, MalformedClauseSyntax, NoSolutionFound, NotAnAssertion,
    NotAQuery, OntologyError, ParsingError, ProviderError, TranslationError,
)
from mcr.utils.ids import generate_session_id
from mcr.utils.logging import get_session_logger

R = TypeVar("R", bound=OperationResult)

UsageCallback = Callable[[int, int, int, float], None]


def _failure(result_cls: Type[R], error: Exception, **fields) -> R:
    return result_cls(
        success=False,
        error=str(error),
        error_kind=getattr(error, "kind", None),
        suggestions=list(getattr(error, "suggestions", []) or []),
        **fields
    )


class Session:
    """Ontology-constrained Prolog session."""

    def __init__(
        self,
        session_id: Optional[str] = None,
        ontology: Optional[Union[OntologyConfig, Dict[str, Any]]] = None,
        config: Optional[Dict[str, Any]] = None,
        generation_service: Optional[GenerationService] = None,
        strategies: Optional[List[TranslationStrategy]] = None,
        agentic_strategy: Optional[AgenticStrategy] = None,
        engine: Optional[KnowledgeEngine] = None,
        usage_callback: Optional[UsageCallback] = None,
        program: Optional[List[str]] = None,
        prompts: Optional[PromptLibrary] = None
    ):
        """Initialize a session.

        Args:
            session_id: Identifier, generated when omitted
            ontology: Ontology config; copied into a store owned by this session
            config: Application config; missing sections use defaults
            generation_service: Model used by default strategies and the query fallback
            strategies: Pipeline strategy order; built from config when omitted
            agentic_strategy: Strategy for reason(); built from the generation service when omitted
            engine: Knowledge engine; an in-process PrologEngine when omitted
            usage_callback: Receives every usage addition (the manager's global counter)
            program: Initial clauses; ones failing validation are logged and skipped

        Raises:
            ConfigError: If the ontology or strategy configuration is invalid
        """
        self.config = config or get_default_config()
        self._session_id = session_id or generate_session_id()
        self.logger = get_session_logger(__name__, self._session_id)
        self._initial_ontology = OntologyConfig.from_dict(ontology)
        self._ontology = OntologyManager(self._initial_ontology)
        self._engine = engine or PrologEngine(max_depth=get_config(self.config, "engine.max_depth", 200))
        self._max_solutions = get_config(self.config, "engine.max_solutions", None)
        self._generation_service = generation_service
        self._prompts = prompts or PromptLibrary()
        self._usage = UsageCounter(on_update=usage_callback)

        # Program changes and engine use are serialized per session
        self._lock = asyncio.Lock()
        # Guards the engine itself, which runs in worker threads
        self._engine_lock = threading.Lock()

        if strategies is None and generation_service is not None:
            registry = build_default_registry(generation_service, self._prompts)
            strategies = registry.resolve(get_config(self.config, "translation.strategies", ["direct", "structured"]))
            agentic_strategy = agentic_strategy or registry.agentic()
        self._agentic = agentic_strategy

        self._pipeline: Optional[TranslationPipeline] = None
        if strategies:
            self._pipeline = TranslationPipeline(
                strategies,
                self._engine,
                max_attempts=get_config(self.config, "translation.max_attempts", 2),
                retry_delay=get_config(self.config, "translation.retry_delay", 0.5),
                usage_callback=lambda p, c, l: self.record_usage(p, c, l)
            )

        self._program: List[str] = []
        if program:
            kept, dropped = self._revalidate(self._ontology, program)
            for item in dropped:
                self.logger.warning(f"Skipping initial clause {item.clause}: {item.error}")
            self._engine.consult(kept)
            self._program = kept

        self.logger.info("Session created")

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def program(self) -> List[str]:
        return list(self._program)

    @property
    def ontology(self) -> OntologyManager:
        return self._ontology

    @property
    def pipeline(self) -> Optional[TranslationPipeline]:
        return self._pipeline

    def usage(self) -> UsageMetrics:
        return self._usage.snapshot()

    def record_usage(self, prompt_tokens: int, completion_tokens: int, latency: float) -> None:
        self._usage.add(1, prompt_tokens, completion_tokens, latency)

    async def _run(self, operation: Awaitable[R], timeout: Optional[float], result_cls: Type[R], **fields) -> R:
        if timeout is None:
            return await operation
        try:
            return await asyncio.wait_for(operation, timeout)
        except asyncio.TimeoutError:
            self.logger.warning(f"Operation timed out after {timeout}s")
            return _failure(result_cls, Cancelled(f"Operation cancelled after {timeout} seconds"), **fields)

    @staticmethod
    def _require_text(value: Optional[str], what: str) -> str:
        if value is None or not value.strip():
            raise ValueError(f"{what} cannot be empty")
        return value.strip()

    def _consult(self, clauses: List[str]) -> None:
        with self._engine_lock:
            self._engine.consult(clauses)

    def _consult_and_solve(self, clauses: List[str], query: str) -> Solution:
        with self._engine_lock:
            self._engine.consult(clauses)
            return self._engine.solve(query, self._max_solutions)

    async def _translate(self, text: str) -> TranslationResult:
        if self._pipeline is None:
            raise ConfigError("No translation strategies configured for this session")
        return await self._pipeline.translate(text, self._ontology.terms())

    # Assertions

    async def assert_prolog(self, clause: str, timeout: Optional[float] = None) -> AssertionResult:
        """Validate a fact or rule and append it to the program.

        The engine theory is rebuilt from the whole program so queries see
        the new clause.
        """
        text = self._require_text(clause, "Clause")
        return await self._run(self._assert_prolog(text), timeout, AssertionResult)

    async def _assert_prolog(self, text: str) -> AssertionResult:
        if not text.endswith("."):
            return _failure(
                AssertionResult,
                MalformedClauseSyntax(f"Clause must end with a period: {text}"),
                symbolic_representation=text
            )
        async with self._lock:
            try:
                self._ontology.validate_clause(text)
                normalized = str(parse_clause(text))
            except (OntologyError, ParsingError) as e:
                self.logger.debug(f"Rejected clause {text}: {e}")
                return _failure(AssertionResult, e, symbolic_representation=text)

            candidate = self._program + [normalized]
            try:
                await asyncio.to_thread(self._consult, candidate)
            except (ParsingError, APIError) as e:
                self.logger.error(f"Engine rejected {normalized}, restoring previous theory: {e}")
                await asyncio.to_thread(self._consult, self._program)
                return _failure(AssertionResult, e, symbolic_representation=normalized)
            self._program = candidate

        self.logger.info(f"Asserted: {normalized}")
        return AssertionResult(success=True, symbolic_representation=normalized)

    async def assert_statement(self, text: str, timeout: Optional[float] = None) -> AssertionResult:
        """Translate natural language into a fact or rule and assert it.

        A session without translation strategies reports the missing
        configuration as a failed result.
        """
        text = self._require_text(text, "Statement")
        return await self._run(self._assert_statement(text), timeout, AssertionResult, original_text=text)

    async def _assert_statement(self, text: str) -> AssertionResult:
        try:
            translation = await self._translate(text)
        except (TranslationError, ConfigError) as e:
            return _failure(AssertionResult, e, original_text=text)

        content = translation.content.strip()
        if not content.endswith("."):
            error = NotAnAssertion(f"Translation produced a query, not an assertion: {content}")
            return _failure(AssertionResult, error, symbolic_representation=content, original_text=text)

        result = await self._assert_prolog(content)
        return result.model_copy(update={"original_text": text})

    async def add_fact(self, entity: str, type_name: str, timeout: Optional[float] = None) -> AssertionResult:
        """Assert that entity is of a type, e.g. canary(tweety)."""
        return await self.assert_prolog(f"{type_name}({entity}).", timeout=timeout)

    async def add_relationship(self, subject: str, relation: str, obj: str,
                               timeout: Optional[float] = None) -> AssertionResult:
        return await self.assert_prolog(f"{relation}({subject}, {obj}).", timeout=timeout)

    async def add_rule(self, rule: str, timeout: Optional[float] = None) -> AssertionResult:
        text = self._require_text(rule, "Rule")
        if classify(text) != ClauseKind.RULE:
            return _failure(
                AssertionResult,
                MalformedClauseSyntax(f"Not a rule (expected 'head :- body.'): {text}"),
                symbolic_representation=text
            )
        return await self.assert_prolog(text, timeout=timeout)

    async def retract_prolog(self, clause: str, timeout: Optional[float] = None) -> AssertionResult:
        """Remove the first program clause equal to the given one."""
        text = self._require_text(clause, "Clause")
        return await self._run(self._retract_prolog(text), timeout, AssertionResult)

    async def _retract_prolog(self, text: str) -> AssertionResult:
        try:
            normalized = str(parse_clause(text))
        except ParsingError as e:
            return _failure(AssertionResult, e, symbolic_representation=text)
        async with self._lock:
            if normalized not in self._program:
                return AssertionResult(
                    success=False,
                    error=f"Clause not found in program: {normalized}",
                    symbolic_representation=normalized
                )
            program = list(self._program)
            program.remove(normalized)
            await asyncio.to_thread(self._consult, program)
            self._program = program
        self.logger.info(f"Retracted: {normalized}")
        return AssertionResult(success=True, symbolic_representation=normalized)

    async def remove_fact(self, entity: str, type_name: str, timeout: Optional[float] = None) -> AssertionResult:
        return await self.retract_prolog(f"{type_name}({entity}).", timeout=timeout)

    async def remove_relationship(self, subject: str, relation: str, obj: str,
                                  timeout: Optional[float] = None) -> AssertionResult:
        return await self.retract_prolog(f"{relation}({subject}, {obj}).", timeout=timeout)

    # Queries

    async def query(self, prolog_query: str, allow_sub_symbolic_fallback: bool = False,
                    timeout: Optional[float] = None) -> QueryResult:
        """Solve a query against the program.

        A trailing period is tolerated. Bindings hold one mapping per
        solution. Confidence is 1.0 on success and 0.0 on failure; with the
        fallback enabled, an unsolved query, or one naming predicates
        outside the ontology, is answered by the generation service from
        the rendered knowledge graph at confidence 0.5.
        """
        text = self._require_text(prolog_query, "Query")
        if text.endswith("."):
            text = text[:-1].rstrip()
        return await self._run(self._query(text, allow_sub_symbolic_fallback), timeout, QueryResult, prolog_query=text)

    async def _query(self, text: str, allow_fallback: bool) -> QueryResult:
        try:
            self._ontology.validate_goals(text)
        except OntologyError as e:
            if allow_fallback and self._generation_service is not None:
                self.logger.debug(f"{text} is outside the ontology, trying the fallback: {e}")
                return await self._sub_symbolic_answer(text)
            return _failure(QueryResult, e, prolog_query=text)
        except ParsingError as e:
            return _failure(QueryResult, e, prolog_query=text)

        async with self._lock:
            try:
                solution = await asyncio.to_thread(self._consult_and_solve, self._program, text)
            except (ParsingError, APIError) as e:
                self.logger.error(f"Solver failed on {text}: {e}")
                return _failure(QueryResult, e, prolog_query=text)

        if solution.success:
            return QueryResult(
                success=True,
                prolog_query=text,
                bindings=solution.bindings,
                confidence=1.0,
                explanation="Directly proven from knowledge graph."
            )

        if allow_fallback and self._generation_service is not None:
            return await self._sub_symbolic_answer(text)

        return _failure(
            QueryResult,
            NoSolutionFound(f"No solution found for {text}"),
            prolog_query=text,
            confidence=0.0,
            explanation="No direct proof found in knowledge graph."
        )

    async def _sub_symbolic_answer(self, text: str) -> QueryResult:
        prompt = self._prompts.load_prompt("fallback", {
            "knowledge_graph": self.get_knowledge_graph(),
            "question": text
        })
        try:
            generation = await self._generation_service.generate(prompt)
        except APIError as e:
            return _failure(QueryResult, e, prolog_query=text)
        except Exception as e:
            self.logger.error(f"Fallback generation failed for {text}: {e}")
            return _failure(QueryResult, ProviderError(str(e)), prolog_query=text)
        self.record_usage(generation.prompt_tokens, generation.completion_tokens, generation.latency)

        answer = generation.text.strip()
        self.logger.info(f"Answered {text} from the knowledge graph text (sub-symbolic fallback)")
        return QueryResult(
            success=True,
            prolog_query=text,
            confidence=0.5,
            source="sub_symbolic",
            answer=answer,
            explanation=answer
        )

    async def nquery(self, text: str, allow_sub_symbolic_fallback: bool = False,
                     timeout: Optional[float] = None) -> QueryResult:
        """Translate a natural-language question into a query and solve it."""
        text = self._require_text(text, "Question")
        return await self._run(self._nquery(text, allow_sub_symbolic_fallback), timeout, QueryResult, original_text=text)

    async def _nquery(self, text: str, allow_fallback: bool) -> QueryResult:
        try:
            translation = await self._translate(text)
        except (TranslationError, ConfigError) as e:
            return _failure(QueryResult, e, original_text=text)

        content = translation.content.strip()
        if content.endswith("."):
            error = NotAQuery(f"Translation produced a fact or rule, not a query: {content}")
            return _failure(QueryResult, error, prolog_query=content, original_text=text)

        result = await self._query(content, allow_fallback)
        return result.model_copy(update={"prolog_query": content, "original_text": text})

    # Reasoning

    async def reason(self, task: str, max_steps: Optional[int] = None,
                     timeout: Optional[float] = None) -> ReasoningResult:
        """Run the agentic reasoning loop on a task.

        Raises:
            ValueError: If task is empty or max_steps is negative
            ConfigError: If the session has no agentic strategy
        """
        task = self._require_text(task, "Task")
        if max_steps is None:
            max_steps = get_config(self.config, "reasoning.max_steps", 5)
        if max_steps < 0:
            raise ValueError("max_steps cannot be negative")
        if self._agentic is None:
            raise ConfigError("No agentic strategy configured for this session")

        loop = ReasoningLoop(self, self._agentic, max_steps)
        return await self._run(loop.run(task), timeout, ReasoningResult)

    # Ontology

    def _revalidate(self, store: OntologyManager, clauses: List[str]) -> Tuple[List[str], List[DroppedClause]]:
        kept: List[str] = []
        dropped: List[DroppedClause] = []
        for clause in clauses:
            text = clause.strip()
            try:
                if not text.endswith("."):
                    raise MalformedClauseSyntax(f"Clause must end with a period: {text}")
                store.validate_clause(text)
            except (OntologyError, ParsingError) as e:
                dropped.append(DroppedClause(clause=text, error=str(e), error_kind=getattr(e, "kind", None)))
                continue
            kept.append(text)
        return kept, dropped

    async def reload_ontology(self, new_config: Union[OntologyConfig, Dict[str, Any]],
                              timeout: Optional[float] = None) -> RevalidationReport:
        """Replace the ontology and drop the clauses that no longer validate.

        Raises:
            ConfigError: If the new config is malformed
        """
        config = OntologyConfig.from_dict(new_config)
        return await self._run(self._reload_ontology(config), timeout, RevalidationReport)

    async def _reload_ontology(self, config: OntologyConfig) -> RevalidationReport:
        store = OntologyManager(config)
        async with self._lock:
            kept, dropped = self._revalidate(store, self._program)
            self._ontology = store
            self._program = kept
            await asyncio.to_thread(self._consult, kept)

        for item in dropped:
            self.logger.info(f"Dropped {item.clause} after ontology reload: {item.error}")
        return RevalidationReport(success=True, kept=kept, dropped=dropped)

    def get_ontology(self) -> Dict[str, Any]:
        return self._ontology.get_state()

    def _update_ontology(self, mutate: Callable[[], None]) -> OperationResult:
        try:
            mutate()
        except OntologyError as e:
            return _failure(OperationResult, e)
        return OperationResult(success=True)

    def add_type(self, name: str) -> OperationResult:
        return self._update_ontology(lambda: self._ontology.add_type(name))

    def define_relationship_type(self, name: str) -> OperationResult:
        return self._update_ontology(lambda: self._ontology.add_relationship(name))

    def add_constraint(self, name: str) -> OperationResult:
        return self._update_ontology(lambda: self._ontology.add_constraint(name))

    def add_synonym(self, synonym: str, canonical: str) -> OperationResult:
        return self._update_ontology(lambda: self._ontology.add_synonym(synonym, canonical))

    # State

    async def clear(self, reset_ontology: bool = True, timeout: Optional[float] = None) -> OperationResult:
        """Empty the program and the engine; keeps the session id."""
        return await self._run(self._clear(reset_ontology), timeout, OperationResult)

    async def _clear(self, reset_ontology: bool) -> OperationResult:
        async with self._lock:
            self._program = []
            await asyncio.to_thread(self._consult, [])
            if reset_ontology:
                self._ontology = OntologyManager(self._initial_ontology)
        self.logger.info("Session cleared")
        return OperationResult(success=True)

    def get_knowledge_graph(self, fmt: str = "prolog") -> Union[str, Dict[str, Any]]:
        """Render the program as Prolog text, or as a JSON-ready dict."""
        program = list(self._program)
        if fmt == "prolog":
            return "\n".join(program)
        if fmt == "json":
            return {
                "facts": [clause for clause in program if classify(clause) == ClauseKind.FACT],
                "rules": [clause for clause in program if classify(clause) == ClauseKind.RULE],
                "entities": self._ontology.types,
                "relationships": self._ontology.relationships,
                "constraints": self._ontology.constraints
            }
        raise ValueError(f"Unknown knowledge graph format: {fmt}")

    def save_state(self) -> Dict[str, Any]:
        return {
            "sessionId": self._session_id,
            "program": list(self._program),
            "ontology": self._ontology.get_state()
        }

    def save_state_json(self) -> str:
        return json.dumps(self.save_state(), indent=2)

    async def load_state(self, snapshot: Union[str, Dict[str, Any]],
                         timeout: Optional[float] = None) -> RevalidationReport:
        """Replace id, ontology and program from a saved state.

        Clauses that fail to parse or validate are logged, skipped and
        listed in the report.

        Raises:
            ConfigError: If the snapshot is not in the persisted-state format
        """
        if isinstance(snapshot, str):
            try:
                snapshot = json.loads(snapshot)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Session state is not valid JSON: {e}") from e
        validate_session_state(snapshot)
        store = OntologyManager(OntologyConfig.from_dict(snapshot["ontology"]))
        return await self._run(self._load_state(snapshot, store), timeout, RevalidationReport)

    async def _load_state(self, snapshot: Dict[str, Any], store: OntologyManager) -> RevalidationReport:
        async with self._lock:
            kept, dropped = self._revalidate(store, snapshot["program"])
            await asyncio.to_thread(self._consult, kept)
            self._session_id = snapshot["sessionId"]
            self.logger = get_session_logger(__name__, self._session_id)
            self._ontology = store
            self._program = kept

        for item in dropped:
            self.logger.warning(f"Skipped {item.clause} while loading state: {item.error}")
        self.logger.info(f"Loaded state with {len(kept)} clauses")
        return RevalidationReport(success=True, kept=kept, dropped=dropped)
