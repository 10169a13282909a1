"""Bounded multi-step reasoning.

Each step asks the agentic strategy for an action:

- query: solve it against the session, feed the result back
- assert: add the clause if it validates, feed back success or the error
- conclude: stop with the answer

The loop ends as inconclusive once the step bound is reached.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from mcr.core.results import ReasoningResult
from mcr.translation.strategies import AgenticStrategy
from mcr.utils.exceptions import APIError, MalformedOutput, TranslationError
from mcr.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ReasoningState:
    step_index: int = 0
    feedback: Optional[str] = None
    steps: List[str] = field(default_factory=list)


class ReasoningLoop:
    """Drives a session through query/assert/conclude actions."""

    def __init__(self, session, strategy: AgenticStrategy, max_steps: int):
        if max_steps < 0:
            raise ValueError("max_steps cannot be negative")
        self.session = session
        self.strategy = strategy
        self.max_steps = max_steps

    async def run(self, task: str) -> ReasoningResult:
        state = ReasoningState()

        while state.step_index < self.max_steps:
            state.step_index += 1
            try:
                decision = await self.strategy.decide(
                    task,
                    self.session.ontology.terms(),
                    state.feedback,
                    self.session.program,
                    state.steps
                )
            except MalformedOutput as e:
                if e.usage is not None:
                    self.session.record_usage(e.usage.prompt_tokens, e.usage.completion_tokens, e.usage.latency)
                state.feedback = f"Your last output was not a valid action: {e}"
                logger.debug(f"Step {state.step_index}: malformed action: {e}")
                continue
            except (TranslationError, APIError) as e:
                state.feedback = str(e)
                logger.warning(f"Step {state.step_index}: strategy failed: {e}")
                continue
            except Exception as e:
                state.feedback = str(e) or type(e).__name__
                logger.error(f"Step {state.step_index}: strategy raised {type(e).__name__}: {e}")
                continue

            self.session.record_usage(decision.prompt_tokens, decision.completion_tokens, decision.latency)
            action = decision.action

            if action.action == "conclude":
                state.steps.append(f"Agent concludes: {action.answer}")
                logger.info(f"Concluded after {state.step_index} steps: {action.answer}")
                return ReasoningResult(
                    success=True,
                    status="concluded",
                    answer=action.answer,
                    explanation=action.explanation,
                    steps=state.steps
                )

            if action.action == "assert":
                result = await self.session.assert_prolog(action.content)
                if result.success:
                    state.steps.append(f"Agent asserts: {result.symbolic_representation}")
                    state.feedback = "Assertion successful."
                else:
                    state.feedback = f"Assertion failed: {result.error}"
            else:
                result = await self.session.query(action.content)
                state.steps.append(f"Agent queries: {result.prolog_query} -> {result.success}")
                state.feedback = f"Query result: {result.success}, Bindings: {result.bindings}"
                if result.error and not result.success:
                    state.feedback += f" ({result.error})"

            logger.debug(f"Step {state.step_index}: {state.feedback}")

        logger.info(f"No conclusion after {self.max_steps} steps")
        return ReasoningResult(
            success=False,
            status="inconclusive",
            error=f"No conclusion reached after {self.max_steps} steps",
            steps=state.steps
        )
