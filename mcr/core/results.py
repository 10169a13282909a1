"""Result models returned by session operations."""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from mcr.prolog.terms import ClauseKind
from mcr.utils.exceptions import ErrorKind


class AgentAction(BaseModel):
    """One decision of the agentic strategy."""
    action: Literal["query", "assert", "conclude"] = Field(..., description="What the agent wants to do next")
    content: Optional[str] = Field(None, description="Prolog query or clause for query/assert actions")
    answer: Optional[str] = Field(None, description="Final answer for conclude actions")
    explanation: Optional[str] = Field(None, description="Reasoning behind the action")


class TranslationResult(BaseModel):
    """Clause or query text produced from natural language."""
    kind: Optional[ClauseKind] = Field(..., description="fact, rule or query, judged by the text's shape; None for conclude actions")
    content: str = Field(..., description="Prolog clause or query text")
    strategy: str = Field(..., description="Name of the strategy that produced it")
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency: float = 0.0
    action: Optional[AgentAction] = None


class OperationResult(BaseModel):
    """Outcome of a session operation.

    Failures carry a human-readable error and its kind; ontology failures
    also carry similar terms.
    """
    success: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    suggestions: List[str] = Field(default_factory=list)


class AssertionResult(OperationResult):
    symbolic_representation: Optional[str] = Field(None, description="Normalized clause text that was asserted")
    original_text: Optional[str] = Field(None, description="Natural-language input, for assert_statement")


class QueryResult(OperationResult):
    prolog_query: Optional[str] = None
    bindings: List[Dict[str, str]] = Field(
        default_factory=list,
        description="One mapping per solution; a ground query that succeeds has one empty mapping"
    )
    confidence: float = 0.0
    source: Literal["symbolic", "sub_symbolic"] = "symbolic"
    answer: Optional[str] = None
    explanation: Optional[str] = None
    original_text: Optional[str] = None


class ReasoningResult(OperationResult):
    status: Literal["concluded", "inconclusive", "failed"] = "failed"
    answer: Optional[str] = None
    explanation: Optional[str] = None
    steps: List[str] = Field(default_factory=list)


class DroppedClause(BaseModel):
    clause: str
    error: str
    error_kind: Optional[ErrorKind] = None


class RevalidationReport(OperationResult):
    """Which clauses survived a reload or load, and why the rest were dropped."""
    kept: List[str] = Field(default_factory=list)
    dropped: List[DroppedClause] = Field(default_factory=list)
