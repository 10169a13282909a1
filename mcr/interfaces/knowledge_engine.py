"""Interface definition for knowledge engines.

A knowledge engine holds the consulted theory of a session and answers
queries against it. Sessions rely on it for:

1. Theory Management:
   - Rebuild the theory from an ordered list of clause texts
   - Retract single clauses
   - Render the theory back to text

2. Resolution:
   - Solve a query and collect every solution's variable bindings

3. Syntax Checking:
   - Pure parse check of candidate clause/query text, no side effects
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Solution:
    """Outcome of solving one query.

    `bindings` holds one mapping per solution, variable name to value text.
    A ground query that succeeds yields one empty mapping.
    """
    success: bool
    bindings: List[Dict[str, str]] = field(default_factory=list)


class KnowledgeEngine(ABC):
    """Base interface for knowledge engines."""

    @abstractmethod
    def assert_all(self, clauses: List[str]) -> None:
        """Add clauses to the theory, in order.

        Args:
            clauses: Clause texts, each ending in a period

        Raises:
            MalformedClauseSyntax: If a clause does not parse. The theory
                is left unchanged.
        """
        pass

    def consult(self, clauses: List[str]) -> None:
        """Replace the whole theory with the given clauses."""
        self.clear()
        self.assert_all(clauses)

    @abstractmethod
    def retract(self, clause: str) -> bool:
        """Remove the first clause matching the given text.

        Returns:
            True if a clause was removed
        """
        pass

    @abstractmethod
    def solve(self, query: str, max_solutions: Optional[int] = None) -> Solution:
        """Solve a query against the current theory.

        Args:
            query: Goal text, with or without a trailing period
            max_solutions: Stop after this many solutions

        Returns:
            Solution with every binding set found
        """
        pass

    @abstractmethod
    def parse_check(self, text: str) -> bool:
        """Return True if text is one syntactically valid clause or query."""
        pass

    def syntax_error(self, text: str) -> Optional[str]:
        """Describe why text fails the parse check, or None if it passes."""
        return None if self.parse_check(text) else f"Invalid Prolog syntax: {text}"

    @abstractmethod
    def render_theory(self) -> str:
        """Render the consulted theory as clause text, one clause per line."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Reset to an empty theory."""
        pass
