"""Interface definition for ontology management.

The ontology constrains which predicates a session's program may use.
The ontology store primarily handles:

1. Predicate Validation:
   - Naming conventions for predicate names
   - Arity rules (types take one argument, relationships two or more)
   - Synonym resolution to canonical terms

2. Clause Validation:
   - Rule heads and facts checked as predicates
   - Body goals checked for being defined

3. Suggestions:
   - "Did you mean" hints built from similar ontology terms
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from mcr.ontology.ontology_schema import OntologyConfig


class OntologyInterface(ABC):
    """Interface for ontology stores."""

    @abstractmethod
    def __init__(self, config: Optional[OntologyConfig] = None):
        """Initialize the store.

        Args:
            config: Initial ontology snapshot
        """
        pass

    @abstractmethod
    def resolve_synonym(self, term: str) -> str:
        """Map a synonym to its canonical term, identity if unmapped."""
        pass

    @abstractmethod
    def is_defined(self, predicate: str) -> bool:
        """Check whether a predicate is a known type or relationship.

        Args:
            predicate: Predicate name, synonyms allowed

        Returns:
            True if defined
        """
        pass

    @abstractmethod
    def validate_fact(self, predicate: str, args: List[str]) -> None:
        """Validate a predicate applied to arguments.

        Raises:
            InvalidPredicateName: Name breaks naming conventions
            ArityMismatch: Wrong number of arguments
            UndefinedPredicate: Not in the ontology
        """
        pass

    @abstractmethod
    def validate_clause(self, text: str) -> None:
        """Validate a fact or rule.

        Raises:
            MalformedClauseSyntax: Text is not a clause
            OntologyError: Head or body breaks the ontology
        """
        pass

    @abstractmethod
    def suggest(self, predicate: str) -> str:
        """Get a "did you mean" hint for an unknown predicate."""
        pass

    @abstractmethod
    def snapshot(self) -> OntologyConfig:
        """Get the current ontology as an immutable config."""
        pass

    @abstractmethod
    def get_state(self) -> Dict[str, Any]:
        """Get the current ontology in its JSON format."""
        pass
