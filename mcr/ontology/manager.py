"""Ontology store implementation.

Holds the types, relationships, constraints and synonyms of one session
and validates Prolog clauses against them. Clause text is parsed with the
Prolog parser, so nested arguments such as `f(g(a, b), c)` are handled.
"""

import re
from typing import Any, Dict, List, Optional

from mcr.interfaces.ontology import OntologyInterface
from mcr.ontology.ontology_schema import OntologyConfig
from mcr.prolog.engine import BUILTIN_PREDICATES
from mcr.prolog.parser import parse_clause, parse_query
from mcr.prolog.terms import Atom, Struct, Term, goal_args, goal_name
from mcr.utils.exceptions import (
    ArityMismatch, InvalidPredicateName, MalformedClauseSyntax, UndefinedPredicate,
    ValidationError,
)
from mcr.utils.logging import get_logger

logger = get_logger(__name__)

_PREDICATE_NAME = re.compile(r"^[a-z][a-zA-Z0-9_]*$")

# Control constructs whose arguments are themselves goals
_CONTROL = {",": 2, ";": 2, "->": 2, "\\+": 1}


class OntologyManager(OntologyInterface):
    """Validator for clauses against a session's ontology."""

    def __init__(self, config: Optional[OntologyConfig] = None):
        """Initialize from a config snapshot.

        The store copies what it needs, so the config stays untouched by
        later add_* calls.
        """
        config = config or OntologyConfig()
        self._types: List[str] = list(config.types)
        self._relationships: List[str] = list(config.relationships)
        self._constraints: List[str] = list(config.constraints)
        self._synonyms: Dict[str, str] = dict(config.synonyms)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'OntologyManager':
        return cls(OntologyConfig.from_dict(data))

    @property
    def types(self) -> List[str]:
        return list(self._types)

    @property
    def relationships(self) -> List[str]:
        return list(self._relationships)

    @property
    def constraints(self) -> List[str]:
        return list(self._constraints)

    @property
    def synonyms(self) -> Dict[str, str]:
        return dict(self._synonyms)

    def resolve_synonym(self, term: str) -> str:
        return self._synonyms.get(term, term)

    def is_valid_predicate_name(self, name: str) -> bool:
        return isinstance(name, str) and bool(_PREDICATE_NAME.match(name))

    def is_defined(self, predicate: str) -> bool:
        resolved = self.resolve_synonym(predicate)
        return resolved in self._types or resolved in self._relationships

    def validate_fact(self, predicate: str, args: List[str]) -> None:
        """Validate a predicate applied to arguments.

        Checks run in order: synonym resolution, naming convention, type
        arity (exactly one argument), relationship arity (at least two),
        then membership.

        Raises:
            InvalidPredicateName: Name breaks Prolog naming conventions
            ArityMismatch: Wrong number of arguments for a type or relationship
            UndefinedPredicate: Predicate is not in the ontology
        """
        predicate = self.resolve_synonym(predicate)

        if not self.is_valid_predicate_name(predicate):
            raise InvalidPredicateName(
                f"Invalid predicate: {predicate}. Must follow Prolog naming conventions"
            )

        if predicate in self._types:
            if len(args) != 1:
                raise ArityMismatch(f"{predicate} expects 1 argument, got {len(args)}")
        elif predicate in self._relationships:
            if len(args) < 2:
                raise ArityMismatch(f"{predicate} expects at least 2 arguments, got {len(args)}")

        if predicate not in self._types and predicate not in self._relationships:
            self._raise_undefined(predicate, f"Predicate '{predicate}' not in ontology.")

    def validate_clause(self, text: str) -> None:
        """Validate a fact or rule against the ontology.

        The head goes through validate_fact. Each body goal, including
        goals nested in negation and disjunction, must have a valid name
        and be defined; body goals are not arity-checked. Built-in control
        and comparison goals are exempt.

        Raises:
            MalformedClauseSyntax: Text is not a single clause, or a rule
                has an empty body
            OntologyError: Head or body breaks the ontology
        """
        if text is None or not text.strip():
            raise MalformedClauseSyntax("Clause text is empty.")
        _, separator, body = text.partition(":-")
        if separator and not body.strip().rstrip(".").strip():
            raise MalformedClauseSyntax("Rule body cannot be empty.")

        clause = parse_clause(text)
        head = clause.head
        self.validate_fact(goal_name(head), [str(arg) for arg in goal_args(head)])

        if clause.body is not None:
            self._check_goals(clause.body, "Rule body predicate")

    def validate_goals(self, text: str) -> None:
        """Check that every goal of a query is defined in the ontology."""
        self._check_goals(parse_query(text), "Query predicate")

    def _check_goals(self, goal: Term, role: str) -> None:
        if not isinstance(goal, (Atom, Struct)):
            if goal.variables():
                # call/1 style variable goal; nothing to check until it is bound
                return
            raise MalformedClauseSyntax(f"Goal is not callable: {goal}")

        name = goal_name(goal)
        args = goal_args(goal)
        if _CONTROL.get(name) == len(args):
            for inner in args:
                self._check_goals(inner, role)
            return
        if name in BUILTIN_PREDICATES:
            return

        if not self.is_valid_predicate_name(name):
            raise InvalidPredicateName(
                f"Invalid predicate: {name}. Must follow Prolog naming conventions"
            )
        if not self.is_defined(name):
            self._raise_undefined(name, f"{role} '{name}' not defined in ontology.")

    def _raise_undefined(self, predicate: str, message: str) -> None:
        similar = self.similar_terms(predicate)
        suggestion = self._format_suggestion(similar)
        raise UndefinedPredicate(f"{message} {suggestion}", suggestion, similar)

    def similar_terms(self, predicate: str) -> List[str]:
        """Ontology terms sharing the first 3 characters or containing the predicate."""
        prefix = predicate[:3]
        candidates = self._types + self._relationships + list(self._synonyms)
        return [
            term for term in dict.fromkeys(candidates)
            if term.startswith(prefix) or predicate in term
        ]

    def suggest(self, predicate: str) -> str:
        return self._format_suggestion(self.similar_terms(predicate))

    @staticmethod
    def _format_suggestion(similar: List[str]) -> str:
        if not similar:
            return "No similar terms found."
        return f"Did you mean: {', '.join(similar)}?"

    def validate_constraint(self, constraint: str) -> None:
        constraint = self.resolve_synonym(constraint)
        if constraint not in self._constraints:
            raise ValidationError(f"Constraint '{constraint}' is not defined in ontology")

    def _check_name(self, name: str) -> None:
        if not self.is_valid_predicate_name(name):
            raise InvalidPredicateName(
                f"Invalid ontology term: {name}. Must follow Prolog naming conventions"
            )

    def add_type(self, name: str) -> None:
        self._check_name(name)
        if name not in self._types:
            self._types.append(name)
            logger.debug(f"Added type {name}")

    def add_relationship(self, name: str) -> None:
        self._check_name(name)
        if name not in self._relationships:
            self._relationships.append(name)
            logger.debug(f"Added relationship {name}")

    def add_constraint(self, name: str) -> None:
        if name not in self._constraints:
            self._constraints.append(name)

    def add_synonym(self, synonym: str, canonical: str) -> None:
        """Map synonym to canonical. Later mappings for the same synonym win."""
        self._check_name(synonym)
        self._synonyms[synonym] = canonical
        logger.debug(f"Added synonym {synonym} -> {canonical}")

    def terms(self) -> List[str]:
        """Ontology hint for translation prompts."""
        return list(dict.fromkeys(self._types + self._relationships + list(self._synonyms)))

    def snapshot(self) -> OntologyConfig:
        return OntologyConfig(
            types=tuple(self._types),
            relationships=tuple(self._relationships),
            constraints=tuple(self._constraints),
            synonyms=dict(self._synonyms)
        )

    def get_state(self) -> Dict[str, Any]:
        return self.snapshot().to_dict()
