"""Custom exceptions for the system."""

from enum import Enum
from typing import List, Optional


class ErrorKind(str, Enum):
    """Machine-readable error categories reported in session results."""
    INVALID_PREDICATE_NAME = "invalid_predicate_name"
    ARITY_MISMATCH = "arity_mismatch"
    UNDEFINED_PREDICATE = "undefined_predicate"
    MALFORMED_CLAUSE_SYNTAX = "malformed_clause_syntax"
    MALFORMED_OUTPUT = "malformed_output"
    TRANSLATION_EXHAUSTED = "translation_exhausted"
    NOT_AN_ASSERTION = "not_an_assertion"
    NOT_A_QUERY = "not_a_query"
    NO_SOLUTION_FOUND = "no_solution_found"
    CANCELLED = "cancelled"
    PROVIDER_ERROR = "provider_error"


class ConfigError(Exception):
    """Raised when there is a configuration error."""
    pass


class APIError(Exception):
    """Base exception for API-related errors.

    This exception is raised when there are issues with API calls,
    responses, or endpoint access.
    """
    def __init__(self, message: str, status_code: int = None, response: str = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class APIResponseError(APIError):
    """Exception raised for invalid API responses.

    This includes invalid JSON, missing required fields, and unexpected response formats.
    """
    pass


class ProviderError(APIResponseError):
    """Raised when the generation service or the solver backend fails."""
    kind = ErrorKind.PROVIDER_ERROR


class ParsingError(Exception):
    """Exception raised for parsing-related errors.

    This exception is raised when there are issues with parsing data,
    such as invalid formats or missing required fields.
    """
    pass


class MalformedClauseSyntax(ParsingError):
    """Raised when clause or query text is not valid Prolog."""
    kind = ErrorKind.MALFORMED_CLAUSE_SYNTAX


class ValidationError(Exception):
    """Raised when schema validation fails."""
    pass


class OntologyError(ValidationError):
    """Base class for clauses rejected by the ontology.

    Carries the list of similar ontology terms so callers can show
    "did you mean" hints.
    """
    kind: ErrorKind = ErrorKind.UNDEFINED_PREDICATE

    def __init__(self, message: str, suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.suggestions = list(suggestions or [])


class InvalidPredicateName(OntologyError):
    """Predicate does not follow Prolog naming conventions."""
    kind = ErrorKind.INVALID_PREDICATE_NAME


class ArityMismatch(OntologyError):
    """Predicate used with the wrong number of arguments."""
    kind = ErrorKind.ARITY_MISMATCH


class UndefinedPredicate(OntologyError):
    """Predicate is neither a known type nor a known relationship."""
    kind = ErrorKind.UNDEFINED_PREDICATE

    def __init__(self, message: str, suggestion: str, suggestions: Optional[List[str]] = None):
        super().__init__(message, suggestions)
        self.suggestion = suggestion


class TranslationError(Exception):
    """Base class for failures while turning text into Prolog."""
    kind: ErrorKind = ErrorKind.MALFORMED_OUTPUT


class MalformedOutput(TranslationError):
    """The generation service produced output that could not be parsed.

    The raw text is kept so it can be fed back into the next attempt.
    `usage` holds the generation that produced it, if any.
    """
    kind = ErrorKind.MALFORMED_OUTPUT

    def __init__(self, message: str, raw: str = "", usage=None):
        super().__init__(message)
        self.raw = raw
        self.usage = usage


class TranslationExhausted(TranslationError):
    """Every attempt of every strategy failed."""
    kind = ErrorKind.TRANSLATION_EXHAUSTED

    def __init__(self, message: str, last_feedback: Optional[str] = None, invocations: int = 0):
        super().__init__(message)
        self.last_feedback = last_feedback
        self.invocations = invocations


class NotAnAssertion(TranslationError):
    """Translation produced a query where a fact or rule was expected."""
    kind = ErrorKind.NOT_AN_ASSERTION


class NotAQuery(TranslationError):
    """Translation produced a fact or rule where a query was expected."""
    kind = ErrorKind.NOT_A_QUERY


class NoSolutionFound(Exception):
    """A query had no solutions."""
    kind = ErrorKind.NO_SOLUTION_FOUND


class Cancelled(Exception):
    """The surrounding operation was abandoned or timed out."""
    kind = ErrorKind.CANCELLED
