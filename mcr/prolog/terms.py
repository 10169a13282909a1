"""Term structures for Prolog clause text.

- Atom: constants (tweety, 'New York', [])
- Number: integer and float constants
- Var: logical variables (X, _Tail)
- Struct: compound terms with a functor and arguments
- Clause: a fact (no body) or a rule (head :- body)

Terms are immutable and hashable so they can be used directly as
substitution values during resolution.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

_PLAIN_ATOM = re.compile(r"^[a-z][a-zA-Z0-9_]*$")
_SYMBOL_ATOM = re.compile(r"^[+\-*/\\^<>=~:.?@#&$]+$")
_SOLO_ATOMS = {"[]", "!", ";", "{}", ","}

# Operators rendered infix, with their priorities
INFIX_OPERATORS: Dict[str, Tuple[int, str]] = {
    ":-": (1200, "xfx"),
    ";": (1100, "xfy"),
    "->": (1050, "xfy"),
    ",": (1000, "xfy"),
    "=": (700, "xfx"),
    "\\=": (700, "xfx"),
    "==": (700, "xfx"),
    "\\==": (700, "xfx"),
    "is": (700, "xfx"),
    "<": (700, "xfx"),
    ">": (700, "xfx"),
    "=<": (700, "xfx"),
    ">=": (700, "xfx"),
    "=:=": (700, "xfx"),
    "=\\=": (700, "xfx"),
    "+": (500, "yfx"),
    "-": (500, "yfx"),
    "*": (400, "yfx"),
    "/": (400, "yfx"),
    "//": (400, "yfx"),
    "mod": (400, "yfx"),
}

PREFIX_OPERATORS: Dict[str, Tuple[int, str]] = {
    ":-": (1200, "fx"),
    "?-": (1200, "fx"),
    "\\+": (900, "fy"),
    "-": (200, "fy"),
}


class ClauseKind(str, Enum):
    """What a piece of Prolog text is, judged by its shape."""
    FACT = "fact"
    RULE = "rule"
    QUERY = "query"


def format_atom(name: str) -> str:
    """Render an atom name, quoting it when it is not a plain or symbolic atom."""
    if _PLAIN_ATOM.match(name) or name in _SOLO_ATOMS or _SYMBOL_ATOM.match(name):
        return name
    escaped = name.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


@dataclass(frozen=True)
class Var:
    """Logical variable. Names start with an uppercase letter or underscore."""
    name: str

    def variables(self) -> List[str]:
        return [self.name]

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Atom:
    """Constant symbol."""
    name: str

    def variables(self) -> List[str]:
        return []

    def __str__(self) -> str:
        return format_atom(self.name)


@dataclass(frozen=True)
class Number:
    """Integer or float constant."""
    value: Union[int, float]

    def variables(self) -> List[str]:
        return []

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Struct:
    """Compound term, e.g. parent(tom, X)."""
    functor: str
    args: Tuple["Term", ...] = field(default_factory=tuple)

    @property
    def arity(self) -> int:
        return len(self.args)

    @property
    def indicator(self) -> str:
        return f"{self.functor}/{self.arity}"

    def variables(self) -> List[str]:
        seen: List[str] = []
        for arg in self.args:
            for name in arg.variables():
                if name not in seen:
                    seen.append(name)
        return seen

    def __str__(self) -> str:
        if self.functor == "." and self.arity == 2:
            return _format_list(self)
        if self.arity == 2 and self.functor in INFIX_OPERATORS:
            priority, kind = INFIX_OPERATORS[self.functor]
            left = _format_operand(self.args[0], priority if kind == "yfx" else priority - 1)
            right = _format_operand(self.args[1], priority if kind == "xfy" else priority - 1)
            if self.functor == ",":
                return f"{left}, {right}"
            return f"{left} {self.functor} {right}"
        if self.arity == 1 and self.functor in PREFIX_OPERATORS:
            priority, kind = PREFIX_OPERATORS[self.functor]
            operand = _format_operand(self.args[0], priority if kind == "fy" else priority - 1)
            if self.functor == "-" and not isinstance(self.args[0], Struct):
                return f"-{operand}"
            return f"{self.functor} {operand}"
        args = ", ".join(_format_argument(arg) for arg in self.args)
        return f"{format_atom(self.functor)}({args})"


Term = Union[Var, Atom, Number, Struct]

NIL = Atom("[]")
TRUE = Atom("true")


def is_callable(term: Term) -> bool:
    """Atoms and compound terms can be used as goals or clause heads."""
    return isinstance(term, (Atom, Struct))


def goal_name(term: Term) -> Optional[str]:
    if isinstance(term, Atom):
        return term.name
    if isinstance(term, Struct):
        return term.functor
    return None


def goal_args(term: Term) -> Tuple[Term, ...]:
    if isinstance(term, Struct):
        return term.args
    return ()


def make_list(items: List[Term], tail: Term = NIL) -> Term:
    result = tail
    for item in reversed(items):
        result = Struct(".", (item, result))
    return result


def conjuncts(term: Term) -> List[Term]:
    """Flatten a top-level conjunction (a, b, c) into its goals."""
    if isinstance(term, Struct) and term.functor == "," and term.arity == 2:
        return conjuncts(term.args[0]) + conjuncts(term.args[1])
    return [term]


def _priority(term: Term) -> int:
    """Priority of the operator a term is written with; 0 for plain terms."""
    if not isinstance(term, Struct):
        return 0
    if term.arity == 2 and term.functor in INFIX_OPERATORS:
        return INFIX_OPERATORS[term.functor][0]
    if term.arity == 1 and term.functor in PREFIX_OPERATORS:
        return PREFIX_OPERATORS[term.functor][0]
    return 0


def _format_operand(term: Term, max_priority: int) -> str:
    if _priority(term) > max_priority:
        return f"({term})"
    return str(term)


def _format_argument(term: Term) -> str:
    # Arguments are parsed at priority 999, so conjunctions need parentheses
    return _format_operand(term, 999)


def _format_list(term: Struct) -> str:
    items: List[str] = []
    current: Term = term
    while isinstance(current, Struct) and current.functor == "." and current.arity == 2:
        items.append(_format_argument(current.args[0]))
        current = current.args[1]
    if current == NIL:
        return f"[{', '.join(items)}]"
    return f"[{', '.join(items)}|{current}]"


@dataclass(frozen=True)
class Clause:
    """Horn clause: head :- body. A fact has no body."""
    head: Term
    body: Optional[Term] = None

    @property
    def is_fact(self) -> bool:
        return self.body is None

    @property
    def is_rule(self) -> bool:
        return self.body is not None

    @property
    def kind(self) -> ClauseKind:
        return ClauseKind.RULE if self.is_rule else ClauseKind.FACT

    def goals(self) -> List[Term]:
        """Top-level body goals, in order."""
        if self.body is None:
            return []
        return conjuncts(self.body)

    def __str__(self) -> str:
        if self.body is None:
            return f"{self.head}."
        return f"{self.head} :- {self.body}."
