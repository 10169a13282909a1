"""In-process Prolog engine.

Backward chaining (SLD resolution) over the parsed clause set, with
depth-first search, clause order preserved and chronological
backtracking implemented through generators. Supports the control and
comparison built-ins that clause bodies produced by a session use:
conjunction, disjunction, if-then-else, negation as failure, unification,
term comparison and arithmetic evaluation. There is no cut, no assert
from inside a proof and no I/O.
"""
from __future__ import annotations

import itertools
import operator
from typing import Callable, Dict, Iterator, List, Optional

from mcr.interfaces.knowledge_engine import KnowledgeEngine, Solution
from mcr.prolog.parser import is_valid_syntax, parse_clause, parse_query
from mcr.prolog.terms import Atom, Clause, Number, Struct, Term, Var
from mcr.prolog.unification import Substitution, rename, substitute, unify, walk
from mcr.utils.exceptions import MalformedClauseSyntax, ProviderError
from mcr.utils.logging import get_logger

logger = get_logger(__name__)

_COMPARISONS: Dict[str, Callable] = {
    "<": operator.lt,
    ">": operator.gt,
    "=<": operator.le,
    ">=": operator.ge,
    "=:=": operator.eq,
    "=\\=": operator.ne,
}

_ARITHMETIC: Dict[str, Callable] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "//": operator.floordiv,
    "mod": operator.mod,
    "min": min,
    "max": max,
}

# Goals handled by the engine itself rather than by clause lookup
BUILTIN_PREDICATES = frozenset(
    {"true", "fail", "false", ",", ";", "->", "\\+", "=", "\\=", "==", "\\==", "is"}
    | set(_COMPARISONS)
)


class PrologEngine(KnowledgeEngine):
    """Default knowledge engine, resolving queries in process."""

    def __init__(self, max_depth: int = 200):
        self.max_depth = max_depth
        self._clauses: List[Clause] = []
        self._index: Dict[str, List[Clause]] = {}
        self._counter = itertools.count()
        self._depth_hit = False

    def assert_all(self, clauses: List[str]) -> None:
        parsed = []
        for text in clauses:
            clause = parse_clause(text)
            parsed.append(clause)
        for clause in parsed:
            self._add(clause)

    def _add(self, clause: Clause) -> None:
        self._clauses.append(clause)
        self._index.setdefault(_indicator(clause.head), []).append(clause)

    def retract(self, clause: str) -> bool:
        target = str(parse_clause(clause))
        for existing in self._clauses:
            if str(existing) == target:
                self._clauses.remove(existing)
                self._index[_indicator(existing.head)].remove(existing)
                return True
        return False

    def clear(self) -> None:
        self._clauses = []
        self._index = {}

    def render_theory(self) -> str:
        return "\n".join(str(clause) for clause in self._clauses)

    def clauses(self) -> List[Clause]:
        return list(self._clauses)

    def parse_check(self, text: str) -> bool:
        return is_valid_syntax(text)

    def syntax_error(self, text: str) -> Optional[str]:
        if text is None or not text.strip():
            return "Empty output is not a Prolog clause or query."
        try:
            if text.strip().endswith("."):
                parse_clause(text)
            else:
                parse_query(text)
        except MalformedClauseSyntax as e:
            return str(e)
        return None

    def solve(self, query: str, max_solutions: Optional[int] = None) -> Solution:
        goal = parse_query(query)
        query_vars = [name for name in goal.variables() if not name.startswith("_")]
        bindings: List[Dict[str, str]] = []
        self._depth_hit = False
        try:
            for theta in self._solve([goal], {}, 0):
                bindings.append(_render_bindings(query_vars, theta))
                if max_solutions is not None and len(bindings) >= max_solutions:
                    break
        except RecursionError as e:
            raise ProviderError(f"Solver ran out of stack while proving {goal}") from e
        if self._depth_hit:
            logger.warning(f"Depth limit {self.max_depth} reached while solving {goal}; some branches were pruned")
        return Solution(success=bool(bindings), bindings=bindings)

    def _solve(self, goals: List[Term], theta: Substitution, depth: int) -> Iterator[Substitution]:
        if not goals:
            yield theta
            return
        first, rest = goals[0], goals[1:]
        for theta1 in self._solve_goal(first, theta, depth):
            yield from self._solve(rest, theta1, depth)

    def _solve_goal(self, goal: Term, theta: Substitution, depth: int) -> Iterator[Substitution]:
        goal = walk(goal, theta)
        if isinstance(goal, Var):
            return
        if isinstance(goal, Number):
            raise ProviderError(f"Type error: {goal} is not callable")

        name = goal.name if isinstance(goal, Atom) else goal.functor
        args = goal.args if isinstance(goal, Struct) else ()

        if name in BUILTIN_PREDICATES:
            handled = self._builtin(name, args, theta, depth)
            if handled is not None:
                yield from handled
                return

        if depth >= self.max_depth:
            self._depth_hit = True
            return

        for clause in list(self._index.get(f"{name}/{len(args)}", [])):
            renamed = rename(clause, str(next(self._counter)))
            theta1 = unify(goal, renamed.head, theta)
            if theta1 is None:
                continue
            yield from self._solve(renamed.goals(), theta1, depth + 1)

    def _builtin(self, name: str, args: tuple, theta: Substitution, depth: int) -> Optional[Iterator[Substitution]]:
        arity = len(args)
        if arity == 0:
            if name == "true":
                return iter([theta])
            if name in ("fail", "false"):
                return iter([])
            return None
        if arity == 1 and name == "\\+":
            return self._negation(args[0], theta, depth)
        if arity != 2:
            return None
        left, right = args
        if name == ",":
            return self._solve([left, right], theta, depth)
        if name == ";":
            return self._disjunction(left, right, theta, depth)
        if name == "->":
            return self._if_then_else(left, right, None, theta, depth)
        if name == "=":
            theta1 = unify(left, right, theta)
            return iter([theta1] if theta1 is not None else [])
        if name == "\\=":
            return iter([theta] if unify(left, right, theta) is None else [])
        if name == "==":
            return iter([theta] if _identical(left, right, theta) else [])
        if name == "\\==":
            return iter([] if _identical(left, right, theta) else [theta])
        if name == "is":
            value = Number(self._evaluate(right, theta))
            theta1 = unify(left, value, theta)
            return iter([theta1] if theta1 is not None else [])
        if name in _COMPARISONS:
            result = _COMPARISONS[name](self._evaluate(left, theta), self._evaluate(right, theta))
            return iter([theta] if result else [])
        return None

    def _negation(self, goal: Term, theta: Substitution, depth: int) -> Iterator[Substitution]:
        for _ in self._solve([goal], theta, depth):
            return
        yield theta

    def _disjunction(self, left: Term, right: Term, theta: Substitution, depth: int) -> Iterator[Substitution]:
        if isinstance(left, Struct) and left.functor == "->" and left.arity == 2:
            yield from self._if_then_else(left.args[0], left.args[1], right, theta, depth)
            return
        yield from self._solve([left], theta, depth)
        yield from self._solve([right], theta, depth)

    def _if_then_else(self, condition: Term, then: Term, otherwise: Optional[Term],
                      theta: Substitution, depth: int) -> Iterator[Substitution]:
        for theta1 in self._solve([condition], theta, depth):
            yield from self._solve([then], theta1, depth)
            return
        if otherwise is not None:
            yield from self._solve([otherwise], theta, depth)

    def _evaluate(self, term: Term, theta: Substitution):
        term = walk(term, theta)
        if isinstance(term, Number):
            return term.value
        if isinstance(term, Var):
            raise ProviderError("Instantiation error: arithmetic on an unbound variable")
        if isinstance(term, Struct):
            if term.arity == 1 and term.functor == "-":
                return -self._evaluate(term.args[0], theta)
            if term.arity == 1 and term.functor == "abs":
                return abs(self._evaluate(term.args[0], theta))
            if term.arity == 2 and term.functor in _ARITHMETIC:
                left = self._evaluate(term.args[0], theta)
                right = self._evaluate(term.args[1], theta)
                try:
                    return _ARITHMETIC[term.functor](left, right)
                except ZeroDivisionError as e:
                    raise ProviderError(f"Evaluation error: division by zero in {term}") from e
        raise ProviderError(f"Type error: {substitute(term, theta)} is not evaluable")


def _indicator(head: Term) -> str:
    if isinstance(head, Struct):
        return head.indicator
    return f"{head.name}/0"


def _identical(left: Term, right: Term, theta: Substitution) -> bool:
    return str(substitute(left, theta)) == str(substitute(right, theta))


def _render_bindings(names: List[str], theta: Substitution) -> Dict[str, str]:
    fresh: Dict[str, str] = {}

    def readable(term: Term) -> Term:
        if isinstance(term, Var):
            if term.name not in fresh:
                fresh[term.name] = f"_{len(fresh)}"
            return Var(fresh[term.name])
        if isinstance(term, Struct):
            return Struct(term.functor, tuple(readable(arg) for arg in term.args))
        return term

    return {name: str(readable(substitute(Var(name), theta))) for name in names}
