"""
Unification over mcr.prolog.terms.

- unify(t1, t2, theta): most general unifier extending theta, or None
- substitute(t, theta): apply a substitution to a term
- rename(clause, suffix): fresh variable names for a clause instance
"""
from __future__ import annotations

from typing import Dict, Optional

from mcr.prolog.terms import Atom, Clause, Number, Struct, Term, Var

Substitution = Dict[str, Term]


def walk(term: Term, theta: Substitution) -> Term:
    """Follow variable bindings until reaching a non-variable or an unbound variable."""
    while isinstance(term, Var) and term.name in theta:
        term = theta[term.name]
    return term


def substitute(term: Term, theta: Substitution) -> Term:
    term = walk(term, theta)
    if isinstance(term, Struct):
        return Struct(term.functor, tuple(substitute(arg, theta) for arg in term.args))
    return term


def occurs_check(var: Var, term: Term, theta: Substitution) -> bool:
    term = walk(term, theta)
    if isinstance(term, Var):
        return term.name == var.name
    if isinstance(term, Struct):
        return any(occurs_check(var, arg, theta) for arg in term.args)
    return False


def unify(t1: Term, t2: Term, theta: Optional[Substitution] = None) -> Optional[Substitution]:
    """Unify two terms, returning the extended substitution or None.

    The input substitution is never mutated, so callers can keep it for
    backtracking.
    """
    if theta is None:
        theta = {}
    t1 = walk(t1, theta)
    t2 = walk(t2, theta)

    if isinstance(t1, Number) and isinstance(t2, Number):
        # 1 and 1.0 are different terms
        if type(t1.value) is type(t2.value) and t1.value == t2.value:
            return theta
        return None
    if t1 == t2:
        return theta
    if isinstance(t1, Var):
        return _bind(t1, t2, theta)
    if isinstance(t2, Var):
        return _bind(t2, t1, theta)
    if isinstance(t1, Atom) and isinstance(t2, Atom):
        return None
    if isinstance(t1, Struct) and isinstance(t2, Struct):
        if t1.functor != t2.functor or t1.arity != t2.arity:
            return None
        for a1, a2 in zip(t1.args, t2.args):
            theta = unify(a1, a2, theta)
            if theta is None:
                return None
        return theta
    return None


def _bind(var: Var, term: Term, theta: Substitution) -> Optional[Substitution]:
    if occurs_check(var, term, theta):
        return None
    extended = dict(theta)
    extended[var.name] = term
    return extended


def rename_term(term: Term, suffix: str) -> Term:
    if isinstance(term, Var):
        return Var(f"{term.name}#{suffix}")
    if isinstance(term, Struct):
        return Struct(term.functor, tuple(rename_term(arg, suffix) for arg in term.args))
    return term


def rename(clause: Clause, suffix: str) -> Clause:
    """Rename apart so a clause instance shares no variables with the goal."""
    body = rename_term(clause.body, suffix) if clause.body is not None else None
    return Clause(rename_term(clause.head, suffix), body)
