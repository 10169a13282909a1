"""Recursive-descent parser for Prolog clause and query text.

Handles the subset of standard Prolog syntax the session works with:
atoms (plain, quoted, symbolic), variables, numbers, compound terms with
arbitrarily nested arguments, lists, parenthesised terms and the usual
control, comparison and arithmetic operators. Operator terms are parsed
with priorities so `a :- b, c` and `p(f(a, b), c)` come out right.
"""
from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import List, Optional, Tuple

from mcr.prolog.terms import (
    INFIX_OPERATORS, PREFIX_OPERATORS, Atom, Clause, ClauseKind, Number,
    Struct, Term, Var, is_callable, make_list, NIL,
)
from mcr.utils.exceptions import MalformedClauseSyntax

_SYMBOL_CHARS = set("+-*/\\^<>=~:.?@#&$")
_PUNCT = set("()[]|,")
_DIGITS = set("0123456789")
_anonymous = itertools.count()


@dataclass
class Token:
    kind: str  # atom, qatom, var, int, float, punct, end, eof
    value: str
    position: int
    layout_before: bool = False


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    n = len(text)
    layout = False
    while i < n:
        ch = text[i]
        if ch.isspace():
            layout = True
            i += 1
            continue
        if ch == "%":
            while i < n and text[i] != "\n":
                i += 1
            layout = True
            continue
        if ch == "/" and text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                raise MalformedClauseSyntax(f"Unterminated block comment at position {i}")
            i = end + 2
            layout = True
            continue
        start = i
        if ch in _DIGITS:
            i = _scan_number(text, i)
            literal = text[start:i]
            kind = "float" if any(c in literal for c in ".eE") else "int"
            tokens.append(Token(kind, literal, start, layout))
        elif ch == "_" or ch.isupper():
            while i < n and (text[i].isalnum() or text[i] == "_"):
                i += 1
            tokens.append(Token("var", text[start:i], start, layout))
        elif ch.isalpha():
            while i < n and (text[i].isalnum() or text[i] == "_"):
                i += 1
            tokens.append(Token("atom", text[start:i], start, layout))
        elif ch in ("'", '"'):
            value, i = _scan_quoted(text, i)
            tokens.append(Token("qatom", value, start, layout))
        elif ch in _PUNCT:
            i += 1
            tokens.append(Token("punct", ch, start, layout))
        elif ch in ("!", ";"):
            i += 1
            tokens.append(Token("atom", ch, start, layout))
        elif ch in _SYMBOL_CHARS:
            while i < n and text[i] in _SYMBOL_CHARS:
                i += 1
            symbol = text[start:i]
            if symbol == "." and (i >= n or text[i].isspace() or text[i] == "%"):
                tokens.append(Token("end", ".", start, layout))
            elif symbol.endswith(".") and len(symbol) > 1 and (i >= n or text[i].isspace()):
                # symbol atom glued to the end token, e.g. "X = (+)."
                tokens.append(Token("atom", symbol[:-1], start, layout))
                tokens.append(Token("end", ".", i - 1, False))
            else:
                tokens.append(Token("atom", symbol, start, layout))
        else:
            raise MalformedClauseSyntax(f"Unexpected character {ch!r} at position {i}")
        layout = False
    tokens.append(Token("eof", "", n, layout))
    return tokens


def _scan_number(text: str, i: int) -> int:
    n = len(text)
    while i < n and text[i] in _DIGITS:
        i += 1
    if i + 1 < n and text[i] == "." and text[i + 1] in _DIGITS:
        i += 1
        while i < n and text[i] in _DIGITS:
            i += 1
    if i < n and text[i] in "eE":
        j = i + 1
        if j < n and text[j] in "+-":
            j += 1
        if j < n and text[j] in _DIGITS:
            i = j
            while i < n and text[i] in _DIGITS:
                i += 1
    return i


def _scan_quoted(text: str, i: int) -> Tuple[str, int]:
    quote = text[i]
    i += 1
    chars: List[str] = []
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\" and i + 1 < n:
            nxt = text[i + 1]
            chars.append({"n": "\n", "t": "\t"}.get(nxt, nxt))
            i += 2
            continue
        if ch == quote:
            if i + 1 < n and text[i + 1] == quote:
                chars.append(quote)
                i += 2
                continue
            return "".join(chars), i + 1
        chars.append(ch)
        i += 1
    raise MalformedClauseSyntax(f"Unterminated quoted atom starting at position {i}")


class Parser:
    """Operator-precedence parser over a token list."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0
        self._variables = {}

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != "eof":
            self.pos += 1
        return token

    def expect(self, kind: str, value: Optional[str] = None) -> Token:
        token = self.current
        if token.kind != kind or (value is not None and token.value != value):
            wanted = value or kind
            raise self.error(f"Expected {wanted!r}")
        return self.advance()

    def error(self, message: str) -> MalformedClauseSyntax:
        token = self.current
        found = "end of input" if token.kind == "eof" else repr(token.value)
        return MalformedClauseSyntax(f"{message} but found {found} at position {token.position} in: {self.text.strip()}")

    def at_end(self) -> bool:
        return self.current.kind in ("end", "eof")

    def parse(self, max_priority: int = 1200) -> Term:
        left, left_priority = self.parse_primary(max_priority)
        while True:
            token = self.current
            name = self._infix_name(token)
            if name is None:
                break
            priority, kind = INFIX_OPERATORS[name]
            if priority > max_priority:
                break
            left_max = priority if kind == "yfx" else priority - 1
            right_max = priority if kind == "xfy" else priority - 1
            if left_priority > left_max:
                break
            self.advance()
            right = self.parse(right_max)
            left, left_priority = Struct(name, (left, right)), priority
        return left

    def _infix_name(self, token: Token) -> Optional[str]:
        if token.kind == "punct" and token.value == ",":
            return ","
        if token.kind == "atom" and token.value in INFIX_OPERATORS:
            return token.value
        return None

    def _starts_term(self, token: Token) -> bool:
        if token.kind in ("var", "int", "float", "qatom"):
            return True
        if token.kind == "punct":
            return token.value in ("(", "[")
        if token.kind == "atom":
            return token.value not in INFIX_OPERATORS or token.value in PREFIX_OPERATORS
        return False

    def parse_primary(self, max_priority: int) -> Tuple[Term, int]:
        token = self.current
        if token.kind == "int":
            self.advance()
            return Number(int(token.value)), 0
        if token.kind == "float":
            self.advance()
            return Number(float(token.value)), 0
        if token.kind == "var":
            self.advance()
            return self._variable(token.value), 0
        if token.kind == "punct" and token.value == "(":
            self.advance()
            inner = self.parse(1200)
            self.expect("punct", ")")
            return inner, 0
        if token.kind == "punct" and token.value == "[":
            return self.parse_list(), 0
        if token.kind in ("atom", "qatom"):
            self.advance()
            name = token.value
            nxt = self.current
            if nxt.kind == "punct" and nxt.value == "(" and not nxt.layout_before:
                self.advance()
                args = [self.parse(999)]
                while self.current.kind == "punct" and self.current.value == ",":
                    self.advance()
                    args.append(self.parse(999))
                self.expect("punct", ")")
                return Struct(name, tuple(args)), 0
            if token.kind == "atom" and name == "-" and nxt.kind in ("int", "float") and not nxt.layout_before:
                self.advance()
                value = int(nxt.value) if nxt.kind == "int" else float(nxt.value)
                return Number(-value), 0
            if token.kind == "atom" and name in PREFIX_OPERATORS and self._starts_term(nxt):
                priority, kind = PREFIX_OPERATORS[name]
                if priority > max_priority:
                    priority = 999
                arg_max = priority if kind == "fy" else priority - 1
                operand = self.parse(arg_max)
                return Struct(name, (operand,)), priority
            priority = 0
            if token.kind == "atom" and (name in INFIX_OPERATORS or name in PREFIX_OPERATORS):
                priority = min(max_priority, 1201)
            return Atom(name), priority
        raise self.error("Expected a term")

    def parse_list(self) -> Term:
        self.expect("punct", "[")
        if self.current.kind == "punct" and self.current.value == "]":
            self.advance()
            return NIL
        items = [self.parse(999)]
        while self.current.kind == "punct" and self.current.value == ",":
            self.advance()
            items.append(self.parse(999))
        tail: Term = NIL
        if self.current.kind == "punct" and self.current.value == "|":
            self.advance()
            tail = self.parse(999)
        self.expect("punct", "]")
        return make_list(items, tail)

    def _variable(self, name: str) -> Var:
        if name == "_":
            return Var(f"_G{next(_anonymous)}")
        if name not in self._variables:
            self._variables[name] = Var(name)
        return self._variables[name]

    def reset_variables(self) -> None:
        self._variables = {}


def _clause_from_term(term: Term) -> Clause:
    if isinstance(term, Struct) and term.functor == ":-":
        if term.arity == 1:
            raise MalformedClauseSyntax(f"Directives are not supported: {term}")
        head, body = term.args
    else:
        head, body = term, None
    if not is_callable(head):
        raise MalformedClauseSyntax(f"Clause head must be an atom or compound term, got: {head}")
    if body is not None and not is_callable(body) and not isinstance(body, Var):
        raise MalformedClauseSyntax(f"Clause body must be callable, got: {body}")
    return Clause(head, body)


def parse_term(text: str) -> Term:
    """Parse one term, with or without a terminating period."""
    if text is None or not text.strip():
        raise MalformedClauseSyntax("Empty clause text")
    parser = Parser(text)
    term = parser.parse(1200)
    if parser.current.kind == "end":
        parser.advance()
    if parser.current.kind != "eof":
        raise parser.error("Expected end of clause")
    return term


def parse_clause(text: str) -> Clause:
    """Parse a single fact or rule. The trailing period is optional."""
    return _clause_from_term(parse_term(text))


def parse_program(text: str) -> List[Clause]:
    """Parse a sequence of period-terminated clauses."""
    parser = Parser(text)
    clauses: List[Clause] = []
    while parser.current.kind != "eof":
        parser.reset_variables()
        term = parser.parse(1200)
        parser.expect("end")
        clauses.append(_clause_from_term(term))
    return clauses


def parse_query(text: str) -> Term:
    """Parse a query goal; a leading '?-' and a trailing period are optional."""
    term = parse_term(text)
    if isinstance(term, Struct) and term.functor == "?-" and term.arity == 1:
        term = term.args[0]
    if not is_callable(term) and not isinstance(term, Var):
        raise MalformedClauseSyntax(f"Query must be callable, got: {term}")
    return term


def is_valid_syntax(text: Optional[str]) -> bool:
    """Pure syntax check: one clause (ending in '.') or one query."""
    if text is None or not text.strip():
        return False
    try:
        if text.strip().endswith("."):
            parse_clause(text)
        else:
            parse_query(text)
        return True
    except MalformedClauseSyntax:
        return False


def classify(text: str) -> ClauseKind:
    """Decide whether text is a fact, a rule or a query by its shape."""
    stripped = text.strip()
    if not stripped.endswith("."):
        return ClauseKind.QUERY
    try:
        return parse_clause(stripped).kind
    except MalformedClauseSyntax:
        return ClauseKind.RULE if ":-" in stripped else ClauseKind.FACT
