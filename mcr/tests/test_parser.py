import unittest

from mcr.prolog.parser import (
    classify, is_valid_syntax, parse_clause, parse_program, parse_query, tokenize,
)
from mcr.prolog.terms import Atom, ClauseKind, Number, Struct, Var, conjuncts
from mcr.utils.exceptions import MalformedClauseSyntax


class TestTokenizer(unittest.TestCase):
    def test_end_token(self):
        kinds = [token.kind for token in tokenize("bird(tweety).")]
        self.assertEqual(kinds, ["atom", "punct", "atom", "punct", "end", "eof"])

    def test_float_is_not_end(self):
        tokens = tokenize("X is 3.14.")
        self.assertEqual(tokens[2].kind, "float")
        self.assertEqual(tokens[3].kind, "end")

    def test_comments_skipped(self):
        tokens = tokenize("% a comment\nbird(tweety). /* block */")
        self.assertEqual(tokens[0].value, "bird")
        self.assertEqual(tokens[-1].kind, "eof")

    def test_unexpected_character(self):
        with self.assertRaises(MalformedClauseSyntax):
            tokenize("bird(tweety) {")

    def test_non_ascii_digits_rejected(self):
        with self.assertRaises(MalformedClauseSyntax):
            tokenize("bird(²).")
        with self.assertRaises(MalformedClauseSyntax):
            parse_clause("count(tweety, ٣).")
        self.assertFalse(is_valid_syntax("bird(²)."))


class TestParser(unittest.TestCase):
    def test_fact(self):
        clause = parse_clause("parent(tom, bob).")
        self.assertTrue(clause.is_fact)
        self.assertEqual(clause.head, Struct("parent", (Atom("tom"), Atom("bob"))))
        self.assertEqual(str(clause), "parent(tom, bob).")

    def test_atom_fact(self):
        clause = parse_clause("raining.")
        self.assertEqual(clause.head, Atom("raining"))

    def test_rule(self):
        clause = parse_clause("grandparent(X,Z):-parent(X,Y),parent(Y,Z).")
        self.assertTrue(clause.is_rule)
        self.assertEqual(len(clause.goals()), 2)
        self.assertEqual(str(clause), "grandparent(X, Z) :- parent(X, Y), parent(Y, Z).")

    def test_nested_arguments(self):
        """Test commas inside arguments stay inside their term."""
        clause = parse_clause("p(f(g(a, b), c), [1, 2|T]) :- q(h(x, y)), r(z).")
        head = clause.head
        self.assertEqual(head.arity, 2)
        self.assertEqual(head.args[0], Struct("f", (Struct("g", (Atom("a"), Atom("b"))), Atom("c"))))
        self.assertEqual([str(goal) for goal in clause.goals()], ["q(h(x, y))", "r(z)"])
        self.assertEqual(str(head.args[1]), "[1, 2|T]")

    def test_operators(self):
        goal = parse_query("X is 2 + 3 * 4, X > 10")
        first, second = conjuncts(goal)
        self.assertEqual(first, Struct("is", (Var("X"), Struct("+", (Number(2), Struct("*", (Number(3), Number(4))))))))
        self.assertEqual(second.functor, ">")

    def test_left_associative_minus(self):
        goal = parse_query("X is 10 - 3 - 2")
        self.assertEqual(goal.args[1], Struct("-", (Struct("-", (Number(10), Number(3))), Number(2))))
        self.assertEqual(str(goal.args[1]), "10 - 3 - 2")
        self.assertEqual(str(parse_query("X is 10 - (3 - 2)").args[1]), "10 - (3 - 2)")

    def test_rendering_round_trips(self):
        for text in [
            "p(X) :- a(X), b(X), c(X).",
            "p(X) :- (a(X) ; b(X)), \\+ c(X).",
            "p(X, Y) :- Y is (X + 1) * 2.",
            "p(X) :- q(X) -> r(X) ; s(X).",
        ]:
            with self.subTest(text=text):
                self.assertEqual(str(parse_clause(text)), text)

    def test_negative_number(self):
        goal = parse_query("X = -3")
        self.assertEqual(goal.args[1], Number(-3))

    def test_negation_and_disjunction(self):
        goal = parse_query("\\+ bird(X) ; fish(X)")
        self.assertEqual(goal.functor, ";")
        self.assertEqual(goal.args[0], Struct("\\+", (Struct("bird", (Var("X"),)),)))

    def test_quoted_atoms(self):
        clause = parse_clause("city('New York').")
        self.assertEqual(clause.head.args[0], Atom("New York"))
        self.assertEqual(str(clause), "city('New York').")

    def test_anonymous_variables_are_distinct(self):
        goal = parse_query("parent(_, _)")
        self.assertNotEqual(goal.args[0], goal.args[1])

    def test_query_prefix(self):
        self.assertEqual(parse_query("?- bird(X)."), Struct("bird", (Var("X"),)))

    def test_directive_rejected(self):
        with self.assertRaises(MalformedClauseSyntax):
            parse_clause(":- dynamic(bird/1).")

    def test_variable_head_rejected(self):
        with self.assertRaises(MalformedClauseSyntax):
            parse_clause("X :- bird(X).")

    def test_errors(self):
        for text in ["bird(tweety", "bird(tweety)) .", "bird(,).", "parent(tom bob).", ""]:
            with self.subTest(text=text):
                with self.assertRaises(MalformedClauseSyntax):
                    parse_clause(text)

    def test_program(self):
        clauses = parse_program("bird(tweety).\nflies(X) :- bird(X).\n")
        self.assertEqual([str(c) for c in clauses], ["bird(tweety).", "flies(X) :- bird(X)."])

    def test_is_valid_syntax(self):
        self.assertTrue(is_valid_syntax("bird(tweety)."))
        self.assertTrue(is_valid_syntax("bird(X)"))
        self.assertTrue(is_valid_syntax("has_wings(X) :- bird(X)."))
        self.assertFalse(is_valid_syntax("bird(tweety). bird(polly)."))
        self.assertFalse(is_valid_syntax("Tweety is a bird."))
        self.assertFalse(is_valid_syntax(""))
        self.assertFalse(is_valid_syntax(None))

    def test_classify(self):
        self.assertEqual(classify("bird(tweety)."), ClauseKind.FACT)
        self.assertEqual(classify("flies(X) :- bird(X)."), ClauseKind.RULE)
        self.assertEqual(classify("flies(X)"), ClauseKind.QUERY)


if __name__ == '__main__':
    unittest.main()
