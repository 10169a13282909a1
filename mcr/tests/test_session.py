"""Tests for reasoning sessions.

Natural-language translation uses a table-driven strategy so the tests do
not need a model; the sub-symbolic fallback uses a mocked generation
service.
"""

import asyncio
import json
import unittest
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

from mcr.core.results import TranslationResult
from mcr.core.session import Session
from mcr.interfaces.generation import Generation, GenerationService
from mcr.interfaces.translation import TranslationStrategy
from mcr.prolog.parser import classify
from mcr.utils.exceptions import ConfigError, ErrorKind

BIRD_ONTOLOGY = {
    "types": ["canary", "bird", "has_wings"],
    "relationships": ["has_wings_count"],
    "constraints": [],
    "synonyms": {}
}

TRANSLATIONS = {
    "Tweety is a canary.": "canary(tweety).",
    "All canaries are birds.": "bird(X) :- canary(X).",
    "All birds have wings.": "has_wings(X) :- bird(X).",
    "Does Tweety have wings?": "has_wings(tweety)",
    "Is Tweety a bird?": "bird(tweety).",
    "Tweety is a penguin.": "penguin(tweety).",
}


class TableStrategy(TranslationStrategy):
    """Looks translations up in a table; tokens are counted per call."""

    def __init__(self, table: Dict[str, str], delay: float = 0.0):
        self.table = table
        self.delay = delay
        self.calls = 0

    @property
    def name(self) -> str:
        return "table"

    async def translate(self, text: str, ontology_terms: List[str], feedback: Optional[str] = None) -> TranslationResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        content = self.table[text]
        return TranslationResult(kind=classify(content), content=content, strategy=self.name,
                                 prompt_tokens=20, completion_tokens=5, latency=0.01)


class BrokenStrategy(TranslationStrategy):
    @property
    def name(self) -> str:
        return "broken"

    async def translate(self, text: str, ontology_terms: List[str], feedback: Optional[str] = None) -> TranslationResult:
        raise RuntimeError("backend exploded")


class TestSessionAssertions(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.strategy = TableStrategy(TRANSLATIONS)
        self.session = Session(ontology=BIRD_ONTOLOGY, strategies=[self.strategy])

    async def test_tweety_has_wings(self):
        for statement in ["Tweety is a canary.", "All canaries are birds.", "All birds have wings."]:
            result = await self.session.assert_statement(statement)
            self.assertTrue(result.success, result.error)
            self.assertEqual(result.original_text, statement)

        result = await self.session.query("has_wings(tweety).")
        self.assertTrue(result.success)
        self.assertEqual(result.bindings, [{}])
        self.assertEqual(result.confidence, 1.0)
        self.assertEqual(result.source, "symbolic")
        self.assertEqual(result.explanation, "Directly proven from knowledge graph.")

        result = await self.session.nquery("Does Tweety have wings?")
        self.assertTrue(result.success)
        self.assertEqual(result.prolog_query, "has_wings(tweety)")
        self.assertEqual(result.original_text, "Does Tweety have wings?")

    async def test_assert_prolog_normalizes(self):
        result = await self.session.assert_prolog("bird(X):-canary(X).")
        self.assertTrue(result.success)
        self.assertEqual(result.symbolic_representation, "bird(X) :- canary(X).")
        self.assertEqual(self.session.program, ["bird(X) :- canary(X)."])

    async def test_undefined_predicate_rejected(self):
        result = await self.session.assert_statement("Tweety is a penguin.")
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.UNDEFINED_PREDICATE)
        self.assertIn("penguin", result.error)
        self.assertEqual(self.session.program, [])

    async def test_arity_mismatch_rejected(self):
        result = await self.session.assert_prolog("canary(tweety, polly).")
        self.assertEqual(result.error_kind, ErrorKind.ARITY_MISMATCH)
        self.assertIn("canary expects 1 argument, got 2", result.error)

    async def test_suggestions_reported(self):
        result = await self.session.assert_prolog("canari(tweety).")
        self.assertEqual(result.suggestions, ["canary"])

    async def test_missing_period(self):
        result = await self.session.assert_prolog("canary(tweety)")
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.MALFORMED_CLAUSE_SYNTAX)

    async def test_query_translation_is_not_an_assertion(self):
        result = await self.session.assert_statement("Does Tweety have wings?")
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.NOT_AN_ASSERTION)
        self.assertEqual(self.session.program, [])

    async def test_fact_translation_is_not_a_query(self):
        result = await self.session.nquery("Is Tweety a bird?")
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.NOT_A_QUERY)

    async def test_convenience_assertions(self):
        self.assertTrue((await self.session.add_fact("tweety", "canary")).success)
        self.assertTrue((await self.session.add_relationship("tweety", "has_wings_count", "2")).success)
        self.assertTrue((await self.session.add_rule("bird(X) :- canary(X).")).success)
        self.assertFalse((await self.session.add_rule("bird(tweety).")).success)
        self.assertEqual(
            self.session.program,
            ["canary(tweety).", "has_wings_count(tweety, 2).", "bird(X) :- canary(X)."]
        )

    async def test_retract(self):
        await self.session.add_fact("tweety", "canary")
        result = await self.session.retract_prolog("canary( tweety ).")
        self.assertTrue(result.success)
        self.assertFalse((await self.session.query("canary(tweety)")).success)
        result = await self.session.remove_fact("tweety", "canary")
        self.assertFalse(result.success)
        self.assertIn("Clause not found", result.error)

    async def test_empty_input_raises(self):
        with self.assertRaises(ValueError):
            await self.session.assert_prolog("  ")
        with self.assertRaises(ValueError):
            await self.session.query("")
        with self.assertRaises(ValueError):
            await self.session.assert_statement("")

    async def test_no_pipeline(self):
        session = Session(ontology=BIRD_ONTOLOGY)
        self.assertIsNone(session.pipeline)
        result = await session.assert_statement("Tweety is a canary.")
        self.assertFalse(result.success)
        self.assertIn("No translation strategies", result.error)
        self.assertEqual(result.original_text, "Tweety is a canary.")
        result = await session.nquery("Does Tweety have wings?")
        self.assertFalse(result.success)
        self.assertIn("No translation strategies", result.error)

    async def test_failing_strategy_reported(self):
        session = Session(ontology=BIRD_ONTOLOGY, strategies=[BrokenStrategy()],
                          config={"translation": {"retry_delay": 0}})
        result = await session.assert_statement("Tweety is a canary.")
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.TRANSLATION_EXHAUSTED)
        self.assertIn("backend exploded", result.error)
        self.assertEqual(session.program, [])

    async def test_non_ascii_digits_rejected(self):
        result = await self.session.assert_prolog("canary(\u00b2).")
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.MALFORMED_CLAUSE_SYNTAX)
        self.assertEqual(self.session.program, [])


class TestSessionQueries(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.session = Session(
            ontology=BIRD_ONTOLOGY,
            program=["canary(tweety).", "canary(polly).", "bird(X) :- canary(X)."]
        )

    async def test_bindings(self):
        result = await self.session.query("bird(X)")
        self.assertEqual(result.bindings, [{"X": "tweety"}, {"X": "polly"}])
        self.assertEqual(result.prolog_query, "bird(X)")

    async def test_no_solution(self):
        result = await self.session.query("bird(sam)")
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.NO_SOLUTION_FOUND)
        self.assertEqual(result.confidence, 0.0)
        self.assertEqual(result.explanation, "No direct proof found in knowledge graph.")

    async def test_query_checked_against_ontology(self):
        result = await self.session.query("penguin(X)")
        self.assertEqual(result.error_kind, ErrorKind.UNDEFINED_PREDICATE)

    async def test_malformed_query(self):
        result = await self.session.query("bird(X")
        self.assertEqual(result.error_kind, ErrorKind.MALFORMED_CLAUSE_SYNTAX)

    async def test_sub_symbolic_fallback(self):
        service = MagicMock(spec=GenerationService)
        service.generate = AsyncMock(return_value=Generation(
            text="Probably yes, sam looks like a bird.", prompt_tokens=40, completion_tokens=9, latency=0.3
        ))
        session = Session(ontology=BIRD_ONTOLOGY, generation_service=service, strategies=[TableStrategy({})],
                          program=["canary(tweety)."])

        result = await session.query("bird(sam)", allow_sub_symbolic_fallback=True)
        self.assertTrue(result.success)
        self.assertEqual(result.confidence, 0.5)
        self.assertEqual(result.source, "sub_symbolic")
        self.assertEqual(result.answer, "Probably yes, sam looks like a bird.")
        prompt = service.generate.call_args.args[0]
        self.assertIn("canary(tweety).", prompt)
        self.assertIn("Please answer the following query: bird(sam)", prompt)
        self.assertEqual(session.usage().calls, 1)

    async def test_fallback_for_predicate_outside_ontology(self):
        service = MagicMock(spec=GenerationService)
        service.generate = AsyncMock(return_value=Generation(
            text="Tweety is a canary, not a penguin.", prompt_tokens=30, completion_tokens=8, latency=0.2
        ))
        session = Session(ontology=BIRD_ONTOLOGY, generation_service=service, strategies=[TableStrategy({})],
                          program=["canary(tweety)."])

        result = await session.query("penguin(tweety)", allow_sub_symbolic_fallback=True)
        self.assertTrue(result.success)
        self.assertEqual(result.source, "sub_symbolic")
        self.assertEqual(result.confidence, 0.5)
        service.generate.assert_awaited_once()

        result = await session.query("penguin(tweety)")
        self.assertEqual(result.error_kind, ErrorKind.UNDEFINED_PREDICATE)
        service.generate.assert_awaited_once()

    async def test_fallback_generation_error(self):
        service = MagicMock(spec=GenerationService)
        service.generate = AsyncMock(side_effect=RuntimeError("connection reset"))
        session = Session(ontology=BIRD_ONTOLOGY, generation_service=service, strategies=[TableStrategy({})])
        result = await session.query("bird(sam)", allow_sub_symbolic_fallback=True)
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.PROVIDER_ERROR)

    async def test_fallback_needs_flag(self):
        service = MagicMock(spec=GenerationService)
        service.generate = AsyncMock()
        session = Session(ontology=BIRD_ONTOLOGY, generation_service=service, strategies=[TableStrategy({})])
        result = await session.query("bird(sam)")
        self.assertFalse(result.success)
        service.generate.assert_not_called()

    async def test_timeout_reports_cancelled(self):
        session = Session(ontology=BIRD_ONTOLOGY, strategies=[TableStrategy(TRANSLATIONS, delay=5)])
        result = await session.assert_statement("Tweety is a canary.", timeout=0.05)
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.CANCELLED)
        self.assertEqual(session.program, [])

    async def test_timeout_during_retry_backoff(self):
        """Test a timeout that lands in the sleep between rounds."""
        invalid = {"Tweety is a canary.": "Tweety is a canary"}
        session = Session(
            ontology=BIRD_ONTOLOGY,
            strategies=[TableStrategy(invalid), TableStrategy(invalid)],
            config={"translation": {"max_attempts": 3, "retry_delay": 5.0}}
        )
        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await session.assert_statement("Tweety is a canary.", timeout=0.1)
        self.assertLess(loop.time() - started, 2.0)
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.CANCELLED)
        self.assertEqual(session.program, [])

    async def test_knowledge_graph(self):
        self.assertEqual(
            self.session.get_knowledge_graph(),
            "canary(tweety).\ncanary(polly).\nbird(X) :- canary(X)."
        )
        graph = self.session.get_knowledge_graph("json")
        self.assertEqual(graph["facts"], ["canary(tweety).", "canary(polly)."])
        self.assertEqual(graph["rules"], ["bird(X) :- canary(X)."])
        self.assertEqual(graph["entities"], ["canary", "bird", "has_wings"])
        with self.assertRaises(ValueError):
            self.session.get_knowledge_graph("yaml")

    async def test_clear(self):
        self.session.add_type("penguin")
        result = await self.session.clear()
        self.assertTrue(result.success)
        self.assertEqual(self.session.program, [])
        self.assertFalse(self.session.ontology.is_defined("penguin"))
        self.assertFalse((await self.session.query("canary(tweety)")).success)

    async def test_clear_keeps_ontology(self):
        self.session.add_type("penguin")
        await self.session.clear(reset_ontology=False)
        self.assertTrue(self.session.ontology.is_defined("penguin"))


class TestSessionOntology(unittest.IsolatedAsyncioTestCase):
    async def test_reload_drops_invalid_clauses(self):
        session = Session(ontology={"types": ["animal"]}, program=["animal(cat)."])
        self.assertTrue((await session.query("animal(cat).")).success)

        report = await session.reload_ontology({"types": ["pet"]})
        self.assertEqual(report.kept, [])
        self.assertEqual([item.clause for item in report.dropped], ["animal(cat)."])
        self.assertEqual(report.dropped[0].error_kind, ErrorKind.UNDEFINED_PREDICATE)
        self.assertEqual(session.program, [])
        self.assertFalse((await session.query("animal(cat).")).success)

    async def test_reload_keeps_valid_clauses(self):
        session = Session(ontology={"types": ["animal", "pet"]}, program=["animal(cat).", "pet(rex)."])
        report = await session.reload_ontology({"types": ["pet"]})
        self.assertEqual(report.kept, ["pet(rex)."])
        self.assertEqual(session.get_ontology()["types"], ["pet"])

    async def test_reload_rejects_bad_config(self):
        session = Session(ontology={"types": ["animal"]})
        with self.assertRaises(ConfigError):
            await session.reload_ontology({"types": "pet"})

    async def test_ontology_mutations(self):
        session = Session(ontology={"types": ["animal"]})
        self.assertTrue(session.add_type("fish").success)
        self.assertTrue(session.define_relationship_type("eats").success)
        self.assertTrue(session.add_synonym("creature", "animal").success)
        self.assertTrue(session.add_constraint("no_cannibalism").success)
        result = session.add_type("Fish")
        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.INVALID_PREDICATE_NAME)
        self.assertTrue((await session.assert_prolog("eats(shark, fish).")).success)
        self.assertTrue((await session.assert_prolog("creature(rex).")).success)

    async def test_initial_program_filtered(self):
        session = Session(ontology={"types": ["animal"]}, program=["animal(cat).", "plant(rose).", "animal(dog"])
        self.assertEqual(session.program, ["animal(cat)."])


class TestSessionState(unittest.IsolatedAsyncioTestCase):
    async def test_save_and_load(self):
        session = Session(session_id="s-1", ontology=BIRD_ONTOLOGY, program=["canary(tweety).", "bird(X) :- canary(X)."])
        state = session.save_state()
        self.assertEqual(state["sessionId"], "s-1")

        restored = Session(ontology={"types": ["other"]})
        report = await restored.load_state(session.save_state_json())
        self.assertTrue(report.success)
        self.assertEqual(restored.session_id, "s-1")
        self.assertEqual(restored.program, session.program)
        self.assertEqual(restored.get_ontology(), session.get_ontology())
        self.assertTrue((await restored.query("bird(tweety)")).success)

    async def test_load_skips_invalid_clauses(self):
        session = Session()
        report = await session.load_state({
            "sessionId": "s-2",
            "program": ["bird(tweety).", "fish(nemo).", "bird(polly"],
            "ontology": {"types": ["bird"]}
        })
        self.assertEqual(report.kept, ["bird(tweety)."])
        self.assertEqual(len(report.dropped), 2)
        self.assertEqual(report.dropped[1].error_kind, ErrorKind.MALFORMED_CLAUSE_SYNTAX)

    async def test_load_rejects_bad_state(self):
        session = Session()
        with self.assertRaises(ConfigError):
            await session.load_state("{not json")
        with self.assertRaises(ConfigError):
            await session.load_state(json.dumps({"program": []}))


class TestSessionConcurrency(unittest.IsolatedAsyncioTestCase):
    async def test_concurrent_assertions_keep_call_order(self):
        session = Session(ontology=BIRD_ONTOLOGY)
        clauses = [f"canary(c{i})." for i in range(20)]
        results = await asyncio.gather(*(session.assert_prolog(clause) for clause in clauses))
        self.assertTrue(all(result.success for result in results))
        self.assertEqual(session.program, clauses)
        answer = await session.query("canary(X)")
        self.assertEqual([binding["X"] for binding in answer.bindings], [f"c{i}" for i in range(20)])

    async def test_concurrent_assertions_and_queries(self):
        session = Session(ontology=BIRD_ONTOLOGY, program=["bird(X) :- canary(X)."])
        operations = []
        for i in range(10):
            operations.append(session.assert_prolog(f"canary(c{i})."))
            operations.append(session.query(f"bird(c{i})"))
        results = await asyncio.gather(*operations)
        self.assertTrue(all(result.success for result in results))
        self.assertEqual(len(session.program), 11)

    async def test_sessions_do_not_block_each_other(self):
        first = Session(ontology=BIRD_ONTOLOGY)
        second = Session(ontology=BIRD_ONTOLOGY)
        async with first._lock:
            pending = asyncio.create_task(first.assert_prolog("canary(tweety)."))
            result = await asyncio.wait_for(second.assert_prolog("canary(polly)."), timeout=1)
            self.assertTrue(result.success)
            self.assertFalse(pending.done())
        self.assertTrue((await pending).success)
        self.assertEqual(first.program, ["canary(tweety)."])
        self.assertEqual(second.program, ["canary(polly)."])

    async def test_concurrent_translations_counted(self):
        strategy = TableStrategy(TRANSLATIONS, delay=0.01)
        session = Session(ontology=BIRD_ONTOLOGY, strategies=[strategy])
        statements = ["Tweety is a canary.", "All canaries are birds.", "All birds have wings."]
        results = await asyncio.gather(*(session.assert_statement(text) for text in statements))
        self.assertTrue(all(result.success for result in results))
        self.assertEqual(sorted(session.program), sorted(TRANSLATIONS[text] for text in statements))
        self.assertEqual(session.usage().calls, 3)
        self.assertEqual(session.usage().prompt_tokens, 60)


class TestSessionUsage(unittest.IsolatedAsyncioTestCase):
    async def test_usage_counts_translations(self):
        updates = []
        session = Session(ontology=BIRD_ONTOLOGY, strategies=[TableStrategy(TRANSLATIONS)],
                          usage_callback=lambda *args: updates.append(args))
        await session.assert_statement("Tweety is a canary.")
        await session.nquery("Does Tweety have wings?")
        usage = session.usage()
        self.assertEqual(usage.calls, 2)
        self.assertEqual(usage.prompt_tokens, 40)
        self.assertEqual(usage.completion_tokens, 10)
        self.assertEqual(len(updates), 2)

    async def test_symbolic_operations_are_free(self):
        session = Session(ontology=BIRD_ONTOLOGY)
        await session.assert_prolog("canary(tweety).")
        await session.query("canary(X)")
        self.assertEqual(session.usage().calls, 0)


if __name__ == '__main__':
    unittest.main()
