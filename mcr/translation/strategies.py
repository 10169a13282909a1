"""Translation strategies.

- DirectStrategy: the model writes the clause or query itself
- FewShotStrategy: same contract, more worked examples in the prompt
- StructuredStrategy: the model writes JSON that is rendered into Prolog
- AgenticStrategy: the model picks the next reasoning action
"""

import re
from typing import Any, Dict, List, Optional

import json_repair
from jsonschema import ValidationError as SchemaValidationError
from jsonschema import validate as json_validate

from mcr.core.results import AgentAction, TranslationResult
from mcr.interfaces.generation import Generation, GenerationService
from mcr.interfaces.translation import TranslationStrategy
from mcr.prolog.parser import classify
from mcr.prolog.terms import format_atom
from mcr.translation.prompts import PromptLibrary
from mcr.utils.exceptions import MalformedOutput
from mcr.utils.logging import get_logger

_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)
_VARIABLE = re.compile(r"^[A-Z_][A-Za-z0-9_]*$")
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")

_PREDICATE_SCHEMA = {
    "type": "object",
    "properties": {
        "predicate": {"type": "string", "minLength": 1},
        "args": {"type": "array", "items": {"type": ["string", "number"]}}
    },
    "required": ["predicate"]
}

STRUCTURED_OUTPUT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "kind": {"enum": ["fact", "rule", "query"]},
        "head": _PREDICATE_SCHEMA,
        "body": {"type": "array", "items": _PREDICATE_SCHEMA}
    },
    "required": ["kind", "head"],
    "if": {"properties": {"kind": {"const": "rule"}}},
    "then": {"required": ["body"], "properties": {"body": {"minItems": 1}}}
}

AGENT_ACTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "action": {"enum": ["query", "assert", "conclude"]},
        "content": {"type": "string"},
        "answer": {"type": "string"},
        "explanation": {"type": "string"}
    },
    "required": ["action"],
    "allOf": [
        {
            "if": {"properties": {"action": {"enum": ["query", "assert"]}}},
            "then": {"required": ["content"], "properties": {"content": {"minLength": 1}}}
        },
        {
            "if": {"properties": {"action": {"const": "conclude"}}},
            "then": {"required": ["answer"]}
        }
    ]
}


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence and whitespace."""
    cleaned = text.strip()
    match = _FENCE.match(cleaned)
    if match:
        cleaned = match.group(1).strip()
    return cleaned


def parse_json_output(text: str) -> Dict[str, Any]:
    """Leniently parse a JSON object from model output."""
    cleaned = strip_code_fence(text)
    if cleaned.startswith("json"):
        cleaned = cleaned[4:]
    try:
        parsed = json_repair.loads(cleaned)
    except Exception as e:
        raise MalformedOutput(f"Output is not JSON: {e}", raw=text) from e
    if not isinstance(parsed, dict):
        raise MalformedOutput("Output is not a JSON object", raw=text)
    return parsed


def render_argument(arg: Any) -> str:
    if isinstance(arg, bool):
        return "true" if arg else "false"
    if isinstance(arg, (int, float)):
        return str(arg)
    arg = str(arg).strip()
    if _VARIABLE.match(arg) or _NUMBER.match(arg):
        return arg
    return format_atom(arg)


def render_predicate(node: Dict[str, Any]) -> str:
    name = node["predicate"].strip()
    args = node.get("args") or []
    if not args:
        return name
    return f"{name}({', '.join(render_argument(arg) for arg in args)})"


def render_structured(data: Dict[str, Any]) -> str:
    """Render validated structured output into clause or query text.

    Facts become `p(a, b).`, rules `h :- b1, b2.` and queries `p(a, b)`
    without a trailing period.
    """
    head = render_predicate(data["head"])
    kind = data["kind"]
    if kind == "fact":
        return f"{head}."
    if kind == "rule":
        body = ", ".join(render_predicate(goal) for goal in data["body"])
        return f"{head} :- {body}."
    return head


class GenerationStrategy(TranslationStrategy):
    """Common prompt-then-generate plumbing for model-backed strategies."""

    prompt_name: str = ""
    json_output: bool = False

    def __init__(self, generation_service: GenerationService, prompts: Optional[PromptLibrary] = None):
        self.generation_service = generation_service
        self.prompts = prompts or PromptLibrary()
        self.logger = get_logger(f"mcr.translation.{self.name}")

    async def _generate(self, context: Dict[str, Any]) -> Generation:
        prompt = self.prompts.load_prompt(self.prompt_name, context)
        return await self.generation_service.generate(prompt, json_output=self.json_output)

    def _result(self, content: str, generation: Generation, action: Optional[AgentAction] = None) -> TranslationResult:
        kind = None if action is not None and action.action == "conclude" else classify(content)
        return TranslationResult(
            kind=kind,
            content=content,
            strategy=self.name,
            prompt_tokens=generation.prompt_tokens,
            completion_tokens=generation.completion_tokens,
            latency=generation.latency,
            action=action
        )


class DirectStrategy(GenerationStrategy):
    """The generation output is the clause or query text."""

    name = "direct"
    prompt_name = "direct"

    async def translate(self, text: str, ontology_terms: List[str], feedback: Optional[str] = None) -> TranslationResult:
        generation = await self._generate({
            "text": text,
            "ontology_terms": ontology_terms,
            "feedback": feedback
        })
        content = strip_code_fence(generation.text)
        # few-shot examples show outputs in double quotes; models copy that
        if len(content) > 1 and content[0] == content[-1] == '"':
            content = content[1:-1].strip()
        if not content:
            raise MalformedOutput("Generation returned no Prolog text", raw=generation.text, usage=generation)
        return self._result(content, generation)


class FewShotStrategy(DirectStrategy):
    name = "few_shot"
    prompt_name = "few_shot"


class StructuredStrategy(GenerationStrategy):
    """The model describes the clause as JSON; rendering is deterministic."""

    name = "structured"
    prompt_name = "structured"
    json_output = True

    async def translate(self, text: str, ontology_terms: List[str], feedback: Optional[str] = None) -> TranslationResult:
        generation = await self._generate({
            "text": text,
            "ontology_terms": ontology_terms,
            "feedback": feedback
        })
        try:
            data = parse_json_output(generation.text)
            if "kind" not in data and "type" in data:
                data["kind"] = data.pop("type")
            json_validate(instance=data, schema=STRUCTURED_OUTPUT_SCHEMA)
        except MalformedOutput as e:
            e.usage = generation
            raise
        except SchemaValidationError as e:
            raise MalformedOutput(
                f"Structured output is missing required fields: {e.message}",
                raw=generation.text,
                usage=generation
            ) from e
        return self._result(render_structured(data), generation)


class AgenticStrategy(GenerationStrategy):
    """Chooses the next step of a reasoning task: query, assert or conclude."""

    name = "agentic"
    prompt_name = "agentic"
    json_output = True

    async def decide(
        self,
        task: str,
        ontology_terms: List[str],
        feedback: Optional[str] = None,
        program: Optional[List[str]] = None,
        steps: Optional[List[str]] = None
    ) -> TranslationResult:
        """Ask the model for the next action.

        Args:
            task: The reasoning task in natural language
            ontology_terms: Allowed predicate names and synonyms
            feedback: Result of the previous action
            program: Current clauses of the session
            steps: Descriptions of the steps taken so far

        Returns:
            TranslationResult whose `action` holds the decision

        Raises:
            MalformedOutput: Output is not a valid action
        """
        generation = await self._generate({
            "task": task,
            "ontology_terms": ontology_terms,
            "feedback": feedback,
            "program": program or [],
            "steps": steps or []
        })
        try:
            data = parse_json_output(generation.text)
            if "action" not in data and "type" in data:
                data["action"] = data.pop("type")
            json_validate(instance=data, schema=AGENT_ACTION_SCHEMA)
        except MalformedOutput as e:
            e.usage = generation
            raise
        except SchemaValidationError as e:
            raise MalformedOutput(
                f"Agentic output is not a valid action: {e.message}",
                raw=generation.text,
                usage=generation
            ) from e

        action = AgentAction(
            action=data["action"],
            content=strip_code_fence(data["content"]) if data.get("content") else None,
            answer=data.get("answer"),
            explanation=data.get("explanation")
        )
        self.logger.debug(f"Agent chose {action.action}: {action.content or action.answer}")
        content = action.answer if action.action == "conclude" else action.content
        return self._result(content, generation, action)

    async def translate(self, text: str, ontology_terms: List[str], feedback: Optional[str] = None) -> TranslationResult:
        return await self.decide(text, ontology_terms, feedback)
