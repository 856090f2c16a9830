# =============================================================================
# Evaluation Runner — Suites, A/B Variants and Golden Datasets
# =============================================================================
#
# An eval suite is: a list of cases (input + expected), a task that turns
# an input into an output (usually by calling an agent), and scorers that
# grade each output against its expectation.
#
# 1. Load cases from a golden dataset JSON file (or generate synthetic ones)
# 2. run_suite(): run the task on every case, apply every scorer
# 3. Aggregate per-scorer averages
# 4. run_variants(): repeat the same suite with different tasks (e.g. the
#    same agent on different models) for an A/B comparison
#
# DESIGN DECISION: A failing task scores 0, it does not abort the run.
# One flaky LLM call should cost one case, not the whole evaluation.
#
# DESIGN DECISION: Tool-choice evals run tools dry.
# The agent sees the real tool names, descriptions and schemas, but the
# tools do nothing, so evaluating "does it pick createTodos?" never writes
# to the user's todo list.
#
# DESIGN DECISION: DeepEval metrics run via metric.a_measure() (async).
# LLM-as-judge metrics cost money and are opt-in per suite; deterministic
# metrics live in eval_metrics.py.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from agentlab.agents.tool_loop import Tool, run_tool_loop
from agentlab.config import settings
from agentlab.services.eval_metrics import MetricResult, matches_expected_tool
from agentlab.services.llm import LLMProvider, generate_object

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures — Golden Dataset
# ---------------------------------------------------------------------------


@dataclass
class GoldenTestCase:
    """A single test case from a golden dataset."""

    id: str
    input: str
    expected: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)


@dataclass
class GoldenDataset:
    dataset_name: str
    description: str
    version: str
    thresholds: dict[str, float]
    test_cases: list[GoldenTestCase]


# ---------------------------------------------------------------------------
# Data Structures — Suites & Results
# ---------------------------------------------------------------------------


@dataclass
class EvalCase:
    input: Any
    expected: Any = None
    id: str | None = None


@dataclass
class Scorer:
    """A named scorer: (output, expected) → score in [0, 1]."""

    name: str
    description: str
    score: Callable[[Any, Any], float | MetricResult]


@dataclass
class EvalSuite:
    name: str
    cases: list[EvalCase]
    task: Callable[[Any], Awaitable[Any]]
    scorers: list[Scorer]


@dataclass
class MetricScore:
    """Score and reasoning for a single metric on a single case."""

    score: float
    reason: str | None = None


@dataclass
class CaseResult:
    case: EvalCase
    output: Any
    scores: dict[str, MetricScore]
    error: str | None = None
    duration_ms: int = 0


@dataclass
class SuiteResult:
    suite_name: str
    variant: str | None
    results: list[CaseResult]
    averages: dict[str, float]

    @property
    def overall_score(self) -> float:
        if not self.averages:
            return 0.0
        return round(sum(self.averages.values()) / len(self.averages), 4)

    def passed(self, thresholds: Mapping[str, float] | None = None) -> bool:
        """True if every scorer's average meets its threshold."""
        thresholds = thresholds or {}
        return all(
            avg >= thresholds.get(name, settings.eval_default_threshold)
            for name, avg in self.averages.items()
        )


# ---------------------------------------------------------------------------
# Dataset Loading
# ---------------------------------------------------------------------------


def load_dataset(dataset_name: str) -> GoldenDataset:
    """
    Load and validate a golden dataset from a JSON file.

    Args:
        dataset_name: Filename without extension, e.g. "default" →
            <eval_dataset_dir>/default.json

    Raises:
        FileNotFoundError: If the dataset file does not exist.
        ValueError: If the dataset is malformed or missing required fields.
    """
    filepath = Path(settings.eval_dataset_dir) / f"{dataset_name}.json"
    if not filepath.exists():
        raise FileNotFoundError(
            f"Golden dataset '{dataset_name}' not found at {filepath}"
        )

    with open(filepath, encoding="utf-8") as f:
        raw = json.load(f)

    for required in ("dataset_name", "test_cases"):
        if required not in raw:
            raise ValueError(
                f"Golden dataset missing required field: '{required}'"
            )
    if not raw["test_cases"]:
        raise ValueError("Golden dataset has no test cases")

    test_cases = []
    for tc in raw["test_cases"]:
        if "id" not in tc or "input" not in tc:
            raise ValueError(
                f"Test case missing required field 'id' or 'input': {tc}"
            )
        test_cases.append(GoldenTestCase(
            id=tc["id"],
            input=tc["input"],
            expected=tc.get("expected", {}),
            tags=tc.get("tags", []),
        ))

    return GoldenDataset(
        dataset_name=raw["dataset_name"],
        description=raw.get("description", ""),
        version=raw.get("version", "1.0"),
        thresholds=raw.get("thresholds", {}),
        test_cases=test_cases,
    )


def cases_from_dataset(dataset: GoldenDataset) -> list[EvalCase]:
    return [
        EvalCase(input=tc.input, expected=tc.expected, id=tc.id)
        for tc in dataset.test_cases
    ]


# ---------------------------------------------------------------------------
# Running Suites
# ---------------------------------------------------------------------------


def _to_metric(value: float | MetricResult) -> MetricScore:
    if isinstance(value, MetricResult):
        return MetricScore(score=value.score, reason=value.reason)
    return MetricScore(score=float(value))


async def _run_case(suite: EvalSuite, case: EvalCase) -> CaseResult:
    start = time.monotonic()
    try:
        output = await suite.task(case.input)
    except Exception as e:
        logger.warning("Case %s failed during task: %s", case.id or case.input, e)
        return CaseResult(
            case=case,
            output=None,
            scores={
                s.name: MetricScore(score=0.0, reason=f"Task error: {e}")
                for s in suite.scorers
            },
            error=str(e),
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    scores = {
        scorer.name: _to_metric(scorer.score(output, case.expected))
        for scorer in suite.scorers
    }
    return CaseResult(
        case=case,
        output=output,
        scores=scores,
        duration_ms=int((time.monotonic() - start) * 1000),
    )


async def run_suite(
    suite: EvalSuite,
    variant: str | None = None,
) -> SuiteResult:
    """
    Run every case through the suite's task and score it.

    Cases run sequentially to stay clear of provider rate limits.
    """
    logger.info(
        "Running eval suite '%s'%s: %d case(s), %d scorer(s)",
        suite.name, f" [{variant}]" if variant else "",
        len(suite.cases), len(suite.scorers),
    )

    results = [await _run_case(suite, case) for case in suite.cases]

    averages: dict[str, float] = {}
    for scorer in suite.scorers:
        scores = [r.scores[scorer.name].score for r in results]
        if scores:
            averages[scorer.name] = round(sum(scores) / len(scores), 4)

    result = SuiteResult(
        suite_name=suite.name, variant=variant,
        results=results, averages=averages,
    )
    logger.info(
        "Suite '%s'%s complete: overall=%.3f %s",
        suite.name, f" [{variant}]" if variant else "",
        result.overall_score, averages,
    )
    return result


async def run_variants(
    suite: EvalSuite,
    variants: Mapping[str, Callable[[Any], Awaitable[Any]]],
) -> dict[str, SuiteResult]:
    """
    Run the same cases and scorers once per variant task.

    Variants run concurrently; cases within a variant stay sequential.
    """
    names = list(variants)
    results = await asyncio.gather(*(
        run_suite(
            EvalSuite(
                name=suite.name, cases=suite.cases,
                task=variants[name], scorers=suite.scorers,
            ),
            variant=name,
        )
        for name in names
    ))
    return dict(zip(names, results, strict=True))


# ---------------------------------------------------------------------------
# Tool-Choice Evaluation
# ---------------------------------------------------------------------------


@dataclass
class ToolCallOutput:
    tool_calls: list[str]
    text: str | None


def dry_run(tools: Sequence[Tool]) -> list[Tool]:
    """Copies of `tools` whose execute() does nothing."""

    async def _noop(_input: BaseModel) -> str:
        return "ok"

    return [
        Tool(t.name, t.description, t.input_model, _noop) for t in tools
    ]


def tool_call_task(
    llm: LLMProvider,
    tools: Sequence[Tool],
    system: str = "You are a helpful assistant.",
) -> Callable[[Any], Awaitable[ToolCallOutput]]:
    """
    A task that gives the model one turn and records which tool it picks.

    Input is a user message string or a list of role/content messages.
    """
    dry_tools = dry_run(tools)

    async def _task(case_input: Any) -> ToolCallOutput:
        result = await run_tool_loop(
            llm, system=system, prompt=case_input,
            tools=dry_tools, max_steps=1,
        )
        return ToolCallOutput(
            tool_calls=[step.call.name for step in result.steps],
            text=result.answer,
        )

    return _task


MATCHES_EXPECTED_TOOL = Scorer(
    name="matches_expected_tool",
    description="The agent called the expected tool",
    score=lambda output, expected: matches_expected_tool(
        output.tool_calls, (expected or {}).get("tool"),
    ),
)


def default_tools() -> list[Tool]:
    """Every subagent tool, for tool-choice evals."""
    from agentlab.agents.subagents import (
        scheduler_agent,
        student_notes_agent,
        todos_agent,
    )

    return [
        *todos_agent.build_tools(todos_agent.todos_db()),
        *student_notes_agent.build_tools(student_notes_agent.notes_db()),
        *scheduler_agent.build_tools(scheduler_agent.calendar_db()),
    ]


async def run_tool_choice_eval(
    dataset_name: str = "default",
    provider_ids: Sequence[str] | None = None,
) -> dict[str, SuiteResult]:
    """
    Evaluate tool choice on a golden dataset, optionally across providers.

    Args:
        dataset_name: Golden dataset to load.
        provider_ids: e.g. ["anthropic/claude-sonnet-4-6",
            "openai_compatible/gpt-4o"]. Defaults to the configured
            provider only.

    Raises:
        FileNotFoundError, ValueError: On dataset or provider errors.
    """
    from agentlab.services.llm import create_provider_from_id, get_llm_provider

    dataset = load_dataset(dataset_name)
    tools = default_tools()

    if provider_ids:
        variants = {
            pid: tool_call_task(create_provider_from_id(pid), tools)
            for pid in provider_ids
        }
    else:
        variants = {"default": tool_call_task(get_llm_provider(), tools)}

    suite = EvalSuite(
        name=dataset.dataset_name,
        cases=cases_from_dataset(dataset),
        task=next(iter(variants.values())),
        scorers=[MATCHES_EXPECTED_TOOL],
    )
    return await run_variants(suite, variants)


# ---------------------------------------------------------------------------
# Synthetic Cases
# ---------------------------------------------------------------------------

SCENARIO_TYPES: dict[str, str] = {
    "happy-path": "A clear request that maps to exactly one tool",
    "ambiguous": (
        "A vague request that could match several tools; no tool should "
        "be called without clarification"
    ),
    "missing-information": (
        "A request missing critical details the tool needs; no tool "
        "should be called"
    ),
    "conversational": "Small talk or thanks with no action needed",
    "adversarial": (
        "A request that sounds like an action but is really a question, "
        "or tries to trick the assistant into the wrong tool"
    ),
}


class SyntheticCase(BaseModel):
    scenario: str
    input: str = Field(description="The user's message")
    expected_tool: str | None = Field(
        description="The tool that should be called, or null if none should be",
    )


class SyntheticCases(BaseModel):
    cases: list[SyntheticCase]


_SYNTHETIC_SYSTEM = """You generate realistic user inputs for evaluating \
an AI assistant's tool selection.

Cover every scenario type below, spread evenly:
{scenarios}

Make inputs feel natural, not stereotypical. Vary length and tone."""


async def generate_synthetic_cases(
    llm: LLMProvider,
    description: str,
    count: int = 10,
    tool_names: Sequence[str] = (),
) -> list[EvalCase]:
    """
    Generate synthetic eval cases, including adversarial ones.

    Args:
        llm: Provider to generate with.
        description: What the assistant under test does.
        count: Number of cases to request.
        tool_names: Tools the assistant has; expected tools outside this
            list are treated as "no tool".

    Raises:
        ValueError: If the reply cannot be parsed.
    """
    scenarios = "\n".join(f"- {k}: {v}" for k, v in SCENARIO_TYPES.items())
    prompt = (
        f"The assistant: {description}\n\n"
        f"Its tools: {', '.join(tool_names) or '(unspecified)'}\n\n"
        f"Generate {count} test cases."
    )
    generated, _ = await generate_object(
        llm,
        SyntheticCases,
        messages=[{"role": "user", "content": prompt}],
        system=_SYNTHETIC_SYSTEM.format(scenarios=scenarios),
        temperature=0.8,
    )

    known = set(tool_names)
    cases = []
    for i, case in enumerate(generated.cases[:count], 1):
        tool = case.expected_tool
        if known and tool not in known:
            tool = None
        cases.append(EvalCase(
            input=case.input,
            expected={"tool": tool, "scenario": case.scenario},
            id=f"synthetic-{i}",
        ))

    logger.info("Generated %d synthetic case(s)", len(cases))
    return cases


# ---------------------------------------------------------------------------
# LLM-as-Judge Metrics
# ---------------------------------------------------------------------------


async def compute_deepeval_metrics(
    question: str,
    answer: str,
    context: Sequence[str],
    thresholds: Mapping[str, float] | None = None,
) -> dict[str, MetricScore]:
    """
    Run DeepEval answer relevancy and faithfulness on one answer.

    Metrics run sequentially to avoid LLM rate limits. A metric that
    errors scores 0.0 with the error as its reason.
    """
    from deepeval.metrics import AnswerRelevancyMetric, FaithfulnessMetric
    from deepeval.test_case import LLMTestCase

    thresholds = thresholds or {}
    deepeval_case = LLMTestCase(
        input=question,
        actual_output=answer,
        retrieval_context=list(context) or None,
    )
    judge_model = settings.eval_judge_model

    metrics_to_run = [
        ("answer_relevancy", AnswerRelevancyMetric(
            threshold=thresholds.get("answer_relevancy", 0.7),
            model=judge_model,
        )),
        ("faithfulness", FaithfulnessMetric(
            threshold=thresholds.get("faithfulness", 0.7),
            model=judge_model,
        )),
    ]

    scores: dict[str, MetricScore] = {}
    for name, metric in metrics_to_run:
        try:
            await metric.a_measure(deepeval_case)
            scores[name] = MetricScore(
                score=metric.score if metric.score is not None else 0.0,
                reason=metric.reason,
            )
        except Exception as e:
            logger.warning("DeepEval metric %s failed: %s", name, e)
            scores[name] = MetricScore(score=0.0, reason=f"Error: {e}")

    return scores
