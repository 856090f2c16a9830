# =============================================================================
# Deterministic Evaluation Metrics
# =============================================================================
#
# Scorers that need no LLM: they compare an agent's tool calls or a
# retriever's ranked ids against expectations. Free and instant, so they
# can run on every case of every variant.
#
#   matches_expected_tool  — did the agent call the expected tool (or, when
#                            none is expected, refrain from calling any)?
#   called_tool            — did the agent call a specific tool at all?
#   retrieval_recall_at_k  — share of expected ids in the top k
#   mean_reciprocal_rank   — 1 / rank of the first expected id
#
# Every metric returns a MetricResult with a 0.0–1.0 score and a short
# human-readable reason for failure analysis.
# =============================================================================

from __future__ import annotations

from collections.abc import Hashable, Sequence
from dataclasses import dataclass


@dataclass
class MetricResult:
    score: float
    reason: str


def matches_expected_tool(
    tool_calls: Sequence[str],
    expected_tool: str | None,
) -> MetricResult:
    """
    Score 1.0 if the expected tool was called.

    expected_tool=None means the agent should NOT call any tool (ambiguous
    or conversational input); the score is 1.0 only if no tool was called.
    """
    if expected_tool is None:
        if not tool_calls:
            return MetricResult(1.0, "No tool called, as expected")
        return MetricResult(
            0.0, f"Expected no tool call, got {list(tool_calls)}",
        )

    if expected_tool in tool_calls:
        return MetricResult(1.0, f"Called {expected_tool}")
    return MetricResult(
        0.0, f"Expected {expected_tool}, got {list(tool_calls) or 'no calls'}",
    )


def called_tool(tool_calls: Sequence[str], tool_name: str) -> MetricResult:
    if tool_name in tool_calls:
        return MetricResult(1.0, f"{tool_name} was called")
    return MetricResult(0.0, f"{tool_name} was not called")


def retrieval_recall_at_k(
    retrieved_ids: Sequence[Hashable],
    expected_ids: Sequence[Hashable],
    k: int | None = None,
) -> MetricResult:
    """
    Fraction of expected ids found in the first k retrieved ids.

    With no expected ids there is nothing to miss: score 1.0.
    """
    if not expected_ids:
        return MetricResult(1.0, "No expected ids specified")

    top = list(retrieved_ids if k is None else retrieved_ids[:k])
    found = [i for i in expected_ids if i in top]
    missing = [i for i in expected_ids if i not in top]

    reason = f"Found {len(found)}/{len(expected_ids)} expected ids"
    if missing:
        reason += f"; missing {missing}"
    return MetricResult(len(found) / len(expected_ids), reason)


def mean_reciprocal_rank(
    retrieved_ids: Sequence[Hashable],
    expected_ids: Sequence[Hashable],
) -> MetricResult:
    """1 / (1-based rank of the first relevant id), 0.0 if none retrieved."""
    if not expected_ids:
        return MetricResult(1.0, "No expected ids specified")

    expected = set(expected_ids)
    for rank, doc_id in enumerate(retrieved_ids, 1):
        if doc_id in expected:
            return MetricResult(1.0 / rank, f"First relevant id at rank {rank}")
    return MetricResult(0.0, "No relevant id retrieved")
