"""Results of running one prompt across several models, and their aggregation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

_ERROR_PREFIX = "[ERROR]"


@dataclass
class InferResult:
    """The answer of one model to a prompt."""

    model: str
    provider: str
    response: str
    tokens: int = 0
    cost: float = 0.0
    latency_ms: int = 0

    @property
    def failed(self) -> bool:
        """Whether this result records an error."""
        return self.response.startswith(_ERROR_PREFIX)


@dataclass
class MatrixStats:
    """Summary figures over a set of inference results."""

    total_models: int
    successful: int
    failed: int
    total_tokens: int
    total_cost: float
    avg_latency_ms: float
    min_latency_ms: int
    max_latency_ms: int


def _normalize(text: str) -> str:
    return text.strip().lower()


def ensemble_vote(results: Sequence[InferResult]) -> str:
    """Return the most common answer, compared case-insensitively and trimmed.

    Failed results do not vote. On a tie the answer first seen later wins.
    If every result failed, the first result's response is returned.
    """
    if not results:
        return ""

    counts: dict[str, int] = {}
    for result in results:
        if result.failed:
            continue
        key = _normalize(result.response)
        counts[key] = counts.get(key, 0) + 1

    if not counts:
        return results[0].response

    best, best_count = "", -1
    for key, count in counts.items():
        if count >= best_count:
            best, best_count = key, count

    return next(
        (r.response for r in results if _normalize(r.response) == best), ""
    )


def matrix_stats(results: Sequence[InferResult]) -> MatrixStats:
    """Count successes and failures and sum tokens, cost and latency."""
    successful = sum(1 for r in results if not r.failed)
    latencies = [r.latency_ms for r in results]
    return MatrixStats(
        total_models=len(results),
        successful=successful,
        failed=len(results) - successful,
        total_tokens=sum(r.tokens for r in results),
        total_cost=sum((r.cost for r in results), 0.0),
        avg_latency_ms=sum(latencies) / len(latencies) if latencies else 0.0,
        min_latency_ms=min(latencies, default=0),
        max_latency_ms=max(latencies, default=0),
    )