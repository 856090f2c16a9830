# =============================================================================
# BM25 Keyword Search — rank_bm25
# =============================================================================
#
# Scores a set of documents against a list of keywords with Okapi BM25.
# BM25 is the lexical half of hybrid search: it rewards exact term matches
# (names, places, jargon like "pre-approval") that embeddings tend to blur.
#
# DESIGN DECISION: Index built per call, not persisted.
# The corpora here (an email archive, a chunked book) are small enough that
# building BM25Okapi takes milliseconds. Rebuilding avoids a stale index
# when the corpus changes.
#
# DESIGN DECISION: Return every document, including zero scores.
# Rank fusion needs the full ranking list; filtering is a separate step
# (top_results) for callers that only want matches.
#
# DESIGN DECISION: IDF is log(1 + (N - n + 0.5) / (n + 0.5)).
# BM25Okapi's plain log goes negative for terms in most documents, which
# inverts the ranking and pushes a lone matching document below zero.
# =============================================================================

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

from rank_bm25 import BM25Okapi

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


class _PositiveIdfBM25(BM25Okapi):
    """BM25Okapi with an IDF that is always positive."""

    def _calc_idf(self, nd: dict[str, int]) -> None:
        for word, freq in nd.items():
            self.idf[word] = math.log(
                1 + (self.corpus_size - freq + 0.5) / (freq + 0.5)
            )


@dataclass
class BM25Result:
    """Score of one document; `index` points into the input sequence."""

    score: float
    index: int


def tokenize(text: str) -> list[str]:
    """Lowercase and split on anything that isn't a letter or digit."""
    return _TOKEN_PATTERN.findall(text.lower())


def search_bm25(
    documents: Sequence[str],
    keywords: Sequence[str],
) -> list[BM25Result]:
    """
    Score every document against the keywords.

    Multi-word keywords contribute each of their words, so
    ["pre-approval"] searches for "pre" and "approval".

    Args:
        documents: The texts to search.
        keywords: Search keywords.

    Returns:
        One BM25Result per document, sorted by score (highest first).
        Ties keep document order.
    """
    if not documents:
        return []

    tokenized_corpus = [tokenize(doc) for doc in documents]
    query_tokens = [token for kw in keywords for token in tokenize(kw)]

    # BM25Okapi divides by the average document length
    if not query_tokens or not any(tokenized_corpus):
        scores = [0.0] * len(documents)
    else:
        bm25 = _PositiveIdfBM25(tokenized_corpus)
        scores = [float(s) for s in bm25.get_scores(query_tokens)]

    results = [
        BM25Result(score=score, index=i) for i, score in enumerate(scores)
    ]
    results.sort(key=lambda r: r.score, reverse=True)

    logger.debug(
        "BM25 scored %d documents for keywords=%s (top=%.3f)",
        len(documents), list(keywords), results[0].score,
    )
    return results


def top_results(
    results: Sequence[BM25Result],
    limit: int = 10,
    min_score: float = 0.0,
) -> list[BM25Result]:
    """Keep results scoring above `min_score`, truncated to `limit`."""
    return [r for r in results if r.score > min_score][:limit]
