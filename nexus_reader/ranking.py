"""Query ranking over a candidate item set."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, fields
from typing import List, Optional, Sequence, Tuple, Union

from .embeddings import EmbeddingBackend, cosine_similarity
from .models import Item, RankedItem

logger = logging.getLogger(__name__)

CANDIDATE_LIMIT = 30
KEYWORD_SCORE = 1.0


def _item_values(item: Item) -> dict:
    return {field.name: getattr(item, field.name) for field in fields(Item)}


def with_score(item: Item, score: float) -> RankedItem:
    return RankedItem(**_item_values(item), score=score)


def without_score(item: Item) -> Item:
    """Return ``item`` as a plain :class:`Item`, dropping any ranking score."""
    if type(item) is Item:
        return item
    return Item(**_item_values(item))


def compose_item_text(item: Item) -> str:
    return f"{item.title}: {item.excerpt}"


@dataclass
class EmbeddingRanker:
    """Rank candidates by cosine similarity of their embeddings to the query."""

    backend: EmbeddingBackend
    candidate_limit: int = CANDIDATE_LIMIT

    async def _score_candidate(
        self, query_vector: List[float], item: Item
    ) -> float:
        vector = await self.backend.embed(compose_item_text(item))
        if not vector:
            raise RuntimeError("empty embedding")
        return cosine_similarity(query_vector, vector)

    async def rank(self, query: str, candidates: Sequence[Item]) -> List[RankedItem]:
        try:
            query_vector = await self.backend.embed(query)
        except Exception:  # noqa: BLE001 - search degrades to no results
            logger.exception("Semantic search failed while embedding the query")
            return []
        if not query_vector:
            logger.error("Semantic search failed: empty query embedding")
            return []

        subset = list(candidates[: self.candidate_limit])
        outcomes = await asyncio.gather(
            *(self._score_candidate(query_vector, item) for item in subset),
            return_exceptions=True,
        )

        scored: List[Tuple[float, int, Item]] = []
        for position, (item, outcome) in enumerate(zip(subset, outcomes)):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "Skipping item %s due to embedding error: %s", item.link, outcome
                )
                continue
            scored.append((outcome, position, item))

        scored.sort(key=lambda entry: (-entry[0], entry[1]))
        logger.info(
            "Ranked %d of %d candidates for query %r",
            len(scored),
            len(subset),
            query,
        )
        return [with_score(item, score) for score, _, item in scored]


@dataclass
class KeywordRanker:
    """Case-insensitive substring matching used without an embedding backend."""

    async def rank(self, query: str, candidates: Sequence[Item]) -> List[RankedItem]:
        needle = query.lower()
        return [
            with_score(item, KEYWORD_SCORE)
            for item in candidates
            if needle in item.title.lower() or needle in item.excerpt.lower()
        ]


Ranker = Union[EmbeddingRanker, KeywordRanker]


def select_ranker(
    backend: Optional[EmbeddingBackend], candidate_limit: int = CANDIDATE_LIMIT
) -> Ranker:
    """Pick the ranking strategy based on embedding availability."""
    if backend is None:
        logger.warning("Embedding backend unavailable. Falling back to keyword search.")
        return KeywordRanker()
    return EmbeddingRanker(backend=backend, candidate_limit=candidate_limit)


async def semantic_search(
    query: Optional[str],
    candidates: Sequence[Item],
    backend: Optional[EmbeddingBackend],
    candidate_limit: int = CANDIDATE_LIMIT,
) -> Optional[List[RankedItem]]:
    """Rank ``candidates`` against ``query``.

    Returns ``None`` for an empty or whitespace-only query, meaning no search
    is active.
    """
    if not query or not query.strip():
        return None
    ranker = select_ranker(backend, candidate_limit=candidate_limit)
    return await ranker.rank(query.strip(), candidates)
