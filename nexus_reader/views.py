"""View filtering over the aggregated corpus."""

from __future__ import annotations

import time
from typing import Container, List, Optional, Sequence

from .models import Item, RankedItem, ViewMode, ViewSelector

RECENCY_WINDOW_MS = 24 * 60 * 60 * 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


def filter_view(
    corpus: Sequence[Item],
    selector: ViewSelector,
    favorites: Container[str],
    now_ms: Optional[int] = None,
) -> List[Item]:
    """Return the subset of ``corpus`` visible under ``selector``.

    The recency window is measured from ``now_ms`` (wall clock by default) at
    call time, so the result can shrink between calls.
    """
    if selector.mode == ViewMode.TODAY:
        cutoff = (now_ms if now_ms is not None else _now_ms()) - RECENCY_WINDOW_MS
        return [item for item in corpus if item.timestamp > cutoff]
    if selector.mode == ViewMode.FAVORITES:
        return [item for item in corpus if item.id in favorites]
    if selector.mode == ViewMode.SOURCE and selector.source_id:
        return [item for item in corpus if item.source_id == selector.source_id]
    return list(corpus)


def resolve_display(
    corpus: Sequence[Item],
    selector: ViewSelector,
    favorites: Container[str],
    search_results: Optional[Sequence[RankedItem]] = None,
    now_ms: Optional[int] = None,
) -> List[Item]:
    """Return the display set; active search results supersede the view."""
    if search_results is not None:
        return list(search_results)
    return filter_view(corpus, selector, favorites, now_ms=now_ms)
