"""Reader session: owns corpus, favorites, search and translation state."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .embeddings import EmbeddingBackend
from .feeds import PER_SOURCE_LIMIT, FeedTransport, aggregate
from .filler import BATCH_SIZE, DEBOUNCE_SECONDS, TranslationCacheFiller
from .models import FeedSource, Item, RankedItem, ViewMode, ViewSelector
from .ranking import CANDIDATE_LIMIT, semantic_search
from .store import FavoriteSet, KeyValueStore, load_locale, save_locale
from .translation import Translator
from .views import resolve_display

logger = logging.getLogger(__name__)


class ReaderSession:
    """Session context shared by the pipeline components.

    Construct it, ``await start()`` to aggregate and load stored preferences,
    and ``await close()`` when done. The aggregator writes the corpus, the
    favorite toggle writes favorites and the filler writes the translation
    cache; nothing else mutates them.
    """

    def __init__(
        self,
        sources: Sequence[FeedSource],
        transport: FeedTransport,
        store: KeyValueStore,
        *,
        embedder: Optional[EmbeddingBackend] = None,
        translator: Optional[Translator] = None,
        default_locale: str = "en",
        per_source_limit: int = PER_SOURCE_LIMIT,
        candidate_limit: int = CANDIDATE_LIMIT,
        debounce: float = DEBOUNCE_SECONDS,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        self.sources = list(sources)
        self._transport = transport
        self._store = store
        self._embedder = embedder
        self._per_source_limit = per_source_limit
        self._candidate_limit = candidate_limit
        self.default_locale = default_locale

        self.corpus: List[Item] = []
        self.favorites = FavoriteSet(store)
        self.locale = default_locale
        self.selector = ViewSelector()
        self.query = ""
        self.search_results: Optional[List[RankedItem]] = None
        self.is_loading = False
        self.is_searching = False

        self.filler = TranslationCacheFiller(
            translator,
            default_locale=default_locale,
            debounce=debounce,
            batch_size=batch_size,
        )

    async def __aenter__(self) -> "ReaderSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def start(self, corpus: Optional[Sequence[Item]] = None) -> None:
        """Load stored preferences and build the corpus.

        A pre-built ``corpus`` (e.g. from a snapshot) skips aggregation.
        """
        self.favorites = FavoriteSet.load(self._store)
        self.locale = load_locale(self._store, self.default_locale)

        if corpus is not None:
            self.corpus = sorted(corpus, key=lambda item: item.timestamp, reverse=True)
        else:
            self.is_loading = True
            try:
                self.corpus = await aggregate(
                    self.sources, self._transport, limit=self._per_source_limit
                )
            finally:
                self.is_loading = False

        if not self.corpus:
            logger.warning("No items were retrieved from the configured feeds.")
        self._display_changed()

    async def close(self) -> None:
        await self.filler.close()

    @property
    def is_translating(self) -> bool:
        return self.filler.is_translating

    @property
    def base_items(self) -> List[Item]:
        """Display set before translation."""
        return resolve_display(
            self.corpus, self.selector, self.favorites, self.search_results
        )

    @property
    def display_items(self) -> List[Item]:
        """Final display set, resolved through the translation cache."""
        return self.filler.resolve(self.base_items, self.locale)

    def is_favorite(self, item_id: str) -> bool:
        return item_id in self.favorites

    def toggle_favorite(self, item_id: str) -> bool:
        added = self.favorites.toggle(item_id)
        logger.debug("Favorite %s %s", item_id, "added" if added else "removed")
        if self.selector.mode == ViewMode.FAVORITES and self.search_results is None:
            self._display_changed()
        return added

    def select_view(self, mode: ViewMode, source_id: Optional[str] = None) -> None:
        """Switch the navigation view; any active search is cleared."""
        self.selector = ViewSelector(mode=ViewMode(mode), source_id=source_id)
        self.query = ""
        self.search_results = None
        self._display_changed()

    async def submit_query(self, query: str) -> Optional[List[RankedItem]]:
        self.query = query
        if not query or not query.strip():
            self.clear_query()
            return None

        self.is_searching = True
        try:
            self.search_results = await semantic_search(
                query,
                self.corpus,
                self._embedder,
                candidate_limit=self._candidate_limit,
            )
        finally:
            self.is_searching = False

        logger.info(
            "Search for %r returned %d results",
            query,
            len(self.search_results or []),
        )
        self._display_changed()
        return self.search_results

    def clear_query(self) -> None:
        self.query = ""
        if self.search_results is not None:
            self.search_results = None
            self._display_changed()

    def set_locale(self, locale: str) -> None:
        self.locale = locale
        save_locale(self._store, locale)
        self._display_changed()

    def refresh(self) -> None:
        """Re-evaluate the display set, e.g. after the recency window moved."""
        self._display_changed()

    def _display_changed(self) -> None:
        self.filler.notify(self.base_items, self.locale)
