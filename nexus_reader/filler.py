"""Background, debounced translation cache filling."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Sequence

from .models import Item, RankedItem
from .ranking import with_score, without_score
from .translation import Translator, translate_batch

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.5
BATCH_SIZE = 10


class FillState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    FILLING = "filling"


class TranslationCache:
    """Session cache of translated items keyed by item id.

    Entries are only ever added; nothing is evicted for the life of the
    session. Entries are stored without ranking scores, so a cached
    translation never carries state from the search that produced it.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Item] = {}

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def get(self, item_id: str) -> Optional[Item]:
        return self._entries.get(item_id)

    def update(self, translated: Mapping[str, Item]) -> None:
        for item_id, item in translated.items():
            self._entries[item_id] = without_score(item)

    def resolve(self, items: Sequence[Item]) -> List[Item]:
        """Swap in cached translations, keeping originals on a miss.

        A ranked display item keeps its own score; only the text comes from
        the cache.
        """
        resolved: List[Item] = []
        for item in items:
            cached = self._entries.get(item.id)
            if cached is None:
                resolved.append(item)
            elif isinstance(item, RankedItem):
                resolved.append(with_score(cached, item.score))
            else:
                resolved.append(cached)
        return resolved


class TranslationCacheFiller:
    """Translate the visible items in the background.

    Every :meth:`notify` re-arms a single debounce timer. When it expires a
    fill pass translates the uncached part of the latest display set in
    fixed-size batches, one batch at a time, merging each into the cache as
    it arrives. Passes never overlap: a timer that expires mid-pass queues
    one more pass to run after the current one.
    """

    def __init__(
        self,
        translator: Optional[Translator],
        *,
        default_locale: str = "en",
        debounce: float = DEBOUNCE_SECONDS,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive.")
        self._translator = translator
        self._default_locale = default_locale
        self._debounce = debounce
        self._batch_size = batch_size
        self._caches: Dict[str, TranslationCache] = {}

        self._display: List[Item] = []
        self._locale = default_locale
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._pending = False
        self._translating = False
        self._idle = asyncio.Event()
        self._idle.set()
        self.passes = 0

    @property
    def state(self) -> FillState:
        if self._task is not None and not self._task.done():
            return FillState.FILLING
        if self._timer is not None:
            return FillState.SCHEDULED
        return FillState.IDLE

    @property
    def is_translating(self) -> bool:
        return self._translating

    @property
    def enabled(self) -> bool:
        return self._translator is not None

    def cache_for(self, locale: str) -> TranslationCache:
        cache = self._caches.get(locale)
        if cache is None:
            cache = self._caches[locale] = TranslationCache()
        return cache

    def resolve(self, items: Sequence[Item], locale: str) -> List[Item]:
        """Return the display list for ``locale``."""
        if locale == self._default_locale:
            return list(items)
        return self.cache_for(locale).resolve(items)

    def notify(self, display_items: Sequence[Item], locale: str) -> None:
        """Record a display-set change and (re)arm the debounce timer."""
        self._display = list(display_items)
        self._locale = locale
        self._cancel_timer()

        if locale == self._default_locale or self._translator is None:
            self._pending = False
            self._mark_idle_if_quiet()
            return

        loop = asyncio.get_running_loop()
        self._idle.clear()
        self._timer = loop.call_later(self._debounce, self._on_timer, loop)
        logger.debug(
            "Translation fill scheduled for %d display items (%s)",
            len(self._display),
            locale,
        )

    async def wait_idle(self) -> None:
        """Wait until no timer is armed and no pass is running."""
        await self._idle.wait()

    async def close(self) -> None:
        """Cancel the pending timer and let an in-flight pass finish."""
        self._cancel_timer()
        self._pending = False
        if self._task is not None:
            await self._task
        self._idle.set()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _mark_idle_if_quiet(self) -> None:
        if self._timer is None and (self._task is None or self._task.done()):
            self._idle.set()

    def _on_timer(self, loop: asyncio.AbstractEventLoop) -> None:
        self._timer = None
        if self._task is not None and not self._task.done():
            logger.debug("Fill pass in progress; queuing another pass")
            self._pending = True
            return
        self._task = loop.create_task(self._run())

    async def _run(self) -> None:
        try:
            while True:
                self._pending = False
                await self._fill_pass()
                if not self._pending:
                    break
        except Exception:  # noqa: BLE001 - background task must not die silently
            logger.exception("Translation fill pass failed")
        finally:
            self._task = None
            self._pending = False
            self._mark_idle_if_quiet()

    def _uncached(self, cache: TranslationCache) -> List[Item]:
        seen = set()
        uncached: List[Item] = []
        for item in self._display:
            if item.id in cache or item.id in seen:
                continue
            seen.add(item.id)
            uncached.append(item)
        return uncached

    async def _fill_pass(self) -> None:
        locale = self._locale
        if locale == self._default_locale or self._translator is None:
            return

        cache = self.cache_for(locale)
        uncached = self._uncached(cache)
        if not uncached:
            logger.debug("All %d display items already translated", len(self._display))
            return

        self.passes += 1
        total_batches = (len(uncached) + self._batch_size - 1) // self._batch_size
        logger.info(
            "Translating %d items to %s in %d batches",
            len(uncached),
            locale,
            total_batches,
        )

        self._translating = True
        try:
            for start in range(0, len(uncached), self._batch_size):
                batch = uncached[start : start + self._batch_size]
                logger.debug(
                    "Processing translation batch %d of %d (size: %d)",
                    (start // self._batch_size) + 1,
                    total_batches,
                    len(batch),
                )
                translated = await translate_batch(batch, self._translator, locale)
                cache.update(translated)
        finally:
            self._translating = False
