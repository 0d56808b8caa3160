"""High-level orchestration for the nexus_reader application."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .config import load_sources
from .embeddings import build_embedding_backend
from .feeds import build_transport
from .models import FeedSource, Item, ViewMode
from .renderers import build_timeline_html, build_timeline_text
from .session import ReaderSession
from .store import KeyValueStore
from .translation import build_translator

logger = logging.getLogger(__name__)

VIEW_HEADINGS = {
    ViewMode.TODAY: "Today's Updates",
    ViewMode.ALL: "All Feeds",
    ViewMode.FAVORITES: "Favorites",
}


@dataclass
class RunConfig:
    """Runtime options for executing the application."""

    feeds_file: Optional[str] = None
    transport: str = "rss2json"
    per_source_limit: int = 10
    search_candidates: int = 30
    default_locale: str = "en"
    locale: Optional[str] = None
    view: str = ViewMode.TODAY.value
    source_id: Optional[str] = None
    query: Optional[str] = None
    toggle_favorites: List[str] = field(default_factory=list)
    embedding_provider: str = "gemini"
    embedding_model: Optional[str] = None
    translation_enabled: bool = True
    translation_model: Optional[str] = None
    translation_batch_size: int = 10
    translation_debounce_ms: int = 500
    database_connection_string: str = "sqlite:///nexus_reader.db"
    html_output_path: Optional[str] = None
    save_items_path: Optional[str] = None
    load_items_path: Optional[str] = None


@dataclass
class RunResult:
    """Returned data after executing the app."""

    output_text: str
    items: List[Item]
    is_search: bool


_ITEM_FIELDS = {item_field.name for item_field in dataclasses.fields(Item)}


def _load_items_from_file(path: str) -> List[Item]:
    location = Path(path)
    try:
        payload = json.loads(location.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise RuntimeError(f"Item snapshot not found: {location}") from exc
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"Item snapshot is not valid JSON: {location}") from exc

    if not isinstance(payload, list):
        raise RuntimeError("Item snapshot must contain a JSON array.")

    items: List[Item] = []
    for entry in payload:
        if not isinstance(entry, dict) or not _ITEM_FIELDS.issubset(entry):
            raise RuntimeError("Item snapshot entries must be complete item objects.")
        items.append(Item(**{name: entry[name] for name in _ITEM_FIELDS}))

    logger.info("Loaded %d items from %s", len(items), location)
    return items


def _save_items_to_file(path: str, items: List[Item]) -> None:
    location = Path(path)
    if location.parent and not location.parent.exists():
        location.parent.mkdir(parents=True, exist_ok=True)

    serialisable = [dataclasses.asdict(item) for item in items]
    location.write_text(
        json.dumps(serialisable, indent=2, ensure_ascii=False), encoding="utf-8"
    )
    logger.info("Saved %d items to %s", len(serialisable), location)


def _build_heading(session: ReaderSession, sources: List[FeedSource]) -> str:
    if session.search_results is not None:
        return "Search Results"
    if session.selector.mode == ViewMode.SOURCE:
        for source in sources:
            if source.id == session.selector.source_id:
                return source.name
        return "All Feeds"
    return VIEW_HEADINGS[session.selector.mode]


async def _execute_async(config: RunConfig) -> RunResult:
    sources = load_sources(config.feeds_file)
    if not sources:
        raise RuntimeError("No feeds found in the configuration.")

    view = ViewMode(config.view)
    if view == ViewMode.SOURCE and config.source_id:
        if not any(source.id == config.source_id for source in sources):
            raise ValueError(f"Unknown source id: {config.source_id}")

    store = KeyValueStore.from_url(config.database_connection_string)
    embedder = build_embedding_backend(config.embedding_provider, config.embedding_model)
    translator = (
        build_translator(config.translation_model)
        if config.translation_enabled
        else None
    )

    session = ReaderSession(
        sources,
        build_transport(config.transport),
        store,
        embedder=embedder,
        translator=translator,
        default_locale=config.default_locale,
        per_source_limit=config.per_source_limit,
        candidate_limit=config.search_candidates,
        debounce=config.translation_debounce_ms / 1000,
        batch_size=config.translation_batch_size,
    )

    snapshot = (
        _load_items_from_file(config.load_items_path)
        if config.load_items_path
        else None
    )

    try:
        await session.start(corpus=snapshot)

        for item_id in config.toggle_favorites:
            if session.toggle_favorite(item_id):
                logger.info("Added %s to favorites", item_id)
            else:
                logger.info("Removed %s from favorites", item_id)

        if config.save_items_path:
            _save_items_to_file(config.save_items_path, session.corpus)

        if config.locale:
            session.set_locale(config.locale)
        session.select_view(view, config.source_id)
        if config.query:
            await session.submit_query(config.query)

        await session.filler.wait_idle()

        items = session.display_items
        heading = _build_heading(session, sources)
        is_search = session.search_results is not None
        favorites = set(session.favorites)

        output_text = build_timeline_text(
            items, heading=heading, is_search=is_search, favorites=favorites
        )
        if config.html_output_path:
            location = Path(config.html_output_path)
            location.write_text(
                build_timeline_html(
                    items, heading=heading, is_search=is_search, favorites=favorites
                ),
                encoding="utf-8",
            )
            logger.info("Wrote HTML timeline to %s", location)
    finally:
        await session.close()

    return RunResult(output_text=output_text, items=items, is_search=is_search)


def execute(config: RunConfig) -> RunResult:
    """Run one reader session and return the rendered display list."""
    return asyncio.run(_execute_async(config))
