"""Feed transports and concurrent aggregation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Protocol

import feedparser
import requests

from .models import FeedSource, Item
from .normalizer import normalize_item

logger = logging.getLogger(__name__)

PER_SOURCE_LIMIT = 10
RSS2JSON_ENDPOINT = "https://api.rss2json.com/v1/api.json"


class FeedTransport(Protocol):
    """Minimal protocol for raw feed providers."""

    def fetch(self, url: str) -> Mapping[str, Any]:
        """Return ``{"status": ..., "items": [...]}`` for the feed at ``url``."""


@dataclass
class Rss2JsonTransport:
    """Fetch feeds through the rss2json conversion API."""

    endpoint: str = RSS2JSON_ENDPOINT
    timeout: float = 10.0

    def fetch(self, url: str) -> Mapping[str, Any]:
        response = requests.get(
            self.endpoint, params={"rss_url": url}, timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()


@dataclass
class FeedparserTransport:
    """Fetch feeds directly and parse them locally with feedparser."""

    timeout: float = 10.0

    def fetch(self, url: str) -> Mapping[str, Any]:
        response = requests.get(url, timeout=self.timeout)
        response.raise_for_status()
        parsed = feedparser.parse(response.content)

        if getattr(parsed, "bozo", False) and not parsed.entries:
            return {
                "status": "error",
                "message": str(getattr(parsed, "bozo_exception", "malformed feed")),
                "items": [],
            }

        items = []
        for entry in parsed.entries:
            content = entry.get("content")
            body = None
            if content:
                try:
                    body = content[0].get("value")
                except (TypeError, KeyError, IndexError, AttributeError):
                    body = None
            items.append(
                {
                    "link": entry.get("link"),
                    "title": entry.get("title"),
                    "description": entry.get("summary"),
                    "content": body,
                    "pubDate": entry.get("published") or entry.get("updated"),
                }
            )
        return {"status": "ok", "items": items}


def build_transport(name: str) -> FeedTransport:
    """Return the transport registered under ``name``."""
    if name == "rss2json":
        return Rss2JsonTransport()
    if name == "feedparser":
        return FeedparserTransport()
    raise ValueError(f"Unsupported feed transport: {name}")


def _normalize_payload(
    payload: Any, source: FeedSource, limit: int
) -> List[Item]:
    if not isinstance(payload, Mapping):
        logger.warning("Feed '%s' returned a malformed payload", source.name)
        return []

    if payload.get("status") != "ok":
        logger.warning(
            "Feed '%s' returned status %r: %s",
            source.name,
            payload.get("status"),
            payload.get("message"),
        )
        return []

    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        logger.warning("Feed '%s' returned no item list", source.name)
        return []

    items: List[Item] = []
    for raw in raw_items[:limit]:
        item = normalize_item(raw, source)
        if item is None:
            continue
        items.append(item)
    return items


async def fetch_source_items(
    source: FeedSource, transport: FeedTransport, limit: int = PER_SOURCE_LIMIT
) -> List[Item]:
    """Fetch and normalize one source; failures yield an empty list."""
    logger.info("Fetching feed '%s' (%s)", source.name, source.url)
    try:
        payload = await asyncio.to_thread(transport.fetch, source.url)
    except Exception as exc:  # noqa: BLE001 - one source must not sink the rest
        logger.warning("Failed to fetch feed '%s' (%s): %s", source.name, source.url, exc)
        return []

    try:
        items = _normalize_payload(payload, source, limit)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to process feed '%s'", source.name)
        return []

    logger.info("Collected %d items from feed '%s'", len(items), source.name)
    return items


async def aggregate(
    sources: Iterable[FeedSource],
    transport: FeedTransport,
    limit: int = PER_SOURCE_LIMIT,
) -> List[Item]:
    """Fetch all sources concurrently and return one time-sorted corpus."""
    sources = list(sources)
    results = await asyncio.gather(
        *(fetch_source_items(source, transport, limit) for source in sources)
    )

    merged = [item for per_source in results for item in per_source]
    corpus = sorted(merged, key=lambda item: item.timestamp, reverse=True)
    logger.info(
        "Aggregated %d items from %d sources", len(corpus), len(sources)
    )
    return corpus
