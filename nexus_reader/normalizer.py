"""Conversion of raw provider records into canonical items."""

from __future__ import annotations

import base64
import logging
import re
import uuid
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Optional

from .models import FeedSource, Item

logger = logging.getLogger(__name__)

EXCERPT_LIMIT = 200
ELLIPSIS = "..."

_TAG_PATTERN = re.compile(r"<[^>]*>?")


def strip_markup(raw_value: str) -> str:
    """Remove markup tags in a single non-greedy pass."""
    return _TAG_PATTERN.sub("", raw_value)


def build_excerpt(raw_value: Optional[str], limit: int = EXCERPT_LIMIT) -> str:
    """Return a plain-text excerpt capped at ``limit`` characters."""
    if not raw_value:
        return ""
    text = strip_markup(raw_value).strip()
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


def derive_item_id(link: Optional[str]) -> str:
    """Encode the item link into a stable identifier.

    Items without a link get a random identifier and therefore never match a
    previous fetch or a cache entry.
    """
    if not link:
        link = uuid.uuid4().hex
        logger.debug("Item has no link; using random identifier seed %s", link)
    return base64.urlsafe_b64encode(link.encode("utf-8")).decode("ascii")


def parse_timestamp(value: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Parse a provider date string into an aware UTC datetime.

    Unparseable or missing values fall back to ``now``.
    """
    fallback = now or datetime.now(timezone.utc)
    if not value or not isinstance(value, str):
        return fallback

    candidate = value.strip().replace(" ", "T", 1)
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            parsed = None

    if parsed is None:
        logger.debug("Could not parse date %r; using current time", value)
        return fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def normalize_item(
    raw: Any, source: FeedSource, now: Optional[datetime] = None
) -> Optional[Item]:
    """Convert one raw provider record into an ``Item``.

    Returns ``None`` when the record carries neither a title nor a link.
    """
    if not isinstance(raw, Mapping):
        logger.debug("Skipping non-mapping record from '%s'", source.name)
        return None

    link = raw.get("link") or ""
    title = raw.get("title") or link
    if not title:
        logger.debug("Skipping record without title or link from '%s'", source.name)
        return None

    rich_text = raw.get("description") or raw.get("content") or ""
    published = parse_timestamp(raw.get("pubDate"), now=now)

    return Item(
        id=derive_item_id(link),
        source_id=source.id,
        source_name=source.name,
        title=str(title),
        excerpt=build_excerpt(str(rich_text)),
        link=str(link),
        published=published.isoformat().replace("+00:00", "Z"),
        timestamp=to_epoch_ms(published),
    )
