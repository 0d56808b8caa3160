"""Shared data models for nexus_reader."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class FeedSource:
    """Configuration for a single content feed."""

    id: str
    name: str
    url: str
    category: str = "general"


@dataclass(frozen=True)
class Item:
    """Canonical timeline entry produced by the normalizer."""

    id: str
    source_id: str
    source_name: str
    title: str
    excerpt: str
    link: str
    published: str
    timestamp: int


@dataclass(frozen=True)
class RankedItem(Item):
    """Item carrying a relevance score from one search invocation."""

    score: float


class ViewMode(str, Enum):
    TODAY = "today"
    FAVORITES = "favorites"
    SOURCE = "source"
    ALL = "all"


@dataclass(frozen=True)
class ViewSelector:
    """Active navigation view."""

    mode: ViewMode = ViewMode.TODAY
    source_id: Optional[str] = None
