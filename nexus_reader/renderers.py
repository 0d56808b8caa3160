"""Rendering helpers for timeline outputs."""

from __future__ import annotations

from typing import AbstractSet, Sequence

from .models import Item
from .templating import get_environment


def _context(
    items: Sequence[Item],
    heading: str,
    is_search: bool,
    favorites: AbstractSet[str],
) -> dict:
    return {
        "items": items,
        "heading": heading,
        "is_search": is_search,
        "favorites": favorites,
    }


def build_timeline_html(
    items: Sequence[Item],
    heading: str,
    is_search: bool = False,
    favorites: AbstractSet[str] = frozenset(),
) -> str:
    """Render the display list as a standalone HTML page."""
    template = get_environment().get_template("timeline.html.j2")
    return template.render(**_context(items, heading, is_search, favorites))


def build_timeline_text(
    items: Sequence[Item],
    heading: str,
    is_search: bool = False,
    favorites: AbstractSet[str] = frozenset(),
) -> str:
    """Render the display list as plain text for the terminal."""
    template = get_environment().get_template("timeline.txt.j2")
    return template.render(**_context(items, heading, is_search, favorites))
