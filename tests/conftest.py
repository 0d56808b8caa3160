import asyncio
from typing import Dict, List, Optional

import pytest

from nexus_reader.models import FeedSource, Item
from nexus_reader.store import KeyValueStore

BASE_TS = 1_700_000_000_000


def make_item(
    item_id: str,
    *,
    title: Optional[str] = None,
    excerpt: str = "",
    source_id: str = "1",
    source_name: str = "Feed",
    timestamp: int = BASE_TS,
) -> Item:
    return Item(
        id=item_id,
        source_id=source_id,
        source_name=source_name,
        title=title or f"Title {item_id}",
        excerpt=excerpt,
        link=f"https://example.com/{item_id}",
        published="2023-11-14T22:13:20Z",
        timestamp=timestamp,
    )


class FakeTransport:
    """Transport returning canned payloads keyed by feed url."""

    def __init__(self, payloads: Dict[str, object]):
        self.payloads = payloads
        self.calls: List[str] = []

    def fetch(self, url):
        self.calls.append(url)
        payload = self.payloads[url]
        if isinstance(payload, Exception):
            raise payload
        return payload


class FakeEmbedder:
    """Embedding backend returning fixed vectors per text."""

    def __init__(self, vectors: Dict[str, object], delays: Optional[Dict[str, float]] = None):
        self.vectors = vectors
        self.delays = delays or {}
        self.calls: List[str] = []

    async def embed(self, text):
        self.calls.append(text)
        await asyncio.sleep(self.delays.get(text, 0))
        vector = self.vectors[text]
        if isinstance(vector, Exception):
            raise vector
        return vector


class FakeTranslator:
    """Translator that upper-cases titles and records each batch."""

    def __init__(self, fail_batches=(), drop_ids=(), delay: float = 0.0):
        self.batches: List[List[str]] = []
        self.fail_batches = set(fail_batches)
        self.drop_ids = set(drop_ids)
        self.delay = delay

    async def translate(self, batch, locale):
        index = len(self.batches)
        self.batches.append([entry["id"] for entry in batch])
        await asyncio.sleep(self.delay)
        if index in self.fail_batches:
            raise RuntimeError("provider error")
        return [
            {
                "id": entry["id"],
                "title": f"[{locale}] {entry['title']}",
                "snippet": entry["snippet"],
                "sourceName": entry["sourceName"],
            }
            for entry in batch
            if entry["id"] not in self.drop_ids
        ]


@pytest.fixture
def store():
    return KeyValueStore.from_url("sqlite:///:memory:")


@pytest.fixture
def sources():
    return [
        FeedSource("1", "Alpha", "https://alpha.example.com/feed", "tech"),
        FeedSource("2", "Beta", "https://beta.example.com/feed", "programming"),
    ]
