"""Integration with Gemini for item translation."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from bs4 import BeautifulSoup
from google import genai
from google.genai import types

from .models import Item

logger = logging.getLogger(__name__)

DEFAULT_TRANSLATION_MODEL = "gemini-flash-latest"

LOCALE_NAMES = {
    "en": "English",
    "zh": "Simplified Chinese (zh-CN)",
    "ja": "Japanese",
    "ko": "Korean",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
}


class Translator(Protocol):
    """Minimal protocol for batch translation providers."""

    async def translate(
        self, batch: Sequence[Mapping[str, str]], locale: str
    ) -> List[Mapping[str, Any]]:
        """Return translated records matched to the request by ``id``."""


def sanitize_html(text: Optional[str]) -> str:
    """Remove HTML tags from text."""
    if not text:
        return ""
    return BeautifulSoup(text, "html.parser").get_text()


def build_translation_payload(items: Sequence[Item]) -> List[Dict[str, str]]:
    """Reduce items to the fields sent for translation."""
    return [
        {
            "id": item.id,
            "title": item.title,
            "snippet": item.excerpt,
            "sourceName": item.source_name,
        }
        for item in items
    ]


def index_response(response: Any) -> Dict[str, Mapping[str, Any]]:
    """Key response records by ``id``, dropping records without one."""
    if not isinstance(response, list):
        logger.warning("Translation response is not a list; ignoring it")
        return {}

    indexed: Dict[str, Mapping[str, Any]] = {}
    for entry in response:
        if not isinstance(entry, Mapping):
            continue
        entry_id = entry.get("id")
        if not isinstance(entry_id, str) or not entry_id:
            logger.debug("Dropping translated record without id: %r", entry)
            continue
        indexed[entry_id] = entry
    return indexed


def _pick(entry: Mapping[str, Any], key: str, original: str) -> str:
    value = entry.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return original


def apply_translation(item: Item, entry: Mapping[str, Any]) -> Item:
    """Return a copy of ``item`` with translated text fields."""
    return replace(
        item,
        title=_pick(entry, "title", item.title),
        excerpt=_pick(entry, "snippet", item.excerpt),
        source_name=_pick(entry, "sourceName", item.source_name),
    )


def merge_translations(items: Sequence[Item], response: Any) -> List[Item]:
    """Merge a translation response back onto the requested items.

    Items without a matching response record are returned unchanged.
    """
    indexed = index_response(response)
    return [
        apply_translation(item, indexed[item.id]) if item.id in indexed else item
        for item in items
    ]


async def translate_batch(
    items: Sequence[Item], translator: Translator, locale: str
) -> Dict[str, Item]:
    """Translate one batch and return only the items that were translated.

    Provider failures are logged and yield an empty mapping.
    """
    if not items:
        return {}

    payload = build_translation_payload(items)
    try:
        response = await translator.translate(payload, locale)
    except Exception as exc:  # noqa: BLE001 - items stay untranslated
        logger.error("Translation failed for batch of %d items: %s", len(items), exc)
        return {}

    merged = merge_translations(items, response)
    # Unmatched items come back as the same object.
    translated = {
        item.id: result
        for item, result in zip(items, merged)
        if result is not item
    }
    if len(translated) < len(items):
        logger.info(
            "Translation returned %d of %d items", len(translated), len(items)
        )
    return translated


def _response_schema() -> types.Schema:
    return types.Schema(
        type=types.Type.ARRAY,
        description="Translated items in the same shape as the input.",
        items=types.Schema(
            type=types.Type.OBJECT,
            required=["id", "title", "snippet", "sourceName"],
            properties={
                "id": types.Schema(
                    type=types.Type.STRING,
                    description="Unmodified identifier copied from the input",
                ),
                "title": types.Schema(type=types.Type.STRING),
                "snippet": types.Schema(type=types.Type.STRING),
                "sourceName": types.Schema(type=types.Type.STRING),
            },
        ),
    )


@dataclass
class GeminiTranslator:
    """Translate item batches with a Gemini JSON-mode request."""

    client: genai.Client
    model: str = DEFAULT_TRANSLATION_MODEL

    def build_prompt(self, batch: Sequence[Mapping[str, str]], locale: str) -> str:
        language = LOCALE_NAMES.get(locale, locale)
        payload = json.dumps(list(batch), ensure_ascii=False, indent=2)
        return (
            f"Translate the 'title', 'snippet', and 'sourceName' fields in the "
            f"following JSON array to {language}.\n"
            "Do NOT translate or modify 'id'. Return the result as a valid JSON array.\n\n"
            f"Input JSON:\n{payload}"
        )

    async def translate(
        self, batch: Sequence[Mapping[str, str]], locale: str
    ) -> List[Mapping[str, Any]]:
        prompt = self.build_prompt(batch, locale)
        logger.debug("Gemini translation request payload: %s", prompt)

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=_response_schema(),
            ),
        )
        response_text = response.text or "[]"
        logger.debug("Gemini translation response text: %s", response_text)

        parsed = json.loads(response_text)
        if not isinstance(parsed, list):
            raise ValueError("Translation response must be a JSON array")

        for entry in parsed:
            if not isinstance(entry, dict):
                continue
            for key in ("title", "snippet", "sourceName"):
                if isinstance(entry.get(key), str):
                    entry[key] = sanitize_html(entry[key])
        return parsed


def build_translator(
    model: Optional[str] = None, api_key: Optional[str] = None
) -> Optional[Translator]:
    """Create the Gemini translator, or ``None`` without a credential."""
    key = api_key or os.environ.get("GOOGLE_API_KEY") or os.environ.get("GEMINI_API_KEY")
    if not key:
        logger.warning("Gemini API key missing. Translation is disabled.")
        return None
    return GeminiTranslator(
        client=genai.Client(api_key=key), model=model or DEFAULT_TRANSLATION_MODEL
    )
