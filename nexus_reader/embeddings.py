"""Embedding backend abstractions used by semantic search."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

import numpy as np
from fastembed import TextEmbedding
from google import genai
from openai import OpenAI

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = "text-embedding-004"
DEFAULT_OPENAI_MODEL = "text-embedding-3-small"
DEFAULT_FASTEMBED_MODEL = "intfloat/multilingual-e5-large"


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Return the cosine similarity of two vectors, 0.0 if either norm is zero."""
    arr_a = np.asarray(vec_a, dtype=float)
    arr_b = np.asarray(vec_b, dtype=float)
    norm_a = float(np.linalg.norm(arr_a))
    norm_b = float(np.linalg.norm(arr_b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(arr_a, arr_b) / (norm_a * norm_b))


class EmbeddingBackend(Protocol):
    """Minimal protocol for embedding providers."""

    async def embed(self, text: str) -> List[float]:
        """Return the embedding vector for ``text``."""


@dataclass
class GeminiEmbeddingBackend:
    """Gemini-powered implementation of the embedding backend."""

    client: genai.Client
    model: str = DEFAULT_GEMINI_MODEL

    async def embed(self, text: str) -> List[float]:
        response = await self.client.aio.models.embed_content(
            model=self.model, contents=text
        )
        embeddings = response.embeddings or []
        if not embeddings or not embeddings[0].values:
            raise RuntimeError("Gemini returned no embedding values")
        return list(embeddings[0].values)


@dataclass
class OpenAIEmbeddingBackend:
    """OpenAI-powered implementation of the embedding backend."""

    client: OpenAI
    model: str = DEFAULT_OPENAI_MODEL

    async def embed(self, text: str) -> List[float]:
        embeddings_api = getattr(self.client, "embeddings", None)
        if embeddings_api is None:
            raise RuntimeError("OpenAI client does not expose embeddings API")

        response = await asyncio.to_thread(
            embeddings_api.create, model=self.model, input=[text]
        )
        return list(response.data[0].embedding)


@dataclass
class FastEmbedBackend:
    """FastEmbed-powered implementation running a local model."""

    model_name: str = DEFAULT_FASTEMBED_MODEL
    _model: TextEmbedding = None

    def __post_init__(self):
        # The model is downloaded automatically if needed
        self._model = TextEmbedding(model_name=self.model_name)

    def _embed_sync(self, text: str) -> List[float]:
        vectors = list(self._model.embed([text]))
        return vectors[0].tolist()

    async def embed(self, text: str) -> List[float]:
        return await asyncio.to_thread(self._embed_sync, text)


def build_embedding_backend(
    provider: str, model: Optional[str] = None, api_key: Optional[str] = None
) -> Optional[EmbeddingBackend]:
    """Create the configured backend, or ``None`` when it is unavailable."""
    provider = (provider or "none").lower()

    if provider == "none":
        return None

    if provider == "gemini":
        key = (
            api_key
            or os.environ.get("GOOGLE_API_KEY")
            or os.environ.get("GEMINI_API_KEY")
        )
        if not key:
            logger.warning(
                "Gemini API key missing. Semantic search falls back to keyword matching."
            )
            return None
        return GeminiEmbeddingBackend(
            client=genai.Client(api_key=key), model=model or DEFAULT_GEMINI_MODEL
        )

    if provider == "openai":
        key = api_key or os.environ.get("OPENAI_API_KEY")
        if not key:
            logger.warning(
                "OpenAI API key missing. Semantic search falls back to keyword matching."
            )
            return None
        return OpenAIEmbeddingBackend(
            client=OpenAI(api_key=key), model=model or DEFAULT_OPENAI_MODEL
        )

    if provider == "fastembed":
        return FastEmbedBackend(model_name=model or DEFAULT_FASTEMBED_MODEL)

    raise ValueError(f"Unsupported embeddings provider: {provider}")
