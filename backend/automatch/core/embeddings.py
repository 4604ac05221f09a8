# backend/automatch/core/embeddings.py
"""
Gemini embeddings + tiny helpers.
- Uses GoogleGenerativeAIEmbeddings ("models/text-embedding-004")
- Exposes: GeminiEmbedder, get_embedder, cosine_sim
- The model handle is built lazily so importing this module never needs a key
"""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence, Protocol

from langchain_google_genai import GoogleGenerativeAIEmbeddings

from .config import get_gemini_api_key, DEFAULT_OPTIONS
from .errors import InputValidationError


class Embedder(Protocol):
    def embed(self, text: str) -> List[float]: ...


# ---- Provider ---------------------------------------------------------------

class GeminiEmbedder:
    """Blocking embed(text) -> vector backed by Google Generative AI embeddings."""

    def __init__(self, model: str = DEFAULT_OPTIONS["embedding_model"], api_key: Optional[str] = None):
        self.model = model
        self._api_key = api_key
        self._client: Optional[GoogleGenerativeAIEmbeddings] = None

    def _handle(self) -> GoogleGenerativeAIEmbeddings:
        if self._client is None:
            key = self._api_key or get_gemini_api_key()
            self._client = GoogleGenerativeAIEmbeddings(model=self.model, google_api_key=key)
        return self._client

    def check(self) -> None:
        """Resolve credentials up front; raises ConfigurationError when they are missing."""
        self._handle()

    def embed(self, text: str) -> List[float]:
        return [float(x) for x in self._handle().embed_query(text or "")]


_embedders: Dict[str, GeminiEmbedder] = {}


def get_embedder(model: Optional[str] = None) -> GeminiEmbedder:
    """One shared embedder per model name."""
    model = model or DEFAULT_OPTIONS["embedding_model"]
    if model not in _embedders:
        _embedders[model] = GeminiEmbedder(model)
    return _embedders[model]


# ---- Helpers ----------------------------------------------------------------

def cosine_sim(u: Sequence[float], v: Sequence[float]) -> float:
    """
    Cosine similarity for two equal-length vectors.
    0.0 when either vector has zero magnitude; mismatched lengths are an input error.
    """
    if len(u) != len(v):
        raise InputValidationError(f"Vector dimensions must match ({len(u)} != {len(v)})")
    dot = sum(a * b for a, b in zip(u, v))
    nu = math.sqrt(sum(a * a for a in u))
    nv = math.sqrt(sum(b * b for b in v))
    if nu == 0 or nv == 0:
        return 0.0
    return dot / (nu * nv)


__all__ = [
    "Embedder",
    "GeminiEmbedder",
    "get_embedder",
    "cosine_sim",
]
