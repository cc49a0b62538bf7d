"""Embedding backends for the rule index.

- SentenceTransformerEmbedder: dense multilingual embeddings (production).
- HashingEmbedder: sparse hashed word/bigram counts, no model download,
  fully deterministic (offline runs and tests).

Both return L2-normalised float32 matrices of shape [N, D] and raise
CapabilityUnavailable when the backend cannot produce vectors.
"""
from __future__ import annotations

import logging
import threading
from typing import List, Optional, Sequence

import numpy as np
from sklearn.feature_extraction.text import HashingVectorizer

from fair_charge import config
from fair_charge.errors import CapabilityUnavailable
from fair_charge.utils.text import TOKEN_PATTERN

logger = logging.getLogger(__name__)


def _normalize_rows(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=1, keepdims=True) + 1e-12
    return (vectors / norms).astype('float32')


class Embedder:
    model_name: str = 'base'

    def encode(self, texts: Sequence[str]) -> np.ndarray:
        raise NotImplementedError


class HashingEmbedder(Embedder):
    def __init__(self, n_features: int = config.HASHING_N_FEATURES):
        self.model_name = f"hashing-{n_features}"
        self._vectorizer = HashingVectorizer(
            n_features=n_features,
            token_pattern=TOKEN_PATTERN,
            ngram_range=(1, 2),
            lowercase=True,
            alternate_sign=False,
            norm='l2',
        )

    def encode(self, texts: Sequence[str]) -> np.ndarray:
        matrix = self._vectorizer.transform(list(texts))
        return _normalize_rows(matrix.toarray())


class SentenceTransformerEmbedder(Embedder):
    def __init__(self, model_name: str = config.EMBEDDING_MODEL, device: Optional[str] = None, batch_size: int = 32):
        self.model_name = model_name
        self.device = device
        self.batch_size = batch_size
        self._model = None
        self._lock = threading.Lock()

    def _load(self):
        with self._lock:
            if self._model is None:
                try:
                    from sentence_transformers import SentenceTransformer
                    self._model = SentenceTransformer(self.model_name, device=self.device)
                    logger.info(f"[embeddings] Loaded SentenceTransformer {self.model_name}")
                except Exception as e:
                    raise CapabilityUnavailable(f"could not load embedding model {self.model_name}: {e}") from e
        return self._model

    def encode(self, texts: Sequence[str]) -> np.ndarray:
        model = self._load()
        try:
            vectors = model.encode(
                list(texts),
                batch_size=self.batch_size,
                show_progress_bar=False,
                convert_to_numpy=True,
                normalize_embeddings=True,
            )
        except Exception as e:
            raise CapabilityUnavailable(f"embedding failed: {e}") from e
        return np.asarray(vectors, dtype='float32')


def build_embedder(backend: str = config.EMBEDDING_BACKEND, model_name: str = config.EMBEDDING_MODEL) -> Embedder:
    if backend == 'hashing':
        return HashingEmbedder()
    if backend == 'sentence-transformers':
        return SentenceTransformerEmbedder(model_name)
    raise ValueError(f"Unknown embedding backend: {backend}")


__all__: List[str] = ['Embedder', 'HashingEmbedder', 'SentenceTransformerEmbedder', 'build_embedder']
