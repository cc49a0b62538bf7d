"""Rule embedding index (numpy cosine) kept in step with the RuleStore.

VectorIndex holds normalised embeddings + rule ids and answers top-k cosine
queries. EmbeddingIndex owns the current VectorIndex, rebuilds it whenever
the RuleStore version stamp moves, and refuses to answer while a rebuild is
running or when the corpus changed underneath a query.
"""
from __future__ import annotations

import functools
import hashlib
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import dill
import numpy as np

from fair_charge import config
from fair_charge.errors import CorpusUnavailable, IndexRebuilding
from fair_charge.retrieval.embeddings import Embedder
from fair_charge.rules.store import RuleStore
from fair_charge.schemas import LegalRule
from fair_charge.utils.performance import get_cache_stats

logger = logging.getLogger(__name__)


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def corpus_hash(rules: Sequence[LegalRule]) -> str:
    joined = '\n'.join(f"{r.rule_id}\t{r.version}\t{r.document_text()}" for r in rules)
    return sha256_bytes(joined.encode('utf-8'))


@dataclass
class VectorIndex:
    embeddings: np.ndarray
    rule_ids: List[str]

    def __post_init__(self):
        # Pre-normalize for cosine
        norms = np.linalg.norm(self.embeddings, axis=1, keepdims=True) + 1e-12
        self.embeddings = (self.embeddings / norms).astype('float32')

    def search(self, query_vec: np.ndarray, k: int = 5) -> List[Tuple[str, float]]:
        """Return (rule_id, cosine distance) pairs, nearest first, ties by rule_id."""
        if not self.rule_ids:
            return []
        q = np.asarray(query_vec, dtype='float32').reshape(-1)
        qn = q / (np.linalg.norm(q) + 1e-12)
        sims = self.embeddings @ qn
        distances = [round(float(1.0 - s), 6) for s in sims]
        order = sorted(range(len(self.rule_ids)), key=lambda i: (distances[i], self.rule_ids[i]))
        return [(self.rule_ids[i], distances[i]) for i in order[:k]]

    def save(self, out_path: str, model_name: str, content_hash: str) -> Dict[str, Any]:
        os.makedirs(os.path.dirname(out_path) or '.', exist_ok=True)
        payload = {
            'model_name': model_name,
            'corpus_hash': content_hash,
            'rule_ids': list(self.rule_ids),
            'embeddings': self.embeddings,
            'dim': int(self.embeddings.shape[1]) if self.embeddings.ndim == 2 else 0,
        }
        with open(out_path, 'wb') as f:
            dill.dump(payload, f)
        return {k: v for k, v in payload.items() if k != 'embeddings'}

    @classmethod
    def load(cls, path: str) -> Tuple["VectorIndex", Dict[str, Any]]:
        with open(path, 'rb') as f:
            payload = dill.load(f)
        index = cls(embeddings=np.asarray(payload['embeddings']), rule_ids=list(payload['rule_ids']))
        meta = {k: v for k, v in payload.items() if k != 'embeddings'}
        return index, meta


@dataclass(frozen=True)
class _IndexState:
    stamp: int
    index: VectorIndex
    content_hash: str


class EmbeddingIndex:
    def __init__(
        self,
        store: RuleStore,
        embedder: Embedder,
        max_k: int = config.MAX_CANDIDATES,
        persist_path: Optional[str] = None,
        cache_size: int = config.EMBEDDING_CACHE_SIZE,
    ):
        self.store = store
        self.embedder = embedder
        self.max_k = max_k
        self.persist_path = persist_path
        self._state: Optional[_IndexState] = None
        self._rebuild_lock = threading.Lock()
        self._embed_cached = functools.lru_cache(maxsize=cache_size)(self._embed_uncached)

    @property
    def model_name(self) -> str:
        return self.embedder.model_name

    @property
    def stamp(self) -> Optional[int]:
        state = self._state
        return state.stamp if state else None

    @property
    def rebuilding(self) -> bool:
        return self._rebuild_lock.locked()

    def _embed_uncached(self, text: str) -> np.ndarray:
        vec = self.embedder.encode([text])[0]
        vec.setflags(write=False)
        return vec

    def embed(self, text: str) -> np.ndarray:
        return self._embed_cached(text)

    def cache_info(self) -> Dict[str, Any]:
        return get_cache_stats(self._embed_cached)

    def ensure_current(self) -> None:
        """Rebuild if the store moved on. Raises IndexRebuilding if another thread is rebuilding."""
        state = self._state
        if state is not None and state.stamp == self.store.current_version_stamp():
            return
        if not self._rebuild_lock.acquire(blocking=False):
            raise IndexRebuilding("rule index is being rebuilt")
        try:
            self._rebuild()
        finally:
            self._rebuild_lock.release()

    def _rebuild(self) -> None:
        stamp, rules = self.store.snapshot()
        if self._state is not None and self._state.stamp == stamp:
            return
        content_hash = corpus_hash(rules)
        if self._state is not None and self._state.content_hash == content_hash:
            self._state = _IndexState(stamp=stamp, index=self._state.index, content_hash=content_hash)
            return
        index = self._load_persisted(content_hash)
        if index is None:
            if rules:
                vectors = self.embedder.encode([r.document_text() for r in rules])
            else:
                vectors = np.zeros((0, 1), dtype='float32')
            index = VectorIndex(embeddings=np.asarray(vectors, dtype='float32'), rule_ids=[r.rule_id for r in rules])
        self._state = _IndexState(stamp=stamp, index=index, content_hash=content_hash)
        logger.info(f"[index] Built rule index v{stamp} ({len(rules)} rules, model={self.model_name})")

    def _load_persisted(self, content_hash: str) -> Optional[VectorIndex]:
        if not self.persist_path or not os.path.exists(self.persist_path):
            return None
        try:
            index, meta = VectorIndex.load(self.persist_path)
        except Exception as e:
            logger.warning(f"[index] Failed to load persisted index {self.persist_path}: {e}")
            return None
        if meta.get('model_name') != self.model_name or meta.get('corpus_hash') != content_hash:
            logger.info("[index] Persisted index does not match current corpus/model; re-encoding")
            return None
        logger.info(f"[index] Reusing persisted index from {self.persist_path}")
        return index

    def save(self, out_path: Optional[str] = None) -> Dict[str, Any]:
        self.ensure_current()
        state = self._state
        if state is None:
            raise CorpusUnavailable("rule index not built")
        path = out_path or self.persist_path
        if not path:
            raise ValueError("no output path for rule index")
        return state.index.save(path, self.model_name, state.content_hash)

    def nearest(self, vector: np.ndarray, k: int = config.MAX_CANDIDATES) -> List[Tuple[str, float]]:
        if self.rebuilding:
            raise IndexRebuilding("rule index is being rebuilt")
        state = self._state
        if state is None:
            raise CorpusUnavailable("rule index not built")
        results = state.index.search(vector, k=max(0, min(k, self.max_k)))
        # serve-then-check: never hand out neighbours of a superseded corpus
        if state.stamp != self.store.current_version_stamp():
            raise IndexRebuilding(f"rule index v{state.stamp} is stale")
        return results


__all__ = ['VectorIndex', 'EmbeddingIndex', 'corpus_hash', 'sha256_bytes']
