"""Candidate rule retrieval: semantic neighbours fused with exact keyword hits.

Contract:
- retrieve(data, query, language) -> List[RetrievalCandidate]
- run(data, query, language) -> Retrieval (candidates + mode + corpus version)

The embedding call runs on a worker thread under a per-invocation time
budget while the keyword scan runs on the caller thread. If the embedding
capability fails twice or runs out of budget, scores come from keywords only.
Candidates of another category are dropped (unless the charge type is
"other"), scores under the relevance floor are dropped, and the rest are
sorted by descending score then ascending rule_id.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from fair_charge import config
from fair_charge.errors import CorpusUnavailable, SemanticCapabilityFailure
from fair_charge.retrieval.vector_index import EmbeddingIndex
from fair_charge.rules.store import RuleStore
from fair_charge.schemas import ChargeType, LegalRule, RetrievalCandidate, StructuredData
from fair_charge.utils.text import matched_phrases, tokenize

logger = logging.getLogger(__name__)

MODE_SEMANTIC = 'semantic'
MODE_KEYWORD_ONLY = 'keyword_only'

CHARGE_TYPE_TEXT = {
    ChargeType.MRP: 'mrp maximum retail price',
    ChargeType.SERVICE_CHARGE: 'service charge',
    ChargeType.CHALLAN: 'traffic challan fine',
    ChargeType.OTHER: 'charge',
}


def build_evidence_text(data: StructuredData, query: Optional[str] = None) -> str:
    """Vendor, product names and the free-text query: the facts evaluators may read."""
    parts: List[str] = []
    if data.vendor:
        parts.append(data.vendor)
    parts.extend(p.name for p in data.products)
    if query and query.strip():
        parts.append(query.strip())
    return ' '.join(parts)


def build_retrieval_text(data: StructuredData, query: Optional[str] = None) -> str:
    evidence = build_evidence_text(data, query)
    return f"{CHARGE_TYPE_TEXT[data.charge_type]} {evidence}".strip()


def keyword_matches(text: str, rules: Sequence[LegalRule]) -> Dict[str, Tuple[str, ...]]:
    tokens = tokenize(text)
    hits: Dict[str, Tuple[str, ...]] = {}
    for rule in rules:
        matched = matched_phrases(tokens, rule.violation_keywords)
        if matched:
            hits[rule.rule_id] = matched
    return hits


@dataclass
class Retrieval:
    candidates: List[RetrievalCandidate]
    mode: str
    corpus_version: int
    text: str = ''
    keyword_hits: Dict[str, Tuple[str, ...]] = field(default_factory=dict)


class Retriever:
    def __init__(
        self,
        store: RuleStore,
        index: Optional[EmbeddingIndex],
        max_candidates: int = config.MAX_CANDIDATES,
        relevance_floor: float = config.RELEVANCE_FLOOR,
        keyword_bonus: float = config.KEYWORD_BONUS,
        timeout: float = config.SEMANTIC_TIMEOUT_SECONDS,
        max_workers: int = config.PIPELINE_WORKERS,
    ):
        self.store = store
        self.index = index
        self.max_candidates = max_candidates
        self.relevance_floor = relevance_floor
        self.keyword_bonus = keyword_bonus
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='fair-charge-embed')

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def retrieve(self, data: StructuredData, query: Optional[str] = None, language: str = 'en') -> List[RetrievalCandidate]:
        return self.run(data, query, language).candidates

    def run(self, data: StructuredData, query: Optional[str] = None, language: str = 'en') -> Retrieval:
        text = build_retrieval_text(data, query)
        deadline = time.monotonic() + self.timeout
        future = self._submit(text)

        stamp, rules = self.store.snapshot()
        hits = keyword_matches(text, rules)

        semantic = self._semantic_scores(text, future, deadline) if future is not None else None
        mode = MODE_SEMANTIC if semantic is not None else MODE_KEYWORD_ONLY
        candidates = self._rank(data.charge_type, rules, semantic or {}, hits)
        logger.debug(f"[retrieval] mode={mode} v{stamp} candidates={[c.rule_id for c in candidates]}")
        return Retrieval(candidates=candidates, mode=mode, corpus_version=stamp, text=text, keyword_hits=hits)

    def _submit(self, text: str) -> Optional[Future]:
        if self.index is None:
            return None
        return self._executor.submit(self._semantic_neighbours, text)

    def _semantic_neighbours(self, text: str) -> List[Tuple[str, float]]:
        self.index.ensure_current()
        vector = self.index.embed(text)
        return self.index.nearest(vector, self.max_candidates)

    def _semantic_scores(self, text: str, future: Future, deadline: float) -> Optional[Dict[str, float]]:
        for attempt in (1, 2):
            remaining = deadline - time.monotonic()
            try:
                neighbours = future.result(timeout=max(0.0, remaining))
                return {rid: min(1.0, max(0.0, 1.0 - dist)) for rid, dist in neighbours}
            except FuturesTimeout:
                # abandoned; the worker finishes on its own and its result is dropped
                future.cancel()
                logger.warning(f"[retrieval] Embedding exceeded {self.timeout:.1f}s budget; keyword-only fallback")
                return None
            except (SemanticCapabilityFailure, CorpusUnavailable) as e:
                if attempt == 2 or deadline - time.monotonic() <= 0:
                    logger.warning(f"[retrieval] Semantic step failed ({type(e).__name__}: {e}); keyword-only fallback")
                    return None
                logger.info(f"[retrieval] Semantic step failed ({type(e).__name__}); retrying once")
                future = self._executor.submit(self._semantic_neighbours, text)
        return None

    def _rank(
        self,
        charge_type: ChargeType,
        rules: Sequence[LegalRule],
        semantic: Dict[str, float],
        hits: Dict[str, Tuple[str, ...]],
    ) -> List[RetrievalCandidate]:
        by_id = {r.rule_id: r for r in rules}
        candidates: List[RetrievalCandidate] = []
        for rule_id in set(semantic) | set(hits):
            rule = by_id.get(rule_id)
            if rule is None:
                continue
            if charge_type != ChargeType.OTHER and rule.category != charge_type:
                continue
            matched = hits.get(rule_id, ())
            score = round(min(1.0, semantic.get(rule_id, 0.0) + self.keyword_bonus * len(matched)), 6)
            if score < self.relevance_floor:
                continue
            candidates.append(RetrievalCandidate(rule=rule, relevance_score=score, matched_keywords=matched))
        candidates.sort(key=lambda c: (-c.relevance_score, c.rule_id))
        return candidates[:self.max_candidates]


__all__ = [
    'Retriever', 'Retrieval', 'build_retrieval_text', 'build_evidence_text', 'keyword_matches',
    'CHARGE_TYPE_TEXT', 'MODE_SEMANTIC', 'MODE_KEYWORD_ONLY',
]
