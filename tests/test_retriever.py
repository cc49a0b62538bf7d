"""Candidate retrieval: ranking, category filter and keyword-only fallback."""

import time

import pytest

from fair_charge.errors import CapabilityUnavailable
from fair_charge.retrieval.embeddings import Embedder, HashingEmbedder
from fair_charge.retrieval.retriever import (
    MODE_KEYWORD_ONLY, MODE_SEMANTIC, Retriever, build_retrieval_text, keyword_matches,
)
from fair_charge.retrieval.vector_index import EmbeddingIndex
from fair_charge.schemas import ChargeType, StructuredData


class FailingEmbedder(Embedder):
    model_name = "failing"

    def __init__(self):
        self.calls = 0

    def encode(self, texts):
        self.calls += 1
        raise CapabilityUnavailable("embedding service down")


class SlowEmbedder(Embedder):
    model_name = "slow"

    def __init__(self, delay):
        self.delay = delay
        self.inner = HashingEmbedder()

    def encode(self, texts):
        time.sleep(self.delay)
        return self.inner.encode(texts)


def _data(**kw):
    return StructuredData.model_validate(kw)


@pytest.fixture
def retriever(store):
    r = Retriever(store, EmbeddingIndex(store, HashingEmbedder()), timeout=10.0)
    yield r
    r.close()


def test_retrieval_text_prefixes_charge_type():
    data = _data(chargeType="challan", vendor="Traffic Police", products=[{"name": "without helmet", "price": 1000}])
    assert build_retrieval_text(data, "  fined today ") == "traffic challan fine Traffic Police without helmet fined today"


def test_keyword_matches_are_exact_phrases(store):
    hits = keyword_matches("service charge is mandatory", list(store.all()))
    assert "service charge" in hits["CCPA-SC-1"]
    assert "CCPA-SC-5" not in hits


def test_mrp_candidates_are_ranked_and_filtered(retriever):
    data = _data(chargeType="mrp", products=[{"name": "Soap", "price": 50, "mrp": 45}])
    result = retriever.run(data)
    assert result.mode == MODE_SEMANTIC
    ids = [c.rule_id for c in result.candidates]
    assert ids[0] == "LM-18-1"
    assert all(c.rule.category == ChargeType.MRP for c in result.candidates)
    scores = [c.relevance_score for c in result.candidates]
    assert scores == sorted(scores, reverse=True)
    assert all(0.15 <= s <= 1.0 for s in scores)
    assert set(result.candidates[0].matched_keywords) >= {"mrp", "maximum retail price"}


def test_other_charge_type_keeps_every_category(retriever):
    data = _data(chargeType="other", vendor="Mall")
    result = retriever.run(data, query="hidden charges and mrp above printed price")
    categories = {c.rule.category for c in result.candidates}
    assert ChargeType.OTHER in categories
    assert ChargeType.MRP in categories


def test_candidate_cap(store):
    r = Retriever(store, EmbeddingIndex(store, HashingEmbedder()), max_candidates=2, timeout=10.0)
    try:
        data = _data(chargeType="challan")
        assert len(r.retrieve(data, "challan")) == 2
    finally:
        r.close()


def test_ties_break_by_rule_id(store):
    r = Retriever(store, None)
    try:
        result = r.run(_data(chargeType="challan"))
        assert result.mode == MODE_KEYWORD_ONLY
        ids = [c.rule_id for c in result.candidates]
        assert ids == sorted(ids)
        assert len({c.relevance_score for c in result.candidates}) == 1
    finally:
        r.close()


def test_failing_embedder_falls_back_to_keywords(store):
    embedder = FailingEmbedder()
    r = Retriever(store, EmbeddingIndex(store, embedder), timeout=5.0)
    try:
        result = r.run(_data(chargeType="mrp", products=[{"name": "Soap", "price": 50, "mrp": 45}]))
    finally:
        r.close()
    assert result.mode == MODE_KEYWORD_ONLY
    assert embedder.calls == 2
    assert [c.rule_id for c in result.candidates] == ["LM-18-1"]
    assert result.candidates[0].relevance_score == pytest.approx(0.4)


def test_slow_embedder_is_abandoned(store):
    r = Retriever(store, EmbeddingIndex(store, SlowEmbedder(0.5)), timeout=0.05)
    try:
        started = time.monotonic()
        result = r.run(_data(chargeType="challan"), query="without helmet")
        elapsed = time.monotonic() - started
    finally:
        r.close()
    assert result.mode == MODE_KEYWORD_ONLY
    assert elapsed < 0.5
    assert result.candidates[0].rule_id == "MVA-194D"


def test_no_match_returns_empty(store):
    r = Retriever(store, None)
    try:
        assert r.retrieve(_data(chargeType="service_charge", vendor="Cafe X")) != []
        assert r.retrieve(_data(chargeType="other", vendor="Cafe X")) == []
    finally:
        r.close()
