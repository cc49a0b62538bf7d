"""End-to-end analysis through the pipeline with the offline hashing backend."""

import threading
import time

import pytest

from fair_charge.compose.composer import TITLES
from fair_charge.errors import CapabilityUnavailable, InvalidInput
from fair_charge.evaluation.evaluators import MRP_OVERCHARGE
from fair_charge.pipeline import build_pipeline, validate_input
from fair_charge.retrieval.embeddings import Embedder, HashingEmbedder
from fair_charge.retrieval.retriever import MODE_KEYWORD_ONLY, MODE_SEMANTIC
from fair_charge.schemas import DISCLAIMER, VerdictStatus


class FailingEmbedder(Embedder):
    model_name = "failing"

    def encode(self, texts):
        raise CapabilityUnavailable("embedding service down")


class SlowEmbedder(Embedder):
    model_name = "slow"

    def __init__(self, delay):
        self.delay = delay
        self.inner = HashingEmbedder()

    def encode(self, texts):
        time.sleep(self.delay)
        return self.inner.encode(texts)


def test_mrp_overcharge_is_a_violation(pipeline, mrp_overcharge):
    verdict = pipeline.analyze(mrp_overcharge)
    assert verdict.status == VerdictStatus.VIOLATION_DETECTED
    assert verdict.violation_type == MRP_OVERCHARGE
    assert verdict.rule_ids == ("LM-18-1",)
    assert [(c.law, c.section) for c in verdict.citations] == [("Legal Metrology Act, 2009", "18(1)")]
    assert verdict.retrieval_mode == MODE_SEMANTIC
    assert verdict.disclaimer == DISCLAIMER
    assert 0 < verdict.confidence <= 100
    assert "Rs 5.00" in verdict.explanation


def test_price_at_mrp_is_legal(pipeline):
    verdict = pipeline.analyze({"chargeType": "mrp", "products": [{"name": "Soap", "price": 45, "mrp": 45}]})
    assert verdict.status == VerdictStatus.LEGAL
    assert verdict.explanation


def test_optional_service_charge_is_legal(pipeline):
    verdict = pipeline.analyze({"chargeType": "service_charge", "vendor": "Cafe X", "amount": 200})
    assert verdict.status == VerdictStatus.LEGAL


def test_mandatory_service_charge_is_a_violation(pipeline):
    verdict = pipeline.analyze(
        {"chargeType": "service_charge", "vendor": "Cafe X", "amount": 200},
        query="the waiter said service charge is mandatory",
    )
    assert verdict.status == VerdictStatus.VIOLATION_DETECTED
    assert "CCPA-SC-1" in verdict.rule_ids


def test_challan_without_offence_is_insufficient(pipeline):
    verdict = pipeline.analyze({"chargeType": "challan", "amount": 5000})
    assert verdict.status == VerdictStatus.INSUFFICIENT_INFO
    assert verdict.citations == ()
    assert verdict.confidence <= 100


def test_challan_above_schedule(pipeline):
    verdict = pipeline.analyze({"chargeType": "challan", "amount": 5000}, query="riding without helmet")
    assert verdict.status == VerdictStatus.VIOLATION_DETECTED
    assert "MVA-194D" in verdict.rule_ids


def test_other_charge_type_never_decides(pipeline):
    verdict = pipeline.analyze({"chargeType": "other", "amount": 99}, query="hidden convenience fee")
    assert verdict.status == VerdictStatus.INSUFFICIENT_INFO


def test_analysis_is_idempotent(pipeline, mrp_overcharge):
    first = pipeline.analyze(mrp_overcharge, use_cache=False)
    second = pipeline.analyze(mrp_overcharge, use_cache=False)
    assert first.comparable() == second.comparable()


def test_concurrent_requests_agree(pipeline, mrp_overcharge):
    results = []
    lock = threading.Lock()

    def worker():
        verdict = pipeline.analyze(mrp_overcharge, use_cache=False)
        with lock:
            results.append(verdict.comparable())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(results) == 8
    assert all(r == results[0] for r in results)


def test_second_call_is_served_from_cache(pipeline, mrp_overcharge):
    first = pipeline.analyze(mrp_overcharge)
    second = pipeline.analyze(mrp_overcharge)
    assert first.comparable() == second.comparable()
    stats = pipeline.stats()
    assert stats["result_cache"]["hits"] == 1
    assert stats["result_cache"]["entries"] == 1
    assert stats["corpus"]["num_rules"] == len(pipeline.store)
    assert "embedding_cache" in stats


def test_rule_update_changes_corpus_version(pipeline, store, mrp_overcharge):
    first = pipeline.analyze(mrp_overcharge)
    record = store.get("LM-18-1").model_dump()
    record["penalty"] = "Fine up to Rs 30,000 for the first offence."
    store.upsert(record)
    second = pipeline.analyze(mrp_overcharge)
    assert second.corpus_version == first.corpus_version + 1
    assert second.status == VerdictStatus.VIOLATION_DETECTED
    assert "Fine up to Rs 30,000 for the first offence." in second.penalties
    assert pipeline.cache.stats()["hits"] == 0


def test_hindi_verdict(pipeline, mrp_overcharge):
    verdict = pipeline.analyze(mrp_overcharge, language="hi")
    assert verdict.language == "hi"
    assert verdict.title == TITLES["hi"][MRP_OVERCHARGE]
    assert verdict.disclaimer == DISCLAIMER


@pytest.mark.parametrize("data", [
    {"products": [{"name": "Soap", "price": 50, "mrp": 45}]},
    {"chargeType": "mrp", "products": [{"name": "Soap", "price": -1, "mrp": 45}]},
    {"chargeType": "parking"},
    {"chargeType": "mrp", "confidence": {"products": 1.5}},
    {"chargeType": "challan", "amount": 1e30},
    {"chargeType": "mrp", "products": [{"name": "Soap", "price": "1e27", "mrp": 45}]},
    {"chargeType": "mrp", "products": [{"name": "Soap", "price": 50, "mrp": "1e13"}]},
    ["not", "an", "object"],
])
def test_invalid_input_is_raised(pipeline, data):
    with pytest.raises(InvalidInput) as exc:
        pipeline.analyze(data)
    assert exc.value.details


def test_unsupported_language_is_rejected(pipeline, mrp_overcharge):
    with pytest.raises(InvalidInput):
        pipeline.analyze(mrp_overcharge, language="fr")


def test_validate_input_accepts_snake_case_alias():
    data = validate_input({"charge_type": "mrp"})
    assert data.charge_type.value == "mrp"


@pytest.mark.parametrize("data, query, rule_id", [
    ({"chargeType": "mrp", "products": [{"name": "Soap", "price": 50, "mrp": 45}]}, None, "LM-18-1"),
    ({"chargeType": "challan", "amount": 5000}, "riding without helmet", "MVA-194D"),
])
def test_embedding_outage_falls_back_to_keywords(store, data, query, rule_id):
    p = build_pipeline(store=store, embedder=FailingEmbedder(), index_path=None, timeout=5.0)
    try:
        verdict = p.analyze(data, query=query)
        assert verdict.retrieval_mode == MODE_KEYWORD_ONLY
        assert verdict.status == VerdictStatus.VIOLATION_DETECTED
        assert verdict.rule_ids == (rule_id,)
        # degraded answers are not cached
        assert len(p.cache) == 0
    finally:
        p.close()


def test_slow_embedding_still_answers(store, mrp_overcharge):
    p = build_pipeline(store=store, embedder=SlowEmbedder(0.5), index_path=None, timeout=0.05, warm=False)
    try:
        started = time.monotonic()
        verdict = p.analyze(mrp_overcharge)
        assert time.monotonic() - started < 0.5
        assert verdict.retrieval_mode == MODE_KEYWORD_ONLY
        assert verdict.status == VerdictStatus.VIOLATION_DETECTED
    finally:
        p.close()


def test_internal_failure_degrades_to_insufficient(pipeline, mrp_overcharge, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(pipeline.retriever, "run", boom)
    verdict = pipeline.analyze(mrp_overcharge)
    assert verdict.status == VerdictStatus.INSUFFICIENT_INFO
    assert verdict.retrieval_mode == "unavailable"
    assert verdict.citations == ()
    assert len(pipeline.cache) == 0


def test_fingerprint_failure_degrades_to_insufficient(pipeline, mrp_overcharge, monkeypatch):
    from fair_charge import pipeline as pipeline_module

    def broken_fingerprint(*args, **kwargs):
        raise ArithmeticError("cannot fingerprint")

    monkeypatch.setattr(pipeline_module, "fingerprint", broken_fingerprint)
    verdict = pipeline.analyze(mrp_overcharge)
    assert verdict.status == VerdictStatus.INSUFFICIENT_INFO
    assert verdict.retrieval_mode == "unavailable"


def test_largest_accepted_amount_is_analysed(pipeline):
    verdict = pipeline.analyze({"chargeType": "challan", "amount": "1000000000000"}, query="without helmet")
    assert verdict.status == VerdictStatus.VIOLATION_DETECTED
