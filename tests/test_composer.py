"""Verdict composition: status mapping, confidence and the generated-text filter."""

import pytest

from fair_charge.compose.composer import (
    GENERATED, TEMPLATE, VerdictComposer, compute_confidence, flagged_fields,
)
from fair_charge.errors import CapabilityRateLimited, CapabilityTimeout
from fair_charge.evaluation.evaluators import CHALLAN, MRP, SERVICE_CHARGE, EvaluationResult
from fair_charge.llm.completion import CompletionClient
from fair_charge.schemas import DISCLAIMER, Citation, RetrievalCandidate, StructuredData, VerdictStatus


class ScriptedClient(CompletionClient):
    """Replays a list of responses; exceptions in the list are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    def complete(self, prompt, max_tokens, temperature):
        self.prompts.append(prompt)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def mrp_case(store):
    data = StructuredData.model_validate({
        "chargeType": "mrp",
        "products": [{"name": "Soap", "price": 50, "mrp": 45}],
        "confidence": {"products": 0.6, "vendor": 0.95},
    })
    cands = [
        RetrievalCandidate(rule=store.get("LM-18-1"), relevance_score=0.9, matched_keywords=("mrp",)),
        RetrievalCandidate(rule=store.get("LM-PCR-6"), relevance_score=0.3),
    ]
    return data, cands, MRP.evaluate(data, cands)


def test_violation_verdict(store, mrp_case):
    data, cands, result = mrp_case
    verdict = VerdictComposer(store=store).compose(result, cands, data=data, corpus_version=7)
    assert verdict.status == VerdictStatus.VIOLATION_DETECTED
    assert verdict.citations == (Citation(law="Legal Metrology Act, 2009", section="18(1)"),)
    assert verdict.rule_ids == ("LM-18-1",)
    assert verdict.complaint_template_ids == ("mrp_overcharge_v1",)
    assert verdict.authorities[0].startswith("Controller of Legal Metrology")
    assert verdict.disclaimer == DISCLAIMER
    assert verdict.corpus_version == 7
    assert verdict.explanation_source == TEMPLATE
    assert "Section 18(1) of the Legal Metrology Act, 2009" in verdict.explanation
    # min(top relevance 0.9, products confidence 0.6)
    assert verdict.confidence == 60
    assert verdict.flagged_fields == ("products",)


def test_confidence_helpers(mrp_case):
    data, cands, _ = mrp_case
    assert compute_confidence([], data, ("products",)) == 0
    assert compute_confidence(cands, data, ("amount",)) == 90
    assert compute_confidence(cands, None, ("products",)) == 90
    assert flagged_fields(data, 0.7) == ("products",)
    assert flagged_fields(None) == ()


def test_legal_verdict_cites_checked_rules(store):
    data = StructuredData.model_validate({"chargeType": "service_charge", "amount": 200, "vendor": "Cafe X"})
    cands = [RetrievalCandidate(rule=store.get("CCPA-SC-1"), relevance_score=0.4)]
    verdict = VerdictComposer().compose(SERVICE_CHARGE.evaluate(data, cands), cands, data=data)
    assert verdict.status == VerdictStatus.LEGAL
    assert verdict.explanation
    assert "Guideline 1 of the CCPA Guidelines" in verdict.explanation
    assert verdict.violation_type is None


def test_no_candidates_is_insufficient(store):
    data = StructuredData.model_validate({"chargeType": "mrp", "products": [{"name": "Soap", "price": 50, "mrp": 45}]})
    verdict = VerdictComposer().compose(MRP.evaluate(data, []), [], data=data)
    assert verdict.status == VerdictStatus.INSUFFICIENT_INFO
    assert verdict.confidence == 0
    assert verdict.citations == ()


def test_insufficient_keeps_evaluator_reason(store):
    data = StructuredData.model_validate({"chargeType": "challan", "amount": 5000})
    cands = [RetrievalCandidate(rule=store.get("MVA-177"), relevance_score=0.2)]
    verdict = VerdictComposer().compose(CHALLAN.evaluate(data, cands), cands, data=data)
    assert verdict.status == VerdictStatus.INSUFFICIENT_INFO
    assert "penalty schedule" in verdict.explanation


def test_citation_outside_candidates_fails_closed(store, mrp_case):
    data, cands, result = mrp_case
    stray = EvaluationResult(
        violation_type=result.violation_type,
        applicable_rules=(RetrievalCandidate(rule=store.get("MVA-185"), relevance_score=0.9),),
        reasoning_facts=result.reasoning_facts,
    )
    verdict = VerdictComposer().compose(stray, cands, data=data)
    assert verdict.status == VerdictStatus.INSUFFICIENT_INFO
    assert verdict.citations == ()


def test_violation_without_rules_fails_closed(mrp_case):
    data, cands, result = mrp_case
    bare = EvaluationResult(violation_type=result.violation_type, reasoning_facts=result.reasoning_facts)
    verdict = VerdictComposer().compose(bare, cands, data=data)
    assert verdict.status == VerdictStatus.INSUFFICIENT_INFO


def test_hindi_output(store, mrp_case):
    data, cands, result = mrp_case
    verdict = VerdictComposer().compose(result, cands, language="hi", data=data)
    assert verdict.language == "hi"
    assert verdict.title == "एमआरपी से अधिक वसूली"
    assert store.get("LM-18-1").description_hi in verdict.explanation
    assert verdict.citations[0].section == "18(1)"


def test_unsupported_language_falls_back_to_english(mrp_case):
    data, cands, result = mrp_case
    assert VerdictComposer().compose(result, cands, language="fr", data=data).language == "en"


def test_faithful_generation_is_used(store, mrp_case):
    data, cands, result = mrp_case
    text = ("You paid Rs 5.00 more than the MRP printed on the soap. "
            "That breaks Section 18(1) of the Legal Metrology Act, 2009.")
    client = ScriptedClient(text)
    verdict = VerdictComposer(completion_client=client, store=store).compose(result, cands, data=data)
    assert verdict.explanation == text
    assert verdict.explanation_source == GENERATED
    assert "Rs 45.00" in client.prompts[0]
    assert "Section 18(1) of the Legal Metrology Act, 2009" in client.prompts[0]


@pytest.mark.parametrize("text", [
    "This breaks Section 420 of the Indian Penal Code.",
    "You can claim Rs 10,000 as compensation.",
    "Complain to the Traffic Police / Regional Transport Office.",
    "This is an offence under the Consumer Protection Act, 2019.",
    "You paid extra. File a complaint with the Food Safety and Standards Authority of India "
    "or the Ministry of Consumer Affairs.",
    "Write to the State Consumer Forum about the soap.",
    "You were charged 500 rupees more than allowed.",
    "Ask for a refund of 5000/- from the shop.",
])
def test_unsupported_references_are_rejected(store, mrp_case, text):
    data, cands, result = mrp_case
    composer = VerdictComposer(completion_client=ScriptedClient(text), store=store)
    verdict = composer.compose(result, cands, data=data)
    assert verdict.explanation_source == TEMPLATE
    assert verdict.explanation != text
    assert verdict.status == VerdictStatus.VIOLATION_DETECTED


def test_invented_authority_rejected_without_store(mrp_case):
    data, cands, result = mrp_case
    text = "Complain to the Supreme Court about the soap."
    verdict = VerdictComposer(completion_client=ScriptedClient(text)).compose(result, cands, data=data)
    assert verdict.explanation_source == TEMPLATE


def test_applicable_authority_may_be_named(store, mrp_case):
    data, cands, result = mrp_case
    text = "You paid Rs 5.00 over the MRP. Contact the Controller of Legal Metrology in your state."
    verdict = VerdictComposer(completion_client=ScriptedClient(text), store=store).compose(result, cands, data=data)
    assert verdict.explanation_source == GENERATED
    assert verdict.explanation == text


def test_completion_retried_once(store, mrp_case):
    data, cands, result = mrp_case
    client = ScriptedClient(CapabilityTimeout("slow"), "You were overcharged by Rs 5.00.")
    verdict = VerdictComposer(completion_client=client, store=store).compose(result, cands, data=data)
    assert verdict.explanation_source == GENERATED
    assert len(client.prompts) == 2


def test_completion_failing_twice_uses_template(store, mrp_case):
    data, cands, result = mrp_case
    client = ScriptedClient(CapabilityRateLimited("429"), CapabilityTimeout("slow"))
    verdict = VerdictComposer(completion_client=client, store=store).compose(result, cands, data=data)
    assert verdict.explanation_source == TEMPLATE
    assert verdict.status == VerdictStatus.VIOLATION_DETECTED
    assert "Legal Metrology Act" in verdict.explanation


def test_status_never_depends_on_generation(store, mrp_case):
    data, cands, result = mrp_case
    client = ScriptedClient("No violation here, the price is fine.")
    verdict = VerdictComposer(completion_client=client, store=store).compose(result, cands, data=data)
    assert verdict.status == VerdictStatus.VIOLATION_DETECTED
    assert verdict.citations
