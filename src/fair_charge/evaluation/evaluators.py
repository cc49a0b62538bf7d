"""Deterministic per-category violation logic.

One evaluator per charge type, chosen by ``select_evaluator``. Each exposes
``evaluate(data, candidates, query=None) -> EvaluationResult`` and is a pure
function of its inputs. Money is compared in integer paise.

Findings are only reported when a retrieved candidate can substantiate
them; otherwise the result is insufficient_info.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fair_charge.evaluation.money import format_rupees, to_paise
from fair_charge.retrieval.retriever import build_evidence_text
from fair_charge.schemas import ChargeType, PenaltyEntry, RetrievalCandidate, StructuredData
from fair_charge.utils.text import contains_phrase, matched_phrases, tokenize

MRP_OVERCHARGE = 'mrp_overcharge'
MANDATORY_SERVICE_CHARGE = 'mandatory_service_charge'
CHALLAN_EXCESS_FINE = 'challan_excess_fine'

MANDATORY_MARKERS = (
    'mandatory', 'compulsory', 'service charge included', 'service charge added',
    'service charge levied', 'non negotiable', 'अनिवार्य',
)
VOLUNTARY_MARKERS = (
    'voluntary', 'optional', 'discretionary', 'at your discretion', 'स्वैच्छिक', 'ऐच्छिक',
    'not mandatory', 'non mandatory', 'not compulsory', 'अनिवार्य नहीं',
)


@dataclass(frozen=True)
class EvaluationResult:
    violation_type: Optional[str]
    applicable_rules: Tuple[RetrievalCandidate, ...] = ()
    reasoning_facts: Tuple[Dict[str, Any], ...] = ()
    insufficient_info: bool = False
    reason: Optional[str] = None
    consumed_fields: Tuple[str, ...] = ()

    @property
    def is_violation(self) -> bool:
        return self.violation_type is not None and not self.insufficient_info


def _insufficient(reason: str, facts: Sequence[Dict[str, Any]] = (), consumed: Sequence[str] = ()) -> EvaluationResult:
    return EvaluationResult(
        violation_type=None,
        reasoning_facts=tuple(facts),
        insufficient_info=True,
        reason=reason,
        consumed_fields=tuple(consumed),
    )


def _rules_for(candidates: Sequence[RetrievalCandidate], violation_type: str) -> Tuple[RetrievalCandidate, ...]:
    return tuple(c for c in candidates if c.rule.violation_type == violation_type)


class CategoryEvaluator:
    category: ChargeType
    consumed_fields: Tuple[str, ...] = ()

    def evaluate(
        self,
        data: StructuredData,
        candidates: Sequence[RetrievalCandidate],
        query: Optional[str] = None,
    ) -> EvaluationResult:
        raise NotImplementedError


class MrpEvaluator(CategoryEvaluator):
    category = ChargeType.MRP
    consumed_fields = ('products',)

    def evaluate(self, data, candidates, query=None):
        comparable = [p for p in data.products if p.mrp is not None]
        if not comparable:
            return _insufficient(
                "No product on the bill carries both a selling price and a printed MRP. "
                "Enter the MRP printed on the package to check for overcharging.",
                consumed=self.consumed_fields,
            )
        facts: List[Dict[str, Any]] = []
        overcharged = False
        for product in comparable:
            price, mrp = to_paise(product.price), to_paise(product.mrp)
            excess = price - mrp
            facts.append({
                'fact': 'price_vs_mrp',
                'product': product.name,
                'price_paise': price,
                'mrp_paise': mrp,
                'excess_paise': max(0, excess),
                'overcharged': excess > 0,
            })
            overcharged = overcharged or excess > 0

        rules = _rules_for(candidates, MRP_OVERCHARGE)
        if not overcharged:
            return EvaluationResult(None, rules, tuple(facts), consumed_fields=self.consumed_fields)
        if not rules:
            return _insufficient(
                "A price above MRP was found but no matching legal rule was retrieved to cite.",
                facts, self.consumed_fields,
            )
        return EvaluationResult(MRP_OVERCHARGE, rules, tuple(facts), consumed_fields=self.consumed_fields)


class ServiceChargeEvaluator(CategoryEvaluator):
    category = ChargeType.SERVICE_CHARGE
    consumed_fields = ('products', 'vendor')

    def evaluate(self, data, candidates, query=None):
        tokens = tokenize(build_evidence_text(data, query))
        mandatory = matched_phrases(tokens, MANDATORY_MARKERS)
        voluntary = matched_phrases(tokens, VOLUNTARY_MARKERS)
        facts: List[Dict[str, Any]] = [{
            'fact': 'service_charge_framing',
            'mandatory_markers': list(mandatory),
            'voluntary_markers': list(voluntary),
            'mandatory': bool(mandatory) and not voluntary,
        }]
        if data.amount is not None:
            facts.append({'fact': 'service_charge_amount', 'amount_paise': to_paise(data.amount)})

        rules = _rules_for(candidates, MANDATORY_SERVICE_CHARGE)
        if not mandatory or voluntary:
            return EvaluationResult(None, rules, tuple(facts), consumed_fields=self.consumed_fields)
        if not rules:
            return _insufficient(
                "The service charge appears to be mandatory but no matching legal rule was retrieved to cite.",
                facts, self.consumed_fields,
            )
        return EvaluationResult(MANDATORY_SERVICE_CHARGE, rules, tuple(facts), consumed_fields=self.consumed_fields)


class ChallanEvaluator(CategoryEvaluator):
    category = ChargeType.CHALLAN

    @staticmethod
    def _match_schedule(tokens: List[str], schedule: Dict[str, PenaltyEntry]) -> Optional[Tuple[str, PenaltyEntry, str]]:
        """Most specific (longest alias) schedule entry mentioned in the evidence."""
        best: Optional[Tuple[str, PenaltyEntry, str]] = None
        best_len = 0
        for offence in sorted(schedule):
            entry = schedule[offence]
            for alias in entry.aliases:
                n = len(tokenize(alias))
                if n > best_len and contains_phrase(tokens, alias):
                    best, best_len = (offence, entry, alias), n
        return best

    def evaluate(self, data, candidates, query=None):
        tokens = tokenize(build_evidence_text(data, query))
        matched: List[RetrievalCandidate] = []
        facts: List[Dict[str, Any]] = []
        ceiling = 0
        for cand in candidates:
            hit = self._match_schedule(tokens, cand.rule.penalty_schedule)
            if hit is None:
                continue
            offence, entry, alias = hit
            max_fine = to_paise(entry.max_fine)
            ceiling += max_fine
            matched.append(cand)
            facts.append({
                'fact': 'statutory_ceiling',
                'rule_id': cand.rule_id,
                'offence': offence,
                'matched_alias': alias,
                'max_fine_paise': max_fine,
            })

        if not matched:
            return _insufficient(
                "The traffic offence could not be mapped to an entry in any statutory penalty schedule. "
                "Describe the offence written on the challan (for example 'without helmet').",
                consumed=('amount',),
            )

        if data.amount is not None:
            fine, consumed = to_paise(data.amount), ('amount',)
        elif data.products:
            fine, consumed = sum(to_paise(p.price) for p in data.products), ('products',)
        else:
            return _insufficient("The challan amount is missing.", facts, ('amount',))

        excess = fine - ceiling
        facts.append({
            'fact': 'fine_vs_ceiling',
            'fine_paise': fine,
            'ceiling_paise': ceiling,
            'excess_paise': max(0, excess),
            'exceeds': excess > 0,
        })
        if excess > 0:
            return EvaluationResult(CHALLAN_EXCESS_FINE, tuple(matched), tuple(facts), consumed_fields=consumed)
        return EvaluationResult(None, tuple(matched), tuple(facts), consumed_fields=consumed)


class OtherEvaluator(CategoryEvaluator):
    category = ChargeType.OTHER

    def evaluate(self, data, candidates, query=None):
        return _insufficient(
            "Only MRP overcharges, restaurant service charges and traffic challans are checked "
            "automatically; no rule is applied to other charges."
        )


MRP = MrpEvaluator()
SERVICE_CHARGE = ServiceChargeEvaluator()
CHALLAN = ChallanEvaluator()
OTHER = OtherEvaluator()


def select_evaluator(charge_type: ChargeType) -> CategoryEvaluator:
    if charge_type is ChargeType.MRP:
        return MRP
    if charge_type is ChargeType.SERVICE_CHARGE:
        return SERVICE_CHARGE
    if charge_type is ChargeType.CHALLAN:
        return CHALLAN
    if charge_type is ChargeType.OTHER:
        return OTHER
    raise ValueError(f"Unknown charge type: {charge_type!r}")


def describe_fact(fact: Dict[str, Any]) -> str:
    """One-line English rendering of a reasoning fact."""
    kind = fact.get('fact')
    if kind == 'price_vs_mrp':
        line = (f"'{fact['product']}' was billed at {format_rupees(fact['price_paise'])} "
                f"against a printed MRP of {format_rupees(fact['mrp_paise'])}")
        if fact['overcharged']:
            line += f", {format_rupees(fact['excess_paise'])} above MRP"
        return line + '.'
    if kind == 'service_charge_framing':
        if fact['mandatory']:
            return f"The bill presents the service charge as mandatory ({', '.join(fact['mandatory_markers'])})."
        if fact['voluntary_markers']:
            return "The bill marks the service charge as voluntary."
        return "The bill does not present the service charge as mandatory."
    if kind == 'service_charge_amount':
        return f"Service charge billed: {format_rupees(fact['amount_paise'])}."
    if kind == 'statutory_ceiling':
        return (f"Offence '{fact['offence'].replace('_', ' ')}' carries a maximum fine of "
                f"{format_rupees(fact['max_fine_paise'])}.")
    if kind == 'fine_vs_ceiling':
        line = (f"The challan demands {format_rupees(fact['fine_paise'])} against a statutory maximum of "
                f"{format_rupees(fact['ceiling_paise'])}")
        if fact['exceeds']:
            line += f", {format_rupees(fact['excess_paise'])} more than the law allows"
        return line + '.'
    return str(fact)


__all__ = [
    'EvaluationResult', 'CategoryEvaluator', 'MrpEvaluator', 'ServiceChargeEvaluator', 'ChallanEvaluator',
    'OtherEvaluator', 'select_evaluator', 'describe_fact',
    'MRP_OVERCHARGE', 'MANDATORY_SERVICE_CHARGE', 'CHALLAN_EXCESS_FINE',
]
