"""Verdict composition.

compose(result, candidates, language, data) -> Verdict

Status comes only from the evaluator result. Citations are exactly the
(law, section) pairs of the applicable rules. Confidence is derived from
retrieval relevance and field-level extraction confidence. An optional
completion client may rephrase the explanation; its output is rejected in
favour of the template if it mentions any law, section, authority or amount
that was not in the facts it was given.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from fair_charge import config
from fair_charge.errors import CompositionInvariantViolation, SemanticCapabilityFailure
from fair_charge.evaluation.evaluators import (
    CHALLAN_EXCESS_FINE, MANDATORY_SERVICE_CHARGE, MRP_OVERCHARGE, EvaluationResult, describe_fact,
)
from fair_charge.llm.completion import CompletionClient
from fair_charge.parsing.statute_extractor import (
    authority_matches, extract_acts, extract_amounts, extract_authorities, extract_sections, law_year,
    normalize_law, normalize_section,
)
from fair_charge.rules.store import RuleStore
from fair_charge.schemas import Citation, LegalRule, RetrievalCandidate, StructuredData, Verdict, VerdictStatus

logger = logging.getLogger(__name__)

TEMPLATE = 'template'
GENERATED = 'generated'

TITLES: Dict[str, Dict[str, str]] = {
    'en': {
        MRP_OVERCHARGE: 'Charged Above MRP',
        MANDATORY_SERVICE_CHARGE: 'Mandatory Service Charge',
        CHALLAN_EXCESS_FINE: 'Challan Exceeds Statutory Fine',
        'legal': 'No Violation Found',
        'insufficient': 'More Information Needed',
    },
    'hi': {
        MRP_OVERCHARGE: 'एमआरपी से अधिक वसूली',
        MANDATORY_SERVICE_CHARGE: 'अनिवार्य सेवा शुल्क',
        CHALLAN_EXCESS_FINE: 'चालान वैधानिक सीमा से अधिक',
        'legal': 'कोई उल्लंघन नहीं मिला',
        'insufficient': 'और जानकारी आवश्यक',
    },
}

NO_RULE_REASON = "No rule in the consumer-protection database is relevant to this charge."


def resolve_language(language: Optional[str]) -> str:
    return language if language in config.SUPPORTED_LANGUAGES else 'en'


def provision(rule: LegalRule, language: str = 'en') -> str:
    """'Section 18(1)' for numbered sections; 'Rule 6' and 'Guideline 1' read as-is."""
    if rule.section[:1].isdigit():
        return f"धारा {rule.section}" if language == 'hi' else f"Section {rule.section}"
    return rule.section


def flagged_fields(data: Optional[StructuredData], threshold: float = config.FIELD_CONFIDENCE_THRESHOLD) -> Tuple[str, ...]:
    if data is None:
        return ()
    return tuple(sorted(k for k, v in data.confidence.items() if v < threshold))


def compute_confidence(
    candidates: Sequence[RetrievalCandidate],
    data: Optional[StructuredData],
    consumed_fields: Iterable[str],
) -> int:
    if not candidates:
        return 0
    scores = [max(c.relevance_score for c in candidates)]
    if data is not None:
        scores.extend(data.confidence[f] for f in consumed_fields if f in data.confidence)
    return max(0, min(100, int(round(min(scores) * 100))))


def _unique(values: Iterable[Optional[str]]) -> Tuple[str, ...]:
    out: List[str] = []
    for v in values:
        if v and v not in out:
            out.append(v)
    return tuple(out)


def citations_for(rules: Sequence[RetrievalCandidate]) -> Tuple[Citation, ...]:
    seen: List[Citation] = []
    for c in rules:
        citation = Citation(law=c.rule.law, section=c.rule.section)
        if citation not in seen:
            seen.append(citation)
    return tuple(seen)


def insufficient_verdict(
    reason: str,
    language: str = 'en',
    corpus_version: int = 0,
    retrieval_mode: str = 'unavailable',
    flagged: Sequence[str] = (),
    facts: Sequence[Dict[str, Any]] = (),
    confidence: int = 0,
) -> Verdict:
    language = resolve_language(language)
    return Verdict(
        status=VerdictStatus.INSUFFICIENT_INFO,
        title=TITLES[language]['insufficient'],
        explanation=reason,
        confidence=confidence,
        reasoning_facts=tuple(facts),
        flagged_fields=tuple(flagged),
        language=language,
        corpus_version=corpus_version,
        retrieval_mode=retrieval_mode,
    )


class VerdictComposer:
    def __init__(
        self,
        completion_client: Optional[CompletionClient] = None,
        store: Optional[RuleStore] = None,
        max_tokens: int = config.COMPLETION_MAX_TOKENS,
        temperature: float = config.COMPLETION_TEMPERATURE,
        field_threshold: float = config.FIELD_CONFIDENCE_THRESHOLD,
    ):
        self.completion_client = completion_client
        self.store = store
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.field_threshold = field_threshold

    def compose(
        self,
        result: EvaluationResult,
        candidates: Sequence[RetrievalCandidate],
        language: str = 'en',
        data: Optional[StructuredData] = None,
        retrieval_mode: str = 'semantic',
        corpus_version: int = 0,
    ) -> Verdict:
        language = resolve_language(language)
        flagged = flagged_fields(data, self.field_threshold)
        confidence = compute_confidence(candidates, data, result.consumed_fields)

        if not candidates or result.insufficient_info:
            return insufficient_verdict(
                result.reason or NO_RULE_REASON, language, corpus_version, retrieval_mode,
                flagged, result.reasoning_facts, confidence,
            )

        applicable = tuple(result.applicable_rules)
        try:
            self._check_invariants(result, applicable, candidates)
        except CompositionInvariantViolation as e:
            logger.error(f"[compose] Invariant violation, failing closed: {e}")
            return insufficient_verdict(
                "The finding could not be tied to a rule in the database.", language, corpus_version,
                retrieval_mode, flagged, result.reasoning_facts, 0,
            )

        status = VerdictStatus.VIOLATION_DETECTED if result.is_violation else VerdictStatus.LEGAL
        title = TITLES[language][result.violation_type if result.is_violation else 'legal']
        template = self.template_explanation(status, result, applicable, language)
        explanation, source = self.phrase(title, result, applicable, template, language)
        return Verdict(
            status=status,
            title=title,
            explanation=explanation,
            confidence=confidence,
            citations=citations_for(applicable),
            violation_type=result.violation_type if result.is_violation else None,
            rule_ids=tuple(c.rule_id for c in applicable),
            authorities=_unique(c.rule.authority for c in applicable),
            penalties=_unique(c.rule.penalty for c in applicable),
            complaint_template_ids=_unique(c.rule.complaint_template_id for c in applicable),
            reasoning_facts=tuple(result.reasoning_facts),
            flagged_fields=flagged,
            language=language,
            corpus_version=corpus_version,
            retrieval_mode=retrieval_mode,
            explanation_source=source,
        )

    @staticmethod
    def _check_invariants(
        result: EvaluationResult,
        applicable: Sequence[RetrievalCandidate],
        candidates: Sequence[RetrievalCandidate],
    ) -> None:
        retrieved = {(c.rule_id, c.rule.version) for c in candidates}
        stray = [c.rule_id for c in applicable if (c.rule_id, c.rule.version) not in retrieved]
        if stray:
            raise CompositionInvariantViolation(f"applicable rules not in candidate set: {stray}")
        if result.is_violation and not applicable:
            raise CompositionInvariantViolation(f"{result.violation_type} has no citation")

    # ------------------------------------------------------------------ text

    @staticmethod
    def template_explanation(
        status: VerdictStatus,
        result: EvaluationResult,
        applicable: Sequence[RetrievalCandidate],
        language: str = 'en',
    ) -> str:
        facts = ' '.join(describe_fact(f) for f in result.reasoning_facts)
        parts: List[str] = [facts] if facts else []
        if status == VerdictStatus.VIOLATION_DETECTED:
            for c in applicable:
                rule = c.rule
                if language == 'hi':
                    parts.append(
                        f"यह {rule.law} की {provision(rule, language)} का उल्लंघन है: {rule.description_hi or rule.description} "
                        f"दंड: {rule.penalty} शिकायत: {rule.authority}।"
                    )
                else:
                    parts.append(
                        f"This contravenes {provision(rule)} of the {rule.law}: {rule.description} "
                        f"Penalty: {rule.penalty} You can complain to the {rule.authority}."
                    )
        elif applicable:
            checked = '; '.join(f"{provision(c.rule)} of the {c.rule.law}" for c in applicable)
            if language == 'hi':
                parts.append(f"जाँचे गए नियम ({checked}) का कोई उल्लंघन नहीं मिला।")
            else:
                parts.append(f"No contravention of {checked} was found.")
        else:
            if language == 'hi':
                parts.append("प्राप्त किसी भी नियम का उल्लंघन नहीं मिला।")
            else:
                parts.append("None of the retrieved rules is contravened by this charge.")
        return ' '.join(parts)

    def build_prompt(self, title: str, result: EvaluationResult, applicable: Sequence[RetrievalCandidate], language: str) -> str:
        lines = [
            "Rewrite the finding below as a short, plain-language explanation for a consumer.",
            "Use only the facts listed. Do not mention any law, section, authority, penalty or amount "
            "that is not listed here.",
            f"Language: {'Hindi' if language == 'hi' else 'English'}",
            f"Finding: {title}",
            "Facts:",
        ]
        lines.extend(f"- {describe_fact(f)}" for f in result.reasoning_facts)
        for c in applicable:
            lines.append(f"Rule: {provision(c.rule)} of the {c.rule.law}. {c.rule.description}")
            lines.append(f"Penalty: {c.rule.penalty}")
            lines.append(f"Authority: {c.rule.authority}")
        lines.append("Explanation:")
        return '\n'.join(lines)

    def phrase(
        self,
        title: str,
        result: EvaluationResult,
        applicable: Sequence[RetrievalCandidate],
        template: str,
        language: str,
    ) -> Tuple[str, str]:
        if self.completion_client is None:
            return template, TEMPLATE
        prompt = self.build_prompt(title, result, applicable, language)
        text = ''
        for attempt in (1, 2):
            try:
                text = self.completion_client.complete(prompt, self.max_tokens, self.temperature)
                break
            except SemanticCapabilityFailure as e:
                if attempt == 2:
                    logger.warning(f"[compose] Completion failed twice ({type(e).__name__}); using template")
                    return template, TEMPLATE
                logger.info(f"[compose] Completion failed ({type(e).__name__}); retrying once")
        text = (text or '').strip()
        if not text:
            return template, TEMPLATE
        problems = self.unsupported_references(text, applicable, prompt)
        if problems:
            logger.warning(f"[compose] Generated explanation rejected: {problems}")
            return template, TEMPLATE
        return text, GENERATED

    def known_authorities(self, applicable: Sequence[RetrievalCandidate]) -> Tuple[str, ...]:
        rules = list(self.store.all()) if self.store is not None else [c.rule for c in applicable]
        return _unique(r.authority for r in rules)

    def unsupported_references(self, text: str, applicable: Sequence[RetrievalCandidate], supplied: str) -> List[str]:
        """Law/section/authority/amount mentions in ``text`` not backed by the citations or supplied facts."""
        allowed_sections = {normalize_section(c.rule.section) for c in applicable} | set(extract_sections(supplied))
        allowed_laws = [(normalize_law(c.rule.law), law_year(c.rule.law)) for c in applicable]
        allowed_laws += [(a['name'], a['year']) for a in extract_acts(supplied)]
        allowed_authorities = {c.rule.authority.lower() for c in applicable}
        allowed_amounts = extract_amounts(supplied)

        problems: List[str] = []
        for section in extract_sections(text):
            if section in allowed_sections or any(s.startswith(section + '(') for s in allowed_sections):
                continue
            problems.append(f"section {section}")
        for act in extract_acts(text):
            if any(act['name'] in name and (act['year'] is None or year is None or act['year'] == year)
                   for name, year in allowed_laws):
                continue
            problems.append(f"law {act['raw']}")
        lowered = text.lower()
        for authority in self.known_authorities(applicable):
            if authority.lower() in lowered and authority.lower() not in allowed_authorities:
                problems.append(f"authority {authority}")
        for name in extract_authorities(text):
            if not authority_matches(name, allowed_authorities):
                problems.append(f"authority {name}")
        for amount in sorted(extract_amounts(text) - allowed_amounts):
            problems.append(f"amount {amount / 100:.2f}")
        return problems


__all__ = [
    'VerdictComposer', 'insufficient_verdict', 'compute_confidence', 'flagged_fields', 'citations_for',
    'resolve_language', 'provision', 'TITLES', 'TEMPLATE', 'GENERATED',
]
