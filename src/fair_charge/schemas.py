"""Canonical records for the violation detection pipeline.

These pydantic models define the normalized transaction facts received from
intake, the versioned legal rules held by the RuleStore, the ranked retrieval
candidates and the final Verdict handed back to the caller.
"""
from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Largest rupee amount accepted on intake; keeps paise arithmetic inside the Decimal context.
MAX_AMOUNT = Decimal("1e12")

DISCLAIMER = (
    "This analysis is generated from a curated database of consumer-protection rules and is for "
    "information only. It is not legal advice; verify with the concerned authority or a qualified "
    "lawyer before acting on it."
)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _normalize_phrases(values: Any) -> Tuple[str, ...]:
    if isinstance(values, str):
        values = [values]
    return tuple(sorted({" ".join(str(v).lower().split()) for v in (values or []) if str(v).strip()}))


class ChargeType(str, Enum):
    MRP = "mrp"
    SERVICE_CHARGE = "service_charge"
    CHALLAN = "challan"
    OTHER = "other"


class VerdictStatus(str, Enum):
    VIOLATION_DETECTED = "violation_detected"
    LEGAL = "legal"
    INSUFFICIENT_INFO = "insufficient_info"


class Product(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=300)
    price: Decimal = Field(ge=0, le=MAX_AMOUNT)
    mrp: Optional[Decimal] = Field(default=None, ge=0, le=MAX_AMOUNT)


class StructuredData(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, str_strip_whitespace=True)

    amount: Optional[Decimal] = Field(default=None, ge=0, le=MAX_AMOUNT)
    vendor: Optional[str] = Field(default=None, max_length=300)
    charge_type: ChargeType = Field(alias="chargeType")
    date: Optional[dt.date] = None
    products: Tuple[Product, ...] = ()
    confidence: Dict[str, float] = Field(default_factory=dict)

    @field_validator("confidence")
    @classmethod
    def _confidence_in_unit_range(cls, v: Dict[str, float]) -> Dict[str, float]:
        for field_name, score in v.items():
            if not 0.0 <= score <= 1.0:
                raise ValueError(f"confidence for '{field_name}' must be within [0, 1]")
        return v


class PenaltyEntry(BaseModel):
    """One row of a statutory fine schedule, in rupees."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    max_fine: Decimal = Field(ge=0)
    aliases: Tuple[str, ...]
    description: Optional[str] = None

    @field_validator("aliases", mode="before")
    @classmethod
    def _normalize_aliases(cls, v: Any) -> Tuple[str, ...]:
        cleaned = _normalize_phrases(v)
        if not cleaned:
            raise ValueError("aliases must not be empty")
        return cleaned


class LegalRule(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    rule_id: str = Field(min_length=1, max_length=100)
    category: ChargeType
    law: str = Field(min_length=1)
    section: str = Field(min_length=1)
    description: str = Field(min_length=1)
    description_hi: Optional[str] = None
    violation_keywords: Tuple[str, ...]
    penalty: str = Field(min_length=1)
    authority: str = Field(min_length=1)
    complaint_template_id: Optional[str] = None
    violation_type: Optional[str] = None
    penalty_schedule: Dict[str, PenaltyEntry] = Field(default_factory=dict)
    version: int = Field(default=1, ge=1)
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @field_validator("violation_keywords", mode="before")
    @classmethod
    def _normalize_keywords(cls, v: Any) -> Tuple[str, ...]:
        cleaned = _normalize_phrases(v)
        if not cleaned:
            raise ValueError("violation_keywords must be a non-empty set")
        return cleaned

    def document_text(self) -> str:
        """Text embedded into the rule index."""
        parts = [
            self.category.value.replace("_", " "),
            self.law,
            f"section {self.section}",
            self.description,
            self.description_hi or "",
            " ".join(self.violation_keywords),
        ]
        return " ".join(p for p in parts if p)


class RetrievalCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule: LegalRule
    relevance_score: float = Field(ge=0.0, le=1.0)
    matched_keywords: Tuple[str, ...] = ()

    @property
    def rule_id(self) -> str:
        return self.rule.rule_id


class Citation(BaseModel):
    model_config = ConfigDict(frozen=True)

    law: str
    section: str


class Verdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: VerdictStatus
    title: str = Field(min_length=1)
    explanation: str = ""
    confidence: int = Field(ge=0, le=100)
    citations: Tuple[Citation, ...] = ()
    disclaimer: str = DISCLAIMER
    violation_type: Optional[str] = None
    rule_ids: Tuple[str, ...] = ()
    authorities: Tuple[str, ...] = ()
    penalties: Tuple[str, ...] = ()
    complaint_template_ids: Tuple[str, ...] = ()
    reasoning_facts: Tuple[Dict[str, Any], ...] = ()
    flagged_fields: Tuple[str, ...] = ()
    language: str = "en"
    corpus_version: int = 0
    retrieval_mode: str = "semantic"
    explanation_source: str = "template"
    computed_at: dt.datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _check_invariants(self) -> "Verdict":
        if self.status == VerdictStatus.VIOLATION_DETECTED and not self.citations:
            raise ValueError("violation_detected requires at least one citation")
        if self.status != VerdictStatus.INSUFFICIENT_INFO and not self.explanation.strip():
            raise ValueError(f"{self.status.value} requires a non-empty explanation")
        if self.disclaimer != DISCLAIMER:
            raise ValueError("disclaimer must be the fixed constant")
        return self

    def comparable(self) -> Dict[str, Any]:
        """Serialized form without the computation timestamp."""
        return self.model_dump(mode="json", exclude={"computed_at"})


__all__ = [
    'DISCLAIMER', 'MAX_AMOUNT', 'ChargeType', 'VerdictStatus', 'Product', 'StructuredData', 'PenaltyEntry',
    'LegalRule', 'RetrievalCandidate', 'Citation', 'Verdict',
]
