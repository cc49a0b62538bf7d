"""Error taxonomy for the violation detection pipeline.

Only ``InvalidInput`` is ever surfaced to a caller of ``Pipeline.analyze``;
every other error is caught inside the pipeline and turned into a degraded
but structurally valid Verdict.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class FairChargeError(RuntimeError):
    pass


class InvalidInput(FairChargeError):
    """StructuredData failed schema validation. Not retried."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.details = details or []


class SchemaViolation(FairChargeError):
    """A single corpus record failed the LegalRule schema at load time."""

    def __init__(self, rule_id: Optional[str], message: str):
        super().__init__(f"rule {rule_id or '<unknown>'}: {message}")
        self.rule_id = rule_id
        self.message = message


class RuleNotFound(FairChargeError, KeyError):
    def __init__(self, rule_id: str, version: Optional[int] = None):
        label = rule_id if version is None else f"{rule_id}@v{version}"
        super().__init__(f"rule not found: {label}")
        self.rule_id = rule_id
        self.version = version

    def __str__(self) -> str:
        return self.args[0]


class CorpusUnavailable(FairChargeError):
    """RuleStore or EmbeddingIndex cannot answer right now. Retryable."""
    retryable = True


class IndexRebuilding(CorpusUnavailable):
    pass


class SemanticCapabilityFailure(FairChargeError):
    """The external embedding/completion capability failed."""
    retryable = True


class CapabilityUnavailable(SemanticCapabilityFailure):
    pass


class CapabilityTimeout(SemanticCapabilityFailure):
    pass


class CapabilityRateLimited(SemanticCapabilityFailure):
    pass


class CompositionInvariantViolation(FairChargeError):
    """Status and citations disagree. Indicates a bug; never reaches the caller."""


class CacheInconsistency(FairChargeError):
    """Cache entry computed against a superseded corpus version. Treated as a miss."""


__all__ = [
    'FairChargeError', 'InvalidInput', 'SchemaViolation', 'RuleNotFound',
    'CorpusUnavailable', 'IndexRebuilding', 'SemanticCapabilityFailure',
    'CapabilityUnavailable', 'CapabilityTimeout', 'CapabilityRateLimited',
    'CompositionInvariantViolation', 'CacheInconsistency',
]
