"""Append-only, versioned store of curated legal rules.

Loads the YAML corpus, validates each record against the LegalRule schema
and keeps every version of every rule:
 - get(rule_id, version=None) -> LegalRule (RuleNotFound if absent)
 - all() -> iterator over the latest version of each rule, sorted by rule_id
 - current_version_stamp() -> int, bumped on every add/update
 - upsert(record) -> LegalRule, appends a new version, never mutates in place

A record that fails validation is rejected on its own; the rest of the
corpus still loads.
"""
from __future__ import annotations

import datetime as dt
import logging
import os
import threading
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from fair_charge.errors import RuleNotFound, SchemaViolation
from fair_charge.schemas import LegalRule

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    'rule_id', 'category', 'law', 'section', 'description',
    'violation_keywords', 'penalty', 'authority',
)

# Fields the store owns; values supplied by the corpus source are ignored.
_STORE_MANAGED = ('version', 'created_at', 'updated_at')


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def validate_rule(record: Mapping[str, Any]) -> LegalRule:
    """Validate one raw corpus record; raises SchemaViolation."""
    if not isinstance(record, Mapping):
        raise SchemaViolation(None, f"expected a mapping, got {type(record).__name__}")
    rule_id = record.get('rule_id')
    missing = [f for f in REQUIRED_FIELDS if record.get(f) in (None, '', [], ())]
    if missing:
        raise SchemaViolation(rule_id, f"missing required fields: {', '.join(missing)}")
    try:
        return LegalRule(**{k: v for k, v in record.items() if k not in _STORE_MANAGED})
    except ValidationError as ve:
        details = '; '.join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in ve.errors())
        raise SchemaViolation(rule_id, details) from ve


class RuleStore:
    def __init__(self, records: Optional[Iterable[Mapping[str, Any]]] = None):
        self._lock = threading.RLock()
        self._history: Dict[str, List[LegalRule]] = {}
        self._stamp = 0
        self.rejected: List[SchemaViolation] = []
        self.source: Optional[str] = None
        if records:
            self.load_records(records)

    @classmethod
    def from_yaml(cls, path: str) -> "RuleStore":
        store = cls()
        store.load_yaml(path)
        return store

    def load_yaml(self, path: str) -> int:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Rule corpus not found at {path}")
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        records = data.get('rules', []) if isinstance(data, dict) else data
        self.source = path
        loaded = self.load_records(records or [])
        logger.info(f"[rules] Loaded {loaded} rules from {path} ({len(self.rejected)} rejected)")
        return loaded

    def load_records(self, records: Iterable[Mapping[str, Any]]) -> int:
        loaded = 0
        for record in records:
            try:
                self.upsert(record)
                loaded += 1
            except SchemaViolation as sv:
                logger.warning(f"[rules] Rejected {sv}")
                self.rejected.append(sv)
        return loaded

    def upsert(self, record: Union[Mapping[str, Any], LegalRule]) -> LegalRule:
        """Append a new version of a rule. Raises SchemaViolation."""
        if isinstance(record, LegalRule):
            record = record.model_dump()
        rule = validate_rule(record)
        with self._lock:
            versions = self._history.setdefault(rule.rule_id, [])
            now = _utcnow()
            if versions:
                previous = versions[-1]
                stored = rule.model_copy(update={
                    'version': previous.version + 1,
                    'created_at': previous.created_at,
                    'updated_at': now,
                })
            else:
                stored = rule.model_copy(update={'version': 1, 'created_at': now, 'updated_at': now})
            versions.append(stored)
            self._stamp += 1
            return stored

    def get(self, rule_id: str, version: Optional[int] = None) -> LegalRule:
        with self._lock:
            versions = self._history.get(rule_id)
            if not versions:
                raise RuleNotFound(rule_id, version)
            if version is None:
                return versions[-1]
            for rule in versions:
                if rule.version == version:
                    return rule
        raise RuleNotFound(rule_id, version)

    def history(self, rule_id: str) -> List[LegalRule]:
        with self._lock:
            versions = self._history.get(rule_id)
            if not versions:
                raise RuleNotFound(rule_id)
            return list(versions)

    def all(self) -> Iterator[LegalRule]:
        return iter(self.snapshot()[1])

    def snapshot(self) -> Tuple[int, Tuple[LegalRule, ...]]:
        """Current stamp and latest rules, read together."""
        with self._lock:
            latest = tuple(self._history[rid][-1] for rid in sorted(self._history))
            return self._stamp, latest

    def current_version_stamp(self) -> int:
        with self._lock:
            return self._stamp

    def __len__(self) -> int:
        with self._lock:
            return len(self._history)

    def __contains__(self, rule_id: object) -> bool:
        with self._lock:
            return rule_id in self._history

    def has_citation(self, law: str, section: str) -> bool:
        return any(r.law == law and r.section == section for r in self.all())

    def metadata(self) -> Dict[str, Any]:
        stamp, rules = self.snapshot()
        by_category: Dict[str, int] = {}
        for r in rules:
            by_category[r.category.value] = by_category.get(r.category.value, 0) + 1
        return {
            'source': self.source,
            'version_stamp': stamp,
            'num_rules': len(rules),
            'by_category': by_category,
            'rejected': [{'rule_id': sv.rule_id, 'error': sv.message} for sv in self.rejected],
        }


__all__ = ['RuleStore', 'validate_rule', 'REQUIRED_FIELDS']
