"""Verdict cache keyed by input fingerprint.

Entries remember the corpus version they were computed against; a lookup
made after the rule corpus changed is a miss, as is an expired entry.
Readers get deep copies so a cached Verdict can never be mutated through a
returned reference.
"""
from __future__ import annotations

import copy
import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from fair_charge import config
from fair_charge.errors import CacheInconsistency
from fair_charge.evaluation.money import optional_paise, to_paise
from fair_charge.schemas import StructuredData, Verdict

logger = logging.getLogger(__name__)


def normalized_input(data: StructuredData) -> Dict[str, Any]:
    """Canonical dict of the facts that influence a verdict; money in paise."""
    return {
        'charge_type': data.charge_type.value,
        'amount_paise': optional_paise(data.amount),
        'vendor': data.vendor,
        'date': data.date.isoformat() if data.date else None,
        'products': [
            {'name': p.name, 'price_paise': to_paise(p.price), 'mrp_paise': optional_paise(p.mrp)}
            for p in data.products
        ],
        'confidence': {k: round(float(v), 6) for k, v in sorted(data.confidence.items())},
    }


def fingerprint(data: StructuredData, query: Optional[str], language: str, corpus_version: int) -> str:
    payload = {
        'data': normalized_input(data),
        'query': ' '.join(query.split()) if query else None,
        'language': language,
        'corpus_version': corpus_version,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(',', ':'), ensure_ascii=False)
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


@dataclass
class CacheEntry:
    verdict: Verdict
    corpus_version: int
    expires_at: float


class ResultCache:
    def __init__(
        self,
        stamp_fn: Optional[Callable[[], int]] = None,
        ttl: float = config.CACHE_TTL_SECONDS,
        max_entries: int = config.CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stamp_fn = stamp_fn
        self.ttl = ttl
        self.max_entries = max_entries
        self.clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.stale = 0

    def _check(self, key: str, entry: CacheEntry) -> None:
        if entry.expires_at <= self.clock():
            raise CacheInconsistency(f"entry {key[:12]} expired")
        if self.stamp_fn is not None:
            current = self.stamp_fn()
            if entry.corpus_version != current:
                raise CacheInconsistency(
                    f"entry {key[:12]} computed against corpus v{entry.corpus_version}, current v{current}"
                )

    def get(self, key: str) -> Optional[Verdict]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            try:
                self._check(key, entry)
            except CacheInconsistency as e:
                logger.debug(f"[cache] Miss: {e}")
                del self._entries[key]
                self.stale += 1
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return copy.deepcopy(entry.verdict)

    def put(self, key: str, verdict: Verdict, ttl: Optional[float] = None, corpus_version: Optional[int] = None) -> None:
        version = verdict.corpus_version if corpus_version is None else corpus_version
        entry = CacheEntry(
            verdict=copy.deepcopy(verdict),
            corpus_version=version,
            expires_at=self.clock() + (self.ttl if ttl is None else ttl),
        )
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.evictions += 1

    def invalidate(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self.hits + self.misses
            return {
                'entries': len(self._entries),
                'max_entries': self.max_entries,
                'ttl_seconds': self.ttl,
                'hits': self.hits,
                'misses': self.misses,
                'stale': self.stale,
                'evictions': self.evictions,
                'hit_rate': round(self.hits / lookups, 4) if lookups else 0.0,
            }


__all__ = ['ResultCache', 'CacheEntry', 'fingerprint', 'normalized_input']
