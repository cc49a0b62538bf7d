"""Tokenisation and exact phrase matching shared by retrieval and evaluation."""
from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence, Tuple

# Latin words plus Devanagari runs (matras included)
TOKEN_PATTERN = r"(?u)[\wऀ-ॿ]+"

_TOKEN_RE = re.compile(TOKEN_PATTERN)


def tokenize(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return _TOKEN_RE.findall(text.lower().replace('_', ' '))


def contains_phrase(tokens: Sequence[str], phrase: str) -> bool:
    """True if the phrase's tokens occur contiguously in ``tokens``."""
    target = tokenize(phrase)
    if not target or len(target) > len(tokens):
        return False
    n = len(target)
    first = target[0]
    for i in range(len(tokens) - n + 1):
        if tokens[i] == first and list(tokens[i:i + n]) == target:
            return True
    return False


def matched_phrases(tokens: Sequence[str], phrases: Iterable[str]) -> Tuple[str, ...]:
    return tuple(sorted({p for p in phrases if contains_phrase(tokens, p)}))
