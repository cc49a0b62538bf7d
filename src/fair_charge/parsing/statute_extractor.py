"""Statute / section / amount mention extraction.

Heuristics for references such as:
  - Section 18(1) of the Legal Metrology Act, 2009
  - Sec. 194D MV Act
  - Rule 6 of the Legal Metrology (Packaged Commodities) Rules, 2011
  - Guideline 3 of the CCPA Guidelines
  - Rs 1,000 / ₹500 / 500 rupees / 500/-
  - Central Consumer Protection Authority

Used to check generated explanations against the facts they were given.
"""
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Set

SECTION_RE = re.compile(
    r"(?:\b(?:section|sec\.?|s\.|u/s|rule|guideline|para(?:graph)?|clause|article)|§)\s*"
    r"(\d+[A-Za-z]?(?:\s*\(\s*\w+\s*\))*)",
    re.IGNORECASE,
)

_TITLE_WORD = r"(?:[A-Z][\w'&.\-]*|\([A-Z][\w\s]*\))"

ACT_RE = re.compile(
    rf"\b((?:{_TITLE_WORD}\s+|(?:of|on|for|and|in|the)\s+){{0,10}}?"
    rf"{_TITLE_WORD}\s+(?:Act|Rules|Code|Guidelines|Sanhita))\b(?:,?\s*(\d{{4}}))?"
)

ACT_ALIASES = {
    'ipc': 'indian penal code',
    'crpc': 'code of criminal procedure',
    'bns': 'bharatiya nyaya sanhita',
    'mv act': 'motor vehicles act',
    'mva': 'motor vehicles act',
    'cpa': 'consumer protection act',
    'lm act': 'legal metrology act',
    'gst act': 'central goods and services tax act',
}

ALIAS_RE = re.compile(r"\b(" + "|".join(re.escape(a) for a in sorted(ACT_ALIASES, key=len, reverse=True)) + r")\b", re.IGNORECASE)

AMOUNT_RE = re.compile(
    r"(?:\brs\.?|\binr|₹)\s*([\d,]+(?:\.\d+)?)"
    r"|\b(\d[\d,]*(?:\.\d+)?)\s*(?:/-|rupees?\b|rs\b|inr\b|रुपये|रुपए)",
    re.IGNORECASE,
)

AUTHORITY_NOUNS = (
    "Authority", "Commission", "Department", "Ministry", "Police", "Court", "Tribunal",
    "Forum", "Board", "Office", "Controller", "Helpline",
)

_AUTHORITY_NOUN = "(?:" + "|".join(AUTHORITY_NOUNS) + ")"
_NAME_WORD = r"(?:[A-Z][\w'&\-]*|\([A-Z][\w\s]*\))"

# "Food Safety and Standards Authority of India", "Ministry of Consumer Affairs"
AUTHORITY_RE = re.compile(
    rf"\b((?:{_NAME_WORD}\s+(?:(?:of|and|for|on|the)\s+)*)*?{_AUTHORITY_NOUN}\b"
    rf"(?:\s+(?:of|for)\s+(?:the\s+)?{_NAME_WORD}(?:\s+{_NAME_WORD})*)?)"
)

_NOUN_WORDS = {n.lower() for n in AUTHORITY_NOUNS}

_LEADING_WORDS = ('the ', 'of ', 'under ', 'and ')


def normalize_section(section: str) -> str:
    s = re.sub(r"\s+", "", section.lower())
    s = re.sub(r"^(?:section|sec\.?|s\.|u/s|rule|guideline|para(?:graph)?|clause|article|§)", "", s)
    return s


def normalize_law(name: str) -> str:
    s = " ".join(name.lower().replace(',', ' ').split())
    s = re.sub(r"\s*\b\d{4}$", "", s).strip()
    changed = True
    while changed:
        changed = False
        for w in _LEADING_WORDS:
            if s.startswith(w):
                s = s[len(w):]
                changed = True
    return s


def law_year(name: str) -> Optional[str]:
    m = re.search(r"(\d{4})\s*$", name.strip())
    return m.group(1) if m else None


def extract_sections(text: str) -> List[str]:
    if not text:
        return []
    seen: List[str] = []
    for m in SECTION_RE.finditer(text):
        sec = normalize_section(m.group(1))
        if sec and sec not in seen:
            seen.append(sec)
    return seen


def extract_acts(text: str) -> List[Dict[str, Optional[str]]]:
    """Named acts/rules/guidelines: [{'raw', 'name', 'year'}], deduplicated by (name, year)."""
    if not text:
        return []
    refs: List[Dict[str, Optional[str]]] = []
    for m in ACT_RE.finditer(text):
        name = normalize_law(m.group(1))
        name = ACT_ALIASES.get(name, name)
        if len(name.split()) < 2:
            continue
        refs.append({'raw': m.group(0), 'name': name, 'year': m.group(2)})
    for m in ALIAS_RE.finditer(text):
        refs.append({'raw': m.group(0), 'name': ACT_ALIASES[m.group(1).lower()], 'year': None})
    seen = set()
    dedup = []
    for r in refs:
        key = (r['name'], r['year'])
        if key in seen:
            continue
        seen.add(key)
        dedup.append(r)
    return dedup


def extract_amounts(text: str) -> Set[int]:
    """Rupee amounts mentioned in text, as paise."""
    amounts: Set[int] = set()
    for m in AMOUNT_RE.finditer(text or ''):
        raw = (m.group(1) or m.group(2)).replace(',', '').rstrip('.')
        try:
            amounts.add(int(Decimal(raw) * 100))
        except (InvalidOperation, ValueError):
            continue
    return amounts


def extract_authorities(text: str) -> List[str]:
    """Authority-like names ('... Authority', 'Ministry of ...'), lowercased, deduplicated."""
    found: List[str] = []
    for m in AUTHORITY_RE.finditer(text or ''):
        name = " ".join(m.group(1).lower().split())
        while name.startswith("the "):
            name = name[4:]
        if name and name not in found:
            found.append(name)
    return found


def authority_matches(name: str, known: Iterable[str]) -> bool:
    """True if ``name``, or a trailing part of it that keeps the authority noun, is part of a known authority.

    Leading words are dropped so "Contact Regional Transport Office" still matches, but a bare
    noun only counts when it was the whole mention.
    """
    known = [k.lower() for k in known]
    words = name.split()
    noun_at = next((i for i, w in enumerate(words) if w.strip("()") in _NOUN_WORDS), len(words) - 1)
    for i in range(noun_at + 1):
        if len(words) > 1 and len(words) - i < 2:
            continue
        part = " ".join(words[i:])
        if any(part in k for k in known):
            return True
    return False


def extract_statutes(text: str) -> List[Dict]:
    """Section references paired with the act mentioned closest after them, if any."""
    if not text:
        return []
    refs: List[Dict] = []
    for m in SECTION_RE.finditer(text):
        tail = text[m.end():m.end() + 120]
        acts = extract_acts(tail)
        refs.append({
            'raw': m.group(0),
            'section': normalize_section(m.group(1)),
            'act': acts[0]['name'] if acts else None,
        })
    return refs


if __name__ == '__main__':
    sample = "Charging above MRP violates Section 18(1) of the Legal Metrology Act, 2009; fine up to Rs 25,000."
    print(extract_statutes(sample), extract_acts(sample), extract_amounts(sample))
