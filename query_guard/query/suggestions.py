"""
Field suggestion scoring.

Ranks schema fields as replacements for a field name that does not exist,
combining substring containment, token overlap on the machine and display
names, and a description bonus.
"""

import re
from typing import Dict, Iterable, List, Optional, Sequence

from rapidfuzz import fuzz
from rapidfuzz.distance import LCSseq

from query_guard.core.models import FieldMeta, RankedCandidate, SuggestionReason


SUBSTRING_SCORE = 0.8
DESCRIPTION_WEIGHT = 0.3
HIGH_OVERLAP = 0.5
LOW_OVERLAP = 0.2
MIN_PARTIAL_TOKEN = 3
MAX_SUGGESTIONS = 5

_CAMEL_RE = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_RE = re.compile(r"([A-Z]+)([A-Z][a-z])")
_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def tokenize(text: Optional[str]) -> List[str]:
    """
    Split a name or sentence into lowercase tokens.

    ``createdAt``, ``created_at`` and ``created-at`` all give
    ``["created", "at"]``.
    """
    if not text:
        return []
    spaced = _ACRONYM_RE.sub(r"\1 \2", text)
    spaced = _CAMEL_RE.sub(r"\1 \2", spaced)
    return [t for t in _SPLIT_RE.split(spaced.lower()) if t]


def tokens_match(a: str, b: str) -> bool:
    """
    Whether two tokens name the same thing.

    Equal tokens match. Otherwise the shorter token (at least three
    characters) must be a prefix of the longer one, or an abbreviation of it
    (same first letter, letters appear in order).
    """
    if a == b:
        return True
    short, long = (a, b) if len(a) <= len(b) else (b, a)
    if len(short) < MIN_PARTIAL_TOKEN or short[0] != long[0]:
        return False
    # Prefixes and abbreviations keep every letter of the short token in order
    return LCSseq.similarity(short, long) == len(short)


def token_overlap(source: Sequence[str], candidate: Sequence[str]) -> float:
    """Fraction of source tokens matched by some candidate token, in [0, 1]."""
    if not source or not candidate:
        return 0.0
    matched = sum(1 for s in source if any(tokens_match(s, c) for c in candidate))
    return min(1.0, matched / max(1, min(len(source), len(candidate))))


def substring_score(invalid: str, candidate: str) -> float:
    a, b = invalid.lower(), candidate.lower()
    if a and b and fuzz.partial_ratio(a, b) == 100:
        return SUBSTRING_SCORE
    return 0.0


def score_field(invalid: str, field: FieldMeta) -> Optional[RankedCandidate]:
    """
    Score one schema field as a replacement for ``invalid``.

    Returns:
        RankedCandidate, or None when every signal is zero
    """
    invalid_tokens = tokenize(invalid)
    substring = substring_score(invalid, field.name)
    token = max(
        token_overlap(invalid_tokens, tokenize(field.name)),
        token_overlap(invalid_tokens, tokenize(field.display_name)),
    )
    description = DESCRIPTION_WEIGHT * token_overlap(
        invalid_tokens, tokenize(field.description)
    )

    name_signal = max(substring, token)
    score = round(min(1.0, name_signal + description), 3)
    if score <= 0:
        return None

    if name_signal == 0:
        reason = SuggestionReason.DESCRIPTION_MATCH
    elif substring and substring >= token:
        reason = SuggestionReason.NAME_SUBSTRING
    elif token > HIGH_OVERLAP:
        reason = SuggestionReason.TOKEN_OVERLAP_HIGH
    elif token > LOW_OVERLAP or token >= description:
        reason = SuggestionReason.TOKEN_OVERLAP
    else:
        reason = SuggestionReason.DESCRIPTION_MATCH

    return RankedCandidate(
        field=field.name, score=score, declared_type=field.type, reason=reason
    )


def suggest_for(
    invalid: str, fields: Sequence[FieldMeta], limit: int = MAX_SUGGESTIONS
) -> List[RankedCandidate]:
    """Rank candidates for a single invalid name; ties keep schema order."""
    candidates = []
    for field in fields:
        try:
            candidate = score_field(invalid, field)
        except (TypeError, ValueError):
            continue
        if candidate is not None:
            candidates.append(candidate)
    candidates.sort(key=lambda c: c.score, reverse=True)
    return candidates[:limit]


def suggest_fields(
    invalid_fields: Iterable[str],
    fields: Sequence[FieldMeta],
    limit: int = MAX_SUGGESTIONS,
) -> Dict[str, List[RankedCandidate]]:
    """
    Suggest replacements for every invalid field name.

    Args:
        invalid_fields: Names not present in the schema
        fields: Schema fields of the collection
        limit: Maximum candidates per name

    Returns:
        Mapping of invalid name -> ranked candidates (possibly empty)
    """
    return {name: suggest_for(name, fields, limit) for name in invalid_fields}
