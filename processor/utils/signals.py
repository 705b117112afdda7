"""Canonicalization of free-text fraud signals.

Two signals are the same signal when their canonical keys are equal:

1. NFKC-normalize and casefold the text.
2. Replace every run of non-alphanumeric characters with a single space.
3. Drop filler tokens (articles, forms of "to be", and presence words such
   as "available" or "provided") and join the rest with single spaces.

Negations are kept, so "No weather report available" and "Weather report
available" stay distinct while "No weather report." and "No weather report
was provided" collapse into one.
"""

import re
import unicodedata
from typing import Iterable, List

FILLER_TOKENS = frozenset({
    "a",
    "an",
    "the",
    "is",
    "was",
    "were",
    "are",
    "be",
    "been",
    "available",
    "provided",
    "found",
    "present",
    "detected",
    "identified",
})

_NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)


def canonical_signal_key(signal: str) -> str:
    """Return the equivalence key of a fraud signal ('' for blank input)."""
    text = unicodedata.normalize("NFKC", signal).casefold()
    tokens = _NON_ALNUM.sub(" ", text).split()
    return " ".join(token for token in tokens if token not in FILLER_TOKENS)


def dedupe_signals(signals: Iterable[str]) -> List[str]:
    """Keep the first signal of each equivalence class, in input order."""
    seen = set()
    unique: List[str] = []
    for signal in signals:
        key = canonical_signal_key(signal)
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(signal.strip())
    return unique
