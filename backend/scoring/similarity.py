"""
Title similarity used by cross-source dedup and the duplicate-listing check.
"""

import re
import unicodedata

from rapidfuzz.distance import Levenshtein


def normalize_title(title: str) -> str:
    """
    Lowercase, strip accents and collapse whitespace.

    Examples:
        "Peugeot  208 Allure Écran" -> "peugeot 208 allure ecran"
    """
    if not title:
        return ''
    decomposed = unicodedata.normalize('NFD', title.lower())
    stripped = ''.join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r'\s+', ' ', stripped).strip()


def title_similarity(a: str, b: str, normalize: bool = True) -> float:
    """
    Levenshtein similarity in [0, 1], relative to the longer string.

    Two empty titles are identical (1.0).
    """
    if normalize:
        a, b = normalize_title(a), normalize_title(b)
    else:
        a, b = (a or '').lower(), (b or '').lower()
    if not a and not b:
        return 1.0
    return Levenshtein.normalized_similarity(a, b)
