"""
Text utilities for handling Spanish text with accents.

Used for CSV header matching and free-text search.
"""

import unicodedata
from typing import Any, Optional


def fold_accents(text: str) -> str:
    """
    Remove accent marks, keeping base characters.

    - "Teléfono" → "Telefono"
    - "Correo Electrónico" → "Correo Electronico"
    """
    # NFD decomposition separates base chars from accents
    normalized = unicodedata.normalize('NFD', text)
    return ''.join(
        c for c in normalized
        if unicodedata.category(c) != 'Mn'
    )


def normalize_header(header: Optional[str]) -> str:
    """
    Normalize a CSV header for synonym matching.

    - "  Correo Electrónico " → "correo electronico"
    - "NOMBRE_COMPLETO" → "nombre completo"

    Args:
        header: Raw header text

    Returns:
        Lowercase ASCII string with single spaces, "" for empty input
    """
    if not header:
        return ""

    folded = fold_accents(str(header)).lower()
    folded = folded.replace('_', ' ').replace('-', ' ')
    return ' '.join(folded.split())


def to_search_text(value: Any) -> Optional[str]:
    """
    Text form of a record value for case-insensitive search.

    Returns None for missing values so callers can skip them.
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return ' '.join(str(v) for v in value).casefold()
    return str(value).casefold()
