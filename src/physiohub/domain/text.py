"""Text normalization shared by the reply vocabulary and the classifier."""

import unicodedata


def normalize_text(text: str) -> str:
    """Lowercase, strip diacritics and collapse whitespace.

    Diacritics are removed by NFD decomposition followed by dropping every
    combining mark, so "Não" and "nao" normalize to the same string.
    Idempotent: normalize_text(normalize_text(t)) == normalize_text(t).
    """
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.split())
