"""Reply vocabularies per language.

Loaded once at import and never mutated. Every entry is stored in
normalized form (see physiohub.domain.text.normalize_text).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from physiohub.domain.text import normalize_text

DEFAULT_LANGUAGE = "pt-BR"


@dataclass(frozen=True)
class Vocabulary:
    """Closed word lists for one language.

    `confirm_words`/`cancel_words` are matched against the whole message;
    `confirm_phrases`/`cancel_phrases` are matched by containment.
    """

    confirm_words: frozenset[str]
    cancel_words: frozenset[str]
    confirm_phrases: tuple[str, ...]
    cancel_phrases: tuple[str, ...]


def _normalized_set(entries: Iterable[str]) -> frozenset[str]:
    return frozenset(normalize_text(e) for e in entries)


def _normalized_phrases(entries: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(normalize_text(e) for e in entries))


def build_vocabulary(
    *,
    confirm_words: Iterable[str],
    cancel_words: Iterable[str],
    confirm_phrases: Iterable[str],
    cancel_phrases: Iterable[str],
) -> Vocabulary:
    """Build a normalized vocabulary.

    Raises:
        ValueError: If a literal ends up in both exact-match sets.
    """
    confirm = _normalized_set(confirm_words)
    cancel = _normalized_set(cancel_words)
    overlap = confirm & cancel
    if overlap:
        raise ValueError(f"words in both confirm and cancel sets: {sorted(overlap)}")
    return Vocabulary(
        confirm_words=confirm,
        cancel_words=cancel,
        confirm_phrases=_normalized_phrases(confirm_phrases),
        cancel_phrases=_normalized_phrases(cancel_phrases),
    )


# Portuguese (Brazil): affirmatives, slang, emoji and common misspellings
_PT_BR = build_vocabulary(
    confirm_words=[
        "sim", "s", "ss", "simm", "siim", "sim sim", "sin", "yes",
        "confirmo", "confirmado", "confirmada", "confirmar", "confirma",
        "confirmo sim", "pode confirmar", "confimo", "comfirmo", "confirmo!",
        "ok", "okay", "okk", "oks", "blz", "beleza", "belezinha",
        "certo", "ta certo", "tá certo", "certinho", "claro", "com certeza",
        "pode ser", "pode", "vou", "vou sim", "irei", "irei sim",
        "estarei", "estarei la", "estarei lá", "estarei presente", "presente",
        "positivo", "afirmativo", "combinado", "fechado", "perfeito",
        "otimo", "ótimo", "tudo certo", "de acordo", "isso", "isso mesmo",
        "👍", "👍🏻", "👍🏼", "👍🏽", "👌", "✅", "✔️", "🙏", "🆗",
    ],
    cancel_words=[
        "não", "nao", "n", "nn", "naum", "nãoo", "nop", "nops", "no",
        "negativo", "cancelar", "cancela", "cancelo", "cancele",
        "cancelado", "cancelada", "cancelar consulta", "pode cancelar",
        "cancelar por favor", "desmarcar", "desmarca", "desmarco",
        "pode desmarcar", "não vou", "nao vou", "não vou poder",
        "não vou conseguir", "não posso", "não poderei", "não irei",
        "não consigo", "infelizmente não", "impossível", "remarcar",
        "reagendar", "preciso remarcar", "cancellar", "canselar",
        "👎", "👎🏻", "👎🏼", "👎🏽", "❌", "🚫", "✖️",
    ],
    confirm_phrases=[
        "sim", "confirm", "ok", "certo", "combinado", "estarei", "presente",
        "beleza", "blz", "com certeza", "pode ser", "irei", "👍", "✅",
    ],
    cancel_phrases=[
        "não", "cancel", "desmarc", "remarc", "reagend", "impossível",
        "não posso", "não vou", "não consigo", "não irei", "nao posso ir",
        "👎", "❌",
    ],
)

_EN = build_vocabulary(
    confirm_words=[
        "yes", "y", "yep", "yeah", "yup", "sure", "ok", "okay", "confirm",
        "confirmed", "i confirm", "i'll be there", "see you", "of course",
        "👍", "👌", "✅",
    ],
    cancel_words=[
        "no", "n", "nope", "nah", "cancel", "cancelled", "canceled",
        "i can't", "i cannot", "can't make it", "not coming", "reschedule",
        "👎", "❌",
    ],
    confirm_phrases=["yes", "confirm", "sure", "will be there", "see you", "👍", "✅"],
    cancel_phrases=["cancel", "can't", "cannot", "won't", "not coming", "reschedul", "👎", "❌"],
)

VOCABULARIES: Mapping[str, Vocabulary] = {
    "pt-BR": _PT_BR,
    "en": _EN,
}


def get_vocabulary(language: str = DEFAULT_LANGUAGE) -> Vocabulary:
    """Return the vocabulary for a language tag.

    Raises:
        ValueError: If no vocabulary is registered for the tag.
    """
    try:
        return VOCABULARIES[language]
    except KeyError:
        raise ValueError(f"no reply vocabulary for language {language!r}") from None
