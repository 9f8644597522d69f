"""Deterministic classification of patient replies.

NO LLM. Closed vocabulary plus keyword containment.
Security: NEVER log raw text (PII).
"""

from physiohub.domain.intents import ReplyIntent
from physiohub.domain.text import normalize_text
from physiohub.domain.vocabulary import DEFAULT_LANGUAGE, Vocabulary, get_vocabulary


def _contains_any(text: str, phrases: tuple[str, ...]) -> bool:
    return any(phrase in text for phrase in phrases)


def classify_normalized(text: str, vocabulary: Vocabulary) -> ReplyIntent:
    """Classify already-normalized text against a vocabulary.

    Exact matches win. Otherwise keyword containment decides, and a message
    that contains both confirm and cancel phrases (or neither) is
    UNRECOGNIZED: ambiguous replies are never guessed.
    """
    if text in vocabulary.confirm_words:
        return ReplyIntent.CONFIRM
    if text in vocabulary.cancel_words:
        return ReplyIntent.CANCEL

    has_confirm = _contains_any(text, vocabulary.confirm_phrases)
    has_cancel = _contains_any(text, vocabulary.cancel_phrases)

    if has_confirm and not has_cancel:
        return ReplyIntent.CONFIRM
    if has_cancel and not has_confirm:
        return ReplyIntent.CANCEL
    return ReplyIntent.UNRECOGNIZED


def classify_reply(text: str, *, language: str = DEFAULT_LANGUAGE) -> ReplyIntent:
    """Classify a patient's reply as CONFIRM, CANCEL or UNRECOGNIZED.

    Args:
        text: Raw message text. NEVER logged.
        language: Vocabulary language tag (default: pt-BR).

    Returns:
        ReplyIntent. UNRECOGNIZED is an expected outcome, not an error.

    Raises:
        ValueError: If `language` has no registered vocabulary.
    """
    vocabulary = get_vocabulary(language)
    normalized = normalize_text(text)
    if not normalized:
        return ReplyIntent.UNRECOGNIZED
    return classify_normalized(normalized, vocabulary)
