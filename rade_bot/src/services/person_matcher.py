import logging
import re
import unicodedata
from typing import Any, Dict, Iterable, List, Optional

from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)

CARD_FIELDS = ("name", "email", "phone", "groupNames")
MIN_SIGNIFICANT_WORD = 3
MIN_SIMILARITY = 0.75

_NON_WORD = re.compile(r"[^\w\s]")


def normalize_name(text: str) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    decomposed = unicodedata.normalize("NFD", (text or "").lower())
    without_accents = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return " ".join(_NON_WORD.sub(" ", without_accents).split())


def is_similar_word(query_word: str, candidate_word: str) -> bool:
    """
    Typo-tolerant word comparison.

    Both conditions must hold: the edit distance fits the budget (1 edit for
    words up to 6 characters, 2 for longer ones) and the normalized
    similarity is at least 0.75.
    """
    if query_word == candidate_word:
        return True
    budget = 1 if len(query_word) <= 6 else 2
    if Levenshtein.distance(query_word, candidate_word, score_cutoff=budget) > budget:
        return False
    return Levenshtein.normalized_similarity(query_word, candidate_word) >= MIN_SIMILARITY


def to_person_card(record: Dict[str, Any]) -> Dict[str, Any]:
    """Keeps only the public contact fields; the CPF never leaves this function."""
    return {
        "name": record.get("name"),
        "email": record.get("email"),
        "phone": record.get("phone"),
        "groupNames": list(record.get("groupNames") or []),
    }


def person_identity_key(card: Dict[str, Any]) -> tuple:
    return normalize_name(card.get("name", "")), (card.get("email") or "").lower()


def _exact_match(query_words: List[str], roster: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    for person in roster:
        person_words = set(normalize_name(person.get("name", "")).split())
        if all(word in person_words for word in query_words):
            return person
    return None


def _similar_match(query_words: List[str], roster: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    significant = [w for w in query_words if len(w) >= MIN_SIGNIFICANT_WORD]
    if not significant:
        return None
    for person in roster:
        person_words = normalize_name(person.get("name", "")).split()
        if all(any(is_similar_word(q, p) for p in person_words) for q in significant):
            return person
    return None


def match_person(query: str, roster: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Looks a person up by name in the roster.

    Args:
        query: Name typed by the user, possibly partial or misspelled.
        roster: Person records (may still carry a CPF).

    Returns:
        The person card on an exact match; ``{"error", "suggestion"}`` when only
        a similar name exists; ``{"error"}`` when nothing matches.
    """
    roster = list(roster)
    query_words = normalize_name(query).split()
    if not query_words:
        return {"error": f'Pessoa com nome "{query}" não encontrada.'}

    exact = _exact_match(query_words, roster)
    if exact is not None:
        return to_person_card(exact)

    similar = _similar_match(query_words, roster)
    if similar is not None:
        logger.info(f"Similar match found: {similar.get('name')} for search '{query}'")
        card = to_person_card(similar)
        return {
            "error": f'Não encontrei "{query}", mas você tem "{card["name"]}" que é parecido.',
            "suggestion": card,
        }

    return {"error": f'Pessoa com nome "{query}" não encontrada.'}
