"""
Query preprocessing and sanitization utilities.

Shared by the lexical search path (term disjunction expressions) and the
reranker (salient term matching).
"""

import re
import unicodedata
from typing import List

STOP_WORDS = frozenset(
    {
        # interrogatives
        "what", "who", "where", "when", "why", "how", "which", "whom",
        # articles, auxiliaries, modals
        "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
        "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "must", "shall", "can", "need", "dare",
        # pronouns and determiners
        "this", "that", "these", "those", "i", "you", "he", "she", "it", "we",
        "they", "me", "him", "her", "us", "them", "my", "your", "his", "its",
        "our", "their", "mine", "yours", "hers", "ours", "theirs",
        # conjunctions and prepositions
        "and", "or", "but", "if", "then", "else", "of", "at", "by", "for",
        "with", "about", "against", "between", "into", "through", "during",
        "before", "after", "above", "below", "to", "from", "up", "down", "in",
        "out", "on", "off", "over", "under", "again", "further", "once",
        "here", "there",
        # quantifiers and adverbs
        "all", "each", "few", "more", "most", "other", "some", "such", "no",
        "nor", "not", "only", "own", "same", "so", "than", "too", "very",
        "just",
        # request verbs
        "describe", "tell", "explain", "give", "show",
    }
)

MIN_TERM_LENGTH = 3

_PUNCTUATION = re.compile(r"['\"():*^~<>{}\[\]\\/.,!?;]")
_GLUED_INTERROGATIVE = re.compile(r"\b(who|what|where|when|why|how|which)(is|are|was|were)", re.IGNORECASE)


def smart_split(text: str) -> str:
    """Split glued queries like "whoisrama" -> "who is rama"."""
    return _GLUED_INTERROGATIVE.sub(r"\1 \2 ", text)


def strip_diacritics(text: str) -> str:
    """Decompose to NFD and drop combining marks: "café" -> "cafe"."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def extract_key_terms(query: str) -> List[str]:
    """
    Extract distinct salient terms from a query, in order of first appearance.

    Lowercases, strips punctuation, drops stop words and terms shorter
    than three characters.

    Example:
        >>> extract_key_terms("What are database optimization techniques?")
        ['database', 'optimization', 'techniques']
    """
    cleaned = _PUNCTUATION.sub(" ", smart_split(query))

    terms: List[str] = []
    for word in cleaned.split():
        term = word.lower()
        if len(term) < MIN_TERM_LENGTH or term in STOP_WORDS or term in terms:
            continue
        terms.append(term)
    return terms


def sanitize_lexical_query(query: str) -> str:
    """
    Convert a free-text query into an FTS5 term disjunction.

    Each key term becomes a quoted prefix query, joined with OR. When no
    key term survives, the whole query is searched as one quoted phrase.
    A blank query yields an empty expression.

    Example:
        >>> sanitize_lexical_query("how does vector search work")
        '"vector"* OR "search"* OR "work"*'
    """
    terms = extract_key_terms(query)
    if terms:
        return " OR ".join(f'"{term}"*' for term in terms)

    phrase = " ".join(query.replace('"', " ").replace("'", " ").split())
    return f'"{phrase}"' if phrase else ""
