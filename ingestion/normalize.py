"""
Text normalization before chunking.

Clean input beats clever retrieval. This module handles:
- Control character removal
- Line ending and page break normalization
- Unicode quote/dash normalization
- Whitespace collapsing
"""

import re

# Everything below 0x20 except tab and newline, plus DEL
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0e-\x1f\x7f]")

_TYPOGRAPHIC = {
    "“": '"',
    "”": '"',
    "‘": "'",
    "’": "'",
    "–": "-",
    "—": "-",
    " ": " ",
}


def normalize_line_endings(text: str) -> str:
    """CRLF/CR -> LF; form feeds (page breaks) -> paragraph breaks."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text.replace("\f", "\n\n")


def normalize_typography(text: str) -> str:
    """
    Normalize unicode quotes, dashes and non-breaking spaces.

    Example:
        >>> normalize_typography("“quoted” — it’s")
        '"quoted" - it\\'s'
    """
    for src, dst in _TYPOGRAPHIC.items():
        text = text.replace(src, dst)
    return text


def normalize_text(text: str) -> str:
    """
    Normalize raw document text for chunking.

    Pipeline:
    1. Line endings and page breaks
    2. Control characters (NUL etc.) removed
    3. Typographic quotes and dashes
    4. Runs of spaces/tabs collapsed, trailing spaces stripped
    5. Three or more newlines collapsed to a paragraph break

    Args:
        text: Raw extracted text

    Returns:
        Normalized text, stripped; empty if nothing meaningful remains
    """
    text = normalize_line_endings(text)
    text = _CONTROL_CHARS.sub("", text)
    text = normalize_typography(text)

    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)

    return text.strip()
