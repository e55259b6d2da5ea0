"""Page text helpers. highlightedNames on a page is always detect_likely_names(body)."""
import re

COMMON_NAMES = (
    "baby",
    "babe",
    "darling",
    "dear",
    "honey",
    "love",
    "sweetheart",
    "princess",
    "prince",
)
MAX_HIGHLIGHTED_NAMES = 8

_CAPITALIZED_WORD = re.compile(r"\b[A-Z][a-z]{2,}\b")


def detect_likely_names(text: str) -> list[str]:
    """Capitalized words plus common pet names found in text; first occurrence order, at most 8."""
    text = text or ""
    words = _CAPITALIZED_WORD.findall(text)
    lowered = text.lower()
    nicknames = [name for name in COMMON_NAMES if name in lowered]
    return list(dict.fromkeys(words + nicknames))[:MAX_HIGHLIGHTED_NAMES]
