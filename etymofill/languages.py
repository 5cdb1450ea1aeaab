from typing import Dict

LANGUAGE_KEYS: Dict[str, str] = {
    "korean": "ko",
    "japanese": "ja",
    "chinese": "zh",
}

DEFAULT_LANGUAGE_KEY = "ko"


def language_key(language: str) -> str:
    """
    Map a language display name to the partition key stored on words.

    Known names map to their ISO code; anything else uses its first two
    letters, lowercased. Too-short input falls back to Korean.
    """
    name = (language or "").strip().lower()
    if name in LANGUAGE_KEYS:
        return LANGUAGE_KEYS[name]
    if len(name) >= 2:
        return name[:2]
    return DEFAULT_LANGUAGE_KEY
