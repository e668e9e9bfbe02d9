from __future__ import annotations

import re
from typing import Dict

# --- language name helpers (explicit instruction for model) ---
LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English", "en-us": "English", "en-gb": "English",
    "fr": "French", "fr-fr": "French", "fr-ca": "French",
    "es": "Spanish", "es-es": "Spanish", "es-mx": "Spanish",
    "de": "German", "de-de": "German",
    "it": "Italian", "it-it": "Italian",
    "pt": "Portuguese", "pt-pt": "Portuguese", "pt-br": "Portuguese (Brazilian)",
    "nl": "Dutch", "nl-nl": "Dutch",
    "ru": "Russian", "uk": "Ukrainian",
    "zh": "Chinese", "ja": "Japanese", "ko": "Korean",
    "ar": "Arabic", "hi": "Hindi", "bn": "Bengali", "pa": "Punjabi",
    "tr": "Turkish", "pl": "Polish",
    "vi": "Vietnamese", "th": "Thai",
    "bg": "Bulgarian", "el": "Greek",
    # "cz" is not an ISO 639-1 code but uploaded files use it
    "cs": "Czech", "cz": "Czech", "sk": "Slovak",
    "sv": "Swedish", "no": "Norwegian", "nb": "Norwegian", "nn": "Norwegian",
    "da": "Danish", "fi": "Finnish",
}

_FILENAME_LANG_RE = re.compile(r"(?:^|[._-])([a-z]{2}(?:-[a-z]{2})?)\.json$", re.I)


def language_name(code: str) -> str:
    """Full language name for a short code; unknown codes are returned as-is."""
    if not code:
        return ""
    key = code.strip().lower().replace("_", "-")
    return LANGUAGE_NAMES.get(key) or LANGUAGE_NAMES.get(key.split("-")[0], code)


def language_from_filename(filename: str) -> str:
    """
    Guess the language of an uploaded translation file from its name.

      fr.json              -> fr
      messages.en-US.json  -> en-us
      strings.json         -> strings
    """
    name = (filename or "").rsplit("/", 1)[-1]
    m = _FILENAME_LANG_RE.search(name)
    if m:
        return m.group(1).lower()
    return name.replace(".json", "")
