from __future__ import annotations
import json
from typing import Any, Dict, List, Sequence

from ..errors import ProviderError
from ..schemas import TranslationItem, TranslationResult

DEFAULT_SYSTEM_PROMPT = (
    "You are a professional translator. "
    "Translate the given texts accurately while preserving the meaning and tone."
)

SINGLE_SYSTEM_PROMPT = (
    "You are a professional translator. "
    "Provide accurate translations without additional commentary."
)

BATCH_MAX_TOKENS = 2000
SINGLE_MAX_TOKENS = 1000


def batch_messages(
    items: Sequence[TranslationItem],
    source_language: str,
    target_language: str,
    system_prompt: str = "",
) -> List[Dict[str, str]]:
    payload = [{"key": it.key, "text": it.text} for it in items]
    rules = (
        f"Translate the following texts from {source_language} to {target_language}. "
        'Return a JSON array with objects containing "key" and "translatedText" properties. '
        "Use the SAME key values you received. "
        "Preserve placeholders like {name}, {{count}}, %s and HTML tags. "
        "Do not include any explanations, just the JSON array."
    )
    return [
        {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
        {"role": "user", "content": rules + "\n\nInput:\n" + json.dumps(payload, ensure_ascii=False)},
    ]


def single_messages(
    text: str,
    source_language: str,
    target_language: str,
    system_prompt: str = "",
) -> List[Dict[str, str]]:
    rules = (
        f"Translate the following text from {source_language} to {target_language}. "
        "Maintain the same tone, formality level, and meaning. "
        "Only return the translated text without any explanations."
    )
    return [
        {"role": "system", "content": system_prompt or SINGLE_SYSTEM_PROMPT},
        {"role": "user", "content": f'{rules}\n\nText to translate: "{text}"'},
    ]


def _extract_json(content: str) -> Any:
    """
    Parse model output that should be JSON but may carry prose or code fences:
    strict -> outermost [...] span -> outermost {...} span.
    """
    s = content.strip()
    try:
        return json.loads(s)
    except ValueError:
        pass

    for open_ch, close_ch in (("[", "]"), ("{", "}")):
        first = s.find(open_ch)
        last = s.rfind(close_ch)
        if first != -1 and last > first:
            try:
                return json.loads(s[first : last + 1])
            except ValueError:
                continue

    raise ProviderError(f"No valid JSON array found in the response. Content snippet: {s[:200]}")


def parse_batch_results(content: str) -> List[TranslationResult]:
    if not isinstance(content, str) or not content.strip():
        raise ProviderError("Provider returned empty content")

    data = _extract_json(content)
    # some models wrap the array: {"items": [...]}
    if isinstance(data, dict):
        data = data.get("items", data.get("translations"))
    if not isinstance(data, list):
        raise ProviderError("No valid JSON array found in the response")

    results: List[TranslationResult] = []
    for it in data:
        if not isinstance(it, dict) or "key" not in it or "translatedText" not in it:
            raise ProviderError("Invalid response format")
        if it["translatedText"] is None:
            raise ProviderError(f"Empty translation for key {it['key']!r}")
        results.append(TranslationResult(key=str(it["key"]), translated_text=str(it["translatedText"])))
    return results
