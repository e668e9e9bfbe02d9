from __future__ import annotations

import logging
from typing import List, Sequence

from .errors import InvalidBatchError, ProviderError
from .schemas import TranslationItem, TranslationResult

log = logging.getLogger(__name__)


class TranslationService:
    """
    The translate-batch service: validates a request against the configured
    batch ceiling and forwards it to a provider (must expose async
    translate_batch(...) and translate_text(...)).
    """

    def __init__(self, provider, max_batch_size: int = 10, system_prompt: str = ""):
        if int(max_batch_size) < 1:
            raise ValueError("max_batch_size must be a positive integer")
        self.provider = provider
        self.max_batch_size = int(max_batch_size)
        self.system_prompt = system_prompt or ""

    def _validate(self, items: Sequence[TranslationItem]) -> None:
        if not items:
            raise InvalidBatchError("Invalid request. Missing required parameters.")
        if len(items) > self.max_batch_size:
            raise InvalidBatchError(f"Batch size exceeds maximum limit of {self.max_batch_size} items.")
        seen = set()
        for it in items:
            if not it.key:
                raise InvalidBatchError("Every item needs a non-empty key.")
            if it.key in seen:
                raise InvalidBatchError(f"Duplicate key in batch: {it.key}")
            seen.add(it.key)

    async def translate_batch(
        self,
        items: Sequence[TranslationItem],
        source_language: str,
        target_language: str,
    ) -> List[TranslationResult]:
        self._validate(items)
        try:
            return await self.provider.translate_batch(
                items,
                source_language,
                target_language,
                system_prompt=self.system_prompt,
            )
        except ProviderError:
            raise
        except Exception as e:
            log.exception("translate-batch failed (%s -> %s, n=%d)", source_language, target_language, len(items))
            raise ProviderError(str(e) or e.__class__.__name__) from e

    async def translate_text(self, text: str, source_language: str, target_language: str) -> str:
        if not text:
            raise InvalidBatchError("Missing required fields: text, sourceLanguage, targetLanguage")
        try:
            result = await self.provider.translate_text(text, source_language, target_language)
        except ProviderError:
            raise
        except Exception as e:
            log.exception("translate failed (%s -> %s)", source_language, target_language)
            raise ProviderError(str(e) or e.__class__.__name__) from e
        return result.strip()
