from __future__ import annotations
from typing import List, Optional, Sequence

import httpx

from ..errors import ProviderError
from ..schemas import TranslationItem, TranslationResult
from ..utils.debug_buffer import record as dbg_record
from .prompts import (
    BATCH_MAX_TOKENS,
    SINGLE_MAX_TOKENS,
    batch_messages,
    parse_batch_results,
    single_messages,
)


class OllamaProvider:
    name = "ollama"

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.1",
        temperature: float = 0.3,
        timeout_seconds: int = 300,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not model:
            raise ValueError("Ollama model is required")

        self.host = str(host or "http://localhost:11434").rstrip("/")
        self.model = str(model)
        self.temperature = float(temperature)
        self._transport = transport

        self.timeout = httpx.Timeout(
            timeout=None,
            connect=30.0,
            read=float(timeout_seconds),
            write=60.0,
            pool=60.0,
        )

    async def _chat(self, messages: List[dict], max_tokens: int) -> str:
        body = {
            "model": self.model,
            "messages": messages,
            "options": {"temperature": self.temperature, "num_predict": max_tokens},
            "stream": False,
        }
        url = f"{self.host}/api/chat"

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                r = await client.post(url, json=body)
            except httpx.ReadTimeout as e:
                raise ProviderError(f"Ollama read timeout: {e}") from e
            except httpx.ConnectError as e:
                raise ProviderError(f"Ollama connect error: {e}") from e
            except httpx.HTTPError as e:
                raise ProviderError(f"Ollama HTTP error: {e}") from e

        if r.status_code >= 400:
            raise ProviderError(f"Ollama HTTP {r.status_code}: {r.text[:500]}")

        try:
            content = r.json()["message"]["content"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError(f"Ollama unexpected schema: {e}. Body snippet: {r.text[:300]}") from e

        dbg_record({"provider": self.name, "dir": "response", "snippet": str(content)[:200]})
        return content

    async def translate_batch(
        self,
        items: Sequence[TranslationItem],
        source_language: str,
        target_language: str,
        system_prompt: str = "",
    ) -> List[TranslationResult]:
        dbg_record({"provider": self.name, "dir": "request", "n": len(items), "model": self.model})
        content = await self._chat(
            batch_messages(items, source_language, target_language, system_prompt),
            BATCH_MAX_TOKENS,
        )
        results = parse_batch_results(content)
        dbg_record({"provider": self.name, "dir": "parsed", "count": len(results)})
        return results

    async def translate_text(
        self,
        text: str,
        source_language: str,
        target_language: str,
        system_prompt: str = "",
    ) -> str:
        content = await self._chat(
            single_messages(text, source_language, target_language, system_prompt),
            SINGLE_MAX_TOKENS,
        )
        if not isinstance(content, str) or not content.strip():
            raise ProviderError("Ollama returned empty content")
        return content.strip()
