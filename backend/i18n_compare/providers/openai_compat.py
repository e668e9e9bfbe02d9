from __future__ import annotations
from typing import Dict, List, Optional, Sequence

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


class OpenAICompatProvider:
    """
    Chat-completions client for OpenAI and any server speaking the same API
    (OpenRouter, LM Studio, vLLM, ...).
    """

    name = "openai_compat"

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: Optional[str] = None,
        temperature: float = 0.3,
        timeout_seconds: int = 120,
        extra_headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ValueError("OpenAI-compatible base_url is required")
        if not model:
            raise ValueError("OpenAI-compatible model is required")

        self.base_url = str(base_url).rstrip("/")
        self.api_key = api_key or None
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

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        headers.update(extra_headers or {})
        self.headers = headers

    async def _chat(self, messages: List[dict], max_tokens: int) -> str:
        body = {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": max_tokens,
            "messages": messages,
            "stream": False,
        }
        url = f"{self.base_url}/chat/completions"

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                r = await client.post(url, headers=self.headers, json=body)
            except httpx.ReadTimeout as e:
                raise ProviderError(f"Read timeout contacting provider: {e}") from e
            except httpx.ConnectError as e:
                raise ProviderError(f"Cannot connect to provider: {e}") from e
            except httpx.HTTPError as e:
                raise ProviderError(f"HTTP error contacting provider: {e}") from e

        if r.status_code >= 400:
            raise ProviderError(f"Provider HTTP {r.status_code}: {r.text[:500]}")

        try:
            data = r.json()
        except ValueError as e:
            raise ProviderError(f"Provider returned non-JSON body: {r.text[:300]}") from e

        content: Optional[str] = None
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            choices = data.get("choices") if isinstance(data, dict) else None
            if choices and isinstance(choices[0], dict):
                content = choices[0].get("text")

        if not isinstance(content, str) or not content.strip():
            raise ProviderError(f"Unexpected provider schema or empty content. Body snippet: {str(data)[:300]}")

        dbg_record({"provider": self.name, "dir": "response", "snippet": content[:200]})
        return content

    async def translate_batch(
        self,
        items: Sequence[TranslationItem],
        source_language: str,
        target_language: str,
        system_prompt: str = "",
    ) -> List[TranslationResult]:
        dbg_record(
            {
                "provider": self.name,
                "dir": "request",
                "n": len(items),
                "model": self.model,
                "pair": f"{source_language}->{target_language}",
            }
        )
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
        dbg_record({"provider": self.name, "dir": "request", "n": 1, "model": self.model})
        content = await self._chat(
            single_messages(text, source_language, target_language, system_prompt),
            SINGLE_MAX_TOKENS,
        )
        return content.strip()
