from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..config import settings

logger = logging.getLogger("news_rag.llm")


class LLMError(RuntimeError):
    """Raised when the text generation call fails."""


class LLMClient:
    """
    Thin OpenAI-compatible chat completions client.

    The prompt is sent as a single user message; the caller owns prompt
    construction.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if api_key is None and settings.llm_api_key is not None:
            api_key = settings.llm_api_key.get_secret_value()
        self.api_key = api_key or None
        self.model = model or settings.llm_model
        self.base_url = base_url or settings.llm_base_url
        self.timeout = timeout or settings.llm_timeout
        self._http_client = http_client

    @property
    def enabled(self) -> bool:
        return self.api_key is not None

    def _payload(self, prompt: str, stream: bool) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.3,
            "stream": stream,
        }

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    async def complete(self, prompt: str) -> Dict[str, Any]:
        """
        Returns the answer text and token usage, e.g.:
        {
            "content": "...",
            "usage": {"promptTokens": 10, "completionTokens": 20, "totalTokens": 30}
        }
        """
        try:
            async with self._client() as client:
                resp = await client.post(
                    self.base_url,
                    json=self._payload(prompt, stream=False),
                    headers=self._headers(),
                )
            resp.raise_for_status()
            data = resp.json()
            content = data["choices"][0]["message"]["content"] or ""
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            raise LLMError(f"Text generation failed: {type(exc).__name__}") from exc

        usage = data.get("usage") or {}
        return {
            "content": content,
            "usage": {
                "promptTokens": usage.get("prompt_tokens", 0),
                "completionTokens": usage.get("completion_tokens", 0),
                "totalTokens": usage.get("total_tokens", 0),
            },
        }

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        """Yield answer text fragments as they arrive (server-sent events)."""
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    self.base_url,
                    json=self._payload(prompt, stream=True),
                    headers=self._headers(),
                ) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if data == "[DONE]":
                            break
                        event = json.loads(data)
                        if not isinstance(event, dict):
                            raise ValueError("stream event is not a JSON object")
                        choices = event.get("choices") or []
                        if not choices or not isinstance(choices[0], dict):
                            continue
                        delta = choices[0].get("delta")
                        text = delta.get("content") if isinstance(delta, dict) else None
                        if text:
                            yield text
        except (httpx.HTTPError, ValueError) as exc:
            raise LLMError(f"Streaming generation failed: {type(exc).__name__}") from exc
