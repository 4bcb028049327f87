"""Chat-completions client used by the summary pipeline."""

import logging
from typing import Protocol

import httpx

from summary_bot.core.config import settings
from summary_bot.core.exceptions import CapacityError, LLMError

logger = logging.getLogger(__name__)

# 402 is what several OpenAI-compatible providers return when the balance is exhausted
_CAPACITY_STATUS_CODES = {402, 429, 503}
_CAPACITY_HINTS = ("rate limit", "rate_limit", "quota", "insufficient_balance", "overloaded")


class CompletionClient(Protocol):
    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str:
        ...


class LLMClient:
    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.llm_api_key
        self._api_url = api_url or settings.llm_api_url
        self._model = model or settings.llm_model
        self._timeout = timeout or settings.llm_timeout_seconds
        self._transport = transport

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int, temperature: float) -> str:
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": int(max_tokens),
            "temperature": temperature,
        }

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._api_url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise CapacityError(f"Language model request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise LLMError(f"Language model request failed: {exc}") from exc

        if response.status_code >= 400:
            raise self._error_for(response)

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.error("Unexpected completion payload: %s", response.text[:500])
            raise LLMError("Language model returned an unexpected payload") from exc

        if not content:
            raise LLMError("Language model returned an empty completion")
        return content.strip()

    @staticmethod
    def _error_for(response: httpx.Response) -> LLMError:
        body = response.text[:500]
        message = f"Language model returned HTTP {response.status_code}: {body}"
        lowered = body.lower()

        if response.status_code in _CAPACITY_STATUS_CODES or any(hint in lowered for hint in _CAPACITY_HINTS):
            logger.warning(message)
            return CapacityError(message)

        logger.error(message)
        return LLMError(message)
