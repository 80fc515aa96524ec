"""Async client for an OpenAI-compatible chat-completions endpoint."""

from __future__ import annotations

import httpx
import structlog

from ..config import LLMConfig, RetryConfig
from ..errors import LLMError, LLMErrorCode
from ..retry import with_retry

logger = structlog.get_logger()


def is_transient(exc: BaseException) -> bool:
    """Transport failures, rate limiting and 5xx answers are worth retrying."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class LLMClient:
    """Sends one system + user prompt pair and returns the JSON text answered.

    Transient HTTP failures are retried per :class:`RetryConfig`; every
    failure that survives the retries is raised as :class:`LLMError`.
    """

    def __init__(
        self,
        config: LLMConfig,
        retry: RetryConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._post = with_retry(retry or RetryConfig(), retry_when=is_transient)(self._post_once)

    @property
    def model(self) -> str:
        return self._config.model

    def _api_key(self) -> str:
        key = self._config.api_key
        return key.get_secret_value().strip() if key is not None else ""

    def is_configured(self) -> bool:
        return bool(self._api_key())

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout_seconds))
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _post_once(self, payload: dict) -> dict:
        response = await self._http().post(
            f"{self._config.base_url.rstrip('/')}/chat/completions",
            json=payload,
            headers={"Authorization": f"Bearer {self._api_key()}"},
        )
        response.raise_for_status()
        return response.json()

    async def complete_json(self, system_prompt: str, user_prompt: str) -> str:
        """Content of the first choice, requested in JSON mode.

        Raises :class:`LLMError` with ``CONFIG_ERROR`` before any request
        when no API key is configured, ``API_ERROR`` for HTTP, transport or
        empty answers.
        """
        if not self.is_configured():
            raise LLMError("No LLM API key configured", LLMErrorCode.CONFIG_ERROR)

        payload = {
            "model": self._config.model,
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        try:
            data = await self._post(payload)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("llm_call_failed", status_code=status)
            raise LLMError(
                f"LLM API error ({status}): {exc.response.text}",
                LLMErrorCode.API_ERROR,
                http_status=status,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("llm_call_failed", error=str(exc))
            raise LLMError(f"LLM API unreachable: {exc}", LLMErrorCode.API_ERROR) from exc
        except ValueError as exc:
            raise LLMError(f"LLM API returned invalid JSON: {exc}", LLMErrorCode.API_ERROR) from exc

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            raise LLMError("Empty LLM response", LLMErrorCode.API_ERROR)
        first = choices[0] if isinstance(choices[0], dict) else {}
        content = (first.get("message") or {}).get("content")
        if not isinstance(content, str):
            raise LLMError("LLM response has no message content", LLMErrorCode.API_ERROR)

        usage = data.get("usage") or {}
        logger.debug("llm_call_completed", model=self._config.model, tokens=usage.get("total_tokens"))
        return content
