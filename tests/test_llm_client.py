"""Tests for formation_tracker.llm.client."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from formation_tracker.config import LLMConfig, RetryConfig
from formation_tracker.errors import LLMError, LLMErrorCode
from formation_tracker.llm.client import LLMClient, is_transient

COMPLETIONS_URL = "https://llm.test/v1/chat/completions"


def _completion(content: str) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"total_tokens": 42},
    }


@pytest.fixture
def client(llm_config: LLMConfig, retry_config: RetryConfig) -> LLMClient:
    return LLMClient(llm_config, retry_config)


class TestIsTransient:
    def _status_error(self, status: int) -> httpx.HTTPStatusError:
        request = httpx.Request("POST", COMPLETIONS_URL)
        return httpx.HTTPStatusError("x", request=request, response=httpx.Response(status, request=request))

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_retryable_statuses(self, status):
        assert is_transient(self._status_error(status))

    @pytest.mark.parametrize("status", [400, 401, 404])
    def test_client_errors_are_final(self, status):
        assert not is_transient(self._status_error(status))

    def test_transport_errors(self):
        assert is_transient(httpx.ConnectError("down"))
        assert not is_transient(ValueError("bad"))


class TestCompleteJson:
    @pytest.mark.asyncio
    @respx.mock
    async def test_success(self, client: LLMClient):
        route = respx.post(COMPLETIONS_URL).respond(200, json=_completion('{"type": "autre"}'))
        try:
            content = await client.complete_json("system", "user")
        finally:
            await client.aclose()

        assert content == '{"type": "autre"}'
        request = route.calls[0].request
        assert request.headers["authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "test-model"
        assert body["response_format"] == {"type": "json_object"}
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert body["messages"][1]["content"] == "user"

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_key_fails_before_request(self, retry_config: RetryConfig):
        route = respx.post(COMPLETIONS_URL).respond(200, json=_completion("{}"))
        client = LLMClient(LLMConfig(base_url="https://llm.test/v1"), retry_config)

        with pytest.raises(LLMError) as exc_info:
            await client.complete_json("system", "user")

        assert exc_info.value.code is LLMErrorCode.CONFIG_ERROR
        assert not route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_error_is_retried_then_raised(self, client: LLMClient):
        route = respx.post(COMPLETIONS_URL).respond(500, text="upstream down")

        with pytest.raises(LLMError) as exc_info:
            await client.complete_json("system", "user")

        assert route.call_count == 3
        assert exc_info.value.code is LLMErrorCode.API_ERROR
        assert exc_info.value.http_status == 500
        assert str(exc_info.value) == "LLM API error (500): upstream down"

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limit_recovers(self, client: LLMClient):
        route = respx.post(COMPLETIONS_URL)
        route.side_effect = [
            httpx.Response(429),
            httpx.Response(200, json=_completion("{}")),
        ]
        assert await client.complete_json("system", "user") == "{}"
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_unauthorized_is_not_retried(self, client: LLMClient):
        route = respx.post(COMPLETIONS_URL).respond(401, text="bad key")
        with pytest.raises(LLMError) as exc_info:
            await client.complete_json("system", "user")
        assert route.call_count == 1
        assert exc_info.value.http_status == 401

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error_is_api_error(self, client: LLMClient):
        respx.post(COMPLETIONS_URL).mock(side_effect=httpx.ConnectError("down"))
        with pytest.raises(LLMError) as exc_info:
            await client.complete_json("system", "user")
        assert exc_info.value.code is LLMErrorCode.API_ERROR

    @pytest.mark.asyncio
    @respx.mock
    @pytest.mark.parametrize(
        "payload",
        [{"choices": []}, {}, {"choices": [{"message": {}}]}],
    )
    async def test_empty_answers(self, client: LLMClient, payload):
        respx.post(COMPLETIONS_URL).respond(200, json=payload)
        with pytest.raises(LLMError) as exc_info:
            await client.complete_json("system", "user")
        assert exc_info.value.code is LLMErrorCode.API_ERROR

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_body(self, client: LLMClient):
        respx.post(COMPLETIONS_URL).respond(200, text="<html>")
        with pytest.raises(LLMError) as exc_info:
            await client.complete_json("system", "user")
        assert exc_info.value.code is LLMErrorCode.API_ERROR


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, llm_config: LLMConfig):
        http = httpx.AsyncClient()
        client = LLMClient(llm_config, client=http)
        await client.aclose()
        assert not http.is_closed
        await http.aclose()

    def test_is_configured(self, llm_config: LLMConfig):
        assert LLMClient(llm_config).is_configured()
        assert not LLMClient(LLMConfig(api_key="  ")).is_configured()
