"""Streaming client for the OpenAI-compatible chat-completions gateway.

The gateway answers ``stream: true`` requests with Server-Sent-Event lines::

    data: {"choices":[{"delta":{"content":"Hel"}}]}
    data: {"choices":[{"delta":{"tool_calls":[{"index":0,"id":"call_1","function":{"name":"finish","arguments":"{\\"su"}}]}}]}
    data: [DONE]

``stream_chat`` turns those lines into ``TokenDelta`` / ``ToolCallDelta`` events.
Fragments of tool-call arguments are passed through untouched; assembly is the
job of ``ToolCallAccumulator``.
"""

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from charis.core.exceptions import LLMGatewayError, QuotaExhaustedError, RateLimitedError

logger = structlog.get_logger(__name__)

_DATA_PREFIX = "data:"
_DONE_MARKER = "[DONE]"


@dataclass(frozen=True)
class TokenDelta:
    token: str


@dataclass(frozen=True)
class ToolCallDelta:
    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


StreamEvent = TokenDelta | ToolCallDelta


def _raise_for_status(status_code: int, body: str) -> None:
    if status_code == 429:
        raise RateLimitedError()
    if status_code == 402:
        raise QuotaExhaustedError()
    if status_code >= 400:
        raise LLMGatewayError(status_code, f"LLM gateway error: {status_code} {body[:500]}".strip())


def parse_stream_line(line: str) -> list[StreamEvent] | None:
    """Parse one SSE line into stream events.

    Returns None when the line is the ``[DONE]`` marker, an empty list for lines
    that carry nothing usable (blank lines, comments, undecodable or
    wrongly shaped JSON).
    """
    line = line.strip()
    if not line.startswith(_DATA_PREFIX):
        return []
    payload = line[len(_DATA_PREFIX):].strip()
    if payload == _DONE_MARKER:
        return None
    if not payload:
        return []

    try:
        chunk = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("gateway_chunk_undecodable", payload=payload[:200])
        return []
    if not isinstance(chunk, dict):
        logger.debug("gateway_chunk_not_object", payload=payload[:200])
        return []

    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return []
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return []

    events: list[StreamEvent] = []
    content = delta.get("content")
    if isinstance(content, str) and content:
        events.append(TokenDelta(token=content))

    tool_calls = delta.get("tool_calls")
    for tc in tool_calls if isinstance(tool_calls, list) else []:
        if not isinstance(tc, dict):
            continue
        function = tc.get("function")
        if not isinstance(function, dict):
            function = {}
        index = tc.get("index", 0)
        events.append(
            ToolCallDelta(
                index=index if isinstance(index, int) else 0,
                id=tc.get("id"),
                name=function.get("name"),
                arguments=function.get("arguments"),
            )
        )
    return events


class LLMGatewayClient:
    """Thin async client over one chat-completions endpoint.

    The httpx client is injected so the app shares one connection pool and
    tests can pass an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str,
        api_key: str,
        model: str,
        max_tokens: int = 4096,
    ) -> None:
        self._http = http_client
        self._url = url
        self._api_key = api_key
        self.model = model
        self._max_tokens = max_tokens

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    @retry(
        retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
        before_sleep=lambda rs: logger.warning(
            "gateway_connect_retrying",
            attempt=rs.attempt_number,
            sleep_seconds=rs.next_action.sleep,
        ),
    )
    async def _open_stream(self, body: dict[str, Any]) -> httpx.Response:
        request = self._http.build_request("POST", self._url, headers=self._headers(), json=body)
        return await self._http.send(request, stream=True)

    async def stream_chat(
        self,
        messages: list[dict],
        tools: list[dict] | None = None,
        tool_choice: str = "auto",
    ) -> AsyncIterator[StreamEvent]:
        """Stream one assistant turn as TokenDelta / ToolCallDelta events.

        Raises:
            RateLimitedError: gateway answered 429.
            QuotaExhaustedError: gateway answered 402.
            LLMGatewayError: any other non-2xx status.
        """
        body: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": True,
            "max_tokens": self._max_tokens,
        }
        if tools:
            body["tools"] = tools
            body["tool_choice"] = tool_choice

        response = await self._open_stream(body)
        try:
            if response.status_code >= 400:
                error_body = (await response.aread()).decode("utf-8", errors="replace")
                logger.error(
                    "gateway_request_failed",
                    status_code=response.status_code,
                    body=error_body[:500],
                )
                _raise_for_status(response.status_code, error_body)

            async for line in response.aiter_lines():
                events = parse_stream_line(line)
                if events is None:
                    break
                for event in events:
                    yield event
        finally:
            await response.aclose()

    async def complete(
        self,
        messages: list[dict],
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> str:
        """Run one non-streaming completion and return the assistant text."""
        body = {
            "model": model or self.model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
        }
        response = await self._post_with_retry(body)
        if response.status_code >= 400:
            logger.error("gateway_request_failed", status_code=response.status_code, body=response.text[:500])
            _raise_for_status(response.status_code, response.text)

        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""

    @retry(
        retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _post_with_retry(self, body: dict[str, Any]) -> httpx.Response:
        return await self._http.post(self._url, headers=self._headers(), json=body)
