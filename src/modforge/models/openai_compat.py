"""OpenAI-compatible streaming chat model client."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator
from urllib.parse import urlparse, urlunparse

import httpx

from modforge.models.base import BaseStreamingModel
from modforge.util.logging import get_logger, redact

logger = get_logger("modforge.models.openai_compat")

_DATA_PREFIX = "data:"
_DONE = "[DONE]"


class OpenAICompatError(RuntimeError):
    """Raised when the OpenAI-compatible backend returns an error."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


def parse_sse_line(line: str) -> str | None:
    """Return the text delta carried by one server-sent event line.

    Returns ``None`` for lines without content and ``"[DONE]"`` for the end
    sentinel.
    """
    stripped = line.strip()
    if not stripped.startswith(_DATA_PREFIX):
        return None
    data = stripped[len(_DATA_PREFIX) :].strip()
    if data == _DONE:
        return _DONE
    try:
        event = json.loads(data)
    except json.JSONDecodeError as exc:
        raise OpenAICompatError("Malformed stream event", retryable=False) from exc
    if not isinstance(event, dict):
        return None
    error = event.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise OpenAICompatError(f"Backend error: {message}", retryable=False)
    choices = event.get("choices") or [{}]
    delta = choices[0].get("delta") or {}
    content = delta.get("content")
    return content if isinstance(content, str) else None


class OpenAICompatStreamingModel(BaseStreamingModel):
    """HTTP client for streamed OpenAI-compatible chat/completions."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        timeout_seconds: int = 120,
        max_response_chars: int = 2_000_000,
        extra_headers: dict[str, str] | None = None,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        force_chatcompletions_path: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        normalized = base_url.strip()
        if not normalized.startswith(("http://", "https://")):
            normalized = f"http://{normalized}"
        self.base_url = normalized.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_response_chars = max_response_chars
        self.extra_headers = extra_headers or {}
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.force_chatcompletions_path = force_chatcompletions_path
        self.transport = transport

    def _request_payload(self, messages: list[dict[str, Any]]) -> dict[str, Any]:
        return {"model": self.model, "messages": messages, "stream": True}

    def _build_url(self) -> str:
        parsed = urlparse(self.base_url)
        if self.force_chatcompletions_path:
            forced_path = self.force_chatcompletions_path
            if not forced_path.startswith("/"):
                forced_path = f"/{forced_path}"
            return urlunparse(parsed._replace(path=forced_path, params="", query="", fragment=""))
        path = parsed.path or ""
        if path in {"", "/"}:
            base_path = "/v1"
        else:
            base_path = path.rstrip("/")
            segments = [segment for segment in base_path.split("/") if segment]
            if "v1" not in segments:
                base_path = f"{base_path}/v1"
        if base_path.endswith("/chat/completions"):
            final_path = base_path
        else:
            final_path = f"{base_path}/chat/completions"
        return urlunparse(parsed._replace(path=final_path, params="", query="", fragment=""))

    async def stream(self, messages: list[dict[str, Any]]) -> AsyncIterator[str]:
        url = self._build_url()
        headers = {"Authorization": f"Bearer {self.api_key}", **self.extra_headers}
        payload = self._request_payload(messages)
        timeout = httpx.Timeout(self.timeout_seconds)

        last_error: Exception | None = None
        for attempt in range(self.max_attempts):
            received = 0
            try:
                async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                    async with client.stream("POST", url, headers=headers, json=payload) as response:
                        if response.status_code in {429} or response.status_code >= 500:
                            body = (await response.aread()).decode("utf-8", errors="replace")
                            raise OpenAICompatError(
                                f"Retryable error {response.status_code}: {body[:200]}"
                            )
                        if response.status_code >= 400:
                            body = (await response.aread()).decode("utf-8", errors="replace")
                            raise OpenAICompatError(
                                f"Request rejected with {response.status_code}: {body[:200]}",
                                retryable=False,
                            )
                        async for line in response.aiter_lines():
                            text = parse_sse_line(line)
                            if text == _DONE:
                                return
                            if not text:
                                continue
                            received += len(text)
                            if received > self.max_response_chars:
                                raise OpenAICompatError("Response too large", retryable=False)
                            yield text
                return
            except (httpx.HTTPError, OpenAICompatError) as exc:
                if received:
                    # Text already reached the caller; a retry would duplicate it.
                    raise OpenAICompatError(
                        f"Stream interrupted: {redact(str(exc), [self.api_key])}", retryable=False
                    ) from exc
                last_error = exc
                retryable = not isinstance(exc, OpenAICompatError) or exc.retryable
                if not retryable or attempt == self.max_attempts - 1:
                    break
                logger.warning(
                    "Attempt %d/%d failed: %s", attempt + 1, self.max_attempts, redact(str(exc))
                )
                await asyncio.sleep(self.backoff_seconds * 2**attempt)
        message = redact(str(last_error), [self.api_key])
        raise OpenAICompatError(f"OpenAI-compatible request failed: {message}", retryable=False)
