"""
Gemini text-generation client (REST ``generateContent`` over httpx).

One call per request, no automatic retry.  The whole call is raced against
``timeout_ms`` with ``asyncio.wait_for``; losing the race cancels the
in-flight request and raises ``GenerationTimeoutError``.  Transport
failures are classified (DNS, refused, connect timeout) so the API can
return a useful message.

Public API
----------
GeminiConfig.from_settings()     -> GeminiConfig
GeminiClient(config).generate(prompt, ...) -> GenerationResult
"""
from __future__ import annotations

import asyncio
import json
import logging
import socket
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from tcm_portal.config import settings
from tcm_portal.services.errors import (
    GenerationConfigError,
    GenerationError,
    GenerationNetworkError,
    GenerationTimeoutError,
)

logger = logging.getLogger(__name__)

FINISH_MAX_TOKENS = "MAX_TOKENS"

_DNS_HINTS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated",
)


@dataclass(frozen=True)
class GeminiConfig:
    api_key: Optional[str]
    model: str
    base_url: str
    max_output_tokens: int
    timeout_ms: int
    connect_timeout: float = 10.0
    debug: bool = False

    @classmethod
    def from_settings(cls) -> "GeminiConfig":
        return cls(
            api_key=(settings.GEMINI_API_KEY or "").strip() or None,
            model=settings.GEMINI_MODEL,
            base_url=settings.GEMINI_BASE_URL.rstrip("/"),
            max_output_tokens=settings.GEMINI_MAX_OUTPUT_TOKENS,
            timeout_ms=settings.GEMINI_TIMEOUT_MS,
            connect_timeout=settings.GEMINI_CONNECT_TIMEOUT,
            debug=settings.GEMINI_DEBUG,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class GenerationResult:
    text: str
    finish_reason: Optional[str] = None
    model: str = ""

    @property
    def truncated(self) -> bool:
        return self.finish_reason == FINISH_MAX_TOKENS


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

def _exception_chain(exc: BaseException):
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_connect_error(exc: BaseException) -> str:
    """Map a transport exception to a ``GenerationNetworkError`` reason."""
    if isinstance(exc, httpx.ConnectTimeout):
        return GenerationNetworkError.CONNECT_TIMEOUT
    for link in _exception_chain(exc):
        if isinstance(link, socket.gaierror):
            return GenerationNetworkError.DNS_FAILURE
        if isinstance(link, ConnectionRefusedError):
            return GenerationNetworkError.CONNECTION_REFUSED
    message = str(exc).lower()
    if any(hint in message for hint in _DNS_HINTS):
        return GenerationNetworkError.DNS_FAILURE
    if "connection refused" in message:
        return GenerationNetworkError.CONNECTION_REFUSED
    return GenerationNetworkError.OTHER


def api_error_message(response: httpx.Response) -> str:
    """Nested ``error.message`` from an API error body, else a generic line."""
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            nested = error.get("message")
            if isinstance(nested, str) and nested.strip():
                return nested.strip()
    return f"Gemini API returned HTTP {response.status_code}."


def _response_text(body: Dict[str, Any]) -> str:
    candidates = body.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


def _finish_reason(body: Dict[str, Any]) -> Optional[str]:
    candidates = body.get("candidates") or []
    if not candidates:
        return None
    return candidates[0].get("finishReason")


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class GeminiClient:
    """Thin async wrapper around ``models/{model}:generateContent``."""

    def __init__(
        self,
        config: Optional[GeminiConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or GeminiConfig.from_settings()
        self._transport = transport

    def _request_body(self, prompt: str, json_schema: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        generation_config: Dict[str, Any] = {
            "responseMimeType": "application/json",
            "maxOutputTokens": self.config.max_output_tokens,
        }
        if json_schema is not None:
            generation_config["responseJsonSchema"] = json_schema
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

    async def _post(self, model: str, body: Dict[str, Any], timeout_s: float) -> httpx.Response:
        timeout = httpx.Timeout(timeout_s, connect=min(self.config.connect_timeout, timeout_s))
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            return await client.post(
                f"{self.config.base_url}/models/{model}:generateContent",
                headers={"x-goog-api-key": self.config.api_key or ""},
                json=body,
            )

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        json_schema: Optional[Dict[str, Any]] = None,
    ) -> GenerationResult:
        """
        Run one generation call.

        Raises:
            GenerationConfigError: no API key configured
            GenerationTimeoutError: the call did not finish within *timeout_ms*
            GenerationNetworkError: the host could not be reached
            GenerationError: the API answered with an error or an unusable body
        """
        if not self.config.is_configured:
            raise GenerationConfigError()

        model_name = model or self.config.model
        timeout_ms = timeout_ms or self.config.timeout_ms
        timeout_s = timeout_ms / 1000
        body = self._request_body(prompt, json_schema)

        try:
            response = await asyncio.wait_for(self._post(model_name, body, timeout_s), timeout_s)
        except asyncio.TimeoutError:
            logger.error("Gemini call timed out after %d ms (model=%s)", timeout_ms, model_name)
            raise GenerationTimeoutError(timeout_ms)
        except httpx.ConnectTimeout as exc:
            logger.error("Gemini connect timeout: %s", exc)
            raise GenerationNetworkError(GenerationNetworkError.CONNECT_TIMEOUT, str(exc)) from exc
        except httpx.TimeoutException as exc:
            logger.error("Gemini call timed out after %d ms (model=%s)", timeout_ms, model_name)
            raise GenerationTimeoutError(timeout_ms) from exc
        except httpx.TransportError as exc:
            reason = classify_connect_error(exc)
            logger.error("Gemini transport error (%s): %s", reason, exc)
            raise GenerationNetworkError(reason, str(exc)) from exc

        if response.status_code != 200:
            message = api_error_message(response)
            logger.error(
                "Gemini returned HTTP %d: %s", response.status_code, response.text[:300]
            )
            raise GenerationError(message)

        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            logger.error("Gemini returned a non-JSON envelope: %s", response.text[:300])
            raise GenerationError("Gemini returned an unreadable response.") from exc

        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            raise GenerationError(
                payload["error"].get("message") or "AI generation failed."
            )

        result = GenerationResult(
            text=_response_text(payload if isinstance(payload, dict) else {}),
            finish_reason=_finish_reason(payload if isinstance(payload, dict) else {}),
            model=model_name,
        )

        if self.config.debug:
            logger.info(
                "[Gemini Debug] Raw response (%s) finishReason=%s text=%s",
                model_name,
                result.finish_reason or "UNKNOWN",
                result.text,
            )
        return result
