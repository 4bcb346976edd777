"""
Completion client for prepflow

Thin async wrapper around an OpenAI-compatible chat completions endpoint
(Groq by default). One place for auth, request shaping, response
normalization and error categorization. Retries are the caller's concern
(see core.retry) so that generation and evaluation can pick their own
context names and fallbacks.

Integrated with Langfuse for optional tracing of every call.
"""

import logging
import time
from typing import Any

import httpx
from langfuse import Langfuse

from prepflow.config.settings import Settings, get_settings
from prepflow.core.errors import (
    AuthError,
    NetworkError,
    RequestTimeoutError,
    ResponseValidationError,
    ServerError,
    error_for_status,
)

logger = logging.getLogger(__name__)

PLACEHOLDER_KEYS = {"", "your-groq-api-key-here", "changeme"}


class CompletionClient:
    """
    Async client for the external completion service.

    Usage:
        client = CompletionClient()
        text = await client.complete(system, prompt, temperature=0.3, max_tokens=2000)
        await client.aclose()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the client.

        Args:
            settings: Settings override (defaults to the cached settings)
            http_client: Pre-built client, e.g. with a mock transport in tests
        """
        self.settings = settings or get_settings()
        self.model = self.settings.llm_model

        self.client = http_client or httpx.AsyncClient(
            base_url=self.settings.llm_base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {self.settings.llm_api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.settings.request_timeout_seconds,
        )

        self.langfuse = None
        if self.settings.langfuse_enabled:
            if self.settings.langfuse_secret_key and self.settings.langfuse_public_key:
                try:
                    self.langfuse = Langfuse(
                        secret_key=self.settings.langfuse_secret_key,
                        public_key=self.settings.langfuse_public_key,
                        host=self.settings.langfuse_base_url,
                    )
                    logger.info("Langfuse initialized for completion tracing")
                except Exception as e:
                    logger.warning(f"Failed to initialize Langfuse: {e}")
            else:
                logger.info("Langfuse keys not configured, tracing disabled")

    @property
    def has_credentials(self) -> bool:
        return self.settings.llm_api_key.strip() not in PLACEHOLDER_KEYS

    async def aclose(self) -> None:
        """Close the HTTP client and flush Langfuse."""
        await self.client.aclose()
        if self.langfuse:
            try:
                self.langfuse.flush()
            except Exception as e:
                logger.warning(f"Failed to flush Langfuse: {e}")

    # =========================================================================
    # COMPLETION
    # =========================================================================

    def _extract_content(self, result: Any) -> str:
        """
        Extract text content from API response, handling list/dict formats.

        Raises:
            ResponseValidationError: body, choice or message is not an object
        """
        if not isinstance(result, dict):
            raise ResponseValidationError("Unexpected completion response shape")
        choices = result.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise ResponseValidationError("Unexpected completion response shape")
        message = choices[0].get("message")
        if not isinstance(message, dict):
            raise ResponseValidationError("Unexpected completion response shape")
        content = message.get("content", "")

        # Handle case where content is a list (multi-part response)
        if isinstance(content, list):
            text_parts = []
            for part in content:
                if isinstance(part, str):
                    text_parts.append(part)
                elif isinstance(part, dict) and "text" in part:
                    text_parts.append(part["text"])
            content = "".join(text_parts)

        return content if isinstance(content, str) else ""

    async def complete(
        self,
        system: str,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        json_mode: bool = True,
        trace_name: str = "completion",
        trace_metadata: dict[str, Any] | None = None,
    ) -> str:
        """
        Send one completion request.

        Returns:
            The model's response text

        Raises:
            CompletionError: categorized failure (see core.errors)
        """
        if not self.has_credentials:
            raise AuthError("Completion API key not configured")

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        span = self._start_span(trace_name, trace_metadata)
        started = time.monotonic()
        try:
            response = await self.client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            self._end_span(span, error="timeout")
            raise RequestTimeoutError("Request timeout", original=e) from e
        except httpx.TransportError as e:
            self._end_span(span, error="network")
            raise NetworkError(f"Network connection failed: {e}", original=e) from e

        if response.is_error:
            self._end_span(span, error=f"http_{response.status_code}")
            raise error_for_status(
                response.status_code,
                f"HTTP {response.status_code}: {response.reason_phrase}",
            )

        try:
            body = response.json()
        except ValueError as e:
            self._end_span(span, error="invalid_body")
            raise ServerError("Completion response body is not JSON", original=e) from e

        try:
            content = self._extract_content(body)
        except ResponseValidationError:
            self._end_span(span, error="invalid_shape")
            raise

        if not content.strip():
            self._end_span(span, error="empty_content")
            raise ServerError("No content in completion response")

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.debug(f"{trace_name}: {len(content)} chars in {duration_ms}ms")
        self._end_span(span, output={"chars": len(content), "duration_ms": duration_ms})
        return content

    # =========================================================================
    # TRACING
    # =========================================================================

    def _start_span(self, name: str, metadata: dict[str, Any] | None):
        if not self.langfuse:
            return None
        try:
            return self.langfuse.start_span(
                name=name,
                metadata={"model": self.model, **(metadata or {})},
            )
        except Exception as lf_err:
            logger.warning(f"Langfuse span start failed: {lf_err}")
            return None

    def _end_span(self, span, output: dict[str, Any] | None = None, error: str | None = None) -> None:
        if span is None:
            return
        try:
            if error:
                span.update(level="ERROR", status_message=error)
            else:
                span.update(output=output)
            span.end()
        except Exception as lf_err:
            logger.warning(f"Langfuse span end failed: {lf_err}")
