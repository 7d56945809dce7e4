# src/momentum_planner/llm/client.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx
import openai
from openai import OpenAI

from ..core.ports import ChatMessage, LLMReply, TokenCallback, ToolCall
from ..errors import UpstreamError

logger = logging.getLogger(__name__)

_BAD_MODEL_COOLDOWN_SECONDS = 3600.0


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, openai.AuthenticationError | openai.PermissionDeniedError):
        return True
    return exc.__class__.__name__ in {"AuthenticationError", "PermissionDeniedError", "UnauthorizedError"}


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"RateLimitError", "TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    if isinstance(exc, openai.APIConnectionError | httpx.TimeoutException):
        return True
    return exc.__class__.__name__ in {
        "APIConnectionError",
        "APITimeoutError",
        "Timeout",
        "ConnectTimeout",
        "ReadTimeout",
        "WriteTimeout",
    }


def _is_server_error(exc: Exception) -> bool:
    return isinstance(exc, openai.InternalServerError)


def _is_not_found_error(exc: Exception) -> bool:
    # OpenAI-compatible SDK uses NotFoundError for HTTP 404 (unknown model)
    return isinstance(exc, openai.NotFoundError) or exc.__class__.__name__ == "NotFoundError"


def _is_transient(exc: Exception) -> bool:
    return _is_rate_limit_error(exc) or _is_connection_error(exc) or _is_server_error(exc)


def _close_stream(stream: Any) -> None:
    close = getattr(stream, "close", None)
    if callable(close):
        try:
            close()
        except Exception:
            logger.debug("Closing LLM stream failed.", exc_info=True)


def _reply_from_message(message: Any) -> LLMReply:
    calls: list[ToolCall] = []
    for tc in getattr(message, "tool_calls", None) or []:
        fn = getattr(tc, "function", None)
        if fn is None:
            continue
        calls.append(ToolCall(id=str(tc.id), name=str(fn.name), arguments=str(fn.arguments or "")))
    return LLMReply(content=str(getattr(message, "content", None) or ""), tool_calls=calls)


class _StreamAssembler:
    """Accumulates streamed deltas (content + tool-call fragments keyed by index)."""

    def __init__(self) -> None:
        self.content_parts: list[str] = []
        self._calls: dict[int, dict[str, str]] = {}

    def feed_tool_calls(self, deltas: Any) -> None:
        for d in deltas or []:
            idx = int(getattr(d, "index", 0) or 0)
            slot = self._calls.setdefault(idx, {"id": "", "name": "", "arguments": ""})
            if getattr(d, "id", None):
                slot["id"] = str(d.id)
            fn = getattr(d, "function", None)
            if fn is not None:
                if getattr(fn, "name", None):
                    slot["name"] += str(fn.name)
                if getattr(fn, "arguments", None):
                    slot["arguments"] += str(fn.arguments)

    def reply(self) -> LLMReply:
        calls = [
            ToolCall(id=c["id"] or f"call_{i}", name=c["name"], arguments=c["arguments"])
            for i, c in sorted(self._calls.items())
            if c["name"]
        ]
        return LLMReply(content="".join(self.content_parts), tool_calls=calls)


class OpenAILLMClient:
    """
    OpenAI-compatible chat-completions client with tool calling.

    Behavior:
    - Tries models in the configured order (MOMENTUM_LLM_MODELS).
    - Transient failures (rate limit, network/timeout, 5xx) are retried on the
      same model with bounded exponential backoff, then the next model is tried.
    - 404 (model not available) -> model is parked for an hour, next model.
    - Auth issues -> fail fast.
    - SDK-level retries are disabled; this class owns the retry policy.
    All terminal failures raise UpstreamError.
    """

    def __init__(
        self,
        settings: Any,
        *,
        client: OpenAI | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        api_key = getattr(settings, "llm_api_key", None)
        base_url = str(getattr(settings, "llm_base_url", "") or "")
        if client is None:
            if not api_key or not str(api_key).strip():
                raise UpstreamError("LLM API key is not set. Set MOMENTUM_LLM_API_KEY in your .env.")
            if not base_url.strip():
                raise UpstreamError("LLM base URL is not set. Set MOMENTUM_LLM_BASE_URL in your .env.")

            connect_s = float(getattr(settings, "llm_connect_timeout_seconds", 5.0))
            read_s = float(getattr(settings, "llm_read_timeout_seconds", 60.0))
            client = OpenAI(
                base_url=base_url,
                api_key=str(api_key),
                timeout=httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s),
                max_retries=0,
            )

        self._client = client
        self._models = [m.strip() for m in (getattr(settings, "llm_models", None) or []) if m and m.strip()]
        if not self._models:
            raise UpstreamError("LLM model list is empty. Set MOMENTUM_LLM_MODELS in your .env.")
        self._max_retries = max(0, int(getattr(settings, "llm_max_retries", 2)))
        self._backoff_s = max(0.0, float(getattr(settings, "llm_retry_backoff_seconds", 1.0)))
        self._sleep = sleep
        self._bad_models: dict[str, float] = {}  # model -> retry_at (monotonic)

    # ---- public API ----

    def complete(self, messages: list[ChatMessage], tools: list[dict[str, Any]]) -> LLMReply:
        def call(model: str) -> LLMReply:
            resp = self._client.chat.completions.create(
                model=model,
                messages=messages,
                **self._tool_kwargs(tools),
            )
            if not resp.choices:
                raise UpstreamError(f"no response from LLM (model={model})")
            return _reply_from_message(resp.choices[0].message)

        return self._with_fallback(call, streaming=False)

    def stream_complete(
        self,
        messages: list[ChatMessage],
        tools: list[dict[str, Any]],
        on_token: TokenCallback,
    ) -> LLMReply:
        emitted = {"any": False}

        def call(model: str) -> LLMReply:
            stream = self._client.chat.completions.create(
                model=model,
                messages=messages,
                stream=True,
                **self._tool_kwargs(tools),
            )
            acc = _StreamAssembler()
            try:
                for chunk in stream:
                    if not chunk.choices:
                        continue
                    delta = getattr(chunk.choices[0], "delta", None)
                    if delta is None:
                        continue
                    content = getattr(delta, "content", None)
                    if content:
                        emitted["any"] = True
                        acc.content_parts.append(content)
                        on_token(content)
                    acc.feed_tool_calls(getattr(delta, "tool_calls", None))
            finally:
                _close_stream(stream)
            return acc.reply()

        return self._with_fallback(call, streaming=True, emitted=emitted)

    # ---- internals ----

    @staticmethod
    def _tool_kwargs(tools: list[dict[str, Any]]) -> dict[str, Any]:
        return {"tools": tools} if tools else {}

    def _with_fallback(
        self,
        call: Callable[[str], LLMReply],
        *,
        streaming: bool,
        emitted: dict[str, bool] | None = None,
    ) -> LLMReply:
        last_error: Exception | None = None
        now = time.monotonic()

        for model in self._models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            for attempt in range(self._max_retries + 1):
                t0 = time.monotonic()
                logger.info("LLM: model=%s attempt=%d stream=%s", model, attempt + 1, streaming)
                try:
                    reply = call(model)
                    logger.debug(
                        "LLM: done model=%s (%.2fs) tool_calls=%d",
                        model,
                        time.monotonic() - t0,
                        len(reply.tool_calls),
                    )
                    return reply
                except UpstreamError as e:
                    last_error = e
                    break
                except Exception as e:
                    last_error = e

                    if _is_auth_error(e):
                        raise UpstreamError(
                            "LLM authentication failed. Check your API key (MOMENTUM_LLM_API_KEY)."
                        ) from e

                    if emitted is not None and emitted.get("any"):
                        # Tokens already reached the caller; a replay would duplicate them.
                        raise UpstreamError(f"LLM stream interrupted: {e}") from e

                    if _is_not_found_error(e):
                        self._bad_models[model] = time.monotonic() + _BAD_MODEL_COOLDOWN_SECONDS
                        logger.info("LLM: model not available (404): %s", model)
                        break

                    if _is_transient(e) and attempt < self._max_retries:
                        delay = self._backoff_s * (2**attempt)
                        logger.info(
                            "LLM: transient %s on model=%s, retrying in %.1fs",
                            e.__class__.__name__,
                            model,
                            delay,
                        )
                        self._sleep(delay)
                        continue

                    logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                    break

        if last_error is not None:
            if _is_rate_limit_error(last_error):
                raise UpstreamError("LLM is rate-limited. Try again later.") from last_error
            if _is_connection_error(last_error):
                raise UpstreamError("LLM network/timeout error. Try again later or change models.") from last_error
            raise UpstreamError(f"All LLM models failed: {last_error}") from last_error

        raise UpstreamError("All LLM models failed (no model available).")
