"""
Thin wrapper around the Anthropic Messages API with an offline fallback.

Behaviour hierarchy:
1. If USE_OFFLINE_MODEL is set, return a deterministic placeholder built from
   the prompt without any external calls.
2. Otherwise call ``messages.create`` through the ``anthropic`` SDK with a
   bounded timeout and no retries, and return the first plain ``text`` block.

Timeouts, API errors and replies without a text block are all converted into
``RuntimeError`` so callers have a single error path.
"""

from __future__ import annotations

import hashlib
import json
import os
from typing import Any, Dict, List, Optional

import anthropic
import structlog

from healthrecord.metrics import AI_REQUESTS

logger = structlog.get_logger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5"
DEFAULT_TIMEOUT = 30.0


def _use_offline() -> bool:
    return os.getenv("USE_OFFLINE_MODEL", "").lower() in {"1", "true", "yes"}


def _timeout() -> float:
    raw = os.getenv("ANTHROPIC_TIMEOUT")
    if not raw:
        return DEFAULT_TIMEOUT
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable ANTHROPIC_TIMEOUT must be a number; got {raw!r}") from exc


def _deterministic_placeholder(messages: List[Dict[str, str]]) -> str:
    """Return a stable JSON array reply derived from the message content."""

    joined = "\n".join(f"{m.get('role')}:{m.get('content', '')}" for m in messages)
    h = hashlib.sha1(joined.encode("utf-8")).hexdigest()[:12]
    questions = [
        f"What should I watch for before my next appointment? (offline {h})",
        f"Are my current medications still the right fit? (offline {h})",
        f"Which of my symptoms should I track more closely? (offline {h})",
    ]
    return "```json\n" + json.dumps(questions) + "\n```"


def _extract_text(message: Any) -> str:
    """Return the first ``text`` block, skipping thinking blocks."""

    for block in getattr(message, "content", None) or []:
        if getattr(block, "type", None) == "text":
            return block.text
    raise RuntimeError("No text response from AI")


def call_anthropic(
    messages: List[Dict[str, str]],
    *,
    model: Optional[str] = None,
    max_tokens: int = 5000,
    temperature: float = 1.0,
    thinking_budget: Optional[int] = 3500,
    timeout: Optional[float] = None,
) -> str:
    """Send ``messages`` to the Messages API and return the reply text.

    Args:
        messages: Anthropic style ``{"role", "content"}`` dicts.
        model: Model name, defaults to ``ANTHROPIC_MODEL`` or claude-sonnet-4-5.
        max_tokens: Upper bound on generated tokens including thinking.
        temperature: Sampling temperature; must be 1.0 when thinking is on.
        thinking_budget: Extended thinking token budget, ``None`` disables it.
        timeout: Seconds to wait for the reply, defaults to ``ANTHROPIC_TIMEOUT``.
    Returns:
        The plain text content of the reply.
    Raises:
        RuntimeError on any failure to obtain a text reply.
    """

    if _use_offline():
        AI_REQUESTS.labels(outcome="offline").inc()
        return _deterministic_placeholder(messages)

    api_key = os.getenv("ANTHROPIC_API_KEY")
    if not api_key:
        AI_REQUESTS.labels(outcome="failure").inc()
        raise RuntimeError("ANTHROPIC_API_KEY is not configured")

    model_name = model or os.getenv("ANTHROPIC_MODEL", DEFAULT_MODEL)
    options: Dict[str, Any] = {}
    if thinking_budget:
        options["thinking"] = {"type": "enabled", "budget_tokens": thinking_budget}
    try:
        client = anthropic.Anthropic(
            api_key=api_key,
            timeout=timeout if timeout is not None else _timeout(),
            max_retries=0,
        )
        message = client.messages.create(
            model=model_name,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=messages,
            **options,
        )
        text = _extract_text(message)
    except anthropic.APITimeoutError as exc:
        AI_REQUESTS.labels(outcome="failure").inc()
        logger.warning("anthropic_timeout", model=model_name)
        raise RuntimeError(f"Request to Anthropic timed out: {exc}") from exc
    except (anthropic.APIError, RuntimeError) as exc:
        AI_REQUESTS.labels(outcome="failure").inc()
        logger.warning("anthropic_call_failed", model=model_name, error=str(exc))
        raise RuntimeError(f"Error calling Anthropic: {exc}") from exc
    AI_REQUESTS.labels(outcome="success").inc()
    return text


__all__ = ["call_anthropic", "DEFAULT_MODEL", "DEFAULT_TIMEOUT"]
