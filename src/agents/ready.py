"""Pre-join check that the reasoning provider answers at all."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from src.core.llm import LLMProvider, ProviderError

logger = logging.getLogger(__name__)

READY_SYSTEM_PROMPT = "Reply with exactly the single word Ready."
READY_USER_PROMPT = "Ready?"
READY_TOKEN = "Ready"


class ReadyStatus(str, Enum):
    READY = "ready"      # Exact expected token
    WARNING = "warning"  # Answered, but with something else
    ERROR = "error"      # Call failed or timed out


@dataclass
class ReadyCheckResult:
    status: ReadyStatus
    response: str = ""
    error: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.status == ReadyStatus.READY


def classify_ready_response(content: str) -> ReadyStatus:
    text = content.strip()
    if text == READY_TOKEN:
        return ReadyStatus.READY
    if text:
        return ReadyStatus.WARNING
    return ReadyStatus.ERROR


async def check_ready(provider: LLMProvider, timeout: float = 15.0) -> ReadyCheckResult:
    """Send the fixed ready prompt and classify the literal reply."""
    messages = [
        {"role": "system", "content": READY_SYSTEM_PROMPT},
        {"role": "user", "content": READY_USER_PROMPT},
    ]
    try:
        response = await asyncio.wait_for(
            provider.complete(messages, temperature=0.0, max_tokens=5),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("Ready check timed out after %.1fs", timeout)
        return ReadyCheckResult(status=ReadyStatus.ERROR, error="timeout")
    except ProviderError as e:
        logger.warning("Ready check failed: %s", e)
        return ReadyCheckResult(status=ReadyStatus.ERROR, error=str(e))

    status = classify_ready_response(response.content)
    if status == ReadyStatus.ERROR:
        return ReadyCheckResult(status=status, response=response.content, error="empty response")
    return ReadyCheckResult(status=status, response=response.content.strip())
