"""Long-running operation polling.

Video backends (Veo, Sora) and graph backends (ComfyUI) return an operation
handle instead of a result. ``OperationPoller`` repeatedly GETs the
operation's status resource with a growing delay until the operation is
done, fails, or the attempt budget runs out:

    Submitted -> Polling -> ... -> Done | Failed | TimedOut

A non-2xx answer while polling is fatal; transient and permanent errors are
not told apart.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from promptcraft.schemas.generation import GenerationResult
from promptcraft.services.generation.errors import (
    GenerationTimeoutError,
    MalformedResponseError,
    OperationFailedError,
    RemoteError,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class PollPolicy:
    """Backoff shape: ``delay = min(delay * factor + increment, max_delay)``."""

    initial_delay: float = 10.0
    increment: float = 5.0
    factor: float = 1.0
    max_delay: float = 60.0
    max_attempts: int = 60
    log_every: int = 6

    def next_delay(self, delay: float) -> float:
        return min(delay * self.factor + self.increment, self.max_delay)


def done_flag(payload: dict[str, Any]) -> bool:
    """Google-style operations carry a boolean ``done``; absent means not done."""
    return payload.get("done") is True


def error_message(payload: dict[str, Any]) -> str | None:
    """Message of an embedded ``error`` object, or None when there is none."""
    error = payload.get("error")
    if not error:
        return None
    if isinstance(error, dict):
        return str(error.get("message") or "Generation failed")
    return str(error)


def first_match(payload: Any, paths: list[tuple[Any, ...]]) -> str | None:
    """Return the first non-empty string found along any of ``paths``.

    Each path is a tuple of dict keys / list indexes, e.g.
    ``("predictions", 0, "videoUri")``.
    """
    for path in paths:
        node = payload
        for step in path:
            if isinstance(step, int):
                node = node[step] if isinstance(node, list) and len(node) > step else None
            else:
                node = node.get(step) if isinstance(node, dict) else None
            if node is None:
                break
        if isinstance(node, str) and node:
            return node
    return None


class OperationPoller:
    """Polls one operation status resource until a terminal state."""

    def __init__(
        self,
        policy: PollPolicy,
        *,
        label: str = "operation",
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.policy = policy
        self.label = label
        self._sleep = sleep

    async def poll(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        extract: Callable[[dict[str, Any]], GenerationResult],
        headers: dict[str, str] | None = None,
        is_done: Callable[[dict[str, Any]], bool] = done_flag,
        get_error: Callable[[dict[str, Any]], str | None] = error_message,
    ) -> GenerationResult:
        """Poll ``url`` until done; return ``extract(payload)`` of the final payload.

        Raises:
            RemoteError: non-2xx status while polling.
            OperationFailedError: the finished operation carries an error.
            MalformedResponseError: non-JSON payload or no output location.
            GenerationTimeoutError: ``max_attempts`` polls without finishing.
        """
        delay = self.policy.initial_delay

        for attempt in range(1, self.policy.max_attempts + 1):
            await self._sleep(delay)

            response = await client.get(url, headers=headers)
            if not response.is_success:
                raise RemoteError(response.status_code, response.text, provider=self.label)

            try:
                payload = response.json()
            except ValueError as e:
                raise MalformedResponseError(f"{self.label} poll returned invalid JSON: {e}") from e
            if not isinstance(payload, dict):
                raise MalformedResponseError(f"{self.label} poll returned {type(payload).__name__}")

            if is_done(payload):
                message = get_error(payload)
                if message is not None:
                    raise OperationFailedError(message, provider=self.label)
                logger.info("%s finished after %d polls", self.label, attempt)
                return extract(payload)

            delay = self.policy.next_delay(delay)
            if attempt % self.policy.log_every == 0:
                logger.info("%s in progress... (attempt %d)", self.label, attempt)
            else:
                logger.debug("%s poll %d: not done, next delay %.1fs", self.label, attempt, delay)

        raise GenerationTimeoutError(
            f"{self.label} timed out after {self.policy.max_attempts} attempts"
        )
