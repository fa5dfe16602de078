"""Shared plumbing for outbound channel senders."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChannelError(Exception):
    """A provider rejected or failed a send."""


class TransientChannelError(ChannelError):
    """Network error, timeout or 5xx: worth retrying."""


class ChannelNotConfigured(ChannelError):
    """Missing token/instance/api key; the channel is not attempted."""


@dataclass
class ChannelResult:
    channel: str
    success: bool
    message_id: str | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"channel": self.channel, "success": self.success}
        if self.message_id:
            out["message_id"] = self.message_id
        if self.error:
            out["error"] = self.error
        return out


class ChannelSender(Protocol):
    channel: str

    def send(self, address: str, message: str, **context: Any) -> str: ...


def make_http_client() -> httpx.Client:
    return httpx.Client(timeout=settings.provider_timeout_seconds)


def post_json(client: httpx.Client, url: str, payload: dict, headers: dict[str, str] | None = None) -> dict:
    """POST JSON and return the decoded object, classifying failures."""
    try:
        response = client.post(url, json=payload, headers=headers)
    except httpx.TransportError as exc:
        raise TransientChannelError(f"{type(exc).__name__}: {exc}") from exc
    if response.status_code >= 500:
        raise TransientChannelError(f"HTTP {response.status_code} from provider")
    try:
        data = response.json()
    except ValueError as exc:
        raise ChannelError(f"Invalid JSON response (HTTP {response.status_code})") from exc
    return data if isinstance(data, dict) else {}


def with_retry(
    fn: Callable[[], T],
    *,
    attempts: int | None = None,
    base_delay: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` up to ``attempts`` times, doubling the delay after each transient failure."""
    attempts = attempts or settings.provider_max_attempts
    delay = settings.provider_backoff_seconds if base_delay is None else base_delay
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except TransientChannelError as exc:
            if attempt == attempts:
                raise
            logger.warning("Transient provider error (attempt %d/%d): %s", attempt, attempts, exc)
            sleep(delay)
            delay *= 2
    raise AssertionError("unreachable")
