"""Ordered provider fallback.

Providers are tried in sequence; the first success wins and every
failure (including a timeout) is kept for diagnostics.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from perdia.errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = TypeVar("P")


@dataclass(frozen=True)
class ProviderResult(Generic[T]):
    """Outcome of one provider call: either a value or an error."""

    provider: str
    value: T | None = None
    error: ProviderError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FallbackOutcome(Generic[T]):
    value: T | None = None
    provider: str | None = None
    errors: list[ProviderError] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.provider is not None


def provider_name(provider: object) -> str:
    return getattr(provider, "name", type(provider).__name__)


async def call_provider(
    provider: P,
    call: Callable[[P], Awaitable[T]],
    *,
    timeout: float | None = None,
) -> ProviderResult[T]:
    """Run one provider call, converting any failure into an error result."""
    name = provider_name(provider)
    try:
        value = await asyncio.wait_for(call(provider), timeout)
    except Exception as exc:  # noqa: BLE001 - every provider failure triggers fallback
        if isinstance(exc, asyncio.TimeoutError):
            exc = TimeoutError(f"{name} timed out after {timeout}s")
        return ProviderResult(name, error=ProviderError(name, exc))
    return ProviderResult(name, value=value)


async def try_in_order(
    providers: Sequence[P],
    call: Callable[[P], Awaitable[T]],
    *,
    timeout: float | None = None,
    label: str = "provider",
) -> FallbackOutcome[T]:
    """Fold over ``providers``, stopping at the first success."""
    outcome: FallbackOutcome[T] = FallbackOutcome()
    for provider in providers:
        result = await call_provider(provider, call, timeout=timeout)
        if result.ok:
            outcome.value = result.value
            outcome.provider = result.provider
            return outcome
        logger.warning("%s %s failed: %s", label, result.provider, result.error.cause)
        outcome.errors.append(result.error)
    return outcome
