"""
EffectDispatcher -- executes the side effects a committed transition asks for.

Responsibility:
    The workflow service returns ``TransitionOutcome.effects`` without
    performing them.  Once the caller's transaction has committed, the
    dispatcher hands each effect to the matching sink: notifications to a
    ``NotificationSink``, stale cache keys to a ``CacheInvalidationSink``.

Architecture position:
    Services -- outside the kernel.  The API schedules ``dispatch`` as a
    background task after the request's session has committed.

Invariants enforced:
    - A failing sink never propagates: the failure is logged with its
      traceback and the remaining effects still run.
    - Effects are dispatched in the order the transition returned them.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from acge_kernel.domain.effects import Effect, InvalidateCacheEffect, NotifyEffect
from acge_kernel.logging_config import get_logger

logger = get_logger("services.effects")


@runtime_checkable
class NotificationSink(Protocol):
    """Receives one structured event for asynchronous fan-out."""

    def notify(self, event_type: str, payload: dict[str, Any]) -> None: ...


@runtime_checkable
class CacheInvalidationSink(Protocol):
    """Marks cache keys as stale."""

    def invalidate(self, keys: tuple[str, ...]) -> None: ...


class LoggingNotificationSink:
    """Default sink: records the event in the structured log."""

    def notify(self, event_type: str, payload: dict[str, Any]) -> None:
        logger.info(
            "notification_emitted",
            extra={"event_type": event_type, "payload": payload},
        )


class LoggingCacheInvalidationSink:
    """Default sink: records the stale keys in the structured log."""

    def invalidate(self, keys: tuple[str, ...]) -> None:
        logger.info("cache_invalidated", extra={"keys": list(keys)})


@dataclass(frozen=True)
class DispatchReport:
    """What happened to each effect of one dispatch call."""

    delivered: int
    failed: int

    @property
    def ok(self) -> bool:
        return self.failed == 0


class EffectDispatcher:
    """Runs transition effects against the configured sinks."""

    def __init__(
        self,
        notifications: NotificationSink | None = None,
        cache: CacheInvalidationSink | None = None,
    ):
        self._notifications = notifications or LoggingNotificationSink()
        self._cache = cache or LoggingCacheInvalidationSink()

    def _deliver(self, effect: Effect) -> None:
        if isinstance(effect, NotifyEffect):
            self._notifications.notify(effect.event_type, dict(effect.payload))
        elif isinstance(effect, InvalidateCacheEffect):
            self._cache.invalidate(effect.keys)
        else:
            raise TypeError(f"Unsupported effect: {type(effect).__name__}")

    def dispatch(self, effects: Iterable[Effect]) -> DispatchReport:
        """Deliver every effect; failures are logged, never raised."""
        delivered = failed = 0
        for effect in effects:
            try:
                self._deliver(effect)
            except Exception:
                failed += 1
                logger.warning(
                    "effect_dispatch_failed",
                    extra={"effect_type": type(effect).__name__},
                    exc_info=True,
                )
            else:
                delivered += 1

        if failed:
            logger.warning(
                "effects_dispatched_with_failures",
                extra={"delivered": delivered, "failed": failed},
            )
        return DispatchReport(delivered=delivered, failed=failed)
