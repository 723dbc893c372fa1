"""Foreground/background signal from the host environment.

The host calls `notify()` whenever the client becomes visible again. On POSIX
terminals `install_sigcont_handler` maps SIGCONT (job resumed with `fg`) onto
the same signal.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable

from loguru import logger


class ForegroundSubscription:
    """Handle returned by ForegroundSignal.subscribe."""

    def __init__(self, owner: ForegroundSignal, callback: Callable[[], None]) -> None:
        self._owner = owner
        self.callback = callback

    def remove(self) -> None:
        self._owner._remove(self)


class ForegroundSignal:
    """Fan-out of foreground transitions to subscribed observers."""

    def __init__(self) -> None:
        self._subscriptions: list[ForegroundSubscription] = []

    @property
    def observer_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, callback: Callable[[], None]) -> ForegroundSubscription:
        subscription = ForegroundSubscription(self, callback)
        self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: ForegroundSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def notify(self) -> None:
        logger.debug("Foreground transition ({} observers)", len(self._subscriptions))
        for subscription in list(self._subscriptions):
            subscription.callback()


def install_sigcont_handler(foreground: ForegroundSignal, loop: asyncio.AbstractEventLoop) -> bool:
    """Route SIGCONT into `foreground`. Returns False where unsupported."""
    sigcont = getattr(signal, "SIGCONT", None)
    if sigcont is None:
        return False
    try:
        loop.add_signal_handler(sigcont, foreground.notify)
    except (NotImplementedError, RuntimeError) as e:
        logger.debug("SIGCONT handler unavailable: {}", e)
        return False
    logger.debug("Installed SIGCONT foreground handler")
    return True
