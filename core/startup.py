"""
core/startup.py -- Startup grace window for transient store connection errors.

A freshly started process often comes up before its database does (container
ordering, a managed database waking from idle). Those first connection errors
are expected and must not page anyone. StartupGrace decides how loudly a
connection failure is reported: INFO inside the window, ERROR after it.

The process never crashes on a store that is unavailable at startup; the
store creates its schema lazily on first successful use.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

logger = logging.getLogger("credguard.startup")


class StartupGrace:
    """Tracks elapsed time since process start against a grace window.

    The clock is injectable so tests can move time without sleeping.
    """

    def __init__(self, grace_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.grace_seconds = grace_seconds
        self._clock = clock
        self._started = clock()

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    @property
    def active(self) -> bool:
        """True while connection failures should be suppressed from alerting."""
        return self.elapsed < self.grace_seconds

    def report(self, what: str, exc: BaseException) -> None:
        """Log a connection failure at the level the grace window allows."""
        if self.active:
            logger.info("%s unavailable %.1fs after start (within grace window): %s", what, self.elapsed, exc)
        else:
            logger.error("%s unavailable %.1fs after start: %s", what, self.elapsed, exc)


def wait_for(
    check: Callable[[], object],
    what: str,
    grace: StartupGrace,
    attempts: int,
    delay: float,
    retry_on: tuple[type[BaseException], ...],
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Call check() until it succeeds or attempts run out.

    Returns True once check() returns without raising one of retry_on,
    False if every attempt failed. Exceptions outside retry_on propagate.
    """
    for attempt in range(1, attempts + 1):
        try:
            check()
            return True
        except retry_on as exc:
            grace.report(what, exc)
            if attempt < attempts:
                sleep(delay)
    logger.warning("%s still unavailable after %d attempt(s); continuing startup", what, attempts)
    return False
