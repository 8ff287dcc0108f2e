"""Inter-call pacing for Apple Music API requests.

The API rate limit is respected by spacing out sequential calls. Anything
with a `wait()` method can stand in for FixedDelayPacer (e.g. a token
bucket) without touching the resolver or the coordinator.
"""

import time
from typing import Callable, Protocol

DEFAULT_REQUEST_DELAY = 0.1  # seconds between remote calls


class Pacer(Protocol):
    def wait(self) -> None:
        """Block until the next remote call may be made."""


class FixedDelayPacer:
    """Sleep a fixed interval before every call except the first."""

    def __init__(self, delay: float = DEFAULT_REQUEST_DELAY, sleep: Callable[[float], None] = time.sleep):
        self.delay = delay
        self._sleep = sleep
        self._primed = False

    def wait(self) -> None:
        if self._primed and self.delay > 0:
            self._sleep(self.delay)
        self._primed = True


class NoPacing:
    def wait(self) -> None:
        pass
