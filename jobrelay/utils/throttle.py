from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Callable


class DomainThrottle:
    def __init__(
        self,
        delay_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.delay_seconds = delay_seconds
        self.clock = clock
        self.sleep = sleep
        self.last_called: dict[str, float] = defaultdict(lambda: float("-inf"))
        self._lock = threading.Lock()

    def wait(self, domain: str) -> None:
        with self._lock:
            elapsed = self.clock() - self.last_called[domain]
            to_sleep = self.delay_seconds - elapsed
            if to_sleep > 0:
                self.sleep(to_sleep)
            self.last_called[domain] = self.clock()
