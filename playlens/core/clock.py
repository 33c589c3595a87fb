"""
Logical clock driven by the host's per-frame tick
"""
import math


class GameClock:
    """
    Elapsed seconds since construction, advanced only by ``tick``.

    Components receive ``clock.now`` as their time source, so a whole
    pipeline can be replayed deterministically.
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def tick(self, delta_seconds: float) -> float:
        try:
            delta = float(delta_seconds)
        except (TypeError, ValueError):
            return self._now

        if delta > 0 and not math.isinf(delta):
            self._now += delta
        return self._now

    def now(self) -> float:
        return self._now
