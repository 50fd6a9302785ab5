import threading
import time
from collections import deque
from collections.abc import Callable


class RequestThrottle:
    """Sliding-window limiter for requests that reach another player.

    Keys are built from the game (or room) and the requesting identity, so a
    player spamming tie offers in one game does not affect their other games.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(kind: str, scope: str, identity: str) -> str:
        return f"{kind}:{scope}:{identity or 'unknown'}"

    def retry_after(self, key: str, *, limit: int, window_seconds: float) -> float:
        """Record one hit for ``key``; return 0 when allowed, else seconds to wait.

        Rejected hits are not recorded, so a throttled sender recovers as soon
        as the oldest accepted hit leaves the window.
        """
        now = self._clock()
        horizon = now - window_seconds
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= horizon:
                hits.popleft()
            if len(hits) >= max(1, limit):
                return max(0.0, hits[0] - horizon)
            hits.append(now)
            return 0.0

    def prune(self, window_seconds: float) -> None:
        horizon = self._clock() - window_seconds
        with self._lock:
            for key in [key for key, hits in self._hits.items() if not hits or hits[-1] <= horizon]:
                del self._hits[key]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


throttle = RequestThrottle()
