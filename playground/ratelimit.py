import time
from collections.abc import Callable


class RateLimiter:
    """Sliding-window request counter keyed by client."""

    def __init__(
        self,
        max_requests: int = 100,
        window_sec: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_sec = window_sec
        self._clock = clock
        self._hits: dict[str, list[float]] = {}
        self._last_sweep = clock()

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)

    def check(self, key: str) -> bool:
        """Record a hit for ``key``; False if it is over the limit."""
        now = self._clock()
        self._sweep(now)
        hits = [t for t in self._hits.get(key, []) if now - t < self.window_sec]

        if len(hits) >= self.max_requests:
            self._hits[key] = hits
            return False

        hits.append(now)
        self._hits[key] = hits
        return True

    def _sweep(self, now: float) -> None:
        # Once per window, forget clients with no hit left inside it.
        if now - self._last_sweep < self.window_sec:
            return
        self._last_sweep = now
        stale = [key for key, hits in self._hits.items() if not hits or now - hits[-1] >= self.window_sec]
        for key in stale:
            del self._hits[key]

    def reset(self) -> None:
        self._hits.clear()


def client_ip(headers, fallback: str | None, trust_forwarded: bool = False) -> str:
    """Identify the client.

    ``X-Forwarded-For`` is set by whoever sends the request, so it is only
    used when a trusted proxy in front of the app is known to overwrite it.
    """
    if trust_forwarded:
        forwarded = headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return fallback or "-"
