from __future__ import annotations

import threading
import time
from typing import Callable


RateKey = tuple[str, str]


def _now_ms() -> float:
    return time.monotonic() * 1000.0


class RateWindowStore:
    """Timestamp lists keyed by (user_id, action_kind).

    Each key owns its own lock; callers touching different keys never contend.
    Idle keys are not swept, their lists are pruned on the next access.
    """

    def __init__(self) -> None:
        self._windows: dict[RateKey, list[float]] = {}
        self._locks: dict[RateKey, threading.Lock] = {}

    def lock_for(self, key: RateKey) -> threading.Lock:
        # dict.setdefault is atomic, so two first callers end up sharing one lock.
        return self._locks.setdefault(key, threading.Lock())

    def window(self, key: RateKey) -> list[float]:
        return self._windows.setdefault(key, [])

    def replace(self, key: RateKey, timestamps: list[float]) -> None:
        self._windows[key] = timestamps

    def size(self, key: RateKey) -> int:
        return len(self._windows.get(key, []))


class RateLimiter:
    def __init__(self, store: RateWindowStore | None = None, clock: Callable[[], float] = _now_ms) -> None:
        self.store = store or RateWindowStore()
        self._clock = clock

    def allow(self, user_id: str, action_kind: str, max_count: int, window_ms: float) -> bool:
        key = (str(user_id), str(action_kind))
        with self.store.lock_for(key):
            now = self._clock()
            valid = [stamp for stamp in self.store.window(key) if now - stamp < window_ms]
            self.store.replace(key, valid)
            if len(valid) >= max_count:
                return False
            valid.append(now)
            return True


ACTION_LIMITS: dict[str, tuple[int, int]] = {
    "symptom_check": (5, 60 * 60 * 1000),
    "chat_message": (20, 60 * 1000),
}
