from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable

from fastapi import HTTPException, Request, status

from . import config


class RateLimiter:
    """Sliding-window rate limiter keyed by an arbitrary string (one timestamp log per key)."""

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._events: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._ultima_pulizia = clock()

    def _pulisci(self, key: str, now: float) -> deque[float] | None:
        events = self._events.get(key)
        if events is None:
            return None
        threshold = now - self.window_seconds
        while events and events[0] <= threshold:
            events.popleft()
        if not events:
            del self._events[key]
            return None
        return events

    def _pulisci_tutti(self, now: float) -> None:
        # chiavi inattive da più di una finestra
        if now - self._ultima_pulizia < self.window_seconds:
            return
        for key in list(self._events):
            self._pulisci(key, now)
        self._ultima_pulizia = now

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            self._pulisci_tutti(now)
            events = self._pulisci(key, now)
            if events is not None and len(events) >= self.limit:
                return False
            self._events.setdefault(key, deque()).append(now)
            return True

    def retry_after(self, key: str) -> float:
        now = self._clock()
        with self._lock:
            events = self._pulisci(key, now)
            if events is None or len(events) < self.limit:
                return 0.0
            return max(0.0, self.window_seconds - (now - events[0]))

    def chiavi_attive(self) -> int:
        with self._lock:
            return len(self._events)

    def reset(self, key: str) -> None:
        with self._lock:
            self._events.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


limitatore_pubblico = RateLimiter(config.PUBLIC_RATE_LIMIT, 60)


def _client_ip(request: Request) -> str:
    if config.TRUST_PROXY:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def limite_pubblico(request: Request) -> None:
    """Dependency FastAPI per le rotte pubbliche (check-in, stato paziente, info clinica)."""
    ip = _client_ip(request)
    if limitatore_pubblico.allow(ip):
        return
    retry = limitatore_pubblico.retry_after(ip)
    headers = {"Retry-After": str(int(math.ceil(retry)))} if retry else None
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={"code": "RATE_LIMITED", "message": "Too many requests, please try again later"},
        headers=headers,
    )
