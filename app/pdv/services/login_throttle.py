from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Protocol


class LoginAttemptStore(Protocol):
    def is_locked(self, username: str) -> bool: ...

    def register_failure(self, username: str) -> int: ...

    def reset(self, username: str) -> None: ...


@dataclass
class _Attempts:
    count: int
    first_attempt_at: datetime


class InMemoryLoginAttemptStore:
    """Counts failed logins per username inside a sliding window.

    The window starts at the first failure and is forgotten once it expires or
    the user logs in successfully.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        window: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.max_attempts = max_attempts
        self.window = window
        self.clock = clock
        self._attempts: dict[str, _Attempts] = {}
        self._lock = threading.Lock()

    def _current(self, username: str) -> _Attempts | None:
        attempts = self._attempts.get(username)
        if attempts is None:
            return None
        if self.clock() - attempts.first_attempt_at > self.window:
            del self._attempts[username]
            return None
        return attempts

    def is_locked(self, username: str) -> bool:
        with self._lock:
            attempts = self._current(username)
            return attempts is not None and attempts.count >= self.max_attempts

    def register_failure(self, username: str) -> int:
        with self._lock:
            attempts = self._current(username)
            if attempts is None:
                attempts = _Attempts(count=0, first_attempt_at=self.clock())
                self._attempts[username] = attempts
            attempts.count += 1
            return attempts.count

    def reset(self, username: str) -> None:
        with self._lock:
            self._attempts.pop(username, None)
