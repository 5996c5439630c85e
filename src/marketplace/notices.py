"""One-shot notices carried across a redirect-after-post."""

import secrets
import threading
import time
from typing import Callable, Dict, Optional, Tuple


class NoticeStore:
    """Short-lived server-side messages keyed by an opaque token.

    ``push`` stores a message and returns the token to put in the redirect
    URL; ``pop`` returns the message once and forgets it. Expired entries are
    dropped lazily on every access.
    """

    def __init__(self, ttl_seconds: int = 60, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._notices: Dict[str, Tuple[str, float]] = {}

    def push(self, message: str) -> str:
        token = secrets.token_urlsafe(16)
        with self._lock:
            self._purge()
            self._notices[token] = (message, self._clock() + self.ttl_seconds)
        return token

    def pop(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        with self._lock:
            self._purge()
            entry = self._notices.pop(token, None)
        return entry[0] if entry else None

    def __len__(self) -> int:
        with self._lock:
            self._purge()
            return len(self._notices)

    def _purge(self) -> None:
        now = self._clock()
        expired = [token for token, (_, expires) in self._notices.items() if expires <= now]
        for token in expired:
            del self._notices[token]
