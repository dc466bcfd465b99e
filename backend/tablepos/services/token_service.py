# Overview: One-time, time-boxed tokens protecting the public order form.

"""
One-Time Token Store

WHY: The customer order form is unauthenticated. A token issued with the form
and consumed on submit makes replayed or forged submissions fail.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes, hex encoded)
- Absolute expiry fixed at issue time (default 30 minutes)
- Exactly-once redemption: check and delete happen under one lock, so of
  any number of concurrent consume() calls for a token only one wins
- Expired tokens are rejected by consume() itself; the periodic sweep only
  reclaims memory
"""

from __future__ import annotations

import secrets
import threading
import time
from datetime import timedelta


DEFAULT_TOKEN_TTL = timedelta(minutes=30)


class OneTimeTokenStore:
    def __init__(self, ttl=DEFAULT_TOKEN_TTL, clock=time.monotonic):
        self._ttl = ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens: dict[str, float] = {}

    def issue(self) -> str:
        """
        Generate and register a new token.

        WHY secrets.token_hex: Cryptographically secure PRNG.
        """
        token = secrets.token_hex(32)
        expires_at = self._clock() + self._ttl
        with self._lock:
            self._tokens[token] = expires_at
        return token

    def consume(self, token: str | None) -> bool:
        """
        Redeem a token.

        Returns True exactly once per issued, unexpired token; False for
        unknown, expired or already consumed tokens.
        """
        if not token:
            return False
        with self._lock:
            expires_at = self._tokens.pop(token, None)
            if expires_at is None:
                return False
            return self._clock() < expires_at

    def sweep(self) -> int:
        """Delete expired, unconsumed tokens. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [token for token, expires_at in self._tokens.items() if expires_at <= now]
            for token in expired:
                del self._tokens[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
