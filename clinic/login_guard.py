"""Sliding-window lockout for repeated failed logins.

Attempts are persisted in the ``LoginAttempts`` collection as
``{username, success, timestamp}`` entries (timestamps in epoch
milliseconds). Failures older than the window are expired on every write and
ignored on every read. Trimming keeps the newest ``MAX_FAILED_ATTEMPTS``
failures *per username*, so one account's failures never evict another's.
"""
from __future__ import annotations

import logging
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from . import store

logger = logging.getLogger(__name__)

LOCKOUT_WINDOW_SECONDS = 5 * 60
MAX_FAILED_ATTEMPTS = 3


def _now_millis(now: Optional[float]) -> int:
    return int((time.time() if now is None else now) * 1000)


def _is_recent(attempt: Dict[str, Any], now_ms: int) -> bool:
    timestamp = attempt.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return False
    return timestamp > now_ms - LOCKOUT_WINDOW_SECONDS * 1000


def _recent_attempts(now_ms: int) -> List[Dict[str, Any]]:
    return [attempt for attempt in store.list_records(store.LOGIN_ATTEMPTS) if _is_recent(attempt, now_ms)]


def _user_failures(attempts: List[Dict[str, Any]], username: str) -> List[Dict[str, Any]]:
    return [attempt for attempt in attempts if attempt.get("username") == username and not attempt.get("success")]


def _append_failure(attempts: List[Dict[str, Any]], username: str, now_ms: int) -> List[Dict[str, Any]]:
    attempts.append({"username": username, "success": False, "timestamp": now_ms})
    per_user: Dict[str, Deque[Dict[str, Any]]] = {}
    for attempt in attempts:
        key = str(attempt.get("username"))
        per_user.setdefault(key, deque(maxlen=MAX_FAILED_ATTEMPTS)).append(attempt)
    survivors = {id(attempt) for bucket in per_user.values() for attempt in bucket}
    return [attempt for attempt in attempts if id(attempt) in survivors]


def record_attempt(username: str, success: bool, now: Optional[float] = None) -> None:
    """Persist a login attempt; a success clears the user's failure history."""
    now_ms = _now_millis(now)
    with store.locked():
        attempts = _recent_attempts(now_ms)
        if success:
            kept = [attempt for attempt in attempts if attempt.get("username") != username]
        else:
            kept = _append_failure(attempts, username, now_ms)
        store.replace_collection(store.LOGIN_ATTEMPTS, kept)
    if not success:
        logger.warning("Failed login attempt for %s", username)


def reserve_attempt(username: str, now: Optional[float] = None) -> bool:
    """Atomically check the lock and count this attempt as a failure.

    Returns False, recording nothing, when ``username`` is locked. The check
    and the write share one store lock, and a later successful
    ``record_attempt`` clears the reserved failure.
    """
    now_ms = _now_millis(now)
    with store.locked():
        if is_locked(username, now=now_ms / 1000):
            return False
        store.replace_collection(store.LOGIN_ATTEMPTS, _append_failure(_recent_attempts(now_ms), username, now_ms))
    return True


def failed_attempts(username: str, now: Optional[float] = None) -> int:
    return len(_user_failures(_recent_attempts(_now_millis(now)), username))


def is_locked(username: str, now: Optional[float] = None) -> bool:
    attempts = _recent_attempts(_now_millis(now))
    if len(attempts) < MAX_FAILED_ATTEMPTS:
        return False
    return len(_user_failures(attempts, username)) >= MAX_FAILED_ATTEMPTS


def lockout_remaining_seconds(username: str, now: Optional[float] = None) -> int:
    """Seconds until enough failures expire for ``username`` to log in again."""
    now_ms = _now_millis(now)
    failures = _user_failures(_recent_attempts(now_ms), username)
    if len(failures) < MAX_FAILED_ATTEMPTS:
        return 0
    timestamps = sorted(attempt["timestamp"] for attempt in failures)
    unlock_at = timestamps[-MAX_FAILED_ATTEMPTS] + LOCKOUT_WINDOW_SECONDS * 1000
    return max(0, -(-(unlock_at - now_ms) // 1000))
