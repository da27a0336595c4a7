"""Unordered user-pair keys and per-pair mutual exclusion.

Both room creation paths (first intro message, accepted connection) and the
intro send check run under the pair's lock, so interleaved awaits cannot
produce a duplicate intro room, a double credit grant or a second intro
message.
"""
import asyncio
import weakref
from typing import Tuple

from app.errors import InvalidOperation


def ordered_pair(user_a: str, user_b: str) -> Tuple[str, str]:
    if user_a == user_b:
        raise InvalidOperation("A room needs two distinct participants.")
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


def pair_key(user_a: str, user_b: str) -> str:
    """Canonical key for an unordered pair: the sorted IDs joined by ':'."""
    first, second = ordered_pair(user_a, user_b)
    return f"{first}:{second}"


class PairLocks:
    """Registry of ``asyncio.Lock`` objects keyed by unordered pair.

    Locks are held weakly: an entry lives only while some coroutine holds or
    waits on it.
    """

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def lock(self, user_a: str, user_b: str) -> asyncio.Lock:
        key = pair_key(user_a, user_b)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
