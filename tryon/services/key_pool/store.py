"""
Persistence collaborators for the key pool.
The whole state (records + cursor) is written as one document so the two never diverge.
Each store also hands out the lock that serializes load-decide-save across every
KeyPool sharing it.
"""
import copy
import json
import logging
import threading
from typing import ContextManager, Protocol

import redis

from tryon.core.config import settings
from tryon.services.key_pool.models import KeyPoolState

logger = logging.getLogger(__name__)


class KeyPoolStore(Protocol):
    def load(self) -> KeyPoolState:
        ...

    def save(self, state: KeyPoolState) -> None:
        ...

    def lock(self) -> ContextManager:
        ...


class InMemoryKeyPoolStore:
    """Process-local store; used for single-key providers and in tests."""

    def __init__(self, state: KeyPoolState | None = None) -> None:
        self._state = copy.deepcopy(state) if state else KeyPoolState()
        self._lock = threading.RLock()
        self.saves = 0

    def load(self) -> KeyPoolState:
        return copy.deepcopy(self._state)

    def save(self, state: KeyPoolState) -> None:
        self._state = copy.deepcopy(state)
        self.saves += 1

    def lock(self) -> ContextManager:
        return self._lock


class RedisKeyPoolStore:
    """
    Redis-backed store: one JSON document per pool under "<prefix>:<name>".
    Shared by every worker that uses the same pool name; writers serialize on
    a redis lock at "<prefix>:<name>:lock".
    """

    def __init__(self, name: str, client: redis.Redis | None = None) -> None:
        self.client = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self._key = f"{settings.key_pool_redis_prefix}:{name}"

    def load(self) -> KeyPoolState:
        raw = self.client.get(self._key)
        if not raw:
            return KeyPoolState()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("key_pool_state_corrupt", extra={"error": self._key})
            return KeyPoolState()
        return KeyPoolState.from_dict(data if isinstance(data, dict) else None)

    def save(self, state: KeyPoolState) -> None:
        self.client.set(self._key, json.dumps(state.to_dict(), ensure_ascii=False))

    def lock(self) -> ContextManager:
        """
        Raises:
            redis.exceptions.LockError: lock not acquired within key_pool_lock_wait
        """
        return self.client.lock(
            f"{self._key}:lock",
            timeout=settings.key_pool_lock_timeout,
            blocking_timeout=settings.key_pool_lock_wait,
        )

    def clear(self) -> None:
        self.client.delete(self._key)
