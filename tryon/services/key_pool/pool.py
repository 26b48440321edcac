"""
Rotating credential pool with failure-based invalidation.

Each write loads the state from the store, decides, and saves it back while
holding the store lock, so pools sharing one store (threads, or workers on the
same redis key) never pick a credential from a stale cursor.
"""
import copy
import logging
import threading
from typing import Iterable

from tryon.core.errors import NoAvailableKey
from tryon.core.logging import mask_key
from tryon.services.key_pool.models import CredentialRecord, KeyPoolState, KeyStatus
from tryon.services.key_pool.store import InMemoryKeyPoolStore, KeyPoolStore
from tryon.utils.metrics import key_pool_invalidations_total

logger = logging.getLogger(__name__)


class KeyPool:
    """Round-robin over credentials that are not invalid."""

    def __init__(self, store: KeyPoolStore, name: str = "default") -> None:
        self.store = store
        self.name = name
        self._lock = threading.RLock()

    @classmethod
    def from_values(cls, values: Iterable[str], name: str = "default") -> "KeyPool":
        """Pool over an in-memory store seeded with the given credentials."""
        pool = cls(InMemoryKeyPoolStore(), name=name)
        pool.seed(CredentialRecord(value=v) for v in values)
        return pool

    def seed(self, records: Iterable[CredentialRecord]) -> int:
        """
        Add configured records the store does not know yet, keeping their status.
        Records already in the store keep the persisted status and cursor.
        """
        added = 0
        with self._lock, self.store.lock():
            state = self.store.load()
            for record in records:
                value = (record.value or "").strip()
                if not value or state.index_of(value) != -1:
                    continue
                state.records.append(CredentialRecord(value=value, status=record.status))
                added += 1
            if added:
                self.store.save(state)
        return added

    def acquire_next(self) -> CredentialRecord:
        """
        Return the next usable record after the cursor and move the cursor to it.

        Raises:
            NoAvailableKey: pool is empty or every record is invalid
        """
        with self._lock, self.store.lock():
            state = self.store.load()
            size = len(state.records)
            if size == 0:
                raise NoAvailableKey("Key pool is empty", detail={"pool": self.name})

            start = 0 if state.cursor is None else (state.cursor + 1) % size
            for offset in range(size):
                idx = (start + offset) % size
                record = state.records[idx]
                if record.usable:
                    state.cursor = idx
                    self.store.save(state)
                    logger.debug(
                        "key_pool_acquired",
                        extra={"provider": self.name, "cursor": idx, "key_hint": mask_key(record.value)},
                    )
                    return copy.copy(record)

            raise NoAvailableKey(
                "All keys in pool are invalid",
                detail={"pool": self.name, "size": size},
            )

    def report_valid(self, value: str) -> None:
        self._set_status(value, KeyStatus.VALID)

    def report_invalid(self, value: str) -> None:
        if self._set_status(value, KeyStatus.INVALID):
            key_pool_invalidations_total.labels(pool=self.name).inc()
            logger.warning(
                "key_pool_key_invalidated",
                extra={"provider": self.name, "key_hint": mask_key(value)},
            )

    def reset(self, value: str) -> None:
        """Bring a record back into rotation with unknown status."""
        self._set_status(value, KeyStatus.UNKNOWN)

    def _set_status(self, value: str, status: KeyStatus) -> bool:
        with self._lock, self.store.lock():
            state = self.store.load()
            idx = state.index_of(value)
            if idx == -1:
                return False
            state.records[idx].status = status
            self.store.save(state)
            return True

    def add(self, value: str) -> bool:
        """Append a credential with unknown status. Returns False for blanks and duplicates."""
        value = (value or "").strip()
        if not value:
            return False
        with self._lock, self.store.lock():
            state = self.store.load()
            if state.index_of(value) != -1:
                return False
            state.records.append(CredentialRecord(value=value))
            self.store.save(state)
            return True

    def remove(self, value: str) -> bool:
        """Drop a credential; the cursor keeps pointing at the same record, or is unset."""
        with self._lock, self.store.lock():
            state = self.store.load()
            idx = state.index_of(value)
            if idx == -1:
                return False
            del state.records[idx]
            if state.cursor is not None:
                if state.cursor == idx:
                    # rotation resumes at the record that followed the removed one
                    state.cursor = idx - 1 if idx > 0 else None
                elif state.cursor > idx:
                    state.cursor -= 1
            self.store.save(state)
            return True

    def records(self) -> list[CredentialRecord]:
        with self._lock:
            return [copy.copy(r) for r in self.store.load().records]

    def state(self) -> KeyPoolState:
        with self._lock:
            return self.store.load()

    def has_usable(self) -> bool:
        with self._lock:
            return any(r.usable for r in self.store.load().records)

    def __len__(self) -> int:
        return len(self.records())
