"""
Credential pool with round-robin rotation and validity tracking.
"""
from .models import CredentialRecord, KeyPoolState, KeyStatus
from .store import InMemoryKeyPoolStore, KeyPoolStore, RedisKeyPoolStore
from .pool import KeyPool

__all__ = [
    "CredentialRecord",
    "KeyPoolState",
    "KeyStatus",
    "KeyPoolStore",
    "InMemoryKeyPoolStore",
    "RedisKeyPoolStore",
    "KeyPool",
]
