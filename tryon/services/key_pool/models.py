"""
Credential records and the persisted pool state.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class KeyStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"


@dataclass
class CredentialRecord:
    value: str
    status: KeyStatus = KeyStatus.UNKNOWN

    @property
    def usable(self) -> bool:
        return self.status != KeyStatus.INVALID


# Persisted form of "no record returned yet"
NO_CURSOR = -1


@dataclass
class KeyPoolState:
    """
    Records in insertion order plus the index of the last returned record.
    cursor is None until the first acquire.
    """
    records: list[CredentialRecord] = field(default_factory=list)
    cursor: int | None = None

    def index_of(self, value: str) -> int:
        for i, record in enumerate(self.records):
            if record.value == value:
                return i
        return -1

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiKeys": [
                {"key": r.value, "status": r.status.value} for r in self.records
            ],
            "lastUsedApiKeyIndex": NO_CURSOR if self.cursor is None else self.cursor,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "KeyPoolState":
        """Tolerant of missing fields and unknown statuses (treated as unknown)."""
        if not data:
            return cls()
        records: list[CredentialRecord] = []
        for item in data.get("apiKeys") or []:
            value = (item.get("key") or "").strip() if isinstance(item, dict) else ""
            if not value:
                continue
            try:
                status = KeyStatus(item.get("status") or KeyStatus.UNKNOWN.value)
            except ValueError:
                status = KeyStatus.UNKNOWN
            records.append(CredentialRecord(value=value, status=status))
        cursor = data.get("lastUsedApiKeyIndex", NO_CURSOR)
        if not isinstance(cursor, int) or cursor < 0 or cursor >= len(records):
            cursor = None
        return cls(records=records, cursor=cursor)
