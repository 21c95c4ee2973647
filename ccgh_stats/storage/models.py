"""
Data models for the local state store.

Defines the persisted credential document and its JSON mapping.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class SyncConfig:
    """Credentials issued by the stats service at registration.

    Written once; replaced only by a full re-registration.
    """
    write_token: str
    public_id: str

    @property
    def is_complete(self) -> bool:
        return bool(self.write_token) and bool(self.public_id)

    def to_dict(self) -> Dict[str, str]:
        return {"writeToken": self.write_token, "publicId": self.public_id}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["SyncConfig"]:
        """Build from a decoded JSON document, or None if the shape is wrong."""
        if not isinstance(data, dict):
            return None
        write_token = data.get("writeToken")
        public_id = data.get("publicId")
        if not isinstance(write_token, str) or not isinstance(public_id, str):
            return None
        return cls(write_token=write_token, public_id=public_id)


@dataclass
class SyncCache:
    """Liveness state rewritten after every successful sync.

    Keeps the whole decoded document so fields added later survive a
    read-modify-write by an older version.
    """
    data: Dict[str, Any]

    @property
    def last_sync_time(self) -> int:
        """Epoch milliseconds of the last successful sync, 0 if never."""
        value = self.data.get("lastSyncTime")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            return 0
        return int(value)

    @last_sync_time.setter
    def last_sync_time(self, value: int) -> None:
        self.data["lastSyncTime"] = int(value)
