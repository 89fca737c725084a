"""在线房间缓存

由 affiliate-polling 每轮刷新，live-screenshot 从中读取当前在线的房间与封面图地址。
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from ..models.database import utcnow


class FeedCache:
    def __init__(self):
        self._rooms: Dict[str, Dict[str, Any]] = {}
        self._updated_at: Optional[datetime] = None
        self._lock = threading.Lock()

    def replace(self, rooms: Iterable[Dict[str, Any]]) -> int:
        snapshot = {
            room["username"].lower(): room
            for room in rooms
            if isinstance(room, dict) and room.get("username")
        }
        with self._lock:
            self._rooms = snapshot
            self._updated_at = utcnow()
        return len(snapshot)

    def get(self, username: str) -> Optional[Dict[str, Any]]:
        return self._rooms.get(username.lower())

    def live_usernames(self) -> List[str]:
        return sorted(self._rooms)

    def is_stale(self, max_age: timedelta) -> bool:
        return self._updated_at is None or utcnow() - self._updated_at > max_age

    def __len__(self) -> int:
        return len(self._rooms)
