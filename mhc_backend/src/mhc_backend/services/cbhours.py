from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from .http import ApiClient, ExternalServiceError

logger = logging.getLogger("mhc.services.cbhours")

MAX_USERNAMES_PER_REQUEST = 50


class CBHoursClient(ApiClient):
    service_name = "cbhours"

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, timeout=timeout, transport=transport)

    async def get_live_stats(self, usernames: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        """批量查询直播状态，返回 username -> 状态字典"""
        if not usernames:
            return {}
        if len(usernames) > MAX_USERNAMES_PER_REQUEST:
            raise ValueError(
                f"at most {MAX_USERNAMES_PER_REQUEST} usernames per request"
            )

        body = await self.get_json(
            "", {"action": "get_live", "usernames": ",".join(usernames)}
        )
        if body is None:
            raise ExternalServiceError(self.service_name, "live endpoint not found", 404)
        data = body.get("data") or {}
        online = sum(1 for m in data.values() if m.get("room_status") == "Online")
        logger.debug("CBHours 直播状态 usernames=%d online=%d", len(usernames), online)
        return data
