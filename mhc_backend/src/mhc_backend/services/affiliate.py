from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from .http import ApiClient, ExternalServiceError

logger = logging.getLogger("mhc.services.affiliate")


class AffiliateClient(ApiClient):
    """Chaturbate affiliate 在线房间接口"""

    service_name = "affiliate"

    def __init__(
        self,
        base_url: str,
        wm: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url, timeout=timeout, transport=transport)
        self.wm = wm

    async def get_online_rooms(
        self,
        limit: int = 100,
        offset: int = 0,
        genders: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """多个性别以重复的 gender 参数发送"""
        params: Dict[str, Any] = {
            "wm": self.wm,
            "client_ip": "request_ip",
            "format": "json",
            "limit": limit,
            "offset": offset,
        }
        if genders:
            params["gender"] = list(genders)
        body = await self.get_json("/onlinerooms/", params)
        if body is None:
            raise ExternalServiceError(self.service_name, "onlinerooms not found", 404)
        logger.info(
            "获取在线房间 count=%d total=%s offset=%d",
            len(body.get("results") or []), body.get("count"), offset,
        )
        return body
