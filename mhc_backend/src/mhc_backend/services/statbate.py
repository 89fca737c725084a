from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .http import ApiClient

logger = logging.getLogger("mhc.services.statbate")


class StatbateClient(ApiClient):
    """Statbate Plus API

    get_model_info / get_member_info 在对方不存在时返回 None。
    """

    service_name = "statbate"

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        site: str = "chaturbate",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        super().__init__(base_url, timeout=timeout, headers=headers, transport=transport)
        self.site = site

    async def get_model_info(
        self, username: str, timezone: str = "UTC"
    ) -> Optional[Dict[str, Any]]:
        logger.debug("查询主播信息 username=%s", username)
        return await self.get_json(
            f"/model/{self.site}/{quote(username, safe='')}/info", {"timezone": timezone}
        )

    async def get_member_info(
        self, username: str, timezone: str = "UTC"
    ) -> Optional[Dict[str, Any]]:
        logger.debug("查询会员信息 username=%s", username)
        return await self.get_json(
            f"/members/{self.site}/{quote(username, safe='')}/info", {"timezone": timezone}
        )


def extract_payload(response: Dict[str, Any]) -> Dict[str, Any]:
    data = response.get("data")
    return data if isinstance(data, dict) else response


def normalize_model(response: Dict[str, Any]) -> Dict[str, Any]:
    data = extract_payload(response)
    income = data.get("income")
    if isinstance(income, dict):
        income = income.get("usd")
    return {
        "rid": data.get("rid"),
        "rank": data.get("rank"),
        "sessions": data.get("sessions"),
        "income_usd": income,
        "last_broadcast": data.get("last_broadcast"),
    }


def normalize_member(response: Dict[str, Any]) -> Dict[str, Any]:
    data = extract_payload(response)
    return {
        "did": data.get("did"),
        "all_time_tokens": data.get("all_time_tokens"),
        "first_tip_date": data.get("first_tip_date"),
        "last_tip_date": data.get("last_tip_date"),
        "models_tipped": data.get("models_tipped_2weeks"),
    }
