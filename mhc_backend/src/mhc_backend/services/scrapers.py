"""个人主页抓取

抓取依赖浏览器导出的登录 cookies（JSON 列表，每项含 name/value/domain）。
页面的字段解析不在这里展开，只保留原始页面的基础信息。
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .http import ApiClient

logger = logging.getLogger("mhc.services.scrapers")

_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)


class ProfileScraper(ABC):
    @abstractmethod
    def has_cookies(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def scrape_profile(self, username: str) -> Optional[Dict[str, Any]]:
        """返回主页信息，用户不存在时返回 None"""
        raise NotImplementedError


def load_cookies(path: Path) -> httpx.Cookies:
    cookies = httpx.Cookies()
    if not path.exists():
        return cookies
    try:
        entries = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("读取 cookies 文件失败 path=%s error=%s", path, e)
        return cookies
    for entry in entries if isinstance(entries, list) else []:
        if isinstance(entry, dict) and entry.get("name") and "value" in entry:
            cookies.set(entry["name"], str(entry["value"]), domain=entry.get("domain", ""))
    return cookies


class CookieProfileScraper(ApiClient, ProfileScraper):
    service_name = "profile"

    def __init__(
        self,
        base_url: str,
        cookies_path: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cookies_path = Path(cookies_path)
        self._cookies = load_cookies(self.cookies_path)
        super().__init__(
            base_url, timeout=timeout, transport=transport, cookies=self._cookies
        )

    def has_cookies(self) -> bool:
        if not len(self._cookies):
            # 允许运行期间补充 cookies 文件
            self._cookies = load_cookies(self.cookies_path)
            self._client.cookies = self._cookies
        return len(self._cookies) > 0

    async def scrape_profile(self, username: str) -> Optional[Dict[str, Any]]:
        html = await self.get_text(f"/{quote(username, safe='')}/")
        if html is None:
            return None
        match = _TITLE_RE.search(html)
        return {
            "username": username,
            "title": match.group(1).strip() if match else None,
            "html_length": len(html),
        }
