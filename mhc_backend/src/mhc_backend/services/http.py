"""外部 HTTP 接口的公共客户端

404 视为“未找到”返回 None，其他 HTTP 错误与网络错误统一抛出 ExternalServiceError。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger("mhc.services.http")


class ExternalServiceError(Exception):
    """外部服务临时性错误（网络、超时、5xx、限流等）"""

    def __init__(self, service: str, message: str, status_code: int | None = None):
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


class ApiClient:
    """httpx 异步客户端封装

    Attributes:
        base_url: 接口根地址，请求路径直接拼接在其后
    """

    service_name = "api"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cookies: Optional[httpx.Cookies] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": "MHC-Control-Panel/1.0", **(headers or {})},
            transport=transport,
            cookies=cookies,
            follow_redirects=True,
        )

    def _url(self, path: str) -> str:
        if not path:
            return self.base_url
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        url = self._url(path)
        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise ExternalServiceError(self.service_name, f"timeout url={url}") from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(self.service_name, f"request failed url={url}: {e}") from e

        if response.status_code == 429:
            logger.warning("接口限流 service=%s url=%s", self.service_name, url)
            raise ExternalServiceError(self.service_name, "rate limit exceeded", 429)
        return response

    async def get_json(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> Optional[Any]:
        response = await self._request(path, params)
        if response.status_code == 404:
            return None
        if response.is_error:
            logger.error(
                "接口错误 service=%s status=%d url=%s",
                self.service_name, response.status_code, response.request.url,
            )
            raise ExternalServiceError(
                self.service_name, f"HTTP {response.status_code}", response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(self.service_name, "invalid JSON response") from e

    async def get_text(
        self, path: str, params: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        response = await self._request(path, params)
        if response.status_code == 404:
            return None
        if response.is_error:
            raise ExternalServiceError(
                self.service_name, f"HTTP {response.status_code}", response.status_code
            )
        return response.text

    async def get_bytes(self, url: str) -> Optional[bytes]:
        response = await self._request(url)
        if response.status_code == 404:
            return None
        if response.is_error:
            raise ExternalServiceError(
                self.service_name, f"HTTP {response.status_code}", response.status_code
            )
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()
