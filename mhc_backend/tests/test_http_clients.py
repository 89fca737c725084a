from __future__ import annotations

import json

import httpx
import pytest

from mhc_backend.services.cbhours import CBHoursClient
from mhc_backend.services.http import ApiClient, ExternalServiceError
from mhc_backend.services.scrapers import CookieProfileScraper, load_cookies
from mhc_backend.services.statbate import StatbateClient, normalize_model


def _transport(status, body=None, seen=None):
    def handler(request):
        if seen is not None:
            seen.append(request)
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body or "")

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_not_found_returns_none():
    client = ApiClient("https://api.test", transport=_transport(404, {"detail": "x"}))
    assert await client.get_json("/thing") is None
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [429, 500, 503])
async def test_errors_raise_external_service_error(status):
    client = ApiClient("https://api.test", transport=_transport(status, {}))
    with pytest.raises(ExternalServiceError) as info:
        await client.get_json("/thing")
    assert info.value.status_code == status
    await client.aclose()


@pytest.mark.asyncio
async def test_network_error_is_wrapped():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = ApiClient("https://api.test", transport=httpx.MockTransport(handler))
    with pytest.raises(ExternalServiceError):
        await client.get_json("/thing")
    await client.aclose()


@pytest.mark.asyncio
async def test_invalid_json_raises():
    client = ApiClient("https://api.test", transport=_transport(200, "<html>"))
    with pytest.raises(ExternalServiceError):
        await client.get_json("/thing")
    await client.aclose()


@pytest.mark.asyncio
async def test_statbate_paths_and_auth_header():
    seen = []
    body = {"data": {"rid": 5, "income": {"usd": 12.5}}}
    client = StatbateClient(
        "https://statbate.test/api/", token="secret", transport=_transport(200, body, seen)
    )

    result = await client.get_model_info("anna")

    assert seen[0].url.path == "/api/model/chaturbate/anna/info"
    assert seen[0].headers["Authorization"] == "Bearer secret"
    assert normalize_model(result)["income_usd"] == 12.5
    await client.aclose()


@pytest.mark.asyncio
async def test_statbate_escapes_username_in_path():
    seen = []
    client = StatbateClient(
        "https://statbate.test/api/", transport=_transport(200, {"data": {}}, seen)
    )

    await client.get_member_info("a/b?c")

    assert seen[0].url.raw_path.startswith(b"/api/members/chaturbate/a%2Fb%3Fc/info")
    assert "c" not in seen[0].url.params
    await client.aclose()


@pytest.mark.asyncio
async def test_cbhours_request_format():
    seen = []
    client = CBHoursClient(
        "https://cbhours.test/api.php",
        transport=_transport(200, {"data": {"anna": {"room_status": "Online"}}}, seen),
    )

    data = await client.get_live_stats(["anna", "bea"])

    assert seen[0].url.path == "/api.php"
    assert seen[0].url.params["action"] == "get_live"
    assert seen[0].url.params["usernames"] == "anna,bea"
    assert data == {"anna": {"room_status": "Online"}}
    with pytest.raises(ValueError):
        await client.get_live_stats([f"u{i}" for i in range(51)])
    await client.aclose()


def test_load_cookies(tmp_path):
    path = tmp_path / "cookies.json"
    assert len(load_cookies(path)) == 0

    path.write_text(
        json.dumps([
            {"name": "sessionid", "value": "abc", "domain": ".chaturbate.com"},
            {"value": "nameless"},
        ]),
        encoding="utf-8",
    )
    cookies = load_cookies(path)
    assert len(cookies) == 1
    assert cookies.get("sessionid") == "abc"


@pytest.mark.asyncio
async def test_profile_scraper(tmp_path):
    cookies_path = tmp_path / "cookies.json"

    def handler(request):
        if request.url.path == "/gone/":
            return httpx.Response(404)
        return httpx.Response(200, text="<html><title> anna's room </title></html>")

    scraper = CookieProfileScraper(
        "https://profile.test", str(cookies_path), transport=httpx.MockTransport(handler)
    )
    assert scraper.has_cookies() is False

    cookies_path.write_text(json.dumps([{"name": "sid", "value": "1"}]), encoding="utf-8")
    assert scraper.has_cookies() is True

    profile = await scraper.scrape_profile("anna")
    assert profile["title"] == "anna's room"
    assert await scraper.scrape_profile("gone") is None
    await scraper.aclose()
