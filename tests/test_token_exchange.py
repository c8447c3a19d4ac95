# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_gateway

from collections.abc import Callable
from urllib.parse import parse_qs

import httpx
import pytest

from coreason_gateway.exceptions import TokenExchangeFailed
from coreason_gateway.models import AppConfig
from coreason_gateway.token_exchange import TokenExchangeClient
from coreason_gateway.transport import MAX_RESPONSE_BYTES


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> TokenExchangeClient:
    return TokenExchangeClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_exchange_success(app_config: AppConfig) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id_token": "tok123", "access_token": "acc", "token_type": "Bearer"})

    token = await make_client(handler).exchange_code(app_config, "abc")

    assert token == "tok123"
    (request,) = seen
    assert request.method == "POST"
    assert str(request.url) == f"{app_config.auth_endpoint}/oauth2/token"
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    form = parse_qs(request.content.decode())
    assert form == {
        "grant_type": ["authorization_code"],
        "client_id": [app_config.client_id],
        "redirect_uri": [app_config.redirect_url],
        "code": ["abc"],
    }


@pytest.mark.asyncio
async def test_exchange_non_json_body(app_config: AppConfig) -> None:
    client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"))

    with pytest.raises(TokenExchangeFailed, match="not valid JSON"):
        await client.exchange_code(app_config, "abc")


@pytest.mark.asyncio
async def test_exchange_missing_id_token(app_config: AppConfig) -> None:
    client = make_client(lambda request: httpx.Response(200, json={"access_token": "acc"}))

    with pytest.raises(TokenExchangeFailed, match="id_token"):
        await client.exchange_code(app_config, "abc")


@pytest.mark.asyncio
async def test_exchange_non_object_json(app_config: AppConfig) -> None:
    client = make_client(lambda request: httpx.Response(200, json=["tok123"]))

    with pytest.raises(TokenExchangeFailed):
        await client.exchange_code(app_config, "abc")


@pytest.mark.asyncio
async def test_exchange_error_status(app_config: AppConfig) -> None:
    client = make_client(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))

    with pytest.raises(TokenExchangeFailed, match="returned 400"):
        await client.exchange_code(app_config, "used-code")


@pytest.mark.asyncio
async def test_exchange_transport_failure(app_config: AppConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TokenExchangeFailed, match="request failed"):
        await make_client(handler).exchange_code(app_config, "abc")


@pytest.mark.asyncio
async def test_exchange_timeout(app_config: AppConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TokenExchangeFailed):
        await make_client(handler).exchange_code(app_config, "abc")


@pytest.mark.asyncio
async def test_exchange_oversized_body(app_config: AppConfig) -> None:
    body = b"{" + b" " * MAX_RESPONSE_BYTES + b"}"
    client = make_client(lambda request: httpx.Response(200, content=body))

    with pytest.raises(TokenExchangeFailed):
        await client.exchange_code(app_config, "abc")


@pytest.mark.asyncio
async def test_exchange_is_not_retried(app_config: AppConfig) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(503, text="unavailable")

    with pytest.raises(TokenExchangeFailed):
        await make_client(handler).exchange_code(app_config, "abc")
    assert calls == 1


@pytest.mark.asyncio
async def test_trailing_slash_on_auth_endpoint(app_config: AppConfig) -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"id_token": "tok"})

    config = app_config.model_copy(update={"auth_endpoint": f"{app_config.auth_endpoint}/"})
    await make_client(handler).exchange_code(config, "abc")
    assert seen == [f"{app_config.auth_endpoint}/oauth2/token"]
