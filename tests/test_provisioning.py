# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_gateway

import json
from unittest.mock import AsyncMock, MagicMock, patch

import anyio
import pytest

from coreason_gateway.config import GatewaySettings
from coreason_gateway.config_store import MemoryConfigStore, load_app_config
from coreason_gateway.exceptions import ProvisioningError
from coreason_gateway.models import ClientRegistration, ClientRegistrationRequest
from coreason_gateway.provisioning import ConfigResolver, Deferred, build_app_config

GENERATED_URL = "https://abc123.execute-api.us-east-1.amazonaws.com/stage/"
AUTH_ENDPOINT = "https://coreason-test.auth.us-east-1.amazoncognito.com"


class FakeRegistrar:
    """Echoes the requested URLs back, like the identity provider does."""

    def __init__(self, client_id: str = "issued-client-id", delay: float = 0.0) -> None:
        self.client_id = client_id
        self.delay = delay
        self.requests: list[ClientRegistrationRequest] = []

    async def register_client(self, request: ClientRegistrationRequest) -> ClientRegistration:
        self.requests.append(request)
        if self.delay:
            await anyio.sleep(self.delay)
        return ClientRegistration(
            client_id=self.client_id,
            callback_urls=request.callback_urls,
            logout_urls=request.logout_urls,
        )


def test_build_app_config_query_order() -> None:
    config = build_app_config(
        client_id="cid",
        api_url="https://api.example.org/stage/",
        redirect_url="https://api.example.org/stage/callback/",
        auth_endpoint=AUTH_ENDPOINT,
    )
    params = "client_id=cid&response_type=code&redirect_uri=https://api.example.org/stage/callback/"
    assert config.sign_up_url == f"{AUTH_ENDPOINT}/signup?{params}"
    assert config.sign_in_url == f"{AUTH_ENDPOINT}/login?{params}"
    assert config.auth_endpoint == AUTH_ENDPOINT


@pytest.mark.asyncio
async def test_provision_publishes_config(settings: GatewaySettings, empty_store: MemoryConfigStore) -> None:
    registrar = FakeRegistrar()
    resolver = ConfigResolver(settings, registrar, empty_store)

    result = await resolver.provision()

    assert result.client_id == "issued-client-id"
    assert result.api_url == GENERATED_URL
    assert result.callback_url == f"{GENERATED_URL}callback/"
    assert result.logout_url == f"{GENERATED_URL}logout/"
    assert result.bucket_name == "config-bucket"
    assert result.config_key == "config.json"

    stored = await load_app_config(empty_store, "config.json")
    assert stored == result.config
    assert stored.redirect_url == result.callback_url
    assert stored.auth_endpoint == "https://coreason-test.auth.us-east-1.amazoncognito.com"


@pytest.mark.asyncio
async def test_registration_request_carries_callback(settings: GatewaySettings, empty_store: MemoryConfigStore) -> None:
    registrar = FakeRegistrar()
    await ConfigResolver(settings, registrar, empty_store).provision()

    (request,) = registrar.requests
    assert request.callback_urls == [f"{GENERATED_URL}callback/"]
    assert request.logout_urls == [f"{GENERATED_URL}logout/"]
    assert request.oauth_flows == ["code"]
    assert request.identity_providers == ["COGNITO"]
    assert "openid" in request.scopes


@pytest.mark.asyncio
async def test_sign_urls_contain_current_client_and_redirect(
    settings: GatewaySettings, empty_store: MemoryConfigStore
) -> None:
    result = await ConfigResolver(settings, FakeRegistrar("cid-42"), empty_store).provision()
    stored = json.loads(empty_store._objects["config.json"])

    for url in (stored["signUpUrl"], stored["signInUrl"]):
        assert f"client_id={stored['clientID']}&" in url
        assert url.endswith(f"redirect_uri={stored['redirectUrl']}")
    assert stored["clientID"] == result.client_id == "cid-42"
    assert stored["redirectUrl"] == result.callback_url


@pytest.mark.asyncio
async def test_provision_with_custom_domain(empty_store: MemoryConfigStore) -> None:
    settings = GatewaySettings(
        auth_domain="coreason-test",
        generated_url=GENERATED_URL,
        gateway_hostname="api.example.org",
        base_path="stage",
        http_timeout=5.0,
    )
    result = await ConfigResolver(settings, FakeRegistrar(), empty_store).provision()

    assert result.api_url == "https://api.example.org/stage/"
    assert result.callback_url == "https://api.example.org/stage/callback/"
    assert result.config.redirect_url == result.callback_url


@pytest.mark.asyncio
async def test_registration_failure_publishes_nothing(
    settings: GatewaySettings, empty_store: MemoryConfigStore
) -> None:
    registrar = MagicMock()
    registrar.register_client = AsyncMock(side_effect=RuntimeError("provider unreachable"))

    with pytest.raises(ProvisioningError, match="provider unreachable"):
        await ConfigResolver(settings, registrar, empty_store).provision()

    assert empty_store._objects == {}


@pytest.mark.asyncio
async def test_registration_provisioning_error_propagates(
    settings: GatewaySettings, empty_store: MemoryConfigStore
) -> None:
    registrar = MagicMock()
    registrar.register_client = AsyncMock(side_effect=ProvisioningError("no client ID"))

    with pytest.raises(ProvisioningError, match="no client ID"):
        await ConfigResolver(settings, registrar, empty_store).provision()
    assert empty_store._objects == {}


@pytest.mark.asyncio
async def test_registration_timeout_publishes_nothing(
    settings: GatewaySettings, empty_store: MemoryConfigStore
) -> None:
    resolver = ConfigResolver(settings, FakeRegistrar(delay=5.0), empty_store, registration_timeout=0.05)

    with pytest.raises(ProvisioningError, match="did not complete"):
        await resolver.provision()
    assert empty_store._objects == {}


@pytest.mark.asyncio
async def test_callback_mismatch_publishes_nothing(settings: GatewaySettings, empty_store: MemoryConfigStore) -> None:
    registrar = MagicMock()
    registrar.register_client = AsyncMock(
        return_value=ClientRegistration(client_id="cid", callback_urls=["https://elsewhere.example.com/callback/"])
    )

    with pytest.raises(ProvisioningError, match="do not include"):
        await ConfigResolver(settings, registrar, empty_store).provision()
    assert empty_store._objects == {}


@pytest.mark.asyncio
async def test_publish_failure(settings: GatewaySettings) -> None:
    store = MagicMock()
    store.put_object = AsyncMock(side_effect=RuntimeError("AccessDenied"))
    store.bucket_name = "config-bucket"

    with pytest.raises(ProvisioningError, match="Failed to publish"):
        await ConfigResolver(settings, FakeRegistrar(), store).provision()


@pytest.mark.asyncio
async def test_resolver_is_not_reentrant(settings: GatewaySettings, empty_store: MemoryConfigStore) -> None:
    resolver = ConfigResolver(settings, FakeRegistrar(), empty_store)
    await resolver.provision()

    with pytest.raises(ProvisioningError, match="already run"):
        await resolver.provision()


@pytest.mark.asyncio
async def test_publish_waits_for_registration(settings: GatewaySettings, empty_store: MemoryConfigStore) -> None:
    """The config is written only after the registration has yielded its client ID."""
    order: list[str] = []

    class OrderedRegistrar(FakeRegistrar):
        async def register_client(self, request: ClientRegistrationRequest) -> ClientRegistration:
            await anyio.sleep(0.01)
            order.append("registered")
            return await super().register_client(request)

    class OrderedStore(MemoryConfigStore):
        async def put_object(self, key: str, body: bytes, content_type: str = "application/json") -> None:
            order.append("published")
            await super().put_object(key, body, content_type)

    await ConfigResolver(settings, OrderedRegistrar(), OrderedStore()).provision()
    assert order == ["registered", "published"]


def test_from_settings_requires_pool_and_bucket(settings: GatewaySettings) -> None:
    with pytest.raises(ProvisioningError, match="user_pool_id"):
        ConfigResolver.from_settings(settings.model_copy(update={"user_pool_id": None}))
    with pytest.raises(ProvisioningError, match="config_bucket"):
        ConfigResolver.from_settings(settings.model_copy(update={"config_bucket": None}))


def test_from_settings_builds_aws_backends(settings: GatewaySettings) -> None:
    with patch("boto3.client") as boto_client:
        resolver = ConfigResolver.from_settings(settings)

    assert resolver.store.bucket_name == "config-bucket"  # type: ignore[attr-defined]
    services = [c.args[0] for c in boto_client.call_args_list]
    assert services == ["cognito-idp", "s3"]


@pytest.mark.asyncio
async def test_deferred_resolves_once() -> None:
    deferred: Deferred[int] = Deferred()
    assert not deferred.done
    deferred.set_result(7)
    assert deferred.done

    with pytest.raises(RuntimeError, match="already resolved"):
        deferred.set_result(8)
    with pytest.raises(RuntimeError, match="already resolved"):
        deferred.set_exception(ValueError("late"))

    assert await deferred.get() == 7


@pytest.mark.asyncio
async def test_deferred_single_subscriber() -> None:
    deferred: Deferred[int] = Deferred()
    deferred.set_result(1)
    await deferred.get()

    with pytest.raises(RuntimeError, match="subscriber"):
        await deferred.get()


@pytest.mark.asyncio
async def test_deferred_propagates_exception() -> None:
    deferred: Deferred[int] = Deferred()
    deferred.set_exception(ProvisioningError("boom"))

    with pytest.raises(ProvisioningError, match="boom"):
        await deferred.get()


@pytest.mark.asyncio
async def test_deferred_waits_for_producer() -> None:
    deferred: Deferred[str] = Deferred()
    received: list[str] = []

    async def consume() -> None:
        received.append(await deferred.get())

    async with anyio.create_task_group() as tg:
        tg.start_soon(consume)
        await anyio.sleep(0.01)
        assert received == []
        deferred.set_result("client-id")

    assert received == ["client-id"]
