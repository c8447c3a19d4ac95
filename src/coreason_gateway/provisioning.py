# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_gateway

"""
Configuration resolution: registers the gateway with the identity provider and publishes the AppConfig.

The callback URL is needed to register the client, and the client ID issued by that registration is
needed to build the AppConfig. Resolution therefore runs in two phases:

1. Derive the callback and logout URLs from the domain strategy alone, and register them.
2. Once the registration's deferred result resolves, assemble the AppConfig and publish it.

Nothing is published unless phase 2 completes.
"""

from typing import Generic, TypeVar

import anyio
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from coreason_gateway.config import GatewaySettings
from coreason_gateway.config_store import ConfigStore, S3ConfigStore
from coreason_gateway.exceptions import ProvisioningError
from coreason_gateway.models import AppConfig, ClientRegistration, ClientRegistrationRequest, ProvisioningResult
from coreason_gateway.registration import ClientRegistrar, CognitoClientRegistrar
from coreason_gateway.urls import CALLBACK_PATH, LOGOUT_PATH, get_api_url
from coreason_gateway.utils.logger import logger

tracer = trace.get_tracer(__name__)

T = TypeVar("T")


class Deferred(Generic[T]):
    """
    A value that becomes available later, with exactly one subscriber.

    Must be created inside a running event loop.
    """

    def __init__(self) -> None:
        self._event = anyio.Event()
        self._value: T | None = None
        self._error: BaseException | None = None
        self._subscribed = False

    @property
    def done(self) -> bool:
        return self._event.is_set()

    def set_result(self, value: T) -> None:
        if self.done:
            raise RuntimeError("Deferred is already resolved")
        self._value = value
        self._event.set()

    def set_exception(self, error: BaseException) -> None:
        if self.done:
            raise RuntimeError("Deferred is already resolved")
        self._error = error
        self._event.set()

    async def get(self) -> T:
        """
        Waits for the value.

        Raises:
            RuntimeError: If the deferred already has a subscriber.
            BaseException: The error the producer resolved it with.
        """
        if self._subscribed:
            raise RuntimeError("Deferred already has a subscriber")
        self._subscribed = True
        await self._event.wait()
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]


def build_app_config(client_id: str, api_url: str, redirect_url: str, auth_endpoint: str) -> AppConfig:
    """
    Assembles the AppConfig.

    Query parameters are emitted in a fixed order (`client_id`, `response_type`, `redirect_uri`) and the
    values are inserted verbatim, so the redirect URL matches the registered one byte for byte.

    Args:
        client_id: The identifier issued by the registration.
        api_url: The gateway's canonical base URL.
        redirect_url: The registered callback URL.
        auth_endpoint: The hosted-UI base URL.

    Returns:
        AppConfig: The assembled configuration.
    """
    params = f"client_id={client_id}&response_type=code&redirect_uri={redirect_url}"
    return AppConfig(
        client_id=client_id,
        api_url=api_url,
        redirect_url=redirect_url,
        auth_endpoint=auth_endpoint,
        sign_up_url=f"{auth_endpoint}/signup?{params}",
        sign_in_url=f"{auth_endpoint}/login?{params}",
    )


class ConfigResolver:
    """
    Runs configuration resolution once per deployment.

    Attributes:
        settings (GatewaySettings): The gateway settings.
        registrar (ClientRegistrar): Registers the gateway with the identity provider.
        store (ConfigStore): Where the AppConfig is published.
        registration_timeout (float): Upper bound in seconds on the registration phase.
    """

    def __init__(
        self,
        settings: GatewaySettings,
        registrar: ClientRegistrar,
        store: ConfigStore,
        registration_timeout: float = 300.0,
    ) -> None:
        self.settings = settings
        self.registrar = registrar
        self.store = store
        self.registration_timeout = registration_timeout
        self._started = False

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> "ConfigResolver":
        """
        Builds a resolver backed by Cognito and S3.

        Raises:
            ProvisioningError: If the user pool ID or the config bucket is not configured.
        """
        if not settings.user_pool_id:
            raise ProvisioningError("user_pool_id is required to register the gateway client")
        if not settings.config_bucket:
            raise ProvisioningError("config_bucket is required to publish the AppConfig")

        return cls(
            settings,
            registrar=CognitoClientRegistrar(settings.user_pool_id, region=settings.region),
            store=S3ConfigStore(settings.config_bucket, region=settings.region),
        )

    async def _register(self, request: ClientRegistrationRequest, registration: Deferred[ClientRegistration]) -> None:
        try:
            with anyio.fail_after(self.registration_timeout):
                result = await self.registrar.register_client(request)
        except TimeoutError:
            logger.error("Client registration timed out")
            registration.set_exception(
                ProvisioningError(f"Client registration did not complete within {self.registration_timeout}s")
            )
            return
        except ProvisioningError as e:
            registration.set_exception(e)
            return
        except Exception as e:
            registration.set_exception(ProvisioningError(f"Client registration failed: {e}"))
            return

        registration.set_result(result)

    async def _publish(
        self,
        registration: Deferred[ClientRegistration],
        api_url: str,
        callback_url: str,
        outcome: Deferred[AppConfig],
    ) -> None:
        try:
            client = await registration.get()

            if callback_url not in client.callback_urls:
                raise ProvisioningError(
                    f"Registered callback URLs {client.callback_urls} do not include {callback_url}"
                )

            config = build_app_config(
                client_id=client.client_id,
                api_url=api_url,
                redirect_url=callback_url,
                auth_endpoint=self.settings.auth_endpoint,
            )

            try:
                await self.store.put_object(self.settings.config_key, config.to_json().encode("utf-8"))
            except Exception as e:
                raise ProvisioningError(f"Failed to publish config object '{self.settings.config_key}': {e}") from e
        except ProvisioningError as e:
            outcome.set_exception(e)
            return

        logger.info(f"Published config object '{self.settings.config_key}' for client {client.client_id}")
        outcome.set_result(config)

    async def provision(self) -> ProvisioningResult:
        """
        Registers the gateway client and publishes the AppConfig.

        Returns:
            ProvisioningResult: The resolved URLs, the client ID and the published config.

        Raises:
            ProvisioningError: If registration fails or times out, or publishing fails.
                No config is published in either case.
        """
        if self._started:
            raise ProvisioningError("Configuration resolution has already run for this resolver")
        self._started = True

        with tracer.start_as_current_span("resolve_config") as span:
            # Phase 1: URLs that do not depend on the registration
            strategy = self.settings.domain_strategy()
            api_url = get_api_url(strategy, self.settings.generated_url)
            callback_url = get_api_url(strategy, self.settings.generated_url, CALLBACK_PATH)
            logout_url = get_api_url(strategy, self.settings.generated_url, LOGOUT_PATH)
            span.set_attribute("gateway.api_url", api_url)
            logger.info(f"Resolving gateway config. Callback URL: {callback_url}")

            request = ClientRegistrationRequest(
                client_name=self.settings.client_name,
                callback_urls=[callback_url],
                logout_urls=[logout_url],
                scopes=self.settings.allowed_scopes,
            )

            registration: Deferred[ClientRegistration] = Deferred()
            outcome: Deferred[AppConfig] = Deferred()

            # Phase 2 subscribes to the registration
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._register, request, registration)
                tg.start_soon(self._publish, registration, api_url, callback_url, outcome)

            try:
                config = await outcome.get()
            except ProvisioningError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.error(f"Configuration resolution failed: {e}")
                raise

            span.set_status(Status(StatusCode.OK))

        return ProvisioningResult(
            api_url=api_url,
            callback_url=callback_url,
            logout_url=logout_url,
            client_id=config.client_id,
            config_key=self.settings.config_key,
            bucket_name=getattr(self.store, "bucket_name", None),
            config=config,
        )
