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
Identity provider client registration.
"""

from typing import Any, Protocol

import anyio
import boto3
from pydantic import ValidationError

from coreason_gateway.exceptions import ProvisioningError
from coreason_gateway.models import ClientRegistration, ClientRegistrationRequest
from coreason_gateway.utils.logger import logger


class ClientRegistrar(Protocol):
    """Registers the gateway as an OAuth2 client of the identity provider."""

    async def register_client(self, request: ClientRegistrationRequest) -> ClientRegistration:
        """Creates the registration and returns it once the provider has issued a client ID."""
        ...


class CognitoClientRegistrar:
    """
    Registers a public (secret-less) authorization-code client in a Cognito user pool.

    Attributes:
        user_pool_id (str): The user pool the client belongs to.
    """

    def __init__(self, user_pool_id: str, client: Any | None = None, region: str | None = None) -> None:
        """
        Initialize the CognitoClientRegistrar.

        Args:
            user_pool_id: The user pool the client belongs to.
            client: A boto3 `cognito-idp` client (optional). Created from the default session if not provided.
            region: Region for the default client.
        """
        if client is None:
            client = boto3.client("cognito-idp", region_name=region)
        self.user_pool_id = user_pool_id
        self._client = client

    def _create(self, request: ClientRegistrationRequest) -> dict[str, Any]:
        return self._client.create_user_pool_client(  # type: ignore[no-any-return]
            UserPoolId=self.user_pool_id,
            ClientName=request.client_name,
            GenerateSecret=False,
            AllowedOAuthFlowsUserPoolClient=True,
            SupportedIdentityProviders=request.identity_providers,
            AllowedOAuthFlows=request.oauth_flows,
            AllowedOAuthScopes=request.scopes,
            CallbackURLs=request.callback_urls,
            LogoutURLs=request.logout_urls,
        )

    async def register_client(self, request: ClientRegistrationRequest) -> ClientRegistration:
        """
        Creates the user pool client.

        Args:
            request: The registration parameters, including the callback URL.

        Returns:
            ClientRegistration: The registration with its issued client ID.

        Raises:
            ProvisioningError: If the provider call fails or yields no client ID.
        """
        logger.info(f"Registering client '{request.client_name}' in user pool {self.user_pool_id}")
        try:
            response = await anyio.to_thread.run_sync(self._create, request)
        except Exception as e:
            logger.error(f"Client registration failed: {e}")
            raise ProvisioningError(f"Client registration failed: {e}") from e

        client = response.get("UserPoolClient") or {}
        try:
            return ClientRegistration(
                client_id=client.get("ClientId", ""),
                callback_urls=client.get("CallbackURLs", request.callback_urls),
                logout_urls=client.get("LogoutURLs", request.logout_urls),
            )
        except ValidationError as e:
            raise ProvisioningError("Identity provider did not issue a client ID") from e
