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
TokenExchangeClient component for the OAuth 2.0 authorization-code grant.
"""

from typing import Protocol

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from coreason_gateway.exceptions import OversizedResponseError, TokenExchangeFailed
from coreason_gateway.models import AppConfig, TokenResponse
from coreason_gateway.transport import safe_json_fetch
from coreason_gateway.utils.logger import logger

tracer = trace.get_tracer(__name__)

TOKEN_PATH = "/oauth2/token"


class TokenExchanger(Protocol):
    """Exchanges an authorization code for an identity token."""

    async def exchange_code(self, config: AppConfig, code: str) -> str:
        ...


class TokenExchangeClient:
    """
    Exchanges authorization codes at the identity provider's token endpoint.

    Codes are single-use, so a failed exchange is never retried.

    Attributes:
        client (httpx.AsyncClient): The async HTTP client. Its timeout bounds the exchange.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def exchange_code(self, config: AppConfig, code: str) -> str:
        """
        Performs a single server-to-server POST to `{authEndpoint}/oauth2/token`.

        Args:
            config: The published AppConfig (client ID, redirect URL, auth endpoint).
            code: The authorization code delivered to the callback.

        Returns:
            str: The identity token.

        Raises:
            TokenExchangeFailed: On transport failure, non-2xx status, oversized or non-JSON body,
                or a body without `id_token`.
        """
        url = f"{config.auth_endpoint.rstrip('/')}{TOKEN_PATH}"
        data = {
            "grant_type": "authorization_code",
            "client_id": config.client_id,
            "redirect_uri": config.redirect_url,
            "code": code,
        }

        with tracer.start_as_current_span("token_exchange") as span:
            span.set_attribute("oauth.client_id", config.client_id)
            try:
                payload = await safe_json_fetch(
                    self.client,
                    url,
                    method="POST",
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
                token = TokenResponse.model_validate(payload)
            except httpx.HTTPStatusError as e:
                msg = f"Token endpoint returned {e.response.status_code}"
                logger.error(msg)
                span.set_status(Status(StatusCode.ERROR, msg))
                raise TokenExchangeFailed(msg) from e
            except (httpx.HTTPError, OversizedResponseError) as e:
                logger.error(f"Token exchange request failed: {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise TokenExchangeFailed(f"Token exchange request failed: {e}") from e
            except ValidationError as e:
                # Pydantic also rejects non-object JSON here
                logger.error("Token response did not contain an id_token")
                span.set_status(Status(StatusCode.ERROR, "missing id_token"))
                raise TokenExchangeFailed("Token response did not contain an id_token") from e
            except ValueError as e:
                logger.error("Token response was not valid JSON")
                span.set_status(Status(StatusCode.ERROR, "invalid JSON"))
                raise TokenExchangeFailed("Token response was not valid JSON") from e

            span.set_status(Status(StatusCode.OK))
            logger.info("Authorization code exchanged successfully.")
            return token.id_token
