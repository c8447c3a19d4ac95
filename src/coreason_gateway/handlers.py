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
GatewayPipeline: the stateless request handlers behind the gateway routes.
"""

import json
from collections.abc import Mapping

from coreason_gateway.config_store import ConfigStore, load_app_config, load_config_document
from coreason_gateway.exceptions import CoreasonGatewayError, MissingAuthorizationCode
from coreason_gateway.models import HandlerResponse
from coreason_gateway.token_exchange import TokenExchanger
from coreason_gateway.utils.logger import logger

MISSING_CODE_MESSAGE = "Bad request. Code property was missing."
ID_COOKIE = "id"


class GatewayPipeline:
    """
    The config-fetch, callback and authorized-API handlers.

    Holds no per-request state: every call reads the Config Store afresh.

    Attributes:
        store (ConfigStore): Where the AppConfig is published.
        exchanger (TokenExchanger): Exchanges authorization codes for identity tokens.
        config_key (str): The well-known key of the AppConfig document.
    """

    def __init__(self, store: ConfigStore, exchanger: TokenExchanger, config_key: str = "config.json") -> None:
        self.store = store
        self.exchanger = exchanger
        self.config_key = config_key

    async def get_config(self) -> HandlerResponse:
        """
        Serves the published AppConfig.

        Raises:
            ConfigUnavailable: If the config is absent or malformed.
        """
        _, document = await load_config_document(self.store, self.config_key)
        return HandlerResponse(
            status_code=200,
            body=document.decode("utf-8"),
            headers={"Content-Type": "application/json"},
        )

    async def callback(self, query: Mapping[str, str] | None) -> HandlerResponse:
        """
        Completes the authorization-code flow.

        Args:
            query: The request's query parameters. May be None when the request had none.

        Returns:
            HandlerResponse: 302 carrying the identity token in the `id` cookie and the Location query.

        Raises:
            MissingAuthorizationCode: If `code` is absent or empty. No network call is made.
            ConfigUnavailable: If the config is absent or malformed.
            TokenExchangeFailed: If the exchange fails. No cookie is set.
        """
        code = (query or {}).get("code")
        if not code:
            logger.warning("Callback invoked without an authorization code")
            raise MissingAuthorizationCode(MISSING_CODE_MESSAGE)

        config = await load_app_config(self.store, self.config_key)
        id_token = await self.exchanger.exchange_code(config, code)

        return HandlerResponse(
            status_code=302,
            body=json.dumps({}),
            headers={
                "Set-Cookie": f"{ID_COOKIE}={id_token}",
                "Location": f"{config.api_url}?id={id_token}",
            },
        )

    async def api(self) -> HandlerResponse:
        """
        Serves the protected API payload.

        Authorization has already succeeded by the time this runs; it performs no auth checks itself.
        """
        return HandlerResponse(
            status_code=200,
            body=json.dumps({"awesome": True}),
            headers={"Content-Type": "application/json"},
        )


def error_response(error: CoreasonGatewayError) -> HandlerResponse:
    """
    Renders a gateway error as a minimal response carrying its status code.

    A missing code is reported as plain text. Everything else gets a small JSON body.
    Error responses never carry cookies or a Location header.
    """
    if isinstance(error, MissingAuthorizationCode):
        return HandlerResponse(status_code=error.status_code, body=MISSING_CODE_MESSAGE)

    return HandlerResponse(
        status_code=error.status_code,
        body=json.dumps({"error": type(error).__name__, "message": str(error)}),
        headers={"Content-Type": "application/json"},
    )
