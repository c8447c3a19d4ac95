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
FastAPI application binding the gateway routes to the GatewayPipeline.

This plays the router/authorizer role: it dispatches paths to handlers, runs the
IdTokenAuthorizer before `/api`, and turns gateway errors into status codes.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Cookie, Depends, FastAPI, Header, Request
from fastapi.responses import Response

from coreason_gateway.authorizer import IdTokenAuthorizer, extract_token
from coreason_gateway.config import GatewaySettings
from coreason_gateway.config_store import ConfigStore, S3ConfigStore, load_app_config
from coreason_gateway.exceptions import CoreasonGatewayError, InvalidTokenError
from coreason_gateway.handlers import GatewayPipeline, error_response
from coreason_gateway.models import HandlerResponse
from coreason_gateway.oidc_provider import JWKSProvider
from coreason_gateway.token_exchange import TokenExchangeClient, TokenExchanger
from coreason_gateway.transport import create_http_client
from coreason_gateway.utils.logger import logger


def to_response(result: HandlerResponse) -> Response:
    return Response(content=result.body, status_code=result.status_code, headers=result.headers)


def create_app(
    settings: GatewaySettings,
    store: ConfigStore | None = None,
    exchanger: TokenExchanger | None = None,
    authorizer: IdTokenAuthorizer | None = None,
) -> FastAPI:
    """
    Builds the gateway application.

    Args:
        settings: The gateway settings.
        store: The Config Store (optional). Defaults to S3 using `settings.config_bucket`.
        exchanger: The token exchanger (optional). Defaults to a TokenExchangeClient on an
            instrumented client bounded by `settings.http_timeout`.
        authorizer: The authorizer for `/api` (optional). Defaults to one built from
            `settings.issuer`; `/api` rejects every request if no issuer is configured.

    Returns:
        FastAPI: The application. Owned HTTP clients are closed on shutdown.
    """
    if store is None:
        if not settings.config_bucket:
            raise CoreasonGatewayError("config_bucket is required when no ConfigStore is provided")
        store = S3ConfigStore(settings.config_bucket, region=settings.region)

    http_client = create_http_client(settings.http_timeout)

    if exchanger is None:
        exchanger = TokenExchangeClient(http_client)

    if authorizer is None and settings.issuer:
        authorizer = IdTokenAuthorizer(
            JWKSProvider(settings.issuer, http_client),
            issuer=settings.issuer,
            pii_salt=settings.pii_salt,
        )

    pipeline = GatewayPipeline(store, exchanger, config_key=settings.config_key)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        _ = app
        yield
        await http_client.aclose()

    app = FastAPI(title="coreason-gateway", lifespan=lifespan)
    app.state.pipeline = pipeline

    @app.exception_handler(CoreasonGatewayError)
    async def gateway_error_handler(request: Request, exc: CoreasonGatewayError) -> Response:
        logger.warning(f"{request.method} {request.url.path} failed: {type(exc).__name__}")
        return to_response(error_response(exc))

    async def require_identity(
        authorization: Annotated[str | None, Header()] = None,
        id_cookie: Annotated[str | None, Cookie(alias="id")] = None,
    ) -> dict[str, object]:
        if authorizer is None:
            raise InvalidTokenError("No authorizer is configured for this route.")
        token = extract_token(authorization, id_cookie)
        config = await load_app_config(store, settings.config_key)
        return await authorizer.authorize(token, audience=config.client_id)

    @app.get("/config")
    @app.get("/config/", include_in_schema=False)
    async def get_config() -> Response:
        return to_response(await pipeline.get_config())

    @app.get("/callback")
    @app.get("/callback/", include_in_schema=False)
    async def callback(request: Request) -> Response:
        return to_response(await pipeline.callback(request.query_params))

    @app.get("/api")
    @app.get("/api/", include_in_schema=False)
    async def api(claims: Annotated[dict[str, object], Depends(require_identity)]) -> Response:
        _ = claims
        return to_response(await pipeline.api())

    return app
