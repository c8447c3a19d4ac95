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
Data models for the coreason-gateway package.
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class OAuthScope(StrEnum):
    EMAIL = "email"
    PROFILE = "profile"
    OPENID = "openid"
    COGNITO_ADMIN = "aws.cognito.signin.user.admin"


class AppConfig(BaseModel):
    """
    The client configuration published once per deployment.

    Serialized with the camelCase keys the browser application expects.
    This model is frozen (immutable); it is recreated only by a redeploy.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "clientID": "4m1s0m3cl13nt",
                "redirectUrl": "https://api.example.com/stage/callback/",
                "authEndpoint": "https://example.auth.us-east-1.amazoncognito.com",
                "apiUrl": "https://api.example.com/stage/",
                "signUpUrl": "https://example.auth.us-east-1.amazoncognito.com/signup?...",
                "signInUrl": "https://example.auth.us-east-1.amazoncognito.com/login?...",
            }
        },
    )

    client_id: str = Field(..., alias="clientID", min_length=1, description="Identifier issued by the registration.")
    redirect_url: str = Field(..., alias="redirectUrl", description="Absolute URL of the callback handler.")
    auth_endpoint: str = Field(..., alias="authEndpoint", description="Base URL of the hosted authorization UI.")
    api_url: str = Field(..., alias="apiUrl", description="Base URL of the gateway as seen by clients.")
    sign_up_url: str = Field(..., alias="signUpUrl")
    sign_in_url: str = Field(..., alias="signInUrl")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class GeneratedDomain(BaseModel):
    """The gateway is reached through its own generated invoke URL."""

    model_config = ConfigDict(frozen=True)


class CustomDomain(BaseModel):
    """
    The gateway is fronted by a custom hostname mapped onto a base path.

    Attributes:
        hostname (str): The custom hostname (e.g. api.example.com).
        base_path (str): The base path mapped to the deployment stage, without slashes.
        certificate_arn (str | None): Certificate reference used by the DNS wiring.
    """

    model_config = ConfigDict(frozen=True)

    hostname: str
    base_path: str
    certificate_arn: str | None = None


DomainStrategy = GeneratedDomain | CustomDomain


class ClientRegistrationRequest(BaseModel):
    """Parameters sent to the identity provider when registering the gateway as a client."""

    model_config = ConfigDict(frozen=True)

    client_name: str
    callback_urls: list[str]
    logout_urls: list[str]
    scopes: list[str]
    oauth_flows: list[str] = Field(default_factory=lambda: ["code"])
    identity_providers: list[str] = Field(default_factory=lambda: ["COGNITO"])


class ClientRegistration(BaseModel):
    """The registration as issued by the identity provider."""

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(..., min_length=1)
    callback_urls: list[str]
    logout_urls: list[str] = Field(default_factory=list)


class TokenResponse(BaseModel):
    """
    Response from the token endpoint. Only `id_token` is required by the gateway.
    """

    model_config = ConfigDict(extra="ignore")

    id_token: str = Field(..., min_length=1)
    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None


class HandlerResponse(BaseModel):
    """A framework-neutral HTTP response produced by a pipeline handler."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    body: str = ""
    headers: dict[str, str] = Field(default_factory=dict)


class ProvisioningResult(BaseModel):
    """
    Handles and values produced by configuration resolution.

    Attributes:
        api_url (str): The canonical base URL of the gateway.
        callback_url (str): The registered callback URL.
        logout_url (str): The registered logout URL.
        client_id (str): The identifier issued by the registration.
        config_key (str): The key the AppConfig was published under.
        bucket_name (str | None): The Config Store bucket, exported for operations.
        config (AppConfig): The published configuration.
    """

    model_config = ConfigDict(frozen=True)

    api_url: str
    callback_url: str
    logout_url: str
    client_id: str
    config_key: str
    bucket_name: str | None = None
    config: AppConfig
