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
Configuration for the coreason-gateway package.
"""

from urllib.parse import urlparse

from pydantic import Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_gateway.models import CustomDomain, DomainStrategy, GeneratedDomain, OAuthScope

DEFAULT_SCOPES = [scope.value for scope in OAuthScope]


class GatewaySettings(BaseSettings):
    """
    Configuration settings for coreason-gateway.

    Attributes:
        auth_domain (str): The hosted-UI domain prefix registered with the identity provider.
        region (str): The identity provider region.
        user_pool_id (str | None): The identity provider pool ID (registration and token verification).
        generated_url (str): The gateway's own generated invoke URL.
        gateway_hostname (str | None): Custom hostname fronting the gateway.
        base_path (str | None): Base path mapped onto the deployment stage.
        certificate_arn (str | None): Certificate for the custom hostname.
        config_bucket (str | None): Bucket holding the published AppConfig.
        config_key (str): Key of the published AppConfig.
        http_timeout (float): Timeout in seconds for outbound identity provider calls.
        allowed_scopes (list[str]): Scopes granted to the registered client.
        pii_salt (SecretStr): Salt for anonymizing user identifiers in logs/traces.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_GATEWAY_",
        case_sensitive=False,
    )

    unsafe_local_dev: bool = False
    auth_domain: str
    region: str = "us-east-1"
    user_pool_id: str | None = None
    generated_url: str
    gateway_hostname: str | None = None
    base_path: str | None = None
    certificate_arn: str | None = None
    config_bucket: str | None = None
    config_key: str = "config.json"
    http_timeout: float = Field(..., gt=0, description="Timeout in seconds for all IdP network operations.")
    allowed_scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    client_name: str = "coreason-gateway"
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")

    @field_validator("auth_domain")
    @classmethod
    def normalize_auth_domain(cls, v: str) -> str:
        """
        Ensures the auth domain is a bare prefix (e.g. "my-app"), lowercased.
        """
        v = v.strip().lower()
        if "://" in v:
            v = urlparse(v).netloc
        if not v:
            raise ValueError("auth_domain must not be empty")
        return v

    @field_validator("base_path")
    @classmethod
    def normalize_base_path(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip().strip("/") or None

    @field_validator("gateway_hostname")
    @classmethod
    def normalize_hostname(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().lower()
        if "://" in v:
            v = urlparse(v).netloc
        return v.rstrip("/") or None

    @field_validator("generated_url")
    @classmethod
    def validate_https(cls, v: str, info: ValidationInfo) -> str:
        """
        Ensures the generated URL uses HTTPS, unless strictly opted out for local dev.

        The identity provider rejects plain HTTP callback URLs outside localhost.
        """
        v = v.strip()
        if not v.startswith(("https://", "http://")):
            raise ValueError("generated_url must be an absolute URL")
        if v.startswith("http://") and not info.data.get("unsafe_local_dev", False):
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        return v

    @property
    def uses_custom_domain(self) -> bool:
        return bool(self.gateway_hostname and self.base_path)

    def domain_strategy(self) -> DomainStrategy:
        """
        Selects how the gateway is reached from outside.

        Returns:
            CustomDomain if both a hostname and a base path are configured, GeneratedDomain otherwise.
        """
        if self.uses_custom_domain:
            # uses_custom_domain guarantees both are set
            return CustomDomain(
                hostname=self.gateway_hostname,  # type: ignore[arg-type]
                base_path=self.base_path,  # type: ignore[arg-type]
                certificate_arn=self.certificate_arn,
            )
        return GeneratedDomain()

    @property
    def auth_endpoint(self) -> str:
        """Base URL of the identity provider's hosted UI."""
        return f"https://{self.auth_domain}.auth.{self.region}.amazoncognito.com"

    @property
    def issuer(self) -> str | None:
        """Issuer of identity tokens, when the pool ID is known."""
        if not self.user_pool_id:
            return None
        return f"https://cognito-idp.{self.region}.amazonaws.com/{self.user_pool_id}"
