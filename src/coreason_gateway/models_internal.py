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
Internal data models for the coreason-gateway package.
These are not exposed in the public API.
"""

from pydantic import BaseModel, ConfigDict, Field


class OIDCConfig(BaseModel):
    """
    The subset of the user pool's .well-known/openid-configuration the authorizer relies on.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    issuer: str = Field(..., description="The OIDC issuer URL.")
    jwks_uri: str = Field(..., description="The URL to the JWKS.")


class JWKS(BaseModel):
    """A JSON Web Key Set. Keys are passed to authlib untouched."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    keys: list[dict[str, object]]
