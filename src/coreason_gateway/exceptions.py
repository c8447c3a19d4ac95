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
Custom exceptions for the coreason-gateway package.

Every request-level error carries the HTTP status code it is surfaced as.
All of them are terminal for the request; none are retried.
"""


class CoreasonGatewayError(Exception):
    """Base exception for all coreason-gateway errors."""

    status_code: int = 500


class MissingAuthorizationCode(CoreasonGatewayError):
    """
    Raised when the callback request carries no `code` query parameter.
    The user-agent must restart the authorization flow.
    """

    status_code = 400


class ConfigUnavailable(CoreasonGatewayError):
    """
    Raised when the published AppConfig is absent or cannot be parsed.
    Indicates a provisioning or ordering failure.
    """

    status_code = 503


class TokenExchangeFailed(CoreasonGatewayError):
    """
    Raised when the authorization code cannot be exchanged for an identity token.
    Authorization codes are single-use, so this is never retried.
    """

    status_code = 502


class OversizedResponseError(CoreasonGatewayError):
    """Raised when an HTTP response is too large."""

    status_code = 502


class ProvisioningError(CoreasonGatewayError):
    """Raised when configuration resolution cannot complete. Nothing is published."""


class InvalidTokenError(CoreasonGatewayError):
    """Raised when the identity token is invalid (expired, bad signature, wrong audience, etc.)."""

    status_code = 401


class TokenExpiredError(InvalidTokenError):
    """Raised when the provided token has expired."""


class InvalidAudienceError(InvalidTokenError):
    """Raised when the token's audience does not match the registered client."""


class SignatureVerificationError(InvalidTokenError):
    """Raised when the token's signature cannot be verified."""
