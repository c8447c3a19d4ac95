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
IdTokenAuthorizer: the router-side gate in front of the protected API route.

The API handler itself performs no auth logic; requests reach it only after this authorizer
has accepted the identity token issued to the registered client.
"""

import re
from typing import Any, cast

from authlib.jose import JsonWebToken
from authlib.jose.errors import (
    BadSignatureError,
    ExpiredTokenError,
    InvalidClaimError,
    JoseError,
    MissingClaimError,
)
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr

from coreason_gateway.exceptions import (
    CoreasonGatewayError,
    InvalidAudienceError,
    InvalidTokenError,
    SignatureVerificationError,
    TokenExpiredError,
)
from coreason_gateway.oidc_provider import JWKSProvider
from coreason_gateway.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)

BEARER_PATTERN = re.compile(r"^Bearer\s+(\S+)$")


def extract_token(authorization: str | None, id_cookie: str | None = None) -> str:
    """
    Picks the identity token from the Authorization header, falling back to the `id` cookie.

    The header may carry `Bearer <token>` or the bare token.

    Raises:
        InvalidTokenError: If neither carries a token, or the header is malformed.
    """
    if authorization:
        authorization = authorization.strip()
        match = BEARER_PATTERN.match(authorization)
        if match:
            return match.group(1)
        if " " in authorization or authorization.lower() == "bearer":
            raise InvalidTokenError("Invalid Authorization header format.")
        return authorization
    if id_cookie:
        return id_cookie.strip()
    raise InvalidTokenError("Missing identity token.")


class IdTokenAuthorizer:
    """
    Validates identity tokens against the user pool's JWKS and the registered client.

    Attributes:
        jwks_provider (JWKSProvider): Supplies the signing keys.
        issuer (str): The expected issuer claim.
        pii_salt (SecretStr): Salt for anonymizing subjects in logs/traces.
        allowed_algorithms (list[str]): Accepted signing algorithms.
        leeway (int): Acceptable clock skew in seconds.
    """

    def __init__(
        self,
        jwks_provider: JWKSProvider,
        issuer: str,
        pii_salt: SecretStr,
        allowed_algorithms: list[str] | None = None,
        leeway: int = 0,
    ) -> None:
        self.jwks_provider = jwks_provider
        self.issuer = issuer.rstrip("/")
        self.pii_salt = pii_salt
        self.allowed_algorithms = allowed_algorithms or ["RS256"]
        self.leeway = leeway
        self.jwt = JsonWebToken(self.allowed_algorithms)

    def _decode(self, token: str, jwks: dict[str, Any], audience: str) -> dict[str, Any]:
        claims_options = {
            "exp": {"essential": True},
            "iss": {"essential": True, "value": self.issuer},
            "aud": {"essential": True, "value": audience},
            "token_use": {"essential": True, "value": "id"},
        }
        # authlib's overloads confuse type checkers
        jwt_any = cast("Any", self.jwt)
        claims = jwt_any.decode(token, jwks, claims_options=claims_options)
        claims.validate(leeway=self.leeway)
        return dict(claims)

    async def authorize(self, token: str, audience: str) -> dict[str, Any]:
        """
        Validates the identity token.

        Emits an OpenTelemetry span `validate_id_token`.

        Args:
            token: The raw identity token.
            audience: The registered client ID the token must be issued to.

        Returns:
            dict[str, Any]: The validated claims.

        Raises:
            TokenExpiredError: If the token has expired.
            InvalidAudienceError: If the token was issued to another client.
            SignatureVerificationError: If the signature is invalid or the key is unknown.
            InvalidTokenError: For any other invalid claim or malformed token.
            CoreasonGatewayError: If the signing keys cannot be fetched.
        """
        with tracer.start_as_current_span("validate_id_token") as span:
            token = token.strip()
            try:
                jwks = await self.jwks_provider.get_jwks()
                try:
                    claims = self._decode(token, jwks, audience)
                except (ValueError, BadSignatureError):
                    # Unknown kid or bad signature: the pool may have rotated its keys
                    logger.info("Validation failed with cached keys, refreshing JWKS and retrying...")
                    span.add_event("refreshing_jwks")
                    jwks = await self.jwks_provider.get_jwks(force_refresh=True)
                    claims = self._decode(token, jwks, audience)
            except ExpiredTokenError as e:
                logger.warning("Authorization denied: token expired")
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise TokenExpiredError(f"Token has expired: {e}") from e
            except InvalidClaimError as e:
                logger.warning(f"Authorization denied: invalid claim {e.claim_name}")
                span.set_status(Status(StatusCode.ERROR, str(e)))
                if e.claim_name == "aud":
                    raise InvalidAudienceError(f"Invalid audience: {e}") from e
                raise InvalidTokenError(f"Invalid claim: {e}") from e
            except MissingClaimError as e:
                logger.warning(f"Authorization denied: {e.description}")
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise InvalidTokenError(f"Missing claim: {e}") from e
            except BadSignatureError as e:
                logger.error("Authorization denied: bad signature")
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise SignatureVerificationError(f"Invalid signature: {e}") from e
            except JoseError as e:
                logger.warning("Authorization denied: JOSE error")
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise InvalidTokenError(f"Token validation failed: {e}") from e
            except CoreasonGatewayError:
                span.set_status(Status(StatusCode.ERROR, "jwks unavailable"))
                raise
            except ValueError as e:
                # authlib raises ValueError for unknown kids and unparsable tokens
                logger.warning("Authorization denied: key not found or token malformed")
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise SignatureVerificationError(f"Invalid signature or key not found: {e}") from e

            user_hash = anonymize(str(claims.get("sub", "unknown")), self.pii_salt.get_secret_value())
            logger.info(f"Identity token accepted for user {user_hash}")
            span.set_attribute("enduser.id", user_hash)
            span.set_status(Status(StatusCode.OK))
            return claims
