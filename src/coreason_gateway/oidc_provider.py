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
JWKSProvider component for fetching and caching the user pool's signing keys.
"""

import time
from typing import Any

import anyio
import httpx
from pydantic import ValidationError

from coreason_gateway.exceptions import CoreasonGatewayError, OversizedResponseError
from coreason_gateway.models_internal import JWKS, OIDCConfig
from coreason_gateway.transport import safe_json_fetch
from coreason_gateway.utils.logger import logger


class JWKSProvider:
    """
    Fetches and caches the identity provider's OIDC configuration and JWKS.

    Attributes:
        issuer (str): The token issuer; discovery lives under `{issuer}/.well-known/openid-configuration`.
        cache_ttl (int): The cache time-to-live in seconds.
        refresh_cooldown (float): Minimum time in seconds between forced refreshes.
    """

    def __init__(
        self,
        issuer: str,
        client: httpx.AsyncClient,
        cache_ttl: int = 3600,
        refresh_cooldown: float = 30.0,
    ) -> None:
        """
        Initialize the JWKSProvider.

        Args:
            issuer: The token issuer (e.g., https://cognito-idp.us-east-1.amazonaws.com/us-east-1_abc).
            client: The async HTTP client to use for requests.
            cache_ttl: Time-to-live for the JWKS cache in seconds. Defaults to 3600 (1 hour).
            refresh_cooldown: Minimum time in seconds between forced refreshes. Defaults to 30.0.
        """
        self.issuer = issuer.rstrip("/")
        self.discovery_url = f"{self.issuer}/.well-known/openid-configuration"
        self.client = client
        self.cache_ttl = cache_ttl
        self.refresh_cooldown = refresh_cooldown
        self._jwks_cache: dict[str, Any] | None = None
        self._last_update: float = 0.0
        self._lock: anyio.Lock | None = None

    async def _fetch_json(self, url: str, what: str) -> Any:
        """
        GETs a JSON document.

        Retries on `httpx.HTTPError` up to 3 times with exponential backoff (initial=0.1s, max=1.0s).
        These are idempotent reads, unlike the token exchange.
        """
        attempts = 3
        wait_initial = 0.1
        wait_max = 1.0

        for attempt in range(attempts):
            try:
                return await safe_json_fetch(self.client, url)
            except OversizedResponseError:
                raise
            except (httpx.HTTPError, ValueError) as e:
                if attempt == attempts - 1:
                    raise CoreasonGatewayError(f"Failed to fetch {what} from {url}: {e}") from e

                sleep_time = min(wait_initial * (2**attempt), wait_max)
                logger.warning(f"Fetching {what} failed (attempt {attempt + 1}/{attempts}), retrying in {sleep_time}s")
                await anyio.sleep(sleep_time)

        raise CoreasonGatewayError(f"Failed to fetch {what} from {url}")  # pragma: no cover

    async def _refresh_critical_section(self, force_refresh: bool) -> dict[str, Any]:
        """
        Refreshes the JWKS. Must be called while holding the lock.
        """
        current_time = time.time()

        # Double check inside lock
        is_cache_valid = self._jwks_cache is not None and (current_time - self._last_update) < self.cache_ttl
        is_in_cooldown = self._jwks_cache is not None and (current_time - self._last_update) < self.refresh_cooldown

        if not force_refresh and is_cache_valid:
            return self._jwks_cache  # type: ignore[return-value]

        if force_refresh and is_in_cooldown:
            logger.warning("JWKS refresh cooldown active. Returning cached keys despite force_refresh request.")
            return self._jwks_cache  # type: ignore[return-value]

        try:
            oidc_config = OIDCConfig.model_validate(await self._fetch_json(self.discovery_url, "OIDC configuration"))
            jwks = JWKS.model_validate(await self._fetch_json(oidc_config.jwks_uri, "JWKS"))
        except ValidationError as e:
            raise CoreasonGatewayError(f"Invalid OIDC metadata from {self.issuer}: {e}") from e

        self._jwks_cache = jwks.model_dump()
        self._last_update = current_time
        return self._jwks_cache

    async def get_jwks(self, force_refresh: bool = False) -> dict[str, Any]:
        """
        Returns the JWKS, using the cache if valid.

        Args:
            force_refresh: If True, bypasses the cache (subject to the refresh cooldown).

        Returns:
            dict[str, Any]: The JWKS dictionary.

        Raises:
            CoreasonGatewayError: If fetching fails.
        """
        if self._lock is None:
            self._lock = anyio.Lock()

        if not force_refresh:
            if self._jwks_cache is not None and (time.time() - self._last_update) < self.cache_ttl:
                return self._jwks_cache

        async with self._lock:
            return await self._refresh_critical_section(force_refresh)
