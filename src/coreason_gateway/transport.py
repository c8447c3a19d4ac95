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
HTTP transport helpers for talking to the identity provider.
"""

import json
from typing import Any

import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from coreason_gateway.exceptions import OversizedResponseError
from coreason_gateway.utils.logger import logger

MAX_RESPONSE_BYTES = 1_000_000


def create_http_client(timeout: float) -> httpx.AsyncClient:
    """
    Creates the outbound client used for identity provider calls.

    Every call is bounded by `timeout`, so a hung identity provider cannot block a request indefinitely.
    The client is instrumented for distributed tracing.

    Args:
        timeout: Timeout in seconds applied to connect, read, write and pool acquisition.

    Returns:
        httpx.AsyncClient: The instrumented client. The caller owns it and must close it.
    """
    client = httpx.AsyncClient(timeout=timeout, follow_redirects=False)
    HTTPXClientInstrumentor().instrument_client(client)
    return client


async def safe_json_fetch(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    max_bytes: int = MAX_RESPONSE_BYTES,
    **kwargs: Any,
) -> Any:
    """
    Performs a request and parses the JSON body, refusing bodies larger than `max_bytes`.

    Args:
        client: The async HTTP client.
        url: The target URL.
        method: The HTTP method.
        max_bytes: Upper bound on the response body size.
        **kwargs: Passed through to `client.stream` (e.g. `data`, `headers`).

    Returns:
        Any: The decoded JSON document.

    Raises:
        httpx.HTTPError: On transport failures or a non-2xx status.
        OversizedResponseError: If the body exceeds `max_bytes`.
        ValueError: If the body is not valid JSON.
    """
    async with client.stream(method, url, **kwargs) as response:
        content_length = response.headers.get("Content-Length")
        if content_length:
            try:
                if int(content_length) > max_bytes:
                    raise OversizedResponseError(f"Response from {url} too large ({content_length} bytes)")
            except ValueError:
                logger.debug(f"Ignoring malformed Content-Length header from {url}")

        content = bytearray()
        async for chunk in response.aiter_bytes():
            content.extend(chunk)
            if len(content) > max_bytes:
                raise OversizedResponseError(f"Response from {url} exceeded {max_bytes} bytes")

        response.raise_for_status()

    return json.loads(content)
