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
Config Store: the object storage holding the single published AppConfig document.
"""

from typing import Any, Protocol

import anyio
import boto3
from pydantic import ValidationError

from coreason_gateway.exceptions import ConfigUnavailable
from coreason_gateway.models import AppConfig
from coreason_gateway.utils.logger import logger


class ConfigStore(Protocol):
    """Protocol for the object storage backend. Only get-by-key and put-by-key are required."""

    async def get_object(self, key: str) -> bytes | None:
        """Returns the object body, or None if no object exists under `key`."""
        ...

    async def put_object(self, key: str, body: bytes, content_type: str = "application/json") -> None:
        """Writes `body` under `key`, replacing any previous object."""
        ...


class MemoryConfigStore:
    """
    In-memory implementation of ConfigStore.
    Suitable for tests and local development only.
    """

    def __init__(self, bucket_name: str = "memory") -> None:
        self.bucket_name = bucket_name
        self._objects: dict[str, bytes] = {}

    async def get_object(self, key: str) -> bytes | None:
        return self._objects.get(key)

    async def put_object(self, key: str, body: bytes, content_type: str = "application/json") -> None:
        _ = content_type
        self._objects[key] = bytes(body)


class S3ConfigStore:
    """
    S3-backed ConfigStore.

    boto3 is blocking, so every call runs in a worker thread.

    Attributes:
        bucket_name (str): The bucket holding the AppConfig document.
    """

    def __init__(self, bucket_name: str, client: Any | None = None, region: str | None = None) -> None:
        """
        Initialize the S3ConfigStore.

        Args:
            bucket_name: The bucket holding the AppConfig document.
            client: A boto3 S3 client (optional). Created from the default session if not provided.
            region: Region for the default client.
        """
        if client is None:
            client = boto3.client("s3", region_name=region)
        self.bucket_name = bucket_name
        self._client = client

    def _get(self, key: str) -> bytes | None:
        try:
            response = self._client.get_object(Bucket=self.bucket_name, Key=key)
        except self._client.exceptions.NoSuchKey:
            return None
        body = response.get("Body")
        if body is None:
            return None
        return body.read()  # type: ignore[no-any-return]

    def _put(self, key: str, body: bytes, content_type: str) -> None:
        self._client.put_object(Bucket=self.bucket_name, Key=key, Body=body, ContentType=content_type)

    async def get_object(self, key: str) -> bytes | None:
        return await anyio.to_thread.run_sync(self._get, key)

    async def put_object(self, key: str, body: bytes, content_type: str = "application/json") -> None:
        await anyio.to_thread.run_sync(self._put, key, body, content_type)


async def load_config_document(store: ConfigStore, key: str) -> tuple[AppConfig, bytes]:
    """
    Reads and parses the published AppConfig. Never cached.

    Args:
        store: The Config Store.
        key: The well-known key of the AppConfig document.

    Returns:
        tuple[AppConfig, bytes]: The parsed configuration and the document exactly as stored.

    Raises:
        ConfigUnavailable: If the object is absent, unreadable or does not parse as an AppConfig.
    """
    try:
        body = await store.get_object(key)
    except ConfigUnavailable:
        raise
    except Exception as e:
        logger.error(f"Failed to read config object '{key}': {e}")
        raise ConfigUnavailable(f"Config object '{key}' could not be read") from e

    if not body:
        logger.error(f"Config object '{key}' is missing. Has configuration resolution run?")
        raise ConfigUnavailable(f"Config object '{key}' has not been published")

    try:
        return AppConfig.model_validate_json(body), body
    except ValidationError as e:
        logger.error(f"Config object '{key}' is malformed: {e.error_count()} validation error(s)")
        raise ConfigUnavailable(f"Config object '{key}' is malformed") from e


async def load_app_config(store: ConfigStore, key: str) -> AppConfig:
    """Reads and parses the published AppConfig. See `load_config_document`."""
    config, _ = await load_config_document(store, key)
    return config
