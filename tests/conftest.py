# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_gateway

import os
from collections.abc import Generator
from unittest.mock import patch

import pytest

from coreason_gateway.config import GatewaySettings
from coreason_gateway.config_store import MemoryConfigStore
from coreason_gateway.models import AppConfig
from coreason_gateway.provisioning import build_app_config

GENERATED_URL = "https://abc123.execute-api.us-east-1.amazonaws.com/stage/"
AUTH_ENDPOINT = "https://coreason-test.auth.us-east-1.amazoncognito.com"


class CountingExchanger:
    """Substitutable token exchanger that records every call."""

    def __init__(self, id_token: str = "tok123", error: Exception | None = None) -> None:
        self.id_token = id_token
        self.error = error
        self.calls: list[tuple[AppConfig, str]] = []

    async def exchange_code(self, config: AppConfig, code: str) -> str:
        self.calls.append((config, code))
        if self.error is not None:
            raise self.error
        return self.id_token


@pytest.fixture(autouse=True)
def clean_gateway_env() -> Generator[None, None, None]:
    """Keeps COREASON_GATEWAY_* variables from the host environment out of the tests."""
    with patch.dict(os.environ):
        for key in list(os.environ):
            if key.upper().startswith("COREASON_GATEWAY_"):
                del os.environ[key]
        yield


@pytest.fixture
def settings() -> GatewaySettings:
    return GatewaySettings(
        auth_domain="coreason-test",
        region="us-east-1",
        user_pool_id="us-east-1_TestPool",
        generated_url=GENERATED_URL,
        config_bucket="config-bucket",
        http_timeout=5.0,
    )


@pytest.fixture
def app_config() -> AppConfig:
    return build_app_config(
        client_id="client-abc",
        api_url=GENERATED_URL,
        redirect_url=f"{GENERATED_URL}callback/",
        auth_endpoint=AUTH_ENDPOINT,
    )


@pytest.fixture
def empty_store() -> MemoryConfigStore:
    return MemoryConfigStore(bucket_name="config-bucket")


@pytest.fixture
def published_store(app_config: AppConfig) -> MemoryConfigStore:
    store = MemoryConfigStore(bucket_name="config-bucket")
    store._objects["config.json"] = app_config.to_json().encode("utf-8")
    return store


@pytest.fixture
def exchanger() -> CountingExchanger:
    return CountingExchanger()
