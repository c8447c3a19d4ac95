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
Authentication gateway: publishes the client configuration, completes the OAuth2
authorization-code exchange and gates the protected API behind a verified identity token.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .app import create_app
from .config import GatewaySettings
from .config_store import MemoryConfigStore, S3ConfigStore
from .exceptions import ConfigUnavailable, MissingAuthorizationCode, ProvisioningError, TokenExchangeFailed
from .handlers import GatewayPipeline
from .models import AppConfig, CustomDomain, GeneratedDomain, ProvisioningResult
from .provisioning import ConfigResolver
from .token_exchange import TokenExchangeClient
from .urls import get_api_url

__all__ = [
    "AppConfig",
    "ConfigResolver",
    "ConfigUnavailable",
    "CustomDomain",
    "GatewayPipeline",
    "GatewaySettings",
    "GeneratedDomain",
    "MemoryConfigStore",
    "MissingAuthorizationCode",
    "ProvisioningError",
    "ProvisioningResult",
    "S3ConfigStore",
    "TokenExchangeClient",
    "TokenExchangeFailed",
    "create_app",
    "get_api_url",
]
