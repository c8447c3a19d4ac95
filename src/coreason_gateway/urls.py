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
Derivation of the gateway's canonical external URLs.
"""

from coreason_gateway.models import CustomDomain, DomainStrategy

CALLBACK_PATH = "callback"
LOGOUT_PATH = "logout"


def get_api_url(strategy: DomainStrategy, generated_url: str, path: str | None = None) -> str:
    """
    Returns the externally reachable URL of the gateway, optionally for a sub-path.

    Pure and deterministic: the callback URL registered with the identity provider,
    the redirect URL published to clients and the exported base URL are all derived here,
    so they always agree.

    Args:
        strategy: How the gateway is reached (generated invoke URL or custom domain).
        generated_url: The gateway's own generated invoke URL.
        path: Optional sub-path (e.g. "callback"). Rendered with a trailing slash.

    Returns:
        str: `https://{hostname}/{base_path}/{path}/` for a custom domain,
        `{generated_url}/{path}/` otherwise. Without a path, the base URL alone.
    """
    path = (path or "").strip("/")
    if isinstance(strategy, CustomDomain):
        base = f"https://{strategy.hostname}/{strategy.base_path}/"
    elif not path:
        return generated_url
    else:
        base = generated_url if generated_url.endswith("/") else f"{generated_url}/"

    suffix = f"{path}/" if path else ""
    return f"{base}{suffix}"
