"""Authenticators for network stores.

Each authenticator updates a request's headers and query parameters in
place. Credentials are given directly or named by an environment variable
read on every request, so rotated secrets are picked up without a reload.
"""

import os
from collections.abc import MutableMapping
from typing import Any

from journalipy.core.errors import ValidationError


def _secret(value: str | None, env: str | None) -> str:
    if value is not None:
        return value
    if env is None:
        raise ValidationError("Either a value or an environment variable is required")
    try:
        return os.environ[env]
    except KeyError:
        raise ValidationError(f"Environment variable not set: {env}") from None


class BearerAuthenticator:
    """Send ``Authorization: Bearer <token>``."""

    def __init__(self, token: str | None = None, env: str | None = None) -> None:
        if token is None and env is None:
            raise ValidationError("Bearer authenticator requires token or env")
        self.token = token
        self.env = env

    def apply(self, headers: MutableMapping[str, str], query: MutableMapping[str, Any]) -> None:
        headers["Authorization"] = f"Bearer {_secret(self.token, self.env)}"


class HeaderAuthenticator:
    """Send a credential in a named header."""

    def __init__(self, header: str, value: str | None = None, env: str | None = None) -> None:
        if value is None and env is None:
            raise ValidationError("Header authenticator requires value or env")
        self.header = header
        self.value = value
        self.env = env

    def apply(self, headers: MutableMapping[str, str], query: MutableMapping[str, Any]) -> None:
        headers[self.header] = _secret(self.value, self.env)


class QueryAuthenticator:
    """Send a credential as a query parameter."""

    def __init__(self, parameter: str, value: str | None = None, env: str | None = None) -> None:
        if value is None and env is None:
            raise ValidationError("Query authenticator requires value or env")
        self.parameter = parameter
        self.value = value
        self.env = env

    def apply(self, headers: MutableMapping[str, str], query: MutableMapping[str, Any]) -> None:
        query[self.parameter] = _secret(self.value, self.env)
