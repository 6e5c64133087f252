"""
Supabase Auth client used for bearer token verification and admin
account provisioning.

The provider is constructed once at startup and closed on shutdown.
Every request is bounded by the configured timeout.
"""

import logging
from typing import Any, Optional, Protocol

import httpx

from common.exceptions import (
    AuthenticationError,
    IdentityProviderError,
    IdentityTimeoutError,
)
from common.schemas import Identity

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    def verify_token(self, token: str) -> Identity:
        ...

    def create_admin_user(
        self,
        email: str,
        password: str,
        name: Optional[str]
    ) -> dict[str, Any]:
        ...


def identity_from_user(user: dict[str, Any]) -> Identity:
    """
    Build an Identity from a Supabase user object.

    Args:
        user: User JSON as returned by the auth API

    Returns:
        Identity: Caller identity with the admin flag from user_metadata
    """
    metadata = user.get("user_metadata") or {}
    return Identity(
        id=str(user.get("id", "")),
        email=user.get("email"),
        name=metadata.get("name"),
        is_admin=metadata.get("isAdmin") is True
    )


class SupabaseIdentityProvider:
    """
    Identity provider backed by the Supabase Auth REST API.

    Args:
        supabase_url: Supabase project URL
        service_role_key: Supabase service role secret key
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        supabase_url: str,
        service_role_key: str,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self._service_role_key = service_role_key
        self._client = httpx.Client(
            base_url=f"{supabase_url.rstrip('/')}/auth/v1",
            headers={
                "apikey": service_role_key,
                "Content-Type": "application/json"
            },
            timeout=timeout,
            transport=transport
        )

    def close(self) -> None:
        self._client.close()

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Identity provider timed out on {method} {path}")
            raise IdentityTimeoutError(
                "Identity provider timed out"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Identity provider request failed: {e}")
            raise IdentityProviderError(
                "Identity provider unavailable"
            ) from e

    def verify_token(self, token: str) -> Identity:
        """
        Resolve a user access token to an identity.

        Args:
            token: Bearer access token issued by Supabase

        Returns:
            Identity: Authenticated caller

        Raises:
            AuthenticationError: If the token is empty or rejected
            IdentityTimeoutError: If the provider does not answer in time
            IdentityProviderError: If the provider fails otherwise
        """
        if not token:
            raise AuthenticationError("Unauthorized - Admin access required")

        response = self._send(
            "GET",
            "/user",
            headers={"Authorization": f"Bearer {token}"}
        )

        if response.status_code in (400, 401, 403, 404):
            logger.warning(
                f"Token rejected by identity provider "
                f"({response.status_code})"
            )
            raise AuthenticationError("Unauthorized - Admin access required")

        if response.is_error:
            logger.error(
                f"Identity provider returned {response.status_code} "
                f"while verifying token"
            )
            raise IdentityProviderError("Identity provider unavailable")

        return identity_from_user(response.json())

    def create_admin_user(
        self,
        email: str,
        password: str,
        name: Optional[str]
    ) -> dict[str, Any]:
        """
        Create a confirmed user carrying the admin flag.

        Args:
            email: Account email
            password: Account password
            name: Display name stored in user_metadata

        Returns:
            dict: The created Supabase user

        Raises:
            IdentityProviderError: With the provider's status and message
                when the user cannot be created
        """
        response = self._send(
            "POST",
            "/admin/users",
            headers={"Authorization": f"Bearer {self._service_role_key}"},
            json={
                "email": email,
                "password": password,
                "user_metadata": {"name": name, "isAdmin": True},
                "email_confirm": True
            }
        )

        if response.is_error:
            message = _error_message(response)
            logger.error(f"Error creating admin user {email}: {message}")
            status = response.status_code if response.status_code < 500 else 502
            raise IdentityProviderError(message, status_code=status)

        body = response.json()
        # Older GoTrue versions wrap the user object
        return body.get("user", body) if isinstance(body, dict) else body


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or "Identity provider error"
    if isinstance(body, dict):
        for field in ("msg", "message", "error_description", "error"):
            if body.get(field):
                return str(body[field])
    return "Identity provider error"
