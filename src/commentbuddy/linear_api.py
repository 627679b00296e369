"""Direct Linear GraphQL client using httpx.

Authentication priority (resolved once per process, then cached):
1. ``LINEAR_API_KEY`` env var: personal API key, sent as the raw ``Authorization`` value
2. ``LINEAR_OAUTH_TOKEN`` env var: OAuth access token, sent as ``Bearer <token>``
3. Raises :exc:`LinearAuthError` with setup URL

New users: https://linear.app/settings/account/security
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from commentbuddy.config import get_config
from commentbuddy.errors import BackendError

logger = logging.getLogger(__name__)

API_KEY_CREATE_URL = "https://linear.app/settings/account/security"

_auth_header: str | None = None
_auth_resolved: bool = False


# ---------------------------------------------------------------------------
# Error types
# ---------------------------------------------------------------------------


class LinearError(BackendError):
    """Raised when a Linear API call fails."""

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


class LinearAuthError(LinearError):
    """Raised when Linear authentication fails or no credentials are available."""

    def __init__(self, detail: str = "") -> None:
        msg = f"Linear credentials not found. Set LINEAR_API_KEY (or LINEAR_OAUTH_TOKEN).\nCreate a personal API key: {API_KEY_CREATE_URL}"
        if detail:
            msg = f"{detail}\n{msg}"
        super().__init__(msg, status_code=401)


class LinearNotFoundError(LinearError):
    """Raised when the backend reports that a requested entity does not exist."""


# ---------------------------------------------------------------------------
# Credential resolution
# ---------------------------------------------------------------------------


def _resolve_auth_header() -> str | None:
    """Build the ``Authorization`` header value from the environment."""
    api_key = os.environ.get("LINEAR_API_KEY", "").strip()
    if api_key:
        logger.debug("Linear credentials resolved from LINEAR_API_KEY")
        return api_key

    oauth_token = os.environ.get("LINEAR_OAUTH_TOKEN", "").strip()
    if oauth_token:
        logger.debug("Linear credentials resolved from LINEAR_OAUTH_TOKEN")
        return f"Bearer {oauth_token}"

    return None


def get_auth_header() -> str:
    """Return the ``Authorization`` header value, resolving it lazily on first call.

    Raises:
        LinearAuthError: If no credentials can be found.
    """
    global _auth_header, _auth_resolved  # noqa: PLW0603
    if not _auth_resolved:
        _auth_header = _resolve_auth_header()
        _auth_resolved = True
    if _auth_header is None:
        raise LinearAuthError
    return _auth_header


def reset_token() -> None:
    """Reset cached credentials (for testing)."""
    global _auth_header, _auth_resolved  # noqa: PLW0603
    _auth_header = None
    _auth_resolved = False


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------

_HTTP_UNAUTHORIZED = 401
_HTTP_FORBIDDEN = 403
_HTTP_TOO_MANY_REQUESTS = 429

_NOT_FOUND_MARKERS = ("entity not found", "could not find", "not found")


def _raise_for_status(response: httpx.Response) -> None:
    """Raise the appropriate :exc:`LinearError` subclass for non-2xx responses."""
    if response.is_success:
        return

    if response.status_code == _HTTP_UNAUTHORIZED:
        raise LinearAuthError

    try:
        body = response.json()
        errors = body.get("errors") or []
        msg = "; ".join(e.get("message", str(e)) for e in errors) or body.get("message", response.text)
    except Exception:
        msg = response.text

    if response.status_code == _HTTP_FORBIDDEN:
        msg = f"Linear API access forbidden: {msg}"
        raise LinearAuthError(msg)

    if response.status_code == _HTTP_TOO_MANY_REQUESTS:
        msg = f"Linear API rate limit exceeded: {msg}"
        raise LinearError(msg, status_code=_HTTP_TOO_MANY_REQUESTS)

    msg = f"Linear API error {response.status_code}: {msg}"
    raise LinearError(msg, status_code=response.status_code)


def _is_not_found(error: dict[str, Any]) -> bool:
    """Check whether a GraphQL error entry reports a missing entity."""
    extensions = error.get("extensions") or {}
    if str(extensions.get("code", "")).upper() == "ENTITY_NOT_FOUND":
        return True
    message = str(error.get("message", "")).lower()
    return any(marker in message for marker in _NOT_FOUND_MARKERS)


# ---------------------------------------------------------------------------
# GraphQL
# ---------------------------------------------------------------------------


async def graphql(query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
    """Execute a Linear GraphQL query or mutation.

    Nothing is cached: every call hits the backend, so a read taken right
    before a mutation reflects the backend's state at that moment.

    Args:
        query: GraphQL query or mutation string.
        variables: Optional variables dict.

    Returns:
        The ``data`` object of the response.

    Raises:
        LinearNotFoundError: When every GraphQL error reports a missing entity.
        LinearError: On other GraphQL errors or HTTP failure.
        LinearAuthError: On authentication failure.
    """
    is_mutation = query.strip().lower().startswith("mutation")
    api = get_config().api

    headers = {
        "Authorization": get_auth_header(),
        "Content-Type": "application/json",
    }
    payload: dict[str, Any] = {"query": query}
    if variables:
        payload["variables"] = variables

    logger.debug("GraphQL %s", "mutation" if is_mutation else "query")
    try:
        async with httpx.AsyncClient(timeout=api.timeout_seconds) as client:
            response = await client.post(api.url, headers=headers, json=payload)
    except httpx.HTTPError as exc:
        msg = f"Linear API request failed: {exc}"
        raise LinearError(msg) from exc

    _raise_for_status(response)
    result: dict[str, Any] = response.json()

    errors = result.get("errors")
    if errors:
        messages = "; ".join(e.get("message", str(e)) for e in errors)
        if all(_is_not_found(e) for e in errors):
            raise LinearNotFoundError(messages, status_code=404)
        msg = f"GraphQL error: {messages}"
        raise LinearError(msg)

    data = result.get("data")
    if data is None:
        msg = "No data returned from Linear API"
        raise LinearError(msg)
    return data


_VIEWER_QUERY = """
query {
  viewer { id name email }
}
"""


async def get_viewer() -> dict[str, Any]:
    """Return the authenticated user (``id``, ``name``, ``email``)."""
    data = await graphql(_VIEWER_QUERY)
    return data.get("viewer") or {}
