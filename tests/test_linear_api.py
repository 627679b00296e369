"""Tests for the linear_api module (httpx-based Linear GraphQL client)."""

from __future__ import annotations

import json

import httpx
import pytest
import respx
from httpx import Response

from commentbuddy.config import ApiConfig, Config, set_config
from commentbuddy.errors import BackendError
from commentbuddy.linear_api import (
    _HTTP_FORBIDDEN,
    _HTTP_UNAUTHORIZED,
    LinearAuthError,
    LinearError,
    LinearNotFoundError,
    _is_not_found,
    _raise_for_status,
    get_auth_header,
    get_viewer,
    graphql,
    reset_token,
)

LINEAR_URL = "https://api.linear.app/graphql"

# ---------------------------------------------------------------------------
# Error types
# ---------------------------------------------------------------------------


class TestLinearAuthError:
    def test_default_message_contains_setup_url(self):
        err = LinearAuthError()
        assert "LINEAR_API_KEY" in str(err)
        assert "linear.app/settings" in str(err)

    def test_detail_prepended(self):
        err = LinearAuthError("Access denied")
        assert str(err).startswith("Access denied")

    def test_status_code_is_401(self):
        assert LinearAuthError().status_code == _HTTP_UNAUTHORIZED

    def test_is_backend_error(self):
        assert isinstance(LinearAuthError(), BackendError)
        assert isinstance(LinearNotFoundError("x"), BackendError)


# ---------------------------------------------------------------------------
# Credential resolution
# ---------------------------------------------------------------------------


class TestGetAuthHeader:
    def test_api_key_sent_raw(self, monkeypatch):
        monkeypatch.setenv("LINEAR_API_KEY", "lin_api_abc")
        reset_token()
        assert get_auth_header() == "lin_api_abc"

    def test_oauth_token_uses_bearer(self, monkeypatch):
        monkeypatch.delenv("LINEAR_API_KEY")
        monkeypatch.setenv("LINEAR_OAUTH_TOKEN", "oauth123")
        reset_token()
        assert get_auth_header() == "Bearer oauth123"

    def test_api_key_wins_over_oauth(self, monkeypatch):
        monkeypatch.setenv("LINEAR_API_KEY", "lin_api_abc")
        monkeypatch.setenv("LINEAR_OAUTH_TOKEN", "oauth123")
        reset_token()
        assert get_auth_header() == "lin_api_abc"

    def test_missing_credentials_raise(self, monkeypatch):
        monkeypatch.delenv("LINEAR_API_KEY")
        reset_token()
        with pytest.raises(LinearAuthError, match="LINEAR_API_KEY"):
            get_auth_header()

    def test_resolved_once(self, monkeypatch):
        monkeypatch.setenv("LINEAR_API_KEY", "first")
        reset_token()
        assert get_auth_header() == "first"
        monkeypatch.setenv("LINEAR_API_KEY", "second")
        assert get_auth_header() == "first"
        reset_token()
        assert get_auth_header() == "second"


# ---------------------------------------------------------------------------
# _raise_for_status
# ---------------------------------------------------------------------------


class TestRaiseForStatus:
    def test_success_passes(self):
        _raise_for_status(Response(200, json={}))

    def test_401_raises_auth_error(self):
        with pytest.raises(LinearAuthError):
            _raise_for_status(Response(401, json={}))

    def test_403_raises_auth_error(self):
        with pytest.raises(LinearAuthError, match="forbidden"):
            _raise_for_status(Response(_HTTP_FORBIDDEN, json={"errors": [{"message": "nope"}]}))

    def test_429_mentions_rate_limit(self):
        with pytest.raises(LinearError, match="rate limit") as exc_info:
            _raise_for_status(Response(429, json={"errors": [{"message": "slow down"}]}))
        assert exc_info.value.status_code == 429

    def test_other_status_includes_code(self):
        with pytest.raises(LinearError, match="Linear API error 500") as exc_info:
            _raise_for_status(Response(500, text="boom"))
        assert exc_info.value.status_code == 500


class TestIsNotFound:
    def test_extension_code(self):
        assert _is_not_found({"message": "x", "extensions": {"code": "ENTITY_NOT_FOUND"}})

    def test_message_marker(self):
        assert _is_not_found({"message": "Entity not found: Comment"})

    def test_other_error(self):
        assert not _is_not_found({"message": "Argument Validation Error"})


# ---------------------------------------------------------------------------
# graphql
# ---------------------------------------------------------------------------


class TestGraphQL:
    async def test_returns_data(self):
        with respx.mock:
            route = respx.post(LINEAR_URL).mock(return_value=Response(200, json={"data": {"viewer": {"id": "u1"}}}))
            data = await graphql("query { viewer { id } }")

        assert data == {"viewer": {"id": "u1"}}
        request = route.calls.last.request
        assert request.headers["Authorization"] == "lin_api_test_key"
        assert json.loads(request.content) == {"query": "query { viewer { id } }"}

    async def test_sends_variables(self):
        with respx.mock:
            route = respx.post(LINEAR_URL).mock(return_value=Response(200, json={"data": {"comment": None}}))
            await graphql("query($id: String!) { comment(id: $id) { id } }", {"id": "c1"})

        assert json.loads(route.calls.last.request.content)["variables"] == {"id": "c1"}

    async def test_not_found_errors(self):
        body = {"errors": [{"message": "Entity not found: Issue", "extensions": {"code": "ENTITY_NOT_FOUND"}}]}
        with respx.mock:
            respx.post(LINEAR_URL).mock(return_value=Response(200, json=body))
            with pytest.raises(LinearNotFoundError, match="Entity not found"):
                await graphql("query { issue(id: \"X\") { id } }")

    async def test_other_graphql_errors(self):
        body = {"errors": [{"message": "Argument Validation Error"}, {"message": "Entity not found"}]}
        with respx.mock:
            respx.post(LINEAR_URL).mock(return_value=Response(200, json=body))
            with pytest.raises(LinearError, match="GraphQL error") as exc_info:
                await graphql("query { x }")
        assert not isinstance(exc_info.value, LinearNotFoundError)

    async def test_missing_data(self):
        with respx.mock:
            respx.post(LINEAR_URL).mock(return_value=Response(200, json={}))
            with pytest.raises(LinearError, match="No data returned"):
                await graphql("query { x }")

    async def test_http_failure_wrapped(self):
        with respx.mock:
            respx.post(LINEAR_URL).mock(side_effect=httpx.ConnectError("refused"))
            with pytest.raises(LinearError, match="request failed"):
                await graphql("query { x }")

    async def test_unauthorized(self):
        with respx.mock:
            respx.post(LINEAR_URL).mock(return_value=Response(401, json={}))
            with pytest.raises(LinearAuthError):
                await graphql("query { x }")

    async def test_custom_endpoint_from_config(self):
        set_config(Config(api=ApiConfig(url="https://linear.internal/graphql")))
        with respx.mock:
            route = respx.post("https://linear.internal/graphql").mock(
                return_value=Response(200, json={"data": {"ok": True}}),
            )
            await graphql("query { ok }")
        assert route.called

    async def test_every_call_hits_backend(self):
        with respx.mock:
            route = respx.post(LINEAR_URL).mock(return_value=Response(200, json={"data": {"viewer": {"id": "u1"}}}))
            await graphql("query { viewer { id } }")
            await graphql("query { viewer { id } }")
        assert route.call_count == 2


class TestGetViewer:
    async def test_returns_viewer(self):
        viewer = {"id": "u1", "name": "Ada", "email": "ada@example.com"}
        with respx.mock:
            respx.post(LINEAR_URL).mock(return_value=Response(200, json={"data": {"viewer": viewer}}))
            assert await get_viewer() == viewer
