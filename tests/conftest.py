"""Global test fixtures for commentbuddy."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from helpers.fake_linear import FakeLinear

from commentbuddy import linear_api
from commentbuddy.config import Config, set_config

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


@pytest.fixture(autouse=True)
def _default_config(monkeypatch: pytest.MonkeyPatch):
    """Reset config and cached credentials before every test.

    A ``.commentbuddy.toml`` in the developer's checkout or a real
    ``LINEAR_API_KEY`` in their shell must not leak into tests.
    """
    monkeypatch.setenv("LINEAR_API_KEY", "lin_api_test_key")
    monkeypatch.delenv("LINEAR_OAUTH_TOKEN", raising=False)
    monkeypatch.delenv("COMMENTBUDDY_LOG_LEVEL", raising=False)
    set_config(Config())
    linear_api.reset_token()
    yield
    set_config(Config())
    linear_api.reset_token()


@pytest.fixture
def fake_linear(mocker: MockerFixture) -> FakeLinear:
    """A fake Linear backend with one issue (ENG-1) and no comments, wired into the client."""
    fake = FakeLinear()
    fake.add_issue("ENG-1")
    mocker.patch("commentbuddy.linear_api.graphql", fake.graphql)
    return fake
