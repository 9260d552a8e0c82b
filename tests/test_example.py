"""Tests for the HackableAppAPI usage example."""

import json

import httpx
import pytest
import structlog

from apitool import example


@pytest.fixture
def hackable_api(api_config, fake_api) -> example.HackableAppAPI:
    """HackableAppAPI wired to the fake API with a user endpoint."""
    fake_api.routes[("POST", "/user")] = lambda request: httpx.Response(
        201,
        json={"id": 7, **json.loads(request.content)},
    )
    fake_api.routes[("DELETE", "/user/7")] = {"deleted": True}
    return example.HackableAppAPI(api_config, transport=fake_api.transport)


def test_get_status_uses_no_auth(hackable_api, fake_api, run):
    """The status endpoint is queried without authorization."""
    status = run(hackable_api, lambda api: api.get_status())

    assert status is example.HackableAppAPI.Status.AVAILABLE
    assert "Authorization" not in fake_api.requests[0].headers


def test_create_user_returns_model(hackable_api, fake_api, run):
    """create_user posts the user and validates the response."""
    user = run(hackable_api, lambda api: api.create_user("hacker", "letmein", "h@x.test"))

    assert user.id == 7
    assert user.username == "hacker"
    (sent,) = fake_api.calls("POST", "/user")
    assert sent.headers["Authorization"] == "abc123"
    assert json.loads(sent.content)["email"] == "h@x.test"


def test_create_and_delete_user(hackable_api, fake_api, run):
    """The scenario creates then deletes a user with one token request."""
    result = run(hackable_api, example.create_and_delete_user)

    assert result == {"deleted": True}
    assert [(r.method, r.url.path) for r in fake_api.requests] == [
        ("GET", "/status"),
        ("POST", "/auth"),
        ("POST", "/user"),
        ("DELETE", "/user/7"),
    ]


def test_create_and_delete_user_unavailable(hackable_api, fake_api, run):
    """An unavailable API stops the scenario before any user is created."""
    fake_api.routes[("GET", "/status")] = 1

    with pytest.raises(example.APIUnavailableError, match="inaccessible"):
        run(hackable_api, example.create_and_delete_user)

    assert fake_api.calls("POST", "/user") == []


def test_main_reports_failure(tmp_path, monkeypatch):
    """main returns a non-zero exit code when the scenario fails."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"host": "https://h.test", "endpoints": {}}))
    monkeypatch.setenv("APITOOL_CONFIG_PATH", str(config_file))

    async def unavailable(config):
        raise example.APIUnavailableError("down")

    monkeypatch.setattr(example, "run", unavailable)

    try:
        assert example.main() == 1
    finally:
        structlog.reset_defaults()
