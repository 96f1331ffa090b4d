import pytest

from portal.config.settings import AppConfig
from portal.core.integrations.registry import IntegrationRegistry
from portal.core.reporting import LoggingErrorReporter
from portal.core.store import InMemoryAccountStore
from portal.flask_app import create_app
from tests.conftest import bearer


def test_collaborators_are_exposed_in_config(flask_app, app_config, store, registry, reporter):
    assert flask_app.config["APP_CONFIG"] is app_config
    assert flask_app.config["ACCOUNT_STORE"] is store
    assert flask_app.config["INTEGRATION_REGISTRY"] is registry
    assert flask_app.config["ERROR_REPORTER"] is reporter
    assert flask_app.config["DEMO_MODE"] is True


def test_preinitialized_registry_is_not_registered_twice(flask_app, registry):
    # create_app ran register_integrations against the already-built registry
    assert [integration.id for integration in registry.get_all()] == ["irc", "xmpp"]


def test_integrations_built_from_config(app_config):
    registry = IntegrationRegistry()

    app = create_app(cfg=app_config, registry=registry)

    assert registry.initialized
    assert "irc" in registry and "xmpp" in registry
    assert isinstance(app.config["ACCOUNT_STORE"], InMemoryAccountStore)
    assert isinstance(app.config["ERROR_REPORTER"], LoggingErrorReporter)


def test_no_backends_configured():
    app = create_app(cfg=AppConfig(demo_mode=False))
    assert len(app.config["INTEGRATION_REGISTRY"]) == 0


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.data == b"ok"
    assert resp.content_type.startswith("text/plain")


def test_ready_lists_integrations(client):
    resp = client.get("/ready")
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True, "integrations": {"irc": True, "xmpp": True}}


def test_ready_without_registry_is_503(flask_app):
    flask_app.config["INTEGRATION_REGISTRY"] = None
    with flask_app.test_client() as other:
        assert other.get("/ready").status_code == 503


@pytest.mark.parametrize(
    "headers",
    [
        {"X-Forwarded-Proto": "http"},
        {"X-Forwarded-For": "10.0.0.1, 10.0.0.2"},
    ],
)
def test_untrusted_forwarded_headers_rejected(client, headers):
    resp = client.get("/api/integrations", headers={**bearer("alice"), **headers})
    assert resp.status_code == 400
    assert resp.get_json()["ok"] is False


def test_unknown_route_is_json_404(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.get_json()["ok"] is False


def test_method_not_allowed_is_json(client):
    resp = client.put("/api/integrations", headers=bearer("alice"))
    assert resp.status_code == 405
    assert resp.get_json()["ok"] is False
