import threading

import pytest

from portal.core.errors import ConflictError, NotFoundError
from portal.core.integrations import build_integrations, register_integrations
from portal.core.integrations.base import Integration
from portal.core.integrations.registry import IntegrationRegistry
from portal.core.models import IntegrationDescriptor


class StubIntegration(Integration):
    def __init__(self, integration_id, store, enabled=True):
        super().__init__(
            IntegrationDescriptor(id=integration_id, name=integration_id.upper(), description="stub", enabled=enabled),
            store,
        )
        self.secret_token = "do-not-leak"

    def create_account(self, user_id, data):
        raise NotImplementedError

    def get_account(self, user_id):
        return None

    def update_account(self, account_id, data):
        raise NotImplementedError

    def delete_account(self, account_id):
        return None


def test_register_and_lookup(store):
    registry = IntegrationRegistry()
    irc = StubIntegration("irc", store)
    registry.register(irc)

    assert registry.get("irc") is irc
    assert registry.get_or_raise("irc") is irc
    assert registry.get("nope") is None
    assert "irc" in registry
    assert len(registry) == 1


def test_duplicate_id_is_rejected(store):
    registry = IntegrationRegistry()
    first = StubIntegration("irc", store)
    registry.register(first)

    with pytest.raises(ConflictError) as exc:
        registry.register(StubIntegration("irc", store))

    assert "irc" in exc.value.detail
    assert registry.get("irc") is first


def test_get_or_raise_names_the_id(store):
    with pytest.raises(NotFoundError) as exc:
        IntegrationRegistry().get_or_raise("matrix")
    assert exc.value.detail == "Unknown integration: matrix"


def test_get_all_preserves_registration_order(store):
    registry = IntegrationRegistry()
    for integration_id in ("xmpp", "irc", "matrix"):
        registry.register(StubIntegration(integration_id, store))
    assert [integration.id for integration in registry.get_all()] == ["xmpp", "irc", "matrix"]


def test_enabled_helpers(store):
    registry = IntegrationRegistry()
    registry.register(StubIntegration("irc", store))
    registry.register(StubIntegration("xmpp", store, enabled=False))

    assert [integration.id for integration in registry.get_enabled()] == ["irc"]
    assert registry.is_enabled("irc") is True
    assert registry.is_enabled("xmpp") is False
    assert registry.is_enabled("unknown") is False


def test_public_info_exposes_only_descriptor_fields(store):
    registry = IntegrationRegistry()
    registry.register(StubIntegration("irc", store))

    info = registry.get_public_info()

    assert info == [{"id": "irc", "name": "IRC", "description": "stub", "enabled": True}]
    assert "do-not-leak" not in str(info)


def test_initialize_is_idempotent(store):
    registry = IntegrationRegistry()
    calls = []

    def factory():
        calls.append(1)
        return [StubIntegration("irc", store)]

    assert registry.initialize(factory) is True
    assert registry.initialize(factory) is False
    assert len(calls) == 1
    assert len(registry) == 1
    assert registry.initialized


def test_initialize_failure_leaves_registry_empty(store):
    registry = IntegrationRegistry()

    def factory():
        yield StubIntegration("irc", store)
        raise RuntimeError("bad config")

    with pytest.raises(RuntimeError):
        registry.initialize(factory)

    assert len(registry) == 0
    assert not registry.initialized


def test_initialize_with_duplicate_ids_registers_nothing_and_can_retry(store):
    registry = IntegrationRegistry()

    with pytest.raises(ConflictError, match="irc"):
        registry.initialize(lambda: [StubIntegration("irc", store), StubIntegration("irc", store)])

    assert len(registry) == 0
    assert not registry.initialized

    assert registry.initialize(lambda: [StubIntegration("irc", store), StubIntegration("xmpp", store)]) is True
    assert [integration.id for integration in registry.get_all()] == ["irc", "xmpp"]


def test_initialize_rejects_id_registered_earlier(store):
    registry = IntegrationRegistry()
    registry.register(StubIntegration("irc", store))

    with pytest.raises(ConflictError):
        registry.initialize(lambda: [StubIntegration("xmpp", store), StubIntegration("irc", store)])

    assert "xmpp" not in registry
    assert not registry.initialized


def test_concurrent_registration_of_same_id_has_one_winner(store):
    registry = IntegrationRegistry()
    errors = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        try:
            registry.register(StubIntegration("irc", store))
        except ConflictError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(registry) == 1
    assert len(errors) == 7


def test_register_integrations_builds_configured_backends(app_config, store):
    registry = IntegrationRegistry()
    assert register_integrations(registry, app_config, store) is True
    assert register_integrations(registry, app_config, store) is False
    assert [integration.id for integration in registry.get_all()] == ["irc", "xmpp"]


def test_unconfigured_backends_are_not_built(app_config, store):
    app_config.irc = None
    app_config.xmpp = None
    assert build_integrations(app_config, store) == []
