"""Pytest shared fixtures for integration account tests."""
import os
import pathlib
import sys
from typing import Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any portal imports
os.environ.setdefault("DEMO_MODE", "true")

import pytest
import requests

from portal.config.settings import AppConfig, IrcSettings, XmppSettings
from portal.core import audit
from portal.core.errors import ConflictError, ExternalServiceError
from portal.core.integrations.irc.atheme import AthemeFaultError, FAULT_ALREADYEXISTS, FAULT_NOSUCH_TARGET
from portal.core.integrations.irc.integration import IrcIntegration
from portal.core.integrations.registry import IntegrationRegistry
from portal.core.integrations.xmpp.integration import XmppIntegration
from portal.core.store import InMemoryAccountStore


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """
    Prevent unit tests from reaching Atheme, Prosody or the OIDC provider.

    Tests that exercise the HTTP clients patch these again with their own stubs.
    """
    if request.node.get_closest_marker("integration"):
        return

    def _blocked(*args, **kwargs):
        raise RuntimeError(f"Unexpected network access in tests: {args[:2]}")

    monkeypatch.setattr(requests, "post", _blocked)
    monkeypatch.setattr(requests, "get", _blocked)
    monkeypatch.setattr(requests, "request", _blocked)


@pytest.fixture(autouse=True)
def temp_audit_dir(monkeypatch, tmp_path):
    """Write audit events to an isolated directory for each test."""
    audit_dir = tmp_path / "audit"
    audit_file = audit_dir / "integration-events.jsonl"
    monkeypatch.setattr(audit, "AUDIT_LOG_DIR", audit_dir)
    monkeypatch.setattr(audit, "AUDIT_LOG_FILE", audit_file)
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY", "test-signing-key-for-audit-trail")
    yield audit_dir, audit_file


# ─────────────────────────────────────────────────────────────────────────────
# Backend fakes
# ─────────────────────────────────────────────────────────────────────────────
class FakeAthemeClient:
    """In-memory stand-in for AthemeClient (NickServ only)."""

    def __init__(self):
        self.nicks: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.fail_with: Optional[Exception] = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def register_nick(self, nick, password, email):
        self.calls.append(("register", nick))
        self._maybe_fail()
        if nick.lower() in self.nicks:
            raise AthemeFaultError(FAULT_ALREADYEXISTS, f"{nick} is already registered.")
        self.nicks[nick.lower()] = {"password": password, "email": email, "frozen": False}

    def drop_nick(self, nick, oper_account, oper_password):
        self.calls.append(("fdrop", nick))
        self._maybe_fail()
        return self.nicks.pop(nick.lower(), None) is not None

    def freeze_nick(self, nick, frozen, oper_account, oper_password, reason=None):
        self.calls.append(("freeze", nick, frozen))
        self._maybe_fail()
        if nick.lower() not in self.nicks:
            raise AthemeFaultError(FAULT_NOSUCH_TARGET, f"{nick} is not registered.")
        self.nicks[nick.lower()]["frozen"] = frozen


class RecordingErrorReporter:
    """ErrorReporter that keeps reported errors for assertions."""

    def __init__(self):
        self.reports: list[tuple[BaseException, dict[str, str]]] = []

    def capture_exception(self, error, tags):
        self.reports.append((error, dict(tags)))


class FakeProsodyClient:
    """In-memory stand-in for ProsodyClient."""

    def __init__(self):
        self.accounts: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.fail_with: Optional[Exception] = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def get_account(self, username):
        self.calls.append(("get", username))
        self._maybe_fail()
        account = self.accounts.get(username)
        if account is None:
            return None
        return {key: value for key, value in account.items() if key != "password"}

    def account_exists(self, username):
        return self.get_account(username) is not None

    def create_account(self, username, password, display_name=None):
        self.calls.append(("create", username))
        self._maybe_fail()
        if username in self.accounts:
            raise ConflictError("Username already taken in XMPP server")
        self.accounts[username] = {"username": username, "password": password, "name": display_name or "", "enabled": True}

    def update_account(self, username, **fields):
        self.calls.append(("update", username, dict(fields)))
        self._maybe_fail()
        if username not in self.accounts:
            raise ExternalServiceError("[404] not found", service="prosody", status_code=404)
        self.accounts[username].update(fields)

    def delete_account(self, username):
        self.calls.append(("delete", username))
        self._maybe_fail()
        return self.accounts.pop(username, None) is not None


# ─────────────────────────────────────────────────────────────────────────────
# Settings and adapters
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def irc_settings():
    return IrcSettings(
        jsonrpc_url="https://services.test:8080/jsonrpc",
        oper_account="portal",
        oper_password="oper-secret",
        server="irc.test",
        port=6697,
    )


@pytest.fixture()
def xmpp_settings():
    return XmppSettings(
        rest_url="https://xmpp.test/rest",
        domain="xmpp.test",
        username="admin@xmpp.test",
        password="rest-secret",
    )


@pytest.fixture()
def app_config(irc_settings, xmpp_settings):
    return AppConfig(
        demo_mode=True,
        oidc_issuer="https://sso.test/realms/portal",
        jwks_url="https://sso.test/realms/portal/protocol/openid-connect/certs",
        admin_roles=["admin", "staff"],
        irc=irc_settings,
        xmpp=xmpp_settings,
    )


@pytest.fixture()
def store():
    return InMemoryAccountStore()


@pytest.fixture()
def atheme():
    return FakeAthemeClient()


@pytest.fixture()
def prosody():
    return FakeProsodyClient()


@pytest.fixture()
def irc(irc_settings, store, atheme):
    return IrcIntegration(irc_settings, store, client=atheme)


@pytest.fixture()
def xmpp(xmpp_settings, store, prosody):
    return XmppIntegration(xmpp_settings, store, client=prosody)


@pytest.fixture()
def registry(irc, xmpp):
    reg = IntegrationRegistry()
    reg.initialize(lambda: [irc, xmpp])
    return reg


@pytest.fixture()
def reporter():
    return RecordingErrorReporter()


# ─────────────────────────────────────────────────────────────────────────────
# Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def flask_app(app_config, store, registry, reporter):
    from portal.flask_app import create_app

    app = create_app(cfg=app_config, store=store, registry=registry, reporter=reporter)
    app.config.update(TESTING=True)
    return app


@pytest.fixture()
def client(flask_app, monkeypatch):
    """Flask test client; bearer tokens are "<sub>[:role,role]" strings."""
    from portal.api import decorators

    def _fake_validate(token):
        if token == "invalid":
            raise decorators.TokenValidationError("Invalid signature (token tampered or wrong key)")
        sub, _, roles = token.partition(":")
        return {
            "sub": sub,
            "email": f"{sub}@example.org",
            "realm_access": {"roles": [role for role in roles.split(",") if role]},
        }

    monkeypatch.setattr(decorators, "validate_jwt_token", _fake_validate)

    with flask_app.test_client() as client:
        yield client


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires running stack)"
    )
