import threading
from unittest import mock

from portal.core.errors import ExternalServiceError
from portal.core.integrations.base import Integration
from portal.core.integrations.cleanup import CleanupOutcome, cleanup_integration_accounts
from portal.core.integrations.registry import IntegrationRegistry
from portal.core.models import AccountStatus, IntegrationAccount, IntegrationDescriptor


class ScriptedIntegration(Integration):
    """Integration whose get/delete behaviour is scripted per test."""

    def __init__(self, integration_id, store, account=None, fail_on=None, barrier=None):
        super().__init__(IntegrationDescriptor(id=integration_id, name=integration_id, description=""), store)
        self.account = account
        self.fail_on = fail_on
        self.barrier = barrier
        self.deleted = []
        self.get_calls = 0
        self.delete_calls = 0

    def create_account(self, user_id, data):
        raise NotImplementedError

    def get_account(self, user_id):
        self.get_calls += 1
        if self.barrier is not None:
            self.barrier.wait(timeout=5)
        if self.fail_on == "get":
            raise ExternalServiceError(f"{self.id} lookup failed")
        if self.account and self.account.user_id == user_id:
            return self.account
        return None

    def update_account(self, account_id, data):
        raise NotImplementedError

    def delete_account(self, account_id):
        self.delete_calls += 1
        if self.fail_on == "delete":
            raise ExternalServiceError(f"{self.id} delete failed")
        self.deleted.append(account_id)


class ExplodingReporter:
    def capture_exception(self, error, tags):
        raise RuntimeError("reporter is down")


def _account(integration_id, user_id="u1"):
    return IntegrationAccount(
        id=f"{integration_id}-acc",
        user_id=user_id,
        integration_id=integration_id,
        external_identity=f"{user_id}-{integration_id}",
        status=AccountStatus.ACTIVE,
    )


def _registry(*integrations):
    registry = IntegrationRegistry()
    for integration in integrations:
        registry.register(integration)
    return registry


def test_empty_registry_returns_no_outcomes(reporter):
    assert cleanup_integration_accounts(IntegrationRegistry(), "u1", reporter=reporter) == []
    assert reporter.reports == []


def test_one_failure_does_not_stop_the_others(store, reporter):
    a = ScriptedIntegration("a", store, account=_account("a"))
    b = ScriptedIntegration("b", store, account=_account("b"), fail_on="delete")
    c = ScriptedIntegration("c", store, account=_account("c"))

    outcomes = cleanup_integration_accounts(_registry(a, b, c), "u1", reporter=reporter)

    assert a.deleted == ["a-acc"]
    assert c.deleted == ["c-acc"]
    assert [outcome.integration_id for outcome in outcomes] == ["a", "b", "c"]
    assert outcomes[1] == CleanupOutcome("b", account_id="b-acc", deleted=False, error="ExternalServiceError: b delete failed")

    assert len(reporter.reports) == 1
    error, tags = reporter.reports[0]
    assert isinstance(error, ExternalServiceError)
    assert tags == {"integration": "b", "userId": "u1"}


def test_lookup_failure_is_reported(store, reporter):
    a = ScriptedIntegration("a", store, fail_on="get")
    outcomes = cleanup_integration_accounts(_registry(a), "u1", reporter=reporter)
    assert outcomes[0].error.startswith("ExternalServiceError")
    assert reporter.reports[0][1] == {"integration": "a", "userId": "u1"}


def test_user_without_accounts_is_a_noop(store, reporter):
    a = ScriptedIntegration("a", store, account=_account("a", user_id="someone-else"))
    outcomes = cleanup_integration_accounts(_registry(a), "u1", reporter=reporter)
    assert outcomes == [CleanupOutcome("a")]
    assert a.deleted == []


def test_reporter_failure_is_swallowed(store):
    a = ScriptedIntegration("a", store, account=_account("a"), fail_on="delete")
    b = ScriptedIntegration("b", store, account=_account("b"))

    outcomes = cleanup_integration_accounts(_registry(a, b), "u1", reporter=ExplodingReporter())

    assert not outcomes[0].ok
    assert outcomes[1].deleted


def test_branches_run_concurrently(store, reporter):
    # Each branch blocks until all three are inside get_account
    barrier = threading.Barrier(3)
    integrations = [ScriptedIntegration(name, store, account=_account(name), barrier=barrier) for name in "xyz"]

    outcomes = cleanup_integration_accounts(_registry(*integrations), "u1", reporter=reporter)

    assert all(outcome.deleted for outcome in outcomes)
    assert reporter.reports == []


def test_irc_and_xmpp_accounts_are_removed(registry, irc, xmpp, atheme, prosody, store, reporter):
    irc.create_account("u1", {"nick": "alice", "email": "alice@example.org"})
    xmpp.create_account("u1", {"username": "alice"})

    outcomes = cleanup_integration_accounts(registry, "u1", reporter=reporter)

    assert [(outcome.integration_id, outcome.deleted) for outcome in outcomes] == [("irc", True), ("xmpp", True)]
    assert atheme.nicks == {}
    assert prosody.accounts == {}
    assert irc.get_account("u1") is None
    assert xmpp.get_account("u1") is None
    assert reporter.reports == []

    again = cleanup_integration_accounts(registry, "u1", reporter=reporter)
    assert [outcome.deleted for outcome in again] == [False, False]
    assert reporter.reports == []


def test_backend_outage_keeps_other_backend_cleanup(registry, irc, xmpp, atheme, prosody, store, reporter):
    irc_account = irc.create_account("u1", {"nick": "alice", "email": "alice@example.org"})
    xmpp.create_account("u1", {"username": "alice"})
    atheme.fail_with = ExternalServiceError("Atheme unreachable", service="atheme")

    outcomes = cleanup_integration_accounts(registry, "u1", reporter=reporter)

    assert not outcomes[0].ok
    assert outcomes[1].deleted
    assert store.get(irc_account.id).status == AccountStatus.ACTIVE
    assert reporter.reports[0][1] == {"integration": "irc", "userId": "u1"}


def test_default_reporter_writes_failure_audit_event(store, temp_audit_dir):
    _, audit_file = temp_audit_dir
    a = ScriptedIntegration("a", store, account=_account("a"), fail_on="delete")

    cleanup_integration_accounts(_registry(a), "u1")

    assert "integration_cleanup_failure" in audit_file.read_text()


def test_lookup_failure_in_one_of_three_integrations(store, reporter):
    a = ScriptedIntegration("a", store, account=_account("a"))
    b = ScriptedIntegration("b", store, account=_account("b"), fail_on="get")
    c = ScriptedIntegration("c", store, account=_account("c"))

    outcomes = cleanup_integration_accounts(_registry(a, b, c), "u1", reporter=reporter)

    assert [outcome.ok for outcome in outcomes] == [True, False, True]
    assert (a.get_calls, a.delete_calls) == (1, 1)
    assert (b.get_calls, b.delete_calls) == (1, 0)
    assert (c.get_calls, c.delete_calls) == (1, 1)
    assert [tags["integration"] for _, tags in reporter.reports] == ["b"]


def test_user_with_only_an_irc_account(registry, irc, xmpp, atheme, prosody, reporter):
    irc.create_account("u1", {"nick": "alice", "email": "alice@example.org"})

    with mock.patch.object(irc, "delete_account", wraps=irc.delete_account) as irc_delete, \
            mock.patch.object(xmpp, "get_account", wraps=xmpp.get_account) as xmpp_get, \
            mock.patch.object(xmpp, "delete_account", wraps=xmpp.delete_account) as xmpp_delete:
        outcomes = cleanup_integration_accounts(registry, "u1", reporter=reporter)

    assert irc_delete.call_count == 1
    assert xmpp_get.call_count == 1
    xmpp_get.assert_called_once_with("u1")
    assert xmpp_delete.call_count == 0
    assert outcomes == [
        CleanupOutcome("irc", account_id=outcomes[0].account_id, deleted=True),
        CleanupOutcome("xmpp"),
    ]
    assert atheme.nicks == {}
    assert not any(call[0] == "delete" for call in prosody.calls)
    assert reporter.reports == []
