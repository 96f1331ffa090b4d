"""Best-effort removal of a user's accounts across every integration."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from ..reporting import ErrorReporter, LoggingErrorReporter
from .base import Integration
from .registry import IntegrationRegistry

logger = logging.getLogger(__name__)


@dataclass
class CleanupOutcome:
    """Result of one integration's cleanup branch."""

    integration_id: str
    account_id: Optional[str] = None
    deleted: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "integrationId": self.integration_id,
            "accountId": self.account_id,
            "deleted": self.deleted,
            "error": self.error,
        }


def _report(reporter: ErrorReporter, error: BaseException, tags: dict[str, str]) -> None:
    try:
        reporter.capture_exception(error, tags)
    except Exception:
        logger.warning(f"Error reporter failed for {tags}", exc_info=True)


def _cleanup_one(integration: Integration, user_id: str, reporter: ErrorReporter) -> CleanupOutcome:
    outcome = CleanupOutcome(integration_id=integration.id)
    try:
        account = integration.get_account(user_id)
        if account is None:
            return outcome
        outcome.account_id = account.id
        integration.delete_account(account.id)
        outcome.deleted = True
    except Exception as exc:
        outcome.error = f"{type(exc).__name__}: {exc}"
        _report(reporter, exc, {"integration": integration.id, "userId": user_id})
    return outcome


def cleanup_integration_accounts(
    registry: IntegrationRegistry,
    user_id: str,
    reporter: Optional[ErrorReporter] = None,
) -> list[CleanupOutcome]:
    """Delete ``user_id``'s account in every registered integration.

    All integrations are processed concurrently and every branch runs to
    completion. Failures are reported, never raised.

    Returns:
        One outcome per registered integration, in registration order
    """
    integrations = registry.get_all()
    if not integrations:
        return []

    reporter = reporter or LoggingErrorReporter()
    with ThreadPoolExecutor(max_workers=len(integrations), thread_name_prefix="integration-cleanup") as executor:
        futures = [executor.submit(_cleanup_one, integration, user_id, reporter) for integration in integrations]
        outcomes = [future.result() for future in futures]

    deleted = [outcome.integration_id for outcome in outcomes if outcome.deleted]
    failed = [outcome.integration_id for outcome in outcomes if not outcome.ok]
    logger.info(f"Integration cleanup for user {user_id}: deleted={deleted} failed={failed}")
    return outcomes
