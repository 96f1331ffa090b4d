"""Integration contract shared by every backend adapter."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..errors import ConflictError, NotFoundError, UniqueConstraintViolation, ValidationError
from ..models import AccountStatus, IntegrationAccount, IntegrationDescriptor, can_transition
from ..store import AccountStore

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


class Integration(ABC):
    """An account-bearing external service.

    Subclasses implement the four lifecycle operations. Account records live
    in the shared AccountStore, keyed by (user_id, integration id).
    """

    def __init__(self, descriptor: IntegrationDescriptor, store: AccountStore):
        self.descriptor = descriptor
        self.store = store

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def description(self) -> str:
        return self.descriptor.description

    @property
    def enabled(self) -> bool:
        return self.descriptor.enabled

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id!r} enabled={self.enabled}>"

    @abstractmethod
    def create_account(self, user_id: str, data: dict[str, Any]) -> IntegrationAccount:
        """Provision an external account for a user.

        Raises:
            ValidationError: Malformed input
            ConflictError: The user (or the requested identity) already has a live account
            ExternalServiceError: Backend unreachable or rejected the request
        """

    @abstractmethod
    def get_account(self, user_id: str) -> Optional[IntegrationAccount]:
        """Return the user's live account, or None. Never mutates anything."""

    @abstractmethod
    def update_account(self, account_id: str, data: dict[str, Any]) -> IntegrationAccount:
        """Apply only the supplied fields.

        Raises:
            NotFoundError: Unknown or deleted account
            ValidationError: Malformed input or illegal status change
            ExternalServiceError: Backend rejected the change
        """

    @abstractmethod
    def delete_account(self, account_id: str) -> None:
        """Revoke the external account, then tombstone the local record.

        Idempotent: unknown or already-deleted ids succeed silently.
        """

    def get_account_by_id(self, account_id: str) -> Optional[IntegrationAccount]:
        account = self.store.get(account_id)
        if account is None or account.is_deleted or account.integration_id != self.id:
            return None
        return account

    def list_accounts(
        self,
        status: Optional[AccountStatus] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> tuple[list[IntegrationAccount], int]:
        limit = min(max(1, limit), MAX_PAGE_SIZE)
        offset = max(0, offset)
        return self.store.list(self.id, status=status, limit=limit, offset=offset)

    # ─────────────────────────────────────────────────────────────────────
    # Helpers for subclasses
    # ─────────────────────────────────────────────────────────────────────
    def _require_account(self, account_id: str) -> IntegrationAccount:
        account = self.get_account_by_id(account_id)
        if account is None:
            raise NotFoundError(f"{self.name} account not found")
        return account

    def _insert(self, account: IntegrationAccount) -> IntegrationAccount:
        """Insert a record, translating store constraint violations."""
        try:
            return self.store.insert(account)
        except UniqueConstraintViolation as exc:
            raise ConflictError(f"{self.name} account already exists") from exc

    def _requested_status(self, account: IntegrationAccount, raw: Any) -> Optional[AccountStatus]:
        """Parse a requested status change; None means no change."""
        try:
            target = AccountStatus(raw)
        except ValueError:
            raise ValidationError(f"Invalid status: {raw!r}")
        if target == account.status:
            return None
        if target == AccountStatus.DELETED:
            raise ValidationError("Use delete to remove an account")
        if not can_transition(account.status, target):
            raise ValidationError(
                f"Cannot change status from {account.status.value} to {target.value}"
            )
        return target
