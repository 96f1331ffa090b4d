"""Account persistence port and in-memory implementation.

The store is the authority for the uniqueness invariants:
    - one non-deleted account per (user_id, integration_id)
    - one non-deleted account per (integration_id, external_identity)

Violations raise UniqueConstraintViolation; adapters translate that into
ConflictError.
"""
from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional

from .errors import UniqueConstraintViolation
from .models import AccountStatus, IntegrationAccount, utcnow

USER_CONSTRAINT = "integration_account_user_active"
IDENTITY_CONSTRAINT = "integration_account_identity_active"

_UPDATABLE_FIELDS = {"status", "metadata", "credentials", "external_identity"}


class AccountStore(ABC):
    """Keyed record store for integration accounts."""

    @abstractmethod
    def insert(self, account: IntegrationAccount) -> IntegrationAccount:
        """Persist a new account.

        Raises:
            UniqueConstraintViolation: If a live account already holds the
                user or identity slot for this integration
        """

    @abstractmethod
    def get(self, account_id: str) -> Optional[IntegrationAccount]:
        """Return the account with this id in any status, or None."""

    @abstractmethod
    def find_active(self, user_id: str, integration_id: str) -> Optional[IntegrationAccount]:
        """Return the user's non-deleted account for an integration, or None."""

    @abstractmethod
    def find_by_identity(self, integration_id: str, external_identity: str) -> Optional[IntegrationAccount]:
        """Return the non-deleted account holding an external identity, or None."""

    @abstractmethod
    def update(self, account_id: str, **fields: Any) -> Optional[IntegrationAccount]:
        """Apply field changes and bump updated_at. Returns None if missing."""

    @abstractmethod
    def delete(self, account_id: str) -> bool:
        """Hard-delete a record. Returns False if it did not exist."""

    @abstractmethod
    def list(
        self,
        integration_id: str,
        status: Optional[AccountStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[IntegrationAccount], int]:
        """Return (page, total) ordered by newest first."""


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown account fields: {', '.join(sorted(unknown))}")


class InMemoryAccountStore(AccountStore):
    """Thread-safe dict-backed store used in demo mode and tests."""

    def __init__(self):
        self._records: dict[str, IntegrationAccount] = {}
        self._lock = threading.Lock()

    def _conflict(self, account: IntegrationAccount, exclude_id: Optional[str] = None) -> Optional[str]:
        for other in self._records.values():
            if other.id == exclude_id or other.is_deleted:
                continue
            if other.integration_id != account.integration_id:
                continue
            if other.user_id == account.user_id:
                return USER_CONSTRAINT
            if other.external_identity == account.external_identity:
                return IDENTITY_CONSTRAINT
        return None

    def insert(self, account: IntegrationAccount) -> IntegrationAccount:
        with self._lock:
            if not account.is_deleted:
                constraint = self._conflict(account)
                if constraint:
                    raise UniqueConstraintViolation(constraint)
            stored = copy.deepcopy(account)
            stored.issued_secret = None
            self._records[account.id] = stored
            return copy.deepcopy(stored)

    def get(self, account_id: str) -> Optional[IntegrationAccount]:
        with self._lock:
            record = self._records.get(account_id)
            return copy.deepcopy(record) if record else None

    def find_active(self, user_id: str, integration_id: str) -> Optional[IntegrationAccount]:
        with self._lock:
            for record in self._records.values():
                if record.user_id == user_id and record.integration_id == integration_id and not record.is_deleted:
                    return copy.deepcopy(record)
        return None

    def find_by_identity(self, integration_id: str, external_identity: str) -> Optional[IntegrationAccount]:
        with self._lock:
            for record in self._records.values():
                if (
                    record.integration_id == integration_id
                    and record.external_identity == external_identity
                    and not record.is_deleted
                ):
                    return copy.deepcopy(record)
        return None

    def update(self, account_id: str, **fields: Any) -> Optional[IntegrationAccount]:
        _check_fields(fields)
        with self._lock:
            record = self._records.get(account_id)
            if record is None:
                return None
            candidate = copy.deepcopy(record)
            for name, value in fields.items():
                setattr(candidate, name, value)
            if not candidate.is_deleted:
                constraint = self._conflict(candidate, exclude_id=account_id)
                if constraint:
                    raise UniqueConstraintViolation(constraint)
            candidate.updated_at = utcnow()
            self._records[account_id] = candidate
            return copy.deepcopy(candidate)

    def delete(self, account_id: str) -> bool:
        with self._lock:
            return self._records.pop(account_id, None) is not None

    def list(
        self,
        integration_id: str,
        status: Optional[AccountStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[IntegrationAccount], int]:
        with self._lock:
            matches = [
                record for record in self._records.values()
                if record.integration_id == integration_id and (status is None or record.status == status)
            ]
        matches.sort(key=lambda record: record.created_at, reverse=True)
        page = matches[offset:offset + limit]
        return [copy.deepcopy(record) for record in page], len(matches)


def create_account_store(database_url: str) -> AccountStore:
    """Build the store for DATABASE_URL ("memory" keeps accounts in-process)."""
    if not database_url or database_url == "memory":
        return InMemoryAccountStore()
    from .sql_store import SqlAccountStore
    return SqlAccountStore.from_url(database_url)
