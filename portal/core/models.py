"""Account and integration descriptor models."""
from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class AccountStatus(str, Enum):
    """Lifecycle status of an integration account."""

    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


# deleted is terminal; any live status may move to deleted
_TRANSITIONS: dict[AccountStatus, frozenset[AccountStatus]] = {
    AccountStatus.PENDING: frozenset({AccountStatus.ACTIVE, AccountStatus.DELETED}),
    AccountStatus.ACTIVE: frozenset({AccountStatus.SUSPENDED, AccountStatus.DELETED}),
    AccountStatus.SUSPENDED: frozenset({AccountStatus.ACTIVE, AccountStatus.DELETED}),
    AccountStatus.DELETED: frozenset(),
}


def can_transition(current: AccountStatus, target: AccountStatus) -> bool:
    """Return True if an account may move from ``current`` to ``target``."""
    return target in _TRANSITIONS[current]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def new_account_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class IntegrationDescriptor:
    """Public metadata of a registered integration."""

    id: str
    name: str
    description: str
    enabled: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
        }


@dataclass
class IntegrationAccount:
    """Link between a portal user and one external identity.

    ``credentials`` is backend-only material and is never serialized.
    ``issued_secret`` is a one-time secret returned by create/rotate and is
    never persisted.
    """

    id: str
    user_id: str
    integration_id: str
    external_identity: str
    status: AccountStatus = AccountStatus.PENDING
    created_at: datetime.datetime = field(default_factory=utcnow)
    updated_at: datetime.datetime = field(default_factory=utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)
    credentials: dict[str, Any] = field(default_factory=dict, repr=False)
    issued_secret: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def is_deleted(self) -> bool:
        return self.status == AccountStatus.DELETED

    def to_public_dict(self) -> dict:
        """Projection returned by get/list/update; omits credential material."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "integrationId": self.integration_id,
            "externalIdentity": self.external_identity,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "metadata": dict(self.metadata),
        }
