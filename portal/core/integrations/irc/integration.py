"""IRC integration: NickServ accounts provisioned through Atheme."""
from __future__ import annotations

import hashlib
import logging
from typing import Any, Optional
from urllib.parse import urlparse

from portal.config.settings import IrcSettings

from ... import audit
from ...errors import (
    ConfigurationError,
    ConflictError,
    ExternalServiceError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from ...models import AccountStatus, IntegrationAccount, IntegrationDescriptor, new_account_id
from ...store import AccountStore
from ...validators import (
    generate_account_secret,
    normalize_irc_nick,
    validate_email,
    validate_metadata,
)
from ..base import Integration
from .atheme import (
    AthemeClient,
    AthemeFaultError,
    FAULT_ALREADYEXISTS,
    FAULT_BADPARAMS,
    FAULT_EMAILFAIL,
    FAULT_TOOMANY,
)

logger = logging.getLogger(__name__)

IRC_INTEGRATION_ID = "irc"
_UPDATE_FIELDS = {"nick", "status", "metadata"}


def _validate_settings(settings: IrcSettings) -> None:
    """Reject incomplete configuration before the adapter is usable.

    Raises:
        ConfigurationError: If any required value is missing or invalid
    """
    parsed = urlparse(settings.jsonrpc_url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError("IRC_ATHEME_JSONRPC_URL must be an http(s) URL")
    if not settings.oper_account:
        raise ConfigurationError("IRC_ATHEME_OPER_ACCOUNT is required")
    if not settings.oper_password:
        raise ConfigurationError("IRC_ATHEME_OPER_PASSWORD is required")
    if not settings.server:
        raise ConfigurationError("IRC_SERVER must not be empty")
    if not 1 <= settings.port <= 65535:
        raise ConfigurationError(f"IRC_PORT must be between 1 and 65535, got {settings.port}")
    if settings.timeout <= 0:
        raise ConfigurationError("IRC_ATHEME_TIMEOUT must be positive")


def _fingerprint(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


class IrcIntegration(Integration):
    """NickServ account provisioning.

    create: REGISTER nick with a generated one-time secret
    update: status changes map to NickServ FREEZE ON/OFF
    delete: NickServ FDROP, then tombstone the local record
    """

    def __init__(self, settings: IrcSettings, store: AccountStore, client: Optional[AthemeClient] = None):
        _validate_settings(settings)
        super().__init__(
            IntegrationDescriptor(
                id=IRC_INTEGRATION_ID,
                name="IRC",
                description="IRC accounts via NickServ",
                enabled=settings.enabled,
            ),
            store,
        )
        self.settings = settings
        self.client = client or AthemeClient(
            settings.jsonrpc_url,
            timeout=settings.timeout,
            verify_tls=settings.verify_tls,
        )

    def create_account(self, user_id: str, data: dict[str, Any]) -> IntegrationAccount:
        if not isinstance(data, dict):
            raise ValidationError("Invalid input: nick is required and must be valid")
        try:
            nick = normalize_irc_nick(data.get("nick"))
        except ValueError as exc:
            raise ValidationError(str(exc))
        try:
            email = validate_email(data.get("email") or "")
        except ValueError:
            raise ValidationError("A valid email address is required for IRC registration")

        if self.store.find_active(user_id, self.id):
            raise ConflictError("You already have an IRC account")
        if self.store.find_by_identity(self.id, nick):
            raise ConflictError("Nick is already taken")

        secret = generate_account_secret()
        pending = self._insert(
            IntegrationAccount(
                id=new_account_id(),
                user_id=user_id,
                integration_id=self.id,
                external_identity=nick,
                status=AccountStatus.PENDING,
                metadata={"server": self.settings.server, "port": self.settings.port},
                credentials={"secret_sha256": _fingerprint(secret)},
            )
        )

        try:
            self.client.register_nick(nick, secret, email)
        except AthemeFaultError as exc:
            self._discard_pending(pending)
            raise self._translate_fault(exc) from exc
        except Exception:
            self._discard_pending(pending)
            raise

        account = self.store.update(pending.id, status=AccountStatus.ACTIVE)
        if account is None:
            # Registered on Atheme but the portal record vanished
            logger.error(f"IRC nick '{nick}' registered but account {pending.id} could not be activated")
            raise InternalError(
                "IRC account registration partially succeeded but failed to activate. "
                "Please contact an administrator."
            )

        audit.safe_log_integration_event(
            "integration_create",
            user_id,
            integration=self.id,
            details={"account_id": account.id, "nick": nick},
        )
        account.issued_secret = secret
        return account

    def get_account(self, user_id: str) -> Optional[IntegrationAccount]:
        return self.store.find_active(user_id, self.id)

    def update_account(self, account_id: str, data: dict[str, Any]) -> IntegrationAccount:
        if not isinstance(data, dict):
            raise ValidationError("Invalid update request")
        unsupported = set(data) - _UPDATE_FIELDS
        if unsupported:
            raise ValidationError(f"Unsupported fields: {', '.join(sorted(unsupported))}")

        account = self._require_account(account_id)

        nick = data.get("nick")
        if nick is not None and (not isinstance(nick, str) or nick.strip() != account.external_identity):
            raise ValidationError(
                "Nick cannot be changed. Delete your account and create a new one with the desired nick."
            )

        changes: dict[str, Any] = {}
        if data.get("status") is not None:
            target = self._requested_status(account, data["status"])
            if target is not None:
                self.client.freeze_nick(
                    account.external_identity,
                    target == AccountStatus.SUSPENDED,
                    self.settings.oper_account,
                    self.settings.oper_password,
                )
                changes["status"] = target
        if "metadata" in data:
            try:
                patch = validate_metadata(data["metadata"])
            except ValueError as exc:
                raise ValidationError(str(exc))
            merged = {**account.metadata, **patch}
            changes["metadata"] = {key: value for key, value in merged.items() if value is not None}

        if not changes:
            return account

        updated = self.store.update(account_id, **changes)
        if updated is None:
            raise NotFoundError("IRC account not found")

        audit.safe_log_integration_event(
            "integration_update",
            updated.user_id,
            integration=self.id,
            details={"account_id": account_id, "fields": sorted(changes)},
        )
        return updated

    def delete_account(self, account_id: str) -> None:
        account = self.store.get(account_id)
        if account is None or account.is_deleted or account.integration_id != self.id:
            return

        dropped = self.client.drop_nick(
            account.external_identity,
            self.settings.oper_account,
            self.settings.oper_password,
        )
        if not dropped:
            logger.info(f"IRC nick '{account.external_identity}' was not registered on Atheme")

        self.store.update(account_id, status=AccountStatus.DELETED)
        audit.safe_log_integration_event(
            "integration_delete",
            account.user_id,
            integration=self.id,
            details={"account_id": account_id, "nick": account.external_identity, "dropped": dropped},
        )

    def _discard_pending(self, account: IntegrationAccount) -> None:
        try:
            self.store.delete(account.id)
        except Exception:
            logger.error(f"Failed to remove pending IRC account {account.id}", exc_info=True)

    @staticmethod
    def _translate_fault(exc: AthemeFaultError) -> Exception:
        if exc.code == FAULT_ALREADYEXISTS:
            return ConflictError("Nick is already registered on the IRC network")
        if exc.code == FAULT_BADPARAMS:
            return ValidationError("Invalid nick or parameters")
        if exc.code == FAULT_TOOMANY:
            return ExternalServiceError("Too many registrations; try again later", service="atheme")
        if exc.code == FAULT_EMAILFAIL:
            return ValidationError("IRC services rejected the email address")
        return ExternalServiceError(exc.message or "IRC registration failed", service="atheme")
