"""XMPP integration: Prosody accounts provisioned through its REST admin API."""
from __future__ import annotations

import hashlib
import logging
from typing import Any, Optional
from urllib.parse import urlparse

from portal.config.settings import XmppSettings

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
    format_jid,
    generate_account_secret,
    normalize_xmpp_username,
    parse_jid,
    username_from_email,
    validate_email,
    validate_metadata,
)
from ..base import Integration
from .prosody import ProsodyClient

logger = logging.getLogger(__name__)

XMPP_INTEGRATION_ID = "xmpp"
DISPLAY_NAME_MAX_LENGTH = 128
# Prosody account fields exposed through metadata["profile"]
PROFILE_FIELDS = ("username", "name", "enabled")
_UPDATE_FIELDS = {"username", "status", "display_name", "rotate_password", "metadata"}


def _validate_settings(settings: XmppSettings) -> None:
    """Reject incomplete configuration before the adapter is usable.

    Raises:
        ConfigurationError: If any required value is missing or invalid
    """
    parsed = urlparse(settings.rest_url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError("PROSODY_REST_URL must be an http(s) URL")
    if not settings.username:
        raise ConfigurationError("PROSODY_REST_USERNAME (or PROSODY_ADMIN_JID) is required")
    if not settings.password:
        raise ConfigurationError("PROSODY_REST_PASSWORD (or PROSODY_REST_SECRET) is required")
    domain = settings.domain or ""
    if not domain or any(char in domain for char in "@/ "):
        raise ConfigurationError(f"XMPP_DOMAIN is invalid: {domain!r}")
    if settings.timeout <= 0:
        raise ConfigurationError("PROSODY_REST_TIMEOUT must be positive")


def _fingerprint(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def _display_name(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    if not isinstance(raw, str) or len(raw.strip()) > DISPLAY_NAME_MAX_LENGTH:
        raise ValidationError(f"display_name must be a string of at most {DISPLAY_NAME_MAX_LENGTH} characters")
    return raw.strip() or None


def _public_profile(profile: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if not isinstance(profile, dict):
        return None
    return {key: profile[key] for key in PROFILE_FIELDS if key in profile}


class XmppIntegration(Integration):
    """Prosody account provisioning.

    The external identity is the bare JID ``username@domain``. When no
    username is supplied it is derived from the local part of the email.
    """

    def __init__(self, settings: XmppSettings, store: AccountStore, client: Optional[ProsodyClient] = None):
        _validate_settings(settings)
        super().__init__(
            IntegrationDescriptor(
                id=XMPP_INTEGRATION_ID,
                name="XMPP",
                description="XMPP chat accounts and provisioning",
                enabled=settings.enabled,
            ),
            store,
        )
        self.settings = settings
        self.client = client or ProsodyClient(
            settings.rest_url,
            settings.username,
            settings.password,
            timeout=settings.timeout,
        )

    def _determine_username(self, data: dict[str, Any]) -> str:
        provided = data.get("username")
        if provided is not None:
            try:
                return normalize_xmpp_username(provided)
            except ValueError as exc:
                raise ValidationError(str(exc))

        try:
            email = validate_email(data.get("email") or "")
            return username_from_email(email)
        except ValueError:
            raise ValidationError("Could not generate username from email. Please provide a custom username.")

    def create_account(self, user_id: str, data: dict[str, Any]) -> IntegrationAccount:
        if not isinstance(data, dict):
            raise ValidationError("Invalid input")
        username = self._determine_username(data)
        display_name = _display_name(data.get("display_name"))
        jid = format_jid(username, self.settings.domain)

        if self.store.find_active(user_id, self.id):
            raise ConflictError("You already have an XMPP account")
        if self.store.find_by_identity(self.id, jid):
            raise ConflictError("Username already taken")
        if self.client.account_exists(username):
            raise ConflictError("Username already taken in XMPP server")

        secret = generate_account_secret()
        metadata: dict[str, Any] = {"username": username}
        if display_name:
            metadata["display_name"] = display_name
        pending = self._insert(
            IntegrationAccount(
                id=new_account_id(),
                user_id=user_id,
                integration_id=self.id,
                external_identity=jid,
                status=AccountStatus.PENDING,
                metadata=metadata,
                credentials={"secret_sha256": _fingerprint(secret)},
            )
        )

        try:
            self.client.create_account(username, secret, display_name)
        except Exception:
            self._discard_pending(pending)
            raise

        account = self.store.update(pending.id, status=AccountStatus.ACTIVE)
        if account is None:
            logger.error(f"Prosody account '{jid}' created but account {pending.id} could not be activated")
            raise InternalError(
                "XMPP account registration partially succeeded but failed to activate. "
                "Please contact an administrator."
            )

        audit.safe_log_integration_event(
            "integration_create",
            user_id,
            integration=self.id,
            details={"account_id": account.id, "jid": jid},
        )
        account.issued_secret = secret
        return account

    def get_account(self, user_id: str) -> Optional[IntegrationAccount]:
        account = self.store.find_active(user_id, self.id)
        if account is None:
            return None
        username, _ = parse_jid(account.external_identity)
        try:
            profile = self.client.get_account(username)
        except ExternalServiceError as exc:
            logger.warning(f"Could not load Prosody profile for {account.external_identity}: {exc}")
            return account
        account.metadata = {**account.metadata, "profile": _public_profile(profile)}
        return account

    def update_account(self, account_id: str, data: dict[str, Any]) -> IntegrationAccount:
        if not isinstance(data, dict):
            raise ValidationError("Invalid update request")
        unsupported = set(data) - _UPDATE_FIELDS
        if unsupported:
            raise ValidationError(f"Unsupported fields: {', '.join(sorted(unsupported))}")

        account = self._require_account(account_id)
        username, _ = parse_jid(account.external_identity)

        requested = data.get("username")
        if requested is not None and (not isinstance(requested, str) or requested.strip().lower() != username):
            raise ValidationError(
                "Username cannot be changed. Please delete your account and create a new one with the desired username."
            )

        changes: dict[str, Any] = {}
        remote: dict[str, Any] = {}
        metadata = dict(account.metadata)

        if data.get("status") is not None:
            target = self._requested_status(account, data["status"])
            if target is not None:
                remote["enabled"] = target == AccountStatus.ACTIVE
                changes["status"] = target

        if "display_name" in data:
            display_name = _display_name(data["display_name"])
            if display_name != metadata.get("display_name"):
                remote["name"] = display_name or ""
                metadata["display_name"] = display_name

        secret = None
        if data.get("rotate_password"):
            secret = generate_account_secret()
            remote["password"] = secret
            changes["credentials"] = {**account.credentials, "secret_sha256": _fingerprint(secret)}

        if "metadata" in data:
            try:
                metadata.update(validate_metadata(data["metadata"]))
            except ValueError as exc:
                raise ValidationError(str(exc))

        metadata = {key: value for key, value in metadata.items() if value is not None}
        if metadata != account.metadata:
            changes["metadata"] = metadata

        if not changes:
            return account

        if remote:
            self.client.update_account(username, **remote)

        updated = self.store.update(account_id, **changes)
        if updated is None:
            raise NotFoundError("XMPP account not found")

        audit.safe_log_integration_event(
            "integration_update",
            updated.user_id,
            integration=self.id,
            details={"account_id": account_id, "fields": sorted(changes), "remote": sorted(remote)},
        )
        updated.issued_secret = secret
        return updated

    def delete_account(self, account_id: str) -> None:
        account = self.store.get(account_id)
        if account is None or account.is_deleted or account.integration_id != self.id:
            return

        username, _ = parse_jid(account.external_identity)
        removed = self.client.delete_account(username)
        if not removed:
            logger.info(f"Prosody account '{account.external_identity}' did not exist")

        self.store.update(account_id, status=AccountStatus.DELETED)
        audit.safe_log_integration_event(
            "integration_delete",
            account.user_id,
            integration=self.id,
            details={"account_id": account_id, "jid": account.external_identity, "removed": removed},
        )

    def _discard_pending(self, account: IntegrationAccount) -> None:
        try:
            self.store.delete(account.id)
        except Exception:
            logger.error(f"Failed to remove pending XMPP account {account.id}", exc_info=True)
