"""Integration account endpoints for authenticated portal users.

Routes:
    GET    /api/integrations
    GET    /api/integrations/<integration_id>/accounts
    POST   /api/integrations/<integration_id>/accounts
    GET    /api/integrations/<integration_id>/accounts/<account_id>
    PATCH  /api/integrations/<integration_id>/accounts/<account_id>
    DELETE /api/integrations/<integration_id>/accounts/<account_id>

Security:
    - Bearer token required on every route (@require_bearer_token)
    - Account-level routes allow the owner or an admin
"""

from __future__ import annotations
import logging

from flask import Blueprint, current_app, g, jsonify, request

from portal.api.decorators import require_bearer_token
from portal.core.errors import IntegrationError, NotFoundError, ValidationError
from portal.core.integrations.base import Integration
from portal.core.integrations.registry import IntegrationRegistry
from portal.core.models import IntegrationAccount
from portal.core.rbac import can_access_account

bp = Blueprint("integrations", __name__, url_prefix="/api/integrations")

JSON_MAX_SIZE_BYTES = 65536  # 64 KB

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def get_registry() -> IntegrationRegistry:
    return current_app.config["INTEGRATION_REGISTRY"]


def resolve_integration(integration_id: str) -> Integration:
    """Look up an enabled integration or fail with 404/403."""
    integration = get_registry().get_or_raise(integration_id)
    if not integration.enabled:
        raise IntegrationError("Integration is disabled", status=403)
    return integration


def read_json_body() -> dict:
    """Parse the request body as a JSON object (empty body -> {})."""
    if request.content_length and request.content_length > JSON_MAX_SIZE_BYTES:
        raise IntegrationError("Request body too large", status=413)
    if not request.get_data(cache=True):
        return {}
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def serialize_account(account: IntegrationAccount) -> dict:
    """Public projection, plus the one-time secret when one was just issued."""
    payload = account.to_public_dict()
    if account.issued_secret:
        payload["secret"] = account.issued_secret
    return payload


def _load_owned_account(integration: Integration, account_id: str) -> IntegrationAccount:
    account = integration.get_account_by_id(account_id)
    if account is None:
        raise NotFoundError("Integration account not found")
    if not can_access_account(g.user_id, g.is_admin, account.user_id):
        logger.warning(f"User {g.user_id} denied access to {integration.id} account {account_id}")
        raise IntegrationError("Forbidden - Access denied", status=403)
    return account


def _operator() -> str:
    return f"admin:{g.user_id}" if g.is_admin else g.user_id


# ─────────────────────────────────────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("", methods=["GET"])
@require_bearer_token()
def list_integrations():
    """List registered integrations (public info only)."""
    return jsonify({"ok": True, "integrations": get_registry().get_public_info()})


@bp.route("/<integration_id>/accounts", methods=["GET"])
@require_bearer_token()
def get_own_account(integration_id: str):
    """Return the caller's account for an integration."""
    integration = resolve_integration(integration_id)
    account = integration.get_account(g.user_id)
    if account is None:
        raise NotFoundError("Integration account not found")
    return jsonify({"ok": True, "account": serialize_account(account)})


@bp.route("/<integration_id>/accounts", methods=["POST"])
@require_bearer_token()
def create_account(integration_id: str):
    """Provision an account for the caller.

    The email used for backend registration defaults to the token's
    ``email`` claim when the body omits it.

    Returns:
        201 Created with the account and its one-time secret
    """
    integration = resolve_integration(integration_id)
    body = read_json_body()
    if not body.get("email") and g.email:
        body["email"] = g.email
    account = integration.create_account(g.user_id, body)
    logger.info(f"Created {integration.id} account {account.id} for user {g.user_id}")
    return jsonify({"ok": True, "account": serialize_account(account)}), 201


@bp.route("/<integration_id>/accounts/<account_id>", methods=["GET"])
@require_bearer_token()
def get_account(integration_id: str, account_id: str):
    integration = resolve_integration(integration_id)
    account = _load_owned_account(integration, account_id)
    return jsonify({"ok": True, "account": serialize_account(account)})


@bp.route("/<integration_id>/accounts/<account_id>", methods=["PATCH"])
@require_bearer_token()
def update_account(integration_id: str, account_id: str):
    """Apply a partial update (status, metadata and backend-specific fields)."""
    integration = resolve_integration(integration_id)
    _load_owned_account(integration, account_id)
    body = read_json_body()
    updated = integration.update_account(account_id, body)
    logger.info(f"Updated {integration.id} account {account_id} by {_operator()}")
    return jsonify({"ok": True, "account": serialize_account(updated)})


@bp.route("/<integration_id>/accounts/<account_id>", methods=["DELETE"])
@require_bearer_token()
def delete_account(integration_id: str, account_id: str):
    integration = resolve_integration(integration_id)
    _load_owned_account(integration, account_id)
    integration.delete_account(account_id)
    logger.info(f"Deleted {integration.id} account {account_id} by {_operator()}")
    return jsonify({"ok": True, "message": "Integration account deleted successfully"})
