"""Admin endpoints for integration accounts.

Routes:
    GET    /api/admin/integrations/<integration_id>/accounts?status=&limit=&offset=
    DELETE /api/admin/users/<user_id>/integrations

Security:
    - Bearer token with an admin role (ADMIN_ROLES) required
"""

from __future__ import annotations
import logging

from flask import Blueprint, current_app, g, jsonify, request

from portal.api.decorators import require_bearer_token
from portal.core import audit
from portal.core.integrations.base import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from portal.core.integrations.cleanup import cleanup_integration_accounts
from portal.core.models import AccountStatus

bp = Blueprint("admin", __name__, url_prefix="/api/admin")

logger = logging.getLogger(__name__)


def _int_arg(name: str, default: int) -> int:
    """Parse a non-negative integer query parameter, falling back to the default."""
    raw = request.args.get(name, "")
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def _status_arg():
    """Status filter; unknown values mean no filter."""
    raw = (request.args.get("status") or "").strip().lower()
    try:
        return AccountStatus(raw) if raw else None
    except ValueError:
        return None


@bp.route("/integrations/<integration_id>/accounts", methods=["GET"])
@require_bearer_token(admin=True)
def list_accounts(integration_id: str):
    """List accounts of one integration, newest first, with pagination."""
    registry = current_app.config["INTEGRATION_REGISTRY"]
    integration = registry.get_or_raise(integration_id)

    limit = _int_arg("limit", DEFAULT_PAGE_SIZE) or DEFAULT_PAGE_SIZE
    limit = min(limit, MAX_PAGE_SIZE)
    offset = _int_arg("offset", 0)

    accounts, total = integration.list_accounts(status=_status_arg(), limit=limit, offset=offset)
    return jsonify({
        "ok": True,
        "accounts": [account.to_public_dict() for account in accounts],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + limit < total,
        },
    })


@bp.route("/users/<user_id>/integrations", methods=["DELETE"])
@require_bearer_token(admin=True)
def cleanup_user_integrations(user_id: str):
    """Best-effort removal of every integration account a user holds.

    Always returns 200 with one outcome per integration; failures are
    reported through the configured error reporter.
    """
    registry = current_app.config["INTEGRATION_REGISTRY"]
    reporter = current_app.config.get("ERROR_REPORTER")
    outcomes = cleanup_integration_accounts(registry, user_id, reporter=reporter)

    failed = [outcome.integration_id for outcome in outcomes if not outcome.ok]
    audit.safe_log_integration_event(
        "integration_cleanup",
        user_id,
        integration=",".join(outcome.integration_id for outcome in outcomes),
        operator=f"admin:{g.user_id}",
        details={
            "deleted": [outcome.integration_id for outcome in outcomes if outcome.deleted],
            "failed": failed,
        },
        success=not failed,
    )
    logger.info(f"Admin {g.user_id} ran integration cleanup for user {user_id}")
    return jsonify({"ok": True, "results": [outcome.to_dict() for outcome in outcomes]})
