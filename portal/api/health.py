"""Liveness and readiness endpoints."""
from flask import Blueprint, current_app, jsonify

bp = Blueprint("health", __name__)


@bp.route("/health")
def health_check():
    """Process is up; no dependency checks."""
    return ("ok", 200, {"Content-Type": "text/plain"})


@bp.route("/ready")
def readiness_check():
    """Ready once the integration registry has been initialized.

    Backends are not probed here; an Atheme or Prosody outage surfaces
    as 502 on the account routes instead.
    """
    registry = current_app.config.get("INTEGRATION_REGISTRY")
    if registry is None or not registry.initialized:
        return jsonify({"ok": False, "error": "Integration registry not initialized"}), 503
    return jsonify({
        "ok": True,
        "integrations": {integration.id: integration.enabled for integration in registry.get_all()},
    })
