"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with the integration registry, account store,
blueprints and middleware.
"""
from __future__ import annotations
import ipaddress
from typing import Optional

from flask import Flask, request, abort
from werkzeug.middleware.proxy_fix import ProxyFix

from portal.config import AppConfig, load_settings
from portal.core.integrations import IntegrationRegistry, register_integrations
from portal.core.reporting import ErrorReporter, LoggingErrorReporter
from portal.core.store import AccountStore, create_account_store


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(
    cfg: Optional[AppConfig] = None,
    store: Optional[AccountStore] = None,
    registry: Optional[IntegrationRegistry] = None,
    reporter: Optional[ErrorReporter] = None,
) -> Flask:
    """Create and configure Flask application.

    Every collaborator can be injected; missing ones are built from the
    environment. Integration bootstrap is idempotent, so passing an already
    initialized registry is safe.
    """
    cfg = cfg or load_settings()
    store = store or create_account_store(cfg.database_url)
    registry = registry if registry is not None else IntegrationRegistry()
    register_integrations(registry, cfg, store)

    app = Flask(__name__)

    # Store collaborators for easy access in routes
    app.config["APP_CONFIG"] = cfg
    app.config["ACCOUNT_STORE"] = store
    app.config["INTEGRATION_REGISTRY"] = registry
    app.config["ERROR_REPORTER"] = reporter or LoggingErrorReporter()
    app.config["DEMO_MODE"] = cfg.demo_mode

    # Trust X-Forwarded-* headers from proxy (nginx)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore

    # Parse trusted proxy networks
    trusted_proxy_networks = []
    for entry in cfg.trusted_proxy_ips.split(","):
        entry = entry.strip()
        if not entry:
            continue
        try:
            trusted_proxy_networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            continue

    app.config["TRUSTED_PROXY_NETWORKS"] = trusted_proxy_networks

    # Register blueprints
    from portal.api import health, errors
    from portal.api import admin
    from portal.api import integrations

    app.register_blueprint(health.bp)
    app.register_blueprint(integrations.bp)
    app.register_blueprint(admin.bp)

    # Register error handlers
    errors.register_error_handlers(app)

    # Register middleware/before_request handlers
    _register_middleware(app, trusted_proxy_networks)

    # Log startup info
    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    enabled = [integration.id for integration in registry.get_enabled()]
    print(f"[flask_app] Mode={mode_label}")
    print(f"[flask_app] Integrations registered: {len(registry)} (enabled: {', '.join(enabled) or 'none'})")

    if cfg.demo_mode:
        print("[flask_app] WARNING: Demo mode active - accounts may be kept in memory")

    return app


def _register_middleware(app: Flask, trusted_proxy_networks: list):
    """Register before_request middleware."""

    @app.before_request
    def enforce_proxy_headers() -> None:
        """Validate proxy headers from trusted sources only."""
        original_remote = request.environ.get("werkzeug.proxy_fix.orig", {}).get("REMOTE_ADDR")
        if original_remote:
            try:
                address = ipaddress.ip_address(original_remote)
                if not any(address in network for network in trusted_proxy_networks):
                    abort(400, description="Untrusted proxy")
            except ValueError:
                abort(400, description="Invalid proxy address")

        forwarded_proto = request.headers.get("X-Forwarded-Proto")
        if forwarded_proto and forwarded_proto != "https":
            abort(400, description="Invalid forwarded protocol")

        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for and "," in forwarded_for:
            abort(400, description="Multiple forwarded clients not permitted")
