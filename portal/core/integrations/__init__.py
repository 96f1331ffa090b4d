"""Integration framework: contract, registry, adapters and cleanup.

Usage:
    registry = IntegrationRegistry()
    register_integrations(registry, load_settings(), store)
"""
from __future__ import annotations

from portal.config.settings import AppConfig

from ..store import AccountStore
from .base import Integration
from .cleanup import CleanupOutcome, cleanup_integration_accounts
from .registry import IntegrationRegistry


def build_integrations(cfg: AppConfig, store: AccountStore) -> list[Integration]:
    """Construct an adapter for every configured backend.

    Raises:
        ConfigurationError: If a configured backend has invalid settings
    """
    from .irc import IrcIntegration
    from .xmpp import XmppIntegration

    integrations: list[Integration] = []
    if cfg.irc is not None:
        integrations.append(IrcIntegration(cfg.irc, store))
    if cfg.xmpp is not None:
        integrations.append(XmppIntegration(cfg.xmpp, store))
    return integrations


def register_integrations(registry: IntegrationRegistry, cfg: AppConfig, store: AccountStore) -> bool:
    """Populate ``registry`` once. Returns False if it was already initialized."""
    return registry.initialize(lambda: build_integrations(cfg, store))


__all__ = [
    "CleanupOutcome",
    "Integration",
    "IntegrationRegistry",
    "build_integrations",
    "cleanup_integration_accounts",
    "register_integrations",
]
