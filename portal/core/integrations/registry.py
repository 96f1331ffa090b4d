"""Catalog of available integrations."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Optional

from ..errors import ConflictError, NotFoundError
from .base import Integration

logger = logging.getLogger(__name__)


class IntegrationRegistry:
    """Process-wide catalog of integrations, built once at startup.

    Registration order is preserved. Registering an id twice raises
    ConflictError instead of overwriting.

    Usage:
        registry = IntegrationRegistry()
        registry.initialize(lambda: [IrcIntegration(...), XmppIntegration(...)])
        irc = registry.get_or_raise("irc")
    """

    def __init__(self):
        self._integrations: dict[str, Integration] = {}
        self._lock = threading.RLock()
        self._initialized = False

    def register(self, integration: Integration) -> None:
        """Add an integration under its id.

        Raises:
            ConflictError: If the id is already registered
        """
        with self._lock:
            if integration.id in self._integrations:
                raise ConflictError(f"Integration already registered: {integration.id}")
            self._integrations[integration.id] = integration
        logger.info(f"Registered integration '{integration.id}' (enabled={integration.enabled})")

    def initialize(self, factory: Callable[[], Iterable[Integration]]) -> bool:
        """Register the integrations produced by ``factory`` exactly once.

        Later calls are no-ops, so bootstrap code may run on every cold start.
        The batch is all-or-nothing: if any id is a duplicate (within the
        batch or against entries already present) nothing is registered and
        a later call may retry.

        Returns:
            True if this call performed the registration

        Raises:
            ConflictError: If the batch contains an id that is already taken
        """
        with self._lock:
            if self._initialized:
                return False
            integrations = list(factory())
            seen = set(self._integrations)
            for integration in integrations:
                if integration.id in seen:
                    raise ConflictError(f"Integration already registered: {integration.id}")
                seen.add(integration.id)
            for integration in integrations:
                self.register(integration)
            self._initialized = True
            return True

    @property
    def initialized(self) -> bool:
        return self._initialized

    def get(self, integration_id: str) -> Optional[Integration]:
        return self._integrations.get(integration_id)

    def get_or_raise(self, integration_id: str) -> Integration:
        integration = self.get(integration_id)
        if integration is None:
            raise NotFoundError(f"Unknown integration: {integration_id}")
        return integration

    def get_all(self) -> list[Integration]:
        with self._lock:
            return list(self._integrations.values())

    def get_enabled(self) -> list[Integration]:
        return [integration for integration in self.get_all() if integration.enabled]

    def is_enabled(self, integration_id: str) -> bool:
        integration = self.get(integration_id)
        return bool(integration and integration.enabled)

    def get_public_info(self) -> list[dict]:
        """Public listing: id, name, description and enabled flag only."""
        return [integration.descriptor.to_dict() for integration in self.get_all()]

    def __len__(self) -> int:
        return len(self._integrations)

    def __contains__(self, integration_id: object) -> bool:
        return integration_id in self._integrations
