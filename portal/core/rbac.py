"""Role helpers for bearer-token claims."""
from __future__ import annotations
from typing import Any, Iterable


def _role_names(container: Any) -> list[str]:
    if not isinstance(container, dict):
        return []
    return [role for role in container.get("roles") or [] if isinstance(role, str)]


def collect_roles(*sources) -> list[str]:
    """Merge realm, client and flat ``roles`` claims, first occurrence wins.

    Accepts any number of claim dicts; non-dict sources are ignored.
    """
    roles: list[str] = []
    for source in sources:
        if not isinstance(source, dict):
            continue
        found = _role_names(source.get("realm_access"))
        clients = source.get("resource_access")
        if isinstance(clients, dict):
            for client_access in clients.values():
                found.extend(_role_names(client_access))
        # Flat "roles" claim (non-Keycloak issuers)
        found.extend(_role_names(source))
        roles.extend(role for role in dict.fromkeys(found) if role not in roles)
    return roles


def has_admin_role(roles: Iterable[str], admin_roles: Iterable[str]) -> bool:
    """Case-insensitive match against the configured ADMIN_ROLES."""
    wanted = {role.lower() for role in admin_roles}
    return any(role.lower() in wanted for role in roles)


def can_access_account(user_id: str, is_admin: bool, owner_id: str) -> bool:
    """Owners may act on their own account; admins on any account."""
    return is_admin or (bool(user_id) and user_id == owner_id)
