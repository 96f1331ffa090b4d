"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from portal.core.errors import ConfigurationError


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read /run/secrets/{secret_name}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


@dataclass
class IrcSettings:
    """Atheme JSON-RPC and IRC network settings."""
    jsonrpc_url: str
    oper_account: str = ""
    oper_password: str = field(default="", repr=False)
    server: str = "irc.atl.chat"
    port: int = 6697
    verify_tls: bool = True
    enabled: bool = True
    timeout: float = 15.0


@dataclass
class XmppSettings:
    """Prosody REST admin API settings."""
    rest_url: str
    domain: str = "xmpp.atl.chat"
    username: str = ""
    password: str = field(default="", repr=False)
    enabled: bool = True
    timeout: float = 15.0


@dataclass
class AppConfig:
    """Application configuration container."""
    demo_mode: bool

    # Persistence ("memory" keeps accounts in-process)
    database_url: str = "memory"

    # Bearer token validation
    oidc_issuer: str = ""
    oidc_audience: str = ""
    jwks_url: str = ""
    admin_roles: list[str] = field(default_factory=lambda: ["admin", "staff"])

    # Proxy
    trusted_proxy_ips: str = "127.0.0.1/32,::1/128"

    # Backends (None when not configured)
    irc: Optional[IrcSettings] = None
    xmpp: Optional[XmppSettings] = None


def _load_irc_settings() -> Optional[IrcSettings]:
    jsonrpc_url = os.environ.get("IRC_ATHEME_JSONRPC_URL", "").strip()
    if not jsonrpc_url:
        return None
    return IrcSettings(
        jsonrpc_url=jsonrpc_url,
        oper_account=os.environ.get("IRC_ATHEME_OPER_ACCOUNT", "").strip(),
        oper_password=_load_secret_from_file("irc_atheme_oper_password", "IRC_ATHEME_OPER_PASSWORD") or "",
        server=os.environ.get("IRC_SERVER", "irc.atl.chat").strip(),
        port=_env_int("IRC_PORT", 6697),
        verify_tls=not _env_flag("IRC_ATHEME_INSECURE_SKIP_VERIFY", False),
        enabled=_env_flag("IRC_ENABLED", True),
        timeout=float(_env_int("IRC_ATHEME_TIMEOUT", 15)),
    )


def _load_xmpp_settings() -> Optional[XmppSettings]:
    rest_url = os.environ.get("PROSODY_REST_URL", "").strip()
    if not rest_url:
        return None
    password = (
        _load_secret_from_file("prosody_rest_password", "PROSODY_REST_PASSWORD")
        or os.environ.get("PROSODY_REST_SECRET", "")
    )
    return XmppSettings(
        rest_url=rest_url,
        domain=os.environ.get("XMPP_DOMAIN", "xmpp.atl.chat").strip(),
        username=(
            os.environ.get("PROSODY_REST_USERNAME")
            or os.environ.get("PROSODY_ADMIN_JID")
            or ""
        ).strip(),
        password=password,
        enabled=_env_flag("XMPP_ENABLED", True),
        timeout=float(_env_int("PROSODY_REST_TIMEOUT", 15)),
    )


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = _env_flag("DEMO_MODE", False)

    database_url = os.environ.get("DATABASE_URL", "").strip()
    if not database_url:
        if not demo_mode and os.environ.get("PYTEST_CURRENT_TEST") is None:
            print("[settings] WARNING: DATABASE_URL not set; integration accounts are kept in memory")
        database_url = "memory"

    oidc_issuer = os.environ.get("OIDC_ISSUER", "").rstrip("/")
    jwks_url = os.environ.get("OIDC_JWKS_URL", "")
    if not jwks_url and oidc_issuer:
        jwks_url = f"{oidc_issuer}/protocol/openid-connect/certs"

    admin_roles = [
        role.strip().lower()
        for role in os.environ.get("ADMIN_ROLES", "admin,staff").split(",")
        if role.strip()
    ]

    trusted_proxy_ips = os.environ.get("TRUSTED_PROXY_IPS", "127.0.0.1/32,::1/128")

    irc = _load_irc_settings()
    xmpp = _load_xmpp_settings()

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    configured = [name for name, block in (("irc", irc), ("xmpp", xmpp)) if block]
    print(f"[settings] Mode={mode_label}; integrations={','.join(configured) or 'none'}")

    return AppConfig(
        demo_mode=demo_mode,
        database_url=database_url,
        oidc_issuer=oidc_issuer,
        oidc_audience=os.environ.get("OIDC_AUDIENCE", ""),
        jwks_url=jwks_url,
        admin_roles=admin_roles or ["admin"],
        trusted_proxy_ips=trusted_proxy_ips,
        irc=irc,
        xmpp=xmpp,
    )
