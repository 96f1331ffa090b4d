"""
Flask decorators for authentication and authorization.

Integration endpoints are protected by OAuth 2.0 Bearer tokens (RFC 6750)
issued by the portal's OIDC provider.

Security:
- RSA-SHA256 signature verification via JWKS (RFC 7517)
- Expiration and issuer validation, audience when configured (RFC 7519)
- JWKS caching (1-hour refresh)
"""

import logging
from functools import wraps
from typing import Any, Dict

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    InvalidTokenError,
    ExpiredSignatureError,
    InvalidIssuerError,
    InvalidAudienceError,
    InvalidSignatureError,
    DecodeError,
    PyJWKClientError,
)
from flask import request, jsonify, current_app, g

from portal.core.rbac import collect_roles, has_admin_role

logger = logging.getLogger(__name__)

# JWKS clients keyed by URL (cached)
_jwks_clients: Dict[str, PyJWKClient] = {}


class TokenValidationError(Exception):
    """Exception raised when JWT token validation fails."""
    pass


def get_jwks_client() -> PyJWKClient:
    """
    Get the cached JWKS client for the configured issuer.

    Returns:
        PyJWKClient: Client that resolves signing keys by ``kid``
    """
    cfg = current_app.config["APP_CONFIG"]
    jwks_url = cfg.jwks_url
    if not jwks_url:
        raise TokenValidationError("OIDC_ISSUER is not configured")

    client = _jwks_clients.get(jwks_url)
    if client is None:
        logger.info(f"Initializing JWKS client for: {jwks_url}")
        client = PyJWKClient(
            jwks_url,
            cache_keys=True,
            max_cached_keys=16,
            lifespan=3600,
            headers={"User-Agent": "Portal-Integrations/1.0"},
        )
        _jwks_clients[jwks_url] = client
    return client


def validate_jwt_token(token: str) -> Dict[str, Any]:
    """
    Validate a JWT Bearer token.

    Validations performed:
    1. Signature (RS256 via JWKS)
    2. Expiration and not-before
    3. Issuer
    4. Audience (only if OIDC_AUDIENCE is set)

    Args:
        token: JWT token string (without "Bearer " prefix)

    Returns:
        dict: Validated token claims

    Raises:
        TokenValidationError: If any validation fails
    """
    cfg = current_app.config["APP_CONFIG"]

    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
        claims = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=cfg.oidc_issuer or None,
            audience=cfg.oidc_audience or None,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_nbf": True,
                "verify_iss": bool(cfg.oidc_issuer),
                "verify_aud": bool(cfg.oidc_audience),
                "require": ["exp", "sub"],
            },
            leeway=5,
        )
    except ExpiredSignatureError:
        raise TokenValidationError("Token expired (exp claim)")
    except InvalidIssuerError as e:
        raise TokenValidationError(f"Invalid issuer: {e}")
    except InvalidAudienceError as e:
        raise TokenValidationError(f"Invalid audience (token not for this API): {e}")
    except InvalidSignatureError:
        raise TokenValidationError("Invalid signature (token tampered or wrong key)")
    except DecodeError as e:
        raise TokenValidationError(f"Token decode error (malformed JWT): {e}")
    except (InvalidTokenError, PyJWKClientError) as e:
        raise TokenValidationError(f"Token validation failed: {e}")

    logger.debug(f"JWT validated for subject: {claims.get('sub')}")
    return claims


def _unauthorized(detail: str, status: int = 401):
    return jsonify({"ok": False, "error": detail}), status


def require_bearer_token(admin: bool = False):
    """
    Decorator requiring a valid Bearer token.

    On success the request context carries:
        g.user_id   - token ``sub``
        g.email     - token ``email`` claim (may be empty)
        g.roles     - realm and client roles
        g.is_admin  - True if any role is in ADMIN_ROLES

    Args:
        admin: Reject non-admin callers with 403

    Example:
        @bp.route("/api/integrations")
        @require_bearer_token()
        def list_integrations():
            ...
    """

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            auth_header = request.headers.get("Authorization", "")
            if not auth_header:
                logger.warning("Request missing Authorization header")
                return _unauthorized("Authorization header required. Use 'Authorization: Bearer <token>'")
            if not auth_header.startswith("Bearer "):
                logger.warning(f"Request with invalid Authorization format: {auth_header[:20]}")
                return _unauthorized("Invalid Authorization header format. Expected 'Bearer <token>'")

            token = auth_header[7:].strip()
            if not token:
                return _unauthorized("Bearer token is empty")

            try:
                claims = validate_jwt_token(token)
            except TokenValidationError as e:
                logger.warning(f"JWT validation failed: {e}")
                return _unauthorized(str(e))

            cfg = current_app.config["APP_CONFIG"]
            roles = collect_roles(claims)
            g.oauth_claims = claims
            g.user_id = str(claims.get("sub") or "")
            g.email = claims.get("email") or ""
            g.roles = roles
            g.is_admin = has_admin_role(roles, cfg.admin_roles)

            if not g.user_id:
                return _unauthorized("Token has no subject")
            if admin and not g.is_admin:
                logger.warning(f"Non-admin {g.user_id} denied access to {request.path}")
                return _unauthorized("Admin access required", 403)

            return fn(*args, **kwargs)

        return wrapper

    return decorator
