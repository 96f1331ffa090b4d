"""Core Business Logic Module

This module provides the integration account logic, independent of the
HTTP layer (Flask).

Architecture:
    - Pure Python (no Flask dependencies in core logic)
    - Testable with an in-memory store and stubbed backends
    - Reusable across interfaces (REST API, CLI)

Module Structure:
    - integrations/     : Integration contract, registry, IRC/XMPP adapters, cleanup
    - models.py         : Account and descriptor models, status transitions
    - store.py          : AccountStore port + in-memory implementation
    - sql_store.py      : SQLAlchemy-backed AccountStore
    - errors.py         : Error taxonomy mapped to HTTP statuses
    - validators.py     : Nick/username/email validation, secret generation
    - reporting.py      : ErrorReporter sink for swallowed failures
    - audit.py          : HMAC-signed JSONL audit trail
    - rbac.py           : Role helpers for bearer token claims

Usage Pattern:
    Import explicitly when needed:
        from portal.core.integrations import IntegrationRegistry, cleanup_integration_accounts
        from portal.core.store import InMemoryAccountStore
        from portal.core.errors import ConflictError
"""
