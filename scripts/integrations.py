"""Operator CLI for integration accounts.

Wraps portal.core.integrations for use outside the web app (cron jobs,
leaver runbooks, audit checks).

Examples:
    python scripts/integrations.py list
    python scripts/integrations.py accounts --integration irc --status suspended
    python scripts/integrations.py cleanup-user --user-id 1b7c...
    python scripts/integrations.py verify-audit
"""
from __future__ import annotations
import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

SCRIPT_DIR = Path(__file__).parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from portal.config import load_settings
from portal.core import audit
from portal.core.errors import ConfigurationError, IntegrationError
from portal.core.integrations import (
    IntegrationRegistry,
    cleanup_integration_accounts,
    register_integrations,
)
from portal.core.models import AccountStatus
from portal.core.reporting import LoggingErrorReporter
from portal.core.store import create_account_store


def build_registry() -> IntegrationRegistry:
    """Load settings and register every configured integration."""
    cfg = load_settings()
    store = create_account_store(cfg.database_url)
    registry = IntegrationRegistry()
    register_integrations(registry, cfg, store)
    return registry


def _cmd_list(registry: IntegrationRegistry, args) -> int:
    info = registry.get_public_info()
    if not info:
        print("No integrations configured")
        return 0
    for item in info:
        state = "enabled" if item["enabled"] else "disabled"
        print(f"{item['id']:<8} {state:<9} {item['name']} - {item['description']}")
    return 0


def _cmd_accounts(registry: IntegrationRegistry, args) -> int:
    integration = registry.get_or_raise(args.integration)
    status = AccountStatus(args.status) if args.status else None
    accounts, total = integration.list_accounts(status=status, limit=args.limit, offset=args.offset)
    for account in accounts:
        print(
            f"{account.id}  {account.status.value:<9} {account.external_identity:<32} "
            f"user={account.user_id} created={account.created_at.isoformat()}"
        )
    print(f"[accounts] {len(accounts)} of {total} shown")
    return 0


def _cmd_delete_account(registry: IntegrationRegistry, args) -> int:
    integration = registry.get_or_raise(args.integration)
    integration.delete_account(args.account_id)
    print(f"[delete-account] {integration.id} account {args.account_id} deleted")
    return 0


def _cmd_cleanup_user(registry: IntegrationRegistry, args) -> int:
    outcomes = cleanup_integration_accounts(registry, args.user_id, reporter=LoggingErrorReporter())
    failed = [outcome for outcome in outcomes if not outcome.ok]
    for outcome in outcomes:
        if outcome.error:
            print(f"[cleanup-user] {outcome.integration_id}: FAILED ({outcome.error})", file=sys.stderr)
        elif outcome.deleted:
            print(f"[cleanup-user] {outcome.integration_id}: deleted account {outcome.account_id}")
        else:
            print(f"[cleanup-user] {outcome.integration_id}: no account")
    audit.safe_log_integration_event(
        "integration_cleanup",
        args.user_id,
        integration=",".join(outcome.integration_id for outcome in outcomes),
        operator=args.operator,
        details={"failed": [outcome.integration_id for outcome in failed], "source": "cli"},
        success=not failed,
    )
    return 1 if failed else 0


def _cmd_verify_audit(registry: Optional[IntegrationRegistry], args) -> int:
    total, valid = audit.verify_audit_log()
    print(f"[verify-audit] {valid}/{total} events carry a valid signature")
    return 0 if total == valid else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(description="Integration account helper")
    parser.add_argument("--operator", default="cli",
                        help="Operator identifier for audit logs (default: cli)")

    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("list", help="Show registered integrations")

    sa = sub.add_parser("accounts", help="List accounts of one integration")
    sa.add_argument("--integration", required=True)
    sa.add_argument("--status", choices=[status.value for status in AccountStatus])
    sa.add_argument("--limit", type=int, default=50)
    sa.add_argument("--offset", type=int, default=0)

    sd = sub.add_parser("delete-account", help="Revoke and tombstone one account")
    sd.add_argument("--integration", required=True)
    sd.add_argument("--account-id", required=True)

    sc = sub.add_parser("cleanup-user", help="Remove every integration account of a user")
    sc.add_argument("--user-id", required=True)

    sub.add_parser("verify-audit", help="Verify audit log signatures")

    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return 0

    if args.cmd == "verify-audit":
        return _cmd_verify_audit(None, args)

    try:
        registry = build_registry()
    except ConfigurationError as e:
        print(f"[{args.cmd}] Configuration error: {e}", file=sys.stderr)
        return 2

    handlers = {
        "list": _cmd_list,
        "accounts": _cmd_accounts,
        "delete-account": _cmd_delete_account,
        "cleanup-user": _cmd_cleanup_user,
    }
    try:
        return handlers[args.cmd](registry, args)
    except IntegrationError as e:
        print(f"[{args.cmd}] Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
