"""Tamper-evident audit trail for integration account lifecycle events.

Each event is one JSON object per line in ``AUDIT_LOG_FILE``. When a signing
key is available the event carries an HMAC-SHA256 ``signature`` computed over
its canonical JSON form (sorted keys, no whitespace, signature excluded).

Key lookup order: ``AUDIT_LOG_SIGNING_KEY`` env var, then the files listed in
``_default_secret_paths`` (Docker secret first).
"""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import logging
import os
from pathlib import Path
from typing import Any, Iterator, Literal

logger = logging.getLogger(__name__)

AUDIT_LOG_DIR = Path(os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"))
AUDIT_LOG_FILE = AUDIT_LOG_DIR / "integration-events.jsonl"

_default_secret_paths: list[Path] = [
    Path("/run/secrets/audit_log_signing_key"),
    Path(".runtime/secrets/audit_log_signing_key"),
]

EventType = Literal[
    "integration_create",
    "integration_update",
    "integration_delete",
    "integration_cleanup",
    "integration_cleanup_failure",
]


def _signing_key() -> bytes:
    from_env = os.environ.get("AUDIT_LOG_SIGNING_KEY", "").strip()
    if from_env:
        return from_env.encode("utf-8")
    for candidate in _default_secret_paths:
        if not candidate.is_file():
            continue
        try:
            value = candidate.read_text(encoding="utf-8").strip()
        except OSError:
            logger.warning(f"Cannot read audit signing key from {candidate}")
            continue
        if value:
            return value.encode("utf-8")
    return b""


def _signature(event: dict[str, Any], key: bytes) -> str:
    payload = json.dumps(event, sort_keys=True, separators=(",", ":"), default=str)
    return hmac.new(key, payload.encode("utf-8"), hashlib.sha256).hexdigest()


def _ensure_audit_dir() -> None:
    """Create the audit directory (owner-only)."""
    AUDIT_LOG_DIR.mkdir(parents=True, exist_ok=True)
    AUDIT_LOG_DIR.chmod(0o700)


def _append(record: dict[str, Any]) -> None:
    line = json.dumps(record, ensure_ascii=False, default=str) + "\n"
    fd = os.open(AUDIT_LOG_FILE, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
    with os.fdopen(fd, "a", encoding="utf-8") as fh:
        fh.write(line)
    # Pre-existing files may have been created with a looser mode
    AUDIT_LOG_FILE.chmod(0o600)


def log_integration_event(
    event_type: EventType,
    user_id: str,
    *,
    integration: str,
    operator: str = "system",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Append one lifecycle event to the audit trail.

    Args:
        event_type: Lifecycle operation (create, update, delete, cleanup)
        user_id: Portal user owning the account
        integration: Integration id, or a comma-joined list for cleanup runs
        operator: Who performed the operation (user id, "admin:<id>", "cli")
        details: Additional context; never include secrets
        success: Whether the operation succeeded

    Raises:
        OSError: If the audit file cannot be written
    """
    _ensure_audit_dir()

    record: dict[str, Any] = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "event_type": event_type,
        "integration": integration,
        "user_id": user_id,
        "operator": operator,
        "success": success,
        "details": dict(details or {}),
    }
    key = _signing_key()
    if key:
        record["signature"] = _signature(record, key)

    _append(record)


def safe_log_integration_event(
    event_type: EventType,
    user_id: str,
    *,
    integration: str,
    operator: str = "system",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> bool:
    """Best-effort variant of log_integration_event for request paths.

    Returns:
        True if the event was written, False if it was dropped
    """
    try:
        log_integration_event(
            event_type,
            user_id,
            integration=integration,
            operator=operator,
            details=details,
            success=success,
        )
    except Exception as e:
        logger.warning(f"Failed to log {event_type} event for {user_id}: {e}")
        return False
    return True


def iter_audit_events() -> Iterator[tuple[int, dict[str, Any] | None]]:
    """Yield ``(line_number, event)`` for each non-blank line.

    Lines that are not valid JSON objects yield ``None`` as the event.
    """
    if not AUDIT_LOG_FILE.exists():
        return
    with AUDIT_LOG_FILE.open("r", encoding="utf-8") as fh:
        for line_number, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                yield line_number, None
                continue
            yield line_number, event if isinstance(event, dict) else None


def verify_audit_log() -> tuple[int, int]:
    """Check every stored signature against the current signing key.

    Returns:
        Tuple of (total_events, valid_signatures)
    """
    key = _signing_key()
    total = valid = 0
    for line_number, event in iter_audit_events():
        total += 1
        if event is None:
            logger.warning(f"Audit line {line_number} is not a JSON object")
            continue
        stored = event.pop("signature", "")
        if stored and key and hmac.compare_digest(stored, _signature(event, key)):
            valid += 1
        else:
            logger.warning(f"Audit line {line_number} has a missing or invalid signature")
    return total, valid
