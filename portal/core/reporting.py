"""Out-of-band error reporting for failures that must not propagate."""
from __future__ import annotations

import logging
from typing import Protocol

from . import audit

logger = logging.getLogger(__name__)


class ErrorReporter(Protocol):
    def capture_exception(self, error: BaseException, tags: dict[str, str]) -> None:
        ...


class LoggingErrorReporter:
    """Report errors to the application log and the audit trail."""

    def __init__(self, audit_enabled: bool = True):
        self.audit_enabled = audit_enabled

    def capture_exception(self, error: BaseException, tags: dict[str, str]) -> None:
        tag_text = " ".join(f"{key}={value}" for key, value in sorted(tags.items()))
        logger.error(f"Integration failure | {tag_text} | {type(error).__name__}: {error}", exc_info=error)
        if self.audit_enabled:
            audit.safe_log_integration_event(
                "integration_cleanup_failure",
                tags.get("userId", ""),
                integration=tags.get("integration", ""),
                details={"error": str(error), "error_type": type(error).__name__},
                success=False,
            )

