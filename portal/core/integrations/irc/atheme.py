"""JSON-RPC client for Atheme IRC services.

Handles request framing, fault decoding and operator sessions.
"""
from __future__ import annotations
import itertools
import logging
from typing import Any, Optional

import requests

from ...errors import ExternalServiceError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15

# Atheme fault codes (transport/jsonrpc)
FAULT_NEEDMOREPARAMS = 1
FAULT_BADPARAMS = 2
FAULT_NOSUCH_SOURCE = 3
FAULT_NOSUCH_TARGET = 4
FAULT_AUTHFAIL = 5
FAULT_NOPRIVS = 6
FAULT_ALREADYEXISTS = 8
FAULT_TOOMANY = 9
FAULT_EMAILFAIL = 10
FAULT_NOCHANGE = 12
FAULT_BADAUTHCOOKIE = 15
FAULT_INTERNALERROR = 16


class AthemeFaultError(ExternalServiceError):
    """Atheme returned a JSON-RPC fault.

    Attributes:
        code: Atheme fault code
        message: Fault message from Atheme
    """

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[fault {code}] {message}", service="atheme")


class AthemeClient:
    """Client for the Atheme ``atheme.*`` JSON-RPC methods.

    Usage:
        client = AthemeClient("https://services.example:8080/jsonrpc")
        client.register_nick("alice", secret, "alice@example.com")
        client.drop_nick("alice", oper_account="portal", oper_password="...")
    """

    def __init__(self, url: str, timeout: float = REQUEST_TIMEOUT, verify_tls: bool = True, source_ip: str = "127.0.0.1"):
        self.url = url
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.source_ip = source_ip
        self._ids = itertools.count(1)

    def call(self, method: str, params: list[str]) -> Any:
        """Execute one JSON-RPC call.

        Raises:
            AthemeFaultError: On an Atheme fault
            ExternalServiceError: On transport errors or malformed responses
        """
        body = {"jsonrpc": "2.0", "method": method, "params": params, "id": next(self._ids)}
        try:
            resp = requests.post(
                self.url,
                json=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
                verify=self.verify_tls,
            )
        except requests.RequestException as exc:
            raise ExternalServiceError(f"Atheme unreachable: {exc}", service="atheme") from exc

        try:
            data = resp.json()
        except ValueError:
            raise ExternalServiceError(
                f"Atheme returned a non-JSON response ({resp.status_code})",
                service="atheme",
                status_code=resp.status_code,
            )

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            if not isinstance(error, dict):
                raise ExternalServiceError(
                    f"Atheme returned a malformed error: {str(error)[:200]}",
                    service="atheme",
                    status_code=resp.status_code,
                )
            try:
                code = int(error.get("code") or FAULT_INTERNALERROR)
            except (TypeError, ValueError):
                code = FAULT_INTERNALERROR
            raise AthemeFaultError(code, str(error.get("message") or "Atheme fault"))
        if resp.status_code >= 400:
            raise ExternalServiceError(
                f"Atheme request failed ({resp.status_code})",
                service="atheme",
                status_code=resp.status_code,
            )
        return data.get("result", "") if isinstance(data, dict) else ""

    def command(self, service: str, command: str, *args: str, cookie: str = ".", account: str = "") -> str:
        """Run ``atheme.command`` as the given session (anonymous by default)."""
        params = [cookie, account, self.source_ip, service, command, *args]
        return self.call("atheme.command", params)

    def login(self, account: str, password: str) -> str:
        """Open an authenticated session and return its auth cookie."""
        return self.call("atheme.login", [account, password, self.source_ip])

    def logout(self, cookie: str, account: str) -> None:
        try:
            self.call("atheme.logout", [cookie, account])
        except ExternalServiceError as exc:
            logger.warning(f"Atheme logout failed for {account}: {exc}")

    def oper_command(self, oper_account: str, oper_password: str, service: str, command: str, *args: str) -> str:
        """Run a privileged command inside a login/logout session."""
        cookie = self.login(oper_account, oper_password)
        try:
            return self.command(service, command, *args, cookie=cookie, account=oper_account)
        finally:
            self.logout(cookie, oper_account)

    # ─────────────────────────────────────────────────────────────────────
    # NickServ operations
    # ─────────────────────────────────────────────────────────────────────
    def register_nick(self, nick: str, password: str, email: str) -> None:
        """NickServ REGISTER (unauthenticated)."""
        self.command("NickServ", "REGISTER", nick.strip(), password, email.strip())

    def drop_nick(self, nick: str, oper_account: str, oper_password: str) -> bool:
        """NickServ FDROP. Returns False if the nick was not registered."""
        try:
            self.oper_command(oper_account, oper_password, "NickServ", "FDROP", nick)
        except AthemeFaultError as exc:
            if exc.code == FAULT_NOSUCH_TARGET:
                return False
            raise
        return True

    def freeze_nick(self, nick: str, frozen: bool, oper_account: str, oper_password: str, reason: Optional[str] = None) -> None:
        """NickServ FREEZE ON|OFF. Re-applying the current state is not an error."""
        args = [nick, "ON", reason or "Suspended via portal"] if frozen else [nick, "OFF"]
        try:
            self.oper_command(oper_account, oper_password, "NickServ", "FREEZE", *args)
        except AthemeFaultError as exc:
            if exc.code != FAULT_NOCHANGE:
                raise
