"""HTTP client for the Prosody REST admin API.

Authenticates with HTTP Basic (admin JID + secret) on every request.
"""
from __future__ import annotations
import logging
from typing import Any, Optional
from urllib.parse import quote

import requests

from ...errors import ConflictError, ExternalServiceError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15


class ProsodyAPIError(ExternalServiceError):
    """HTTP error from the Prosody REST API.

    Attributes:
        status_code: HTTP status code
        endpoint: API endpoint that failed
    """

    def __init__(self, status_code: int, message: str, endpoint: str):
        self.endpoint = endpoint
        super().__init__(
            f"[{status_code}] {endpoint}: {message}",
            service="prosody",
            status_code=status_code,
        )


class ProsodyClient:
    """Account operations against Prosody's REST admin module.

    Usage:
        client = ProsodyClient("https://xmpp.example/rest", "admin@xmpp.example", "secret")
        client.create_account("alice", password)
        client.delete_account("alice")
    """

    def __init__(self, base_url: str, username: str, password: str, timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._auth = (username, password)

    def _account_path(self, username: str) -> str:
        return f"/accounts/{quote(username, safe='')}"

    def _request(self, method: str, path: str, json: Optional[dict] = None) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return requests.request(
                method,
                url,
                json=json,
                auth=self._auth,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ExternalServiceError(f"Prosody unreachable: {exc}", service="prosody") from exc

    def _handle_error(self, resp: requests.Response, path: str) -> None:
        """Raise ProsodyAPIError for 4xx/5xx responses."""
        if resp.status_code < 400:
            return
        try:
            body = resp.json()
            message = body.get("error") or body.get("message") or resp.reason
        except ValueError:
            message = resp.text or resp.reason
        raise ProsodyAPIError(resp.status_code, str(message), path)

    def get_account(self, username: str) -> Optional[dict[str, Any]]:
        """Return the account profile, or None if Prosody has no such account."""
        path = self._account_path(username)
        resp = self._request("GET", path)
        if resp.status_code == 404:
            return None
        self._handle_error(resp, path)
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def account_exists(self, username: str) -> bool:
        return self.get_account(username) is not None

    def create_account(self, username: str, password: str, display_name: Optional[str] = None) -> None:
        """Create an account.

        Raises:
            ConflictError: If Prosody already has the username
            ProsodyAPIError: On any other HTTP error
        """
        payload: dict[str, Any] = {"username": username, "password": password}
        if display_name:
            payload["name"] = display_name
        resp = self._request("POST", "/accounts", json=payload)
        if resp.status_code == 409:
            raise ConflictError("Username already taken in XMPP server")
        self._handle_error(resp, "/accounts")
        logger.info(f"Created Prosody account '{username}'")

    def update_account(self, username: str, **fields: Any) -> None:
        """PATCH account fields (``enabled``, ``name``, ``password``)."""
        path = self._account_path(username)
        resp = self._request("PATCH", path, json=fields)
        self._handle_error(resp, path)

    def delete_account(self, username: str) -> bool:
        """Delete an account. Returns False if it did not exist."""
        path = self._account_path(username)
        resp = self._request("DELETE", path)
        if resp.status_code == 404:
            return False
        self._handle_error(resp, path)
        logger.info(f"Deleted Prosody account '{username}'")
        return True
