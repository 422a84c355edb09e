"""
Workout server HTTP Client.

Handles HTTP transport, bearer authentication and error classification.
All endpoint-specific logic lives in the sibling modules (sessions, program, sharing).
"""

import json
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://localhost:3000"
DEFAULT_TIMEOUT = 15


class ApiError(ValueError):
    """The server answered with a non-success status."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class RejectedError(ApiError):
    """Authoritative rejection. Retrying the same request cannot succeed."""


class NotFoundError(RejectedError):
    """The referenced resource does not exist on the server."""


class UnauthorizedError(RejectedError):
    """The caller may not act on the referenced resource."""


class SessionExpiredError(ApiError):
    """The auth token expired. The user must log in again."""


class LiftSyncClient:
    """
    Workout server HTTP transport.

    Handles headers, base URL and request/response parsing.
    Domain-specific endpoint calls are in sibling modules (sdk.sessions, sdk.sharing, etc.).
    """

    def __init__(
        self,
        server_url: str = DEFAULT_SERVER_URL,
        token: str = None,
        user_id: str = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._server_url = server_url.rstrip("/")
        self._access_token: Optional[str] = token
        self._user_id: Optional[str] = user_id
        self._timeout = timeout
        self._session = requests.Session()

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_logged_in(self) -> bool:
        return self._access_token is not None

    def make_request(
        self,
        method: str,
        endpoint: str,
        params: Dict = None,
        json_data: Dict = None,
        require_auth: bool = True,
        allow_not_found: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Make an authenticated API request.

        Args:
            method: HTTP method (GET/POST/PATCH/DELETE)
            endpoint: API endpoint path (e.g. "api/sessions/start")
            params: Query parameters
            json_data: JSON body data
            require_auth: Whether authentication is required
            allow_not_found: Return None on 404 instead of raising

        Returns:
            Decoded JSON body (empty dict if the body is empty)

        Raises:
            RuntimeError: If not logged in but auth required
            SessionExpiredError: On 401 with an expiry marker
            NotFoundError / UnauthorizedError: On 404 / 401 / 403
            ApiError: On any other non-success status
        """
        if require_auth and not self._access_token:
            raise RuntimeError("Not logged in. Call set_liftsync_session() first.")

        headers = {"Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"

        url = f"{self._server_url}/{endpoint.lstrip('/')}"
        response = self._session.request(
            method.upper(),
            url,
            headers=headers,
            params=params,
            json=json_data,
            timeout=self._timeout,
        )

        if response.status_code == 404 and allow_not_found:
            return None

        data = _decode_body(response)

        if response.status_code >= 400:
            raise _classify_error(response.status_code, data)

        return data

    # ── Token serialization ──────────────────────────────────────────────

    def export_token(self) -> str:
        """Export access token and user id as JSON string."""
        if not self._access_token:
            raise RuntimeError("Not logged in. Call set_liftsync_session() first.")

        return json.dumps({
            "access_token": self._access_token,
            "user_id": self._user_id,
        })

    def load_token(self, token_data: str) -> None:
        """Load a previously exported token."""
        data = json.loads(token_data)
        self._access_token = data["access_token"]
        self._user_id = data.get("user_id")

    def logout(self) -> None:
        """Clear the session."""
        self._access_token = None
        self._user_id = None


def _decode_body(response) -> Dict[str, Any]:
    """Decode a JSON body, tolerating empty or non-JSON bodies."""
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {"error": response.text}
    return data if isinstance(data, dict) else {"data": data}


def _classify_error(status_code: int, data: Dict[str, Any]) -> ApiError:
    """Map a failed response onto the error taxonomy."""
    message = str(data.get("error") or data.get("message") or f"HTTP {status_code}")

    if status_code == 401:
        if "expired" in message.lower():
            logger.warning("Auth token expired - forcing logout")
            return SessionExpiredError("SESSION_EXPIRED", status_code)
        return UnauthorizedError(f"unauthorized: {message}", status_code)
    if status_code == 403:
        return UnauthorizedError(f"unauthorized: {message}", status_code)
    if status_code == 404:
        return NotFoundError(f"not found: {message}", status_code)
    return ApiError(message, status_code)
