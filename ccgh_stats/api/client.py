"""
Stats service HTTP client.

Registers the agent and uploads aggregated usage records. Every call is a
single attempt; failures are loud so callers decide what state to keep.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from ccgh_stats.core.usage import UsageRecord


class ApiError(Exception):
    """Raised when the stats service cannot be reached or rejects a call."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class Registration:
    """Credentials and widget location returned by /api/register."""
    public_id: str
    write_token: str
    widget_url: str


class StatsApiClient:
    """Thin wrapper over the stats service endpoints."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None):
        """Initialize the client.

        Args:
            base_url: Service base URL, without trailing slash
            session: Optional requests session (defaults to a new one)
        """
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

    def register(self) -> Registration:
        """Register a new user.

        Returns:
            Registration with the new public id and write token

        Raises:
            ApiError: On transport failure, non-2xx status or a bad response
        """
        data = self._post("/api/register", "Registration failed")
        if not isinstance(data, dict):
            raise ApiError("Registration failed: response missing credentials")

        public_id = data.get("publicId")
        write_token = data.get("writeToken")
        if not _is_credential(public_id) or not _is_credential(write_token):
            raise ApiError("Registration failed: response missing credentials")

        widget_url = data.get("widgetUrl")
        return Registration(
            public_id=public_id,
            write_token=write_token,
            widget_url=widget_url if isinstance(widget_url, str) else ""
        )

    def sync_records(
        self,
        public_id: str,
        write_token: str,
        records: List[UsageRecord]
    ) -> Dict[str, Any]:
        """Upload records for a registered user in one batch.

        Args:
            public_id: User's public id
            write_token: User's write token, sent as a bearer credential
            records: Aggregated usage records

        Returns:
            The service's JSON acknowledgment

        Raises:
            ApiError: On transport failure or non-2xx status
        """
        return self._post(
            "/api/sync",
            "Sync failed",
            json={
                "publicId": public_id,
                "records": [record.to_dict() for record in records],
            },
            headers={"Authorization": f"Bearer {write_token}"}
        )

    def _post(
        self,
        path: str,
        failure: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> Any:
        request_headers = {"Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)

        try:
            response = self.session.post(
                f"{self.base_url}{path}",
                json=json,
                headers=request_headers
            )
        except requests.RequestException as e:
            raise ApiError(f"{failure}: {e}")

        if not response.ok:
            raise ApiError(
                _error_message(response) or f"{failure}: {response.status_code}",
                status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError:
            raise ApiError(f"{failure}: invalid JSON response", status_code=response.status_code)


def _is_credential(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _error_message(response: requests.Response) -> Optional[str]:
    """Extract the service's ``error`` field from a failed response, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return None
