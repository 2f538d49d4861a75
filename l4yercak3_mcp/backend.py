"""
Async HTTP client for the L4YERCAK3 backend API.

The backend plays two roles for the MCP server:
- Remote identity authority: validate_session() turns a CLI session token
  into the live identity and permission set (called on every MCP request).
- Business API: tool handlers forward their work to request().

Every call is made with the caller's own session token as a Bearer token, so
the backend enforces its own authorization in addition to ours.
"""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

VALIDATE_SESSION_PATH = "/api/v1/auth/cli/validate"
APPLICATIONS_PATH = "/api/v1/cli/applications"


class BackendError(Exception):
    """
    Raised when a backend call fails.

    Attributes:
        message: Backend-supplied message, or a generic description
        status_code: HTTP status of the failed response (None for network errors)
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class BackendClient:
    """
    Thin wrapper around httpx.AsyncClient.

    A fresh AsyncClient is opened per call: concurrent MCP requests share no
    connection state, and tests can inject an httpx.MockTransport.

    Args:
        base_url: Backend root, e.g. "https://backend.l4yercak3.com"
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        token: str | None = None,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Make an API request and return the decoded JSON body.

        Query parameters whose value is None are dropped, so handlers can pass
        optional tool arguments straight through.

        Raises:
            BackendError: Network failure, non-2xx status, or a non-JSON body
        """
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        query = {k: v for k, v in (params or {}).items() if v is not None}

        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            try:
                response = await client.request(
                    method, endpoint, headers=headers, json=json, params=query or None
                )
            except httpx.RequestError as e:
                logger.warning("Backend request %s %s failed: %s", method, endpoint, e)
                raise BackendError(
                    f"Network error: Could not connect to backend at {self.base_url}"
                ) from e

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = None

        if not response.is_success:
            message = None
            if isinstance(body, dict):
                message = body.get("message")
            raise BackendError(
                message or f"API request failed: {response.status_code}",
                status_code=response.status_code,
            )

        if not isinstance(body, dict):
            raise BackendError(
                f"Unexpected response from {endpoint}: expected a JSON object",
                status_code=response.status_code,
            )
        return body

    # ----- Identity -----

    async def validate_session(self, token: str) -> dict[str, Any]:
        """
        Ask the backend who this token belongs to.

        Returns the raw validation body, e.g.
            {"valid": true, "userId": "...", "organizationId": "...",
             "permissions": ["view_crm"]}

        Raises:
            BackendError: The backend is unreachable or rejected the call
        """
        return await self.request("GET", VALIDATE_SESSION_PATH, token=token)

    # ----- Platform organizations -----

    async def get_organizations(self, token: str) -> dict[str, Any]:
        return await self.request("GET", "/api/v1/organizations", token=token)

    async def create_organization(self, token: str, name: str) -> dict[str, Any]:
        return await self.request(
            "POST", "/api/v1/organizations", token=token, json={"name": name}
        )

    # ----- Connected applications -----

    async def check_existing_application(
        self, token: str, organization_id: str | None, project_path_hash: str
    ) -> dict[str, Any]:
        """
        Look up an application by the hash of its project path.

        Returns {"found": False} when the backend answers 404; other errors raise.
        """
        try:
            return await self.request(
                "GET",
                f"{APPLICATIONS_PATH}/by-path",
                token=token,
                params={"organizationId": organization_id, "hash": project_path_hash},
            )
        except BackendError as e:
            if e.status_code == 404:
                return {"found": False}
            raise

    async def register_application(self, token: str, registration: dict[str, Any]) -> dict[str, Any]:
        return await self.request("POST", APPLICATIONS_PATH, token=token, json=registration)

    async def get_application(self, token: str, application_id: str) -> dict[str, Any]:
        return await self.request("GET", f"{APPLICATIONS_PATH}/{application_id}", token=token)

    async def list_applications(
        self, token: str, organization_id: str | None, **filters: Any
    ) -> dict[str, Any]:
        return await self.request(
            "GET",
            APPLICATIONS_PATH,
            token=token,
            params={"organizationId": organization_id, **filters},
        )

    async def update_application(
        self, token: str, application_id: str, updates: dict[str, Any]
    ) -> dict[str, Any]:
        return await self.request(
            "PATCH", f"{APPLICATIONS_PATH}/{application_id}", token=token, json=updates
        )

    async def sync_application(
        self, token: str, application_id: str, options: dict[str, Any]
    ) -> dict[str, Any]:
        return await self.request(
            "POST", f"{APPLICATIONS_PATH}/{application_id}/sync", token=token, json=options
        )
