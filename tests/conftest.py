"""
Shared test fixtures for the MCP server test suite.

Key fixtures:
- store: A CredentialStore rooted in a temporary directory
- write_session: Factory that persists a CLI session into that store
- make_authority: Factory for a fake identity authority (the backend's
  validate endpoint) that records calls and can fail on demand
- make_context: Factory for AuthContext values
- make_tool: Factory for ToolDescriptors with a recording handler

Testing approach:
- test_auth.py / test_credentials.py / test_backend.py: each collaborator in isolation
- test_dispatch.py: capability filtering and dispatch over small hand-built catalogs
- test_protocol.py: the discovery/invocation handlers over the production catalog
- test_server.py: the full FastMCP stack through an in-memory MCP client
"""

import time
from typing import Any

import pytest

from l4yercak3_mcp.auth import AuthContext, parse_permissions
from l4yercak3_mcp.credentials import CredentialStore, Session
from l4yercak3_mcp.tools import ToolDescriptor

TEST_TOKEN = "cli_session_test"


# ---------------------------------------------------------------------------
# Credential store fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / ".l4yercak3")


@pytest.fixture
def write_session(store):
    """
    Factory fixture that writes a session to the test store.

    Usage in tests:
        def test_something(write_session):
            write_session(organization_id="org_1")
            write_session(expires_in_hours=-1)      # already expired
            write_session(expires_in_hours=None)    # no expiry at all
    """

    def _write_session(
        token: str | None = TEST_TOKEN,
        expires_in_hours: float | None = 1.0,
        **fields: Any,
    ) -> Session:
        expires_at = None
        if expires_in_hours is not None:
            expires_at = int((time.time() + expires_in_hours * 3600) * 1000)
        session = Session(token=token, expires_at=expires_at, **fields)
        store.write_session(session)
        return session

    return _write_session


# ---------------------------------------------------------------------------
# Identity authority fixture
# ---------------------------------------------------------------------------
class FakeAuthority:
    """
    Stands in for BackendClient.validate_session.

    Set `response` to the validation body to return, or `error` to an
    exception to raise. Every call's token is recorded in `calls`.
    """

    def __init__(self, response: Any = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[str] = []

    async def __call__(self, token: str):
        self.calls.append(token)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def make_authority():
    """
    Usage:
        authority = make_authority(permissions=["view_crm"])
        authority = make_authority(valid=False)
        authority = make_authority(error=ConnectionError("backend down"))
    """

    def _make_authority(
        valid: bool = True,
        permissions: list[str] | None = None,
        error: Exception | None = None,
        **fields: Any,
    ) -> FakeAuthority:
        response = {"valid": valid, **fields}
        if permissions is not None:
            response["permissions"] = permissions
        return FakeAuthority(response=response, error=error)

    return _make_authority


# ---------------------------------------------------------------------------
# AuthContext fixture
# ---------------------------------------------------------------------------
@pytest.fixture
def make_context():
    def _make_context(permissions: list[str] | None = None, **fields: Any) -> AuthContext:
        values = {
            "user_id": "user_1",
            "organization_id": "org_1",
            "organization_name": "Acme",
            "session_token": TEST_TOKEN,
            "email": "alice@example.com",
        }
        values.update(fields)
        return AuthContext(permissions=parse_permissions(permissions or []), **values)

    return _make_context


# ---------------------------------------------------------------------------
# Tool fixture
# ---------------------------------------------------------------------------
class RecordingHandler:
    """Async tool handler that records its calls and returns or raises on demand."""

    def __init__(self, result: Any = None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[tuple[dict, AuthContext | None]] = []

    async def __call__(self, arguments: dict, ctx: AuthContext | None):
        self.calls.append((arguments, ctx))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def make_tool():
    """
    Usage:
        tool = make_tool("crm_list", permissions=["view_crm"])
        tool.handler.calls  # -> [(arguments, ctx), ...]
    """

    def _make_tool(
        name: str,
        permissions: list[str] | tuple[str, ...] = (),
        requires_auth: bool = True,
        result: Any = None,
        error: Exception | None = None,
    ) -> ToolDescriptor:
        return ToolDescriptor(
            name=name,
            description=f"Test tool {name}",
            input_schema={"type": "object", "properties": {}},
            handler=RecordingHandler(result=result if result is not None else {"tool": name}, error=error),
            requires_auth=requires_auth,
            required_permissions=tuple(permissions),
        )

    return _make_tool
