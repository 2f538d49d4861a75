"""
Integration tests for the FastMCP server (l4yercak3_mcp/server.py).

These tests exercise the full flow through the MCP protocol:
HTTP request -> FastMCP -> ToolAccessMiddleware -> ToolServer -> dispatcher.

Unlike test_protocol.py (which calls the ToolServer directly), these tests
verify that the middleware correctly:
- Replaces FastMCP's tool registry with the per-caller filtered list
- Turns failed invocations into results with isError=true
- Returns successful payloads as text content

Test approach:
    We use httpx.AsyncClient with the FastMCP ASGI app (in-memory, no real
    server process needed). The ASGI app requires its lifespan to be started
    (this initializes the StreamableHTTP session manager's task group), so
    we manually manage the ASGI lifespan in a fixture.

    There is no Authorization header: the caller's identity comes from the
    session file in the test store, validated by a FakeAuthority.
"""

import asyncio
import json

import httpx
import pytest

from l4yercak3_mcp.auth import AuthContextResolver
from l4yercak3_mcp.backend import BackendClient
from l4yercak3_mcp.protocol import ToolServer
from l4yercak3_mcp.server import build_catalog, create_server

MCP_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/event-stream",
}


def backend_router(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/v1/forms":
        return httpx.Response(
            200, json={"forms": [{"_id": "f1", "name": "Signup", "status": "published"}]}
        )
    return httpx.Response(404, json={"message": "Not found"})


@pytest.fixture
async def mcp_client(store):
    """
    Factory for MCP client sessions against a server built per test.

    This fixture:
    1. Builds the ASGI app from create_server() with the given authority
    2. Manually starts the ASGI lifespan
    3. Runs the initialize handshake and returns (client, session_id, app)
    4. Shuts everything down on teardown
    """
    lifespans = []
    clients = []

    async def _create_mcp_client(authority):
        backend = BackendClient(
            "https://backend.test", transport=httpx.MockTransport(backend_router)
        )
        tool_server = ToolServer(
            build_catalog(backend, store), AuthContextResolver(store, authority)
        )
        app = create_server(tool_server=tool_server).http_app(transport="streamable-http")

        # --- Start ASGI lifespan ---
        startup_complete = asyncio.Event()
        shutdown_triggered = asyncio.Event()

        async def receive():
            if not startup_complete.is_set():
                startup_complete.set()
                return {"type": "lifespan.startup"}
            await shutdown_triggered.wait()
            return {"type": "lifespan.shutdown"}

        async def send(message):
            pass

        scope = {"type": "lifespan", "asgi": {"version": "3.0"}}
        task = asyncio.create_task(app(scope, receive, send))
        lifespans.append((task, shutdown_triggered))

        await startup_complete.wait()
        await asyncio.sleep(0.1)  # Give the task group time to initialize

        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app))
        clients.append(client)

        response = await client.post(
            "http://testserver/mcp",
            headers=MCP_HEADERS,
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "method": "initialize",
                "params": {
                    "protocolVersion": "2025-03-26",
                    "capabilities": {},
                    "clientInfo": {"name": "test-client", "version": "1.0"},
                },
            },
        )
        return client, response.headers.get("mcp-session-id")

    yield _create_mcp_client

    # --- Cleanup ---
    for client in clients:
        await client.aclose()
    for task, shutdown_triggered in lifespans:
        shutdown_triggered.set()
        await task


# ---------------------------------------------------------------------------
# Helper functions for MCP protocol requests
# ---------------------------------------------------------------------------


async def rpc(client, session_id: str, method: str, params: dict) -> dict:
    """Send one JSON-RPC request and return the parsed response."""
    response = await client.post(
        "http://testserver/mcp",
        headers={**MCP_HEADERS, "Mcp-Session-Id": session_id},
        json={"jsonrpc": "2.0", "id": 2, "method": method, "params": params},
    )
    return _parse_sse_response(response.text)


async def list_tool_names(client, session_id: str) -> list[str]:
    data = await rpc(client, session_id, "tools/list", {})
    return [t["name"] for t in data["result"]["tools"]]


async def call_tool(client, session_id: str, name: str, arguments: dict | None = None) -> dict:
    data = await rpc(client, session_id, "tools/call", {"name": name, "arguments": arguments or {}})
    return data.get("result", {})


def _parse_sse_response(text: str) -> dict:
    """
    Parse an SSE (Server-Sent Events) response body into a JSON dict.

    MCP Streamable HTTP transport returns responses as SSE events:
        event: message
        data: {"jsonrpc":"2.0","id":1,"result":{...}}
    """
    for line in text.strip().split("\n"):
        if line.startswith("data: "):
            return json.loads(line[6:])
    return {}


# ---------------------------------------------------------------------------
# Test: Tool list filtering
# ---------------------------------------------------------------------------


class TestToolListFiltering:
    async def test_no_session_sees_only_public_tools(self, mcp_client, make_authority):
        client, session_id = await mcp_client(make_authority(permissions=["*"]))

        names = await list_tool_names(client, session_id)

        assert names == [
            "l4yercak3_get_capabilities",
            "l4yercak3_check_auth_status",
            "l4yercak3_get_login_instructions",
        ]

    async def test_forms_viewer_sees_forms_read_tools(
        self, mcp_client, make_authority, write_session
    ):
        write_session()
        client, session_id = await mcp_client(make_authority(permissions=["view_forms"]))

        names = await list_tool_names(client, session_id)

        assert "l4yercak3_forms_list" in names
        assert "l4yercak3_forms_get_responses" in names
        assert "l4yercak3_forms_publish" not in names
        assert "l4yercak3_crm_list_contacts" not in names

    async def test_listed_tools_carry_input_schema(
        self, mcp_client, make_authority, write_session
    ):
        write_session()
        client, session_id = await mcp_client(make_authority(permissions=["*"]))

        data = await rpc(client, session_id, "tools/list", {})
        by_name = {t["name"]: t for t in data["result"]["tools"]}

        schema = by_name["l4yercak3_switch_organization"]["inputSchema"]
        assert schema["required"] == ["organizationId"]


# ---------------------------------------------------------------------------
# Test: Tool call authorization
# ---------------------------------------------------------------------------


class TestToolCallAuthorization:
    async def test_missing_permission_is_error_result(
        self, mcp_client, make_authority, write_session
    ):
        write_session()
        client, session_id = await mcp_client(make_authority(permissions=["view_forms"]))

        result = await call_tool(client, session_id, "l4yercak3_forms_publish", {"formId": "f1"})

        assert result.get("isError") is True
        assert "manage_forms" in result["content"][0]["text"]

    async def test_no_session_gated_tool_asks_for_login(self, mcp_client, make_authority):
        client, session_id = await mcp_client(make_authority(permissions=["*"]))

        result = await call_tool(client, session_id, "l4yercak3_list_organizations")

        assert result.get("isError") is True
        assert "l4yercak3 login" in result["content"][0]["text"]

    async def test_authorized_call_returns_json_text(
        self, mcp_client, make_authority, write_session
    ):
        write_session(organization_id="org_1")
        client, session_id = await mcp_client(make_authority(permissions=["view_forms"]))

        result = await call_tool(client, session_id, "l4yercak3_forms_list")

        assert result.get("isError") is not True
        payload = json.loads(result["content"][0]["text"])
        assert payload["forms"][0]["name"] == "Signup"

    async def test_public_tool_without_session(self, mcp_client, make_authority):
        client, session_id = await mcp_client(make_authority())

        result = await call_tool(client, session_id, "l4yercak3_get_login_instructions")

        assert result.get("isError") is not True
        assert "l4yercak3 login" in result["content"][0]["text"]


class TestHealth:
    async def test_health_reports_catalog_size(self, store, make_authority):
        backend = BackendClient("https://backend.test", transport=httpx.MockTransport(backend_router))
        catalog = build_catalog(backend, store)
        app = create_server(
            tool_server=ToolServer(catalog, AuthContextResolver(store, make_authority()))
        ).http_app(transport="streamable-http")

        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app)) as client:
            response = await client.get("http://testserver/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "tools": len(catalog)}
