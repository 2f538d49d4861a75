"""
Tests for the discovery and invocation handlers (l4yercak3_mcp/protocol.py).

These run against the production catalog (core, applications, CRM, events,
forms), with the identity authority replaced by a FakeAuthority and business
calls answered by an httpx.MockTransport.
"""

import asyncio
import json

import httpx
import pytest

from l4yercak3_mcp.auth import AuthContextResolver
from l4yercak3_mcp.backend import BackendClient
from l4yercak3_mcp.errors import HandlerFailure, PermissionDenied
from l4yercak3_mcp.protocol import InvocationResult, ToolServer, serialize_payload
from l4yercak3_mcp.server import build_catalog
from l4yercak3_mcp.tools import Catalog, ToolDomain

PUBLIC_TOOLS = [
    "l4yercak3_get_capabilities",
    "l4yercak3_check_auth_status",
    "l4yercak3_get_login_instructions",
]


def backend_router(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/v1/crm/contacts":
        return httpx.Response(
            200,
            json={
                "contacts": [
                    {
                        "_id": "c1",
                        "name": "Ada Lovelace",
                        "customProperties": {"email": "ada@example.com"},
                    }
                ],
                "total": 1,
            },
        )
    return httpx.Response(503, json={"message": "backend unavailable"})


@pytest.fixture
def make_tool_server(store):
    """
    Usage:
        server = make_tool_server(make_authority(permissions=["view_crm"]))
    """

    def _make_tool_server(authority, catalog: Catalog | None = None) -> ToolServer:
        backend = BackendClient("https://backend.test", transport=httpx.MockTransport(backend_router))
        if catalog is None:
            catalog = build_catalog(backend, store)
        return ToolServer(catalog, AuthContextResolver(store, authority))

    return _make_tool_server


def tool_names(listed):
    return [t["name"] for t in listed]


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestListTools:
    async def test_no_session_lists_only_public_tools(self, make_tool_server, make_authority):
        """Scenario A: no session file."""
        listed = await make_tool_server(make_authority(permissions=["*"])).list_tools()
        names = tool_names(listed)

        assert names == PUBLIC_TOOLS
        assert len(names) > 0
        assert not any(n.startswith(("l4yercak3_crm_", "l4yercak3_events_")) for n in names)

    async def test_view_permission_includes_view_tools_only(
        self, make_tool_server, make_authority, write_session
    ):
        """Scenario B: valid session with view_crm."""
        write_session()
        names = tool_names(
            await make_tool_server(make_authority(permissions=["view_crm"])).list_tools()
        )

        assert "l4yercak3_crm_list_contacts" in names
        assert "l4yercak3_crm_get_contact" in names
        assert "l4yercak3_crm_create_contact" not in names
        assert "l4yercak3_events_list" not in names
        # Auth-only tools without permission requirements are visible too.
        assert "l4yercak3_list_organizations" in names

    async def test_validation_error_behaves_like_no_session(
        self, make_tool_server, make_authority, write_session
    ):
        """Scenario C: remote validation raises -> same as Scenario A, no exception."""
        write_session()
        authority = make_authority(error=httpx.ConnectError("backend down"))

        listed = await make_tool_server(authority).list_tools()

        assert tool_names(listed) == PUBLIC_TOOLS

    async def test_wildcard_lists_every_tool(
        self, make_tool_server, make_authority, write_session
    ):
        """Scenario D: permissions ["*"]."""
        write_session()
        server = make_tool_server(make_authority(permissions=["*"]))

        listed = await server.list_tools()

        assert tool_names(listed) == [t.name for t in server.catalog.tools()]

    async def test_entries_expose_only_wire_fields(self, make_tool_server, make_authority):
        listed = await make_tool_server(make_authority()).list_tools()

        for entry in listed:
            assert set(entry) == {"name", "description", "inputSchema"}
            assert entry["inputSchema"]["type"] == "object"

    async def test_empty_catalog_lists_nothing(self, make_tool_server, make_authority):
        server = make_tool_server(make_authority(), catalog=Catalog([ToolDomain("empty", "")]))

        assert await server.list_tools() == []

    async def test_permission_change_applies_on_next_request(
        self, make_tool_server, make_authority, write_session
    ):
        write_session()
        authority = make_authority(permissions=[])
        server = make_tool_server(authority)

        before = tool_names(await server.list_tools())
        authority.response["permissions"] = ["events:read"]
        after = tool_names(await server.list_tools())

        assert "l4yercak3_events_list" not in before
        assert "l4yercak3_events_list" in after


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------


class TestCallTool:
    async def test_success_is_serialized_json(
        self, make_tool_server, make_authority, write_session
    ):
        write_session()
        server = make_tool_server(make_authority(permissions=["view_crm"], organizationId="org_1"))

        result = await server.call_tool("l4yercak3_crm_list_contacts", {"limit": 10})

        assert not result.is_error
        payload = json.loads(result.text)
        assert payload["total"] == 1
        assert payload["contacts"][0]["email"] == "ada@example.com"
        assert result.to_wire() == {"content": [{"type": "text", "text": result.text}]}

    async def test_public_tool_works_without_session(self, make_tool_server, make_authority):
        result = await make_tool_server(make_authority()).call_tool(
            "l4yercak3_check_auth_status", {}
        )

        assert not result.is_error
        assert json.loads(result.text)["authenticated"] is False

    async def test_unknown_tool_is_flagged_error(self, make_tool_server, make_authority):
        result = await make_tool_server(make_authority()).call_tool("not_a_real_tool", {})

        assert result.is_error
        assert "not_a_real_tool" in result.text
        assert result.to_wire()["isError"] is True

    async def test_hidden_tool_is_still_refused(
        self, make_tool_server, make_authority, write_session
    ):
        """Calling a tool discovery didn't show is re-checked, not trusted."""
        write_session()
        server = make_tool_server(make_authority(permissions=["view_crm"]))

        result = await server.call_tool(
            "l4yercak3_crm_create_contact",
            {"firstName": "A", "lastName": "B", "email": "a@b.c"},
        )

        assert result.is_error
        assert isinstance(result.error, PermissionDenied)
        assert result.text == (
            "Error: Permission denied: manage_crm required for tool l4yercak3_crm_create_contact"
        )

    async def test_validation_failure_means_authentication_required(
        self, make_tool_server, make_authority, write_session
    ):
        write_session()
        server = make_tool_server(make_authority(error=TimeoutError("slow backend")))

        result = await server.call_tool("l4yercak3_list_organizations", {})

        assert result.is_error
        assert "l4yercak3 login" in result.text

    async def test_backend_failure_is_flagged_with_root_cause(
        self, make_tool_server, make_authority, write_session
    ):
        write_session()
        server = make_tool_server(make_authority(permissions=["*"]))

        result = await server.call_tool("l4yercak3_events_list", {})

        assert result.is_error
        assert isinstance(result.error, HandlerFailure)
        assert "l4yercak3_events_list" in result.text
        assert "backend unavailable" in result.text

    async def test_missing_arguments_default_to_empty(self, make_tool_server, make_authority):
        result = await make_tool_server(make_authority()).call_tool(
            "l4yercak3_get_capabilities", None
        )

        assert not result.is_error
        assert len(json.loads(result.text)["capabilities"]) == 6

    async def test_unexpected_error_never_escapes(self, make_tool_server, make_authority):
        class BrokenResolver:
            async def resolve(self):
                raise RuntimeError("resolver bug")

        server = make_tool_server(make_authority())
        server.resolver = BrokenResolver()

        result = await server.call_tool("l4yercak3_get_capabilities", {})

        assert result.is_error
        assert result.text == "Error: resolver bug"

    @pytest.mark.parametrize("kind", ["tuple_keys", "circular"])
    async def test_unserializable_result_is_flagged_error(
        self, make_tool_server, make_authority, make_tool, kind
    ):
        if kind == "tuple_keys":
            payload = {(1, 2): "tuple key"}
        else:
            payload = {"name": "loop"}
            payload["self"] = payload
        tool = make_tool("dump_state", requires_auth=False, result=payload)
        server = make_tool_server(make_authority(), catalog=Catalog([ToolDomain("debug", "", (tool,))]))

        result = await server.call_tool("dump_state", {})

        assert result.is_error
        assert isinstance(result.error, HandlerFailure)
        assert result.text.startswith("Error: Tool dump_state failed: ")
        assert result.to_wire()["isError"] is True

    async def test_concurrent_calls_are_independent(
        self, make_tool_server, make_authority, write_session
    ):
        write_session()
        authority = make_authority(permissions=["view_crm"])
        server = make_tool_server(authority)

        results = await asyncio.gather(
            server.call_tool("l4yercak3_crm_list_contacts", {}),
            server.call_tool("l4yercak3_crm_delete_contact", {"contactId": "c1"}),
            server.call_tool("not_a_real_tool", {}),
            server.call_tool("l4yercak3_get_login_instructions", {}),
        )

        assert [r.is_error for r in results] == [False, True, True, False]
        assert [r.tool_name for r in results] == [
            "l4yercak3_crm_list_contacts",
            "l4yercak3_crm_delete_contact",
            "not_a_real_tool",
            "l4yercak3_get_login_instructions",
        ]
        # One fresh validation per request, nothing shared.
        assert len(authority.calls) == 4


class TestInvocationResult:
    def test_string_payload_is_passed_through(self):
        assert serialize_payload("plain text") == "plain text"

    def test_structured_payload_is_indented_json(self):
        assert serialize_payload({"a": [1, 2]}) == '{\n  "a": [\n    1,\n    2\n  ]\n}'

    def test_failure_wraps_dispatch_error_message(self):
        error = PermissionDenied("manage_crm", "crm_tool")

        result = InvocationResult.failure("crm_tool", error)

        assert result.is_error
        assert result.error is error
        assert result.text == "Error: Permission denied: manage_crm required for tool crm_tool"
