"""
MCP server for L4YERCAK3, built on FastMCP v2.

This module wires the pieces together:
- Credential store: the CLI session in ~/.l4yercak3/config.json
- Backend client: session validation and the business API
- Catalog: core, applications, CRM, events and forms tool domains
- ToolServer: discovery and invocation with per-request auth
- ToolAccessMiddleware: hands tools/list and tools/call to the ToolServer
- Structured JSON logging to stderr for every auth decision

Architecture:
    The flow for every MCP request:

    1. The MCP client (Claude Code, Cursor, ...) sends tools/list or tools/call
    2. ToolAccessMiddleware intercepts it before FastMCP's own tool registry
    3. ToolServer resolves a fresh AuthContext from the stored session,
       validating the token with the backend
    4. tools/list: the catalog is filtered by the caller's permissions
    5. tools/call: the dispatcher re-checks auth and permissions, then runs
       the handler
    6. Failures come back as tool results with isError=true, never as
       transport faults

Running the server:
    l4yercak3-mcp mcp-server
    python -m l4yercak3_mcp.server

    Over stdio by default (what MCP clients spawn). Set
    L4YERCAK3_TRANSPORT=streamable-http to serve /mcp and /health over HTTP.
"""

import json
import logging
import sys
import uuid
from typing import Sequence

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.tool import Tool, ToolResult
from mcp.types import CallToolRequestParams, ListToolsRequest, TextContent
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from l4yercak3_mcp.auth import AuthContextResolver
from l4yercak3_mcp.backend import BackendClient
from l4yercak3_mcp.config import Settings, settings
from l4yercak3_mcp.credentials import CredentialStore
from l4yercak3_mcp.domains.applications import applications_domain
from l4yercak3_mcp.domains.core import core_domain
from l4yercak3_mcp.domains.crm import crm_domain
from l4yercak3_mcp.domains.events import events_domain
from l4yercak3_mcp.domains.forms import forms_domain
from l4yercak3_mcp.protocol import ToolServer
from l4yercak3_mcp.tools import Catalog

SERVER_NAME = "l4yercak3"

logger = logging.getLogger("l4yercak3-mcp")


# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------
# Logs go to stderr: with the stdio transport, stdout IS the protocol stream
# and a stray log line would corrupt it.


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-02-06 10:30:00,000", "level": "WARNING",
         "logger": "l4yercak3_mcp.dispatch", "message": "Tool call denied",
         "tool": "l4yercak3_crm_create_contact", "decision": "denied",
         "reason": "insufficient_permissions", "required_permission": "manage_crm"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Structured auth fields passed via logger.info("msg", extra={"auth_data": {...}})
        if hasattr(record, "auth_data"):
            log_entry.update(record.auth_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONLogFormatter())
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )


# ---------------------------------------------------------------------------
# Tool Access Middleware
# ---------------------------------------------------------------------------
# FastMCP's own tool registry stays empty: the catalog is dynamic per caller,
# so both hooks answer from the ToolServer and never call call_next.


class ToolAccessMiddleware(Middleware):
    """
    Routes tools/list and tools/call through the ToolServer.

    - tools/list returns only the tools the current session may see
    - tools/call is re-authorized by the dispatcher, whatever the client
      saw during discovery
    """

    def __init__(self, tool_server: ToolServer):
        self.tool_server = tool_server

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[Tool]],
    ) -> Sequence[Tool]:
        request_id = str(uuid.uuid4())[:8]
        listed = await self.tool_server.list_tools()

        logger.debug(
            "tools/list served",
            extra={"auth_data": {"request_id": request_id, "tools": len(listed)}},
        )
        return [
            Tool(
                name=entry["name"],
                description=entry["description"],
                parameters=entry["inputSchema"],
            )
            for entry in listed
        ]

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        """
        Run the tool through the ToolServer.

        A failed InvocationResult is raised as ToolError, which FastMCP turns
        into a CallToolResult with isError=true and our message as its text.
        """
        request_id = str(uuid.uuid4())[:8]
        tool_name = context.message.name
        result = await self.tool_server.call_tool(tool_name, context.message.arguments or {})

        logger.debug(
            "tools/call served",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "tool": tool_name,
                    "is_error": result.is_error,
                }
            },
        )

        if result.is_error:
            raise ToolError(result.text)
        return ToolResult(content=[TextContent(type="text", text=result.text)])


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def build_catalog(backend: BackendClient, store: CredentialStore) -> Catalog:
    """The production catalog. Order here is the order clients see."""
    return Catalog(
        [
            core_domain(backend, store),
            applications_domain(backend, store),
            crm_domain(backend),
            events_domain(backend),
            forms_domain(backend),
        ]
    )


def create_tool_server(config: Settings) -> ToolServer:
    store = CredentialStore(config.config_dir)
    backend = BackendClient(
        store.backend_url(config.backend_url), timeout=config.request_timeout
    )
    resolver = AuthContextResolver(store, backend.validate_session)
    return ToolServer(build_catalog(backend, store), resolver)


def create_server(
    config: Settings | None = None, tool_server: ToolServer | None = None
) -> FastMCP:
    """
    Build the FastMCP app.

    Args:
        config: Settings to build from (defaults to the module singleton)
        tool_server: Pre-built ToolServer; tests pass one with a fake
                     identity authority and their own catalog
    """
    config = config or settings
    tool_server = tool_server or create_tool_server(config)

    mcp = FastMCP(
        name=SERVER_NAME,
        instructions=(
            "Exposes L4YERCAK3 backend capabilities (applications, CRM, events, "
            "forms, organizations). Call l4yercak3_get_capabilities first; if "
            "tools are missing, call l4yercak3_check_auth_status."
        ),
        middleware=[ToolAccessMiddleware(tool_server)],
    )

    # Liveness check for the streamable-http transport. No auth: it exposes
    # nothing and must answer even when the backend is down.
    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> Response:
        return JSONResponse({"status": "healthy", "tools": len(tool_server.catalog)})

    return mcp


def run(config: Settings | None = None) -> None:
    """Start the server on the configured transport. Blocks until shutdown."""
    config = config or settings
    configure_logging(config.log_level)
    mcp = create_server(config)

    if config.transport == "stdio":
        logger.info("Starting MCP server (transport=stdio)")
        mcp.run(transport="stdio")
        return

    logger.info(
        "Starting MCP server on %s:%d (transport=%s)",
        config.host,
        config.port,
        config.transport,
    )
    mcp.run(
        transport=config.transport,
        host=config.host,
        port=config.port,
        log_level=config.log_level,
    )


if __name__ == "__main__":
    run()
