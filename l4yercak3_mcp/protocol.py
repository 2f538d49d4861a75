"""
Protocol-facing request handlers: discovery (tools/list) and invocation (tools/call).

Both handlers resolve a fresh AuthContext for every request; nothing about
the caller is cached between requests. Requests share no mutable state, so
the transport can run any number of them concurrently.

call_tool() never raises. Every path ends in an InvocationResult, either a
success or a failure flagged with isError, and that one type owns the
serialization to the wire shape:

    {"content": [{"type": "text", "text": "..."}], "isError": true}
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

from l4yercak3_mcp.auth import AuthContextResolver
from l4yercak3_mcp.dispatch import Dispatcher, available_tools
from l4yercak3_mcp.errors import DispatchError, HandlerFailure
from l4yercak3_mcp.tools import Catalog

logger = logging.getLogger(__name__)


def serialize_payload(payload: Any) -> str:
    """Text stays text; anything else becomes indented JSON."""
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, indent=2, default=str)


@dataclass(frozen=True)
class InvocationResult:
    """
    Outcome of one tools/call.

    Attributes:
        is_error: The explicit success/failure tag
        text: Serialized payload (success) or "Error: <message>" (failure)
        tool_name: Tool the caller asked for
        error: The DispatchError behind a failure, for programmatic inspection
    """

    is_error: bool
    text: str
    tool_name: str
    error: Exception | None = None

    @classmethod
    def success(cls, tool_name: str, payload: Any) -> "InvocationResult":
        return cls(is_error=False, text=serialize_payload(payload), tool_name=tool_name)

    @classmethod
    def failure(cls, tool_name: str, error: Exception) -> "InvocationResult":
        message = error.message if isinstance(error, DispatchError) else str(error)
        return cls(is_error=True, text=f"Error: {message}", tool_name=tool_name, error=error)

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"content": [{"type": "text", "text": self.text}]}
        if self.is_error:
            wire["isError"] = True
        return wire


class ToolServer:
    """
    The two MCP request handlers, independent of any transport.

    Args:
        catalog: The static tool catalog built at startup
        resolver: Produces the caller's AuthContext (or None) per request
    """

    def __init__(self, catalog: Catalog, resolver: AuthContextResolver):
        self.catalog = catalog
        self.resolver = resolver
        self.dispatcher = Dispatcher(catalog)

    async def list_tools(self) -> list[dict[str, Any]]:
        """
        Discovery: the tools visible to the current caller.

        Each entry is {name, description, inputSchema}; handlers and access
        flags are never exposed.
        """
        ctx = await self.resolver.resolve()
        visible = available_tools(self.catalog, ctx)

        logger.info(
            "Tool list filtered by permissions",
            extra={
                "auth_data": {
                    "user_id": ctx.user_id if ctx else None,
                    "total_tools": len(self.catalog),
                    "visible_tools": len(visible),
                    "decision": "filtered",
                }
            },
        )
        return [tool.to_wire() for tool in visible]

    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None = None
    ) -> InvocationResult:
        """Invocation: run one tool and wrap the outcome. Never raises."""
        try:
            ctx = await self.resolver.resolve()
            payload = await self.dispatcher.execute(name, arguments or {}, ctx)
        except DispatchError as e:
            return InvocationResult.failure(name, e)
        except Exception as e:
            # Resolver and dispatcher failures are contained above; this is a bug.
            logger.exception("Unexpected error while handling tools/call for %s", name)
            return InvocationResult.failure(name, e)

        try:
            return InvocationResult.success(name, payload)
        except (TypeError, ValueError) as e:
            # Unencodable payloads: non-string dict keys, circular references.
            logger.warning(
                "Tool result could not be serialized",
                extra={"auth_data": {"tool": name, "decision": "failed", "error": str(e)}},
            )
            return InvocationResult.failure(name, HandlerFailure(name, e))
