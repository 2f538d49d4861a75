"""
Capability filtering and tool dispatch.

Two checks, one rule set:

1. available_tools() answers tools/list: which tools may this caller see?
2. Dispatcher.execute() answers tools/call: may this caller run this tool?
   It re-checks everything instead of trusting what discovery showed, so a
   client that guesses a hidden tool's name is still refused.

Execution order inside execute() is part of the contract:
    lookup -> authentication -> each required permission -> handler
A handler that mutates backend state never runs for a rejected call.
"""

import logging
from typing import Any

from l4yercak3_mcp.auth import AuthContext
from l4yercak3_mcp.errors import (
    AuthenticationRequired,
    HandlerFailure,
    PermissionDenied,
    UnknownTool,
)
from l4yercak3_mcp.tools import Catalog, ToolDescriptor

logger = logging.getLogger(__name__)


def is_visible(tool: ToolDescriptor, ctx: AuthContext | None) -> bool:
    if not tool.requires_auth:
        return True
    if ctx is None:
        return False
    return ctx.missing_permission(tool.required_permissions) is None


def available_tools(catalog: Catalog, ctx: AuthContext | None) -> list[ToolDescriptor]:
    """
    Filter the catalog down to what `ctx` may see.

    Pure and order-preserving: the result is the catalog order with entries
    removed, never reordered.
    """
    return [tool for tool in catalog.tools() if is_visible(tool, ctx)]


class Dispatcher:
    """Looks up tools by name and executes them under an AuthContext."""

    def __init__(self, catalog: Catalog):
        self._catalog = catalog

    def lookup(self, name: str) -> ToolDescriptor | None:
        return self._catalog.lookup(name)

    async def execute(
        self, name: str, arguments: dict[str, Any], ctx: AuthContext | None
    ) -> Any:
        """
        Run tool `name` with `arguments`.

        Returns:
            Whatever the handler returned, unchanged

        Raises:
            UnknownTool: No tool is registered under `name`
            AuthenticationRequired: The tool needs auth and `ctx` is None
            PermissionDenied: `ctx` lacks a required permission (the first
                              missing one, in declaration order, is reported)
            HandlerFailure: The handler raised; the original is on .original
        """
        tool = self.lookup(name)
        if tool is None:
            self._log_denied(name, ctx, "unknown_tool")
            raise UnknownTool(name)

        if tool.requires_auth:
            if ctx is None:
                self._log_denied(name, ctx, "not_authenticated")
                raise AuthenticationRequired(name)

            missing = ctx.missing_permission(tool.required_permissions)
            if missing is not None:
                self._log_denied(name, ctx, "insufficient_permissions", required=missing)
                raise PermissionDenied(missing, name)

        logger.info(
            "Tool call authorized",
            extra={
                "auth_data": {
                    "tool": name,
                    "user_id": ctx.user_id if ctx else None,
                    "required_permissions": list(tool.required_permissions),
                    "decision": "allowed",
                }
            },
        )

        try:
            return await tool.handler(arguments, ctx)
        except Exception as e:
            logger.warning(
                "Tool handler failed",
                extra={"auth_data": {"tool": name, "decision": "failed", "error": str(e)}},
            )
            raise HandlerFailure(name, e) from e

    def _log_denied(
        self, name: str, ctx: AuthContext | None, reason: str, required: str | None = None
    ) -> None:
        data = {
            "tool": name,
            "user_id": ctx.user_id if ctx else None,
            "decision": "denied",
            "reason": reason,
        }
        if required is not None:
            data["required_permission"] = required
        logger.warning("Tool call denied", extra={"auth_data": data})
