"""
Error taxonomy for tool discovery and invocation.

Every failure the dispatcher can report is a DispatchError subclass. The
protocol layer catches DispatchError and turns it into a tool result flagged
with isError=true, so a caller always gets a response and can tell "the tool
ran and failed" apart from "the protocol broke".

    UnknownTool             name not in the catalog (client bug, not retryable as-is)
    AuthenticationRequired  no or invalid session (re-login)
    PermissionDenied        authenticated but under-privileged (request access)
    HandlerFailure          the business call itself failed (often transient)

RemoteValidationFailure never leaves the auth resolver: an unreachable
identity authority degrades the request to unauthenticated instead.
"""


class DispatchError(Exception):
    """
    Base class for failures reported by the dispatcher.

    Attributes:
        message: Human-readable description, safe to show to the caller
        tool_name: The tool the caller asked for
    """

    def __init__(self, message: str, tool_name: str):
        self.message = message
        self.tool_name = tool_name
        super().__init__(message)


class UnknownTool(DispatchError):
    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}", tool_name)


class AuthenticationRequired(DispatchError):
    def __init__(self, tool_name: str):
        super().__init__(
            'Not authenticated with L4YERCAK3. Please run "l4yercak3 login" first.',
            tool_name,
        )


class PermissionDenied(DispatchError):
    """Raised for the first required permission the caller does not hold."""

    def __init__(self, permission: str, tool_name: str):
        self.permission = permission
        super().__init__(
            f"Permission denied: {permission} required for tool {tool_name}",
            tool_name,
        )


class HandlerFailure(DispatchError):
    """
    A tool handler raised.

    The original exception is kept on `original` (and chained as __cause__)
    so callers can inspect the root cause programmatically.
    """

    def __init__(self, tool_name: str, original: BaseException):
        self.original = original
        super().__init__(f"Tool {tool_name} failed: {original}", tool_name)


class RemoteValidationFailure(Exception):
    """The identity authority could not be reached or gave an unusable answer."""


class DuplicateToolError(ValueError):
    """Two descriptors in one catalog share a name."""
