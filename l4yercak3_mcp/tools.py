"""
Tool descriptors, domains and the catalog.

A tool is plain data: a name, a description, a JSON schema for its arguments,
its access requirements, and an async handler. Domains group tools for
documentation only; they have no runtime behavior.

    ToolDescriptor(
        name="l4yercak3_crm_list_contacts",
        description="List contacts from the CRM...",
        input_schema={"type": "object", "properties": {...}},
        handler=list_contacts,               # async (arguments, ctx) -> payload
        requires_auth=True,
        required_permissions=("view_crm",),
    )

The Catalog is built once at startup and handed to the capability resolver and
the dispatcher. Nothing here is module-level state, so tests build their own
catalogs.

Access rules (enforced in dispatch.py):
- requires_auth=False: visible and callable by anyone, logged in or not
- requires_auth=True: needs an AuthContext, plus every required permission
  (or the Unrestricted grant)
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, Sequence

from l4yercak3_mcp.auth import AuthContext
from l4yercak3_mcp.errors import DuplicateToolError

ToolHandler = Callable[[dict[str, Any], AuthContext | None], Awaitable[Any]]


@dataclass(frozen=True)
class ToolDescriptor:
    """One invokable operation. Immutable once registered."""

    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler
    requires_auth: bool = True
    required_permissions: tuple[str, ...] = ()

    def __post_init__(self):
        # Accept any sequence but store a tuple: the order is the order in
        # which the dispatcher checks (and reports) missing permissions.
        object.__setattr__(self, "required_permissions", tuple(self.required_permissions))
        if self.required_permissions and not self.requires_auth:
            raise ValueError(
                f"Tool {self.name} requires permissions but not authentication"
            )

    def to_wire(self) -> dict[str, Any]:
        """The discovery projection: handler and access flags stay server-side."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


@dataclass(frozen=True)
class ToolDomain:
    name: str
    description: str
    tools: Sequence[ToolDescriptor] = field(default_factory=tuple)


class Catalog:
    """
    Ordered, validated collection of tool domains.

    Raises:
        DuplicateToolError: Two descriptors share a name. Lookup would
                            otherwise silently resolve to whichever came first.
    """

    def __init__(self, domains: Sequence[ToolDomain]):
        self._domains = tuple(domains)
        self._by_name: dict[str, ToolDescriptor] = {}

        for domain in self._domains:
            for tool in domain.tools:
                if tool.name in self._by_name:
                    raise DuplicateToolError(
                        f"Duplicate tool name {tool.name!r} (in domain {domain.name!r})"
                    )
                self._by_name[tool.name] = tool

    @property
    def domains(self) -> tuple[ToolDomain, ...]:
        return self._domains

    def tools(self) -> Iterator[ToolDescriptor]:
        """All descriptors in catalog order, then domain order."""
        for domain in self._domains:
            yield from domain.tools

    def lookup(self, name: str) -> ToolDescriptor | None:
        return self._by_name.get(name)

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name
