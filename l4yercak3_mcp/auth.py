"""
Session resolution and permission model.

This module handles the Authentication (AuthN) layer of the MCP server:
- Reads the persisted CLI session from the credential store
- Rejects locally expired sessions without touching the network
- Validates the session token with the backend (the identity authority)
- Builds an immutable AuthContext carrying identity and permissions

Security concepts:
- **Fail closed**: any failure (no session, expired, network error, malformed
  answer) yields None, i.e. an unauthenticated caller. Nothing here raises.
- **Fresh per request**: the resolver is called for every tools/list and
  tools/call, so an organization switch or a revoked permission takes effect
  on the very next request.
- **Explicit superuser**: the backend's "*" permission is parsed into
  Unrestricted instead of being compared as a string at every check site.

Validation response (GET /api/v1/auth/cli/validate):
    {
        "valid": true,
        "userId": "user_123",
        "organizationId": "org_456",
        "organizationName": "Acme",
        "email": "alice@example.com",
        "permissions": ["view_crm", "manage_crm"]
    }
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from l4yercak3_mcp.credentials import CredentialStore
from l4yercak3_mcp.errors import RemoteValidationFailure

logger = logging.getLogger(__name__)

WILDCARD = "*"

# The identity authority: takes a bearer token, returns the validation body.
# BackendClient.validate_session is the production implementation.
IdentityAuthority = Callable[[str], Awaitable[Mapping[str, Any]]]


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Restricted:
    """The caller holds exactly the permissions in `granted`."""

    granted: frozenset[str] = frozenset()

    def allows(self, permission: str) -> bool:
        return permission in self.granted


@dataclass(frozen=True)
class Unrestricted:
    """The caller holds every permission (backend issued "*")."""

    def allows(self, permission: str) -> bool:
        return True


Permissions = Restricted | Unrestricted


def parse_permissions(values: Iterable[str]) -> Permissions:
    """
    Convert the backend's permission array into a Permissions value.

    "*" anywhere in the array means Unrestricted. Who may receive "*" is the
    backend's decision; this only makes the grant explicit.
    """
    granted = frozenset(values)
    if WILDCARD in granted:
        return Unrestricted()
    return Restricted(granted)


# ---------------------------------------------------------------------------
# AuthContext
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthContext:
    """
    Resolved identity for one request.

    Frozen: built once by AuthContextResolver, never modified, never persisted.

    Attributes:
        user_id: Authenticated user
        organization_id: Organization the tools act on
        organization_name: Display name of that organization
        session_token: Token forwarded to the backend by tool handlers
        email: User's email, when known
        permissions: Restricted(...) or Unrestricted()
    """

    user_id: str | None
    organization_id: str | None
    organization_name: str
    session_token: str
    email: str | None = None
    permissions: Permissions = field(default_factory=Restricted)

    def has_permission(self, permission: str) -> bool:
        return self.permissions.allows(permission)

    def missing_permission(self, required: Iterable[str]) -> str | None:
        """The first permission in `required` this context lacks, or None."""
        for permission in required:
            if not self.has_permission(permission):
                return permission
        return None


class SessionValidation(BaseModel):
    """Parsed validation response. Unknown keys are ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    valid: bool = False
    user_id: str | None = None
    organization_id: str | None = None
    organization_name: str | None = None
    email: str | None = None
    permissions: list[str] | None = None


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class AuthContextResolver:
    """
    Turns the stored session into an AuthContext, or None.

    Args:
        store: Credential store holding the CLI session
        authority: Async callable validating a token with the backend
    """

    def __init__(self, store: CredentialStore, authority: IdentityAuthority):
        self._store = store
        self._authority = authority

    async def resolve(self) -> AuthContext | None:
        """
        Resolve the caller's identity. Never raises.

        Pipeline:
        1. Read the session; no session or no token -> None
        2. Locally expired -> None (no network call)
        3. Validate with the backend; error or "valid": false -> None
        4. Merge: backend fields win, cached session fields fill the gaps
        """
        session = self._store.read_session()
        if session is None or not session.token:
            self._log_outcome("no_session")
            return None

        if self._store.is_expired(session):
            self._log_outcome("expired")
            return None

        try:
            validation = await self._validate(session.token)
        except RemoteValidationFailure as e:
            logger.warning(
                "Session validation failed",
                extra={
                    "auth_data": {
                        "decision": "unauthenticated",
                        "reason": "remote_validation_failed",
                        "error": str(e),
                    }
                },
            )
            return None

        if not validation.valid:
            self._log_outcome("invalid")
            return None

        context = AuthContext(
            user_id=validation.user_id or session.user_id,
            organization_id=validation.organization_id or session.organization_id,
            organization_name=(
                validation.organization_name or session.organization_name or "Unknown"
            ),
            session_token=session.token,
            email=validation.email or session.email,
            permissions=parse_permissions(validation.permissions or []),
        )

        logger.info(
            "Authentication successful",
            extra={
                "auth_data": {
                    "user_id": context.user_id,
                    "organization_id": context.organization_id,
                    "unrestricted": isinstance(context.permissions, Unrestricted),
                    "decision": "authenticated",
                }
            },
        )
        return context

    async def _validate(self, token: str) -> SessionValidation:
        """
        Call the identity authority and parse its answer.

        Any exception from the authority, and any response that doesn't match
        the expected shape (e.g. permissions not a list of strings), becomes
        RemoteValidationFailure.
        """
        try:
            raw = await self._authority(token)
        except Exception as e:
            raise RemoteValidationFailure(str(e)) from e

        if raw is None:
            raise RemoteValidationFailure("empty validation response")

        try:
            return SessionValidation.model_validate(dict(raw))
        except (ValidationError, TypeError, ValueError) as e:
            raise RemoteValidationFailure(f"malformed validation response: {e}") from e

    def _log_outcome(self, reason: str) -> None:
        logger.info(
            "Request is unauthenticated",
            extra={"auth_data": {"decision": "unauthenticated", "reason": reason}},
        )
