"""
Unit tests for session resolution (l4yercak3_mcp/auth.py).

These tests exercise AuthContextResolver.resolve() step by step:

1. Session presence and token check
2. Local expiry check (no network call for expired sessions)
3. Remote validation (failures degrade to None, never raise)
4. Field merging (backend wins, cached session fills gaps)
5. Permission parsing (wildcard -> Unrestricted)
"""

from l4yercak3_mcp.auth import (
    AuthContextResolver,
    Restricted,
    Unrestricted,
    parse_permissions,
)


class TestParsePermissions:
    def test_plain_permissions_are_restricted(self):
        permissions = parse_permissions(["view_crm", "manage_crm"])

        assert permissions == Restricted(frozenset({"view_crm", "manage_crm"}))
        assert permissions.allows("view_crm")
        assert not permissions.allows("events:read")

    def test_wildcard_is_unrestricted(self):
        permissions = parse_permissions(["view_crm", "*"])

        assert isinstance(permissions, Unrestricted)
        assert permissions.allows("anything_at_all")

    def test_empty_list_allows_nothing(self):
        permissions = parse_permissions([])

        assert permissions == Restricted()
        assert not permissions.allows("view_crm")


class TestResolve:
    """Tests for AuthContextResolver.resolve()."""

    # ----- Happy path -----

    async def test_valid_session_builds_context(self, store, write_session, make_authority):
        write_session(user_id="user_local", organization_id="org_local")
        authority = make_authority(
            userId="user_1",
            organizationId="org_1",
            organizationName="Acme",
            email="alice@example.com",
            permissions=["view_crm"],
        )

        ctx = await AuthContextResolver(store, authority).resolve()

        assert ctx is not None
        assert ctx.user_id == "user_1"
        assert ctx.organization_id == "org_1"
        assert ctx.organization_name == "Acme"
        assert ctx.email == "alice@example.com"
        assert ctx.session_token == "cli_session_test"
        assert ctx.permissions == Restricted(frozenset({"view_crm"}))
        assert authority.calls == ["cli_session_test"]

    async def test_missing_remote_fields_fall_back_to_session(
        self, store, write_session, make_authority
    ):
        write_session(
            user_id="user_local",
            organization_id="org_local",
            organization_name="Local Org",
            email="local@example.com",
        )
        authority = make_authority(permissions=["view_crm"])

        ctx = await AuthContextResolver(store, authority).resolve()

        assert ctx.user_id == "user_local"
        assert ctx.organization_id == "org_local"
        assert ctx.organization_name == "Local Org"
        assert ctx.email == "local@example.com"

    async def test_organization_name_defaults_to_unknown(
        self, store, write_session, make_authority
    ):
        write_session(organization_id="org_local")

        ctx = await AuthContextResolver(store, make_authority()).resolve()

        assert ctx.organization_name == "Unknown"

    async def test_missing_permissions_means_none_granted(
        self, store, write_session, make_authority
    ):
        write_session()

        ctx = await AuthContextResolver(store, make_authority()).resolve()

        assert ctx.permissions == Restricted()

    async def test_wildcard_permission_resolves_unrestricted(
        self, store, write_session, make_authority
    ):
        write_session()

        ctx = await AuthContextResolver(store, make_authority(permissions=["*"])).resolve()

        assert isinstance(ctx.permissions, Unrestricted)

    async def test_session_without_expiry_is_accepted(self, store, write_session, make_authority):
        write_session(expires_in_hours=None)

        ctx = await AuthContextResolver(store, make_authority()).resolve()

        assert ctx is not None

    # ----- Local checks (no network) -----

    async def test_no_session_file_returns_none(self, store, make_authority):
        authority = make_authority()

        assert await AuthContextResolver(store, authority).resolve() is None
        assert authority.calls == []

    async def test_session_without_token_returns_none(self, store, write_session, make_authority):
        write_session(token=None, user_id="user_1")
        authority = make_authority()

        assert await AuthContextResolver(store, authority).resolve() is None
        assert authority.calls == []

    async def test_expired_session_skips_remote_validation(
        self, store, write_session, make_authority
    ):
        write_session(expires_in_hours=-1)
        authority = make_authority(permissions=["*"])

        assert await AuthContextResolver(store, authority).resolve() is None
        assert authority.calls == []

    async def test_corrupt_config_file_returns_none(self, store, make_authority):
        store.config_dir.mkdir(parents=True)
        store.config_file.write_text("{not json")

        assert await AuthContextResolver(store, make_authority()).resolve() is None

    # ----- Remote validation failures (fail closed) -----

    async def test_authority_error_returns_none(self, store, write_session, make_authority):
        write_session()
        authority = make_authority(error=ConnectionError("backend unreachable"))

        assert await AuthContextResolver(store, authority).resolve() is None
        assert authority.calls == ["cli_session_test"]

    async def test_invalid_session_returns_none(self, store, write_session, make_authority):
        write_session()

        ctx = await AuthContextResolver(store, make_authority(valid=False)).resolve()

        assert ctx is None

    async def test_empty_validation_response_returns_none(self, store, write_session):
        write_session()

        async def authority(token):
            return None

        assert await AuthContextResolver(store, authority).resolve() is None

    async def test_non_list_permissions_returns_none(self, store, write_session, make_authority):
        """A string where a list belongs is rejected, not split or trusted."""
        write_session()
        authority = make_authority()
        authority.response["permissions"] = "view_crm manage_crm"

        assert await AuthContextResolver(store, authority).resolve() is None

    async def test_non_string_permission_entries_return_none(
        self, store, write_session, make_authority
    ):
        write_session()
        authority = make_authority()
        authority.response["permissions"] = ["view_crm", 123]

        assert await AuthContextResolver(store, authority).resolve() is None

    # ----- Freshness -----

    async def test_each_resolve_revalidates(self, store, write_session, make_authority):
        """Nothing is cached: a permission change shows up on the next call."""
        write_session()
        authority = make_authority(permissions=["view_crm"])
        resolver = AuthContextResolver(store, authority)

        first = await resolver.resolve()
        authority.response["permissions"] = ["manage_crm"]
        second = await resolver.resolve()

        assert first.has_permission("view_crm")
        assert not second.has_permission("view_crm")
        assert second.has_permission("manage_crm")
        assert len(authority.calls) == 2


class TestAuthContext:
    def test_missing_permission_reports_first_in_order(self, make_context):
        ctx = make_context(permissions=["b"])

        assert ctx.missing_permission(["a", "b", "c"]) == "a"
        assert ctx.missing_permission(["b"]) is None

    def test_unrestricted_is_missing_nothing(self, make_context):
        ctx = make_context(permissions=["*"])

        assert ctx.missing_permission(["manage_crm", "events:write"]) is None
