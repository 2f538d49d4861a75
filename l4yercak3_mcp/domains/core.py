"""
Core domain: discovery, authentication status and platform organizations.

The first three tools need no login, so an unauthenticated agent can still
learn what L4YERCAK3 offers and how to log in. The organization tools need a
session; switching or creating an organization rewrites the persisted session
so the next request resolves against the new organization.
"""

from typing import Any

from l4yercak3_mcp.auth import AuthContext
from l4yercak3_mcp.backend import BackendClient
from l4yercak3_mcp.credentials import CredentialStore, Session
from l4yercak3_mcp.tools import ToolDescriptor, ToolDomain

DOCS_URL = "https://docs.l4yercak3.com"

CAPABILITIES = [
    {
        "name": "CRM",
        "category": "crm",
        "description": "Customer Relationship Management - contacts, organizations, pipelines",
        "tools": [
            "l4yercak3_crm_list_contacts",
            "l4yercak3_crm_get_contact",
            "l4yercak3_crm_create_contact",
            "l4yercak3_crm_update_contact",
            "l4yercak3_crm_delete_contact",
            "l4yercak3_crm_list_organizations",
            "l4yercak3_crm_create_organization",
            "l4yercak3_crm_get_organization",
            "l4yercak3_crm_link_contact_to_organization",
            "l4yercak3_crm_add_note",
            "l4yercak3_crm_log_activity",
        ],
    },
    {
        "name": "Events",
        "category": "events",
        "description": "Event management with tickets and attendees",
        "tools": [
            "l4yercak3_events_list",
            "l4yercak3_events_get",
            "l4yercak3_events_create",
            "l4yercak3_events_update",
            "l4yercak3_events_publish",
            "l4yercak3_events_cancel",
            "l4yercak3_events_update_agenda",
            "l4yercak3_events_get_products",
            "l4yercak3_events_create_product",
            "l4yercak3_events_get_attendees",
            "l4yercak3_events_get_sponsors",
            "l4yercak3_events_add_sponsor",
        ],
    },
    {
        "name": "Forms",
        "category": "forms",
        "description": "Form builder for registration and data collection",
        "tools": [
            "l4yercak3_forms_list",
            "l4yercak3_forms_create",
            "l4yercak3_forms_get",
            "l4yercak3_forms_update",
            "l4yercak3_forms_add_field",
            "l4yercak3_forms_publish",
            "l4yercak3_forms_unpublish",
            "l4yercak3_forms_delete",
            "l4yercak3_forms_duplicate",
            "l4yercak3_forms_get_responses",
            "l4yercak3_forms_get_response",
            "l4yercak3_forms_export_responses",
        ],
    },
    {
        "name": "Invoicing",
        "category": "invoicing",
        "description": "Invoice generation and payment tracking",
        "tools": [],
    },
    {
        "name": "Checkout",
        "category": "checkout",
        "description": "Payment processing with Stripe integration",
        "tools": [],
    },
    {
        "name": "Workflows",
        "category": "workflows",
        "description": "Automation and business process triggers",
        "tools": [],
    },
]

CATEGORIES = ["all"] + [c["category"] for c in CAPABILITIES]


def core_domain(backend: BackendClient, store: CredentialStore) -> ToolDomain:
    """Build the core domain bound to a backend client and credential store."""

    async def get_capabilities(arguments: dict[str, Any], ctx: AuthContext | None):
        category = arguments.get("category") or "all"
        if category == "all":
            capabilities = CAPABILITIES
        else:
            capabilities = [c for c in CAPABILITIES if c["category"] == category]
        return {"capabilities": capabilities, "documentation": DOCS_URL}

    async def check_auth_status(arguments: dict[str, Any], ctx: AuthContext | None):
        if ctx is None:
            return {
                "authenticated": False,
                "message": "Not authenticated with L4YERCAK3.",
                "action": 'Run "l4yercak3 login" in the terminal to authenticate.',
            }
        return {
            "authenticated": True,
            "userId": ctx.user_id,
            "email": ctx.email,
            "organizationId": ctx.organization_id,
            "organizationName": ctx.organization_name,
        }

    async def get_login_instructions(arguments: dict[str, Any], ctx: AuthContext | None):
        return {
            "instructions": [
                "1. Open a terminal in this project directory",
                "2. Run: l4yercak3 login",
                "3. This will open a browser window for authentication",
                "4. After logging in, you can use L4YERCAK3 tools",
            ],
            "documentation": f"{DOCS_URL}/cli/authentication",
        }

    async def list_organizations(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.get_organizations(ctx.session_token)
        return {
            "organizations": response.get("organizations") or [],
            "currentOrganizationId": ctx.organization_id,
            "currentOrganizationName": ctx.organization_name,
        }

    async def switch_organization(arguments: dict[str, Any], ctx: AuthContext):
        organization_id = arguments["organizationId"]

        # Only switch to organizations the backend says this user can access.
        response = await backend.get_organizations(ctx.session_token)
        target = next(
            (
                org
                for org in response.get("organizations") or []
                if org.get("id") == organization_id
            ),
            None,
        )
        if target is None:
            raise LookupError(
                f"Organization {organization_id} not found or you don't have access"
            )

        _save_organization(store, target["id"], target.get("name"))
        return {
            "success": True,
            "organizationId": target["id"],
            "organizationName": target.get("name"),
            "message": f"Switched to organization: {target.get('name')}",
        }

    async def create_organization(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.create_organization(ctx.session_token, arguments["name"])
        organization_id = response.get("id")
        organization_name = response.get("name", arguments["name"])

        _save_organization(store, organization_id, organization_name)
        return {
            "success": True,
            "organizationId": organization_id,
            "organizationName": organization_name,
            "message": f"Created and switched to organization: {organization_name}",
        }

    return ToolDomain(
        name="core",
        description="Discovery, authentication, and organization management",
        tools=(
            ToolDescriptor(
                name="l4yercak3_get_capabilities",
                description=(
                    "Get a list of all L4YERCAK3 capabilities and features.\n"
                    "Use this first to understand what L4YERCAK3 can do and help the "
                    "user choose features to integrate."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "category": {
                            "type": "string",
                            "enum": CATEGORIES,
                            "description": "Filter capabilities by category (default: all)",
                        },
                    },
                },
                handler=get_capabilities,
                requires_auth=False,
            ),
            ToolDescriptor(
                name="l4yercak3_check_auth_status",
                description=(
                    "Check if the user is authenticated with L4YERCAK3.\n"
                    'If not authenticated, suggest running "l4yercak3 login" in the terminal.'
                ),
                input_schema={"type": "object", "properties": {}},
                handler=check_auth_status,
                requires_auth=False,
            ),
            ToolDescriptor(
                name="l4yercak3_get_login_instructions",
                description=(
                    "Get instructions for how to authenticate with L4YERCAK3.\n"
                    "Use this when the user needs to login but hasn't yet."
                ),
                input_schema={"type": "object", "properties": {}},
                handler=get_login_instructions,
                requires_auth=False,
            ),
            ToolDescriptor(
                name="l4yercak3_list_organizations",
                description="List all organizations the authenticated user has access to.",
                input_schema={"type": "object", "properties": {}},
                handler=list_organizations,
            ),
            ToolDescriptor(
                name="l4yercak3_switch_organization",
                description=(
                    "Switch the current organization context.\n"
                    "Use this when the user wants to work with a different organization."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "organizationId": {
                            "type": "string",
                            "description": "The organization ID to switch to",
                        },
                    },
                    "required": ["organizationId"],
                },
                handler=switch_organization,
            ),
            ToolDescriptor(
                name="l4yercak3_create_organization",
                description=(
                    "Create a new organization and switch to it.\n"
                    "Use this when the user wants to set up a new organization for their project."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "name": {
                            "type": "string",
                            "description": "Name for the new organization",
                        },
                    },
                    "required": ["name"],
                },
                handler=create_organization,
            ),
        ),
    )


def _save_organization(
    store: CredentialStore, organization_id: str | None, organization_name: str | None
) -> None:
    def switch(session: Session | None) -> Session:
        if session is None:
            raise LookupError("No active session")
        return session.model_copy(
            update={
                "organization_id": organization_id,
                "organization_name": organization_name,
            }
        )

    store.update_session(switch)
