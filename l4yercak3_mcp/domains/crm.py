"""
CRM domain: contacts, CRM organizations (customer companies), notes and activities.

Read tools need "view_crm"; anything that writes needs "manage_crm".
"""

from typing import Any

from l4yercak3_mcp.auth import AuthContext
from l4yercak3_mcp.backend import BackendClient
from l4yercak3_mcp.domains.params import clamp_limit, flag
from l4yercak3_mcp.tools import ToolDescriptor, ToolDomain

CONTACT_SUBTYPES = ["customer", "lead", "prospect", "partner"]
ORGANIZATION_SUBTYPES = ["customer", "prospect", "partner", "sponsor"]


def _contact_summary(contact: dict[str, Any]) -> dict[str, Any]:
    props = contact.get("customProperties") or {}
    return {
        "id": contact.get("_id"),
        "name": contact.get("name"),
        "email": props.get("email"),
        "phone": props.get("phone"),
        "company": props.get("company"),
        "jobTitle": props.get("jobTitle"),
        "subtype": contact.get("subtype"),
        "status": contact.get("status"),
        "tags": props.get("tags") or [],
        "createdAt": contact.get("createdAt"),
    }


def crm_domain(backend: BackendClient) -> ToolDomain:
    async def list_contacts(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET",
            "/api/v1/crm/contacts",
            token=ctx.session_token,
            params={
                "organizationId": ctx.organization_id,
                "limit": clamp_limit(arguments.get("limit")),
                "subtype": arguments.get("subtype"),
                "status": arguments.get("status"),
                "search": arguments.get("search"),
            },
        )
        contacts = response.get("contacts") or []
        return {
            "contacts": [_contact_summary(c) for c in contacts],
            "total": response.get("total") or len(contacts),
        }

    async def get_contact(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET",
            f"/api/v1/crm/contacts/{arguments['contactId']}",
            token=ctx.session_token,
            params={
                "includeActivities": flag(arguments.get("includeActivities")),
                "includeNotes": flag(arguments.get("includeNotes")),
            },
        )
        contact = response.get("contact") or response
        props = contact.get("customProperties") or {}
        return {
            **_contact_summary(contact),
            "firstName": props.get("firstName"),
            "lastName": props.get("lastName"),
            "address": props.get("address"),
            "notes": props.get("notes"),
            "activities": response.get("activities") or [],
            "updatedAt": contact.get("updatedAt"),
        }

    async def create_contact(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "POST",
            "/api/v1/crm/contacts",
            token=ctx.session_token,
            json={
                "organizationId": ctx.organization_id,
                "firstName": arguments["firstName"],
                "lastName": arguments["lastName"],
                "email": arguments["email"],
                "phone": arguments.get("phone"),
                "company": arguments.get("company"),
                "jobTitle": arguments.get("jobTitle"),
                "subtype": arguments.get("subtype") or "lead",
                "tags": arguments.get("tags") or [],
                "notes": arguments.get("notes"),
                "source": "mcp",
            },
        )
        return {
            "success": True,
            "contactId": response.get("contactId") or response.get("id"),
            "message": f"Created contact: {arguments['firstName']} {arguments['lastName']}",
        }

    async def update_contact(arguments: dict[str, Any], ctx: AuthContext):
        updates = dict(arguments)
        contact_id = updates.pop("contactId")
        await backend.request(
            "PATCH",
            f"/api/v1/crm/contacts/{contact_id}",
            token=ctx.session_token,
            json={"updates": updates},
        )
        return {"success": True, "contactId": contact_id, "message": "Contact updated successfully"}

    async def delete_contact(arguments: dict[str, Any], ctx: AuthContext):
        await backend.request(
            "DELETE", f"/api/v1/crm/contacts/{arguments['contactId']}", token=ctx.session_token
        )
        return {"success": True, "message": "Contact deleted successfully"}

    async def list_organizations(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET",
            "/api/v1/crm/organizations",
            token=ctx.session_token,
            params={
                "organizationId": ctx.organization_id,
                "limit": clamp_limit(arguments.get("limit")),
                "subtype": arguments.get("subtype"),
                "status": arguments.get("status"),
            },
        )
        organizations = response.get("organizations") or []
        return {
            "organizations": [
                {
                    "id": org.get("_id"),
                    "name": org.get("name"),
                    "website": (org.get("customProperties") or {}).get("website"),
                    "industry": (org.get("customProperties") or {}).get("industry"),
                    "subtype": org.get("subtype"),
                    "status": org.get("status"),
                    "contactCount": org.get("contactCount") or 0,
                }
                for org in organizations
            ],
            "total": response.get("total") or len(organizations),
        }

    async def create_organization(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "POST",
            "/api/v1/crm/organizations",
            token=ctx.session_token,
            json={
                "organizationId": ctx.organization_id,
                "name": arguments["name"],
                "website": arguments.get("website"),
                "industry": arguments.get("industry"),
                "subtype": arguments.get("subtype") or "prospect",
                "phone": arguments.get("phone"),
            },
        )
        return {
            "success": True,
            "crmOrganizationId": response.get("crmOrganizationId") or response.get("id"),
            "message": f"Created CRM organization: {arguments['name']}",
        }

    async def get_organization(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET",
            f"/api/v1/crm/organizations/{arguments['crmOrganizationId']}",
            token=ctx.session_token,
            params={"includeContacts": flag(arguments.get("includeContacts"))},
        )
        org = response.get("organization") or response
        props = org.get("customProperties") or {}
        return {
            "id": org.get("_id"),
            "name": org.get("name"),
            "website": props.get("website"),
            "industry": props.get("industry"),
            "size": props.get("size"),
            "subtype": org.get("subtype"),
            "status": org.get("status"),
            "phone": props.get("phone"),
            "address": props.get("address"),
            "taxId": props.get("taxId"),
            "billingEmail": props.get("billingEmail"),
            "contacts": response.get("contacts") or [],
            "createdAt": org.get("createdAt"),
            "updatedAt": org.get("updatedAt"),
        }

    async def link_contact_to_organization(arguments: dict[str, Any], ctx: AuthContext):
        await backend.request(
            "POST",
            "/api/v1/crm/contact-organization-links",
            token=ctx.session_token,
            json={
                "contactId": arguments["contactId"],
                "crmOrganizationId": arguments["crmOrganizationId"],
                "jobTitle": arguments.get("jobTitle"),
                "isPrimaryContact": bool(arguments.get("isPrimaryContact")),
                "department": arguments.get("department"),
            },
        )
        return {"success": True, "message": "Contact linked to organization successfully"}

    async def add_note(arguments: dict[str, Any], ctx: AuthContext):
        await backend.request(
            "POST",
            f"/api/v1/crm/contacts/{arguments['contactId']}/notes",
            token=ctx.session_token,
            json={"content": arguments["content"]},
        )
        return {"success": True, "message": "Note added"}

    async def log_activity(arguments: dict[str, Any], ctx: AuthContext):
        await backend.request(
            "POST",
            f"/api/v1/crm/contacts/{arguments['contactId']}/activities",
            token=ctx.session_token,
            json={
                "type": arguments["type"],
                "summary": arguments["summary"],
                "details": arguments.get("details"),
                "scheduledAt": arguments.get("scheduledAt"),
            },
        )
        return {"success": True, "message": f"{arguments['type']} activity logged for contact"}

    contact_id = {"type": "string", "description": "The contact ID"}
    crm_organization_id = {"type": "string", "description": "The CRM organization ID"}

    return ToolDomain(
        name="crm",
        description="Customer Relationship Management - contacts, organizations, pipelines",
        tools=(
            ToolDescriptor(
                name="l4yercak3_crm_list_contacts",
                description=(
                    "List contacts from the CRM with optional filtering.\n"
                    "Returns name, email, phone, company and tags for each contact."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "limit": {
                            "type": "number",
                            "description": "Max contacts to return (default 50, max 100)",
                        },
                        "subtype": {"type": "string", "enum": CONTACT_SUBTYPES},
                        "status": {
                            "type": "string",
                            "enum": ["active", "inactive", "unsubscribed", "archived"],
                        },
                        "search": {"type": "string", "description": "Search by name or email"},
                    },
                },
                handler=list_contacts,
                required_permissions=("view_crm",),
            ),
            ToolDescriptor(
                name="l4yercak3_crm_get_contact",
                description="Get detailed information about a specific contact.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "contactId": contact_id,
                        "includeActivities": {"type": "boolean"},
                        "includeNotes": {"type": "boolean"},
                    },
                    "required": ["contactId"],
                },
                handler=get_contact,
                required_permissions=("view_crm",),
            ),
            ToolDescriptor(
                name="l4yercak3_crm_create_contact",
                description="Create a new contact (customer, lead, prospect or partner) in the CRM.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "firstName": {"type": "string"},
                        "lastName": {"type": "string"},
                        "email": {"type": "string"},
                        "phone": {"type": "string"},
                        "company": {"type": "string"},
                        "jobTitle": {"type": "string"},
                        "subtype": {"type": "string", "enum": CONTACT_SUBTYPES},
                        "tags": {"type": "array", "items": {"type": "string"}},
                        "notes": {"type": "string"},
                    },
                    "required": ["firstName", "lastName", "email"],
                },
                handler=create_contact,
                required_permissions=("manage_crm",),
            ),
            ToolDescriptor(
                name="l4yercak3_crm_update_contact",
                description="Update an existing contact.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "contactId": contact_id,
                        "firstName": {"type": "string"},
                        "lastName": {"type": "string"},
                        "email": {"type": "string"},
                        "phone": {"type": "string"},
                        "company": {"type": "string"},
                        "jobTitle": {"type": "string"},
                        "subtype": {"type": "string", "enum": CONTACT_SUBTYPES},
                        "status": {
                            "type": "string",
                            "enum": ["active", "inactive", "unsubscribed"],
                        },
                        "tags": {"type": "array", "items": {"type": "string"}},
                    },
                    "required": ["contactId"],
                },
                handler=update_contact,
                required_permissions=("manage_crm",),
            ),
            ToolDescriptor(
                name="l4yercak3_crm_delete_contact",
                description="Delete a contact from the CRM (soft delete, can be restored).",
                input_schema={
                    "type": "object",
                    "properties": {"contactId": contact_id},
                    "required": ["contactId"],
                },
                handler=delete_contact,
                required_permissions=("manage_crm",),
            ),
            ToolDescriptor(
                name="l4yercak3_crm_list_organizations",
                description=(
                    "List CRM organizations (companies tracked in the CRM).\n"
                    "These are customer companies, not L4YERCAK3 platform organizations."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "limit": {"type": "number"},
                        "subtype": {"type": "string", "enum": ORGANIZATION_SUBTYPES},
                        "status": {"type": "string", "enum": ["active", "inactive", "archived"]},
                    },
                },
                handler=list_organizations,
                required_permissions=("view_crm",),
            ),
            ToolDescriptor(
                name="l4yercak3_crm_create_organization",
                description="Create a new CRM organization (company/business).",
                input_schema={
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "website": {"type": "string"},
                        "industry": {"type": "string"},
                        "subtype": {"type": "string", "enum": ORGANIZATION_SUBTYPES},
                        "phone": {"type": "string"},
                    },
                    "required": ["name"],
                },
                handler=create_organization,
                required_permissions=("manage_crm",),
            ),
            ToolDescriptor(
                name="l4yercak3_crm_get_organization",
                description="Get detailed information about a CRM organization.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "crmOrganizationId": crm_organization_id,
                        "includeContacts": {
                            "type": "boolean",
                            "description": "Include linked contacts (default: false)",
                        },
                    },
                    "required": ["crmOrganizationId"],
                },
                handler=get_organization,
                required_permissions=("view_crm",),
            ),
            ToolDescriptor(
                name="l4yercak3_crm_link_contact_to_organization",
                description=(
                    "Link a contact to a CRM organization.\n"
                    "Use this to associate a contact with a company they work for."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "contactId": contact_id,
                        "crmOrganizationId": crm_organization_id,
                        "jobTitle": {"type": "string"},
                        "isPrimaryContact": {"type": "boolean"},
                        "department": {"type": "string"},
                    },
                    "required": ["contactId", "crmOrganizationId"],
                },
                handler=link_contact_to_organization,
                required_permissions=("manage_crm",),
            ),
            ToolDescriptor(
                name="l4yercak3_crm_add_note",
                description="Add a note to a contact's activity history.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "contactId": contact_id,
                        "content": {"type": "string", "description": "Note text"},
                    },
                    "required": ["contactId", "content"],
                },
                handler=add_note,
                required_permissions=("manage_crm",),
            ),
            ToolDescriptor(
                name="l4yercak3_crm_log_activity",
                description=(
                    "Log an activity for a contact (call, email, meeting, etc.).\n"
                    "Use this to track interactions with contacts."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "contactId": contact_id,
                        "type": {
                            "type": "string",
                            "enum": ["call", "email", "meeting", "note", "task", "other"],
                        },
                        "summary": {"type": "string", "description": "Brief summary"},
                        "details": {"type": "string"},
                        "scheduledAt": {
                            "type": "string",
                            "description": "ISO datetime for scheduled activities",
                        },
                    },
                    "required": ["contactId", "type", "summary"],
                },
                handler=log_activity,
                required_permissions=("manage_crm",),
            ),
        ),
    )
