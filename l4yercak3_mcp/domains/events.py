"""
Events domain: events and their lifecycle, agenda, ticket products, attendees
and sponsors.

Permissions: "events:read" for lookups, "events:write" for changes.
New events start as drafts; publishing and cancelling are separate calls.
"""

from typing import Any

from l4yercak3_mcp.auth import AuthContext
from l4yercak3_mcp.backend import BackendClient
from l4yercak3_mcp.domains.params import clamp_limit, flag, to_timestamp_ms
from l4yercak3_mcp.tools import ToolDescriptor, ToolDomain

EVENT_SUBTYPES = ["conference", "workshop", "concert", "meetup", "seminar"]
SPONSOR_LEVELS = ["platinum", "gold", "silver", "bronze", "community"]


def events_domain(backend: BackendClient) -> ToolDomain:
    async def list_events(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET",
            "/api/v1/events",
            token=ctx.session_token,
            params={
                "organizationId": ctx.organization_id,
                "status": arguments.get("status"),
                "subtype": arguments.get("subtype"),
                "fromDate": arguments.get("fromDate"),
                "toDate": arguments.get("toDate"),
                "limit": clamp_limit(arguments.get("limit")),
            },
        )
        events = response.get("events") or []
        return {
            "events": [
                {
                    "id": event.get("_id"),
                    "name": event.get("name"),
                    "subtype": event.get("subtype"),
                    "status": event.get("status"),
                    "startDate": (event.get("customProperties") or {}).get("startDate"),
                    "endDate": (event.get("customProperties") or {}).get("endDate"),
                    "location": (event.get("customProperties") or {}).get("location"),
                }
                for event in events
            ],
            "total": response.get("total") or len(events),
        }

    async def get_event(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET",
            f"/api/v1/events/{arguments['eventId']}",
            token=ctx.session_token,
            params={
                "includeProducts": flag(arguments.get("includeProducts", True)),
                "includeSponsors": flag(arguments.get("includeSponsors")),
            },
        )
        event = response.get("event") or response
        props = event.get("customProperties") or {}
        return {
            "id": event.get("_id"),
            "name": event.get("name"),
            "description": event.get("description"),
            "subtype": event.get("subtype"),
            "status": event.get("status"),
            "startDate": props.get("startDate"),
            "endDate": props.get("endDate"),
            "location": props.get("location"),
            "timezone": props.get("timezone"),
            "maxCapacity": props.get("maxCapacity"),
            "agenda": props.get("agenda") or [],
            "products": response.get("products") or [],
            "sponsors": response.get("sponsors") or [],
        }

    async def create_event(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "POST",
            "/api/v1/events",
            token=ctx.session_token,
            json={
                "organizationId": ctx.organization_id,
                "name": arguments["name"],
                "description": arguments.get("description"),
                "subtype": arguments.get("subtype") or "meetup",
                "startDate": to_timestamp_ms(arguments["startDate"]),
                "endDate": to_timestamp_ms(arguments["endDate"]),
                "location": arguments["location"],
                "customProperties": {
                    "timezone": arguments.get("timezone") or "UTC",
                    "maxCapacity": arguments.get("maxCapacity"),
                },
            },
        )
        return {
            "success": True,
            "eventId": response.get("eventId") or response.get("id"),
            "status": "draft",
            "message": f"Created event: {arguments['name']} (draft)",
        }

    async def update_event(arguments: dict[str, Any], ctx: AuthContext):
        updates = dict(arguments)
        event_id = updates.pop("eventId")
        for key in ("startDate", "endDate"):
            if updates.get(key):
                updates[key] = to_timestamp_ms(updates[key])

        await backend.request(
            "PATCH", f"/api/v1/events/{event_id}", token=ctx.session_token, json=updates
        )
        return {"success": True, "eventId": event_id, "message": "Event updated successfully"}

    async def publish_event(arguments: dict[str, Any], ctx: AuthContext):
        await backend.request(
            "POST", f"/api/v1/events/{arguments['eventId']}/publish", token=ctx.session_token
        )
        return {"success": True, "eventId": arguments["eventId"], "status": "published"}

    async def cancel_event(arguments: dict[str, Any], ctx: AuthContext):
        await backend.request(
            "POST", f"/api/v1/events/{arguments['eventId']}/cancel", token=ctx.session_token
        )
        return {"success": True, "eventId": arguments["eventId"], "status": "cancelled"}

    async def update_agenda(arguments: dict[str, Any], ctx: AuthContext):
        agenda = arguments["agenda"]
        await backend.request(
            "PATCH",
            f"/api/v1/events/{arguments['eventId']}/agenda",
            token=ctx.session_token,
            json={"agenda": agenda},
        )
        return {
            "success": True,
            "eventId": arguments["eventId"],
            "agendaItemCount": len(agenda),
            "message": "Event agenda updated",
        }

    async def get_products(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET", f"/api/v1/events/{arguments['eventId']}/products", token=ctx.session_token
        )
        products = []
        for product in response.get("products") or []:
            props = product.get("customProperties") or {}
            products.append(
                {
                    "id": product.get("_id"),
                    "name": product.get("name"),
                    "description": product.get("description"),
                    "priceInCents": props.get("priceInCents"),
                    "currency": props.get("currency") or "EUR",
                    "quantity": props.get("quantity"),
                    "soldCount": props.get("soldCount") or 0,
                    "status": product.get("status"),
                    "isFeatured": bool((product.get("linkProperties") or {}).get("isFeatured")),
                }
            )
        return {"products": products}

    async def create_product(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "POST",
            "/api/v1/products",
            token=ctx.session_token,
            json={
                "organizationId": ctx.organization_id,
                "eventId": arguments["eventId"],
                "name": arguments["name"],
                "description": arguments.get("description"),
                "priceInCents": arguments["priceInCents"],
                "currency": arguments.get("currency") or "EUR",
                "quantity": arguments.get("quantity"),
                "subtype": arguments.get("subtype") or "ticket",
                "isFeatured": bool(arguments.get("isFeatured")),
            },
        )
        return {
            "success": True,
            "productId": response.get("productId") or response.get("id"),
            "message": f"Created product: {arguments['name']}",
        }

    async def get_attendees(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET",
            f"/api/v1/events/{arguments['eventId']}/attendees",
            token=ctx.session_token,
            params={
                "status": arguments.get("status"),
                "limit": clamp_limit(arguments.get("limit")),
            },
        )
        attendees = response.get("attendees") or []
        return {
            "attendees": [
                {
                    "ticketId": attendee.get("_id"),
                    "holderName": attendee.get("holderName"),
                    "holderEmail": attendee.get("holderEmail"),
                    "holderPhone": attendee.get("holderPhone"),
                    "ticketNumber": attendee.get("ticketNumber"),
                    "ticketType": attendee.get("ticketType"),
                    "status": attendee.get("status"),
                    "purchaseDate": attendee.get("purchaseDate"),
                    "pricePaid": attendee.get("pricePaid"),
                    "formResponses": attendee.get("formResponses"),
                }
                for attendee in attendees
            ],
            "total": response.get("total") or len(attendees),
        }

    async def get_sponsors(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET",
            f"/api/v1/events/{arguments['eventId']}/sponsors",
            token=ctx.session_token,
            params={"sponsorLevel": arguments.get("sponsorLevel")},
        )
        sponsors = []
        for sponsor in response.get("sponsors") or []:
            sponsorship = sponsor.get("sponsorshipProperties") or {}
            sponsors.append(
                {
                    "crmOrganizationId": sponsor.get("_id"),
                    "name": sponsor.get("name"),
                    "website": (sponsor.get("customProperties") or {}).get("website"),
                    "sponsorLevel": sponsorship.get("sponsorLevel"),
                    "logoUrl": sponsorship.get("logoUrl"),
                    "description": sponsorship.get("description"),
                }
            )
        return {"sponsors": sponsors}

    async def add_sponsor(arguments: dict[str, Any], ctx: AuthContext):
        await backend.request(
            "POST",
            f"/api/v1/events/{arguments['eventId']}/sponsors",
            token=ctx.session_token,
            json={
                "crmOrganizationId": arguments["crmOrganizationId"],
                "sponsorLevel": arguments.get("sponsorLevel") or "community",
                "logoUrl": arguments.get("logoUrl"),
                "websiteUrl": arguments.get("websiteUrl"),
                "description": arguments.get("description"),
            },
        )
        return {"success": True, "message": "Sponsor added to event"}

    event_id = {"type": "string", "description": "The event ID"}

    def event_only(description: str) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"eventId": {"type": "string", "description": description}},
            "required": ["eventId"],
        }

    return ToolDomain(
        name="events",
        description="Event management - events, tickets, attendees, sponsors",
        tools=(
            ToolDescriptor(
                name="l4yercak3_events_list",
                description="List all events for the organization with status and dates.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "status": {
                            "type": "string",
                            "enum": ["draft", "published", "in_progress", "completed", "cancelled"],
                        },
                        "subtype": {"type": "string", "enum": EVENT_SUBTYPES},
                        "fromDate": {"type": "string", "description": "ISO date lower bound"},
                        "toDate": {"type": "string", "description": "ISO date upper bound"},
                        "limit": {"type": "number"},
                    },
                },
                handler=list_events,
                required_permissions=("events:read",),
            ),
            ToolDescriptor(
                name="l4yercak3_events_get",
                description="Get detailed information about an event, including agenda and products.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "eventId": event_id,
                        "includeProducts": {"type": "boolean"},
                        "includeSponsors": {"type": "boolean"},
                    },
                    "required": ["eventId"],
                },
                handler=get_event,
                required_permissions=("events:read",),
            ),
            ToolDescriptor(
                name="l4yercak3_events_create",
                description=(
                    "Create a new event.\n"
                    "Events start in 'draft' status and can be published when ready."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "description": {"type": "string"},
                        "subtype": {"type": "string", "enum": EVENT_SUBTYPES},
                        "startDate": {"type": "string", "description": "Start (ISO format)"},
                        "endDate": {"type": "string", "description": "End (ISO format)"},
                        "location": {"type": "string"},
                        "timezone": {"type": "string"},
                        "maxCapacity": {"type": "number"},
                    },
                    "required": ["name", "startDate", "endDate", "location"],
                },
                handler=create_event,
                required_permissions=("events:write",),
            ),
            ToolDescriptor(
                name="l4yercak3_events_update",
                description=(
                    "Update an existing event.\n"
                    "Can update name, dates, location, and other properties."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "eventId": event_id,
                        "name": {"type": "string"},
                        "description": {"type": "string"},
                        "subtype": {"type": "string", "enum": EVENT_SUBTYPES},
                        "startDate": {"type": "string", "description": "New start (ISO)"},
                        "endDate": {"type": "string", "description": "New end (ISO)"},
                        "location": {"type": "string"},
                        "maxCapacity": {"type": "number"},
                    },
                    "required": ["eventId"],
                },
                handler=update_event,
                required_permissions=("events:write",),
            ),
            ToolDescriptor(
                name="l4yercak3_events_publish",
                description="Publish a draft event to make it publicly visible.",
                input_schema=event_only("The event ID to publish"),
                handler=publish_event,
                required_permissions=("events:write",),
            ),
            ToolDescriptor(
                name="l4yercak3_events_cancel",
                description="Cancel an event (soft delete).",
                input_schema=event_only("The event ID to cancel"),
                handler=cancel_event,
                required_permissions=("events:write",),
            ),
            ToolDescriptor(
                name="l4yercak3_events_update_agenda",
                description=(
                    "Update the event agenda/schedule.\n"
                    "Replaces the entire agenda with the given list of items."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "eventId": event_id,
                        "agenda": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "time": {
                                        "type": "string",
                                        "description": 'Time (e.g. "09:00 AM" or ISO timestamp)',
                                    },
                                    "title": {"type": "string"},
                                    "description": {"type": "string"},
                                    "speaker": {"type": "string"},
                                    "location": {"type": "string"},
                                    "duration": {
                                        "type": "number",
                                        "description": "Duration in minutes",
                                    },
                                },
                                "required": ["time", "title"],
                            },
                        },
                    },
                    "required": ["eventId", "agenda"],
                },
                handler=update_agenda,
                required_permissions=("events:write",),
            ),
            ToolDescriptor(
                name="l4yercak3_events_get_products",
                description="Get all products (tickets) offered by an event.",
                input_schema=event_only("The event ID"),
                handler=get_products,
                required_permissions=("events:read",),
            ),
            ToolDescriptor(
                name="l4yercak3_events_create_product",
                description=(
                    "Create a product (ticket type) for an event.\n"
                    "Products can be tickets, merchandise, or add-ons."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "eventId": event_id,
                        "name": {"type": "string", "description": 'e.g. "Early Bird Ticket"'},
                        "description": {"type": "string"},
                        "priceInCents": {
                            "type": "number",
                            "description": "Price in cents (5000 = 50.00)",
                        },
                        "currency": {"type": "string", "description": "Currency code (default: EUR)"},
                        "quantity": {
                            "type": "number",
                            "description": "Available quantity (omit for unlimited)",
                        },
                        "subtype": {
                            "type": "string",
                            "enum": ["ticket", "merchandise", "addon", "donation"],
                        },
                        "isFeatured": {"type": "boolean"},
                    },
                    "required": ["eventId", "name", "priceInCents"],
                },
                handler=create_product,
                required_permissions=("events:write",),
            ),
            ToolDescriptor(
                name="l4yercak3_events_get_attendees",
                description=(
                    "Get all attendees (ticket holders) for an event.\n"
                    "Returns people who have purchased tickets."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "eventId": event_id,
                        "status": {
                            "type": "string",
                            "enum": ["issued", "checked_in", "cancelled"],
                        },
                        "limit": {"type": "number"},
                    },
                    "required": ["eventId"],
                },
                handler=get_attendees,
                required_permissions=("events:read",),
            ),
            ToolDescriptor(
                name="l4yercak3_events_get_sponsors",
                description=(
                    "Get all sponsors for an event.\n"
                    "Sponsors are CRM organizations linked to the event."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "eventId": event_id,
                        "sponsorLevel": {"type": "string", "enum": SPONSOR_LEVELS},
                    },
                    "required": ["eventId"],
                },
                handler=get_sponsors,
                required_permissions=("events:read",),
            ),
            ToolDescriptor(
                name="l4yercak3_events_add_sponsor",
                description="Add a sponsor (CRM organization) to an event.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "eventId": event_id,
                        "crmOrganizationId": {
                            "type": "string",
                            "description": "The CRM organization ID to add as sponsor",
                        },
                        "sponsorLevel": {"type": "string", "enum": SPONSOR_LEVELS},
                        "logoUrl": {"type": "string"},
                        "websiteUrl": {"type": "string"},
                        "description": {"type": "string"},
                    },
                    "required": ["eventId", "crmOrganizationId"],
                },
                handler=add_sponsor,
                required_permissions=("events:write",),
            ),
        ),
    )
