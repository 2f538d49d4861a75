"""
Forms domain: registration forms, surveys and applications, their fields and
their responses.

Read tools need "view_forms"; anything that writes needs "manage_forms".
"""

import csv
import io
import time
from typing import Any

from l4yercak3_mcp.auth import AuthContext
from l4yercak3_mcp.backend import BackendClient
from l4yercak3_mcp.domains.params import clamp_limit
from l4yercak3_mcp.tools import ToolDescriptor, ToolDomain

FORM_SUBTYPES = ["registration", "survey", "application"]
FIELD_TYPES = [
    "text",
    "textarea",
    "email",
    "phone",
    "number",
    "date",
    "time",
    "datetime",
    "select",
    "radio",
    "checkbox",
    "multi_select",
    "file",
    "rating",
    "section_header",
]
# Export pulls everything in one page.
EXPORT_LIMIT = 1000

FIELD_SCHEMA = {
    "type": "object",
    "properties": {
        "type": {"type": "string", "enum": FIELD_TYPES},
        "label": {"type": "string"},
        "placeholder": {"type": "string"},
        "required": {"type": "boolean"},
        "options": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"value": {"type": "string"}, "label": {"type": "string"}},
            },
            "description": "Options for select/radio/checkbox fields",
        },
    },
    "required": ["type", "label"],
}


def _form_schema(fields: list[dict[str, Any]], settings: dict[str, Any]) -> dict[str, Any]:
    """The formSchema object the backend stores for a new form."""
    return {
        "version": "1.0",
        "fields": [
            {
                "id": field.get("id") or f"field_{index + 1}",
                "type": field["type"],
                "label": field["label"],
                "placeholder": field.get("placeholder"),
                "required": bool(field.get("required")),
                "options": field.get("options"),
                "validation": field.get("validation"),
                "order": index,
            }
            for index, field in enumerate(fields)
        ],
        "settings": {
            "allowMultipleSubmissions": bool(settings.get("allowMultipleSubmissions")),
            "showProgressBar": settings.get("showProgressBar", True),
            "submitButtonText": settings.get("submitButtonText") or "Submit",
            "successMessage": (
                settings.get("successMessage") or "Thank you for your submission!"
            ),
            "redirectUrl": settings.get("redirectUrl"),
            "displayMode": "all",
        },
        "sections": [],
    }


def responses_to_csv(rows: list[dict[str, Any]]) -> str:
    """
    Render flattened responses as CSV.

    Columns are the union of all keys in first-seen order; missing values are
    empty cells.
    """
    columns: list[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)

    out = io.StringIO()
    writer = csv.DictWriter(out, fieldnames=columns, restval="", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: "" if v is None else v for k, v in row.items()})
    return out.getvalue().rstrip("\n")


def forms_domain(backend: BackendClient) -> ToolDomain:
    async def list_forms(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET",
            "/api/v1/forms",
            token=ctx.session_token,
            params={
                "organizationId": ctx.organization_id,
                "subtype": arguments.get("subtype"),
                "status": arguments.get("status"),
                "eventId": arguments.get("eventId"),
            },
        )
        forms = response.get("forms") or []
        summaries = []
        for form in forms:
            props = form.get("customProperties") or {}
            summaries.append(
                {
                    "id": form.get("_id"),
                    "name": form.get("name"),
                    "description": form.get("description"),
                    "subtype": form.get("subtype"),
                    "status": form.get("status"),
                    "eventId": props.get("eventId"),
                    "fieldCount": len((props.get("formSchema") or {}).get("fields") or []),
                    "submissionCount": (props.get("stats") or {}).get("submissions") or 0,
                    "publicUrl": props.get("publicUrl"),
                    "createdAt": form.get("createdAt"),
                }
            )
        return {"forms": summaries, "total": response.get("total") or len(forms)}

    async def create_form(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "POST",
            "/api/v1/forms",
            token=ctx.session_token,
            json={
                "organizationId": ctx.organization_id,
                "name": arguments["name"],
                "description": arguments.get("description"),
                "subtype": arguments.get("subtype") or "registration",
                "eventId": arguments.get("eventId"),
                "formSchema": _form_schema(
                    arguments.get("fields") or [], arguments.get("settings") or {}
                ),
            },
        )
        return {
            "success": True,
            "formId": response.get("formId") or response.get("id"),
            "status": "draft",
            "message": f"Created form: {arguments['name']}",
            "nextSteps": [
                "Add more fields with l4yercak3_forms_add_field if needed",
                "Publish the form with l4yercak3_forms_publish",
            ],
        }

    async def get_form(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET", f"/api/v1/forms/{arguments['formId']}", token=ctx.session_token
        )
        form = response.get("form") or response
        props = form.get("customProperties") or {}
        schema = props.get("formSchema") or {}
        return {
            "id": form.get("_id"),
            "name": form.get("name"),
            "description": form.get("description"),
            "subtype": form.get("subtype"),
            "status": form.get("status"),
            "eventId": props.get("eventId"),
            "publicUrl": props.get("publicUrl"),
            "fields": schema.get("fields") or [],
            "settings": schema.get("settings") or {},
            "stats": props.get("stats") or {"views": 0, "submissions": 0, "completionRate": 0},
            "createdAt": form.get("createdAt"),
            "updatedAt": form.get("updatedAt"),
        }

    async def update_form(arguments: dict[str, Any], ctx: AuthContext):
        updates = dict(arguments)
        form_id = updates.pop("formId")
        await backend.request(
            "PATCH", f"/api/v1/forms/{form_id}", token=ctx.session_token, json=updates
        )
        return {"success": True, "formId": form_id, "message": "Form updated successfully"}

    async def add_field(arguments: dict[str, Any], ctx: AuthContext):
        form_id = arguments["formId"]
        response = await backend.request(
            "GET", f"/api/v1/forms/{form_id}", token=ctx.session_token
        )
        form = response.get("form") or response
        schema = dict((form.get("customProperties") or {}).get("formSchema") or {})
        fields = list(schema.get("fields") or [])

        new_field = {
            "id": f"field_{int(time.time() * 1000)}",
            **arguments["field"],
            "order": len(fields),
        }
        insert_after = arguments.get("insertAfter")
        positions = [i for i, f in enumerate(fields) if f.get("id") == insert_after]
        if positions:
            fields.insert(positions[0] + 1, new_field)
            for order, field in enumerate(fields):
                field["order"] = order
        else:
            fields.append(new_field)
        schema["fields"] = fields

        await backend.request(
            "PATCH",
            f"/api/v1/forms/{form_id}",
            token=ctx.session_token,
            json={"formSchema": schema},
        )
        return {
            "success": True,
            "fieldId": new_field["id"],
            "message": f"Added field: {arguments['field']['label']}",
        }

    async def publish_form(arguments: dict[str, Any], ctx: AuthContext):
        await backend.request(
            "POST", f"/api/v1/forms/{arguments['formId']}/publish", token=ctx.session_token
        )
        return {"success": True, "formId": arguments["formId"], "status": "published"}

    async def unpublish_form(arguments: dict[str, Any], ctx: AuthContext):
        await backend.request(
            "POST", f"/api/v1/forms/{arguments['formId']}/unpublish", token=ctx.session_token
        )
        return {"success": True, "formId": arguments["formId"], "status": "draft"}

    async def delete_form(arguments: dict[str, Any], ctx: AuthContext):
        await backend.request(
            "DELETE", f"/api/v1/forms/{arguments['formId']}", token=ctx.session_token
        )
        return {"success": True, "message": "Form deleted successfully"}

    async def duplicate_form(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "POST", f"/api/v1/forms/{arguments['formId']}/duplicate", token=ctx.session_token
        )
        return {
            "success": True,
            "newFormId": response.get("formId") or response.get("id"),
            "message": "Form duplicated successfully",
        }

    async def get_responses(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET",
            f"/api/v1/forms/{arguments['formId']}/responses",
            token=ctx.session_token,
            params={
                "status": arguments.get("status"),
                "limit": clamp_limit(arguments.get("limit")),
                "offset": arguments.get("offset"),
            },
        )
        responses = response.get("responses") or []
        return {
            "responses": [
                {
                    "id": r.get("_id"),
                    "status": r.get("status"),
                    "submittedAt": (r.get("customProperties") or {}).get("submittedAt"),
                    "data": (r.get("customProperties") or {}).get("responses") or {},
                    "isPublicSubmission": bool(
                        (r.get("customProperties") or {}).get("isPublicSubmission")
                    ),
                }
                for r in responses
            ],
            "total": response.get("total") or len(responses),
        }

    async def get_response(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET",
            f"/api/v1/forms/responses/{arguments['responseId']}",
            token=ctx.session_token,
        )
        resp = response.get("response") or response
        props = resp.get("customProperties") or {}
        return {
            "id": resp.get("_id"),
            "formId": props.get("formId"),
            "status": resp.get("status"),
            "submittedAt": props.get("submittedAt"),
            "data": props.get("responses") or {},
            "metadata": {
                "userAgent": props.get("userAgent"),
                "ipAddress": props.get("ipAddress"),
                "isPublicSubmission": props.get("isPublicSubmission"),
            },
            "createdAt": resp.get("createdAt"),
        }

    async def export_responses(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.request(
            "GET",
            f"/api/v1/forms/{arguments['formId']}/responses",
            token=ctx.session_token,
            params={"limit": EXPORT_LIMIT},
        )
        rows = [
            {
                "id": r.get("_id"),
                "submittedAt": (r.get("customProperties") or {}).get("submittedAt"),
                **((r.get("customProperties") or {}).get("responses") or {}),
            }
            for r in response.get("responses") or []
        ]

        if (arguments.get("format") or "json") == "csv":
            if not rows:
                return {"csv": "No responses to export", "rowCount": 0}
            return {"csv": responses_to_csv(rows), "rowCount": len(rows)}
        return {"responses": rows, "rowCount": len(rows)}

    form_id = {"type": "string", "description": "The form ID"}

    def form_only(description: str) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"formId": {"type": "string", "description": description}},
            "required": ["formId"],
        }

    return ToolDomain(
        name="forms",
        description="Form builder - registration forms, surveys, applications",
        tools=(
            ToolDescriptor(
                name="l4yercak3_forms_list",
                description="List all forms for the organization.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "subtype": {"type": "string", "enum": FORM_SUBTYPES},
                        "status": {"type": "string", "enum": ["draft", "published", "archived"]},
                        "eventId": {"type": "string"},
                    },
                },
                handler=list_forms,
                required_permissions=("view_forms",),
            ),
            ToolDescriptor(
                name="l4yercak3_forms_create",
                description=(
                    "Create a new form.\n"
                    "Forms can be registration forms, surveys, or applications. "
                    "Start with basic info, then add fields."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "name": {"type": "string"},
                        "description": {"type": "string"},
                        "subtype": {"type": "string", "enum": FORM_SUBTYPES},
                        "eventId": {"type": "string", "description": "Link form to an event"},
                        "fields": {
                            "type": "array",
                            "items": {
                                **FIELD_SCHEMA,
                                "properties": {
                                    **FIELD_SCHEMA["properties"],
                                    "id": {"type": "string"},
                                    "validation": {
                                        "type": "object",
                                        "properties": {
                                            "min": {"type": "number"},
                                            "max": {"type": "number"},
                                            "pattern": {"type": "string"},
                                            "message": {"type": "string"},
                                        },
                                    },
                                },
                            },
                        },
                        "settings": {
                            "type": "object",
                            "properties": {
                                "allowMultipleSubmissions": {"type": "boolean"},
                                "showProgressBar": {"type": "boolean"},
                                "submitButtonText": {"type": "string"},
                                "successMessage": {"type": "string"},
                                "redirectUrl": {"type": "string"},
                            },
                        },
                    },
                    "required": ["name"],
                },
                handler=create_form,
                required_permissions=("manage_forms",),
            ),
            ToolDescriptor(
                name="l4yercak3_forms_get",
                description="Get detailed information about a form including all fields.",
                input_schema=form_only("The form ID"),
                handler=get_form,
                required_permissions=("view_forms",),
            ),
            ToolDescriptor(
                name="l4yercak3_forms_update",
                description=(
                    "Update form name, description, or settings.\n"
                    "To add fields, use l4yercak3_forms_add_field."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "formId": form_id,
                        "name": {"type": "string"},
                        "description": {"type": "string"},
                        "subtype": {"type": "string", "enum": FORM_SUBTYPES},
                        "settings": {"type": "object"},
                    },
                    "required": ["formId"],
                },
                handler=update_form,
                required_permissions=("manage_forms",),
            ),
            ToolDescriptor(
                name="l4yercak3_forms_add_field",
                description="Add a new field to a form.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "formId": form_id,
                        "field": FIELD_SCHEMA,
                        "insertAfter": {
                            "type": "string",
                            "description": "Field ID to insert after (default: append)",
                        },
                    },
                    "required": ["formId", "field"],
                },
                handler=add_field,
                required_permissions=("manage_forms",),
            ),
            ToolDescriptor(
                name="l4yercak3_forms_publish",
                description="Publish a form so it accepts submissions.",
                input_schema=form_only("The form ID to publish"),
                handler=publish_form,
                required_permissions=("manage_forms",),
            ),
            ToolDescriptor(
                name="l4yercak3_forms_unpublish",
                description="Unpublish a form (change back to draft status).",
                input_schema=form_only("The form ID to unpublish"),
                handler=unpublish_form,
                required_permissions=("manage_forms",),
            ),
            ToolDescriptor(
                name="l4yercak3_forms_delete",
                description="Delete a form permanently.",
                input_schema=form_only("The form ID to delete"),
                handler=delete_form,
                required_permissions=("manage_forms",),
            ),
            ToolDescriptor(
                name="l4yercak3_forms_duplicate",
                description="Create a copy of an existing form.",
                input_schema=form_only("The form ID to duplicate"),
                handler=duplicate_form,
                required_permissions=("manage_forms",),
            ),
            ToolDescriptor(
                name="l4yercak3_forms_get_responses",
                description="Get the responses submitted to a form.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "formId": form_id,
                        "status": {"type": "string", "enum": ["partial", "complete", "abandoned"]},
                        "limit": {"type": "number"},
                        "offset": {"type": "number"},
                    },
                    "required": ["formId"],
                },
                handler=get_responses,
                required_permissions=("view_forms",),
            ),
            ToolDescriptor(
                name="l4yercak3_forms_get_response",
                description="Get a single form response with full details.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "responseId": {"type": "string", "description": "The response ID"},
                    },
                    "required": ["responseId"],
                },
                handler=get_response,
                required_permissions=("view_forms",),
            ),
            ToolDescriptor(
                name="l4yercak3_forms_export_responses",
                description="Export form responses as CSV or JSON.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "formId": form_id,
                        "format": {
                            "type": "string",
                            "enum": ["json", "csv"],
                            "description": "Export format (default: json)",
                        },
                    },
                    "required": ["formId"],
                },
                handler=export_responses,
                required_permissions=("view_forms",),
            ),
        ),
    )
