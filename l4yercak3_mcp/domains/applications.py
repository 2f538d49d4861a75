"""
Applications domain: projects connected to an L4YERCAK3 organization.

A connected application is identified locally by the SHA-256 of its project
path, so registering the same project twice returns the existing record.
Registration also records the application in the local config file under
`projects`.

Registering, updating, syncing and mapping need "manage_applications";
looking applications up only needs a session.
"""

import hashlib
from typing import Any

from l4yercak3_mcp.auth import AuthContext
from l4yercak3_mcp.backend import BackendClient
from l4yercak3_mcp.credentials import CredentialStore
from l4yercak3_mcp.domains.params import clamp_limit
from l4yercak3_mcp.tools import ToolDescriptor, ToolDomain

FRAMEWORKS = ["nextjs", "remix", "astro", "nuxt", "sveltekit", "other"]
FEATURES = ["crm", "events", "forms", "invoicing", "checkout"]
SYNC_DIRECTIONS = ["push", "pull", "bidirectional", "none"]
LAYER_CAKE_TYPES = ["crm_contact", "crm_organization", "event", "form", "product"]

SUGGESTED_MAPPINGS = [
    {
        "localModel": "User",
        "layerCakeType": "crm_contact",
        "confidence": 0.9,
        "reason": "User models typically map to CRM contacts",
        "suggestedFieldMappings": [
            {"local": "email", "layerCake": "email"},
            {"local": "firstName", "layerCake": "firstName"},
            {"local": "lastName", "layerCake": "lastName"},
            {"local": "phone", "layerCake": "phone"},
        ],
    },
    {
        "localModel": "Customer",
        "layerCakeType": "crm_contact",
        "confidence": 0.95,
        "reason": "Customer models map directly to CRM contacts",
        "suggestedFieldMappings": [
            {"local": "email", "layerCake": "email"},
            {"local": "name", "layerCake": "name"},
        ],
    },
    {
        "localModel": "Company",
        "layerCakeType": "crm_organization",
        "confidence": 0.9,
        "reason": "Company models map to CRM organizations",
        "suggestedFieldMappings": [
            {"local": "name", "layerCake": "name"},
            {"local": "website", "layerCake": "website"},
            {"local": "industry", "layerCake": "industry"},
        ],
    },
]


def project_path_hash(project_path: str) -> str:
    return hashlib.sha256(project_path.encode("utf-8")).hexdigest()


def _application_id(app: dict[str, Any]) -> str | None:
    return app.get("id") or app.get("_id")


def applications_domain(backend: BackendClient, store: CredentialStore) -> ToolDomain:
    async def register_application(arguments: dict[str, Any], ctx: AuthContext):
        project_path = arguments.get("projectPath")
        path_hash = project_path_hash(project_path) if project_path else None

        if path_hash:
            existing = await backend.check_existing_application(
                ctx.session_token, ctx.organization_id, path_hash
            )
            if existing.get("found"):
                app = existing.get("application") or {}
                connection = (app.get("customProperties") or {}).get("connection") or {}
                return {
                    "success": True,
                    "applicationId": _application_id(app),
                    "existingApplication": True,
                    "message": "Application already registered for this project",
                    "application": {
                        "id": _application_id(app),
                        "name": app.get("name"),
                        "features": connection.get("features") or [],
                    },
                }

        response = await backend.register_application(
            ctx.session_token,
            {
                "organizationId": ctx.organization_id,
                "name": arguments["name"],
                "description": arguments.get("description"),
                "source": {
                    "type": "cli",
                    "projectPathHash": path_hash,
                    "framework": arguments.get("framework"),
                    "frameworkVersion": arguments.get("frameworkVersion"),
                    "hasTypeScript": arguments.get("hasTypeScript"),
                    "routerType": arguments.get("routerType"),
                },
                "connection": {
                    "features": arguments.get("features") or [],
                    "hasFrontendDatabase": False,
                },
            },
        )
        api_key = response.get("apiKey")

        if project_path:
            store.save_project(
                project_path,
                {
                    "applicationId": response.get("applicationId"),
                    "apiKeyId": api_key.get("id") if api_key else None,
                    "features": arguments.get("features") or [],
                },
            )

        return {
            "success": True,
            "applicationId": response.get("applicationId"),
            "existingApplication": False,
            "apiKey": (
                {k: api_key.get(k) for k in ("id", "key", "prefix")} if api_key else None
            ),
            "backendUrl": response.get("backendUrl"),
            "message": f"Registered application: {arguments['name']}",
            "nextSteps": [
                (
                    f"Add L4YERCAK3_API_KEY={api_key.get('key')} to your .env.local"
                    if api_key
                    else "Generate an API key with l4yercak3 api-keys generate"
                ),
            ],
        }

    async def get_application(arguments: dict[str, Any], ctx: AuthContext):
        application_id = arguments.get("applicationId")

        if not application_id and arguments.get("projectPath"):
            existing = await backend.check_existing_application(
                ctx.session_token,
                ctx.organization_id,
                project_path_hash(arguments["projectPath"]),
            )
            if not existing.get("found"):
                return {
                    "found": False,
                    "message": "No application registered for this project path",
                }
            application_id = _application_id(existing.get("application") or {})

        if not application_id:
            raise ValueError("Either applicationId or projectPath is required")

        response = await backend.get_application(ctx.session_token, application_id)
        app = response.get("application") or response
        return {
            "found": True,
            "application": {
                "id": _application_id(app),
                "name": app.get("name"),
                "description": app.get("description"),
                "status": app.get("status"),
                "framework": (app.get("source") or {}).get("framework"),
                "features": (app.get("connection") or {}).get("features") or [],
                "modelMappings": app.get("modelMappings") or [],
                "sync": app.get("sync") or {"lastSyncAt": None},
                "registeredAt": (app.get("cli") or {}).get("registeredAt"),
                "lastActivityAt": (app.get("cli") or {}).get("lastActivityAt"),
            },
        }

    async def list_applications(arguments: dict[str, Any], ctx: AuthContext):
        response = await backend.list_applications(
            ctx.session_token,
            ctx.organization_id,
            status=arguments.get("status"),
            limit=clamp_limit(arguments.get("limit")),
        )
        applications = response.get("applications") or []
        return {
            "applications": [
                {
                    "id": _application_id(app),
                    "name": app.get("name"),
                    "status": app.get("status"),
                    "framework": app.get("framework"),
                    "features": app.get("features") or [],
                    "registeredAt": app.get("registeredAt"),
                    "lastActivityAt": app.get("lastActivityAt"),
                }
                for app in applications
            ],
            "total": response.get("total") or len(applications),
        }

    async def update_application(arguments: dict[str, Any], ctx: AuthContext):
        updates = dict(arguments)
        application_id = updates.pop("applicationId")
        await backend.update_application(ctx.session_token, application_id, updates)
        return {
            "success": True,
            "applicationId": application_id,
            "message": "Application updated successfully",
        }

    async def sync_application(arguments: dict[str, Any], ctx: AuthContext):
        direction = arguments.get("direction") or "bidirectional"
        dry_run = bool(arguments.get("dryRun"))
        response = await backend.sync_application(
            ctx.session_token,
            arguments["applicationId"],
            {"direction": direction, "models": arguments.get("models"), "dryRun": dry_run},
        )
        return {
            "syncId": response.get("syncId"),
            "dryRun": dry_run,
            "direction": direction,
            "modelMappings": response.get("modelMappings") or [],
            "instructions": response.get("instructions"),
            "message": (
                "Dry run completed - no changes made"
                if dry_run
                else "Sync configuration returned - execute sync in your application"
            ),
        }

    async def add_model_mapping(arguments: dict[str, Any], ctx: AuthContext):
        application_id = arguments["applicationId"]
        response = await backend.get_application(ctx.session_token, application_id)
        app = response.get("application") or response
        mappings = list(app.get("modelMappings") or [])

        mapping = {
            "localModel": arguments["localModel"],
            "layerCakeType": arguments["layerCakeType"],
            "syncDirection": arguments.get("syncDirection") or "bidirectional",
            "fieldMappings": arguments.get("fieldMappings") or [],
            "isAutoDetected": False,
        }
        index = next(
            (i for i, m in enumerate(mappings) if m.get("localModel") == mapping["localModel"]),
            None,
        )
        if index is None:
            mappings.append(mapping)
        else:
            mappings[index] = mapping

        await backend.update_application(
            ctx.session_token, application_id, {"modelMappings": mappings}
        )
        verb = "Added" if index is None else "Updated"
        return {
            "success": True,
            "mappingAdded": index is None,
            "mappingUpdated": index is not None,
            "mapping": mapping,
            "message": f"{verb} mapping: {mapping['localModel']} -> {mapping['layerCakeType']}",
        }

    async def suggest_model_mappings(arguments: dict[str, Any], ctx: AuthContext):
        # Pattern-based only; the project's files are not read.
        return {
            "suggestions": SUGGESTED_MAPPINGS,
            "instructions": [
                "Review each suggestion and its confidence level",
                "Use l4yercak3_add_model_mapping to add mappings you want",
                "Customize field mappings as needed for your schema",
            ],
        }

    application_id = {"type": "string", "description": "Application ID"}

    return ToolDomain(
        name="applications",
        description="Connected application registration and management",
        tools=(
            ToolDescriptor(
                name="l4yercak3_register_application",
                description=(
                    "Register the current project as a connected application with L4YERCAK3.\n"
                    "Use this after the user has decided to integrate their project. "
                    "Returns an API key for the application to use."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "description": "Application name"},
                        "description": {"type": "string"},
                        "projectPath": {
                            "type": "string",
                            "description": "Project directory path (for tracking)",
                        },
                        "framework": {"type": "string", "enum": FRAMEWORKS},
                        "frameworkVersion": {"type": "string"},
                        "features": {
                            "type": "array",
                            "items": {"type": "string", "enum": FEATURES},
                        },
                        "hasTypeScript": {"type": "boolean"},
                        "routerType": {"type": "string", "enum": ["app", "pages"]},
                    },
                    "required": ["name", "features"],
                },
                handler=register_application,
                required_permissions=("manage_applications",),
            ),
            ToolDescriptor(
                name="l4yercak3_get_application",
                description="Get details about a registered application.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "applicationId": {
                            "type": "string",
                            "description": "Application ID (optional if projectPath provided)",
                        },
                        "projectPath": {"type": "string", "description": "Project path to look up by"},
                    },
                },
                handler=get_application,
            ),
            ToolDescriptor(
                name="l4yercak3_list_applications",
                description="List all applications registered with the organization.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "status": {"type": "string", "enum": ["active", "inactive", "paused"]},
                        "limit": {"type": "number"},
                    },
                },
                handler=list_applications,
            ),
            ToolDescriptor(
                name="l4yercak3_update_application",
                description="Update an application's configuration.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "applicationId": application_id,
                        "name": {"type": "string"},
                        "description": {"type": "string"},
                        "features": {"type": "array", "items": {"type": "string"}},
                        "modelMappings": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "localModel": {"type": "string"},
                                    "layerCakeType": {"type": "string"},
                                    "syncDirection": {"type": "string", "enum": SYNC_DIRECTIONS},
                                },
                            },
                        },
                    },
                    "required": ["applicationId"],
                },
                handler=update_application,
                required_permissions=("manage_applications",),
            ),
            ToolDescriptor(
                name="l4yercak3_sync_application",
                description=(
                    "Sync application data with L4YERCAK3.\n"
                    "Triggers a sync based on configured model mappings."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "applicationId": application_id,
                        "direction": {"type": "string", "enum": ["push", "pull", "bidirectional"]},
                        "models": {"type": "array", "items": {"type": "string"}},
                        "dryRun": {"type": "boolean"},
                    },
                    "required": ["applicationId"],
                },
                handler=sync_application,
                required_permissions=("manage_applications",),
            ),
            ToolDescriptor(
                name="l4yercak3_add_model_mapping",
                description=(
                    "Add a model mapping to an application.\n"
                    "Model mappings define how local models sync with L4YERCAK3 types."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "applicationId": application_id,
                        "localModel": {
                            "type": "string",
                            "description": 'Local model name (e.g. "User", "Customer")',
                        },
                        "layerCakeType": {"type": "string", "enum": LAYER_CAKE_TYPES},
                        "syncDirection": {"type": "string", "enum": SYNC_DIRECTIONS},
                        "fieldMappings": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "local": {"type": "string"},
                                    "layerCake": {"type": "string"},
                                },
                            },
                        },
                    },
                    "required": ["applicationId", "localModel", "layerCakeType"],
                },
                handler=add_model_mapping,
                required_permissions=("manage_applications",),
            ),
            ToolDescriptor(
                name="l4yercak3_suggest_model_mappings",
                description=(
                    "Suggest model mappings for the project.\n"
                    "Based on common model names (User, Customer, Company)."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "projectPath": {"type": "string"},
                        "schemaPath": {
                            "type": "string",
                            "description": "Path to schema file (e.g. prisma/schema.prisma)",
                        },
                    },
                },
                handler=suggest_model_mappings,
            ),
        ),
    )
