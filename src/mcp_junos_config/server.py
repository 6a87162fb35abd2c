"""MCP Server for Junos configuration transactions.

Every change runs through one transaction: lock the candidate, stage the
statements, commit, verify, then clear and unlock. Reads open a short
session under the process-wide read gate.

Tools exposed:
- list_devices: List all configured Junos devices
- device_facts: Model, version, serial and cluster state of a device
- show_config: Display a configuration path as set statements
- object_exists: Check whether a configuration path is present
- create_object: Create a configuration object (fails if it exists)
- update_object: Replace the configuration under a path
- delete_object: Remove a configuration path
- get_audit_log: Recent configuration changes
"""
import asyncio
import json
import logging
import os
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    TextContent,
    Tool,
    Resource,
)
from pydantic import AnyUrl

from .config.inventory import DeviceInventory
from .errors import JunosConfigError
from .transaction.operations import (
    RawConfigObject,
    create_resource,
    delete_resource,
    update_resource,
)
from .utils.logging_config import setup_logging, timed_section
from .utils.audit_log import ChangeTracker, setup_audit_logging, get_recent_changes

logger = logging.getLogger(__name__)

# Global inventory (initialized on first use)
inventory: Optional[DeviceInventory] = None


def get_inventory() -> DeviceInventory:
    """Get or create the device inventory."""
    global inventory
    if inventory is None:
        config_path = os.environ.get("MCP_JUNOS_CONFIG")
        inventory = DeviceInventory(config_path)
    return inventory


def _json_reply(data: dict) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(data, indent=2))]


def format_error(e: Exception) -> str:
    """Error text for a tool reply, including device warnings."""
    data = {"error": str(e), "error_type": type(e).__name__}
    if isinstance(e, JunosConfigError) and e.warnings:
        data["warnings"] = e.warnings
    return json.dumps(data, indent=2)


# Create MCP server
server = Server("mcp-junos-config")

DEVICE_ID_PROPERTY = {
    "type": "string",
    "description": "Device ID from the inventory (e.g., 'srx-edge')"
}
PATH_PROPERTY = {
    "type": "string",
    "description": "Configuration path (e.g., 'vlans v10' or 'interfaces ge-0/0/1 unit 0')"
}
STATEMENTS_PROPERTY = {
    "type": "array",
    "items": {"type": "string"},
    "description": "Statements relative to the path (e.g., ['vlan-id 10', 'description users'])"
}


# === TOOLS ===

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="list_devices",
            description="List all configured Junos devices with their connection info",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
        Tool(
            name="device_facts",
            description="Get hardware model, Junos version, serial number and cluster state of a device",
            inputSchema={
                "type": "object",
                "properties": {"device_id": DEVICE_ID_PROPERTY},
                "required": ["device_id"]
            }
        ),
        Tool(
            name="show_config",
            description="Show the active configuration under a path as set statements",
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": DEVICE_ID_PROPERTY,
                    "path": PATH_PROPERTY,
                    "relative": {
                        "type": "boolean",
                        "description": "Print statements relative to the path",
                        "default": False
                    }
                },
                "required": ["device_id", "path"]
            }
        ),
        Tool(
            name="object_exists",
            description="Check whether anything is configured under a path",
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": DEVICE_ID_PROPERTY,
                    "path": PATH_PROPERTY,
                },
                "required": ["device_id", "path"]
            }
        ),
        Tool(
            name="create_object",
            description=(
                "Create a configuration object in one locked commit. "
                "Fails if the path is already configured; verified after commit"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": DEVICE_ID_PROPERTY,
                    "path": PATH_PROPERTY,
                    "statements": STATEMENTS_PROPERTY,
                },
                "required": ["device_id", "path"]
            }
        ),
        Tool(
            name="update_object",
            description="Replace the configuration under a path (delete then set, one commit)",
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": DEVICE_ID_PROPERTY,
                    "path": PATH_PROPERTY,
                    "statements": STATEMENTS_PROPERTY,
                },
                "required": ["device_id", "path"]
            }
        ),
        Tool(
            name="delete_object",
            description="Delete the configuration under a path in one locked commit",
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": DEVICE_ID_PROPERTY,
                    "path": PATH_PROPERTY,
                },
                "required": ["device_id", "path"]
            }
        ),
        Tool(
            name="get_audit_log",
            description="Get recent configuration changes from the audit log",
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": {
                        "type": "string",
                        "description": "Filter by device ID"
                    },
                    "operation": {
                        "type": "string",
                        "description": "Filter by operation (e.g., 'create_raw_config')"
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of records",
                        "default": 20
                    }
                },
                "required": []
            }
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    device_id = arguments.get("device_id", "N/A")

    async with timed_section(f"tool:{name}", device_id=device_id):
        try:
            inv = get_inventory()

            if name == "list_devices":
                return await handle_list_devices(inv)

            elif name == "device_facts":
                return await handle_device_facts(inv, arguments["device_id"])

            elif name == "show_config":
                return await handle_show_config(
                    inv,
                    arguments["device_id"],
                    arguments["path"],
                    arguments.get("relative", False)
                )

            elif name == "object_exists":
                return await handle_object_exists(inv, arguments["device_id"], arguments["path"])

            elif name == "create_object":
                return await handle_create_object(
                    inv,
                    arguments["device_id"],
                    arguments["path"],
                    arguments.get("statements", [])
                )

            elif name == "update_object":
                return await handle_update_object(
                    inv,
                    arguments["device_id"],
                    arguments["path"],
                    arguments.get("statements", [])
                )

            elif name == "delete_object":
                return await handle_delete_object(inv, arguments["device_id"], arguments["path"])

            elif name == "get_audit_log":
                return await handle_get_audit_log(
                    device_id=arguments.get("device_id"),
                    operation=arguments.get("operation"),
                    limit=arguments.get("limit", 20)
                )

            else:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

        except Exception as e:
            logger.exception(f"Tool {name} failed")
            return [TextContent(type="text", text=format_error(e))]


# === TOOL HANDLERS ===

async def handle_list_devices(inv: DeviceInventory) -> list[TextContent]:
    """List all configured devices."""
    devices = [inv.describe(device_id) for device_id in inv.get_device_ids()]
    return _json_reply({"devices": devices})


async def handle_device_facts(inv: DeviceInventory, device_id: str) -> list[TextContent]:
    client = inv.get_client(device_id)
    facts = await client.facts()
    data = {"device_id": device_id, **facts.to_dict()}
    data["supports_security"] = facts.supports_security()
    return _json_reply(data)


async def handle_show_config(
    inv: DeviceInventory,
    device_id: str,
    path: str,
    relative: bool
) -> list[TextContent]:
    """Display configuration under a path."""
    client = inv.get_client(device_id)
    output = await client.show_config(path, relative=relative)
    return [TextContent(type="text", text=output)]


async def handle_object_exists(inv: DeviceInventory, device_id: str, path: str) -> list[TextContent]:
    client = inv.get_client(device_id)
    return _json_reply({"device_id": device_id, "path": path, "exists": await client.exists(path)})


async def handle_create_object(
    inv: DeviceInventory,
    device_id: str,
    path: str,
    statements: list[str]
) -> list[TextContent]:
    """Create a configuration object in one transaction."""
    client = inv.get_client(device_id)
    result = await create_resource(
        client, RawConfigObject(path, statements), tracker=ChangeTracker(device_id)
    )
    return _json_reply({"action": "create_object", "device_id": device_id, "path": path, **result.to_dict()})


async def handle_update_object(
    inv: DeviceInventory,
    device_id: str,
    path: str,
    statements: list[str]
) -> list[TextContent]:
    """Replace the configuration under a path in one transaction."""
    client = inv.get_client(device_id)
    result = await update_resource(
        client, RawConfigObject(path, statements), tracker=ChangeTracker(device_id)
    )
    return _json_reply({"action": "update_object", "device_id": device_id, "path": path, **result.to_dict()})


async def handle_delete_object(inv: DeviceInventory, device_id: str, path: str) -> list[TextContent]:
    client = inv.get_client(device_id)
    result = await delete_resource(client, RawConfigObject(path), tracker=ChangeTracker(device_id))
    return _json_reply({"action": "delete_object", "device_id": device_id, "path": path, **result.to_dict()})


async def handle_get_audit_log(
    device_id: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 20
) -> list[TextContent]:
    """Get recent configuration changes from the audit log."""
    records = get_recent_changes(
        device_id=device_id,
        operation=operation,
        limit=limit
    )

    formatted_records = []
    for r in records:
        formatted_records.append({
            "timestamp": r.timestamp,
            "device_id": r.device_id,
            "operation": r.operation,
            "resource": r.resource,
            "set_file": r.set_file,
            "success": r.success,
            "warnings": r.warnings,
            "error": r.error,
        })

    return _json_reply({
        "total_records": len(formatted_records),
        "filters": {
            "device_id": device_id,
            "operation": operation,
            "limit": limit,
        },
        "records": formatted_records,
    })


# === RESOURCES ===

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    inv = get_inventory()
    resources = []

    for device_id in inv.get_device_ids():
        resources.append(Resource(
            uri=AnyUrl(f"junos://{device_id}/facts"),
            name=f"{device_id} facts",
            description=f"System information of {device_id}",
            mimeType="application/json",
        ))

    return resources


@server.read_resource()
async def read_mcp_resource(uri: AnyUrl) -> str:
    """Read a resource."""
    # Parse URI: junos://device_id/facts
    uri_str = str(uri)
    if uri_str.startswith("junos://"):
        parts = uri_str[len("junos://"):].split("/")
        if len(parts) >= 2 and parts[1] == "facts":
            result = await handle_device_facts(get_inventory(), parts[0])
            return result[0].text

    return json.dumps({"error": f"Unknown resource: {uri}"})


def main():
    """Run the MCP server."""
    setup_logging()
    setup_audit_logging()

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
