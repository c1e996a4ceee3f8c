"""MCP handler bodies for the Tesla MCP Server.

This module translates MCP resource, tool and prompt requests into vehicle
cache and Fleet API calls. Each tool:
- Validates inputs using Pydantic models
- Resolves the vehicle against the cached vehicle list
- Calls the Fleet API where needed
- Formats the response as text, turning errors into readable messages
"""
import json
import logging

from mcp.types import EmbeddedResource, Resource, TextResourceContents
from mcp.server.fastmcp.exceptions import ToolError
from mcp.server.fastmcp.prompts.base import Message, UserMessage

from .models import (
    ResponseFormat,
    WakeUpInput,
    DebugVehiclesInput,
    Vehicle,
)
from .api_client import TeslaFleetClient, APIError, RegistrationError
from .token_manager import AuthError, ConfigError
from .vehicle_cache import VehicleCache

logger = logging.getLogger(__name__)

URI_SCHEME = "tesla://"
JSON_MIME_TYPE = "application/json"


class NotFoundError(Exception):
    """Raised when a vehicle is not present in the cached vehicle list."""
    pass


# ==============================================================================
# Vehicle Lookup Helpers
# ==============================================================================

def vehicle_uri(vehicle: Vehicle) -> str:
    return f"{URI_SCHEME}{vehicle.id}"


def vehicle_id_from_uri(uri: str) -> str:
    """Extract the vehicle id from a tesla://<id> resource URI."""
    uri = str(uri)
    if not uri.startswith(URI_SCHEME):
        raise NotFoundError(f"Unsupported resource URI: {uri}")
    return uri[len(URI_SCHEME):].strip("/")


def resolve_vehicle(vehicles: list[Vehicle], tag: str) -> Vehicle:
    """Find a vehicle by id, then numeric vehicle_id, then VIN.

    Each identifier kind is checked across all vehicles before moving on to
    the next one.

    Raises:
        NotFoundError: If no vehicle matches
    """
    tag = str(tag).strip()
    for field in ("id", "vehicle_id", "vin"):
        for vehicle in vehicles:
            value = getattr(vehicle, field)
            if value is not None and str(value) == tag:
                return vehicle
    raise NotFoundError(f"Vehicle {tag} not found")


def vehicle_label(vehicle: Vehicle) -> str:
    return vehicle.display_name or f"Tesla ({vehicle.vin})"


def vehicle_json(vehicle: Vehicle) -> str:
    return json.dumps(vehicle.model_dump(mode="json"), indent=2)


# ==============================================================================
# Response Formatting Helpers
# ==============================================================================

def format_debug_markdown(vehicles: list[Vehicle]) -> str:
    """Format the identifying fields of each vehicle as text."""
    if not vehicles:
        return "No vehicles found. Make sure your Tesla account is properly connected."

    blocks = [
        f"Vehicle: {v.display_name or 'Tesla'}\n"
        f"- id: {v.id}\n"
        f"- vehicle_id: {v.vehicle_id}\n"
        f"- vin: {v.vin}\n"
        f"- state: {v.state}"
        for v in vehicles
    ]
    return f"Found {len(vehicles)} vehicles:\n\n" + "\n\n".join(blocks)


def handle_error(e: Exception) -> str:
    """Format an error as a helpful message."""
    if isinstance(e, ConfigError):
        return f"**Configuration Error**: {e}\n\nSet the Tesla credentials in the environment or .env file."
    elif isinstance(e, AuthError):
        return f"**Authentication Error**: {e}\n\nThe refresh token may have expired. Please obtain a new one."
    elif isinstance(e, RegistrationError):
        return f"**Registration Error**: {e}"
    elif isinstance(e, NotFoundError):
        return f"**Not Found**: {e}\n\nUse debug_vehicles to list the known vehicle identifiers."
    elif isinstance(e, APIError):
        if e.status_code is None:
            return f"**API Error**: {e}"
        return f"**API Error** ({e.status_code}): {e}"
    else:
        return f"**Unexpected Error**: {type(e).__name__}: {e}"


# ==============================================================================
# Resources
# ==============================================================================

async def list_vehicle_resources(cache: VehicleCache) -> list[Resource]:
    """Describe each cached vehicle as a tesla://<id> resource."""
    vehicles = await cache.get()
    return [
        Resource(
            uri=vehicle_uri(vehicle),
            mimeType=JSON_MIME_TYPE,
            name=vehicle_label(vehicle),
            description=f"Tesla vehicle: {vehicle.display_name or 'Unknown'} (VIN: {vehicle.vin})",
        )
        for vehicle in vehicles
    ]


async def read_vehicle_resource(uri: str, cache: VehicleCache) -> str:
    """Return the JSON document of the vehicle a resource URI points at.

    Raises:
        NotFoundError: If the vehicle is not in the cached list
    """
    vehicle_id = vehicle_id_from_uri(uri)
    vehicles = await cache.get()
    for vehicle in vehicles:
        if vehicle.id == vehicle_id:
            return vehicle_json(vehicle)
    raise NotFoundError(f"Vehicle {vehicle_id} not found")


# ==============================================================================
# Tool Functions (to be registered with MCP server)
# ==============================================================================

async def wake_up_tool(params: WakeUpInput, cache: VehicleCache, client: TeslaFleetClient) -> str:
    """Wake up a vehicle from sleep mode.

    The vehicle is looked up in the cached list by id, vehicle_id or VIN and
    the wake command is sent for its id. The reported state is whatever the
    API returns right after the command; it is not polled until online.

    Args:
        params: Input parameters including vehicle_id
        cache: The vehicle cache used for lookup
        client: The Fleet API client

    Returns:
        Result message including the post-command state

    Raises:
        ToolError: With a readable message when the wake fails, so the
            client receives an error result
    """
    try:
        vehicles = await cache.get()
        vehicle = resolve_vehicle(vehicles, params.vehicle_id)
        result = await client.wake_up(vehicle.id)
        return f"Successfully woke up {vehicle.display_name or 'your Tesla'} (state: {result.state})"

    except Exception as e:
        logger.error(f"[Tools] wake_up failed for {params.vehicle_id}: {e}")
        raise ToolError(handle_error(e)) from e


async def refresh_vehicles_tool(cache: VehicleCache) -> str:
    """Force a refresh of the vehicle list and report the vehicle count."""
    vehicles = await cache.get(force_refresh=True)
    if cache.last_error is not None:
        return (
            f"Failed to refresh the vehicle list: {handle_error(cache.last_error)}\n\n"
            f"Serving {len(vehicles)} cached vehicles."
        )
    return f"Successfully refreshed the vehicle list. Found {len(vehicles)} vehicles."


async def debug_vehicles_tool(params: DebugVehiclesInput, cache: VehicleCache) -> str:
    """Show id, vehicle_id, VIN and state of the cached vehicles.

    Never refreshes; this shows exactly what the server currently holds.
    """
    vehicles = cache.snapshot()
    if params.response_format == ResponseFormat.JSON:
        return json.dumps(
            [v.model_dump(include={"id", "vehicle_id", "vin", "display_name", "state"}) for v in vehicles],
            indent=2,
        )
    return format_debug_markdown(vehicles)


# ==============================================================================
# Prompts
# ==============================================================================

async def summarize_vehicles_messages(cache: VehicleCache) -> list[Message]:
    """Build the summarize_vehicles prompt with every vehicle embedded as a resource."""
    vehicles = await cache.get()

    if not vehicles:
        return [
            UserMessage(
                "I don't have any Tesla vehicles connected. Please make sure you've set up "
                "your Tesla API credentials correctly in the .env file."
            )
        ]

    messages: list[Message] = [UserMessage("Here is the information about my Tesla vehicles:")]
    for vehicle in vehicles:
        messages.append(
            UserMessage(
                EmbeddedResource(
                    type="resource",
                    resource=TextResourceContents(
                        uri=vehicle_uri(vehicle),
                        mimeType=JSON_MIME_TYPE,
                        text=vehicle_json(vehicle),
                    ),
                )
            )
        )
    messages.append(
        UserMessage(
            "Please provide a summary of all my Tesla vehicles including their names, "
            "battery levels, and current state (online/offline/asleep)."
        )
    )
    return messages
