"""MCP server definition for the Tesla MCP Server.

Vehicles are exposed as dynamic tesla://<id> resources backed by the
vehicle cache; wake_up, refresh_vehicles and debug_vehicles as tools; and
summarize_vehicles as a prompt.
"""
from typing import Annotated, Iterable
import logging

from pydantic import AnyUrl, Field
from mcp.server.fastmcp import FastMCP
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.types import Resource

from .api_client import TeslaFleetClient
from .models import WakeUpInput, DebugVehiclesInput, ResponseFormat
from .vehicle_cache import VehicleCache
from .tools import (
    JSON_MIME_TYPE,
    list_vehicle_resources,
    read_vehicle_resource,
    wake_up_tool,
    refresh_vehicles_tool,
    debug_vehicles_tool,
    summarize_vehicles_messages,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "tesla-mcp-server"


class TeslaMCP(FastMCP):
    """FastMCP server whose resource list follows the vehicle cache.

    FastMCP only lists statically registered resources, so listing and
    reading are answered from the cache instead.
    """

    def __init__(self, cache: VehicleCache, **settings):
        self.vehicle_cache = cache
        super().__init__(SERVER_NAME, **settings)

    async def list_resources(self) -> list[Resource]:
        return await list_vehicle_resources(self.vehicle_cache)

    async def read_resource(self, uri: AnyUrl | str) -> Iterable[ReadResourceContents]:
        text = await read_vehicle_resource(str(uri), self.vehicle_cache)
        return [ReadResourceContents(content=text, mime_type=JSON_MIME_TYPE)]


def create_server(cache: VehicleCache, client: TeslaFleetClient, **settings) -> TeslaMCP:
    """Create the MCP server with its tools and prompts registered.

    Args:
        cache: Vehicle cache shared by resources, tools and prompts
        client: Fleet API client used for vehicle commands
        **settings: FastMCP settings (e.g. stateless_http, streamable_http_path)
    """
    mcp = TeslaMCP(cache, **settings)

    @mcp.tool(
        name="wake_up",
        annotations={
            "title": "Wake Up Vehicle",
            "readOnlyHint": False,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": True,
        }
    )
    async def wake_up(
        vehicle_id: Annotated[
            str,
            Field(description="Tag of the vehicle to wake up (can be id, vehicle_id, or vin)"),
        ],
    ) -> str:
        """Wake up your Tesla vehicle from sleep mode.

        Sends the wake command and returns the state reported right after it
        (often still "asleep"); the vehicle may need a little longer to come online.
        """
        return await wake_up_tool(WakeUpInput(vehicle_id=vehicle_id), cache, client)

    @mcp.tool(
        name="refresh_vehicles",
        annotations={
            "title": "Refresh Vehicle List",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": True,
        }
    )
    async def refresh_vehicles() -> str:
        """Refresh the list of Tesla vehicles."""
        return await refresh_vehicles_tool(cache)

    @mcp.tool(
        name="debug_vehicles",
        annotations={
            "title": "Debug Vehicles",
            "readOnlyHint": True,
            "destructiveHint": False,
            "idempotentHint": True,
            "openWorldHint": False,
        }
    )
    async def debug_vehicles(
        response_format: Annotated[
            ResponseFormat,
            Field(description="Output format: 'markdown' for human-readable or 'json' for structured data"),
        ] = ResponseFormat.MARKDOWN,
    ) -> str:
        """Show debug information about available vehicles.

        Lists id, vehicle_id, VIN and state of the cached vehicles without
        contacting the Tesla API.
        """
        return await debug_vehicles_tool(DebugVehiclesInput(response_format=response_format), cache)

    @mcp.prompt(
        name="summarize_vehicles",
        description="Get information about your Tesla vehicles",
    )
    async def summarize_vehicles():
        return await summarize_vehicles_messages(cache)

    return mcp
