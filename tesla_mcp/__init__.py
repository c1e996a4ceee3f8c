"""Tesla MCP Server.

An MCP server that exposes the vehicles of a Tesla Fleet API account to
AI assistants: vehicles as resources, wake_up / refresh_vehicles /
debug_vehicles as tools, and a summarize_vehicles prompt.

Architecture:
- TokenManager handles the OAuth access token lifecycle (refresh on demand)
- TeslaFleetClient calls the Fleet API with a valid bearer token
- VehicleCache keeps the vehicle list fresh for 60 seconds
- server/tools translate MCP requests into cache and client calls

Run with:
    tesla-mcp-server
"""
from .token_manager import TokenManager, AuthError, ConfigError
from .api_client import TeslaFleetClient, APIError, RegistrationError, is_app_registered
from .vehicle_cache import VehicleCache
from .tools import NotFoundError, resolve_vehicle
from .server import TeslaMCP, create_server
from .models import (
    Credentials,
    AccessToken,
    Vehicle,
    CacheEntry,
    ResponseFormat,
    WakeUpInput,
    DebugVehiclesInput,
)

__all__ = [
    # Token management
    "TokenManager",
    "AuthError",
    "ConfigError",
    # API client
    "TeslaFleetClient",
    "APIError",
    "RegistrationError",
    "is_app_registered",
    # Cache
    "VehicleCache",
    # MCP adapter
    "NotFoundError",
    "resolve_vehicle",
    "TeslaMCP",
    "create_server",
    # Models
    "Credentials",
    "AccessToken",
    "Vehicle",
    "CacheEntry",
    "ResponseFormat",
    "WakeUpInput",
    "DebugVehiclesInput",
]
