"""Tesla MCP Server.

An MCP server that connects to the Tesla Fleet API and lets AI assistants
list, inspect and wake Tesla vehicles.

Architecture:
- TokenManager exchanges the configured refresh token for access tokens
- TeslaFleetClient calls the Fleet API once the app is registered
- VehicleCache keeps the vehicle list for 60s and serves stale data on failure
- MCP resources/tools/prompts are answered from the cache and client
- Served over stdio (default) or streamable HTTP mounted in a FastAPI app

Run with:
    tesla-mcp-server                     # stdio
    tesla-mcp-server --transport http    # http://localhost:8003/mcp/streamable
    tesla-mcp-server --check             # test the API connection and exit
"""
import asyncio
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.routing import Mount

from .config import LOG_LEVEL, TESLA_REGION, FLEET_API_BASE_URLS, CREDENTIAL_ENV_VARS, load_credentials
from .token_manager import TokenManager, AuthError
from .api_client import TeslaFleetClient, APIError, RegistrationError
from .vehicle_cache import VehicleCache
from .server import create_server


# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,  # stdout carries the MCP stdio transport
)
logger = logging.getLogger(__name__)


# ==============================================================================
# Component Wiring
# ==============================================================================

credentials = load_credentials()
logger.info(
    "[Server] Environment check: "
    + ", ".join(
        f"{env_var}={'not set' if field in credentials.missing() else 'set'}"
        for field, env_var in CREDENTIAL_ENV_VARS.items()
    )
)
if TESLA_REGION not in FLEET_API_BASE_URLS:
    logger.warning(f"[Server] Unknown TESLA_REGION {TESLA_REGION!r}, using NA")

token_manager = TokenManager(credentials)
fleet_client = TeslaFleetClient(token_manager)
vehicle_cache = VehicleCache(fleet_client)

if not fleet_client.is_registered():
    logger.warning(
        "[Server] Application does not appear to be registered with the Tesla Fleet API. "
        "Complete the registration process before using the server."
    )

# stateless_http: no MCP protocol-level sessions are needed. Mounted at /mcp,
# the streamable HTTP endpoint is /mcp/streamable
mcp = create_server(
    vehicle_cache,
    fleet_client,
    stateless_http=True,
    streamable_http_path="/streamable",
)


async def warm_cache() -> None:
    """Populate the vehicle cache once at startup.

    A failure is only logged so credentials can be fixed without a restart;
    the next request retries the fetch.
    """
    vehicles = await vehicle_cache.get()
    if vehicle_cache.last_error is not None:
        logger.warning(
            "[Server] Failed to connect to Tesla API on startup. Please check your credentials."
        )
    else:
        logger.info(f"[Server] Connected to Tesla API, {len(vehicles)} vehicle(s) found")


async def close_clients() -> None:
    await fleet_client.close()
    await token_manager.close()


# ==============================================================================
# HTTP Application (REST health + MCP)
# ==============================================================================

@asynccontextmanager
async def app_lifespan(app: FastAPI):
    """Warm the cache and run the MCP session manager for streamable HTTP."""
    logger.info("[Server] Starting Tesla MCP Server (HTTP)")
    await warm_cache()

    async with mcp.session_manager.run():
        yield

    logger.info("[Server] Shutting down...")
    await close_clients()


app = FastAPI(
    title="Tesla MCP Server",
    description="MCP endpoint at `/mcp/streamable` exposing Tesla vehicles to AI assistants.",
    version="0.1.0",
    lifespan=app_lifespan,
)

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "tesla-mcp",
        "registered": fleet_client.is_registered(),
        "cached_vehicles": len(vehicle_cache.snapshot()),
        "cache_age_seconds": vehicle_cache.age_seconds(),
        "last_error": str(vehicle_cache.last_error) if vehicle_cache.last_error else None,
        "token": token_manager.get_token_stats(),
    }


app.routes.append(Mount("/mcp", app=mcp.streamable_http_app()))


# ==============================================================================
# Connection Check
# ==============================================================================

async def check_connection() -> bool:
    """List the vehicles directly through the API client and print them."""
    print("Testing Tesla API connection...")
    print("This will verify your client ID, client secret, and refresh token are working correctly.")

    try:
        print("\nAttempting to fetch vehicles...")
        vehicles = await fleet_client.list_vehicles()
    except (AuthError, RegistrationError, APIError) as e:
        print(f"\nError connecting to Tesla API: {e}", file=sys.stderr)
        print("\nPlease check your credentials in the .env file:", file=sys.stderr)
        print("1. Make sure TESLA_CLIENT_ID and TESLA_CLIENT_SECRET are correct", file=sys.stderr)
        print("2. Make sure you have a valid TESLA_REFRESH_TOKEN", file=sys.stderr)
        print("3. Make sure the application has been registered (keys/private-key.pem)", file=sys.stderr)
        return False
    finally:
        await close_clients()

    print("\nSuccess! Connected to Tesla API.")
    print(f"Found {len(vehicles)} vehicle(s):")
    for index, vehicle in enumerate(vehicles, 1):
        print(f"\nVehicle {index}:")
        print(f"- ID: {vehicle.id}")
        print(f"- VIN: {vehicle.vin}")
        print(f"- Name: {vehicle.display_name}")
        print(f"- State: {vehicle.state}")
    return True


# ==============================================================================
# Entry Point
# ==============================================================================

async def run_stdio() -> None:
    await warm_cache()
    try:
        await mcp.run_stdio_async()
    finally:
        await close_clients()


def main():
    """Run the server over stdio or HTTP, or check the API connection."""
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Tesla MCP Server")
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="MCP transport (default: stdio)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to with --transport http (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8003,
        help="Port to bind to with --transport http (default: 8003)"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Test the Tesla API connection, list vehicles and exit"
    )

    args = parser.parse_args()

    if args.check:
        sys.exit(0 if asyncio.run(check_connection()) else 1)

    if args.transport == "http":
        logger.info(f"[Server] MCP Endpoint: http://{args.host}:{args.port}/mcp/streamable")
        uvicorn.run(app, host=args.host, port=args.port)
    else:
        asyncio.run(run_stdio())


if __name__ == "__main__":
    main()
