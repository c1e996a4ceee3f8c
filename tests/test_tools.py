from __future__ import annotations

import json

import httpx
import pytest
from mcp.server.fastmcp.exceptions import ToolError

from tesla_mcp.api_client import APIError, RegistrationError, TeslaFleetClient
from tesla_mcp.models import DebugVehiclesInput, ResponseFormat, Vehicle, WakeUpInput
from tesla_mcp.token_manager import AuthError, ConfigError, TokenManager
from tesla_mcp.tools import (
    NotFoundError,
    debug_vehicles_tool,
    handle_error,
    list_vehicle_resources,
    read_vehicle_resource,
    refresh_vehicles_tool,
    resolve_vehicle,
    summarize_vehicles_messages,
    vehicle_id_from_uri,
    wake_up_tool,
)
from tesla_mcp.vehicle_cache import VehicleCache


@pytest.fixture
def cache(source, monotonic) -> VehicleCache:
    return VehicleCache(source, clock=monotonic)


# ==============================================================================
# Vehicle resolution
# ==============================================================================

@pytest.mark.parametrize("tag", ["1", "12345", "5YJ3E1EA7KF000001", " 1 "])
def test_resolve_vehicle_by_id_vehicle_id_or_vin(car, tag) -> None:
    other = Vehicle(id="2", vehicle_id=99, vin="OTHER", display_name="Other")

    vehicle = resolve_vehicle([other, Vehicle(**car)], tag)

    assert vehicle.id == "1"


def test_resolve_vehicle_unknown_tag_raises_not_found(car) -> None:
    with pytest.raises(NotFoundError):
        resolve_vehicle([Vehicle(**car)], "not-a-car")


def test_resolve_vehicle_checks_id_before_vin() -> None:
    by_vin = Vehicle(id="10", vehicle_id=1, vin="2")
    by_id = Vehicle(id="2", vehicle_id=3, vin="VIN2")

    assert resolve_vehicle([by_vin, by_id], "2") is by_id


def test_vehicle_id_from_uri() -> None:
    assert vehicle_id_from_uri("tesla://1492931337156") == "1492931337156"
    assert vehicle_id_from_uri("tesla://1/") == "1"
    with pytest.raises(NotFoundError):
        vehicle_id_from_uri("http://1")


# ==============================================================================
# Resources
# ==============================================================================

@pytest.mark.asyncio
async def test_list_resources_with_empty_cache_returns_nothing(source, cache) -> None:
    source.vehicles = []

    assert await list_vehicle_resources(cache) == []


@pytest.mark.asyncio
async def test_list_resources_after_refresh_vehicles(source, cache) -> None:
    source.vehicles = []
    assert await list_vehicle_resources(cache) == []

    source.vehicles = [{"id": "1", "vin": "VIN1", "display_name": "Car", "state": "online"}]
    message = await refresh_vehicles_tool(cache)
    resources = await list_vehicle_resources(cache)

    assert "Found 1 vehicles" in message
    assert len(resources) == 1
    assert "1" in str(resources[0].uri)
    assert resources[0].name == "Car"
    assert resources[0].mimeType == "application/json"
    assert "VIN1" in resources[0].description


@pytest.mark.asyncio
async def test_list_resources_names_unnamed_vehicle_by_vin(source, cache, car) -> None:
    source.vehicles = [{**car, "display_name": None}]

    resources = await list_vehicle_resources(cache)

    assert resources[0].name == "Tesla (5YJ3E1EA7KF000001)"


@pytest.mark.asyncio
async def test_read_resource_returns_vehicle_json(cache) -> None:
    text = await read_vehicle_resource("tesla://1", cache)

    assert json.loads(text)["vin"] == "5YJ3E1EA7KF000001"


@pytest.mark.asyncio
async def test_read_resource_unknown_vehicle_does_not_force_refresh(source, cache) -> None:
    await cache.get()

    with pytest.raises(NotFoundError):
        await read_vehicle_resource("tesla://999", cache)

    assert source.list_calls == 1


# ==============================================================================
# Tools
# ==============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("tag", ["1", "12345", "5YJ3E1EA7KF000001"])
async def test_wake_up_resolves_and_reports_state(source, cache, tag) -> None:
    source.wake_state = "waking"

    message = await wake_up_tool(WakeUpInput(vehicle_id=tag), cache, source)

    assert message == "Successfully woke up Car (state: waking)"
    assert source.wake_calls == ["1"]


@pytest.mark.asyncio
async def test_wake_up_unknown_vehicle_reports_not_found(source, cache) -> None:
    with pytest.raises(ToolError, match=r"^\*\*Not Found\*\*"):
        await wake_up_tool(WakeUpInput(vehicle_id="nope"), cache, source)

    assert source.wake_calls == []


@pytest.mark.asyncio
async def test_wake_up_api_failure_reports_error(source, cache) -> None:
    source.wake_error = APIError("API error 408: vehicle unavailable", status_code=408, body="x")

    with pytest.raises(ToolError, match=r"^\*\*API Error\*\* \(408\)"):
        await wake_up_tool(WakeUpInput(vehicle_id="1"), cache, source)


@pytest.mark.asyncio
async def test_refresh_vehicles_reports_failure(source, cache) -> None:
    await cache.get()
    source.error = AuthError("refresh token revoked")

    message = await refresh_vehicles_tool(cache)

    assert "Failed to refresh" in message
    assert "refresh token revoked" in message
    assert "Serving 1 cached vehicles" in message


@pytest.mark.asyncio
async def test_debug_vehicles_never_refreshes(source, cache) -> None:
    empty = await debug_vehicles_tool(DebugVehiclesInput(), cache)
    assert empty.startswith("No vehicles found")
    assert source.list_calls == 0

    await cache.get()
    text = await debug_vehicles_tool(DebugVehiclesInput(), cache)

    assert source.list_calls == 1
    assert "- id: 1" in text
    assert "- vehicle_id: 12345" in text
    assert "- vin: 5YJ3E1EA7KF000001" in text
    assert "- state: online" in text


@pytest.mark.asyncio
async def test_debug_vehicles_json(cache) -> None:
    await cache.get()

    text = await debug_vehicles_tool(DebugVehiclesInput(response_format=ResponseFormat.JSON), cache)

    assert json.loads(text) == [
        {
            "id": "1",
            "vehicle_id": 12345,
            "vin": "5YJ3E1EA7KF000001",
            "display_name": "Car",
            "state": "online",
        }
    ]


# ==============================================================================
# Prompts and error messages
# ==============================================================================

@pytest.mark.asyncio
async def test_summarize_prompt_without_vehicles(source, cache) -> None:
    source.vehicles = []

    messages = await summarize_vehicles_messages(cache)

    assert len(messages) == 1
    assert "don't have any Tesla vehicles" in messages[0].content.text


@pytest.mark.asyncio
async def test_summarize_prompt_embeds_each_vehicle(source, cache, car) -> None:
    source.vehicles = [car, {**car, "id": "2", "vin": "VIN2"}]

    messages = await summarize_vehicles_messages(cache)

    assert len(messages) == 4
    embedded = [m.content.resource for m in messages[1:3]]
    assert [vehicle_id_from_uri(str(r.uri)) for r in embedded] == ["1", "2"]
    assert json.loads(embedded[1].text)["vin"] == "VIN2"


@pytest.mark.parametrize(
    "error, prefix",
    [
        (ConfigError("TESLA_CLIENT_ID not set"), "**Configuration Error**"),
        (AuthError("bad"), "**Authentication Error**"),
        (RegistrationError("no key"), "**Registration Error**"),
        (NotFoundError("missing"), "**Not Found**"),
        (APIError("down"), "**API Error**"),
        (RuntimeError("oops"), "**Unexpected Error**"),
    ],
)
def test_handle_error_messages(error, prefix) -> None:
    assert handle_error(error).startswith(prefix)


@pytest.mark.asyncio
@pytest.mark.parametrize("expires_in", ["1e20", "NaN"])
async def test_list_resources_survives_malformed_token_response(credentials, clock, monotonic, expires_in) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "auth.example.test":
            return httpx.Response(200, text=f'{{"access_token": "x", "expires_in": {expires_in}}}')
        return httpx.Response(200, json={"response": []})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    token_manager = TokenManager(
        credentials, auth_url="https://auth.example.test/token", clock=clock, http_client=http_client
    )
    client = TeslaFleetClient(
        token_manager,
        base_url="https://fleet-api.example.test",
        registration_check=lambda: True,
        http_client=httpx.AsyncClient(base_url="https://fleet-api.example.test", transport=httpx.MockTransport(handler)),
    )
    cache = VehicleCache(client, clock=monotonic)

    assert await list_vehicle_resources(cache) == []
    assert isinstance(cache.last_error, AuthError)
