from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from tesla_mcp.models import Credentials, Vehicle


class FakeClock:
    """Synthetic UTC clock for the token manager."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    """Synthetic monotonic clock (seconds) for the vehicle cache."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeVehicleSource:
    """Stands in for TeslaFleetClient.list_vehicles / wake_up."""

    def __init__(self, vehicles: list[dict[str, Any]] | None = None) -> None:
        self.vehicles = vehicles or []
        self.error: Exception | None = None
        self.list_calls = 0
        self.wake_calls: list[str] = []
        self.wake_state = "asleep"
        self.wake_error: Exception | None = None

    async def list_vehicles(self) -> list[Vehicle]:
        self.list_calls += 1
        if self.error is not None:
            raise self.error
        return [Vehicle(**v) for v in self.vehicles]

    async def wake_up(self, vehicle_tag: str) -> Vehicle:
        self.wake_calls.append(vehicle_tag)
        if self.wake_error is not None:
            raise self.wake_error
        vehicle = next(v for v in self.vehicles if str(v["id"]) == vehicle_tag)
        return Vehicle(**{**vehicle, "state": self.wake_state})


CAR = {
    "id": "1",
    "vehicle_id": 12345,
    "vin": "5YJ3E1EA7KF000001",
    "display_name": "Car",
    "state": "online",
}


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(client_id="client-id", client_secret="client-secret", refresh_token="refresh-1")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def source() -> FakeVehicleSource:
    return FakeVehicleSource([dict(CAR)])


@pytest.fixture
def car() -> dict[str, Any]:
    return dict(CAR)
