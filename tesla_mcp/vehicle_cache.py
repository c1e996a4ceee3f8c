"""Time-based cache of the account's vehicle list.

Reads are served from the last successful fetch until it is older than the
freshness window. When a refresh fails the last known vehicles keep being
served; the error is logged and kept on ``last_error`` instead of raised.
"""
import asyncio
import time
from typing import Callable, Optional, Protocol
import logging

from .api_client import APIError, RegistrationError
from .config import VEHICLE_CACHE_TTL_SECONDS
from .models import CacheEntry, Vehicle
from .token_manager import AuthError

logger = logging.getLogger(__name__)

FETCH_ERRORS = (AuthError, RegistrationError, APIError)


class VehicleSource(Protocol):
    async def list_vehicles(self) -> list[Vehicle]: ...


class VehicleCache:
    """Holds the most recently fetched vehicle list and its fetch instant.

    The entry is only ever replaced as a whole, and only by one writer at a
    time, so a reader sees either the previous or the new list.
    """

    def __init__(
        self,
        source: VehicleSource,
        ttl_seconds: float = VEHICLE_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: Optional[CacheEntry] = None
        self._refresh_lock = asyncio.Lock()
        self.last_error: Optional[Exception] = None

    def snapshot(self) -> list[Vehicle]:
        """Current cached vehicles, without any network activity."""
        return list(self._entry.vehicles) if self._entry else []

    def age_seconds(self) -> Optional[float]:
        """Seconds since the last successful fetch, None if never fetched."""
        if self._entry is None:
            return None
        return self._clock() - self._entry.fetched_at

    def _needs_refresh(self) -> bool:
        if self._entry is None or not self._entry.vehicles:
            return True
        return self.age_seconds() > self._ttl_seconds

    async def get(self, force_refresh: bool = False) -> list[Vehicle]:
        """Get the vehicle list, refreshing it when forced, empty, or stale.

        Args:
            force_refresh: Fetch from the API regardless of cache age

        Returns:
            The cached vehicles; an empty list if nothing could be fetched yet
        """
        if not force_refresh and not self._needs_refresh():
            return self.snapshot()

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited on the lock
            if force_refresh or self._needs_refresh():
                await self._refresh()

        return self.snapshot()

    async def _refresh(self) -> None:
        """Fetch the vehicle list and replace the entry on success."""
        try:
            vehicles = await self._source.list_vehicles()
        except FETCH_ERRORS as e:
            self.last_error = e
            if self._entry and self._entry.vehicles:
                logger.warning(
                    f"[VehicleCache] Refresh failed, serving {len(self._entry.vehicles)} "
                    f"cached vehicle(s) from {self.age_seconds():.0f}s ago: {e}"
                )
            else:
                logger.warning(f"[VehicleCache] Refresh failed with an empty cache: {e}")
            return

        self._entry = CacheEntry(vehicles=tuple(vehicles), fetched_at=self._clock())
        self.last_error = None
        logger.info(f"[VehicleCache] Cached {len(vehicles)} vehicle(s)")
