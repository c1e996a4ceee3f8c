"""API Client for the Tesla Fleet API.

Before each request the client checks that the application has been
registered with Tesla, then asks the token manager for a valid access token
(refreshing if needed) and sends it in the Authorization header.
"""
import httpx
from pydantic import ValidationError
from pathlib import Path
from typing import Any, Callable, Optional
import logging

from .config import (
    TESLA_KEYS_DIR,
    PRIVATE_KEY_FILENAME,
    HTTP_TIMEOUT_SECONDS,
    fleet_api_base_url,
)
from .token_manager import TokenManager
from .models import Vehicle

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Raised when a Fleet API request fails."""
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RegistrationError(Exception):
    """Raised when the application has not been registered with the Fleet API."""
    pass


def is_app_registered(keys_dir: Path = TESLA_KEYS_DIR) -> bool:
    """The registration flow leaves the application's private key behind."""
    return (keys_dir / PRIVATE_KEY_FILENAME).is_file()


class TeslaFleetClient:
    """Client for the Tesla Fleet API vehicle endpoints.

    This client:
    - Fails fast with RegistrationError before touching the network when
      the application is not registered
    - Obtains tokens through the TokenManager
    - Provides typed methods for the endpoints the server uses
    """

    def __init__(
        self,
        token_manager: TokenManager,
        base_url: Optional[str] = None,
        registration_check: Callable[[], bool] = is_app_registered,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._token_manager = token_manager
        self._base_url = base_url or fleet_api_base_url()
        self._registration_check = registration_check
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=HTTP_TIMEOUT_SECONDS,
            )
        return self._http_client

    async def close(self):
        """Close the HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def is_registered(self) -> bool:
        """Check the registration state (re-evaluated on every call)."""
        return self._registration_check()

    async def _make_request(self, method: str, endpoint: str) -> Any:
        """Make an authenticated request to the Fleet API.

        Args:
            method: HTTP method (GET, POST)
            endpoint: API endpoint path

        Returns:
            Parsed JSON response

        Raises:
            RegistrationError: If the application is not registered
            AuthError: If no valid access token can be obtained
            APIError: If the API request fails
        """
        # Check registration BEFORE obtaining a token or making the request
        if not self.is_registered():
            raise RegistrationError(
                "Application is not registered with the Tesla Fleet API. "
                "Complete the registration process to create the application key pair."
            )

        access_token = await self._token_manager.get_valid_token()

        client = await self._get_http_client()
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

        logger.debug(f"[APIClient] {method} {endpoint}")

        try:
            if method.upper() == "GET":
                response = await client.get(endpoint, headers=headers)
            elif method.upper() == "POST":
                response = await client.post(endpoint, headers=headers)
            else:
                raise ValueError(f"Unsupported HTTP method: {method}")
        except httpx.HTTPError as e:
            logger.error(f"[APIClient] Network error: {e}")
            raise APIError(f"Network error: {e}") from e

        if not response.is_success:
            logger.error(f"[APIClient] {method} {endpoint} returned {response.status_code}")
            raise APIError(
                f"API error {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise APIError(
                f"Malformed JSON in response to {method} {endpoint}",
                status_code=response.status_code,
                body=response.text,
            ) from e

    # ==========================================================================
    # Vehicle Endpoints
    # ==========================================================================

    async def list_vehicles(self) -> list[Vehicle]:
        """List the vehicles on the account.

        Returns:
            List of Vehicle objects (empty when the API reports none)
        """
        data = await self._make_request(method="GET", endpoint="/api/1/vehicles")
        vehicles = data.get("response") if isinstance(data, dict) else None
        try:
            return [Vehicle(**vehicle) for vehicle in vehicles or []]
        except (TypeError, ValidationError) as e:
            raise APIError(f"Unexpected vehicle list format: {e}") from e

    async def wake_up(self, vehicle_tag: str) -> Vehicle:
        """Send a wake-up command to a vehicle.

        Returns immediately with the state the API reports after the command,
        usually still "asleep" or "waking"; it does not wait for "online".

        Args:
            vehicle_tag: The id or VIN the API accepts as path parameter

        Returns:
            Vehicle as reported by the API
        """
        data = await self._make_request(
            method="POST",
            endpoint=f"/api/1/vehicles/{vehicle_tag}/wake_up",
        )
        vehicle = data.get("response") if isinstance(data, dict) else None
        if not isinstance(vehicle, dict):
            raise APIError(f"Unexpected wake_up response format: {data!r}")

        logger.info(f"[APIClient] Vehicle {vehicle_tag} state after wake_up: {vehicle.get('state')}")
        try:
            return Vehicle(**vehicle)
        except ValidationError as e:
            raise APIError(f"Unexpected wake_up response format: {e}") from e
