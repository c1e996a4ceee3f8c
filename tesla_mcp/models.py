"""Pydantic models for the Tesla MCP Server"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime, timezone
from enum import Enum


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


# ==============================================================================
# Credential / Token Models
# ==============================================================================

class Credentials(BaseModel):
    """Tesla application credentials sourced from process configuration.

    Any field may be missing at startup; the token manager reports the
    absence on first use instead of failing the process.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    client_id: Optional[str] = Field(default=None, description="OAuth client identifier")
    client_secret: Optional[str] = Field(default=None, description="OAuth client secret")
    refresh_token: Optional[str] = Field(default=None, description="Long-lived refresh token")

    def missing(self) -> list[str]:
        """Names of the credentials that are absent or empty."""
        return [
            name
            for name in ("client_id", "client_secret", "refresh_token")
            if not getattr(self, name)
        ]


class AccessToken(BaseModel):
    """A short-lived bearer token with its absolute expiry instant."""
    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., description="Bearer token for the Fleet API")
    expires_at: datetime = Field(..., description="Absolute expiry instant")
    obtained_at: datetime = Field(default_factory=utc_now, description="When the token was issued to us")

    def is_expired(self, now: datetime) -> bool:
        """A token expiring exactly now is already expired."""
        return self.expires_at <= now


# ==============================================================================
# Fleet API Models
# ==============================================================================

class Vehicle(BaseModel):
    """Vehicle summary returned by the Fleet API.

    Only the identifying fields are interpreted; everything else the API
    sends is kept as-is in the model's extra fields.
    """
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str
    vehicle_id: Optional[int] = None
    vin: Optional[str] = None
    display_name: Optional[str] = None
    state: Optional[str] = None


class CacheEntry(BaseModel):
    """Snapshot of the most recent successful vehicle list fetch."""
    model_config = ConfigDict(frozen=True)

    vehicles: tuple[Vehicle, ...] = ()
    fetched_at: float = Field(..., description="Clock reading at fetch time (seconds)")


# ==============================================================================
# Tool Input Models
# ==============================================================================

class ResponseFormat(str, Enum):
    """Output format for tool responses."""
    JSON = "json"
    MARKDOWN = "markdown"


class WakeUpInput(BaseModel):
    """Input parameters for the wake_up tool."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    vehicle_id: str = Field(
        ...,
        description="Tag of the vehicle to wake up (can be id, vehicle_id, or vin)",
        min_length=1,
        max_length=100
    )


class DebugVehiclesInput(BaseModel):
    """Input parameters for the debug_vehicles tool."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    response_format: ResponseFormat = Field(
        default=ResponseFormat.MARKDOWN,
        description="Output format: 'markdown' for human-readable or 'json' for structured data"
    )
