"""Configuration for the Tesla MCP Server"""
import os
from pathlib import Path

from dotenv import load_dotenv

from .models import Credentials

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Load the first .env found (cwd first, then the project root)
for _env_path in (Path.cwd() / ".env", PROJECT_ROOT / ".env"):
    if _env_path.is_file():
        load_dotenv(_env_path)
        break

# Tesla Fleet API endpoints by region
FLEET_API_BASE_URLS = {
    "NA": "https://fleet-api.prd.na.vn.cloud.tesla.com",  # North America, Asia-Pacific (excluding China)
    "EU": "https://fleet-api.prd.eu.vn.cloud.tesla.com",  # Europe, Middle East, Africa
    "CN": "https://fleet-api.prd.cn.vn.cloud.tesla.cn",   # China
}
DEFAULT_REGION = "NA"
TESLA_REGION = os.getenv("TESLA_REGION", DEFAULT_REGION).upper()

# OAuth token endpoint
TESLA_AUTH_URL = os.getenv("TESLA_AUTH_URL", "https://auth.tesla.com/oauth2/v3/token")
TESLA_SCOPES = "openid offline_access vehicle_device_data vehicle_cmds vehicle_charging_cmds"

# Registration keys (the app is registered once private-key.pem exists here)
TESLA_KEYS_DIR = Path(os.getenv("TESLA_KEYS_DIR", str(PROJECT_ROOT / "keys")))
PRIVATE_KEY_FILENAME = "private-key.pem"

# HTTP timeout for both the auth and the Fleet API calls
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

# Vehicle list freshness window
VEHICLE_CACHE_TTL_SECONDS = 60

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_TOKEN_EVENTS = os.getenv("LOG_TOKEN_EVENTS", "true").lower() == "true"

# Credential environment variables
CREDENTIAL_ENV_VARS = {
    "client_id": "TESLA_CLIENT_ID",
    "client_secret": "TESLA_CLIENT_SECRET",
    "refresh_token": "TESLA_REFRESH_TOKEN",
}


def fleet_api_base_url(region: str = TESLA_REGION) -> str:
    """Get the Fleet API base URL for a region, falling back to North America."""
    return FLEET_API_BASE_URLS.get(region.upper(), FLEET_API_BASE_URLS[DEFAULT_REGION])


def load_credentials() -> Credentials:
    """Read the Tesla credentials from the environment.

    Missing values are left empty; they surface as a ConfigError the first
    time a token is needed.
    """
    return Credentials(**{
        field: os.getenv(env_var) or None
        for field, env_var in CREDENTIAL_ENV_VARS.items()
    })
