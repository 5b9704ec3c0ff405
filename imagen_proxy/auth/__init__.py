from .credentials import (
    ServiceAccountCredential,
    parse_google_credentials,
    load_credentials_from_env,
)
from .token_provider import (
    CLOUD_PLATFORM_SCOPE,
    AccessToken,
    TokenCache,
    normalize_access_token,
    fetch_google_access_token,
)
from .session import require_session

__all__ = [
    "ServiceAccountCredential",
    "parse_google_credentials",
    "load_credentials_from_env",
    "CLOUD_PLATFORM_SCOPE",
    "AccessToken",
    "TokenCache",
    "normalize_access_token",
    "fetch_google_access_token",
    "require_session",
]
