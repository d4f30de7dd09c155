"""Python client for the auth API: token storage, single-flight refresh and retry-once."""
from client.coordinator import (
    AuthenticationError,
    ReauthenticationRequired,
    RefreshCoordinator,
    TokenStorage,
    token_expires_at,
)
from client.single_flight import SingleFlight

__all__ = [
    "AuthenticationError",
    "ReauthenticationRequired",
    "RefreshCoordinator",
    "SingleFlight",
    "TokenStorage",
    "token_expires_at",
]
