"""Remote store access - control plane, data plane, credentials and retries."""

from .auth import calc_auth256, create_shared_secret
from .base import (
    AuthError,
    BigDBSession,
    ConnectionSpec,
    ControlPlane,
    DataPlane,
    GameInfo,
    NotFoundError,
    RateLimitError,
    Record,
    RecordNotFound,
    RemoteError,
    TableAccess,
    TransientFetchError,
)
from .http_client import BigDBApiClient, DeveloperAccount, HttpBigDBSession, HttpControlPlane
from .retries import PollTimeout, RetryConfig, poll_until, retry_async

__all__ = [
    # Interfaces and data
    "BigDBSession",
    "ConnectionSpec",
    "ControlPlane",
    "DataPlane",
    "GameInfo",
    "Record",
    "TableAccess",
    # Errors
    "RemoteError",
    "AuthError",
    "NotFoundError",
    "RecordNotFound",
    "TransientFetchError",
    "RateLimitError",
    # HTTP client
    "BigDBApiClient",
    "DeveloperAccount",
    "HttpBigDBSession",
    "HttpControlPlane",
    # Credentials
    "calc_auth256",
    "create_shared_secret",
    # Retries
    "PollTimeout",
    "RetryConfig",
    "poll_until",
    "retry_async",
]
