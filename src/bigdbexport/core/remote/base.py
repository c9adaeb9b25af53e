"""
Remote interface contracts and data structures.

Defines the capabilities the exporter needs from the remote store:

- the developer control plane (login, games, connections, tables)
- the game data plane (authenticate against a connection, load records)

Concrete clients implement these; tests substitute in-memory fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from bigdbexport.core.config.models import AuthenticationMethod


Record = dict[str, Any]


@dataclass(frozen=True)
class TableAccess:
    """Access rights a connection grants on one table."""

    table: str
    can_load_by_keys: bool = True
    can_create: bool = False
    can_load_by_indexes: bool = False
    can_delete: bool = False
    can_overwrite: bool = False
    full_access: bool = False

    @classmethod
    def read_only(cls, table: str) -> "TableAccess":
        return cls(table=table)


@dataclass(frozen=True)
class ConnectionSpec:
    """Everything needed to create a connection on the control plane."""

    name: str
    description: str
    authentication_method: AuthenticationMethod
    access_group: str
    table_access: tuple[TableAccess, ...]
    shared_secret: str = field(repr=False)


@dataclass(frozen=True)
class GameInfo:
    """A game owned by the signed-in developer account."""

    game_id: str
    name: str


class ControlPlane(ABC):
    """Developer-side management of a single game."""

    @property
    @abstractmethod
    def game(self) -> GameInfo:
        """The selected game."""

    @abstractmethod
    async def list_connections(self) -> set[str]:
        """Names of the connections currently visible for the game."""

    @abstractmethod
    async def create_connection(self, spec: ConnectionSpec) -> None:
        """Request creation of a connection. May not be visible immediately."""

    @abstractmethod
    async def delete_connection(self, name: str) -> None:
        """Request deletion of a connection. May remain visible for a while."""

    @abstractmethod
    async def list_tables(self) -> set[str]:
        """Names of the BigDB tables of the game."""


class BigDBSession(ABC):
    """An authenticated data-plane connection.

    Shared read-only by every archive worker once provisioning is done;
    implementations must tolerate concurrent calls.
    """

    @abstractmethod
    async def load(self, table: str, key: str) -> Record | None:
        """Load a record by key.

        Returns:
            The record, or None if no record with that key exists

        Raises:
            RecordNotFound: The store reported the key as absent
            TransientFetchError: Network or remote failure for this key
            AuthError: The connection rejected the request
        """

    async def close(self) -> None:
        """Release resources held by the session."""


class DataPlane(ABC):
    """Entry point to the game data plane."""

    @abstractmethod
    async def authenticate(
        self,
        game_id: str,
        connection_name: str,
        user_id: str,
        auth: str,
    ) -> BigDBSession:
        """Authenticate against a connection.

        Raises:
            AuthError: If the connection rejects the credential
        """


# =============================================================================
# Errors
# =============================================================================


class RemoteError(Exception):
    """Base exception for remote API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.cause = cause


class AuthError(RemoteError):
    """Credentials rejected by the control plane or a connection."""
    pass


class NotFoundError(RemoteError):
    """A control-plane object (game, connection) was not found."""
    pass


class RecordNotFound(RemoteError):
    """The requested record does not exist in the table."""

    def __init__(self, table: str, key: str):
        super().__init__(f"No record '{key}' in table '{table}'", status_code=404)
        self.table = table
        self.key = key


class TransientFetchError(RemoteError):
    """Network or server failure while loading a record."""
    pass


class RateLimitError(TransientFetchError):
    """Rate limit hit (429 or similar)."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after
