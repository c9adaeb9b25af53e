"""
HTTP client for the BigDB API gateway using httpx.

Provides async access to:
- developer login and game selection
- connection and table management for a game (control plane)
- connection authentication and record loads (data plane)

Record loads retry transport errors, 429 and 5xx responses with
exponential backoff; every other failure is raised to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from bigdbexport.core.config.models import RemoteConfig

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
    TransientFetchError,
)
from .retries import RetryConfig, retry_async


logger = logging.getLogger(__name__)


AUTH_STATUS_CODES = {401, 403}


def _segment(value: str) -> str:
    return quote(value, safe="")


def _raise_for_status(response: httpx.Response, not_found: Exception | None = None) -> None:
    """Map an error response to the remote error taxonomy."""
    status = response.status_code
    if status < 400:
        return

    try:
        message = response.json().get("message") or response.reason_phrase
    except (ValueError, AttributeError):
        message = response.reason_phrase

    url = str(response.request.url)

    if status in AUTH_STATUS_CODES:
        raise AuthError(f"{message} ({url})", status_code=status)
    if status == 404:
        if not_found is not None:
            raise not_found
        raise NotFoundError(f"{message} ({url})", status_code=status)
    if status == 429:
        retry_after = response.headers.get("Retry-After")
        retry_seconds = None
        if retry_after:
            try:
                retry_seconds = float(retry_after)
            except ValueError:
                pass
        raise RateLimitError(f"Rate limit exceeded ({url})", retry_after=retry_seconds)
    if status >= 500:
        raise TransientFetchError(f"Server error {status}: {message} ({url})", status_code=status)
    raise RemoteError(f"Request failed with status {status}: {message} ({url})", status_code=status)


@dataclass
class DeveloperAccount:
    """A signed-in developer account."""

    username: str
    email: str
    token: str = field(repr=False)
    games: list[GameInfo] = field(default_factory=list)

    def find_game(self, game_id: str) -> GameInfo | None:
        return next((g for g in self.games if g.game_id == game_id), None)


class BigDBApiClient(DataPlane):
    """httpx-backed client for the BigDB API gateway.

    One client is shared by the control plane and every data-plane
    session it creates; httpx connection pooling makes it safe for
    concurrent use from many archive workers.
    """

    def __init__(
        self,
        config: RemoteConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_config: RetryConfig | None = None,
    ):
        self.config = config or RemoteConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.retry_config = retry_config or RetryConfig(
            max_attempts=self.config.max_retries,
            multiplier=self.config.retry_backoff_factor,
            retry_exceptions=(TransientFetchError,),
        )

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                headers={"Accept": "application/json"},
                limits=httpx.Limits(
                    max_connections=20,
                    max_keepalive_connections=10,
                ),
                transport=self._transport,
            )
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
        not_found: Exception | None = None,
    ) -> httpx.Response:
        """Send a request and raise mapped errors for error responses."""
        client = await self._ensure_client()
        try:
            response = await client.request(method, path, headers=headers, json=json)
        except httpx.TransportError as e:
            raise TransientFetchError(f"Transport error: {e}", cause=e) from e
        _raise_for_status(response, not_found=not_found)
        return response

    # -------------------------------------------------------------------------
    # Developer account
    # -------------------------------------------------------------------------

    async def login(self, username: str, password: str) -> DeveloperAccount:
        """Sign in to a developer account.

        Raises:
            AuthError: If the credentials are rejected
        """
        response = await self.request(
            "POST",
            "/developer/login",
            json={"username": username, "password": password},
        )
        data = response.json()
        return DeveloperAccount(
            username=data.get("username", username),
            email=data.get("email", ""),
            token=data["token"],
            games=[
                GameInfo(game_id=g["gameId"], name=g.get("name", g["gameId"]))
                for g in data.get("games", [])
            ],
        )

    def control_plane(self, account: DeveloperAccount, game_id: str) -> "HttpControlPlane":
        """Select one of the account's games for management.

        Raises:
            NotFoundError: If the account has no game with that id
        """
        game = account.find_game(game_id)
        if game is None:
            raise NotFoundError(f"No game was found matching the specified gameId: {game_id}")
        return HttpControlPlane(self, account.token, game)

    # -------------------------------------------------------------------------
    # Data plane
    # -------------------------------------------------------------------------

    async def authenticate(
        self,
        game_id: str,
        connection_name: str,
        user_id: str,
        auth: str,
    ) -> "HttpBigDBSession":
        response = await self.request(
            "POST",
            "/api/connect",
            json={
                "gameId": game_id,
                "connectionId": connection_name,
                "userId": user_id,
                "auth": auth,
            },
        )
        token = response.json().get("token")
        if not token:
            raise AuthError(f"Connection '{connection_name}' returned no player token")
        return HttpBigDBSession(self, token, retry_config=self.retry_config)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class HttpControlPlane(ControlPlane):
    """Connection and table management for one game."""

    def __init__(self, client: BigDBApiClient, token: str, game: GameInfo):
        self._client = client
        self._headers = {"Authorization": f"Bearer {token}"}
        self._game = game

    @property
    def game(self) -> GameInfo:
        return self._game

    @property
    def _base(self) -> str:
        return f"/developer/games/{_segment(self._game.game_id)}"

    async def list_connections(self) -> set[str]:
        response = await self._client.request(
            "GET", f"{self._base}/connections", headers=self._headers
        )
        return {c["name"] for c in response.json().get("connections", [])}

    async def create_connection(self, spec: ConnectionSpec) -> None:
        await self._client.request(
            "POST",
            f"{self._base}/connections",
            headers=self._headers,
            json={
                "name": spec.name,
                "description": spec.description,
                "authenticationMethod": spec.authentication_method.value,
                "accessGroup": spec.access_group,
                "sharedSecret": spec.shared_secret,
                "tableAccess": [
                    {
                        "table": access.table,
                        "canLoadByKeys": access.can_load_by_keys,
                        "canCreate": access.can_create,
                        "canLoadByIndexes": access.can_load_by_indexes,
                        "canDelete": access.can_delete,
                        "canOverwrite": access.can_overwrite,
                        "fullAccess": access.full_access,
                    }
                    for access in spec.table_access
                ],
            },
        )

    async def delete_connection(self, name: str) -> None:
        await self._client.request(
            "DELETE",
            f"{self._base}/connections/{_segment(name)}",
            headers=self._headers,
        )

    async def list_tables(self) -> set[str]:
        response = await self._client.request(
            "GET", f"{self._base}/bigdb/tables", headers=self._headers
        )
        return {t["name"] for t in response.json().get("tables", [])}


class HttpBigDBSession(BigDBSession):
    """Record loads through an authenticated connection."""

    def __init__(
        self,
        client: BigDBApiClient,
        token: str,
        retry_config: RetryConfig | None = None,
    ):
        self._client = client
        self._headers = {"playertoken": token}
        self.retry_config = retry_config

    async def _load_once(self, table: str, key: str) -> Record | None:
        response = await self._client.request(
            "GET",
            f"/api/bigdb/{_segment(table)}/{_segment(key)}",
            headers=self._headers,
            not_found=RecordNotFound(table, key),
        )
        return response.json().get("record")

    async def load(self, table: str, key: str) -> Record | None:
        return await retry_async(self._load_once, table, key, config=self.retry_config)
