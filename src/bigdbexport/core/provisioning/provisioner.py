"""
Export connection provisioning.

Drives the control plane to a state where exactly one fresh, read-only
export connection exists and an authenticated session is open on it.
The control plane is eventually consistent: deletions and creations
show up in listings some time after the call returns, so every
transition is confirmed by polling the connection list.

    ABSENT ──(name listed)──> STALE_EXISTS ──(delete, wait gone)──┐
      │                                                            │
      └────────────────────────────────────────────────────────────┤
                                                                   v
                        READY <──(authenticate)── VERIFYING <── CREATING
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from tenacity import RetryCallState

from bigdbexport.core.config.models import ProvisioningConfig
from bigdbexport.core.remote.auth import calc_auth256, create_shared_secret
from bigdbexport.core.remote.base import (
    AuthError,
    BigDBSession,
    ConnectionSpec,
    ControlPlane,
    DataPlane,
    NotFoundError,
    RemoteError,
    TableAccess,
)
from bigdbexport.core.remote.retries import PollTimeout, poll_until


logger = logging.getLogger(__name__)


# Errors that mean "the control plane has not caught up yet"
NOT_YET_VISIBLE = (AuthError, NotFoundError)


class ProvisioningState(str, Enum):
    """States of the provisioning state machine."""

    ABSENT = "absent"
    STALE_EXISTS = "stale_exists"
    CREATING = "creating"
    VERIFYING = "verifying"
    READY = "ready"


class ProvisioningFailed(Exception):
    """The export connection could not be brought to READY."""

    def __init__(self, message: str, state: ProvisioningState | None = None):
        super().__init__(message)
        self.state = state


@dataclass(frozen=True)
class ProvisionedChannel:
    """A validated export connection and the session opened on it."""

    name: str
    shared_secret: str = field(repr=False)
    session: BigDBSession = field(repr=False)
    tables: frozenset[str] = frozenset()


class ChannelProvisioner:
    """Ensures a single fresh export connection exists and authenticates on it.

    Usage:
        provisioner = ChannelProvisioner(control, data_plane, config, username="dev")
        channel = await provisioner.provision()
        record = await channel.session.load("PlayerObjects", "alice")
    """

    def __init__(
        self,
        control: ControlPlane,
        data_plane: DataPlane,
        config: ProvisioningConfig | None = None,
        *,
        username: str,
    ) -> None:
        self.control = control
        self.data_plane = data_plane
        self.config = config or ProvisioningConfig()
        self.username = username

        self.state = ProvisioningState.ABSENT
        self.history: list[ProvisioningState] = [ProvisioningState.ABSENT]

    @property
    def name(self) -> str:
        return self.config.connection_name

    def _transition(self, state: ProvisioningState) -> None:
        logger.debug("Provisioning %s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    async def _is_listed(self) -> bool:
        return self.name in await self.control.list_connections()

    async def _poll(self, check, description: str, on_wait=None) -> None:
        try:
            await poll_until(
                check,
                interval=self.config.poll_interval_seconds,
                max_wait=self.config.max_wait_seconds,
                retry_on=NOT_YET_VISIBLE,
                on_wait=on_wait,
                description=description,
            )
        except PollTimeout as e:
            raise ProvisioningFailed(str(e), state=self.state) from e

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _remove_stale(self) -> None:
        """ABSENT/STALE_EXISTS: delete any leftover connection and wait until it is gone."""

        async def delete_if_listed() -> bool:
            if not await self._is_listed():
                return True
            if self.state is not ProvisioningState.STALE_EXISTS:
                self._transition(ProvisioningState.STALE_EXISTS)
            logger.info(
                "An existing %s connection was found - attempting to recreate it. "
                "This process should only take a few seconds.",
                self.name,
            )
            await self.control.delete_connection(self.name)
            return False

        await self._poll(delete_if_listed, f"connection '{self.name}' to be deleted")

    def _build_spec(self, tables: set[str], shared_secret: str) -> ConnectionSpec:
        return ConnectionSpec(
            name=self.name,
            description=self.config.description,
            authentication_method=self.config.authentication_method,
            access_group=self.config.access_group,
            table_access=tuple(TableAccess.read_only(t) for t in sorted(tables)),
            shared_secret=shared_secret,
        )

    async def _create(self, spec: ConnectionSpec) -> None:
        """CREATING: issue the create request, retrying while the control plane lags."""

        async def create() -> bool:
            await self.control.create_connection(spec)
            return True

        await self._poll(create, f"connection '{self.name}' to be created")

    async def _verify(self) -> None:
        """VERIFYING: wait until the new connection shows up in listings."""

        def waiting(retry_state: RetryCallState) -> None:
            logger.info("Waiting until we have confirmation that the %s connection exists...", self.name)

        await self._poll(self._is_listed, f"connection '{self.name}' to become visible", on_wait=waiting)

    async def _cleanup(self) -> None:
        """Best-effort removal of a connection that was never confirmed."""
        try:
            await self.control.delete_connection(self.name)
            logger.info("Removed unconfirmed %s connection", self.name)
        except RemoteError as e:
            logger.warning("Could not remove unconfirmed %s connection: %s", self.name, e)

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def provision(self) -> ProvisionedChannel:
        """Run the state machine to READY.

        Raises:
            ProvisioningFailed: If the connection cannot be created, confirmed
                or authenticated against
            asyncio.CancelledError: If the run is interrupted; a connection
                created but not yet confirmed is deleted first
        """
        await self._remove_stale()

        tables = await self.control.list_tables()
        shared_secret = create_shared_secret(self.username, self.control.game.game_id)
        spec = self._build_spec(tables, shared_secret)

        logger.info("Now attempting to create %s connection with read access to %d tables", self.name, len(tables))

        self._transition(ProvisioningState.CREATING)
        try:
            await self._create(spec)
            self._transition(ProvisioningState.VERIFYING)
            await self._verify()
        except (asyncio.CancelledError, ProvisioningFailed):
            await self._cleanup()
            raise
        except RemoteError as e:
            await self._cleanup()
            raise ProvisioningFailed(
                f"Unable to create the {self.name} connection: {e}",
                state=self.state,
            ) from e

        logger.info("The %s connection has been created.", self.name)

        auth = calc_auth256(self.config.client_user_id, shared_secret)
        try:
            session = await self.data_plane.authenticate(
                self.control.game.game_id,
                self.name,
                self.config.client_user_id,
                auth,
            )
        except RemoteError as e:
            raise ProvisioningFailed(
                f"An error occurred while trying to authenticate with the {self.name} connection. Details: {e}",
                state=self.state,
            ) from e

        self._transition(ProvisioningState.READY)
        return ProvisionedChannel(
            name=self.name,
            shared_secret=shared_secret,
            session=session,
            tables=frozenset(tables),
        )

    async def teardown(self) -> bool:
        """Delete the export connection if it is listed. Returns True if it was."""
        if not await self._is_listed():
            return False
        await self.control.delete_connection(self.name)
        logger.info("Deleted %s connection", self.name)
        return True
