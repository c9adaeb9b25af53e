"""Export connection provisioning."""

from .provisioner import (
    ChannelProvisioner,
    ProvisionedChannel,
    ProvisioningFailed,
    ProvisioningState,
)

__all__ = [
    "ChannelProvisioner",
    "ProvisionedChannel",
    "ProvisioningFailed",
    "ProvisioningState",
]
