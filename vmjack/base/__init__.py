"""Provider blueprint, snapshot models and core utilities.

The operation tracker and the wait engine defined here are what every
server and disk handle is built on.
"""

from .provider import ComputeProviderBlueprint
from .models import (
    AccessConfig,
    AttachedDisk,
    DiskSnapshot,
    InstanceSpec,
    Metadata,
    NetworkInterface,
    Operation,
    OperationStatus,
    ServerSnapshot,
    ServerStatus,
)
from .operations import OperationTracker
from .wait import Backoff, wait_for
from .supported_providers import existing_cloud_providers


__all__ = [
    "ComputeProviderBlueprint",
    "AccessConfig",
    "AttachedDisk",
    "DiskSnapshot",
    "InstanceSpec",
    "Metadata",
    "NetworkInterface",
    "Operation",
    "OperationStatus",
    "ServerSnapshot",
    "ServerStatus",
    "OperationTracker",
    "Backoff",
    "wait_for",
    "existing_cloud_providers",
]
