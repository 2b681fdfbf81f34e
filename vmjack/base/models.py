"""
Snapshot models for servers, disks, metadata and operations.

Snapshots are what the provider reported at the last fetch.  Handles
replace them wholesale on reload; nothing mutates a snapshot to reflect a
write that has not been read back.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ServerStatus(str, Enum):
    PROVISIONING = "PROVISIONING"
    STAGING = "STAGING"
    RUNNING = "RUNNING"
    PENDING_STOP = "PENDING_STOP"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    SUSPENDING = "SUSPENDING"
    SUSPENDED = "SUSPENDED"
    REPAIRING = "REPAIRING"
    TERMINATED = "TERMINATED"


# A stopped VM is reported as TERMINATED by Compute Engine.
STOPPED_STATUSES = frozenset({ServerStatus.STOPPED, ServerStatus.TERMINATED})


class OperationStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    ERROR = "ERROR"


TERMINAL_STATUSES = frozenset({OperationStatus.DONE, OperationStatus.ERROR})


class Operation(BaseModel):
    """An asynchronous, remotely tracked unit of work.

    Attributes:
        id: Provider identifier (operation name on GCP).
        kind: Operation type, e.g. ``stop`` or ``attachDisk``.
        target: Self-link or name of the resource acted on.
        zone: Zone the operation runs in, if zonal.
        status: Last observed status.
        errors: Provider error payload, set once status is ERROR.
        self_link: Provider URL of the operation, if any.
    """

    id: str
    kind: str = ""
    target: str | None = None
    zone: str | None = None
    status: OperationStatus = OperationStatus.PENDING
    errors: list[dict[str, Any]] = Field(default_factory=list)
    self_link: str | None = None

    @property
    def done(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def failed(self) -> bool:
        return self.status is OperationStatus.ERROR


class Metadata(BaseModel):
    """Versioned key/value map with an optimistic-concurrency fingerprint.

    Keys are unique and keep insertion order, which is also the order the
    items are written to the provider.
    """

    entries: dict[str, str] = Field(default_factory=dict)
    fingerprint: str | None = None

    @classmethod
    def from_items(
        cls, items: Iterable[Mapping[str, Any]] | None, fingerprint: str | None = None
    ) -> Metadata:
        """Build from a provider item list ``[{"key": ..., "value": ...}]``."""
        entries: dict[str, str] = {}
        for item in items or []:
            entries[item["key"]] = item.get("value") or ""
        return cls(entries=entries, fingerprint=fingerprint)

    def to_items(self) -> list[dict[str, str]]:
        return [{"key": k, "value": v} for k, v in self.entries.items()]

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.entries.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)


class AttachedDisk(BaseModel):
    device_name: str | None = None
    boot: bool = False
    auto_delete: bool = False
    source: str | None = None
    mode: str = "READ_WRITE"
    interface: str | None = None


class AccessConfig(BaseModel):
    name: str | None = None
    type: str = "ONE_TO_ONE_NAT"
    nat_ip: str | None = None


class NetworkInterface(BaseModel):
    name: str | None = None
    network: str = "global/networks/default"
    subnetwork: str | None = None
    network_ip: str | None = None
    access_configs: list[AccessConfig] = Field(default_factory=list)


def external_nat() -> NetworkInterface:
    """Default interface with an ephemeral external address."""
    return NetworkInterface(access_configs=[AccessConfig(name="External NAT")])


def _unique(values: Iterable[str | None]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
    return list(seen)


class ServerSnapshot(BaseModel):
    """Last known provider-side state of a server."""

    model_config = ConfigDict(frozen=True)

    name: str
    zone: str | None = None
    project: str | None = None
    self_link: str | None = None
    status: ServerStatus = ServerStatus.PROVISIONING
    machine_type: str | None = None
    metadata: Metadata = Field(default_factory=Metadata)
    disks: list[AttachedDisk] = Field(default_factory=list)
    network_interfaces: list[NetworkInterface] = Field(default_factory=list)
    creation_timestamp: str | None = None

    @property
    def ready(self) -> bool:
        return self.status is ServerStatus.RUNNING

    @property
    def stopped(self) -> bool:
        return self.status in STOPPED_STATUSES

    @property
    def machine_type_name(self) -> str | None:
        return self.machine_type.split("/")[-1] if self.machine_type else None

    @property
    def boot_disk(self) -> AttachedDisk | None:
        return next((d for d in self.disks if d.boot), None)

    @property
    def public_ip_addresses(self) -> list[str]:
        return _unique(
            ac.nat_ip for iface in self.network_interfaces for ac in iface.access_configs
        )

    @property
    def private_ip_addresses(self) -> list[str]:
        return _unique(iface.network_ip for iface in self.network_interfaces)


class DiskSnapshot(BaseModel):
    """Last known provider-side state of a persistent disk."""

    model_config = ConfigDict(frozen=True)

    name: str
    zone: str | None = None
    self_link: str | None = None
    size_gb: int | None = None
    status: str | None = None
    source_image: str | None = None
    users: list[str] = Field(default_factory=list)

    @property
    def attached(self) -> bool:
        return bool(self.users)


class InstanceSpec(BaseModel):
    """Request body for creating a server.

    When ``disks`` is empty a boot disk is created from ``source_image``.
    """

    name: str
    machine_type: str = "n1-standard-1"
    zone: str | None = None
    source_image: str = "projects/debian-cloud/global/images/family/debian-12"
    disk_size_gb: int = 10
    boot_disk_auto_delete: bool = True
    disks: list[AttachedDisk] = Field(default_factory=list)
    network_interfaces: list[NetworkInterface] = Field(
        default_factory=lambda: [NetworkInterface()]
    )
    metadata: dict[str, str] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
