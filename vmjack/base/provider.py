"""Compute provider blueprint."""

from __future__ import annotations

from abc import ABC, abstractmethod

from vmjack.base.models import (
    DiskSnapshot,
    InstanceSpec,
    Operation,
    ServerSnapshot,
)


class ComputeProviderBlueprint(ABC):
    """Abstract remote API consumed by server and disk handles.

    Mutating calls return an :class:`Operation` without waiting for it;
    reads return snapshots.  Implementations translate SDK errors into the
    :mod:`vmjack.base.exceptions` hierarchy.

    Attributes:
        name: Provider name used in log records.
        project: Project the provider operates in.
        zone: Default zone for servers and disks.
        transient_errors: Exception types a status poll may retry on.
    """

    name: str = "abstract"
    project: str | None = None
    zone: str | None = None
    transient_errors: tuple[type[BaseException], ...] = (ConnectionError,)

    @abstractmethod
    def create_instance(self, spec: InstanceSpec) -> Operation:
        """Submit creation of a server described by *spec*."""

    @abstractmethod
    def get_instance(self, name: str) -> ServerSnapshot:
        """Fetch a server snapshot.

        Raises:
            NotFoundError: If the server does not exist.
        """

    @abstractmethod
    def delete_instance(self, name: str) -> Operation:
        """Submit deletion of a server."""

    @abstractmethod
    def get_operation(self, operation: Operation) -> Operation:
        """Return a fresh copy of *operation* with its current status."""

    @abstractmethod
    def set_machine_type(self, name: str, machine_type: str) -> Operation:
        """Change the machine type of a stopped server."""

    @abstractmethod
    def set_metadata(
        self, name: str, fingerprint: str | None, items: list[dict[str, str]]
    ) -> Operation:
        """Replace all metadata items of a server.

        Raises:
            ConflictError: If *fingerprint* is stale.
        """

    @abstractmethod
    def attach_disk(
        self,
        name: str,
        source: str,
        *,
        device_name: str | None = None,
        auto_delete: bool = False,
        boot: bool = False,
        mode: str = "READ_WRITE",
    ) -> Operation:
        """Attach an existing disk to a server."""

    @abstractmethod
    def detach_disk(self, name: str, device_name: str) -> Operation:
        """Detach the disk attached as *device_name*."""

    @abstractmethod
    def set_disk_auto_delete(
        self, name: str, device_name: str, auto_delete: bool
    ) -> Operation:
        """Toggle whether an attached disk is deleted with the server."""

    @abstractmethod
    def start(self, name: str) -> Operation:
        """Start a stopped server."""

    @abstractmethod
    def stop(self, name: str, discard_local_ssd: bool = False) -> Operation:
        """Stop a running server, optionally discarding local SSD data."""

    @abstractmethod
    def reset(self, name: str) -> Operation:
        """Hard-reset a running server."""

    @abstractmethod
    def get_serial_port_output(self, name: str, port: int = 1) -> str:
        """Return the buffered output of a serial port."""

    @abstractmethod
    def get_disk(self, name: str, zone: str | None = None) -> DiskSnapshot:
        """Fetch a disk snapshot from *zone*, the provider's zone by default.

        Raises:
            NotFoundError: If the disk does not exist.
        """

    def disk_link(self, disk_name: str, zone: str | None = None) -> str:
        """Build a zonal disk reference usable as an attach source."""
        return f"projects/{self.project}/zones/{zone or self.zone}/disks/{disk_name}"
