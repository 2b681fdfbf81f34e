"""
Server handle.

A :class:`Server` caches the last :class:`ServerSnapshot` fetched from the
provider and exposes the server's mutations.  Every mutation goes through
the :class:`OperationTracker`; with ``async_=True`` (the default) the
submitted :class:`Operation` is returned straight away, with
``async_=False`` the call blocks until the operation is DONE and the
snapshot is reloaded.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Callable, Union

from vmjack.base.async_support import AsyncMixin
from vmjack.base.config import PollingConfig
from vmjack.base.exceptions import (
    ConfigurationError,
    OperationError,
    PreconditionError,
    WaitTimeoutError,
)
from vmjack.base.models import (
    AttachedDisk,
    DiskSnapshot,
    Metadata,
    NetworkInterface,
    Operation,
    ServerSnapshot,
    ServerStatus,
)
from vmjack.base.operations import OperationTracker
from vmjack.base.provider import ComputeProviderBlueprint
from vmjack.base.wait import Backoff, poll_until, wait_for
from vmjack.disk import Disk
from vmjack.ssh import LEGACY_SSH_KEYS, SSH_KEYS, append_ssh_key, parse_ssh_keys
from vmjack.windows import PASSWORD_PORT, WINDOWS_KEYS, WindowsKey

MetadataInput = Union[Mapping[str, str], Iterable[tuple[str, str]], Metadata]

_DISK_SOURCE = re.compile(r"zones/(?P<zone>[^/]+)/disks/(?P<name>[^/]+)$")


def _metadata_entries(items: MetadataInput) -> dict[str, str]:
    if isinstance(items, Metadata):
        return dict(items.entries)
    if isinstance(items, Mapping):
        return dict(items)
    entries: dict[str, str] = {}
    for key, value in items:
        if key in entries:
            raise ConfigurationError(f"Duplicate metadata key '{key}'")
        entries[key] = value
    return entries


class Server(AsyncMixin):
    """Typed, mutable-state proxy for one remote server.

    Attributes:
        provider: Provider the server lives in.
        name: Server name, unique per zone.
        tracker: Operation tracker used for every mutation.
        username: Login user, set by bootstrap.
        public_key: Public key injected by bootstrap.
    """

    def __init__(
        self,
        provider: ComputeProviderBlueprint,
        name: str,
        snapshot: ServerSnapshot | None = None,
        tracker: OperationTracker | None = None,
    ) -> None:
        self.provider = provider
        self.name = name
        self.tracker = tracker or OperationTracker(provider)
        self.username: str | None = None
        self.public_key: str | None = None
        self._snapshot = snapshot

    def __repr__(self) -> str:
        status = self._snapshot.status.value if self._snapshot else "unknown"
        return f"Server(name={self.name!r}, status={status})"

    # ── State ─────────────────────────────────────────────────────────
    @property
    def polling(self) -> PollingConfig:
        return self.tracker.polling

    @property
    def snapshot(self) -> ServerSnapshot:
        if self._snapshot is None:
            return self.reload()
        return self._snapshot

    def reload(self) -> ServerSnapshot:
        """Fetch current state and replace the cached snapshot.

        Raises:
            NotFoundError: If the server no longer exists.
        """
        self._snapshot = self.provider.get_instance(self.name)
        return self._snapshot

    def wait_for(
        self,
        predicate: Callable[[ServerSnapshot], bool],
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> ServerSnapshot:
        """Reload until *predicate* holds, e.g. ``lambda s: s.stopped``."""
        return wait_for(self, predicate, timeout, poll_interval, self.polling)

    def ready(self) -> bool:
        return self.snapshot.ready

    def stopped(self) -> bool:
        return self.snapshot.stopped

    @property
    def status(self) -> ServerStatus:
        return self.snapshot.status

    @property
    def machine_type(self) -> str | None:
        return self.snapshot.machine_type

    @property
    def metadata(self) -> Metadata:
        return self.snapshot.metadata

    @property
    def disks(self) -> list[AttachedDisk]:
        return self.snapshot.disks

    @property
    def network_interfaces(self) -> list[NetworkInterface]:
        return self.snapshot.network_interfaces

    @property
    def self_link(self) -> str | None:
        return self.snapshot.self_link

    @property
    def public_ip_addresses(self) -> list[str]:
        return self.snapshot.public_ip_addresses

    @property
    def public_ip_address(self) -> str | None:
        addresses = self.public_ip_addresses
        return addresses[0] if addresses else None

    @property
    def private_ip_addresses(self) -> list[str]:
        return self.snapshot.private_ip_addresses

    @property
    def private_ip_address(self) -> str | None:
        addresses = self.private_ip_addresses
        return addresses[0] if addresses else None

    @property
    def ssh_keys(self) -> list[tuple[str, str]]:
        return parse_ssh_keys(self.metadata.get(SSH_KEYS))

    def image_name(self) -> str | None:
        """Source image of the boot disk, looked up on the disk itself."""
        disk = self.boot_disk()
        if disk is None:
            return None
        source_image = disk.snapshot.source_image
        return source_image.split("/")[-1] if source_image else None

    def boot_disk(self) -> Disk | None:
        boot = self.snapshot.boot_disk
        if boot is None or not boot.source:
            return None
        match = _DISK_SOURCE.search(boot.source)
        if match is None:
            return None
        return Disk(
            self.provider, match.group("name"), polling=self.polling, zone=match.group("zone")
        )

    # ── Mutations ─────────────────────────────────────────────────────
    def _run(self, kind: str, call: Callable[[], Operation], async_: bool) -> Operation:
        op = self.tracker.run(kind, call, target=self.name, async_=async_)
        if not async_:
            self.reload()
        return op

    def start(self, async_: bool = True) -> Operation:
        return self._run("start", lambda: self.provider.start(self.name), async_)

    def stop(self, async_: bool = True, discard_local_ssd: bool = False) -> Operation:
        """Stop the server.

        ``discard_local_ssd`` is passed through to the provider, which
        decides what happens to local scratch disks.
        """
        return self._run(
            "stop", lambda: self.provider.stop(self.name, discard_local_ssd), async_
        )

    def reboot(self, async_: bool = True) -> Operation:
        return self._run("reset", lambda: self.provider.reset(self.name), async_)

    def destroy(self, async_: bool = True) -> Operation:
        """Delete the server.  The handle must not be used afterwards."""
        op = self.tracker.run(
            "delete", lambda: self.provider.delete_instance(self.name), self.name, async_
        )
        self._snapshot = None
        return op

    def set_machine_type(self, machine_type: str, async_: bool = True) -> Operation:
        """Change the machine type; the server must be stopped.

        Raises:
            PreconditionError: If the cached status is not stopped.  No
                remote mutation is attempted in that case.
        """
        if not self.stopped():
            raise PreconditionError(
                f"Server '{self.name}' must be stopped to change machine type "
                f"(status {self.status.value})"
            )
        return self._run(
            "setMachineType",
            lambda: self.provider.set_machine_type(self.name, machine_type),
            async_,
        )

    def _write_metadata(
        self, entries: Mapping[str, str], fingerprint: str | None, async_: bool
    ) -> Operation:
        items = Metadata(entries=dict(entries), fingerprint=fingerprint).to_items()
        return self._run(
            "setMetadata",
            lambda: self.provider.set_metadata(self.name, fingerprint, items),
            async_,
        )

    def set_metadata(self, items: MetadataInput, async_: bool = True) -> Operation:
        """Replace all metadata items with *items*, in order.

        Raises:
            ConfigurationError: If a sequence of pairs repeats a key.
            ConflictError: If the metadata changed since the fingerprint
                was read.  Reload and retry.
        """
        entries = _metadata_entries(items)
        fingerprint = self.reload().metadata.fingerprint
        return self._write_metadata(entries, fingerprint, async_)

    def add_ssh_key(self, username: str, key: str, async_: bool = True) -> Operation:
        """Append ``username:key`` to the ``ssh-keys`` metadata entry."""
        current = self.reload().metadata
        entries = dict(current.entries)
        existing = entries.get(SSH_KEYS) or entries.get(LEGACY_SSH_KEYS)
        entries[SSH_KEYS] = append_ssh_key(existing, username, key)
        return self._write_metadata(entries, current.fingerprint, async_)

    def attach_disk(
        self,
        source: str | Disk | DiskSnapshot,
        auto_delete: bool = False,
        device_name: str | None = None,
        boot: bool = False,
        mode: str = "READ_WRITE",
        async_: bool = True,
    ) -> Operation:
        """Attach an existing disk.

        *source* may be a disk handle, a disk snapshot, a self-link or a
        bare disk name in the provider's zone.  Completion of the
        operation does not imply the disk's ``users`` already list this
        server; poll the disk for that.
        """
        if isinstance(source, Disk):
            link = source.self_link
        elif isinstance(source, DiskSnapshot):
            link = source.self_link or self.provider.disk_link(source.name)
        elif "/" not in source:
            link = self.provider.disk_link(source)
        else:
            link = source
        return self._run(
            "attachDisk",
            lambda: self.provider.attach_disk(
                self.name,
                link,
                device_name=device_name,
                auto_delete=auto_delete,
                boot=boot,
                mode=mode,
            ),
            async_,
        )

    def detach_disk(self, device_name: str, async_: bool = True) -> Operation:
        """Detach a disk.  Blocks on the operation only, never on the disk."""
        return self._run(
            "detachDisk", lambda: self.provider.detach_disk(self.name, device_name), async_
        )

    def set_disk_auto_delete(
        self, auto_delete: bool = True, device_name: str | None = None, async_: bool = True
    ) -> Operation:
        """Toggle auto-delete on a disk, the boot disk by default."""
        if device_name is None:
            boot = self.snapshot.boot_disk
            if boot is None or not boot.device_name:
                raise PreconditionError(f"Server '{self.name}' has no named boot disk")
            device_name = boot.device_name
        return self._run(
            "setDiskAutoDelete",
            lambda: self.provider.set_disk_auto_delete(self.name, device_name, auto_delete),
            async_,
        )

    # ── Console ───────────────────────────────────────────────────────
    def serial_port_output(self, port: int = 1) -> str:
        return self.provider.get_serial_port_output(self.name, port)

    def reset_windows_password(
        self, username: str, email: str | None = None, timeout: float | None = None
    ) -> str:
        """Reset (or create) a Windows account and return its new password.

        Raises:
            ConflictError: If metadata changed concurrently.
            WaitTimeoutError: If the guest agent never answered.
            OperationError: If the guest agent reported a failure.
        """
        key = WindowsKey()
        current = self.reload().metadata
        entries = dict(current.entries)
        entries[WINDOWS_KEYS] = key.metadata_value(username, email)
        self._write_metadata(entries, current.fingerprint, async_=False)

        def _answer() -> str | None:
            try:
                return key.find_response(self.serial_port_output(PASSWORD_PORT))
            except ValueError as e:
                raise OperationError(
                    f"Password reset for '{username}' on '{self.name}' failed: {e}",
                    target=self.name,
                ) from e

        def _timed_out(seconds: float) -> Exception:
            return WaitTimeoutError(
                f"No password reset response from '{self.name}' after {seconds:.1f}s"
            )

        encrypted = poll_until(
            _answer,
            lambda answer: answer is not None,
            timeout=self.polling.timeout if timeout is None else timeout,
            backoff=Backoff.from_policy(self.polling),
            on_timeout=_timed_out,
        )
        return key.decrypt(encrypted)
