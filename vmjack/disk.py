"""Persistent disk handle."""

from __future__ import annotations

from typing import Callable

from vmjack.base.async_support import AsyncMixin
from vmjack.base.config import PollingConfig
from vmjack.base.models import DiskSnapshot
from vmjack.base.provider import ComputeProviderBlueprint
from vmjack.base.wait import wait_for


class Disk(AsyncMixin):
    """Pollable view of one disk.

    Attachment state (``users``) is eventually consistent with server-side
    attach and detach calls, so it is observed here rather than assumed::

        disk.wait_for(lambda d: d.attached)
    """

    def __init__(
        self,
        provider: ComputeProviderBlueprint,
        name: str,
        snapshot: DiskSnapshot | None = None,
        polling: PollingConfig | None = None,
        zone: str | None = None,
    ) -> None:
        self.provider = provider
        self.name = name
        self.zone = zone or provider.zone
        self.polling = polling or PollingConfig()
        self._snapshot = snapshot

    def __repr__(self) -> str:
        return f"Disk(name={self.name!r}, zone={self.zone!r})"

    @property
    def snapshot(self) -> DiskSnapshot:
        if self._snapshot is None:
            return self.reload()
        return self._snapshot

    def reload(self) -> DiskSnapshot:
        """Fetch current state; raises NotFoundError if the disk is gone."""
        self._snapshot = self.provider.get_disk(self.name, self.zone)
        return self._snapshot

    def wait_for(
        self,
        predicate: Callable[[DiskSnapshot], bool],
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> DiskSnapshot:
        return wait_for(self, predicate, timeout, poll_interval, self.polling)

    @property
    def users(self) -> list[str]:
        return self.snapshot.users

    @property
    def self_link(self) -> str:
        return self.snapshot.self_link or self.provider.disk_link(self.name, self.zone)

    def attached(self) -> bool:
        return self.snapshot.attached
