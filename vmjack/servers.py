"""
Server collection.

:class:`Servers` is the caller-facing entry point: it fetches and creates
server handles, and runs the bootstrap flow that provisions a reachable
server in one call.
"""

from __future__ import annotations

import os
import time
from typing import Any

from vmjack.base.config import PollingConfig
from vmjack.base.exceptions import ConfigurationError
from vmjack.base.logger import vj_logger
from vmjack.base.models import InstanceSpec, external_nat
from vmjack.base.operations import OperationTracker
from vmjack.base.provider import ComputeProviderBlueprint
from vmjack.disk import Disk
from vmjack.server import Server
from vmjack.ssh import SSH_KEYS, append_ssh_key, read_public_key


class Servers:
    """Servers of one provider, project and zone.

    Attributes:
        provider: Provider the servers live in.
        polling: Polling policy shared by every handle this collection hands out.
        tracker: Operation tracker bound to *provider*.
    """

    def __init__(
        self, provider: ComputeProviderBlueprint, polling: PollingConfig | None = None
    ) -> None:
        self.provider = provider
        self.polling = polling or PollingConfig()
        self.tracker = OperationTracker(provider, self.polling)

    def __repr__(self) -> str:
        return f"Servers(provider={self.provider.name!r}, zone={self.provider.zone!r})"

    def get(self, name: str) -> Server:
        """Return a loaded handle; raises NotFoundError if *name* is unknown."""
        server = Server(self.provider, name, tracker=self.tracker)
        server.reload()
        return server

    def disk(self, name: str) -> Disk:
        """Return a loaded disk handle; raises NotFoundError if *name* is unknown."""
        disk = Disk(self.provider, name, polling=self.polling)
        disk.reload()
        return disk

    def create(self, spec: InstanceSpec | None = None, async_: bool = False, **fields: Any) -> Server:
        """Create a server from *spec* or from keyword fields of :class:`InstanceSpec`.

        With ``async_=False`` the insert operation is awaited and the
        returned handle is loaded; the server may still be provisioning.
        Pair with :meth:`Server.destroy`.
        """
        if spec is None:
            fields.setdefault("zone", self.provider.zone)
            spec = InstanceSpec(**fields)
        self.tracker.run(
            "insert", lambda: self.provider.create_instance(spec), target=spec.name, async_=async_
        )
        server = Server(self.provider, spec.name, tracker=self.tracker)
        if not async_:
            server.reload()
        return server

    def bootstrap(
        self,
        name: str | None = None,
        username: str | None = None,
        public_key_path: str | None = None,
        **overrides: Any,
    ) -> Server:
        """Create a running server reachable over SSH.

        The public key is read before anything is created, so a missing
        key file never leaves a server behind.  The server gets an
        auto-delete boot disk and an ephemeral external address.

        Args:
            name: Server name; defaults to ``vmjack-<unix time>``.
            username: Login user; defaults to ``$USER``.
            public_key_path: Public key file; defaults to ``~/.ssh/id_rsa.pub``.
            **overrides: Extra :class:`InstanceSpec` fields.

        Raises:
            ConfigurationError: If the key file is missing or no username
                can be determined.
            WaitTimeoutError: If the server never runs with a public IP.
        """
        public_key = read_public_key(public_key_path)
        username = username or os.environ.get("USER")
        if not username:
            raise ConfigurationError("Cannot bootstrap server without a username")
        name = name or f"vmjack-{int(time.time())}"

        metadata = dict(overrides.pop("metadata", {}))
        metadata[SSH_KEYS] = append_ssh_key(metadata.get(SSH_KEYS), username, public_key)
        fields: dict[str, Any] = {
            "zone": self.provider.zone,
            "network_interfaces": [external_nat()],
            "boot_disk_auto_delete": True,
        }
        fields.update(overrides)
        spec = InstanceSpec(name=name, metadata=metadata, **fields)

        vj_logger.info(
            f"Bootstrapping server as {username}",
            provider=self.provider.name,
            resource=name,
            operation="bootstrap",
        )
        server = self.create(spec)
        server.wait_for(lambda s: s.ready and bool(s.public_ip_addresses))
        boot = server.snapshot.boot_disk
        if boot is not None and not boot.auto_delete:
            server.set_disk_auto_delete(True, async_=False)
        server.username = username
        server.public_key = public_key
        return server
