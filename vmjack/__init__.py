"""Vmjack: server lifecycle and operation orchestration for cloud VMs.

Entry point for the library. Import :func:`universal_factory` to get a
server collection with a single call::

    from vmjack import universal_factory

    servers = universal_factory("gcp", {"project_id": "my-project"})
    server = servers.get("web-1")
    server.stop(async_=False)
    server.set_machine_type("n1-standard-2", async_=False)
"""

from .base import (
    ComputeProviderBlueprint,
    Operation,
    OperationStatus,
    OperationTracker,
    ServerSnapshot,
    ServerStatus,
    wait_for,
)
from .disk import Disk
from .server import Server
from .servers import Servers
from .factory import universal_factory

__all__ = [
    "ComputeProviderBlueprint",
    "Operation",
    "OperationStatus",
    "OperationTracker",
    "ServerSnapshot",
    "ServerStatus",
    "wait_for",
    "Disk",
    "Server",
    "Servers",
    "universal_factory",
]
