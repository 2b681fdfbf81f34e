"""Shared fixtures: a scripted in-memory provider and sleep patching."""

from __future__ import annotations

import copy
import itertools
from typing import Any, Callable
from unittest.mock import patch

import pytest

from vmjack.base.config import PollingConfig
from vmjack.base.exceptions import ConflictError, NotFoundError
from vmjack.base.models import (
    AttachedDisk,
    DiskSnapshot,
    InstanceSpec,
    Metadata,
    NetworkInterface,
    Operation,
    OperationStatus,
    ServerSnapshot,
)
from vmjack.base.provider import ComputeProviderBlueprint
from vmjack.servers import Servers

API = "https://www.googleapis.com/compute/v1"


class FakeProvider(ComputeProviderBlueprint):
    """In-memory provider whose operations advance one step per poll.

    Every read of a server or disk also advances pending operations, so
    async mutations followed by ``wait_for`` converge.  Disk ``users``
    lag ``disk_lag`` disk reads behind the attach/detach that changed them.
    """

    name = "fake"

    def __init__(self, steps: tuple[str, ...] = ("RUNNING", "DONE"), disk_lag: int = 0) -> None:
        self.project = "test-project"
        self.zone = "us-central1-f"
        self.steps = steps
        self.disk_lag = disk_lag
        self.instances: dict[str, dict[str, Any]] = {}
        self.disks: dict[str, dict[str, Any]] = {}
        self.ops: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []
        self.fail_next: dict[str, list[dict[str, str]]] = {}
        self.transient_failures = 0
        self.read_failures = 0
        self.serial: dict[tuple[str, int], str] = {}
        self.serial_responder: Callable[[dict[str, Any], int], str] | None = None
        self._ids = itertools.count(1)
        self._fingerprints = itertools.count(1)
        self._addresses = itertools.count(2)

    # ── Fixture helpers ───────────────────────────────────────────────
    def instance_link(self, name: str) -> str:
        return f"{API}/projects/{self.project}/zones/{self.zone}/instances/{name}"

    def disk_self_link(self, name: str, zone: str | None = None) -> str:
        return f"{API}/{self.disk_link(name, zone)}"

    def machine_type_link(self, machine_type: str) -> str:
        return f"{API}/projects/{self.project}/zones/{self.zone}/machineTypes/{machine_type}"

    def _fingerprint(self) -> str:
        return f"fp-{next(self._fingerprints)}"

    def add_instance(
        self,
        name: str,
        status: str = "RUNNING",
        machine_type: str = "n1-standard-1",
        metadata: dict[str, str] | None = None,
        network_interfaces: list[dict[str, Any]] | None = None,
        image: str = "debian-12-bookworm-v20240110",
    ) -> dict[str, Any]:
        boot = f"{name}-boot"
        self.add_disk(boot, source_image=f"projects/debian-cloud/global/images/{image}")
        self.disks[boot]["users"] = [self.instance_link(name)]
        inst = {
            "name": name,
            "zone": self.zone,
            "project": self.project,
            "self_link": self.instance_link(name),
            "status": status,
            "machine_type": self.machine_type_link(machine_type),
            "metadata": {
                "items": [{"key": k, "value": v} for k, v in (metadata or {}).items()],
                "fingerprint": self._fingerprint(),
            },
            "disks": [
                {
                    "device_name": "persistent-disk-0",
                    "boot": True,
                    "auto_delete": True,
                    "source": self.disk_self_link(boot),
                }
            ],
            "network_interfaces": network_interfaces
            or [{"name": "nic0", "network_ip": self._private_ip(), "access_configs": []}],
        }
        self.instances[name] = inst
        return inst

    def add_disk(
        self,
        name: str,
        source_image: str | None = None,
        size_gb: int = 64,
        zone: str | None = None,
    ) -> dict[str, Any]:
        disk = {
            "name": name,
            "zone": zone or self.zone,
            "self_link": self.disk_self_link(name, zone),
            "size_gb": size_gb,
            "status": "READY",
            "source_image": source_image,
            "users": [],
            "pending": None,
        }
        self.disks[name] = disk
        return disk

    def _private_ip(self) -> str:
        return f"10.128.0.{next(self._addresses)}"

    def _public_ip(self) -> str:
        return f"35.184.0.{next(self._addresses)}"

    def _flaky_read(self) -> None:
        if self.read_failures:
            self.read_failures -= 1
            raise ConnectionError("connection reset by peer")

    def _instance(self, name: str) -> dict[str, Any]:
        if name not in self.instances:
            raise NotFoundError(f"Instance '{name}' not found")
        return self.instances[name]

    # ── Operation machinery ───────────────────────────────────────────
    def _submit(self, kind: str, name: str, apply: Callable[[], None]) -> Operation:
        self.calls.append(kind)
        op_id = f"operation-{next(self._ids)}"
        self.ops[op_id] = {
            "kind": kind,
            "status": "PENDING",
            "steps": list(self.steps),
            "apply": apply,
            "errors": self.fail_next.pop(kind, []),
        }
        return Operation(
            id=op_id, kind=kind, target=self.instance_link(name), zone=self.zone
        )

    def _advance(self, op_id: str) -> None:
        rec = self.ops[op_id]
        if rec["status"] in ("DONE", "ERROR"):
            return
        step = rec["steps"].pop(0) if rec["steps"] else "DONE"
        if step == "DONE":
            if rec["errors"]:
                rec["status"] = "ERROR"
                return
            rec["apply"]()
        rec["status"] = step

    def _tick(self) -> None:
        for op_id in list(self.ops):
            self._advance(op_id)

    def _set_users(self, disk_name: str, users: list[str]) -> None:
        disk = self.disks[disk_name]
        if self.disk_lag:
            disk["pending"] = (self.disk_lag, users)
        else:
            disk["users"] = users

    # ── Blueprint ─────────────────────────────────────────────────────
    def create_instance(self, spec: InstanceSpec) -> Operation:
        if spec.name in self.instances:
            raise ConflictError(f"Instance '{spec.name}' already exists")

        def apply() -> None:
            nics = []
            for iface in spec.network_interfaces:
                nics.append(
                    {
                        "network": iface.network,
                        "network_ip": self._private_ip(),
                        "access_configs": [
                            {"name": ac.name, "type": ac.type, "nat_ip": self._public_ip()}
                            for ac in iface.access_configs
                        ],
                    }
                )
            inst = self.add_instance(
                spec.name,
                machine_type=spec.machine_type,
                metadata=spec.metadata,
                network_interfaces=nics,
                image=spec.source_image.split("/")[-1],
            )
            inst["disks"][0]["auto_delete"] = spec.boot_disk_auto_delete

        return self._submit("insert", spec.name, apply)

    def get_instance(self, name: str) -> ServerSnapshot:
        self.calls.append("get_instance")
        self._flaky_read()
        self._tick()
        inst = copy.deepcopy(self._instance(name))
        return ServerSnapshot(
            name=inst["name"],
            zone=inst["zone"],
            project=inst["project"],
            self_link=inst["self_link"],
            status=inst["status"],
            machine_type=inst["machine_type"],
            metadata=Metadata.from_items(
                inst["metadata"]["items"], inst["metadata"]["fingerprint"]
            ),
            disks=[AttachedDisk(**d) for d in inst["disks"]],
            network_interfaces=[NetworkInterface(**n) for n in inst["network_interfaces"]],
        )

    def delete_instance(self, name: str) -> Operation:
        self._instance(name)
        return self._submit("delete", name, lambda: self.instances.pop(name, None))

    def get_operation(self, operation: Operation) -> Operation:
        self.calls.append("get_operation")
        if self.transient_failures:
            self.transient_failures -= 1
            raise ConnectionError("connection reset by peer")
        if operation.id not in self.ops:
            raise NotFoundError(f"Operation '{operation.id}' not found")
        self._advance(operation.id)
        rec = self.ops[operation.id]
        return operation.model_copy(
            update={"status": OperationStatus(rec["status"]), "errors": list(rec["errors"])}
        )

    def set_machine_type(self, name: str, machine_type: str) -> Operation:
        inst = self._instance(name)

        def apply() -> None:
            inst["machine_type"] = self.machine_type_link(machine_type)

        return self._submit("setMachineType", name, apply)

    def set_metadata(
        self, name: str, fingerprint: str | None, items: list[dict[str, str]]
    ) -> Operation:
        inst = self._instance(name)
        if fingerprint != inst["metadata"]["fingerprint"]:
            self.calls.append("setMetadata:conflict")
            raise ConflictError(f"Metadata fingerprint of '{name}' is stale")
        items = copy.deepcopy(items)

        def apply() -> None:
            inst["metadata"] = {"items": items, "fingerprint": self._fingerprint()}

        return self._submit("setMetadata", name, apply)

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
        inst = self._instance(name)
        disk_name = source.split("/")[-1]

        def apply() -> None:
            inst["disks"].append(
                {
                    "device_name": device_name or disk_name,
                    "boot": boot,
                    "auto_delete": auto_delete,
                    "source": self.disk_self_link(disk_name),
                    "mode": mode,
                }
            )
            self._set_users(disk_name, [inst["self_link"]])

        return self._submit("attachDisk", name, apply)

    def detach_disk(self, name: str, device_name: str) -> Operation:
        inst = self._instance(name)

        def apply() -> None:
            for disk in list(inst["disks"]):
                if disk["device_name"] == device_name:
                    inst["disks"].remove(disk)
                    self._set_users(disk["source"].split("/")[-1], [])

        return self._submit("detachDisk", name, apply)

    def set_disk_auto_delete(self, name: str, device_name: str, auto_delete: bool) -> Operation:
        inst = self._instance(name)

        def apply() -> None:
            for disk in inst["disks"]:
                if disk["device_name"] == device_name:
                    disk["auto_delete"] = auto_delete

        return self._submit("setDiskAutoDelete", name, apply)

    def _set_status(self, name: str, kind: str, status: str) -> Operation:
        inst = self._instance(name)
        return self._submit(kind, name, lambda: inst.update(status=status))

    def start(self, name: str) -> Operation:
        return self._set_status(name, "start", "RUNNING")

    def stop(self, name: str, discard_local_ssd: bool = False) -> Operation:
        self.calls.append(f"stop:discard_local_ssd={discard_local_ssd}")
        return self._set_status(name, "stop", "TERMINATED")

    def reset(self, name: str) -> Operation:
        return self._set_status(name, "reset", "RUNNING")

    def get_serial_port_output(self, name: str, port: int = 1) -> str:
        inst = self._instance(name)
        if self.serial_responder is not None:
            return self.serial_responder(inst, port)
        return self.serial.get((name, port), "")

    def get_disk(self, name: str, zone: str | None = None) -> DiskSnapshot:
        self.calls.append("get_disk")
        self._flaky_read()
        self._tick()
        if name not in self.disks or self.disks[name]["zone"] != (zone or self.zone):
            raise NotFoundError(f"Disk '{name}' not found")
        disk = self.disks[name]
        if disk["pending"] is not None:
            remaining, users = disk["pending"]
            if remaining <= 0:
                disk["users"], disk["pending"] = users, None
            else:
                disk["pending"] = (remaining - 1, users)
        fields = {k: v for k, v in disk.items() if k != "pending"}
        return DiskSnapshot(**copy.deepcopy(fields))


@pytest.fixture(autouse=True)
def sleep():
    with patch("vmjack.base.wait.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def polling():
    return PollingConfig(timeout=60, interval=0.5, max_interval=5)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def servers(provider, polling):
    return Servers(provider, polling)


@pytest.fixture
def server(provider, servers):
    provider.add_instance("web-1")
    return servers.get("web-1")
