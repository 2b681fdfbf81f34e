"""GCP Compute Engine implementation of the compute provider blueprint."""

from __future__ import annotations

from typing import Any, NoReturn

from google.api_core import exceptions as gcp_exceptions
from google.cloud import compute_v1

from vmjack.base.config import DEFAULT_ZONE, GCPConfig
from vmjack.base.exceptions import (
    ComputeError,
    ConflictError,
    NotFoundError,
    PreconditionError,
)
from vmjack.base.models import (
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
from vmjack.base.provider import ComputeProviderBlueprint

# First match wins; AlreadyExists is a Conflict subclass.
_ERROR_MAP: tuple[tuple[type[gcp_exceptions.GoogleAPICallError], type[ComputeError]], ...] = (
    (gcp_exceptions.NotFound, NotFoundError),
    (gcp_exceptions.PreconditionFailed, ConflictError),
    (gcp_exceptions.Conflict, ConflictError),
    (gcp_exceptions.FailedPrecondition, PreconditionError),
    (gcp_exceptions.BadRequest, PreconditionError),
)

_TRANSIENT: tuple[type[BaseException], ...] = (
    gcp_exceptions.ServiceUnavailable,
    gcp_exceptions.InternalServerError,
    gcp_exceptions.TooManyRequests,
    gcp_exceptions.DeadlineExceeded,
    ConnectionError,
)


def _handle(e: gcp_exceptions.GoogleAPICallError, msg: str) -> NoReturn:
    for gcp_type, exc in _ERROR_MAP:
        if isinstance(e, gcp_type):
            raise exc(msg) from e
    raise ComputeError(msg) from e


def _last_segment(value: str | None) -> str | None:
    return value.split("/")[-1] if value else None


def _to_operation(op: Any, zone: str | None) -> Operation:
    """Convert a compute_v1 (extended) operation into an :class:`Operation`.

    Compute Engine reports failed operations as DONE with an error set.
    """
    raw_status = getattr(op.status, "name", op.status)
    status = OperationStatus.__members__.get(str(raw_status), OperationStatus.PENDING)
    errors: list[dict[str, Any]] = []
    if status is OperationStatus.DONE:
        errors = [{"code": e.code, "message": e.message} for e in op.error.errors]
        if errors:
            status = OperationStatus.ERROR
    return Operation(
        id=op.name,
        kind=op.operation_type or "",
        target=op.target_link or None,
        zone=_last_segment(op.zone) or zone,
        status=status,
        errors=errors,
        self_link=op.self_link or None,
    )


def _to_server(inst: compute_v1.Instance) -> ServerSnapshot:
    return ServerSnapshot(
        name=inst.name,
        zone=_last_segment(inst.zone),
        self_link=inst.self_link or None,
        status=ServerStatus(inst.status) if inst.status else ServerStatus.PROVISIONING,
        machine_type=inst.machine_type or None,
        metadata=Metadata.from_items(
            ({"key": item.key, "value": item.value} for item in inst.metadata.items),
            fingerprint=inst.metadata.fingerprint or None,
        ),
        disks=[
            AttachedDisk(
                device_name=d.device_name or None,
                boot=d.boot,
                auto_delete=d.auto_delete,
                source=d.source or None,
                mode=d.mode or "READ_WRITE",
                interface=d.interface or None,
            )
            for d in inst.disks
        ],
        network_interfaces=[
            NetworkInterface(
                name=iface.name or None,
                network=iface.network,
                subnetwork=iface.subnetwork or None,
                network_ip=iface.network_i_p or None,
                access_configs=[
                    AccessConfig(
                        name=ac.name or None,
                        type=ac.type_ or "ONE_TO_ONE_NAT",
                        nat_ip=ac.nat_i_p or None,
                    )
                    for ac in iface.access_configs
                ],
            )
            for iface in inst.network_interfaces
        ],
        creation_timestamp=inst.creation_timestamp or None,
    )


def _to_disk(disk: compute_v1.Disk) -> DiskSnapshot:
    return DiskSnapshot(
        name=disk.name,
        zone=_last_segment(disk.zone),
        self_link=disk.self_link or None,
        size_gb=disk.size_gb or None,
        status=disk.status or None,
        source_image=disk.source_image or None,
        users=list(disk.users),
    )


class GCPComputeProvider(ComputeProviderBlueprint):
    """GCP Compute Engine provider.

    Attributes:
        project: GCP project ID.
        zone: Zone every server and disk call targets.
        client: Compute Engine instances client.
    """

    name = "gcp"
    transient_errors = _TRANSIENT

    def __init__(self, config: GCPConfig) -> None:
        """Initialize the Compute Engine clients.

        Args:
            config: GCP configuration object containing project ID, zone
                and credentials.
        """
        assert config.project_id is not None  # guaranteed by GCPConfig validator
        self.project: str = config.project_id
        self.zone: str = config.zone or DEFAULT_ZONE
        self.client = compute_v1.InstancesClient(credentials=config.credentials)
        self._disks = compute_v1.DisksClient(credentials=config.credentials)
        self._zone_ops = compute_v1.ZoneOperationsClient(credentials=config.credentials)

    def _instance_call(self, method: str, name: str, action: str, **kwargs: Any) -> Operation:
        try:
            op = getattr(self.client, method)(
                project=self.project, zone=self.zone, instance=name, **kwargs
            )
        except gcp_exceptions.GoogleAPICallError as e:
            _handle(e, f"Failed to {action} '{name}'")
        return _to_operation(op, self.zone)

    def _build_instance(self, spec: InstanceSpec) -> compute_v1.Instance:
        zone = spec.zone or self.zone
        instance = compute_v1.Instance()
        instance.name = spec.name
        instance.machine_type = f"zones/{zone}/machineTypes/{spec.machine_type}"

        if spec.disks:
            instance.disks = [
                compute_v1.AttachedDisk(
                    source=d.source,
                    device_name=d.device_name,
                    boot=d.boot,
                    auto_delete=d.auto_delete,
                    mode=d.mode,
                )
                for d in spec.disks
            ]
        else:
            disk = compute_v1.AttachedDisk()
            disk.auto_delete = spec.boot_disk_auto_delete
            disk.boot = True
            init = compute_v1.AttachedDiskInitializeParams()
            init.source_image = spec.source_image
            init.disk_size_gb = spec.disk_size_gb
            disk.initialize_params = init
            instance.disks = [disk]

        interfaces = []
        for iface in spec.network_interfaces:
            nic = compute_v1.NetworkInterface()
            nic.network = iface.network
            if iface.subnetwork:
                nic.subnetwork = iface.subnetwork
            nic.access_configs = [
                compute_v1.AccessConfig(name=ac.name or "External NAT", type_=ac.type)
                for ac in iface.access_configs
            ]
            interfaces.append(nic)
        instance.network_interfaces = interfaces

        if spec.metadata:
            instance.metadata = compute_v1.Metadata(
                items=[compute_v1.Items(key=k, value=v) for k, v in spec.metadata.items()]
            )
        if spec.tags:
            instance.tags = compute_v1.Tags(items=spec.tags)
        return instance

    def create_instance(self, spec: InstanceSpec) -> Operation:
        """Submit a Compute Engine instance insert.

        Raises:
            ConflictError: If an instance with that name already exists.
        """
        zone = spec.zone or self.zone
        try:
            op = self.client.insert(
                project=self.project, zone=zone, instance_resource=self._build_instance(spec)
            )
        except gcp_exceptions.GoogleAPICallError as e:
            _handle(e, f"Failed to create instance '{spec.name}'")
        return _to_operation(op, zone)

    def get_instance(self, name: str) -> ServerSnapshot:
        try:
            inst = self.client.get(project=self.project, zone=self.zone, instance=name)
        except self.transient_errors:
            raise
        except gcp_exceptions.GoogleAPICallError as e:
            _handle(e, f"Failed to get instance '{name}'")
        return _to_server(inst)

    def delete_instance(self, name: str) -> Operation:
        return self._instance_call("delete", name, "delete instance")

    def get_operation(self, operation: Operation) -> Operation:
        """Fetch the zone operation's current state.

        Transient errors propagate untranslated so the poll layer can retry,
        as they do from :meth:`get_instance` and :meth:`get_disk`.
        """
        zone = operation.zone or self.zone
        try:
            op = self._zone_ops.get(project=self.project, zone=zone, operation=operation.id)
        except self.transient_errors:
            raise
        except gcp_exceptions.GoogleAPICallError as e:
            _handle(e, f"Failed to get operation '{operation.id}'")
        return _to_operation(op, zone)

    def set_machine_type(self, name: str, machine_type: str) -> Operation:
        request = compute_v1.InstancesSetMachineTypeRequest(
            machine_type=f"zones/{self.zone}/machineTypes/{machine_type}"
        )
        return self._instance_call(
            "set_machine_type",
            name,
            "set machine type of",
            instances_set_machine_type_request_resource=request,
        )

    def set_metadata(
        self, name: str, fingerprint: str | None, items: list[dict[str, str]]
    ) -> Operation:
        metadata = compute_v1.Metadata(
            items=[compute_v1.Items(key=i["key"], value=i["value"]) for i in items]
        )
        if fingerprint:
            metadata.fingerprint = fingerprint
        return self._instance_call(
            "set_metadata", name, "set metadata of", metadata_resource=metadata
        )

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
        disk = compute_v1.AttachedDisk(source=source, auto_delete=auto_delete, boot=boot, mode=mode)
        if device_name:
            disk.device_name = device_name
        return self._instance_call(
            "attach_disk", name, "attach disk to", attached_disk_resource=disk
        )

    def detach_disk(self, name: str, device_name: str) -> Operation:
        return self._instance_call(
            "detach_disk", name, "detach disk from", device_name=device_name
        )

    def set_disk_auto_delete(
        self, name: str, device_name: str, auto_delete: bool
    ) -> Operation:
        return self._instance_call(
            "set_disk_auto_delete",
            name,
            "set disk auto-delete on",
            device_name=device_name,
            auto_delete=auto_delete,
        )

    def start(self, name: str) -> Operation:
        return self._instance_call("start", name, "start")

    def stop(self, name: str, discard_local_ssd: bool = False) -> Operation:
        # discard_local_ssd is not a flattened argument of InstancesClient.stop
        request = compute_v1.StopInstanceRequest(
            project=self.project,
            zone=self.zone,
            instance=name,
            discard_local_ssd=discard_local_ssd,
        )
        try:
            op = self.client.stop(request=request)
        except gcp_exceptions.GoogleAPICallError as e:
            _handle(e, f"Failed to stop '{name}'")
        return _to_operation(op, self.zone)

    def reset(self, name: str) -> Operation:
        return self._instance_call("reset", name, "reset")

    def get_serial_port_output(self, name: str, port: int = 1) -> str:
        try:
            output = self.client.get_serial_port_output(
                request=compute_v1.GetSerialPortOutputInstanceRequest(
                    project=self.project, zone=self.zone, instance=name, port=port
                )
            )
        except gcp_exceptions.GoogleAPICallError as e:
            _handle(e, f"Failed to read serial port {port} of '{name}'")
        return output.contents

    def get_disk(self, name: str, zone: str | None = None) -> DiskSnapshot:
        try:
            disk = self._disks.get(project=self.project, zone=zone or self.zone, disk=name)
        except self.transient_errors:
            raise
        except gcp_exceptions.GoogleAPICallError as e:
            _handle(e, f"Failed to get disk '{name}'")
        return _to_disk(disk)
