"""
Workload demand aggregation.

Reduces an already-filtered VM inventory (powered on, not a template, not
excluded) into the aggregate totals the sizing model works from. Which VMs
count toward demand is decided upstream; everything handed in here is counted.

Inventory exports report memory and storage in MiB; the aggregate totals are
in GiB.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, Optional
import logging

logger = logging.getLogger(__name__)

MIB_PER_GIB = 1024
GIB_PER_TIB = 1024


class StorageMetric(str, Enum):
    """Which per-VM storage figure is used as the base storage demand."""
    PROVISIONED = 'provisioned'
    IN_USE = 'inUse'
    DISK_CAPACITY = 'diskCapacity'

    @classmethod
    def parse(cls, value: Any) -> 'StorageMetric':
        """Accept an enum member, its value, or a snake_case spelling."""
        if isinstance(value, cls):
            return value
        aliases = {
            'provisioned': cls.PROVISIONED,
            'inuse': cls.IN_USE,
            'in_use': cls.IN_USE,
            'diskcapacity': cls.DISK_CAPACITY,
            'disk_capacity': cls.DISK_CAPACITY,
        }
        key = str(value).strip().lower()
        if key not in aliases:
            raise ValueError(f"Unknown storage metric: {value}. "
                             f"Valid metrics: provisioned, inUse, diskCapacity")
        return aliases[key]


@dataclass(frozen=True)
class VMRecord:
    """One VM from the filtered inventory."""
    name: str
    vcpus: int
    memory_mib: float
    provisioned_mib: float = 0.0
    in_use_mib: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> 'VMRecord':
        # Inventory exports use vmName/cpus/memory/provisionedMiB/inUseMiB
        return cls(
            name=data.get('name', data.get('vmName', '')),
            vcpus=data.get('vcpus', data.get('cpus', 0)),
            memory_mib=data.get('memory_mib', data.get('memory', 0.0)),
            provisioned_mib=data.get('provisioned_mib', data.get('provisionedMiB', 0.0)),
            in_use_mib=data.get('in_use_mib', data.get('inUseMiB', 0.0)),
        )

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'vcpus': self.vcpus,
            'memory_mib': self.memory_mib,
            'provisioned_mib': self.provisioned_mib,
            'in_use_mib': self.in_use_mib,
        }


@dataclass(frozen=True)
class DiskRecord:
    """One virtual disk, attributed to a VM by name."""
    vm_name: str
    capacity_mib: float

    @classmethod
    def from_dict(cls, data: dict) -> 'DiskRecord':
        return cls(
            vm_name=data.get('vm_name', data.get('vmName', '')),
            capacity_mib=data.get('capacity_mib', data.get('capacityMiB', 0.0)),
        )

    def to_dict(self) -> dict:
        return {'vm_name': self.vm_name, 'capacity_mib': self.capacity_mib}


@dataclass(frozen=True)
class ResourceDemand:
    """
    Aggregate resource demand of the workload, before any overhead or growth.

    ``storage_gib`` is the total under ``storage_metric``; the three
    per-metric totals are kept so the metric can be switched without
    re-aggregating the inventory.
    """
    vcpus: float
    memory_gib: float
    storage_gib: float
    vm_count: int
    storage_metric: StorageMetric = StorageMetric.IN_USE
    provisioned_storage_gib: float = 0.0
    in_use_storage_gib: float = 0.0
    disk_capacity_gib: float = 0.0

    @property
    def is_empty(self) -> bool:
        """True when no VM contributes to the totals."""
        return self.vm_count <= 0

    def storage_for(self, metric: StorageMetric) -> float:
        """Return the base storage total under the given metric."""
        metric = StorageMetric.parse(metric)
        if metric == StorageMetric.PROVISIONED:
            return self.provisioned_storage_gib
        if metric == StorageMetric.DISK_CAPACITY:
            return self.disk_capacity_gib
        return self.in_use_storage_gib

    def with_metric(self, metric: StorageMetric) -> 'ResourceDemand':
        """Return a copy whose ``storage_gib`` follows a different metric."""
        metric = StorageMetric.parse(metric)
        return replace(self, storage_metric=metric, storage_gib=self.storage_for(metric))

    @classmethod
    def from_totals(
        cls,
        vcpus: float,
        memory_gib: float,
        storage_gib: float,
        vm_count: int,
        storage_metric: StorageMetric = StorageMetric.IN_USE,
    ) -> 'ResourceDemand':
        """Build demand directly from totals (no per-VM inventory available)."""
        return cls(
            vcpus=max(0, vcpus),
            memory_gib=max(0.0, memory_gib),
            storage_gib=max(0.0, storage_gib),
            vm_count=max(0, int(vm_count)),
            storage_metric=StorageMetric.parse(storage_metric),
            provisioned_storage_gib=max(0.0, storage_gib),
            in_use_storage_gib=max(0.0, storage_gib),
            disk_capacity_gib=max(0.0, storage_gib),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vcpus': self.vcpus,
            'memory_gib': self.memory_gib,
            'storage_gib': self.storage_gib,
            'vm_count': self.vm_count,
            'storage_metric': self.storage_metric.value,
            'provisioned_storage_gib': self.provisioned_storage_gib,
            'in_use_storage_gib': self.in_use_storage_gib,
            'disk_capacity_gib': self.disk_capacity_gib,
        }


def aggregate_demand(
    vms: Iterable[VMRecord],
    disks: Optional[Iterable[DiskRecord]] = None,
    storage_metric: StorageMetric = StorageMetric.IN_USE,
) -> ResourceDemand:
    """
    Sum the filtered VM inventory into a ResourceDemand.

    Args:
        vms: VMs that count toward demand (already filtered upstream)
        disks: Virtual disks; only disks of VMs in ``vms`` are counted
        storage_metric: Which storage total becomes ``storage_gib``

    Returns:
        ResourceDemand with memory and storage converted to GiB.
        Negative per-VM values are counted as zero.
    """
    metric = StorageMetric.parse(storage_metric)
    vms = list(vms)

    base_vcpus = sum(max(0, vm.vcpus) for vm in vms)
    memory_mib = sum(max(0.0, vm.memory_mib) for vm in vms)
    provisioned_mib = sum(max(0.0, vm.provisioned_mib) for vm in vms)
    in_use_mib = sum(max(0.0, vm.in_use_mib) for vm in vms)

    vm_names = {vm.name for vm in vms}
    disk_mib = sum(
        max(0.0, disk.capacity_mib)
        for disk in (disks or [])
        if disk.vm_name in vm_names
    )

    totals = {
        StorageMetric.PROVISIONED: provisioned_mib / MIB_PER_GIB,
        StorageMetric.IN_USE: in_use_mib / MIB_PER_GIB,
        StorageMetric.DISK_CAPACITY: disk_mib / MIB_PER_GIB,
    }

    demand = ResourceDemand(
        vcpus=base_vcpus,
        memory_gib=memory_mib / MIB_PER_GIB,
        storage_gib=totals[metric],
        vm_count=len(vms),
        storage_metric=metric,
        provisioned_storage_gib=totals[StorageMetric.PROVISIONED],
        in_use_storage_gib=totals[StorageMetric.IN_USE],
        disk_capacity_gib=totals[StorageMetric.DISK_CAPACITY],
    )
    logger.debug("Aggregated %d VMs: %s vCPUs, %.1f GiB memory, %.1f GiB storage (%s)",
                 demand.vm_count, demand.vcpus, demand.memory_gib,
                 demand.storage_gib, metric.value)
    return demand
