"""
Configuration loading and serialization for sizing runs.

Provides JSON-serializable config structures and conversion utilities.
"""

from dataclasses import dataclass, field, asdict, fields
from typing import Optional, List, Any, Dict
import json
import logging
from pathlib import Path

try:
    import json5
    _HAS_JSON5 = True
except ImportError:
    _HAS_JSON5 = False

from .demand import DiskRecord, ResourceDemand, StorageMetric, VMRecord, aggregate_demand
from .exceptions import ProfileNotFoundError
from .model import InfrastructureReservation, NodeProfile, SizingConfig

logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


# --- SizingConfig serialization ---

# camelCase option names, plus the short names used by the sizing calculator UI
_SIZING_ALIASES = {
    "cpuOvercommitRatio": "cpu_overcommit_ratio",
    "memoryOvercommitRatio": "memory_overcommit_ratio",
    "hyperthreadingEnabled": "hyperthreading_enabled",
    "hyperthreadingMultiplier": "hyperthreading_multiplier",
    "replicationFactor": "replication_factor",
    "operationalCapacityFraction": "operational_capacity_fraction",
    "storageOverheadFraction": "storage_overhead_fraction",
    "cpuFixedOverheadPerVM": "cpu_fixed_overhead_per_vm",
    "cpuProportionalOverheadPct": "cpu_proportional_overhead_pct",
    "memoryFixedOverheadPerVM": "memory_fixed_overhead_per_vm_mib",
    "memoryProportionalOverheadPct": "memory_proportional_overhead_pct",
    "annualGrowthRatePercent": "annual_growth_rate_percent",
    "planningHorizonYears": "planning_horizon_years",
    "virtualizationStorageOverheadPercent": "virtualization_storage_overhead_percent",
    "nodeRedundancyBuffer": "node_redundancy_buffer",
    "evictionThresholdPercent": "eviction_threshold_percent",
    "storageOperationalThresholdPercent": "storage_operational_threshold_percent",
    "storageMetric": "storage_metric",
    # Calculator UI names
    "htEnabled": "hyperthreading_enabled",
    "htMultiplier": "hyperthreading_multiplier",
    "replicaFactor": "replication_factor",
    "operationalCapacity": "operational_capacity_fraction",
    "cephOverhead": "storage_overhead_fraction",
    "annualGrowthRate": "annual_growth_rate_percent",
    "virtualizationOverhead": "virtualization_storage_overhead_percent",
    "nodeRedundancy": "node_redundancy_buffer",
    "evictionThreshold": "eviction_threshold_percent",
    "storageOperationalThreshold": "storage_operational_threshold_percent",
}

# Calculator UI names that hold percentages of a fraction field
_PERCENT_ALIASES = {"operationalCapacity", "cephOverhead"}

_INT_FIELDS = {"replication_factor", "node_redundancy_buffer",
               "minimum_quorum_nodes", "rack_group_size"}

# Parameters a sweep may vary (all numeric SizingConfig fields)
SWEEPABLE_PARAMETERS = [
    "cpu_overcommit_ratio",
    "memory_overcommit_ratio",
    "hyperthreading_multiplier",
    "replication_factor",
    "operational_capacity_fraction",
    "storage_overhead_fraction",
    "cpu_fixed_overhead_per_vm",
    "cpu_proportional_overhead_pct",
    "memory_fixed_overhead_per_vm_mib",
    "memory_proportional_overhead_pct",
    "annual_growth_rate_percent",
    "planning_horizon_years",
    "virtualization_storage_overhead_percent",
    "node_redundancy_buffer",
    "eviction_threshold_percent",
    "storage_operational_threshold_percent",
]


def reservation_from_dict(data: dict) -> InfrastructureReservation:
    defaults = InfrastructureReservation()
    return InfrastructureReservation(**{
        f.name: data.get(f.name, getattr(defaults, f.name))
        for f in fields(InfrastructureReservation)
    })


def sizing_config_from_dict(data: Optional[dict]) -> SizingConfig:
    """
    Build a SizingConfig from a dict, filling in defaults for missing keys.

    Accepts the snake_case field names and the camelCase aliases above.
    Unknown keys are skipped with a warning.
    """
    data = data or {}
    known = {f.name for f in fields(SizingConfig)}
    kwargs: Dict[str, Any] = {}
    for key, value in data.items():
        name = _SIZING_ALIASES.get(key, key)
        if name == "reservation":
            continue
        if name not in known:
            logger.warning("Ignoring unknown sizing option: %s", key)
            continue
        if name == "storage_metric":
            value = StorageMetric.parse(value)
        elif name in _INT_FIELDS and value is not None:
            value = int(value)
        elif key in _PERCENT_ALIASES and value is not None:
            value = value / 100
        kwargs[name] = value
    if data.get("reservation"):
        kwargs["reservation"] = reservation_from_dict(data["reservation"])
    return SizingConfig(**kwargs)


def sizing_config_to_dict(config: SizingConfig) -> dict:
    d = {}
    for f in fields(SizingConfig):
        value = getattr(config, f.name)
        if f.name == "reservation":
            value = asdict(value)
        elif f.name == "storage_metric":
            value = value.value
        d[f.name] = value
    return d


# --- Config Dataclasses ---

@dataclass
class ProfileSpec:
    """Specification for a node hardware profile.

    Args:
        physical_cores: Physical CPU cores per node
        vcpus: Hardware threads per node (informational)
        memory_gib: Installed memory per node
        flash_device_count: Local NVMe devices per node (0 = diskless)
        flash_device_capacity_gib: Capacity of each device
    """
    physical_cores: int = 48
    vcpus: int = 96
    memory_gib: float = 384.0
    flash_device_count: int = 0
    flash_device_capacity_gib: float = 0.0
    supports_special_deployment: bool = True
    is_custom: bool = False
    description: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ProfileSpec":
        return cls(
            physical_cores=data.get("physical_cores", 48),
            vcpus=data.get("vcpus", 96),
            memory_gib=data.get("memory_gib", 384.0),
            flash_device_count=data.get("flash_device_count", 0),
            flash_device_capacity_gib=data.get("flash_device_capacity_gib", 0.0),
            supports_special_deployment=data.get("supports_special_deployment", True),
            is_custom=data.get("is_custom", False),
            description=data.get("description", ""),
        )

    def to_node_profile(self, name: str) -> NodeProfile:
        return NodeProfile(
            name=name,
            physical_cores=self.physical_cores,
            memory_gib=self.memory_gib,
            vcpus=self.vcpus,
            flash_device_count=self.flash_device_count,
            flash_device_capacity_gib=self.flash_device_capacity_gib,
            supports_special_deployment=self.supports_special_deployment,
            is_custom=self.is_custom,
            description=self.description,
        )


@dataclass
class ProfileCatalogSpec:
    """Container for named node profiles."""
    profiles: Dict[str, ProfileSpec] = field(default_factory=dict)

    def __post_init__(self):
        if not self.profiles:
            self.profiles = {
                "bx2d-metal-96x384": ProfileSpec(
                    physical_cores=48, vcpus=96, memory_gib=384.0,
                    flash_device_count=8, flash_device_capacity_gib=3200.0,
                    description="Bare metal with local NVMe"),
                "bx2-metal-96x384": ProfileSpec(
                    physical_cores=48, vcpus=96, memory_gib=384.0,
                    description="Bare metal, diskless"),
            }

    def to_dict(self) -> dict:
        return {name: spec.to_dict() for name, spec in self.profiles.items()}

    @classmethod
    def from_dict(cls, data: dict) -> "ProfileCatalogSpec":
        return cls(profiles={name: ProfileSpec.from_dict(spec)
                             for name, spec in data.items()})

    def get(self, name: str) -> NodeProfile:
        """Get a profile by name as a NodeProfile."""
        if name not in self.profiles:
            raise ProfileNotFoundError(name, list(self.profiles.keys()))
        return self.profiles[name].to_node_profile(name)

    def all(self) -> List[NodeProfile]:
        return [spec.to_node_profile(name) for name, spec in self.profiles.items()]


@dataclass
class DemandTotalsSpec:
    """Workload demand given directly as totals."""
    vcpus: float = 0.0
    memory_gib: float = 0.0
    storage_gib: float = 0.0
    vm_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DemandTotalsSpec":
        return cls(
            vcpus=data.get("vcpus", 0.0),
            memory_gib=data.get("memory_gib", 0.0),
            storage_gib=data.get("storage_gib", 0.0),
            vm_count=data.get("vm_count", 0),
        )


@dataclass
class InventorySpec:
    """Workload inventory: per-VM records, or totals when no records are given."""
    vms: List[VMRecord] = field(default_factory=list)
    disks: List[DiskRecord] = field(default_factory=list)
    totals: Optional[DemandTotalsSpec] = None

    def to_dict(self) -> dict:
        d = {
            "vms": [vm.to_dict() for vm in self.vms],
            "disks": [disk.to_dict() for disk in self.disks],
        }
        d["totals"] = self.totals.to_dict() if self.totals is not None else None
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "InventorySpec":
        totals = None
        if data.get("totals"):
            totals = DemandTotalsSpec.from_dict(data["totals"])
        return cls(
            vms=[VMRecord.from_dict(vm) for vm in data.get("vms", [])],
            disks=[DiskRecord.from_dict(disk) for disk in data.get("disks", [])],
            totals=totals,
        )

    def to_demand(self, storage_metric: StorageMetric = StorageMetric.IN_USE) -> ResourceDemand:
        """Aggregate the inventory into demand under the given storage metric."""
        if self.vms or self.totals is None:
            return aggregate_demand(self.vms, self.disks, storage_metric)
        return ResourceDemand.from_totals(
            vcpus=self.totals.vcpus,
            memory_gib=self.totals.memory_gib,
            storage_gib=self.totals.storage_gib,
            vm_count=self.totals.vm_count,
            storage_metric=storage_metric,
        )


@dataclass
class SweepSpec:
    """Specification for a parameter sweep."""
    parameter: str
    values: List[float]

    def to_dict(self) -> dict:
        return {
            "parameter": self.parameter,
            "values": self.values,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SweepSpec":
        return cls(
            parameter=data["parameter"],
            values=data["values"],
        )


@dataclass
class SizingRunConfig:
    """
    Complete sizing run configuration.

    This is the top-level config that gets serialized to/from JSON.
    """
    name: str
    description: str = ""
    profiles: ProfileCatalogSpec = field(default_factory=ProfileCatalogSpec)
    profile: Optional[str] = None  # Restrict the run to one profile
    inventory: InventorySpec = field(default_factory=InventorySpec)
    sizing: SizingConfig = field(default_factory=SizingConfig)
    failed_nodes: Optional[int] = None  # Defaults to the redundancy buffer
    sweep: Optional[SweepSpec] = None
    output_dir: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert config to JSON-serializable dict."""
        return {
            "name": self.name,
            "description": self.description,
            "profiles": self.profiles.to_dict(),
            "profile": self.profile,
            "inventory": self.inventory.to_dict(),
            "sizing": sizing_config_to_dict(self.sizing),
            "failed_nodes": self.failed_nodes,
            "sweep": self.sweep.to_dict() if self.sweep is not None else None,
            "output_dir": self.output_dir,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SizingRunConfig":
        """Create config from dict (e.g., from JSON)."""
        sweep = None
        if data.get("sweep"):
            sweep = SweepSpec.from_dict(data["sweep"])

        return cls(
            name=data.get("name", "unnamed"),
            description=data.get("description", ""),
            profiles=ProfileCatalogSpec.from_dict(data.get("profiles", {})),
            profile=data.get("profile"),
            inventory=InventorySpec.from_dict(data.get("inventory", {})),
            sizing=sizing_config_from_dict(data.get("sizing", {})),
            failed_nodes=data.get("failed_nodes"),
            sweep=sweep,
            output_dir=data.get("output_dir"),
        )

    def is_sweep(self) -> bool:
        """Return True if this config specifies a sweep."""
        return self.sweep is not None

    def selected_profiles(self) -> List[NodeProfile]:
        """Profiles this run evaluates: the named one, or the whole catalog."""
        if self.profile:
            return [self.profiles.get(self.profile)]
        return self.profiles.all()

    def demand(self) -> ResourceDemand:
        return self.inventory.to_demand(self.sizing.storage_metric)


def load_config(path: str | Path) -> SizingRunConfig:
    """
    Load a sizing run configuration from a JSON file.

    Supports JSON with comments (JSONC) if json5 is installed.

    Raises:
        FileNotFoundError: If config file doesn't exist
        json.JSONDecodeError: If JSON is invalid
        ValueError: If a value (e.g. the storage metric) is invalid
    """
    path = Path(path)
    with open(path, 'r') as f:
        if _HAS_JSON5:
            data = json5.load(f)
        else:
            data = json.load(f)
    return SizingRunConfig.from_dict(data)


def save_config(config: SizingRunConfig, path: str | Path) -> None:
    """Save a sizing run configuration to a JSON file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)


def validate_sizing_config(sizing: SizingConfig) -> List[str]:
    """Range checks on the sizing ratios. Returns a list of error messages."""
    errors = []

    for name in ("cpu_overcommit_ratio", "memory_overcommit_ratio", "hyperthreading_multiplier"):
        value = getattr(sizing, name)
        if value <= 0:
            errors.append(f"{name} must be positive, got {value}")

    if sizing.hyperthreading_enabled and sizing.hyperthreading_multiplier <= 1:
        errors.append(f"hyperthreading_multiplier must be > 1 when hyperthreading is enabled, "
                      f"got {sizing.hyperthreading_multiplier}")

    if sizing.replication_factor < 1:
        errors.append(f"replication_factor must be >= 1, got {sizing.replication_factor}")

    for name in ("operational_capacity_fraction", "storage_overhead_fraction"):
        value = getattr(sizing, name)
        if not 0.0 <= value <= 1.0:
            errors.append(f"{name} must be in [0, 1], got {value}")

    for name in ("cpu_proportional_overhead_pct", "memory_proportional_overhead_pct",
                 "eviction_threshold_percent", "storage_operational_threshold_percent"):
        value = getattr(sizing, name)
        if value is not None and not 0.0 <= value <= 100.0:
            errors.append(f"{name} must be in [0, 100], got {value}")

    for name in ("cpu_fixed_overhead_per_vm", "memory_fixed_overhead_per_vm_mib",
                 "annual_growth_rate_percent", "planning_horizon_years",
                 "virtualization_storage_overhead_percent"):
        value = getattr(sizing, name)
        if value < 0:
            errors.append(f"{name} must be non-negative, got {value}")

    if sizing.node_redundancy_buffer < 0:
        errors.append(f"node_redundancy_buffer must be >= 0, got {sizing.node_redundancy_buffer}")

    return errors


def validate_config(config: SizingRunConfig) -> List[str]:
    """
    Validate a configuration and return list of error messages.

    Returns empty list if config is valid.
    """
    errors = []

    if not config.name or not config.name.strip():
        errors.append("Config must have a non-empty 'name'")

    errors.extend(validate_sizing_config(config.sizing))

    for name, spec in config.profiles.profiles.items():
        if spec.physical_cores < 0:
            errors.append(f"Profile '{name}' physical_cores must be non-negative")
        if spec.memory_gib < 0:
            errors.append(f"Profile '{name}' memory_gib must be non-negative")
        if spec.flash_device_count < 0:
            errors.append(f"Profile '{name}' flash_device_count must be non-negative")
        if spec.flash_device_capacity_gib < 0:
            errors.append(f"Profile '{name}' flash_device_capacity_gib must be non-negative")

    if config.profile and config.profile not in config.profiles.profiles:
        errors.append(f"Unknown profile: {config.profile}. "
                      f"Available: {list(config.profiles.profiles.keys())}")

    if config.failed_nodes is not None and config.failed_nodes < 0:
        errors.append(f"failed_nodes must be >= 0, got {config.failed_nodes}")

    if config.sweep:
        if config.sweep.parameter not in SWEEPABLE_PARAMETERS:
            errors.append(f"Invalid sweep parameter: {config.sweep.parameter}. "
                          f"Valid: {SWEEPABLE_PARAMETERS}")
        if not config.sweep.values:
            errors.append("Sweep must have at least one value")

    return errors
