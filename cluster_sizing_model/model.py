"""
Cluster Sizing and Redundancy Validation Model

This module sizes a cluster of physical nodes for a fleet of virtual machines
and checks that the sized cluster survives node failures:
- CapacityModel: usable vCPU / memory / storage of one node profile
- RequirementCalculator: node count per resource dimension, limiting
  dimension, rounded to the fault-domain group size
- RedundancyValidator: utilization after N node failures against the
  eviction and storage operational thresholds, plus storage quorum

Every stage is a pure function of its inputs. Zero capacities and empty
clusters produce zero or ``math.inf`` results instead of exceptions.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple
import logging
import math

from .demand import MIB_PER_GIB, ResourceDemand, StorageMetric
from .utils import nodes_needed, round_up_to_group, safe_divide

logger = logging.getLogger(__name__)

# Storage consensus needs three surviving nodes
MINIMUM_QUORUM_NODES = 3
# Nodes are spread evenly over three rack fault domains
RACK_GROUP_SIZE = 3


class LimitingFactor(str, Enum):
    """Resource dimension that drives the node count."""
    CPU = 'cpu'
    MEMORY = 'memory'
    STORAGE = 'storage'


@dataclass(frozen=True)
class NodeProfile:
    """Hardware profile of one candidate node type."""
    name: str
    physical_cores: int
    memory_gib: float
    vcpus: int = 0  # Hardware threads, informational
    flash_device_count: int = 0
    flash_device_capacity_gib: float = 0.0
    supports_special_deployment: bool = True
    is_custom: bool = False
    description: str = ""

    @property
    def has_local_flash(self) -> bool:
        return self.flash_device_count > 0 and self.flash_device_capacity_gib > 0

    @property
    def raw_storage_gib(self) -> float:
        """Local flash capacity before replication and overhead."""
        return max(0, self.flash_device_count) * max(0.0, self.flash_device_capacity_gib)


@dataclass(frozen=True)
class InfrastructureReservation:
    """
    Per-node CPU and memory held back for the platform.

    reserved = system + storage base + flash devices * per-device cost.
    """
    system_cpu_cores: float = 1.0
    system_memory_gib: float = 4.0
    storage_base_cpu_cores: float = 5.0
    storage_base_memory_gib: float = 21.0
    per_device_cpu_cores: float = 2.0
    per_device_memory_gib: float = 5.0

    def cpu_cores(self, device_count: int) -> float:
        return (self.system_cpu_cores + self.storage_base_cpu_cores
                + max(0, device_count) * self.per_device_cpu_cores)

    def memory_gib(self, device_count: int) -> float:
        return (self.system_memory_gib + self.storage_base_memory_gib
                + max(0, device_count) * self.per_device_memory_gib)

    @classmethod
    def none(cls) -> 'InfrastructureReservation':
        """A reservation that holds nothing back."""
        return cls(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class SizingConfig:
    """
    Tunable ratios and policy for one sizing calculation.

    Fractions are in [0, 1]; fields ending in ``_pct`` / ``_percent`` are
    percentages in [0, 100].
    """
    # Node capacity
    cpu_overcommit_ratio: float = 1.8
    memory_overcommit_ratio: float = 1.0  # 1.0 = no memory overcommit
    hyperthreading_enabled: bool = True
    hyperthreading_multiplier: float = 1.25  # HT efficiency, not 2x
    replication_factor: int = 3
    operational_capacity_fraction: float = 0.75
    storage_overhead_fraction: float = 0.15

    # Virtualization overhead per VM (fixed) and on raw totals (proportional)
    cpu_fixed_overhead_per_vm: float = 0.27
    cpu_proportional_overhead_pct: float = 3.0
    memory_fixed_overhead_per_vm_mib: float = 378.0
    memory_proportional_overhead_pct: float = 3.0

    # Storage growth and overhead (snapshots, clones, migration scratch)
    annual_growth_rate_percent: float = 20.0
    planning_horizon_years: float = 2.0
    virtualization_storage_overhead_percent: float = 15.0

    # Redundancy
    node_redundancy_buffer: int = 2
    eviction_threshold_percent: float = 96.0
    storage_operational_threshold_percent: Optional[float] = None  # Defaults to operational capacity

    storage_metric: StorageMetric = StorageMetric.IN_USE
    reservation: InfrastructureReservation = field(default_factory=InfrastructureReservation)

    # Fixed policy
    minimum_quorum_nodes: int = MINIMUM_QUORUM_NODES
    rack_group_size: int = RACK_GROUP_SIZE

    @property
    def storage_operational_threshold(self) -> float:
        """Storage utilization ceiling (%) tolerated after failures."""
        if self.storage_operational_threshold_percent is not None:
            return self.storage_operational_threshold_percent
        return self.operational_capacity_fraction * 100

    @property
    def growth_multiplier(self) -> float:
        """Compounded storage growth over the planning horizon."""
        return (1 + self.annual_growth_rate_percent / 100) ** self.planning_horizon_years

    @property
    def storage_overhead_multiplier(self) -> float:
        return 1 + self.virtualization_storage_overhead_percent / 100

    def replace(self, **changes) -> 'SizingConfig':
        """Return a copy with some fields changed."""
        return replace(self, **changes)


@dataclass(frozen=True)
class CapacityModelResult:
    """Usable capacity of a single node, plus the intermediate values."""
    usable_vcpus: int
    usable_memory_gib: int
    max_usable_storage_gib: int  # After replication and storage overhead
    usable_storage_gib: int      # After operational headroom as well
    raw_storage_gib: float
    storage_efficiency: float
    available_cores: float
    effective_cores: float
    available_memory_gib: float
    reserved_cpu_cores: float
    reserved_memory_gib: float

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)


@dataclass(frozen=True)
class NodeRequirements:
    """Adjusted demand and the node counts derived from it."""
    # Demand before and after overhead / growth
    base_vcpus: float
    base_memory_gib: float
    base_storage_gib: float
    cpu_overhead_fixed: float
    cpu_overhead_proportional: float
    memory_overhead_gib: float
    total_vcpus: int
    total_memory_gib: float
    total_storage_gib: float
    growth_multiplier: float
    storage_overhead_multiplier: float
    storage_metric: StorageMetric

    # Node counts at full usable capacity
    nodes_for_cpu: int
    nodes_for_memory: int
    nodes_for_storage: int

    # Node counts at the eviction threshold
    nodes_for_cpu_at_threshold: int
    nodes_for_memory_at_threshold: int
    nodes_for_storage_at_threshold: int

    min_surviving_nodes: int
    pre_rounding_total: int
    base_nodes: int  # Without redundancy buffer or threshold, for display
    total_nodes: int
    limiting_factor: LimitingFactor
    vm_count: int
    node_redundancy_buffer: int

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)


@dataclass(frozen=True)
class RedundancyValidation:
    """Outcome of simulating node failures against the sized cluster."""
    total_nodes: int
    failed_nodes: int
    surviving_nodes: int
    eviction_threshold: float
    storage_operational_threshold: float

    cpu_util_healthy: float
    memory_util_healthy: float
    storage_util_healthy: float

    # math.inf when no node survives
    cpu_util_after_failure: float
    memory_util_after_failure: float
    storage_util_after_failure: float

    cpu_passes: bool
    memory_passes: bool
    storage_passes: bool
    quorum_passes: bool
    all_passes: bool

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)


def _to_dict(obj) -> Dict[str, Any]:
    """Flatten a result dataclass into JSON-friendly values."""
    d = {}
    for name in obj.__dataclass_fields__:
        value = getattr(obj, name)
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, float) and math.isinf(value):
            value = None  # No finite value; JSON has no infinity
        d[name] = value
    return d


# --- CapacityModel ---

def compute_node_capacity(profile: NodeProfile, config: SizingConfig) -> CapacityModelResult:
    """
    Compute the usable capacity of one node of the given profile.

    CPU:     floor((cores - reserved) x HT multiplier x CPU overcommit)
    Memory:  floor((memory - reserved) x memory overcommit)
    Storage: floor(floor(raw x 1/replicas x (1 - overhead)) x operational fraction)

    Reservations larger than the profile clamp to zero rather than going
    negative.
    """
    devices = max(0, profile.flash_device_count)
    reserved_cpu = config.reservation.cpu_cores(devices)
    reserved_memory = config.reservation.memory_gib(devices)

    available_cores = max(0, profile.physical_cores - reserved_cpu)
    if config.hyperthreading_enabled:
        effective_cores = available_cores * config.hyperthreading_multiplier
    else:
        effective_cores = available_cores
    usable_vcpus = max(0, math.floor(effective_cores * config.cpu_overcommit_ratio))

    available_memory = max(0, profile.memory_gib - reserved_memory)
    usable_memory = max(0, math.floor(available_memory * config.memory_overcommit_ratio))

    raw_storage = profile.raw_storage_gib
    storage_efficiency = (safe_divide(1, config.replication_factor)
                          * max(0.0, 1 - config.storage_overhead_fraction))
    max_usable_storage = max(0, math.floor(raw_storage * storage_efficiency))
    usable_storage = max(0, math.floor(max_usable_storage * config.operational_capacity_fraction))

    return CapacityModelResult(
        usable_vcpus=usable_vcpus,
        usable_memory_gib=usable_memory,
        max_usable_storage_gib=max_usable_storage,
        usable_storage_gib=usable_storage,
        raw_storage_gib=raw_storage,
        storage_efficiency=storage_efficiency,
        available_cores=available_cores,
        effective_cores=effective_cores,
        available_memory_gib=available_memory,
        reserved_cpu_cores=reserved_cpu,
        reserved_memory_gib=reserved_memory,
    )


# --- RequirementCalculator ---

def _limiting_factor(counts, capacities) -> LimitingFactor:
    """
    Pick the dimension with the most threshold-state nodes.

    Evaluated in the order CPU, memory, storage; a later dimension takes over
    on a tie (>=). Dimensions with no usable capacity never participate.
    """
    limiting = LimitingFactor.CPU
    worst = None
    for factor in (LimitingFactor.CPU, LimitingFactor.MEMORY, LimitingFactor.STORAGE):
        if capacities[factor] <= 0:
            continue
        if worst is None or counts[factor] >= worst:
            limiting, worst = factor, counts[factor]
    return limiting


def compute_node_requirements(
    demand: ResourceDemand,
    capacity: CapacityModelResult,
    config: SizingConfig,
) -> NodeRequirements:
    """
    Derive the node count needed to host ``demand`` on nodes of ``capacity``.

    CPU and memory are sized against usable capacity scaled down to the
    eviction threshold; storage is sized against usable storage as is, since
    the operational fraction already holds its headroom. The largest count
    (at least the quorum), plus the redundancy buffer, is rounded up to the
    rack group size.
    """
    vm_count = demand.vm_count

    # CPU: fixed cost per running VM plus a share of the raw vCPUs
    cpu_overhead_fixed = vm_count * config.cpu_fixed_overhead_per_vm
    cpu_overhead_proportional = demand.vcpus * config.cpu_proportional_overhead_pct / 100
    total_vcpus = math.ceil(demand.vcpus + cpu_overhead_fixed + cpu_overhead_proportional)

    memory_overhead_gib = (
        vm_count * config.memory_fixed_overhead_per_vm_mib / MIB_PER_GIB
        + demand.memory_gib * config.memory_proportional_overhead_pct / 100
    )
    total_memory = demand.memory_gib + memory_overhead_gib

    growth_multiplier = config.growth_multiplier
    storage_overhead_multiplier = config.storage_overhead_multiplier
    total_storage = demand.storage_gib * growth_multiplier * storage_overhead_multiplier

    nodes_for_cpu = nodes_needed(total_vcpus, capacity.usable_vcpus)
    nodes_for_memory = nodes_needed(total_memory, capacity.usable_memory_gib)
    nodes_for_storage = nodes_needed(total_storage, capacity.usable_storage_gib)

    eviction_factor = config.eviction_threshold_percent / 100
    threshold_capacity = {
        LimitingFactor.CPU: capacity.usable_vcpus * eviction_factor,
        LimitingFactor.MEMORY: capacity.usable_memory_gib * eviction_factor,
        LimitingFactor.STORAGE: capacity.usable_storage_gib,
    }
    threshold_counts = {
        LimitingFactor.CPU: nodes_needed(total_vcpus, threshold_capacity[LimitingFactor.CPU]),
        LimitingFactor.MEMORY: nodes_needed(total_memory, threshold_capacity[LimitingFactor.MEMORY]),
        LimitingFactor.STORAGE: nodes_needed(total_storage, threshold_capacity[LimitingFactor.STORAGE]),
    }

    quorum = config.minimum_quorum_nodes
    redundancy = max(0, config.node_redundancy_buffer)
    min_surviving = max(quorum, *threshold_counts.values())
    pre_rounding_total = min_surviving + redundancy
    total_nodes = round_up_to_group(pre_rounding_total, config.rack_group_size)
    base_nodes = round_up_to_group(
        max(quorum, nodes_for_cpu, nodes_for_memory, nodes_for_storage),
        config.rack_group_size,
    )
    limiting = _limiting_factor(threshold_counts, threshold_capacity)

    logger.debug(
        "Sized %d VMs: cpu=%d memory=%d storage=%d nodes at threshold, "
        "%d + %d redundancy -> %d nodes (limited by %s)",
        vm_count, threshold_counts[LimitingFactor.CPU],
        threshold_counts[LimitingFactor.MEMORY],
        threshold_counts[LimitingFactor.STORAGE],
        min_surviving, redundancy, total_nodes, limiting.value,
    )

    return NodeRequirements(
        base_vcpus=demand.vcpus,
        base_memory_gib=demand.memory_gib,
        base_storage_gib=demand.storage_gib,
        cpu_overhead_fixed=cpu_overhead_fixed,
        cpu_overhead_proportional=cpu_overhead_proportional,
        memory_overhead_gib=memory_overhead_gib,
        total_vcpus=total_vcpus,
        total_memory_gib=total_memory,
        total_storage_gib=total_storage,
        growth_multiplier=growth_multiplier,
        storage_overhead_multiplier=storage_overhead_multiplier,
        storage_metric=demand.storage_metric,
        nodes_for_cpu=nodes_for_cpu,
        nodes_for_memory=nodes_for_memory,
        nodes_for_storage=nodes_for_storage,
        nodes_for_cpu_at_threshold=threshold_counts[LimitingFactor.CPU],
        nodes_for_memory_at_threshold=threshold_counts[LimitingFactor.MEMORY],
        nodes_for_storage_at_threshold=threshold_counts[LimitingFactor.STORAGE],
        min_surviving_nodes=min_surviving,
        pre_rounding_total=pre_rounding_total,
        base_nodes=base_nodes,
        total_nodes=total_nodes,
        limiting_factor=limiting,
        vm_count=vm_count,
        node_redundancy_buffer=redundancy,
    )


# --- RedundancyValidator ---

def _utilization_pct(load_per_node: float, capacity_per_node: float) -> float:
    """Per-node load as a percentage of capacity (0 when there is no capacity)."""
    if capacity_per_node <= 0:
        return 0.0
    return load_per_node / capacity_per_node * 100


def validate_redundancy(
    requirements: Optional[NodeRequirements],
    capacity: CapacityModelResult,
    failed_nodes: Optional[int] = None,
    config: Optional[SizingConfig] = None,
) -> Optional[RedundancyValidation]:
    """
    Check whether the sized cluster carries the workload after node failures.

    Args:
        requirements: Output of compute_node_requirements (None passes through)
        capacity: Per-node usable capacity
        failed_nodes: Nodes lost at once (default: the redundancy buffer)
        config: Thresholds to check against

    Returns:
        RedundancyValidation, or None when there are no requirements.
        With no surviving node the post-failure utilization is ``math.inf``
        and every load check fails.
    """
    if requirements is None:
        return None
    config = config or SizingConfig()
    if failed_nodes is None:
        failed_nodes = config.node_redundancy_buffer
    failed_nodes = max(0, failed_nodes)

    total_nodes = requirements.total_nodes
    surviving = max(0, total_nodes - failed_nodes)

    cpu_load = safe_divide(requirements.total_vcpus, surviving, math.inf)
    memory_load = safe_divide(requirements.total_memory_gib, surviving, math.inf)
    storage_load = safe_divide(requirements.total_storage_gib, surviving, math.inf)

    # Storage utilization is measured against the pre-headroom usable
    # capacity; the operational threshold is the headroom.
    cpu_util = _utilization_pct(cpu_load, capacity.usable_vcpus)
    memory_util = _utilization_pct(memory_load, capacity.usable_memory_gib)
    storage_util = _utilization_pct(storage_load, capacity.max_usable_storage_gib)

    eviction = config.eviction_threshold_percent
    storage_threshold = config.storage_operational_threshold

    cpu_passes = cpu_util <= eviction
    memory_passes = memory_util <= eviction
    # Diskless profiles do not provision storage locally
    storage_passes = storage_util <= storage_threshold or capacity.usable_storage_gib == 0
    quorum_passes = surviving >= config.minimum_quorum_nodes
    all_passes = cpu_passes and memory_passes and storage_passes and quorum_passes

    cpu_healthy = _utilization_pct(
        safe_divide(requirements.total_vcpus, total_nodes), capacity.usable_vcpus)
    memory_healthy = _utilization_pct(
        safe_divide(requirements.total_memory_gib, total_nodes), capacity.usable_memory_gib)
    storage_healthy = _utilization_pct(
        safe_divide(requirements.total_storage_gib, total_nodes), capacity.max_usable_storage_gib)

    if not all_passes:
        logger.info("N+%d validation failed on %d nodes: cpu=%s memory=%s storage=%s quorum=%s",
                    failed_nodes, total_nodes, cpu_passes, memory_passes,
                    storage_passes, quorum_passes)

    return RedundancyValidation(
        total_nodes=total_nodes,
        failed_nodes=failed_nodes,
        surviving_nodes=surviving,
        eviction_threshold=eviction,
        storage_operational_threshold=storage_threshold,
        cpu_util_healthy=cpu_healthy,
        memory_util_healthy=memory_healthy,
        storage_util_healthy=storage_healthy,
        cpu_util_after_failure=cpu_util,
        memory_util_after_failure=memory_util,
        storage_util_after_failure=storage_util,
        cpu_passes=cpu_passes,
        memory_passes=memory_passes,
        storage_passes=storage_passes,
        quorum_passes=quorum_passes,
        all_passes=all_passes,
    )


# --- Pipeline ---

def compute_sizing(
    demand: Optional[ResourceDemand],
    profile: Optional[NodeProfile],
    config: SizingConfig,
) -> Tuple[Optional[CapacityModelResult], Optional[NodeRequirements]]:
    """
    Run capacity and requirement stages for one profile.

    Returns ``(capacity, requirements)``. Without a profile both are None;
    with an empty inventory the requirements are None, so a misleadingly
    small cluster is never reported.
    """
    if profile is None:
        logger.info("No node profile selected; skipping sizing")
        return None, None

    capacity = compute_node_capacity(profile, config)
    if demand is None or demand.is_empty:
        logger.info("Empty inventory; no node requirements for %s", profile.name)
        return capacity, None

    if demand.storage_metric != config.storage_metric:
        demand = demand.with_metric(config.storage_metric)
    return capacity, compute_node_requirements(demand, capacity, config)


@lru_cache(maxsize=256)
def cached_compute_sizing(
    demand: Optional[ResourceDemand],
    profile: Optional[NodeProfile],
    config: SizingConfig,
) -> Tuple[Optional[CapacityModelResult], Optional[NodeRequirements]]:
    """compute_sizing memoized on its (immutable) inputs."""
    return compute_sizing(demand, profile, config)


@dataclass(frozen=True)
class SizingOutcome:
    """Capacity, requirements and redundancy check for one profile."""
    profile: NodeProfile
    capacity: CapacityModelResult
    requirements: Optional[NodeRequirements]
    validation: Optional[RedundancyValidation]

    @property
    def total_nodes(self) -> Optional[int]:
        return self.requirements.total_nodes if self.requirements else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'profile': self.profile.name,
            'capacity': self.capacity.to_dict(),
            'requirements': self.requirements.to_dict() if self.requirements else None,
            'validation': self.validation.to_dict() if self.validation else None,
        }


class ClusterSizingModel:
    """
    Sizing pipeline bound to one SizingConfig.

    Example:
        model = ClusterSizingModel(SizingConfig(cpu_overcommit_ratio=4))
        outcome = model.evaluate(demand, profile)
        print(outcome.requirements.total_nodes, outcome.validation.all_passes)
    """

    def __init__(self, config: Optional[SizingConfig] = None):
        self.config = config or SizingConfig()

    def node_capacity(self, profile: NodeProfile) -> CapacityModelResult:
        return compute_node_capacity(profile, self.config)

    def evaluate(
        self,
        demand: ResourceDemand,
        profile: NodeProfile,
        failed_nodes: Optional[int] = None,
    ) -> SizingOutcome:
        """Size the cluster for one profile and validate it against failures."""
        capacity, requirements = cached_compute_sizing(demand, profile, self.config)
        validation = validate_redundancy(requirements, capacity, failed_nodes, self.config)
        return SizingOutcome(
            profile=profile,
            capacity=capacity,
            requirements=requirements,
            validation=validation,
        )
