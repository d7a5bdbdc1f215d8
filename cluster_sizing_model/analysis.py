"""
Analysis utilities for comparing node profiles and breaking down a sized cluster.

Example: Compare every profile in a catalog for one workload
    from cluster_sizing_model.analysis import compare_profiles

    result = compare_profiles(demand, profiles, SizingConfig(), baseline_idx=0)
    for name, diff in result['comparisons'].items():
        print(name, diff['nodes_diff_abs'])

Example: Cluster-wide view of a sizing result
    capacity, req = compute_sizing(demand, profile, config)
    breakdown = cluster_breakdown(profile, capacity, req, config)
    print(breakdown['storage']['free_raw_gib'])
"""

from typing import Optional, Dict, Any, List
import math

from .demand import GIB_PER_TIB, ResourceDemand
from .model import (
    CapacityModelResult, ClusterSizingModel, NodeProfile, NodeRequirements,
    SizingConfig,
)
from .utils import safe_divide


def evaluate_profiles(
    demand: ResourceDemand,
    profiles: List[NodeProfile],
    config: Optional[SizingConfig] = None,
    failed_nodes: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Size the cluster for each profile and return flat result dicts.

    Profiles that yield no requirements (empty inventory) report
    ``total_nodes`` and ``all_passes`` as None.
    """
    model = ClusterSizingModel(config)
    results = []

    for profile in profiles:
        outcome = model.evaluate(demand, profile, failed_nodes)
        req = outcome.requirements
        validation = outcome.validation

        results.append({
            'name': profile.name,
            'physical_cores': profile.physical_cores,
            'memory_gib': profile.memory_gib,
            'flash_device_count': profile.flash_device_count,
            'has_local_flash': profile.has_local_flash,
            'usable_vcpus': outcome.capacity.usable_vcpus,
            'usable_memory_gib': outcome.capacity.usable_memory_gib,
            'usable_storage_gib': outcome.capacity.usable_storage_gib,
            'total_nodes': req.total_nodes if req else None,
            'nodes_for_cpu': req.nodes_for_cpu_at_threshold if req else None,
            'nodes_for_memory': req.nodes_for_memory_at_threshold if req else None,
            'nodes_for_storage': req.nodes_for_storage_at_threshold if req else None,
            'limiting_factor': req.limiting_factor.value if req else None,
            'all_passes': validation.all_passes if validation else None,
        })

    return results


def compare_profiles(
    demand: ResourceDemand,
    profiles: List[NodeProfile],
    config: Optional[SizingConfig] = None,
    baseline_idx: int = 0,
    failed_nodes: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Compare node counts across profiles relative to a baseline profile.

    Returns:
        Dict with per-profile results, comparisons and summary
    """
    results = evaluate_profiles(demand, profiles, config, failed_nodes)

    if not results:
        return {'profiles': [], 'comparisons': {}, 'summary': {}}

    baseline = results[baseline_idx]

    comparisons = {}
    for i, r in enumerate(results):
        if i == baseline_idx:
            continue
        if r['total_nodes'] is None or baseline['total_nodes'] is None:
            comparisons[r['name']] = {'nodes_diff_pct': None, 'nodes_diff_abs': None}
            continue
        comparisons[r['name']] = {
            'nodes_diff_pct': _pct_diff(r['total_nodes'], baseline['total_nodes']),
            'nodes_diff_abs': r['total_nodes'] - baseline['total_nodes'],
        }

    summary = {
        'baseline': baseline['name'],
        'vm_count': demand.vm_count,
        'vcpus': demand.vcpus,
        'memory_gib': demand.memory_gib,
        'storage_gib': demand.storage_gib,
    }

    return {
        'profiles': results,
        'comparisons': comparisons,
        'summary': summary,
    }


def _pct_diff(value: float, baseline: float) -> float:
    """Calculate percentage difference from baseline."""
    if baseline == 0:
        return 0.0
    return ((value - baseline) / baseline) * 100


def cluster_breakdown(
    profile: NodeProfile,
    capacity: CapacityModelResult,
    requirements: NodeRequirements,
    config: SizingConfig,
) -> Dict[str, Dict[str, float]]:
    """
    Cluster-wide totals for the sized cluster.

    CPU and memory are split into workload, infrastructure reservation and
    free capacity. Raw flash is split into the VM data, its growth, the
    virtualization overhead, the extra replicas, the operational reserve,
    the storage metadata overhead and what is left free.
    """
    nodes = requirements.total_nodes

    ht = config.hyperthreading_multiplier if config.hyperthreading_enabled else 1.0
    cpu_raw = profile.physical_cores * ht * config.cpu_overcommit_ratio * nodes
    cpu_used = requirements.total_vcpus
    cpu_infra = capacity.reserved_cpu_cores * nodes
    cpu = {
        'raw_vcpus': cpu_raw,
        'workload_vcpus': cpu_used,
        'infrastructure_vcpus': cpu_infra,
        'free_vcpus': max(0.0, cpu_raw - cpu_used - cpu_infra),
        'utilization_pct': safe_divide(cpu_used, capacity.usable_vcpus * nodes) * 100,
    }

    memory_raw = profile.memory_gib * config.memory_overcommit_ratio * nodes
    memory_used = requirements.total_memory_gib
    memory_infra = capacity.reserved_memory_gib * nodes
    memory = {
        'raw_gib': memory_raw,
        'workload_gib': memory_used,
        'infrastructure_gib': memory_infra,
        'free_gib': max(0.0, memory_raw - memory_used - memory_infra),
        'utilization_pct': safe_divide(memory_used, capacity.usable_memory_gib * nodes) * 100,
    }

    base = requirements.base_storage_gib
    growth = requirements.growth_multiplier
    used = requirements.total_storage_gib
    rf = config.replication_factor
    op = config.operational_capacity_fraction
    overhead = config.storage_overhead_fraction
    replicated_with_reserve = safe_divide(used * rf, op)
    metadata = replicated_with_reserve * safe_divide(overhead, 1 - overhead)
    raw_total = profile.raw_storage_gib * nodes
    storage = {
        'raw_gib': raw_total,
        'vm_data_gib': base,
        'growth_gib': base * (growth - 1),
        'virtualization_overhead_gib': base * growth * (requirements.storage_overhead_multiplier - 1),
        'replica_gib': used * (rf - 1),
        'reserve_gib': max(0.0, replicated_with_reserve - used * rf),
        'metadata_gib': metadata,
        'free_raw_gib': max(0.0, raw_total - (replicated_with_reserve + metadata)),
        'utilization_pct': safe_divide(used, capacity.usable_storage_gib * nodes) * 100,
    }

    return {'cpu': cpu, 'memory': memory, 'storage': storage}


def sizing_summary(
    profile_name: str,
    requirements: Optional[NodeRequirements],
    use_local_flash: bool = True,
) -> Optional[Dict[str, Any]]:
    """
    Handoff record for downstream cost estimation.

    Storage is reported in whole TiB, rounded up.
    """
    if requirements is None:
        return None
    return {
        'compute_nodes': requirements.total_nodes,
        'compute_profile': profile_name,
        'storage_tib': math.ceil(requirements.total_storage_gib / GIB_PER_TIB),
        'use_local_flash': use_local_flash,
    }
