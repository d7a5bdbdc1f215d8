"""
Cluster Capacity Sizing and Redundancy Validation Model

Sizes a cluster of physical nodes for a virtual machine inventory and checks
that the sized cluster still carries the workload after node failures.

Example usage (programmatic):
    from cluster_sizing_model import (
        ClusterSizingModel, NodeProfile, ResourceDemand, SizingConfig,
    )

    demand = ResourceDemand.from_totals(vcpus=2000, memory_gib=8000,
                                        storage_gib=50000, vm_count=400)
    profile = NodeProfile("bx2d-metal-96x384", physical_cores=48, memory_gib=384,
                          flash_device_count=8, flash_device_capacity_gib=3200)
    outcome = ClusterSizingModel(SizingConfig()).evaluate(demand, profile)
    print(outcome.requirements.total_nodes, outcome.validation.all_passes)

Example usage (JSON config):
    from cluster_sizing_model import load_config, Runner, save_result

    result = Runner(load_config("configs/datacenter.json")).run()
    save_result(result, "results/datacenter.json")

CLI usage:
    python -m cluster_sizing_model configs/datacenter.json
"""

__version__ = '0.1.0'

from .exceptions import (
    SizingError,
    ConfigurationError,
    ProfileNotFoundError,
)

from .demand import (
    StorageMetric,
    VMRecord,
    DiskRecord,
    ResourceDemand,
    aggregate_demand,
)

from .model import (
    MINIMUM_QUORUM_NODES,
    RACK_GROUP_SIZE,
    LimitingFactor,
    NodeProfile,
    InfrastructureReservation,
    SizingConfig,
    CapacityModelResult,
    NodeRequirements,
    RedundancyValidation,
    SizingOutcome,
    ClusterSizingModel,
    compute_node_capacity,
    compute_node_requirements,
    validate_redundancy,
    compute_sizing,
    cached_compute_sizing,
)

from .sweep import (
    ParameterSweeper,
    SweepResult,
    create_default_sweeper,
    sweep_range,
)

from .config import (
    SizingRunConfig,
    ProfileSpec,
    ProfileCatalogSpec,
    InventorySpec,
    DemandTotalsSpec,
    SweepSpec,
    SWEEPABLE_PARAMETERS,
    sizing_config_from_dict,
    sizing_config_to_dict,
    load_config,
    save_config,
    validate_config,
)

from .runner import (
    Runner,
    RunResult,
    save_result,
    load_result,
)

from .analysis import (
    evaluate_profiles,
    compare_profiles,
    cluster_breakdown,
    sizing_summary,
)

from .output import OutputWriter

# Plotting (optional, requires matplotlib)
try:
    from .plot import (
        plot_node_counts,
        plot_utilization,
        plot_sweep,
        plot_result,
    )
    _HAS_PLOT = True
except ImportError:
    _HAS_PLOT = False
    plot_node_counts = None
    plot_utilization = None
    plot_sweep = None
    plot_result = None

__all__ = [
    # Errors
    'SizingError',
    'ConfigurationError',
    'ProfileNotFoundError',
    # Demand
    'StorageMetric',
    'VMRecord',
    'DiskRecord',
    'ResourceDemand',
    'aggregate_demand',
    # Core model
    'MINIMUM_QUORUM_NODES',
    'RACK_GROUP_SIZE',
    'LimitingFactor',
    'NodeProfile',
    'InfrastructureReservation',
    'SizingConfig',
    'CapacityModelResult',
    'NodeRequirements',
    'RedundancyValidation',
    'SizingOutcome',
    'ClusterSizingModel',
    'compute_node_capacity',
    'compute_node_requirements',
    'validate_redundancy',
    'compute_sizing',
    'cached_compute_sizing',
    # Sweep utilities
    'ParameterSweeper',
    'SweepResult',
    'create_default_sweeper',
    'sweep_range',
    # Config
    'SizingRunConfig',
    'ProfileSpec',
    'ProfileCatalogSpec',
    'InventorySpec',
    'DemandTotalsSpec',
    'SweepSpec',
    'SWEEPABLE_PARAMETERS',
    'sizing_config_from_dict',
    'sizing_config_to_dict',
    'load_config',
    'save_config',
    'validate_config',
    # Runner
    'Runner',
    'RunResult',
    'save_result',
    'load_result',
    # Analysis
    'evaluate_profiles',
    'compare_profiles',
    'cluster_breakdown',
    'sizing_summary',
    'OutputWriter',
    # Plotting (optional)
    'plot_node_counts',
    'plot_utilization',
    'plot_sweep',
    'plot_result',
]
