import sys
sys.path.insert(0, '..')

from cluster_sizing_model import (
    NodeProfile,
    ParameterSweeper,
    ResourceDemand,
    SizingConfig,
    sweep_range,
)
import numpy as np
import matplotlib.pyplot as plt

def compute_overcommit_sweep(
    demand: ResourceDemand,
    profile: NodeProfile,
    overcommit_min: float = 1.0,
    overcommit_max: float = 4.0,
    step: float = 0.25,
    config: SizingConfig = None,
):
    """
    Node count per dimension across a range of CPU overcommit ratios.

    Returns:
        dict with 'ratios', 'total_nodes', 'cpu_nodes', 'memory_nodes', 'storage_nodes'
    """
    ratios = sweep_range(overcommit_min, overcommit_max, step)
    sweeper = ParameterSweeper(demand, profile, config)
    result = sweeper.sweep_parameter('cpu_overcommit_ratio', ratios)

    return {
        'ratios': np.array(ratios),
        'total_nodes': np.array(result.total_nodes),
        'cpu_nodes': np.array(result.nodes_for_cpu),
        'memory_nodes': np.array(result.nodes_for_memory),
        'storage_nodes': np.array(result.nodes_for_storage),
    }

def plot_overcommit_sweep(sweep_result, title_suffix=""):
    """
    Plot per-dimension and total node counts vs CPU overcommit.

    The flat region on the right is where memory or storage takes over as
    the limiting dimension.
    """
    ratios = sweep_result['ratios']

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.plot(ratios, sweep_result['cpu_nodes'], 'b-o', linewidth=2, markersize=5, label='CPU')
    ax.plot(ratios, sweep_result['memory_nodes'], 'g-o', linewidth=2, markersize=5, label='Memory')
    ax.plot(ratios, sweep_result['storage_nodes'], 'm-o', linewidth=2, markersize=5, label='Storage')
    ax.step(ratios, sweep_result['total_nodes'], 'k-', where='mid', linewidth=2,
            label='Total (with redundancy, rack rounding)')
    ax.set_xlabel('CPU Overcommit Ratio', fontsize=12)
    ax.set_ylabel('Nodes', fontsize=12)
    ax.set_title(f'Node Count vs CPU Overcommit{title_suffix}', fontsize=14)
    ax.legend(loc='upper right')
    ax.grid(True, alpha=0.3)
    ax.set_ylim(bottom=0)

    plt.tight_layout()
    plt.show()

    return fig

profile = NodeProfile(
    "bx2d-metal-96x384",
    physical_cores=48,
    memory_gib=384,
    vcpus=96,
    flash_device_count=8,
    flash_device_capacity_gib=3200,
)

demand = ResourceDemand.from_totals(
    vcpus=6000,
    memory_gib=12000,
    storage_gib=40000,
    vm_count=900,
)

sweep = compute_overcommit_sweep(demand, profile)
fig = plot_overcommit_sweep(sweep, title_suffix=f" ({profile.name})")

# Same sweep with hyperthreading disabled
no_ht = SizingConfig(hyperthreading_enabled=False)
sweep_no_ht = compute_overcommit_sweep(demand, profile, config=no_ht)
fig = plot_overcommit_sweep(sweep_no_ht, title_suffix=" (HT off)")

for r, a, b in zip(sweep['ratios'], sweep['total_nodes'], sweep_no_ht['total_nodes']):
    print(f"R={r:.2f}: {a} nodes with HT, {b} without")
