"""
Parameter sweep utilities for the cluster sizing model.

Provides functions for sweeping sizing parameters and probing how many
node failures a sized cluster tolerates.
"""

from dataclasses import dataclass
from typing import List, Optional
import logging
import numpy as np

from .demand import ResourceDemand
from .model import (
    NodeProfile, SizingConfig, compute_sizing, validate_redundancy,
)

logger = logging.getLogger(__name__)

_INT_PARAMETERS = {"replication_factor", "node_redundancy_buffer"}


@dataclass
class SweepResult:
    """Result of a parameter sweep."""
    param_name: str
    param_values: List[float]
    total_nodes: List[Optional[int]]
    nodes_for_cpu: List[Optional[int]]
    nodes_for_memory: List[Optional[int]]
    nodes_for_storage: List[Optional[int]]
    limiting_factor: List[Optional[str]]
    all_passes: List[Optional[bool]]

    def to_dict(self) -> dict:
        return {
            'param_name': self.param_name,
            'param_values': list(self.param_values),
            'total_nodes': self.total_nodes,
            'nodes_for_cpu': self.nodes_for_cpu,
            'nodes_for_memory': self.nodes_for_memory,
            'nodes_for_storage': self.nodes_for_storage,
            'limiting_factor': self.limiting_factor,
            'all_passes': self.all_passes,
        }


def sweep_range(start: float, stop: float, step: float) -> List[float]:
    """Inclusive range of sweep values, rounded to hide float noise."""
    values = np.arange(start, stop + step / 2, step)
    return [float(v) for v in np.round(values, 6)]


class ParameterSweeper:
    """
    Utility class for sweeping sizing parameters for one demand and profile.

    SizingConfig is immutable, so each sweep point works on its own copy
    and the sweeper's config never changes.
    """

    def __init__(
        self,
        demand: ResourceDemand,
        profile: NodeProfile,
        config: Optional[SizingConfig] = None,
    ):
        self.demand = demand
        self.profile = profile
        self.config = config or SizingConfig()

    def config_with(self, param_name: str, value: float) -> SizingConfig:
        """Copy of the config with one parameter changed."""
        if not hasattr(self.config, param_name):
            raise ValueError(f"Unknown sizing parameter: {param_name}")
        if param_name in _INT_PARAMETERS:
            value = int(value)
        return self.config.replace(**{param_name: value})

    def sweep_parameter(self, param_name: str, values: List[float]) -> SweepResult:
        """Size the cluster at each value of ``param_name``."""
        result = SweepResult(
            param_name=param_name,
            param_values=list(values),
            total_nodes=[], nodes_for_cpu=[], nodes_for_memory=[],
            nodes_for_storage=[], limiting_factor=[], all_passes=[],
        )

        for val in values:
            config = self.config_with(param_name, val)
            capacity, req = compute_sizing(self.demand, self.profile, config)
            validation = validate_redundancy(req, capacity, None, config)

            result.total_nodes.append(req.total_nodes if req else None)
            result.nodes_for_cpu.append(req.nodes_for_cpu_at_threshold if req else None)
            result.nodes_for_memory.append(req.nodes_for_memory_at_threshold if req else None)
            result.nodes_for_storage.append(req.nodes_for_storage_at_threshold if req else None)
            result.limiting_factor.append(req.limiting_factor.value if req else None)
            result.all_passes.append(validation.all_passes if validation else None)

        logger.debug("Swept %s over %d values", param_name, len(result.param_values))
        return result

    def sweep_failures(self, max_failed: Optional[int] = None) -> dict:
        """
        Post-failure utilization of the sized cluster for 0..max_failed failures.

        Defaults to failing every node. Utilization with no surviving node is
        reported as ``inf``.
        """
        capacity, req = compute_sizing(self.demand, self.profile, self.config)
        if req is None:
            return {'failed_nodes': [], 'cpu_util': [], 'memory_util': [],
                    'storage_util': [], 'all_passes': []}

        if max_failed is None:
            max_failed = req.total_nodes
        failed = np.arange(0, max(0, max_failed) + 1)
        checks = [validate_redundancy(req, capacity, int(n), self.config) for n in failed]

        return {
            'failed_nodes': failed.tolist(),
            'cpu_util': np.array([c.cpu_util_after_failure for c in checks]).tolist(),
            'memory_util': np.array([c.memory_util_after_failure for c in checks]).tolist(),
            'storage_util': np.array([c.storage_util_after_failure for c in checks]).tolist(),
            'all_passes': [c.all_passes for c in checks],
        }

    def max_tolerable_failures(self) -> Optional[int]:
        """
        Largest number of simultaneous node failures that still passes.

        Returns None when there is nothing to size or the healthy cluster
        already fails.
        """
        curve = self.sweep_failures()
        passes = curve['all_passes']
        if not passes or not passes[0]:
            return None
        tolerated = 0
        for n, ok in zip(curve['failed_nodes'], passes):
            if not ok:
                break
            tolerated = n
        return tolerated


def create_default_sweeper(
    demand: ResourceDemand,
    profile: NodeProfile,
    **kwargs,
) -> ParameterSweeper:
    """Create a ParameterSweeper with default sizing, overriding with kwargs."""
    return ParameterSweeper(demand, profile, SizingConfig(**kwargs))
