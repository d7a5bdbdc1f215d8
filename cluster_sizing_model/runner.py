"""
Sizing runner for executing configs and producing results.

Orchestrates config -> demand aggregation -> sizing -> structured output.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any, List
import json
import logging

from . import __version__
from .analysis import cluster_breakdown, sizing_summary
from .config import SizingRunConfig, validate_config
from .exceptions import ConfigurationError
from .formatter import badge, heading, kv_block, note_block, table, title
from .model import ClusterSizingModel, SizingOutcome
from .sweep import ParameterSweeper

logger = logging.getLogger(__name__)


def _format_timestamp() -> str:
    """Return ISO 8601 timestamp in UTC."""
    return datetime.now(timezone.utc).isoformat()


def _format_util(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value:.1f}%"


@dataclass
class ProfileRunResult:
    """Sizing outcome and derived views for one profile."""
    outcome: SizingOutcome
    breakdown: Optional[Dict[str, Dict[str, float]]]
    handoff: Optional[Dict[str, Any]]
    max_tolerable_failures: Optional[int]

    @property
    def name(self) -> str:
        return self.outcome.profile.name

    def to_dict(self) -> dict:
        d = self.outcome.to_dict()
        d["breakdown"] = self.breakdown
        d["handoff"] = self.handoff
        d["max_tolerable_failures"] = self.max_tolerable_failures
        return d


@dataclass
class SweepPointResult:
    """Result for a single point in a parameter sweep."""
    parameter_value: float
    profiles: Dict[str, Dict[str, Any]]  # name -> total_nodes, limiting_factor, all_passes


@dataclass
class RunResult:
    """
    Complete result from a sizing run.

    Contains metadata, echoed config, per-profile results and, for sweeps,
    per-value results.
    """
    meta: Dict[str, Any]
    config: dict
    demand: dict
    results: List[ProfileRunResult] = field(default_factory=list)
    sweep_results: Optional[List[SweepPointResult]] = None
    summary: str = ""

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        d = {
            "meta": self.meta,
            "config": self.config,
            "demand": self.demand,
            "results": {r.name: r.to_dict() for r in self.results},
        }
        if self.sweep_results:
            d["sweep_results"] = [
                {
                    "parameter_value": p.parameter_value,
                    "profiles": p.profiles,
                }
                for p in self.sweep_results
            ]
        return d


class Runner:
    """
    Sizing runner that executes configs and produces structured results.

    Example:
        config = load_config("configs/datacenter.json")
        runner = Runner(config)
        result = runner.run()
        save_result(result, "results/datacenter_2026-01-08.json")
    """

    def __init__(self, config: SizingRunConfig, config_path: Optional[str] = None):
        """
        Initialize runner with a sizing run config.

        Args:
            config: Sizing run configuration
            config_path: Optional path to config file (for metadata)

        Raises:
            ConfigurationError: If the config fails validation
        """
        self.config = config
        self.config_path = config_path

        errors = validate_config(config)
        if errors:
            raise ConfigurationError(f"Invalid config: {'; '.join(errors)}")

    def _run_profiles(self, demand) -> List[ProfileRunResult]:
        cfg = self.config
        model = ClusterSizingModel(cfg.sizing)
        results = []

        for profile in cfg.selected_profiles():
            outcome = model.evaluate(demand, profile, cfg.failed_nodes)
            req = outcome.requirements
            breakdown = None
            tolerable = None
            if req is not None:
                breakdown = cluster_breakdown(profile, outcome.capacity, req, cfg.sizing)
                tolerable = ParameterSweeper(demand, profile, cfg.sizing).max_tolerable_failures()
            results.append(ProfileRunResult(
                outcome=outcome,
                breakdown=breakdown,
                handoff=sizing_summary(profile.name, req, profile.has_local_flash),
                max_tolerable_failures=tolerable,
            ))
            logger.info("%s: %s nodes", profile.name,
                        req.total_nodes if req else "no")

        return results

    def _compute_sweep(self, demand) -> List[SweepPointResult]:
        """Size every selected profile at each sweep value."""
        sweep = self.config.sweep
        per_profile = {}
        for profile in self.config.selected_profiles():
            sweeper = ParameterSweeper(demand, profile, self.config.sizing)
            per_profile[profile.name] = sweeper.sweep_parameter(sweep.parameter, sweep.values)

        points = []
        for i, value in enumerate(sweep.values):
            points.append(SweepPointResult(
                parameter_value=value,
                profiles={
                    name: {
                        "total_nodes": res.total_nodes[i],
                        "limiting_factor": res.limiting_factor[i],
                        "all_passes": res.all_passes[i],
                    }
                    for name, res in per_profile.items()
                },
            ))
        return points

    def run(self) -> RunResult:
        """
        Execute the sizing run and return results.

        Returns:
            RunResult containing metadata, config echo, and results
        """
        meta = {
            "timestamp": _format_timestamp(),
            "version": __version__,
            "config_file": self.config_path,
            "run_name": self.config.name,
        }

        demand = self.config.demand()
        result = RunResult(
            meta=meta,
            config=self.config.to_dict(),
            demand=demand.to_dict(),
            results=self._run_profiles(demand),
        )
        if self.config.is_sweep():
            result.sweep_results = self._compute_sweep(demand)
        result.summary = format_run_summary(result)
        return result


def format_run_summary(result: RunResult) -> str:
    """Format a human-readable summary of a run (plain text, no ANSI)."""
    demand = result.demand
    lines = [title(f"Cluster Sizing: {result.meta['run_name']}"), ""]

    lines.append(heading("Workload"))
    lines.append(kv_block([
        ("VMs", str(demand["vm_count"])),
        ("vCPUs", f"{demand['vcpus']:,.0f}"),
        ("Memory", f"{demand['memory_gib']:,.1f} GiB"),
        ("Storage", f"{demand['storage_gib']:,.1f} GiB ({demand['storage_metric']})"),
    ]))
    lines.append("")

    rows = []
    for r in result.results:
        req = r.outcome.requirements
        val = r.outcome.validation
        if req is None:
            rows.append([r.name, "N/A", "N/A", "N/A", "N/A", "N/A", "N/A", "N/A"])
            continue
        rows.append([
            r.name,
            req.nodes_for_cpu_at_threshold,
            req.nodes_for_memory_at_threshold,
            req.nodes_for_storage_at_threshold,
            req.total_nodes,
            req.limiting_factor.value,
            f"N+{val.failed_nodes}",
            "PASS" if val.all_passes else "FAIL",
        ])
    lines.append(heading("Node Requirements"))
    lines.append(table(
        ["Profile", "CPU", "Memory", "Storage", "Total", "Limit", "Check", "Result"],
        rows,
        aligns=['l', 'r', 'r', 'r', 'r', 'l', 'l', 'c'],
    ))

    for r in result.results:
        val = r.outcome.validation
        if val is None:
            continue
        lines.append("")
        lines.append(heading(f"{r.name}: {val.surviving_nodes} of {val.total_nodes} nodes after failures"))
        lines.append(kv_block([
            ("CPU", f"{_format_util(val.cpu_util_healthy)} -> "
                    f"{_format_util(val.cpu_util_after_failure)} (limit {val.eviction_threshold:.0f}%)"),
            ("Memory", f"{_format_util(val.memory_util_healthy)} -> "
                       f"{_format_util(val.memory_util_after_failure)} (limit {val.eviction_threshold:.0f}%)"),
            ("Storage", f"{_format_util(val.storage_util_healthy)} -> "
                        f"{_format_util(val.storage_util_after_failure)} "
                        f"(limit {val.storage_operational_threshold:.0f}%)"),
            ("Quorum", "PASS" if val.quorum_passes else "FAIL"),
        ]))
        if r.max_tolerable_failures is not None:
            lines.append(badge("Tolerates", f"{r.max_tolerable_failures} node failures"))
        if r.handoff:
            lines.append(badge("Storage", f"{r.handoff['storage_tib']} TiB"))

    if result.sweep_results:
        sweep = result.config.get("sweep") or {}
        names = [r.name for r in result.results]
        lines.append("")
        lines.append(heading(f"Sweep: {sweep.get('parameter', 'unknown')}"))
        rows = []
        for point in result.sweep_results:
            row = [f"{point.parameter_value:g}"]
            for name in names:
                nodes = point.profiles[name]["total_nodes"]
                row.append("N/A" if nodes is None else nodes)
            rows.append(row)
        lines.append(table(["Value"] + names, rows, aligns=['r'] * (len(names) + 1)))

    lines.append("")
    lines.append(note_block([
        "Node counts per dimension are at the eviction threshold",
        "Utilization shown healthy -> after failures",
    ]))
    return "\n".join(lines)


def _json_default(value):
    return str(value)


def save_result(result: RunResult, path: str | Path) -> None:
    """
    Save a run result to JSON file.

    Args:
        result: RunResult to save
        path: Output file path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(result.to_dict(), f, indent=2, default=_json_default)


def load_result(path: str | Path) -> dict:
    """
    Load a previous run result from JSON file.

    Args:
        path: Path to result file

    Returns:
        Dict containing the result data
    """
    path = Path(path)
    with open(path, 'r') as f:
        return json.load(f)


def generate_output_filename(config: SizingRunConfig, timestamp: Optional[str] = None) -> str:
    """
    Generate a default output filename for a config.

    Format: {name}_{timestamp}.json
    """
    if timestamp is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    else:
        # Clean up ISO timestamp for filename
        timestamp = timestamp.replace(":", "").replace("-", "")[:15]

    safe_name = config.name.replace(" ", "_").replace("/", "_")
    return f"{safe_name}_{timestamp}.json"
