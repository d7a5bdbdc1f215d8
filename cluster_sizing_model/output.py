"""
Output management for sizing run results.

Provides structured directory output with:
- results.json: Full run results
- config.json: Echoed input config
- summary.md: Human-readable summary
- profiles.csv: One row per evaluated profile
- sweep.csv: One row per sweep value and profile (sweeps only)
- profiles/: Per-profile JSON files
- plots/: Generated visualizations (if matplotlib available)
"""

import csv
from pathlib import Path
from typing import Any, Dict, List, TYPE_CHECKING
import json
import logging

if TYPE_CHECKING:
    from .runner import RunResult

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = [
    'profile',
    'usable_vcpus',
    'usable_memory_gib',
    'usable_storage_gib',
    'nodes_for_cpu',
    'nodes_for_memory',
    'nodes_for_storage',
    'total_nodes',
    'limiting_factor',
    'failed_nodes',
    'cpu_util_after_failure',
    'memory_util_after_failure',
    'storage_util_after_failure',
    'all_passes',
    'max_tolerable_failures',
    'storage_tib',
]


def _safe_name(name: str) -> str:
    return name.replace(' ', '_').replace('/', '_')


class OutputWriter:
    """
    Write sizing results to a structured directory.

    Output structure:
        output_dir/
            results.json
            config.json
            summary.md
            profiles.csv
            sweep.csv           # sweeps only
            profiles/
                <profile>.json
            plots/
                node_counts.png
                utilization.png
                sweep.png       # sweeps only
    """

    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir)

    def write(self, result: 'RunResult', generate_plots: bool = True) -> None:
        """
        Write all output files.

        Args:
            result: RunResult to write
            generate_plots: Whether to generate plots (requires matplotlib)
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        profiles_dir = self.output_dir / 'profiles'
        profiles_dir.mkdir(exist_ok=True)

        data = result.to_dict()
        self._write_json(self.output_dir / 'results.json', data)
        self._write_json(self.output_dir / 'config.json', result.config)
        with open(self.output_dir / 'summary.md', 'w') as f:
            f.write(result.summary)

        for name, profile_data in data['results'].items():
            self._write_json(profiles_dir / f'{_safe_name(name)}.json', profile_data)

        with open(self.output_dir / 'profiles.csv', 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=PROFILE_COLUMNS, extrasaction='ignore')
            writer.writeheader()
            writer.writerows(self._profile_rows(data['results']))

        if data.get('sweep_results'):
            self._write_sweep_csv(data['sweep_results'])

        if generate_plots:
            self._write_plots(result)

        logger.info("Wrote results to %s", self.output_dir)

    def _write_json(self, path: Path, data: Any) -> None:
        with open(path, 'w') as f:
            json.dump(data, f, indent=2, default=str)

    def _profile_rows(self, results: Dict[str, dict]) -> List[Dict[str, Any]]:
        """Flatten per-profile results into CSV rows."""
        rows = []
        for name, r in results.items():
            req = r.get('requirements') or {}
            val = r.get('validation') or {}
            handoff = r.get('handoff') or {}
            rows.append({
                'profile': name,
                'usable_vcpus': r['capacity']['usable_vcpus'],
                'usable_memory_gib': r['capacity']['usable_memory_gib'],
                'usable_storage_gib': r['capacity']['usable_storage_gib'],
                'nodes_for_cpu': req.get('nodes_for_cpu_at_threshold'),
                'nodes_for_memory': req.get('nodes_for_memory_at_threshold'),
                'nodes_for_storage': req.get('nodes_for_storage_at_threshold'),
                'total_nodes': req.get('total_nodes'),
                'limiting_factor': req.get('limiting_factor'),
                'failed_nodes': val.get('failed_nodes'),
                'cpu_util_after_failure': val.get('cpu_util_after_failure'),
                'memory_util_after_failure': val.get('memory_util_after_failure'),
                'storage_util_after_failure': val.get('storage_util_after_failure'),
                'all_passes': val.get('all_passes'),
                'max_tolerable_failures': r.get('max_tolerable_failures'),
                'storage_tib': handoff.get('storage_tib'),
            })
        return rows

    def _write_sweep_csv(self, sweep_results: List[dict]) -> None:
        columns = ['parameter_value', 'profile', 'total_nodes', 'limiting_factor', 'all_passes']
        with open(self.output_dir / 'sweep.csv', 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=columns)
            writer.writeheader()
            for point in sweep_results:
                for name, values in point['profiles'].items():
                    writer.writerow({
                        'parameter_value': point['parameter_value'],
                        'profile': name,
                        **values,
                    })

    def _write_plots(self, result: 'RunResult') -> None:
        """Generate and save plots."""
        try:
            from .plot import HAS_MATPLOTLIB, plot_node_counts, plot_sweep, plot_utilization
            if not HAS_MATPLOTLIB:
                return
        except ImportError:
            return

        plots_dir = self.output_dir / 'plots'
        plots_dir.mkdir(exist_ok=True)

        if any(r.outcome.requirements for r in result.results):
            plot_node_counts(result, save_path=str(plots_dir / 'node_counts.png'), show=False)
            plot_utilization(result, save_path=str(plots_dir / 'utilization.png'), show=False)
        if result.sweep_results:
            plot_sweep(result, save_path=str(plots_dir / 'sweep.png'), show=False)


def load_output(output_dir: str | Path) -> Dict[str, Any]:
    """Load results.json from an output directory."""
    results_path = Path(output_dir) / 'results.json'
    with open(results_path, 'r') as f:
        return json.load(f)
