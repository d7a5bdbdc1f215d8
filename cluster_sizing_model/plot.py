"""
Plotting utilities for visualizing cluster sizing results.

Requires the 'plot' optional dependency: pip install -e ".[plot]"

Usage:
    from cluster_sizing_model import Runner, load_config
    from cluster_sizing_model.plot import plot_node_counts, plot_utilization

    result = Runner(load_config("configs/datacenter.json")).run()
    plot_node_counts(result)
    plot_utilization(result, save_path="util.png", show=False)
"""

from dataclasses import dataclass
from typing import Optional, Union, Dict, Any, Tuple, List
from pathlib import Path

try:
    import matplotlib.pyplot as plt
    import numpy as np
    HAS_MATPLOTLIB = True
except ImportError:
    HAS_MATPLOTLIB = False


COLORS = {
    'cpu': '#1a5276',
    'memory': '#5dade2',
    'storage': '#7d3c98',
    'total': '#2c3e50',
    'pass': '#27ae60',
    'fail': '#e74c3c',
    'threshold': '#7f8c8d',
}


@dataclass
class PlotStyle:
    """Shared style for all sizing plots.

    Override individual fields: ``PlotStyle(bar_alpha=1.0, dpi=150)``.
    """
    bar_width: float = 0.2
    bar_alpha: float = 0.85
    bar_edgecolor: str = 'black'
    bar_linewidth: float = 0.5

    line_width: float = 1.5
    line_alpha: float = 0.8
    marker_size: int = 7

    grid: bool = True
    grid_axis: str = 'y'
    grid_alpha: float = 0.3
    grid_linestyle: str = '--'

    dpi: int = 200
    facecolor: str = 'white'

    title_fontsize: int = 13
    axis_label_fontsize: int = 11
    tick_fontsize: int = 10
    legend_fontsize: int = 9

    hide_top_spine: bool = True
    hide_right_spine: bool = True


DEFAULT_STYLE = PlotStyle()


def _check_matplotlib():
    """Raise helpful error if matplotlib is not installed."""
    if not HAS_MATPLOTLIB:
        raise ImportError(
            "Plotting requires matplotlib. Install with: pip install -e '.[plot]'"
        )


def _apply_common_style(ax, style: PlotStyle):
    ax.set_facecolor(style.facecolor)
    if style.grid:
        ax.grid(True, axis=style.grid_axis, alpha=style.grid_alpha,
                linestyle=style.grid_linestyle)
        ax.set_axisbelow(True)
    if style.hide_top_spine:
        ax.spines['top'].set_visible(False)
    if style.hide_right_spine:
        ax.spines['right'].set_visible(False)


def _format_parameter_label(param_name: str) -> str:
    label = param_name.replace('_', ' ')
    for suffix, unit in ((' percent', ' (%)'), (' pct', ' (%)'), (' mib', ' (MiB)')):
        if label.endswith(suffix):
            label = label[:-len(suffix)] + unit
    return label[:1].upper() + label[1:]


def _profile_results(result) -> Dict[str, dict]:
    """Per-profile result dicts from a RunResult or its to_dict() form."""
    if hasattr(result, 'results') and not isinstance(result, dict):
        return {r.name: r.to_dict() for r in result.results}
    return result.get('results', {})


def _run_name(result) -> str:
    meta = result.meta if hasattr(result, 'meta') else result.get('meta', {})
    return meta.get('run_name', 'Unnamed')


def _finish(fig, save_path, show: bool, style: PlotStyle):
    plt.tight_layout()
    if save_path:
        plt.savefig(save_path, dpi=style.dpi, bbox_inches='tight',
                    facecolor=style.facecolor)
    if show:
        plt.show()
    return fig


def plot_node_counts(
    result,
    save_path: Optional[Union[str, Path]] = None,
    figsize: Tuple[float, float] = (10, 5),
    show: bool = True,
    title: Optional[str] = None,
    style: Optional[PlotStyle] = None,
) -> Optional[Any]:
    """
    Grouped bars of the node count each dimension needs, per profile.

    The final cluster size (after redundancy and rack rounding) is drawn as
    a fourth bar. Profiles without requirements are skipped.

    Args:
        result: RunResult object or dict
        save_path: Optional path to save the figure
        figsize: Figure size (width, height) in inches
        show: Whether to display the plot
        title: Optional custom title
        style: Optional PlotStyle

    Returns:
        matplotlib Figure object
    """
    _check_matplotlib()
    style = style or DEFAULT_STYLE

    profiles = {name: r['requirements'] for name, r in _profile_results(result).items()
                if r.get('requirements')}
    names = list(profiles.keys())
    series = [
        ('CPU', 'nodes_for_cpu_at_threshold', COLORS['cpu']),
        ('Memory', 'nodes_for_memory_at_threshold', COLORS['memory']),
        ('Storage', 'nodes_for_storage_at_threshold', COLORS['storage']),
        ('Total', 'total_nodes', COLORS['total']),
    ]

    fig, ax = plt.subplots(figsize=figsize)
    fig.patch.set_facecolor(style.facecolor)
    x = np.arange(len(names))

    for i, (label, key, color) in enumerate(series):
        heights = [profiles[n][key] for n in names]
        offset = (i - (len(series) - 1) / 2) * style.bar_width
        bars = ax.bar(x + offset, heights, style.bar_width, label=label, color=color,
                      alpha=style.bar_alpha, edgecolor=style.bar_edgecolor,
                      linewidth=style.bar_linewidth)
        ax.bar_label(bars, fontsize=style.legend_fontsize)

    ax.set_xticks(x)
    ax.set_xticklabels(names, fontsize=style.tick_fontsize)
    ax.set_ylabel('Nodes', fontsize=style.axis_label_fontsize)
    ax.legend(loc='best', fontsize=style.legend_fontsize)
    _apply_common_style(ax, style)
    ax.set_title(title or f"Node Requirements: {_run_name(result)}",
                 fontsize=style.title_fontsize, fontweight='bold')

    return _finish(fig, save_path, show, style)


def plot_utilization(
    result,
    save_path: Optional[Union[str, Path]] = None,
    figsize: Optional[Tuple[float, float]] = None,
    show: bool = True,
    title: Optional[str] = None,
    style: Optional[PlotStyle] = None,
) -> Optional[Any]:
    """
    Healthy vs post-failure utilization per dimension, one panel per profile.

    Dashed lines mark the eviction threshold (CPU, memory) and the storage
    operational threshold. Post-failure bars are colored by pass/fail.
    """
    _check_matplotlib()
    style = style or DEFAULT_STYLE

    checks = {name: r['validation'] for name, r in _profile_results(result).items()
              if r.get('validation')}
    names = list(checks.keys())
    if figsize is None:
        figsize = (5 * max(1, len(names)), 4.5)

    fig, axes = plt.subplots(1, max(1, len(names)), figsize=figsize, squeeze=False)
    fig.patch.set_facecolor(style.facecolor)
    dims = ['cpu', 'memory', 'storage']
    x = np.arange(len(dims))

    for ax, name in zip(axes[0], names):
        v = checks[name]
        healthy = [v[f'{d}_util_healthy'] for d in dims]
        # Utilization with no survivors is serialized as None
        after = [v[f'{d}_util_after_failure'] for d in dims]
        after = [np.nan if u is None else u for u in after]
        colors = [COLORS['pass'] if v[f'{d}_passes'] else COLORS['fail'] for d in dims]

        ax.bar(x - style.bar_width / 2, healthy, style.bar_width, label='Healthy',
               color=COLORS['threshold'], alpha=style.bar_alpha,
               edgecolor=style.bar_edgecolor, linewidth=style.bar_linewidth)
        ax.bar(x + style.bar_width / 2, after, style.bar_width,
               label=f"N+{v['failed_nodes']}", color=colors, alpha=style.bar_alpha,
               edgecolor=style.bar_edgecolor, linewidth=style.bar_linewidth)
        ax.hlines(v['eviction_threshold'], -0.5, 1.5, colors=COLORS['threshold'],
                  linestyles='--', linewidth=style.line_width)
        ax.hlines(v['storage_operational_threshold'], 1.5, 2.5, colors=COLORS['threshold'],
                  linestyles=':', linewidth=style.line_width)

        ax.set_xticks(x)
        ax.set_xticklabels([d.capitalize() for d in dims], fontsize=style.tick_fontsize)
        ax.set_ylabel('Utilization (%)', fontsize=style.axis_label_fontsize)
        ax.set_title(name, fontsize=style.axis_label_fontsize)
        ax.legend(loc='best', fontsize=style.legend_fontsize)
        _apply_common_style(ax, style)

    fig.suptitle(title or f"Redundancy Check: {_run_name(result)}",
                 fontsize=style.title_fontsize, fontweight='bold')

    return _finish(fig, save_path, show, style)


def plot_sweep(
    result,
    save_path: Optional[Union[str, Path]] = None,
    figsize: Tuple[float, float] = (10, 6),
    show: bool = True,
    title: Optional[str] = None,
    style: Optional[PlotStyle] = None,
) -> Optional[Any]:
    """
    Total node count per profile across a parameter sweep.

    Points where the redundancy check fails are drawn hollow.
    """
    _check_matplotlib()
    style = style or DEFAULT_STYLE

    if hasattr(result, 'sweep_results') and not isinstance(result, dict):
        points = [{'parameter_value': p.parameter_value, 'profiles': p.profiles}
                  for p in (result.sweep_results or [])]
        config = result.config
    else:
        points = result.get('sweep_results') or []
        config = result.get('config', {})
    if not points:
        raise ValueError("Result has no sweep results to plot")

    param_name = (config.get('sweep') or {}).get('parameter', 'Parameter')
    xs = [p['parameter_value'] for p in points]
    names: List[str] = list(points[0]['profiles'].keys())

    fig, ax = plt.subplots(figsize=figsize)
    fig.patch.set_facecolor(style.facecolor)

    for name in names:
        ys = [p['profiles'][name]['total_nodes'] for p in points]
        ys = [np.nan if y is None else y for y in ys]
        line, = ax.plot(xs, ys, '-', linewidth=style.line_width,
                        alpha=style.line_alpha, label=name)
        for x, y, p in zip(xs, ys, points):
            passed = p['profiles'][name]['all_passes']
            ax.plot(x, y, 'o', markersize=style.marker_size, color=line.get_color(),
                    markerfacecolor=line.get_color() if passed else 'none')

    ax.set_xlabel(_format_parameter_label(param_name), fontsize=style.axis_label_fontsize)
    ax.set_ylabel('Total nodes', fontsize=style.axis_label_fontsize)
    ax.legend(loc='best', fontsize=style.legend_fontsize)
    _apply_common_style(ax, style)
    ax.set_title(title or f"Sweep: {_run_name(result)}",
                 fontsize=style.title_fontsize, fontweight='bold')

    return _finish(fig, save_path, show, style)


def plot_result(
    result,
    save_path: Optional[Union[str, Path]] = None,
    show: bool = True,
    **kwargs,
) -> Optional[Any]:
    """
    Plot the visualization that fits the result type.

    Sweeps get the sweep curve; single runs get the node count bars.
    """
    _check_matplotlib()

    if hasattr(result, 'sweep_results') and not isinstance(result, dict):
        is_sweep = bool(result.sweep_results)
    else:
        is_sweep = bool(result.get('sweep_results'))

    if is_sweep:
        return plot_sweep(result, save_path=save_path, show=show, **kwargs)
    return plot_node_counts(result, save_path=save_path, show=show, **kwargs)
