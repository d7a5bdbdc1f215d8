"""
Command-line interface for running sizing configs.

Usage:
    python -m cluster_sizing_model configs/datacenter.json
    python -m cluster_sizing_model configs/*.json --output-dir results/
    python -m cluster_sizing_model configs/quick.json --stdout
    python -m cluster_sizing_model configs/datacenter.json --failed-nodes 3 --plot
"""

import argparse
import sys
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .config import load_config, validate_config
from .exceptions import SizingError
from .formatter import colorize, supports_color
from .output import OutputWriter
from .runner import Runner, save_result, generate_output_filename
from .utils import setup_logging

logger = logging.getLogger(__name__)


def run_single_config(
    config_path: Path,
    output_dir: Optional[Path] = None,
    stdout: bool = False,
    quiet: bool = False,
    plot: bool = False,
    failed_nodes: Optional[int] = None,
    profile: Optional[str] = None,
) -> bool:
    """
    Run a single config file.

    Returns True on success, False on failure.
    """
    try:
        config = load_config(config_path)
    except FileNotFoundError:
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        return False
    except ValueError as e:
        # json.JSONDecodeError and bad enum values are both ValueErrors
        print(f"Error: Invalid config {config_path}: {e}", file=sys.stderr)
        return False

    if failed_nodes is not None:
        config = replace(config, failed_nodes=failed_nodes)
    if profile is not None:
        config = replace(config, profile=profile)

    errors = validate_config(config)
    if errors:
        print(f"Error: Invalid config {config_path}:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        return False

    try:
        result = Runner(config, config_path=str(config_path)).run()
    except SizingError as e:
        logger.error("Sizing failed for %s: %s", config_path, e)
        print(f"Error running {config_path}: {e}", file=sys.stderr)
        return False

    if stdout:
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return True

    if output_dir is None and config.output_dir:
        output_dir = Path(config.output_dir)

    if output_dir is not None:
        target = output_dir / config.name.replace(" ", "_").replace("/", "_")
        OutputWriter(target).write(result, generate_plots=plot)
    else:
        target = Path("results") / generate_output_filename(config, result.meta["timestamp"])
        save_result(result, target)
        if plot:
            _plot(result, target.with_suffix('.png'), quiet)

    if not quiet:
        print(f"Results saved to: {target}")
        print()
        print(colorize(result.summary) if supports_color() else result.summary)

    return True


def _plot(result, save_path: Path, quiet: bool) -> None:
    from .plot import HAS_MATPLOTLIB, plot_result
    if not HAS_MATPLOTLIB:
        print("Warning: --plot requires matplotlib. Install with: pip install -e '.[plot]'",
              file=sys.stderr)
        return
    plot_result(result, save_path=save_path, show=False)
    if not quiet:
        print(f"Plot saved to: {save_path}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Size a cluster for a VM inventory and validate node-failure redundancy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s configs/datacenter.json
  %(prog)s configs/*.json --output-dir results/
  %(prog)s configs/quick.json --stdout
  %(prog)s configs/datacenter.json --profile bx2d-metal-96x384 --failed-nodes 3
        """,
    )

    parser.add_argument("configs", nargs="+", type=Path, help="Config file(s) to run")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Write a result directory per config here (default: results/<name>_<time>.json)",
    )
    parser.add_argument(
        "--stdout",
        action="store_true",
        help="Print JSON result to stdout instead of saving",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress summary output",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--plot",
        action="store_true",
        help="Generate plots (requires matplotlib)",
    )
    parser.add_argument(
        "--failed-nodes",
        type=int,
        default=None,
        help="Nodes to fail in the redundancy check (default: redundancy buffer)",
    )
    parser.add_argument(
        "--profile",
        default=None,
        help="Only evaluate this node profile",
    )

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.failed_nodes is not None and args.failed_nodes < 0:
        parser.error("--failed-nodes must be >= 0")

    success_count = 0
    fail_count = 0

    for config_path in args.configs:
        success = run_single_config(
            config_path,
            output_dir=args.output_dir,
            stdout=args.stdout,
            quiet=args.quiet,
            plot=args.plot,
            failed_nodes=args.failed_nodes,
            profile=args.profile,
        )
        if success:
            success_count += 1
        else:
            fail_count += 1

        if len(args.configs) > 1 and not args.stdout and not args.quiet:
            print("\n" + "=" * 60 + "\n")

    if len(args.configs) > 1 and not args.quiet:
        print(f"Completed: {success_count} succeeded, {fail_count} failed")

    return 0 if fail_count == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
