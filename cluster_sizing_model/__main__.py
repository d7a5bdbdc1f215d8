"""
Main entry point for running the cluster sizing model.

Usage:
    python -m cluster_sizing_model configs/datacenter.json
    python -m cluster_sizing_model configs/datacenter.json --output-dir results/
"""

import sys

from .cli import main


if __name__ == "__main__":
    sys.exit(main())
