"""Utility functions shared by the sizing stages and the CLI."""

import logging
import math


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with appropriate level and format."""
    from .config import LOG_FORMAT, LOG_DATE_FORMAT

    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT
    )


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Divide, returning ``default`` when the denominator is not positive.

    Every ratio in the sizing stages goes through this so that a zero
    capacity or an empty cluster never raises.
    """
    if denominator <= 0:
        return default
    return numerator / denominator


def nodes_needed(total: float, capacity_per_node: float) -> int:
    """Nodes required to hold ``total`` at ``capacity_per_node`` (0 if no capacity)."""
    if capacity_per_node <= 0:
        return 0
    return math.ceil(total / capacity_per_node)


def round_up_to_group(count: int, group_size: int) -> int:
    """Round a node count up to the next multiple of the fault-domain group size."""
    if group_size <= 1:
        return count
    return math.ceil(count / group_size) * group_size
