"""Shared plotting utilities and styles for planner visualizations.

This module provides:
- Color scheme and colormap
- CSV data loading
- Common plot styling functions

All visualization modules should import from this module to ensure consistency.
"""

import csv
import logging
from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes
from matplotlib.colors import LinearSegmentedColormap

from .config import (
    PLANNER_BLUE,
    PLANNER_CREAM,
    PLANNER_DARK_BLUE,
    PLANNER_ORANGE,
    PLANNER_TAUPE,
    PLANNER_YELLOW_ORANGE,
)

__all__ = [
    "PLANNER_ORANGE",
    "PLANNER_BLUE",
    "PLANNER_CREAM",
    "PLANNER_TAUPE",
    "PLANNER_YELLOW_ORANGE",
    "PLANNER_DARK_BLUE",
    "PLANNER_CMAP",
    "load_csv_to_dict",
    "style_axis",
    "add_legend",
    "save_figure",
]

logger = logging.getLogger(__name__)

PLANNER_CMAP = LinearSegmentedColormap.from_list("planner", [PLANNER_ORANGE, PLANNER_BLUE])
"""Colormap transitioning from orange to blue, used for time gradients."""


def load_csv_to_dict(csv_path: Path) -> Dict[str, np.ndarray]:
    """Load CSV file into dictionary of numpy arrays.

    Numeric values are converted to floats. Non-numeric values become NaN,
    except in columns where every value is non-numeric, which are kept as
    string arrays (e.g. the regime column).

    Args:
        csv_path: Path to CSV file.

    Returns:
        Dictionary mapping column names to numpy arrays.

    Raises:
        FileNotFoundError: If the CSV file does not exist.
    """
    if not csv_path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    with open(csv_path, newline="") as f:
        reader = csv.DictReader(f)
        raw: Dict[str, List[str]] = {name: [] for name in reader.fieldnames or []}
        for row in reader:
            for key, value in row.items():
                raw[key].append(value)

    data: Dict[str, np.ndarray] = {}
    for key, values in raw.items():
        numbers = []
        numeric_count = 0
        for value in values:
            try:
                numbers.append(float(value))
                numeric_count += 1
            except (ValueError, TypeError):
                numbers.append(np.nan)
        if values and numeric_count == 0:
            data[key] = np.array(values, dtype=str)
        else:
            data[key] = np.array(numbers, dtype=float)
    return data


def style_axis(
    ax: Axes,
    title: str = "",
    xlabel: str = "",
    ylabel: str = "",
    grid: bool = True,
    dark_mode: bool = True,
) -> None:
    """Apply consistent styling to a matplotlib axis.

    Args:
        ax: Matplotlib axis to style.
        title: Plot title (optional).
        xlabel: X-axis label (optional).
        ylabel: Y-axis label (optional).
        grid: Whether to show grid lines (default: True).
        dark_mode: Whether to use dark mode styling (default: True).
    """
    text_color = PLANNER_CREAM if dark_mode else None
    if title:
        ax.set_title(title, fontweight="bold", color=text_color)
    if xlabel:
        ax.set_xlabel(xlabel, color=text_color)
    if ylabel:
        ax.set_ylabel(ylabel, color=text_color)

    if grid:
        ax.grid(True, alpha=0.3, linestyle="--", linewidth=0.5)

    if dark_mode:
        ax.set_facecolor(PLANNER_DARK_BLUE)
        ax.tick_params(colors=PLANNER_CREAM, which="both")
        for spine in ax.spines.values():
            spine.set_edgecolor(PLANNER_TAUPE)


def add_legend(ax: Axes, loc: str = "best", dark_mode: bool = True, **kwargs) -> None:
    """Add a legend matching the axis styling."""
    legend_kwargs = {
        "loc": loc,
        "framealpha": 0.9,
        "edgecolor": PLANNER_TAUPE,
    }
    if dark_mode:
        legend_kwargs["facecolor"] = PLANNER_DARK_BLUE
        legend_kwargs["labelcolor"] = PLANNER_CREAM

    # User kwargs take precedence
    legend_kwargs.update(kwargs)
    ax.legend(**legend_kwargs)


def save_figure(fig: plt.Figure, filepath: Path, dpi: int = 150, bbox_inches: str = "tight") -> None:
    fig.savefig(filepath, dpi=dpi, bbox_inches=bbox_inches)
    logger.info(f"Saved figure to {filepath}")
