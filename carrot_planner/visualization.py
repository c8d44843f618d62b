"""
Visualization of recorded planner runs.

Two figures are produced from a run directory written by RunRecorder:
- Path overview: global plan, robot trail and carrots colored by regime
- Tick timeline: lookahead distance, footprint cost and failed ticks over time
"""

from pathlib import Path
from typing import Dict, List, Optional

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

from .config import HIGH_COST_THRESHOLD
from .plot_styles import (
    PLANNER_BLUE,
    PLANNER_CMAP,
    PLANNER_CREAM,
    PLANNER_DARK_BLUE,
    PLANNER_ORANGE,
    PLANNER_TAUPE,
    PLANNER_YELLOW_ORANGE,
    add_legend,
    load_csv_to_dict,
    save_figure,
    style_axis,
)


def plot_path_overview(
    plan: Dict[str, np.ndarray],
    poses: Dict[str, np.ndarray],
    carrots: Dict[str, np.ndarray],
    ticks: Dict[str, np.ndarray],
    title: str = "Path Overview",
    save_path: Optional[Path] = None,
) -> Figure:
    """Plot the global plan, robot trail and carrot points in the global frame.

    Carrots are matched to ticks by timestamp to color them by regime.
    """
    fig, ax = plt.subplots(figsize=(10, 8), facecolor=PLANNER_DARK_BLUE)

    if len(plan.get("x", [])) > 0:
        ax.plot(
            plan["x"],
            plan["y"],
            "--",
            color=PLANNER_BLUE,
            linewidth=2.0,
            alpha=0.9,
            label="Global Plan",
            zorder=1,
        )

    if len(poses.get("x", [])) > 0:
        ax.plot(poses["x"], poses["y"], "-", color=PLANNER_ORANGE, linewidth=1.5, alpha=0.6, zorder=2)
        scatter = ax.scatter(
            poses["x"],
            poses["y"],
            c=poses["timestamp"] - poses["timestamp"][0],
            cmap=PLANNER_CMAP,
            s=12,
            alpha=0.8,
            label="Robot",
            zorder=3,
        )
        plt.colorbar(scatter, ax=ax, label="Time (s)")

    if len(carrots.get("timestamp", [])) > 0:
        regimes = _regimes_for(carrots["timestamp"], ticks)
        slowed = regimes == "SLOWED"
        ax.scatter(
            carrots["x_global"][~slowed],
            carrots["y_global"][~slowed],
            marker="x",
            color=PLANNER_CREAM,
            s=25,
            label="Carrot (NORMAL)",
            zorder=4,
        )
        ax.scatter(
            carrots["x_global"][slowed],
            carrots["y_global"][slowed],
            marker="x",
            color=PLANNER_YELLOW_ORANGE,
            s=25,
            label="Carrot (SLOWED)",
            zorder=4,
        )

    ax.set_aspect("equal")
    style_axis(ax, title=title, xlabel="X Position (m)", ylabel="Y Position (m)")
    add_legend(ax)
    plt.tight_layout()

    if save_path:
        save_figure(fig, save_path)
    return fig


def _regimes_for(timestamps: np.ndarray, ticks: Dict[str, np.ndarray]) -> np.ndarray:
    """Regime label of the tick at each timestamp ('' when unknown)."""
    lookup = {}
    if "regime" in ticks and len(ticks["timestamp"]) > 0:
        lookup = dict(zip(ticks["timestamp"].tolist(), ticks["regime"].astype(str).tolist()))
    return np.array([lookup.get(float(t), "") for t in timestamps], dtype=str)


def plot_tick_timeline(
    ticks: Dict[str, np.ndarray], title: str = "Tick Timeline", save_path: Optional[Path] = None
) -> Figure:
    """Plot lookahead distance and footprint cost per tick, marking failed ticks."""
    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8), sharex=True, facecolor=PLANNER_DARK_BLUE)

    timestamps = ticks["timestamp"]
    if len(timestamps) > 0:
        timestamps = timestamps - timestamps[0]
    outcome = ticks["outcome"].astype(str)
    ok = outcome == "ok"

    ax1.step(timestamps[ok], ticks["lookahead"][ok], where="post", color=PLANNER_BLUE, label="Lookahead")
    style_axis(ax1, title=f"{title} - Lookahead", ylabel="Distance (m)")
    add_legend(ax1)

    ax2.plot(timestamps[ok], ticks["footprint_cost"][ok], color=PLANNER_ORANGE, label="Footprint cost")
    ax2.axhline(HIGH_COST_THRESHOLD, color=PLANNER_TAUPE, linestyle="--", label="High-cost threshold")
    if np.any(~ok):
        ax2.scatter(
            timestamps[~ok],
            np.full(np.count_nonzero(~ok), 255.0),
            marker="v",
            color=PLANNER_YELLOW_ORANGE,
            label="Failed tick",
            zorder=5,
        )
    style_axis(ax2, title=f"{title} - Obstacle Proximity", xlabel="Time (s)", ylabel="Cost")
    add_legend(ax2)

    plt.tight_layout()
    if save_path:
        save_figure(fig, save_path)
    return fig


def plot_run_summary(run_dir: Path, save_plots: bool = False, show_plots: bool = True) -> List[Figure]:
    """Generate summary plots for a complete run.

    Args:
        run_dir: Directory containing the RunRecorder CSV files.
        save_plots: If True, save plots to run directory.
        show_plots: If True, display plots interactively.

    Returns:
        The generated figures.

    Raises:
        FileNotFoundError: If required CSV files are not found.
    """
    plan = load_csv_to_dict(run_dir / "plan.csv")
    poses = load_csv_to_dict(run_dir / "poses.csv")
    carrots = load_csv_to_dict(run_dir / "carrot.csv")
    ticks = load_csv_to_dict(run_dir / "ticks.csv")

    run_name = run_dir.name
    figures = [
        plot_path_overview(
            plan,
            poses,
            carrots,
            ticks,
            title=f"{run_name} - Path",
            save_path=run_dir / "path_overview.png" if save_plots else None,
        )
    ]
    if len(ticks.get("timestamp", [])) > 0:
        figures.append(
            plot_tick_timeline(
                ticks,
                title=run_name,
                save_path=run_dir / "tick_timeline.png" if save_plots else None,
            )
        )

    if show_plots:
        plt.show()
    return figures
