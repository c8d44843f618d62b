#!/usr/bin/env python3
"""
Offline replay of logged robot poses through the carrot controller.

Loads a global plan and a pose log from CSV files, drives one control tick
per logged pose against the optimizer service, and records diagnostics for
plotting. The robot pose for each tick comes from the log, so the
map -> base transform is refreshed from the logged pose before the tick.
"""

import argparse
import csv
import logging
import sys
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import (
    BASE_FRAME,
    CONTROLLER_FREQUENCY,
    COSTMAP_RESOLUTION,
    COSTMAP_SIZE_CELLS,
    GLOBAL_FRAME,
    LOOKAHEAD_DIST_CLOSE_TO_GOAL,
    LOOKAHEAD_DIST_MAX,
    LOOKAHEAD_DIST_MIN,
    OPTIMIZER_TIMEOUT_SECONDS,
    OPTIMIZER_URI,
    TERM_BLUE,
    TERM_ORANGE,
    TERM_RESET,
)
from .controller import CarrotController
from .costmap import Costmap2D
from .data_collector import RunRecorder
from .errors import PlannerError
from .geometry import GlobalPlan, Pose, Twist, VelocityCommand
from .optimizer_client import Optimizer, OptimizerClient
from .parameters import LookaheadParameters
from .transforms import TransformBuffer


class CustomFormatter(logging.Formatter):
    """Logging formatter that removes timestamps from INFO messages.

    INFO messages are shown bare for clean console output; WARNING, ERROR and
    DEBUG messages keep their timestamp and level.
    """

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno == logging.INFO:
            return record.getMessage()
        return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


# ============================================================================
# Input Loading
# ============================================================================


def load_plan_csv(path: Path, frame_id: str = GLOBAL_FRAME) -> GlobalPlan:
    """Load a global plan from a CSV file with columns x, y and optional yaw.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a row cannot be parsed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Plan file not found: {path}")

    poses = []
    with open(path, newline="") as f:
        for line_number, row in enumerate(csv.DictReader(f), start=2):
            try:
                poses.append(Pose(float(row["x"]), float(row["y"]), float(row.get("yaw") or 0.0), frame_id))
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(f"{path}:{line_number}: invalid plan row {row}") from e
    return GlobalPlan(frame_id, poses)


def load_pose_log(path: Path, frame_id: str = GLOBAL_FRAME) -> List[Tuple[Pose, Twist]]:
    """Load a pose log with columns timestamp, x, y, yaw, v, omega.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a row cannot be parsed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Pose log not found: {path}")

    samples = []
    with open(path, newline="") as f:
        for line_number, row in enumerate(csv.DictReader(f), start=2):
            try:
                pose = Pose(float(row["x"]), float(row["y"]), float(row["yaw"]), frame_id, float(row["timestamp"]))
                twist = Twist(linear_x=float(row.get("v") or 0.0), angular_z=float(row.get("omega") or 0.0))
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(f"{path}:{line_number}: invalid pose row {row}") from e
            samples.append((pose, twist))
    return samples


def load_costmap(
    path: Optional[Path],
    resolution: float = COSTMAP_RESOLUTION,
    origin: Tuple[float, float] = (0.0, 0.0),
    size_cells: int = COSTMAP_SIZE_CELLS,
) -> Costmap2D:
    """Load a cost grid saved with numpy.save, or build an empty map."""
    kwargs = dict(origin_x=origin[0], origin_y=origin[1], global_frame=GLOBAL_FRAME, base_frame=BASE_FRAME)
    if path is None:
        return Costmap2D(size_x=size_cells, size_y=size_cells, resolution=resolution, **kwargs)
    return Costmap2D.from_array(np.load(path), resolution, **kwargs)


# ============================================================================
# Replay
# ============================================================================


@dataclass
class ReplaySummary:
    ticks: int = 0
    succeeded: int = 0
    failures: Counter = field(default_factory=Counter)
    commands: List[VelocityCommand] = field(default_factory=list)


class ReplayRunner:
    """Feeds logged poses to a controller, one tick per sample."""

    def __init__(
        self,
        controller: CarrotController,
        transformer: TransformBuffer,
        recorder: Optional[RunRecorder] = None,
        global_frame: str = GLOBAL_FRAME,
        base_frame: str = BASE_FRAME,
    ) -> None:
        self.controller = controller
        self.transformer = transformer
        self.recorder = recorder
        self.global_frame = global_frame
        self.base_frame = base_frame

    def step(self, pose: Pose, velocity: Twist, summary: ReplaySummary) -> Optional[VelocityCommand]:
        """Run one tick. A failed tick is logged and yields no command."""
        robot_in_global = self.transformer.transform_pose(self.global_frame, pose)
        self.transformer.set_transform(
            self.global_frame,
            self.base_frame,
            robot_in_global.x,
            robot_in_global.y,
            robot_in_global.yaw,
            stamp=pose.stamp,
        )
        if self.recorder is not None:
            self.recorder.log_pose(robot_in_global)

        summary.ticks += 1
        try:
            command = self.controller.compute_velocity_commands(pose, velocity)
        except PlannerError as e:
            summary.failures[type(e).__name__] += 1
            logging.warning(f"Tick at t={pose.stamp:.3f} failed ({type(e).__name__}): {e}")
            if self.recorder is not None:
                self.recorder.log_failure(pose.stamp, e)
            return None

        summary.succeeded += 1
        summary.commands.append(command)
        return command

    def run(self, samples: Sequence[Tuple[Pose, Twist]], realtime: bool = False) -> ReplaySummary:
        """Replay all samples, optionally pacing them at the control period."""
        summary = ReplaySummary()
        period = 1.0 / self.controller.control_frequency
        for pose, velocity in samples:
            started = time.monotonic()
            self.step(pose, velocity, summary)
            if realtime:
                time.sleep(max(0.0, period - (time.monotonic() - started)))
        return summary


def run_replay(
    plan: GlobalPlan,
    samples: Sequence[Tuple[Pose, Twist]],
    costmap: Costmap2D,
    optimizer: Optimizer,
    parameters: Optional[LookaheadParameters] = None,
    control_frequency: float = CONTROLLER_FREQUENCY,
    output_dir: str = ".",
    realtime: bool = False,
) -> Tuple[ReplaySummary, Path]:
    """Configure a controller, replay ``samples`` and record the run.

    Returns:
        The replay summary and the run directory holding the CSV files.
    """
    transformer = TransformBuffer()
    controller = CarrotController()
    controller.configure(costmap, transformer, optimizer, parameters, control_frequency)

    with RunRecorder(output_dir=output_dir, transformer=transformer) as recorder:
        recorder.attach(controller)
        controller.activate()
        try:
            controller.set_plan(plan)
            recorder.log_plan(plan)
            summary = ReplayRunner(controller, transformer, recorder).run(samples, realtime)
        finally:
            controller.cleanup()

    return summary, recorder.run_dir


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point. Returns the process exit code."""
    parser = argparse.ArgumentParser(description="Replay a pose log through the carrot planner")
    parser.add_argument("--plan", type=Path, required=True, help="Plan CSV (x, y, yaw)")
    parser.add_argument("--poses", type=Path, required=True, help="Pose log CSV (timestamp, x, y, yaw, v, omega)")
    parser.add_argument("--uri", default=OPTIMIZER_URI, help=f"Optimizer URI (default: {OPTIMIZER_URI})")
    parser.add_argument(
        "--timeout",
        type=float,
        default=OPTIMIZER_TIMEOUT_SECONDS,
        help="Optimizer reply timeout in seconds (default: wait indefinitely)",
    )
    parser.add_argument("--frequency", type=float, default=CONTROLLER_FREQUENCY, help="Control frequency (Hz)")
    parser.add_argument("--costmap", type=Path, default=None, help="Cost grid saved with numpy.save")
    parser.add_argument("--resolution", type=float, default=COSTMAP_RESOLUTION, help="Cost map resolution (m)")
    parser.add_argument("--origin", type=float, nargs=2, default=(0.0, 0.0), metavar=("X", "Y"))
    parser.add_argument("--size", type=int, default=COSTMAP_SIZE_CELLS, help="Empty cost map size (cells)")
    parser.add_argument("--lookahead-min", type=float, default=LOOKAHEAD_DIST_MIN)
    parser.add_argument("--lookahead-max", type=float, default=LOOKAHEAD_DIST_MAX)
    parser.add_argument("--lookahead-close-to-goal", type=float, default=LOOKAHEAD_DIST_CLOSE_TO_GOAL)
    parser.add_argument("--output-dir", default=".", help="Base directory for results/")
    parser.add_argument("--realtime", action="store_true", help="Pace ticks at the control period")
    parser.add_argument("--plot", action="store_true", help="Save summary plots after the replay")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps")
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    try:
        plan = load_plan_csv(args.plan)
        samples = load_pose_log(args.poses)
        costmap = load_costmap(args.costmap, args.resolution, tuple(args.origin), args.size)
        parameters = LookaheadParameters(args.lookahead_min, args.lookahead_max, args.lookahead_close_to_goal)
    except (FileNotFoundError, ValueError) as e:
        logging.error(f"Error: {e}")
        return 1

    with OptimizerClient(args.uri, timeout=args.timeout) as optimizer:
        summary, run_dir = run_replay(
            plan,
            samples,
            costmap,
            optimizer,
            parameters,
            args.frequency,
            args.output_dir,
            args.realtime,
        )

    logging.info(f"{TERM_BLUE}\033[1m→ Ticks: {summary.ticks}  Commands: {summary.succeeded}{TERM_RESET}")
    for kind, count in sorted(summary.failures.items()):
        logging.info(f"{TERM_ORANGE}  {kind}: {count}{TERM_RESET}")

    if args.plot:
        from .visualization import plot_run_summary

        plot_run_summary(run_dir, save_plots=True, show_plots=False)

    return 0 if summary.ticks and not summary.failures else 2


if __name__ == "__main__":
    sys.exit(main())
