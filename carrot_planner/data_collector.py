"""CSV recording of planner diagnostics.

This module records, per run:
- The global plan as received (plan.csv)
- Robot poses fed to the controller (poses.csv)
- Local windows published each tick (local_plan.csv)
- Carrot points, also projected into the global frame (carrot.csv)
- Tick outcomes: regime, lookahead, cost, command or error (ticks.csv)
"""

import csv
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, TextIO

from .config import GLOBAL_FRAME, TERM_BLUE, TERM_RESET
from .errors import TransformUnavailableError
from .geometry import GlobalPlan, PointStamped, Pose
from .plan_window import LocalWindow
from .transforms import TransformBuffer

logger = logging.getLogger(__name__)

PLAN_HEADER = ["index", "x", "y", "yaw"]
POSE_HEADER = ["timestamp", "x", "y", "yaw"]
LOCAL_PLAN_HEADER = ["timestamp", "index", "x", "y", "yaw"]
CARROT_HEADER = ["timestamp", "x_base", "y_base", "z", "x_global", "y_global"]
TICK_HEADER = [
    "timestamp",
    "outcome",
    "regime",
    "lookahead",
    "near_goal",
    "footprint_cost",
    "window_size",
    "linear_x",
    "angular_z",
]


class RunRecorder:
    """Manages CSV file creation and logging for one planner run.

    Attributes:
        run_dir: Directory path for this run's output files.
        transformer: Optional transformer used to express carrots in the
            global frame. Projection is best-effort: when the transform is
            unavailable the carrot row is skipped.
        global_frame: Frame carrots are projected into.
    """

    def __init__(
        self,
        output_dir: str = ".",
        run_dir: Optional[str] = None,
        transformer: Optional[TransformBuffer] = None,
        global_frame: str = GLOBAL_FRAME,
    ) -> None:
        """Initialize the recorder.

        Args:
            output_dir: Base directory for output files (default: current directory).
            run_dir: Optional specific run directory. If None, creates a
                timestamped directory. Can also be set via RUN_DIR.
            transformer: Transformer for carrot projection.
            global_frame: Frame carrots are projected into.

        Raises:
            ValueError: If output_dir is not a valid directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.transformer = transformer
        self.global_frame = global_frame

        if run_dir:
            self.run_dir: Path = Path(run_dir)
        elif env_run_dir := os.environ.get("RUN_DIR"):
            self.run_dir = Path(env_run_dir)
        else:
            # results/run_YYYYMMDD_HHMMSS/
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.run_dir = output_path / "results" / f"run_{timestamp}"

        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.plan_output_path: Path = self.run_dir / "plan.csv"
        self.pose_output_path: Path = self.run_dir / "poses.csv"
        self.local_plan_output_path: Path = self.run_dir / "local_plan.csv"
        self.carrot_output_path: Path = self.run_dir / "carrot.csv"
        self.tick_output_path: Path = self.run_dir / "ticks.csv"

        self._files: dict = {}
        self._writers: dict = {}
        self.skipped_carrots = 0

    def _open(self, key: str, path: Path, header: list) -> None:
        handle: TextIO = open(path, "w", newline="")
        writer = csv.writer(handle)
        writer.writerow(header)
        handle.flush()
        self._files[key] = handle
        self._writers[key] = writer

    def _write(self, key: str, row: list) -> None:
        writer = self._writers.get(key)
        if writer is None:
            raise RuntimeError("RunRecorder.setup() must be called before logging")
        writer.writerow(row)
        self._files[key].flush()

    def setup(self) -> None:
        """Create all CSV files with their headers."""
        self._open("plan", self.plan_output_path, PLAN_HEADER)
        self._open("poses", self.pose_output_path, POSE_HEADER)
        self._open("local_plan", self.local_plan_output_path, LOCAL_PLAN_HEADER)
        self._open("carrot", self.carrot_output_path, CARROT_HEADER)
        self._open("ticks", self.tick_output_path, TICK_HEADER)
        logger.info(f"{TERM_BLUE}✓ Initialized data collection to {self.run_dir}{TERM_RESET}")

    def attach(self, controller: Any) -> None:
        """Subscribe to a CarrotController's diagnostics publishers."""
        controller.local_plan_pub.subscribe(self.log_local_plan)
        controller.carrot_pub.subscribe(self.log_carrot)
        controller.tick_pub.subscribe(self.log_tick)

    def log_plan(self, plan: GlobalPlan) -> None:
        for index, pose in enumerate(plan.poses):
            self._write("plan", [index, pose.x, pose.y, pose.yaw])

    def log_pose(self, pose: Pose) -> None:
        self._write("poses", [pose.stamp, pose.x, pose.y, pose.yaw])

    def log_local_plan(self, window: LocalWindow) -> None:
        for index, pose in enumerate(window.poses):
            self._write("local_plan", [window.stamp, index, pose.x, pose.y, pose.yaw])

    def log_carrot(self, carrot: PointStamped) -> None:
        """Log a carrot point, skipping it if it cannot reach the global frame."""
        x_global, y_global = carrot.x, carrot.y
        if self.transformer is not None:
            try:
                projected = self.transformer.transform_pose(
                    self.global_frame, Pose(carrot.x, carrot.y, 0.0, carrot.frame_id, carrot.stamp)
                )
            except TransformUnavailableError as e:
                self.skipped_carrots += 1
                logger.debug(f"Skipping carrot at t={carrot.stamp:.3f}: {e}")
                return
            x_global, y_global = projected.x, projected.y
        self._write("carrot", [carrot.stamp, carrot.x, carrot.y, carrot.z, x_global, y_global])

    def log_tick(self, report: Any) -> None:
        """Log a successful tick (a controller TickReport)."""
        self._write(
            "ticks",
            [
                report.stamp,
                "ok",
                report.regime.value,
                report.lookahead_distance,
                int(report.near_goal),
                report.footprint_cost,
                report.window_size,
                report.command.linear_x,
                report.command.angular_z,
            ],
        )

    def log_failure(self, timestamp: float, error: Exception) -> None:
        """Log a failed tick by its error kind."""
        self._write("ticks", [timestamp, type(error).__name__, "", "", "", "", "", "", ""])

    def cleanup(self) -> None:
        """Close all CSV files and log final output location."""
        for handle in self._files.values():
            handle.close()
        self._files.clear()
        self._writers.clear()
        logger.info(f"{TERM_BLUE}✓ Saved planner data to {self.run_dir}{TERM_RESET}")

    def __enter__(self) -> "RunRecorder":
        self.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.cleanup()
