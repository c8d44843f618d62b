"""Sliding-window management of the global plan.

Each tick the plan is trimmed up to the pose closest to the robot, and the
part of the remaining plan that lies within the local cost map is
re-expressed in the robot's base frame. Trimmed poses are gone for good: the
stored plan only shrinks until a new plan is set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

import numpy as np

from .costmap import Costmap2D
from .diagnostics import Publisher
from .errors import EmptyPlanError, EmptyWindowError, TransformUnavailableError
from .geometry import GlobalPlan, Pose, euclidean_distance
from .transforms import TransformBuffer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalWindow:
    """Part of the global plan within map range, in the robot base frame.

    Attributes:
        poses: Window poses in path order, expressed in ``frame_id``.
        frame_id: Robot base frame.
        stamp: Stamp of the robot pose the window was computed for.
        near_goal: True when the robot is within the close-to-goal distance
            of the plan's final pose.
    """

    poses: Tuple[Pose, ...]
    frame_id: str
    stamp: float
    near_goal: bool = False

    def __len__(self) -> int:
        return len(self.poses)

    def __iter__(self) -> Iterator[Pose]:
        return iter(self.poses)


class PlanWindowManager:
    """Owns the stored global plan and produces the local window each tick."""

    def __init__(
        self,
        costmap: Costmap2D,
        transformer: TransformBuffer,
        publisher: Optional[Publisher[LocalWindow]] = None,
    ) -> None:
        self.costmap = costmap
        self.transformer = transformer
        self.publisher = publisher
        self._plan: Optional[GlobalPlan] = None

    @property
    def plan(self) -> Optional[GlobalPlan]:
        return self._plan

    def set_plan(self, plan: GlobalPlan) -> None:
        """Replace the stored plan wholesale (a private copy is kept)."""
        self._plan = GlobalPlan(plan.frame_id, list(plan.poses))

    @property
    def max_transform_dist(self) -> float:
        """Half the larger cost map dimension, in meters."""
        max_costmap_dim = max(self.costmap.size_in_cells_x, self.costmap.size_in_cells_y)
        return max_costmap_dim * self.costmap.resolution / 2.0

    def trim_and_project(self, robot_pose: Pose, close_to_goal_distance: float) -> LocalWindow:
        """Trim the consumed prefix of the plan and project the local window.

        Args:
            robot_pose: Current robot pose, in any frame connected to the plan's.
            close_to_goal_distance: Radius around the goal within which the
                window is flagged ``near_goal``.

        Returns:
            The local window in the cost map's base frame.

        Raises:
            EmptyPlanError: If no plan is stored or it has zero poses.
            TransformUnavailableError: If the robot pose or a window pose
                cannot be transformed.
            EmptyWindowError: If no plan pose lies within map range.
        """
        plan = self._plan
        if plan is None or not plan.poses:
            raise EmptyPlanError("Received plan with zero length")

        try:
            robot_in_plan = self.transformer.transform_pose(plan.frame_id, robot_pose)
        except TransformUnavailableError as e:
            raise TransformUnavailableError(
                f"Unable to transform robot pose into global plan's frame: {e}"
            ) from e

        xs = np.array([p.x for p in plan.poses])
        ys = np.array([p.y for p in plan.poses])
        distances = np.hypot(xs - robot_in_plan.x, ys - robot_in_plan.y)

        # argmin returns the first occurrence on ties
        transformation_begin = int(np.argmin(distances))

        near_goal = euclidean_distance(robot_in_plan, plan.poses[-1]) <= close_to_goal_distance

        # Points beyond the local map are not transformed
        beyond = np.flatnonzero(distances[transformation_begin:] > self.max_transform_dist)
        transformation_end = transformation_begin + int(beyond[0]) if beyond.size else len(plan.poses)

        base_frame = self.costmap.base_frame
        transformed = []
        for plan_pose in plan.poses[transformation_begin:transformation_end]:
            stamped = Pose(plan_pose.x, plan_pose.y, plan_pose.yaw, plan.frame_id, robot_pose.stamp)
            transformed.append(self.transformer.transform_pose(base_frame, stamped))

        window = LocalWindow(tuple(transformed), base_frame, robot_pose.stamp, near_goal)

        plan.erase_before(transformation_begin)
        if transformation_begin:
            logger.debug(
                f"Trimmed {transformation_begin} consumed poses, {len(plan.poses)} remain"
            )

        if self.publisher is not None:
            self.publisher.publish(window)

        if not window.poses:
            raise EmptyWindowError("Resulting plan has 0 poses in it.")

        return window
