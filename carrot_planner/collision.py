"""Collision gate around the footprint cost query."""

import logging
from typing import Optional

from .costmap import LETHAL_COST, Costmap2D, Footprint, FootprintCollisionChecker
from .errors import CollisionDetectedError
from .geometry import Pose
from .transforms import TransformBuffer

logger = logging.getLogger(__name__)


class CollisionGate:
    """Interprets footprint costs and aborts the tick on certain collision.

    Any cost below the sentinel is passed on as a proximity signal.
    """

    def __init__(self, costmap: Costmap2D, transformer: TransformBuffer) -> None:
        self.costmap = costmap
        self.transformer = transformer
        self.checker = FootprintCollisionChecker(costmap)

    def footprint_cost(self, pose: Pose, footprint: Optional[Footprint] = None) -> float:
        """Cost of the robot footprint at ``pose``.

        Args:
            pose: Robot pose; transformed into the cost map frame if needed.
            footprint: Footprint polygon in the base frame. Defaults to the
                cost map's robot footprint.

        Raises:
            TransformUnavailableError: If the pose cannot reach the map frame.
        """
        map_pose = self.transformer.transform_pose(self.costmap.global_frame, pose)
        if footprint is None:
            footprint = self.costmap.footprint
        return self.checker.footprint_cost_at_pose(map_pose.x, map_pose.y, map_pose.yaw, footprint)

    def raise_if_collision(self, cost: float) -> None:
        if cost == LETHAL_COST:
            logger.debug("Footprint cost at lethal sentinel, aborting tick")
            raise CollisionDetectedError("Collision detected at the current footprint!", cost)

    def check(self, pose: Pose, footprint: Optional[Footprint] = None) -> float:
        """Return the footprint cost, raising ``CollisionDetectedError`` on the sentinel."""
        cost = self.footprint_cost(pose, footprint)
        self.raise_if_collision(cost)
        return cost
