"""Lookahead distance policy and carrot selection.

The carrot is the first pose of the local window at least one lookahead
distance away from the robot. The lookahead distance itself depends on the
speed regime and on whether the robot is close to its goal.
"""

import math
from typing import Sequence

from .errors import EmptyWindowError
from .geometry import Pose
from .parameters import LookaheadParameters


def lookahead_distance(parameters: LookaheadParameters, slowed: bool, near_goal: bool) -> float:
    """Select the active lookahead distance.

    Args:
        parameters: Current lookahead configuration.
        slowed: True while the SLOWED regime is active.
        near_goal: True when the robot is within the close-to-goal radius.

    Returns:
        The close-to-goal distance when near the goal, otherwise the max
        distance in the NORMAL regime and the min distance when SLOWED.
    """
    if near_goal:
        return parameters.close_to_goal_distance
    if not slowed:
        return parameters.max_distance
    return parameters.min_distance


def select_lookahead_point(lookahead_dist: float, local_path: Sequence[Pose]) -> Pose:
    """Find the carrot pose on a local path expressed in the robot frame.

    Args:
        lookahead_dist: Target distance from the robot origin (meters).
        local_path: Poses in path order, relative to the robot at (0, 0).

    Returns:
        The first pose at least ``lookahead_dist`` from the origin, or the
        last pose when the path is too short.

    Raises:
        EmptyWindowError: If ``local_path`` is empty.
    """
    if not local_path:
        raise EmptyWindowError("Cannot select a lookahead point on an empty path")

    for pose in local_path:
        if math.hypot(pose.x, pose.y) >= lookahead_dist:
            return pose

    # No pose is far enough, take the last one
    return local_path[-1]
