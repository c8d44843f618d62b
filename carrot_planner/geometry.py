"""Planar geometry types shared by the planner.

Poses are 2-D (x, y, yaw) with an owning frame and a timestamp. Orientation is
stored as yaw; conversions to and from unit quaternions are provided for
interfaces that exchange full orientations.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator, List, Tuple


def yaw_from_quaternion(qx: float, qy: float, qz: float, qw: float) -> float:
    """Extract yaw (rotation about z) from a unit quaternion.

    Args:
        qx, qy, qz, qw: Quaternion components.

    Returns:
        Yaw angle in radians, in [-pi, pi].
    """
    return math.atan2(2.0 * (qw * qz + qx * qy), 1.0 - 2.0 * (qy * qy + qz * qz))


def quaternion_from_yaw(yaw: float) -> Tuple[float, float, float, float]:
    """Return the (x, y, z, w) quaternion for a pure rotation about z."""
    half = 0.5 * yaw
    return 0.0, 0.0, math.sin(half), math.cos(half)


def normalize_angle(angle: float) -> float:
    """Wrap an angle to [-pi, pi]."""
    return math.atan2(math.sin(angle), math.cos(angle))


@dataclass(frozen=True)
class Pose:
    """Robot or path pose in a named frame."""

    x: float
    y: float
    yaw: float = 0.0
    frame_id: str = ""
    stamp: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", float(self.x))
        object.__setattr__(self, "y", float(self.y))
        object.__setattr__(self, "yaw", normalize_angle(float(self.yaw)))
        object.__setattr__(self, "stamp", float(self.stamp))

    @classmethod
    def from_quaternion(
        cls,
        x: float,
        y: float,
        quaternion: Tuple[float, float, float, float],
        frame_id: str = "",
        stamp: float = 0.0,
    ) -> Pose:
        return cls(x, y, yaw_from_quaternion(*quaternion), frame_id, stamp)

    @property
    def quaternion(self) -> Tuple[float, float, float, float]:
        return quaternion_from_yaw(self.yaw)

    def with_frame(self, frame_id: str, stamp: float | None = None) -> Pose:
        """Return a copy re-labelled to another frame (no geometric change)."""
        return Pose(self.x, self.y, self.yaw, frame_id, self.stamp if stamp is None else stamp)

    def same_pose(self, other: Pose | None) -> bool:
        """Compare position and orientation only, ignoring frame and stamp."""
        if other is None:
            return False
        return self.x == other.x and self.y == other.y and self.yaw == other.yaw

    def distance_to(self, other: Pose) -> float:
        return euclidean_distance(self, other)


def euclidean_distance(a: Pose, b: Pose) -> float:
    """Planar distance between two poses (frames are not checked)."""
    return math.hypot(a.x - b.x, a.y - b.y)


@dataclass
class GlobalPlan:
    """Global path whose prefix is consumed as the robot advances.

    Attributes:
        frame_id: Frame every pose of the plan is expressed in.
        poses: Remaining (not yet consumed) poses, in path order.
        consumed: Number of poses trimmed from the front since the plan was set.
    """

    frame_id: str
    poses: List[Pose] = field(default_factory=list)
    consumed: int = 0

    def __len__(self) -> int:
        return len(self.poses)

    def __iter__(self) -> Iterator[Pose]:
        return iter(self.poses)

    @property
    def goal(self) -> Pose:
        """Final pose of the plan, labelled with the plan frame."""
        return self.poses[-1].with_frame(self.frame_id)

    def erase_before(self, index: int) -> None:
        """Permanently drop every pose before ``index``."""
        if index <= 0:
            return
        del self.poses[:index]
        self.consumed += index


@dataclass(frozen=True)
class Twist:
    """Planar velocity (m/s, rad/s)."""

    linear_x: float = 0.0
    linear_y: float = 0.0
    angular_z: float = 0.0


@dataclass(frozen=True)
class VelocityCommand:
    """Velocity command returned by the optimizer, stamped."""

    linear_x: float
    linear_y: float
    angular_z: float
    stamp: float = 0.0
    frame_id: str = ""

    @property
    def twist(self) -> Twist:
        return Twist(self.linear_x, self.linear_y, self.angular_z)


@dataclass(frozen=True)
class PointStamped:
    x: float
    y: float
    z: float
    frame_id: str
    stamp: float
