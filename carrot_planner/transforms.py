"""Coordinate transformer for planar poses.

Frames form an undirected graph whose edges are 2-D rigid transforms
registered with ``set_transform``. A lookup composes the chain of transforms
between two frames; a pose already in the target frame is returned untouched
without any lookup.
"""

import math
import threading
from collections import deque
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from .config import TRANSFORM_TOLERANCE
from .errors import TransformUnavailableError
from .geometry import Pose


def _homogeneous(x: float, y: float, yaw: float) -> np.ndarray:
    c, s = math.cos(yaw), math.sin(yaw)
    return np.array([[c, -s, x], [s, c, y], [0.0, 0.0, 1.0]])


def _invert(matrix: np.ndarray) -> np.ndarray:
    rotation = matrix[:2, :2]
    translation = matrix[:2, 2]
    inverse = np.eye(3)
    inverse[:2, :2] = rotation.T
    inverse[:2, 2] = -rotation.T @ translation
    return inverse


@dataclass(frozen=True)
class _Link:
    parent_from_child: np.ndarray
    stamp: Optional[float]


class TransformBuffer:
    """Stores frame-to-frame transforms and expresses poses in other frames."""

    def __init__(self, tolerance: float = TRANSFORM_TOLERANCE) -> None:
        """Initialize an empty buffer.

        Args:
            tolerance: Default stamp tolerance (seconds) for ``transform_pose``.
        """
        self.tolerance = tolerance
        self._links: Dict[Tuple[str, str], _Link] = {}
        # Hosts may update transforms from a listener thread during a tick
        self._links_lock = threading.Lock()

    def set_transform(
        self,
        parent: str,
        child: str,
        x: float,
        y: float,
        yaw: float,
        stamp: Optional[float] = None,
    ) -> None:
        """Register the pose of ``child`` expressed in ``parent``.

        Args:
            parent: Parent frame name.
            child: Child frame name.
            x, y, yaw: Origin and heading of the child frame in the parent frame.
            stamp: Time the transform is valid for. None marks it static.
        """
        if parent == child:
            raise ValueError(f"Cannot register a transform from '{parent}' to itself")
        link = _Link(_homogeneous(x, y, yaw), stamp)
        with self._links_lock:
            self._links.pop((child, parent), None)
            self._links[(parent, child)] = link

    def clear(self) -> None:
        with self._links_lock:
            self._links.clear()

    def _neighbours(self, frame: str):
        with self._links_lock:
            links = list(self._links.items())
        for (parent, child), link in links:
            if parent == frame:
                yield child, _invert(link.parent_from_child), link.stamp
            elif child == frame:
                yield parent, link.parent_from_child, link.stamp

    def lookup(self, target_frame: str, source_frame: str, stamp: float, tolerance: float) -> np.ndarray:
        """Return the 3x3 matrix mapping source-frame points into the target frame.

        Raises:
            TransformUnavailableError: If the frames are not connected or a
                time-stamped link is further than ``tolerance`` from ``stamp``.
        """
        if target_frame == source_frame:
            return np.eye(3)

        # Breadth-first search, accumulating current_from_source along the way
        visited = {source_frame}
        queue = deque([(source_frame, np.eye(3))])
        stale_links = []
        while queue:
            frame, frame_from_source = queue.popleft()
            for neighbour, neighbour_from_frame, link_stamp in self._neighbours(frame):
                if neighbour in visited:
                    continue
                if link_stamp is not None and abs(stamp - link_stamp) > tolerance:
                    stale_links.append(f"{frame}->{neighbour}")
                    continue
                neighbour_from_source = neighbour_from_frame @ frame_from_source
                if neighbour == target_frame:
                    return neighbour_from_source
                visited.add(neighbour)
                queue.append((neighbour, neighbour_from_source))

        if stale_links:
            raise TransformUnavailableError(
                f"Transform from '{source_frame}' to '{target_frame}' at t={stamp:.3f} "
                f"exceeds tolerance {tolerance:.3f}s on {', '.join(stale_links)}"
            )
        raise TransformUnavailableError(
            f"No transform from '{source_frame}' to '{target_frame}'"
        )

    def transform(self, pose: Pose, target_frame: str, tolerance: Optional[float] = None) -> Pose:
        """Express ``pose`` in ``target_frame``.

        Args:
            pose: Pose to transform; its ``frame_id`` is the source frame.
            target_frame: Frame to express the pose in.
            tolerance: Stamp tolerance in seconds. Defaults to the buffer's.

        Returns:
            New pose in ``target_frame`` carrying the input stamp.

        Raises:
            TransformUnavailableError: If no valid transform exists.
        """
        if pose.frame_id == target_frame:
            return pose

        if tolerance is None:
            tolerance = self.tolerance
        target_from_source = self.lookup(target_frame, pose.frame_id, pose.stamp, tolerance)
        x, y, _ = target_from_source @ np.array([pose.x, pose.y, 1.0])
        rotation = math.atan2(target_from_source[1, 0], target_from_source[0, 0])
        return Pose(float(x), float(y), pose.yaw + rotation, target_frame, pose.stamp)

    def transform_pose(self, target_frame: str, pose: Pose) -> Pose:
        """Shorthand for ``transform`` with the buffer's default tolerance."""
        return self.transform(pose, target_frame, self.tolerance)

    def can_transform(self, target_frame: str, source_frame: str, stamp: float = 0.0) -> bool:
        try:
            self.lookup(target_frame, source_frame, stamp, self.tolerance)
        except TransformUnavailableError:
            return False
        return True
