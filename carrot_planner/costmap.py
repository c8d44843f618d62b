"""Local cost map and footprint cost queries.

Costs are integers on a 0-255 scale. 0 is free space, values up to 254
express increasing obstacle proximity, and ``LETHAL_COST`` (255) is the
sentinel for a guaranteed collision. A footprint that leaves the map is
reported as lethal too.
"""

import math
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np

from .config import (
    BASE_FRAME,
    COSTMAP_RESOLUTION,
    COSTMAP_SIZE_CELLS,
    ODOM_FRAME,
    ROBOT_FOOTPRINT,
)

FREE_SPACE = 0
INSCRIBED_COST = 253
LETHAL_COST = 255

Footprint = Sequence[Tuple[float, float]]


class Costmap2D:
    """Rectangular occupancy cost grid anchored in a global frame.

    Attributes:
        resolution: Cell edge length (meters).
        origin_x, origin_y: World coordinates of the lower-left map corner.
        global_frame: Frame the grid is anchored in.
        base_frame: Robot body frame used for local plan reprojection.
        footprint: Robot footprint polygon in the base frame (meters).
    """

    def __init__(
        self,
        size_x: int = COSTMAP_SIZE_CELLS,
        size_y: int = COSTMAP_SIZE_CELLS,
        resolution: float = COSTMAP_RESOLUTION,
        origin_x: float = 0.0,
        origin_y: float = 0.0,
        global_frame: str = ODOM_FRAME,
        base_frame: str = BASE_FRAME,
        footprint: Footprint = ROBOT_FOOTPRINT,
        default_value: int = FREE_SPACE,
    ) -> None:
        if size_x <= 0 or size_y <= 0:
            raise ValueError("Cost map dimensions must be positive.")
        if resolution <= 0.0:
            raise ValueError("Cost map resolution must be positive.")
        self.resolution = float(resolution)
        self.origin_x = float(origin_x)
        self.origin_y = float(origin_y)
        self.global_frame = global_frame
        self.base_frame = base_frame
        self.footprint = tuple((float(px), float(py)) for px, py in footprint)
        self._grid = np.full((size_y, size_x), default_value, dtype=np.uint8)

    @classmethod
    def from_array(cls, grid: np.ndarray, resolution: float, **kwargs) -> "Costmap2D":
        """Build a cost map from a (rows=y, cols=x) array of costs."""
        cells = np.asarray(grid)
        if cells.ndim != 2:
            raise ValueError(f"Cost grid must be 2-D; received shape {cells.shape}")
        costmap = cls(size_x=cells.shape[1], size_y=cells.shape[0], resolution=resolution, **kwargs)
        costmap._grid[:, :] = np.clip(cells, FREE_SPACE, LETHAL_COST).astype(np.uint8)
        return costmap

    @property
    def size_in_cells_x(self) -> int:
        return self._grid.shape[1]

    @property
    def size_in_cells_y(self) -> int:
        return self._grid.shape[0]

    @property
    def grid(self) -> np.ndarray:
        """Read-only view of the cost grid."""
        view = self._grid.view()
        view.flags.writeable = False
        return view

    def world_to_map(self, wx: float, wy: float) -> Optional[Tuple[int, int]]:
        """Convert world coordinates to cell indices, or None when off the map."""
        if wx < self.origin_x or wy < self.origin_y:
            return None
        mx = int((wx - self.origin_x) / self.resolution)
        my = int((wy - self.origin_y) / self.resolution)
        if mx >= self.size_in_cells_x or my >= self.size_in_cells_y:
            return None
        return mx, my

    def get_cost(self, mx: int, my: int) -> int:
        return int(self._grid[my, mx])

    def set_cost(self, mx: int, my: int, cost: int) -> None:
        self._grid[my, mx] = cost

    def set_cost_at(self, wx: float, wy: float, cost: int) -> None:
        """Set the cost of the cell containing a world point."""
        cell = self.world_to_map(wx, wy)
        if cell is None:
            raise ValueError(f"Point ({wx:.2f}, {wy:.2f}) lies outside the cost map")
        self.set_cost(cell[0], cell[1], cost)


def _line_cells(x0: int, y0: int, x1: int, y1: int) -> Iterator[Tuple[int, int]]:
    """Bresenham traversal of every cell between two cells, inclusive."""
    dx = abs(x1 - x0)
    dy = -abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    error = dx + dy
    while True:
        yield x0, y0
        if x0 == x1 and y0 == y1:
            return
        doubled = 2 * error
        if doubled >= dy:
            error += dy
            x0 += sx
        if doubled <= dx:
            error += dx
            y0 += sy


class FootprintCollisionChecker:
    """Evaluates the cost of a polygonal footprint placed on a cost map.

    Only the footprint outline is checked: the cost is the maximum cell cost
    along its edges.
    """

    def __init__(self, costmap: Costmap2D) -> None:
        self.costmap = costmap

    def line_cost(self, x0: int, y0: int, x1: int, y1: int) -> float:
        line_cost = 0.0
        for mx, my in _line_cells(x0, y0, x1, y1):
            point_cost = self.costmap.get_cost(mx, my)
            if point_cost == LETHAL_COST:
                return float(point_cost)
            line_cost = max(line_cost, float(point_cost))
        return line_cost

    def footprint_cost(self, footprint: Footprint) -> float:
        """Cost of an already oriented footprint given in world coordinates."""
        cells = []
        for wx, wy in footprint:
            cell = self.costmap.world_to_map(wx, wy)
            if cell is None:
                return float(LETHAL_COST)
            cells.append(cell)

        footprint_cost = 0.0
        for i, (x0, y0) in enumerate(cells):
            x1, y1 = cells[(i + 1) % len(cells)]
            footprint_cost = max(footprint_cost, self.line_cost(x0, y0, x1, y1))
            if footprint_cost == LETHAL_COST:
                break
        return footprint_cost

    def footprint_cost_at_pose(self, x: float, y: float, theta: float, footprint: Footprint) -> float:
        """Cost of ``footprint`` (base frame) placed at (x, y, theta) in the map frame."""
        if not footprint:
            raise ValueError("Footprint must contain at least one point.")
        c, s = math.cos(theta), math.sin(theta)
        oriented = [(x + px * c - py * s, y + px * s + py * c) for px, py in footprint]
        return self.footprint_cost(oriented)
