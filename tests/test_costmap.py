"""Tests for the cost grid and footprint cost queries."""

from __future__ import annotations

import numpy as np
import pytest

from carrot_planner.costmap import LETHAL_COST, Costmap2D, FootprintCollisionChecker

SQUARE_FOOTPRINT = ((0.25, 0.25), (0.25, -0.25), (-0.25, -0.25), (-0.25, 0.25))


def _build_costmap() -> Costmap2D:
    return Costmap2D(size_x=20, size_y=20, resolution=0.1, global_frame="map", footprint=SQUARE_FOOTPRINT)


def test_world_to_map() -> None:
    costmap = _build_costmap()
    assert costmap.world_to_map(0.55, 0.25) == (5, 2)
    assert costmap.world_to_map(-0.01, 0.5) is None
    assert costmap.world_to_map(0.5, 2.05) is None


def test_set_cost_at_rejects_points_off_map() -> None:
    costmap = _build_costmap()
    costmap.set_cost_at(0.55, 0.25, 100)
    assert costmap.get_cost(5, 2) == 100
    with pytest.raises(ValueError):
        costmap.set_cost_at(5.0, 5.0, 100)


def test_from_array_clips_and_sizes() -> None:
    grid = np.zeros((10, 30))
    grid[2, 3] = 400
    costmap = Costmap2D.from_array(grid, 0.05)
    assert costmap.size_in_cells_x == 30
    assert costmap.size_in_cells_y == 10
    assert costmap.get_cost(3, 2) == LETHAL_COST
    assert not costmap.grid.flags.writeable


def test_footprint_cost_on_free_space() -> None:
    checker = FootprintCollisionChecker(_build_costmap())
    assert checker.footprint_cost_at_pose(1.0, 1.0, 0.0, SQUARE_FOOTPRINT) == 0.0


def test_footprint_cost_is_max_along_outline() -> None:
    costmap = _build_costmap()
    # Corners of the footprint at (1, 1) fall in cells 7 and 12
    costmap.set_cost(9, 12, 150)
    costmap.set_cost(10, 10, LETHAL_COST)  # inside the outline, not checked
    checker = FootprintCollisionChecker(costmap)
    assert checker.footprint_cost_at_pose(1.0, 1.0, 0.0, SQUARE_FOOTPRINT) == 150.0

    costmap.set_cost(12, 9, LETHAL_COST)
    assert checker.footprint_cost_at_pose(1.0, 1.0, 0.0, SQUARE_FOOTPRINT) == LETHAL_COST


def test_footprint_off_map_is_lethal() -> None:
    checker = FootprintCollisionChecker(_build_costmap())
    assert checker.footprint_cost_at_pose(0.1, 0.1, 0.0, SQUARE_FOOTPRINT) == LETHAL_COST


def test_empty_footprint_rejected() -> None:
    checker = FootprintCollisionChecker(_build_costmap())
    with pytest.raises(ValueError):
        checker.footprint_cost_at_pose(1.0, 1.0, 0.0, ())
