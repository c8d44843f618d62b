"""Tests for lookahead distance selection and carrot picking."""

from __future__ import annotations

import pytest

from carrot_planner.errors import EmptyWindowError
from carrot_planner.geometry import Pose
from carrot_planner.lookahead import lookahead_distance, select_lookahead_point
from carrot_planner.parameters import LookaheadParameters


def _build_path() -> list:
    return [Pose(0.0, 0.0, 0.0), Pose(1.0, 0.0, 0.0), Pose(2.0, 0.0, 0.0)]


def test_carrot_is_first_pose_at_lookahead() -> None:
    path = _build_path()
    assert select_lookahead_point(1.0, path) is path[1]
    assert select_lookahead_point(0.0, path) is path[0]
    assert select_lookahead_point(1.5, path) is path[2]


def test_short_path_falls_back_to_last_pose() -> None:
    path = _build_path()
    assert select_lookahead_point(10.0, path) is path[-1]


def test_selection_is_repeatable() -> None:
    path = [Pose(0.3, 0.1, 0.0), Pose(0.8, 0.4, 0.9), Pose(1.2, 1.0, 1.2)]
    assert select_lookahead_point(0.9, path) == select_lookahead_point(0.9, path)


def test_empty_path_raises() -> None:
    with pytest.raises(EmptyWindowError):
        select_lookahead_point(1.0, [])


def test_lookahead_distance_policy() -> None:
    parameters = LookaheadParameters(min_distance=0.3, max_distance=1.2, close_to_goal_distance=0.6)

    assert lookahead_distance(parameters, slowed=False, near_goal=False) == 1.2
    assert lookahead_distance(parameters, slowed=True, near_goal=False) == 0.3
    # Near the goal overrides the regime
    assert lookahead_distance(parameters, slowed=False, near_goal=True) == 0.6
    assert lookahead_distance(parameters, slowed=True, near_goal=True) == 0.6
