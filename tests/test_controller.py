"""Tests for the carrot controller tick pipeline."""

from __future__ import annotations

import math
from typing import List

import numpy as np
import pytest

from carrot_planner.controller import CarrotController, TickReport
from carrot_planner.costmap import LETHAL_COST, Costmap2D
from carrot_planner.errors import CollisionDetectedError, EmptyPlanError, OptimizerUnavailableError
from carrot_planner.geometry import GlobalPlan, PointStamped, Pose, Twist, VelocityCommand
from carrot_planner.optimizer_client import ControlRequest
from carrot_planner.parameters import LookaheadParameters
from carrot_planner.regime import SpeedRegime
from carrot_planner.transforms import TransformBuffer


class FakeOptimizer:
    """Records requests and answers with a fixed command."""

    def __init__(self, command: VelocityCommand = VelocityCommand(0.3, 0.0, 0.0)) -> None:
        self.command = command
        self.requests: List[ControlRequest] = []

    def submit(self, request: ControlRequest) -> VelocityCommand:
        self.requests.append(request)
        return self.command


class FailingOptimizer:
    def submit(self, request: ControlRequest) -> VelocityCommand:
        raise OptimizerUnavailableError("Optimizer did not reply within 0.1s")


def _build_line_plan(length: float = 4.0, step: float = 0.5, y: float = 0.0) -> GlobalPlan:
    count = int(round(length / step)) + 1
    return GlobalPlan("map", [Pose(i * step, y, 0.0, "map") for i in range(count)])


def _build_controller(
    optimizer=None,
    fill: int = 0,
    parameters: LookaheadParameters = LookaheadParameters(0.5, 1.5, 0.3),
    frequency: float = 10.0,
):
    costmap = Costmap2D.from_array(
        np.full((100, 100), fill),
        0.05,
        origin_x=-2.5,
        origin_y=-2.5,
        global_frame="map",
        base_frame="base_link",
    )
    transformer = TransformBuffer()
    transformer.set_transform("map", "base_link", 0.0, 0.0, 0.0)
    optimizer = optimizer if optimizer is not None else FakeOptimizer()

    controller = CarrotController()
    controller.configure(costmap, transformer, optimizer, parameters, control_frequency=frequency)
    controller.activate()
    return controller, transformer, optimizer


def _tick(controller: CarrotController, x: float = 0.0, stamp: float = 0.0) -> VelocityCommand:
    return controller.compute_velocity_commands(Pose(x, 0.0, 0.0, "map", stamp), Twist(0.2, 0.0, 0.0))


def test_first_plan_starts_slowed_then_speeds_up() -> None:
    controller, _, optimizer = _build_controller()
    controller.set_plan(_build_line_plan())
    assert controller.regime is SpeedRegime.SLOWED

    command = _tick(controller)
    assert command == optimizer.command
    assert controller.last_tick.lookahead_distance == 0.5
    assert controller.last_tick.carrot.x == pytest.approx(0.5)
    assert controller.regime is SpeedRegime.NORMAL

    _tick(controller, stamp=0.1)
    assert controller.last_tick.lookahead_distance == 1.5
    assert controller.last_tick.carrot.x == pytest.approx(1.5)


def test_request_contents() -> None:
    controller, _, optimizer = _build_controller(frequency=20.0)
    controller.set_plan(_build_line_plan())
    pose = Pose(0.0, 0.0, 0.0, "map", 3.0)
    velocity = Twist(0.2, 0.0, 0.1)

    controller.compute_velocity_commands(pose, velocity)

    request = optimizer.requests[-1]
    assert request.current_pose == pose
    assert request.current_vel == velocity
    assert request.goal_pose.same_pose(Pose(4.0, 0.0, 0.0))
    assert request.carrot_pose.frame_id == "base_link"
    assert request.switch_opt is False
    assert request.control_interval == pytest.approx(0.05)


def test_new_goal_forces_slowed() -> None:
    controller, _, _ = _build_controller()
    controller.set_plan(_build_line_plan())
    _tick(controller)
    assert controller.regime is SpeedRegime.NORMAL

    # Same goal: no change of regime
    controller.set_plan(_build_line_plan())
    assert controller.regime is SpeedRegime.NORMAL

    controller.set_plan(_build_line_plan(length=3.5))
    assert controller.regime is SpeedRegime.SLOWED
    _tick(controller, stamp=0.1)
    assert controller.last_tick.lookahead_distance == 0.5


def test_near_goal_uses_close_to_goal_distance() -> None:
    controller, transformer, optimizer = _build_controller()
    controller.set_plan(_build_line_plan(length=2.0))
    transformer.set_transform("map", "base_link", 1.8, 0.0, 0.0)

    _tick(controller, x=1.8)

    assert controller.last_tick.near_goal
    assert controller.last_tick.lookahead_distance == 0.3
    assert optimizer.requests[-1].switch_opt is True


def test_sharp_turn_near_obstacles_keeps_slowed() -> None:
    controller, _, _ = _build_controller(fill=220)
    turn = GlobalPlan("map", [Pose(0.0, 0.5 * i, math.pi / 2, "map") for i in range(5)])
    controller.set_plan(turn)

    _tick(controller)
    assert controller.regime is SpeedRegime.SLOWED
    assert controller.last_tick.footprint_cost == 220.0

    _tick(controller, stamp=0.1)
    assert controller.last_tick.lookahead_distance == 0.5
    assert controller.regime is SpeedRegime.SLOWED


def test_collision_aborts_before_optimizer() -> None:
    controller, _, optimizer = _build_controller(fill=LETHAL_COST)
    controller.set_plan(_build_line_plan())

    with pytest.raises(CollisionDetectedError) as excinfo:
        _tick(controller)

    assert excinfo.value.cost == LETHAL_COST
    assert optimizer.requests == []
    assert controller.carrot_pub.published_count == 0
    assert controller.local_plan_pub.published_count == 1
    assert controller.last_tick is None


def test_optimizer_failure_propagates() -> None:
    controller, _, _ = _build_controller(optimizer=FailingOptimizer())
    controller.set_plan(_build_line_plan())

    with pytest.raises(OptimizerUnavailableError):
        _tick(controller)
    assert controller.last_tick is None
    assert controller.tick_pub.published_count == 0


def test_empty_plan_keeps_goal_and_fails_tick() -> None:
    controller, _, optimizer = _build_controller()
    controller.set_plan(_build_line_plan())
    goal = controller.goal

    controller.set_plan(GlobalPlan("map", []))
    assert controller.goal is goal
    with pytest.raises(EmptyPlanError):
        _tick(controller)
    assert optimizer.requests == []


def test_diagnostics_published() -> None:
    controller, _, _ = _build_controller()
    carrots: List[PointStamped] = []
    reports: List[TickReport] = []
    controller.carrot_pub.subscribe(carrots.append)
    controller.tick_pub.subscribe(reports.append)
    controller.set_plan(_build_line_plan())

    _tick(controller, stamp=1.5)

    assert carrots[0].z == 0.01
    assert carrots[0].frame_id == "base_link"
    assert carrots[0].stamp == 1.5
    assert reports[0] is controller.last_tick
    assert reports[0].window_size == 6


def test_no_diagnostics_while_inactive() -> None:
    controller, _, optimizer = _build_controller()
    controller.deactivate()
    controller.set_plan(_build_line_plan())

    _tick(controller)

    assert len(optimizer.requests) == 1
    assert controller.carrot_pub.published_count == 0
    assert controller.local_plan_pub.published_count == 0


def test_reconfiguration_refused_during_tick() -> None:
    controller, _, _ = _build_controller()
    results = []

    class ReconfiguringOptimizer(FakeOptimizer):
        def submit(self, request: ControlRequest) -> VelocityCommand:
            results.append(controller.dynamic_parameters_callback({"lookahead_dist_max": 3.0}))
            return super().submit(request)

    controller._optimizer = ReconfiguringOptimizer()
    controller.set_plan(_build_line_plan())
    before = controller.parameters

    _tick(controller)

    assert not results[0].successful
    assert controller.parameters is before

    result = controller.dynamic_parameters_callback({"lookahead_dist_max": 3.0})
    assert result.successful
    assert controller.parameters.max_distance == 3.0


def test_speed_limit_is_ignored() -> None:
    controller, _, _ = _build_controller()
    before = controller.parameters
    controller.set_speed_limit(0.5, percentage=False)
    assert controller.parameters is before


def test_lifecycle() -> None:
    controller = CarrotController()
    assert not controller.configured
    with pytest.raises(RuntimeError):
        controller.set_plan(_build_line_plan())
    with pytest.raises(RuntimeError):
        _tick(controller)
    with pytest.raises(ValueError):
        controller.configure(Costmap2D(), TransformBuffer(), FakeOptimizer(), control_frequency=0.0)

    controller, _, _ = _build_controller()
    controller.set_plan(_build_line_plan())
    controller.cleanup()
    assert not controller.configured
    assert controller.goal is None
    assert controller.regime is SpeedRegime.NORMAL
    assert not controller.carrot_pub.active


def test_configure_accepts_parameter_mapping() -> None:
    controller = CarrotController()
    controller.configure(Costmap2D(), TransformBuffer(), FakeOptimizer(), {"lookahead_dist_min": 0.2})
    assert controller.parameters.min_distance == 0.2
    assert controller.parameters.max_distance == LookaheadParameters().max_distance
