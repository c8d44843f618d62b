"""Carrot controller: the per-tick local planning pipeline.

Each call to ``compute_velocity_commands`` runs one control tick:

1. Trim the global plan and project the local window (plan_window.py)
2. Pick the lookahead distance from the previous regime (lookahead.py)
3. Select the carrot, and re-probe it for the hysteresis check
4. Query the footprint cost (collision.py) and advance the regime (regime.py)
5. Abort on certain collision, before anything is sent to the optimizer
6. Publish the carrot and request a velocity command from the optimizer

The whole tick runs under one lock, including the blocking optimizer call.
Plan changes wait for the lock; parameter changes give up immediately if the
lock is taken (parameters.py).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from .collision import CollisionGate
from .config import (
    CARROT_MARKER_HEIGHT,
    CARROT_TOPIC,
    CONTROLLER_FREQUENCY,
    LOCAL_PLAN_TOPIC,
    TERM_BLUE,
    TERM_RESET,
)
from .costmap import Costmap2D
from .diagnostics import Publisher
from .errors import OptimizerUnavailableError
from .geometry import GlobalPlan, PointStamped, Pose, Twist, VelocityCommand
from .lookahead import lookahead_distance, select_lookahead_point
from .optimizer_client import Optimizer, OptimizerClient, build_request
from .parameters import LookaheadParameters, ReconfigurationGate, SetParametersResult
from .plan_window import LocalWindow, PlanWindowManager
from .regime import SpeedRegime, SpeedRegimeStateMachine
from .transforms import TransformBuffer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TickReport:
    """Summary of the last successful control tick."""

    stamp: float
    lookahead_distance: float
    carrot: Pose
    footprint_cost: float
    regime: SpeedRegime
    near_goal: bool
    window_size: int
    command: VelocityCommand


def create_carrot_msg(carrot_pose: Pose) -> PointStamped:
    """Carrot as a stamped point raised just above the map for display."""
    return PointStamped(
        x=carrot_pose.x,
        y=carrot_pose.y,
        z=CARROT_MARKER_HEIGHT,
        frame_id=carrot_pose.frame_id,
        stamp=carrot_pose.stamp,
    )


class CarrotController:
    """Local planning front end feeding an external trajectory optimizer.

    Lifecycle: ``configure`` -> ``activate`` -> ticks -> ``deactivate`` ->
    ``cleanup``. Diagnostics are only published while active.

    Attributes:
        name: Controller name, used in log messages.
        control_frequency: Control loop rate (Hz); the optimizer receives its
            inverse as the control period.
        local_plan_pub: Publishes the local window of every tick.
        carrot_pub: Publishes the carrot point of every tick.
        tick_pub: Publishes a TickReport after every successful tick.
    """

    def __init__(self, name: str = "carrot_controller") -> None:
        self.name = name
        self.control_frequency = CONTROLLER_FREQUENCY

        self.local_plan_pub: Publisher[LocalWindow] = Publisher(LOCAL_PLAN_TOPIC)
        self.carrot_pub: Publisher[PointStamped] = Publisher(CARROT_TOPIC)
        self.tick_pub: Publisher[TickReport] = Publisher(f"{name}/ticks")

        # Everything below is guarded by _lock
        self._lock = threading.Lock()
        self._parameters = LookaheadParameters()
        self._regime = SpeedRegimeStateMachine()
        self._goal: Optional[Pose] = None
        self._last_tick: Optional[TickReport] = None

        self._plan_window: Optional[PlanWindowManager] = None
        self._collision_gate: Optional[CollisionGate] = None
        self._optimizer: Optional[Optimizer] = None
        self._reconfiguration = ReconfigurationGate(
            self._lock, lambda: self._parameters, self._install_parameters
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def configure(
        self,
        costmap: Costmap2D,
        transformer: TransformBuffer,
        optimizer: Optimizer,
        parameters: Union[LookaheadParameters, Mapping[str, float], None] = None,
        control_frequency: float = CONTROLLER_FREQUENCY,
        wait_for_service: bool = False,
        service_wait_timeout: Optional[float] = None,
    ) -> None:
        """Wire the controller to its collaborators.

        Args:
            costmap: Local cost map (dimensions, base frame, footprint).
            transformer: Coordinate transformer shared with the host.
            optimizer: Anything with ``submit(request) -> VelocityCommand``.
            parameters: Initial lookahead parameters, as an object or as a
                mapping of parameter names (lookahead_dist_min, ...).
            control_frequency: Control loop rate in Hz.
            wait_for_service: Block until the optimizer accepts a connection
                (only meaningful for OptimizerClient).
            service_wait_timeout: Limit for ``wait_for_service`` (seconds).

        Raises:
            ValueError: If the frequency or parameters are invalid.
            OptimizerUnavailableError: If waiting for the service timed out.
        """
        if control_frequency <= 0.0:
            raise ValueError("control_frequency must be positive.")

        if parameters is None:
            parameters = LookaheadParameters()
        elif not isinstance(parameters, LookaheadParameters):
            parameters = LookaheadParameters.from_mapping(parameters)

        if wait_for_service and isinstance(optimizer, OptimizerClient):
            if not optimizer.wait_for_service(max_wait=service_wait_timeout):
                raise OptimizerUnavailableError(f"Optimizer service not available at {optimizer.uri}")

        with self._lock:
            self.control_frequency = float(control_frequency)
            self._parameters = parameters
            self._plan_window = PlanWindowManager(costmap, transformer, self.local_plan_pub)
            self._collision_gate = CollisionGate(costmap, transformer)
            self._optimizer = optimizer

        logger.info(
            f"{TERM_BLUE}Configured {self.name}: {parameters.as_dict()}, "
            f"{self.control_frequency:.1f} Hz{TERM_RESET}"
        )

    def activate(self) -> None:
        self.local_plan_pub.on_activate()
        self.carrot_pub.on_activate()
        self.tick_pub.on_activate()

    def deactivate(self) -> None:
        self.local_plan_pub.on_deactivate()
        self.carrot_pub.on_deactivate()
        self.tick_pub.on_deactivate()

    def cleanup(self) -> None:
        """Drop collaborators and per-plan state."""
        self.deactivate()
        with self._lock:
            if isinstance(self._optimizer, OptimizerClient):
                self._optimizer.close()
            self._plan_window = None
            self._collision_gate = None
            self._optimizer = None
            self._goal = None
            self._last_tick = None
            self._regime.reset()

    @property
    def configured(self) -> bool:
        return self._plan_window is not None

    def _require_configured(self) -> None:
        if not self.configured:
            raise RuntimeError(f"{self.name} must be configured first")

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def regime(self) -> SpeedRegime:
        return self._regime.state

    @property
    def parameters(self) -> LookaheadParameters:
        return self._parameters

    @property
    def goal(self) -> Optional[Pose]:
        return self._goal

    @property
    def plan(self) -> Optional[GlobalPlan]:
        return self._plan_window.plan if self._plan_window is not None else None

    @property
    def last_tick(self) -> Optional[TickReport]:
        return self._last_tick

    def _install_parameters(self, parameters: LookaheadParameters) -> None:
        self._parameters = parameters

    # ------------------------------------------------------------------
    # Host interface
    # ------------------------------------------------------------------

    def set_plan(self, plan: GlobalPlan) -> None:
        """Replace the global plan.

        A plan whose final pose differs from the stored goal forces the
        SLOWED regime. An empty plan is stored as is (the next tick fails with
        EmptyPlanError) and leaves the goal untouched.
        """
        self._require_configured()
        with self._lock:
            self._plan_window.set_plan(plan)
            if not plan.poses:
                logger.warning(f"{self.name} received a plan with zero poses")
                return

            goal = plan.goal
            if not goal.same_pose(self._goal):
                self._regime.force_slowed()
            self._goal = goal
        logger.debug(f"New plan with {len(plan)} poses in '{plan.frame_id}'")

    def set_speed_limit(self, speed_limit: float, percentage: bool) -> None:
        """Speed limits are enforced by the optimizer; this is a no-op."""
        logger.debug(
            f"Ignoring speed limit {speed_limit}{'%' if percentage else ' m/s'}: "
            "velocity limits belong to the optimizer"
        )

    def dynamic_parameters_callback(self, changes: Mapping[str, Any]) -> SetParametersResult:
        """Apply a parameter batch; refused while a tick is running."""
        return self._reconfiguration.apply(changes)

    def compute_velocity_commands(self, pose: Pose, velocity: Twist) -> VelocityCommand:
        """Run one control tick.

        Args:
            pose: Current robot pose.
            velocity: Current robot velocity.

        Returns:
            The optimizer's velocity command.

        Raises:
            EmptyPlanError, TransformUnavailableError, EmptyWindowError,
            CollisionDetectedError: Before any request is sent.
            OptimizerUnavailableError: If the optimizer call fails.
        """
        self._require_configured()
        with self._lock:
            parameters = self._parameters
            window = self._plan_window.trim_and_project(pose, parameters.close_to_goal_distance)

            lookahead_dist = lookahead_distance(parameters, self._regime.slowed, window.near_goal)
            carrot = select_lookahead_point(lookahead_dist, window.poses)

            footprint_cost = self._collision_gate.footprint_cost(pose)

            # Second sample before allowing a speed-up, at the same distance
            reprobe = select_lookahead_point(lookahead_dist, window.poses)
            regime = self._regime.update(abs(carrot.yaw), abs(reprobe.yaw), footprint_cost)

            self._collision_gate.raise_if_collision(footprint_cost)

            self.carrot_pub.publish(create_carrot_msg(carrot))

            request = build_request(
                position=pose,
                speed=velocity,
                carrot=carrot,
                goal=self._goal,
                near_goal=window.near_goal,
                period=1.0 / self.control_frequency,
            )
            command = self._optimizer.submit(request)

            report = TickReport(
                stamp=pose.stamp,
                lookahead_distance=lookahead_dist,
                carrot=carrot,
                footprint_cost=footprint_cost,
                regime=regime,
                near_goal=window.near_goal,
                window_size=len(window),
                command=command,
            )
            self._last_tick = report
            logger.debug(
                f"Tick t={pose.stamp:.3f}: lookahead={lookahead_dist:.2f} "
                f"carrot=({carrot.x:.2f}, {carrot.y:.2f}) cost={footprint_cost:.0f} "
                f"regime={regime.value}"
            )

        self.tick_pub.publish(report)
        return command
