"""Errors raised by a control tick.

Every failed tick surfaces exactly one of these. None of them are retried
inside the planner; the caller is expected to stop the robot or request a
new plan.
"""


class PlannerError(Exception):
    """Base class for all carrot planner failures."""


class EmptyPlanError(PlannerError):
    """The stored global plan has no poses."""


class TransformUnavailableError(PlannerError):
    """A pose could not be expressed in the requested frame."""


class EmptyWindowError(PlannerError):
    """No part of the global plan lies within range of the local map."""


class CollisionDetectedError(PlannerError):
    """The robot footprint at its current pose is in collision.

    Attributes:
        cost: Footprint cost that triggered the abort.
    """

    def __init__(self, message: str, cost: float) -> None:
        super().__init__(message)
        self.cost = cost


class OptimizerUnavailableError(PlannerError):
    """The remote optimizer call could not complete."""
