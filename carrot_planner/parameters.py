"""Runtime-mutable lookahead parameters and the reconfiguration gate.

Parameter changes arrive in batches from a thread other than the control
loop. A batch is applied only if the controller lock can be taken without
waiting; otherwise the whole batch is refused so the control loop never
stalls behind a reconfiguration.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Mapping

from .config import (
    LOOKAHEAD_DIST_CLOSE_TO_GOAL,
    LOOKAHEAD_DIST_MAX,
    LOOKAHEAD_DIST_MIN,
)

logger = logging.getLogger(__name__)

BUSY_REASON = "Unable to dynamically change Parameters while the controller is currently running"

PARAMETER_FIELDS = {
    "lookahead_dist_min": "min_distance",
    "lookahead_dist_max": "max_distance",
    "lookahead_dist_close_to_goal": "close_to_goal_distance",
}
"""Reconfigurable parameter names mapped to LookaheadParameters fields."""


@dataclass(frozen=True)
class LookaheadParameters:
    """Lookahead distances in meters."""

    min_distance: float = LOOKAHEAD_DIST_MIN
    max_distance: float = LOOKAHEAD_DIST_MAX
    close_to_goal_distance: float = LOOKAHEAD_DIST_CLOSE_TO_GOAL

    def __post_init__(self) -> None:
        for name in ("min_distance", "max_distance", "close_to_goal_distance"):
            value = getattr(self, name)
            if not _is_numeric(value):
                raise ValueError(f"{name} must be a number; received {value!r}")
            if not math.isfinite(value) or value < 0.0:
                raise ValueError(f"{name} must be finite and non-negative; received {value}")
            object.__setattr__(self, name, float(value))

    @classmethod
    def from_mapping(cls, values: Mapping[str, float]) -> LookaheadParameters:
        """Build parameters from reconfigurable names, ignoring unknown keys."""
        kwargs = {field: values[name] for name, field in PARAMETER_FIELDS.items() if name in values}
        return cls(**kwargs)

    def as_dict(self) -> Dict[str, float]:
        return {name: getattr(self, field) for name, field in PARAMETER_FIELDS.items()}


@dataclass(frozen=True)
class SetParametersResult:
    successful: bool
    reason: str = ""


def _is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ReconfigurationGate:
    """Applies parameter batches atomically, without ever waiting for the lock.

    Args:
        lock: Lock shared with the control tick.
        get_parameters: Returns the parameters currently in force.
        set_parameters: Installs a new parameters object. Called with the
            lock held.
    """

    def __init__(
        self,
        lock: threading.Lock,
        get_parameters: Callable[[], LookaheadParameters],
        set_parameters: Callable[[LookaheadParameters], None],
    ) -> None:
        self._lock = lock
        self._get_parameters = get_parameters
        self._set_parameters = set_parameters

    def apply(self, changes: Mapping[str, Any]) -> SetParametersResult:
        """Apply a batch of parameter changes.

        Names containing a '.' belong to sub-plugins and are skipped, as are
        unknown names and non-numeric values.

        Args:
            changes: Parameter name to new value.

        Returns:
            Result with ``successful=False`` and a reason when the controller
            is mid-tick or a value is invalid; nothing is applied in that case.
        """
        if not self._lock.acquire(blocking=False):
            logger.warning(BUSY_REASON)
            return SetParametersResult(False, BUSY_REASON)

        try:
            updates: Dict[str, float] = {}
            for name, value in changes.items():
                if "." in name:
                    continue
                field = PARAMETER_FIELDS.get(name)
                if field is None or not _is_numeric(value):
                    continue
                updates[field] = float(value)

            if not updates:
                return SetParametersResult(True)

            try:
                parameters = replace(self._get_parameters(), **updates)
            except ValueError as e:
                logger.warning(f"Rejected parameter update: {e}")
                return SetParametersResult(False, str(e))

            self._set_parameters(parameters)
            logger.info(f"Updated lookahead parameters: {parameters.as_dict()}")
            return SetParametersResult(True)
        finally:
            self._lock.release()
