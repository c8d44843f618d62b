"""Two-state speed regime with hysteresis.

The regime decides which lookahead distance is active. It slows down when
the carrot heading deviates sharply while obstacles are close, and returns to
NORMAL otherwise. A second carrot sample (the re-probe) can hold the robot in
SLOWED while the first sample already looks clear, which keeps the regime
from flickering at the boundary.
"""

import enum
import logging

from .config import HEADING_DEVIATION_THRESHOLD, HIGH_COST_THRESHOLD

logger = logging.getLogger(__name__)


class SpeedRegime(enum.Enum):
    NORMAL = "NORMAL"
    SLOWED = "SLOWED"


class SpeedRegimeStateMachine:
    """Closed-loop regime state carried across control ticks."""

    def __init__(
        self,
        heading_threshold: float = HEADING_DEVIATION_THRESHOLD,
        high_cost_threshold: float = HIGH_COST_THRESHOLD,
        initial: SpeedRegime = SpeedRegime.NORMAL,
    ) -> None:
        self.heading_threshold = heading_threshold
        self.high_cost_threshold = high_cost_threshold
        self._state = initial

    @property
    def state(self) -> SpeedRegime:
        return self._state

    @property
    def slowed(self) -> bool:
        return self._state is SpeedRegime.SLOWED

    def _transition(self, new_state: SpeedRegime, reason: str) -> None:
        if new_state is not self._state:
            logger.info(f"Speed regime {self._state.value} -> {new_state.value} ({reason})")
        self._state = new_state

    def update(
        self, carrot_heading_abs: float, reprobe_heading_abs: float, footprint_cost: float
    ) -> SpeedRegime:
        """Advance the regime for one tick.

        Args:
            carrot_heading_abs: |yaw| of the carrot in the robot frame (rad).
            reprobe_heading_abs: |yaw| of the re-probed carrot (rad).
            footprint_cost: Obstacle cost at the robot's current footprint.

        Returns:
            The new regime.
        """
        obstacles_close = footprint_cost > self.high_cost_threshold

        if carrot_heading_abs < self.heading_threshold:
            if reprobe_heading_abs >= self.heading_threshold and obstacles_close:
                self._transition(SpeedRegime.SLOWED, "re-probed heading still sharp")
            else:
                self._transition(SpeedRegime.NORMAL, "heading clear")
        elif obstacles_close:
            self._transition(SpeedRegime.SLOWED, "sharp heading near obstacles")
        else:
            self._transition(SpeedRegime.NORMAL, "no obstacles close")
        return self._state

    def force_slowed(self) -> None:
        """Enter SLOWED unconditionally, e.g. after the goal changes."""
        self._transition(SpeedRegime.SLOWED, "new goal")

    def reset(self) -> None:
        self._state = SpeedRegime.NORMAL
