"""Configuration parameters for the carrot planner.

This module centralizes all configuration parameters including:
- Lookahead defaults (runtime-mutable copies live in parameters.py)
- Speed-regime and collision thresholds
- Coordinate frame names and transform tolerance
- Optimizer service connection parameters
- Visualization settings

All parameters are documented with their purpose and valid ranges.
"""

# ============================================================================
# Lookahead Parameters (defaults)
# ============================================================================

LOOKAHEAD_DIST_MIN = 0.5
"""Lookahead distance used while the SLOWED regime is active (meters).

Short lookahead keeps the carrot close when the robot is near obstacles and
the path ahead bends sharply."""

LOOKAHEAD_DIST_MAX = 0.5
"""Lookahead distance used in the NORMAL regime (meters)."""

LOOKAHEAD_DIST_CLOSE_TO_GOAL = 0.5
"""Lookahead distance used once the robot is within this distance of the goal
(meters). Doubles as the near-goal radius and takes precedence over the
regime."""

CONTROLLER_FREQUENCY = 20.0
"""Control loop frequency (Hz). Read-only from the controller's perspective.

The control period sent to the optimizer is 1 / CONTROLLER_FREQUENCY."""


# ============================================================================
# Speed Regime Parameters
# ============================================================================

HEADING_DEVIATION_THRESHOLD = 1.0
"""Carrot heading deviation (radians, ~57 deg) at or above which the robot is
considered to be approaching a sharp turn."""

HIGH_COST_THRESHOLD = 200
"""Footprint cost above which obstacles are considered close.

Costs follow the cost map convention: 0 is free space, 255 is the collision
sentinel (see costmap.LETHAL_COST)."""


# ============================================================================
# Coordinate Frames
# ============================================================================

GLOBAL_FRAME = "map"
"""Frame in which global plans are expressed by default."""

ODOM_FRAME = "odom"
"""Frame of the local cost map and of robot poses reported by odometry."""

BASE_FRAME = "base_link"
"""Robot body frame. Local windows and carrots are expressed in this frame."""

TRANSFORM_TOLERANCE = 0.1
"""Maximum stamp mismatch between a pose and a non-static transform (seconds)."""


# ============================================================================
# Cost Map Defaults
# ============================================================================

COSTMAP_SIZE_CELLS = 100
"""Default local cost map edge length (cells)."""

COSTMAP_RESOLUTION = 0.05
"""Default local cost map resolution (meters/cell). 100 cells * 0.05 = 5 m."""

ROBOT_FOOTPRINT = ((0.3, 0.25), (0.3, -0.25), (-0.3, -0.25), (-0.3, 0.25))
"""Default robot footprint polygon in the base frame (meters)."""


# ============================================================================
# Diagnostics
# ============================================================================

LOCAL_PLAN_TOPIC = "received_global_plan"
"""Topic carrying the windowed local plan of each tick."""

CARROT_TOPIC = "/lookahead_point"
"""Topic carrying the selected carrot point of each tick."""

CARROT_MARKER_HEIGHT = 0.01
"""Height of the published carrot point (meters), just above the ground plane
so it stands out over the map when rendered."""


# ============================================================================
# Optimizer Service Configuration
# ============================================================================

OPTIMIZER_URI = "ws://localhost:8765"
"""WebSocket URI of the external trajectory optimizer."""

OPTIMIZER_TIMEOUT_SECONDS = None
"""Timeout for a single optimizer reply (seconds).

None blocks until the optimizer answers. Set a value when the deployment
requires the tick to fail instead of stalling."""

OPTIMIZER_RETRY_DELAY_SECONDS = 1
"""Initial delay between connection attempts while waiting for the service."""

OPTIMIZER_MAX_RETRY_DELAY_SECONDS = 60
"""Maximum delay between connection attempts (exponential backoff cap)."""


# ============================================================================
# Visualization Colors
# ============================================================================

PLANNER_ORANGE = "#f74823"
"""Primary color - carrots, actual robot trail."""

PLANNER_BLUE = "#2374f7"
"""Secondary color - global plan, NORMAL regime."""

PLANNER_CREAM = "#fffdee"
"""Light color for text and labels on dark backgrounds."""

PLANNER_TAUPE = "#686a5f"
"""Neutral color for guides, grids, and secondary elements."""

PLANNER_YELLOW_ORANGE = "#ffa726"
"""Accent color for SLOWED regime and warnings."""

PLANNER_DARK_BLUE = "#0d1b2a"
"""Dark background color for plots."""

# Terminal color codes (ANSI escape sequences)
TERM_ORANGE = "\033[38;2;247;72;35m"
"""Terminal color code for orange (RGB: 247, 72, 35)."""

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color code for blue (RGB: 35, 116, 247)."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""
