"""Carrot Planner - Local Planning Front End for an Optimizing Motion Controller

Given a coarse global path and the robot's current pose and velocity, the
planner produces, once per control tick, a single forward-looking target
("carrot") pose and a collision judgment, then asks an external trajectory
optimizer for the velocity command.

## Tick Pipeline

### Stage 1: Plan Windowing (plan_window.py)
Trims the consumed prefix of the global plan and re-expresses the part within
the local cost map in the robot's base frame.
- Closest-pose trimming (sliding window, never grows back)
- Map-range cut-off at half the larger cost map dimension
- Near-goal detection

### Stage 2: Lookahead Selection (lookahead.py)
Chooses the lookahead distance from the speed regime and picks the carrot.
- SLOWED → min distance, NORMAL → max distance, near goal → close-to-goal distance
- Short windows fall back to their last pose

### Stage 3: Speed Regime (regime.py)
Two-state NORMAL/SLOWED machine driven by carrot heading and obstacle cost,
with a re-probe that holds SLOWED at the boundary.

### Stage 4: Collision Gate (collision.py)
Footprint cost at the current pose; the lethal sentinel aborts the tick
before any request leaves the planner.

### Stage 5: Optimizer Request (optimizer_client.py)
Builds the request and blocks on the remote optimizer over a WebSocket.

## Modules

### Core
- `controller.py` - Lifecycle, plan setting and the control tick
- `plan_window.py`, `lookahead.py`, `regime.py`, `collision.py`
- `optimizer_client.py` - Request building, JSON codec, WebSocket client
- `parameters.py` - Lookahead parameters and the reconfiguration gate
- `config.py` - Centralized defaults and thresholds

### Collaborators
- `geometry.py` - Poses, plans, velocities
- `transforms.py` - Coordinate transformer
- `costmap.py` - Cost grid and footprint cost query
- `diagnostics.py` - Fire-and-forget publishers

### Tooling
- `replay.py` - Offline replay of pose logs (`python -m carrot_planner`)
- `data_collector.py` - CSV recording of diagnostics
- `visualization.py`, `plot_results.py` - Post-run plots

## Quick Start

```python
from carrot_planner import CarrotController, Costmap2D, OptimizerClient, TransformBuffer

controller = CarrotController()
controller.configure(Costmap2D(), TransformBuffer(), OptimizerClient("ws://localhost:8765"))
controller.activate()
controller.set_plan(plan)
command = controller.compute_velocity_commands(pose, velocity)
```

## Version

0.1.0 - Initial implementation
"""

__version__ = "0.1.0"

from .controller import CarrotController, TickReport
from .costmap import LETHAL_COST, Costmap2D
from .errors import (
    CollisionDetectedError,
    EmptyPlanError,
    EmptyWindowError,
    OptimizerUnavailableError,
    PlannerError,
    TransformUnavailableError,
)
from .geometry import GlobalPlan, Pose, Twist, VelocityCommand
from .optimizer_client import ControlRequest, OptimizerClient
from .parameters import LookaheadParameters, SetParametersResult
from .regime import SpeedRegime
from .transforms import TransformBuffer

__all__ = [
    "CarrotController",
    "TickReport",
    "Costmap2D",
    "LETHAL_COST",
    "PlannerError",
    "EmptyPlanError",
    "TransformUnavailableError",
    "EmptyWindowError",
    "CollisionDetectedError",
    "OptimizerUnavailableError",
    "GlobalPlan",
    "Pose",
    "Twist",
    "VelocityCommand",
    "ControlRequest",
    "OptimizerClient",
    "LookaheadParameters",
    "SetParametersResult",
    "SpeedRegime",
    "TransformBuffer",
]
