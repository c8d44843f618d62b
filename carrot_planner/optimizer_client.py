"""Optimization request building and the remote optimizer client.

The optimizer is an external service reached over a WebSocket. Each control
tick sends one JSON request and blocks until the matching reply arrives. The
client never retries inside a tick and never invents a fallback velocity: any
failure to obtain a reply surfaces as ``OptimizerUnavailableError``.
"""

from __future__ import annotations

import contextlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Union

from websockets.exceptions import WebSocketException
from websockets.sync.client import ClientConnection, connect

from .config import (
    OPTIMIZER_MAX_RETRY_DELAY_SECONDS,
    OPTIMIZER_RETRY_DELAY_SECONDS,
    OPTIMIZER_TIMEOUT_SECONDS,
    OPTIMIZER_URI,
    TERM_BLUE,
    TERM_RESET,
)
from .errors import OptimizerUnavailableError
from .geometry import Pose, Twist, VelocityCommand

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ControlRequest:
    """Everything the optimizer needs for one control period.

    Attributes:
        current_vel: Robot velocity at the start of the tick.
        carrot_pose: Selected lookahead pose, robot base frame.
        goal_pose: Final pose of the global plan.
        current_pose: Robot pose as reported to the controller.
        switch_opt: True when the robot is near the goal.
        control_interval: Control period in seconds.
    """

    current_vel: Twist
    carrot_pose: Pose
    goal_pose: Pose
    current_pose: Pose
    switch_opt: bool
    control_interval: float


def build_request(
    position: Pose,
    speed: Twist,
    carrot: Pose,
    goal: Pose,
    near_goal: bool,
    period: float,
) -> ControlRequest:
    """Assemble a ControlRequest.

    Raises:
        ValueError: If any pose or the velocity is None.
    """
    for name, value in (("position", position), ("speed", speed), ("carrot", carrot), ("goal", goal)):
        if value is None:
            raise ValueError(f"Cannot build an optimization request without {name}")
    return ControlRequest(
        current_vel=speed,
        carrot_pose=carrot,
        goal_pose=goal,
        current_pose=position,
        switch_opt=bool(near_goal),
        control_interval=float(period),
    )


# ============================================================================
# Wire Codec
# ============================================================================


def pose_to_dict(pose: Pose) -> Dict[str, Any]:
    qx, qy, qz, qw = pose.quaternion
    return {
        "frame_id": pose.frame_id,
        "stamp": pose.stamp,
        "position": {"x": pose.x, "y": pose.y, "z": 0.0},
        "orientation": {"x": qx, "y": qy, "z": qz, "w": qw},
    }


def pose_from_dict(data: Dict[str, Any]) -> Pose:
    position = data["position"]
    orientation = data["orientation"]
    quaternion = (orientation["x"], orientation["y"], orientation["z"], orientation["w"])
    return Pose.from_quaternion(
        position["x"], position["y"], quaternion, data.get("frame_id", ""), data.get("stamp", 0.0)
    )


def twist_to_dict(twist: Twist) -> Dict[str, Any]:
    return {
        "linear": {"x": twist.linear_x, "y": twist.linear_y, "z": 0.0},
        "angular": {"x": 0.0, "y": 0.0, "z": twist.angular_z},
    }


def encode_request(request: ControlRequest) -> str:
    """Serialize a request to the optimizer's JSON message format."""
    return json.dumps(
        {
            "message_type": "optimize",
            "current_vel": twist_to_dict(request.current_vel),
            "carrot_pose": pose_to_dict(request.carrot_pose),
            "goal_pose": pose_to_dict(request.goal_pose),
            "current_pose": pose_to_dict(request.current_pose),
            "switch_opt": request.switch_opt,
            "control_interval": request.control_interval,
        }
    )


def decode_response(message: Union[str, bytes]) -> VelocityCommand:
    """Parse the optimizer's reply into a VelocityCommand.

    Raises:
        OptimizerUnavailableError: If the reply is malformed or reports an error.
    """
    try:
        if isinstance(message, bytes):
            message = message.decode("utf-8")
        data = json.loads(message)
        message_type = data.get("message_type")
        if message_type == "error":
            raise OptimizerUnavailableError(f"Optimizer reported an error: {data.get('reason', '')}")
        if message_type != "output_vel":
            raise OptimizerUnavailableError(f"Unexpected optimizer message type: {message_type}")

        output = data["output_vel"]
        twist = output["twist"]
        return VelocityCommand(
            linear_x=float(twist["linear"]["x"]),
            linear_y=float(twist["linear"]["y"]),
            angular_z=float(twist["angular"]["z"]),
            stamp=float(output.get("stamp", 0.0)),
            frame_id=output.get("frame_id", ""),
        )
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise OptimizerUnavailableError(f"Error parsing optimizer reply: {e}") from e
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise OptimizerUnavailableError(f"Malformed optimizer reply: {e}") from e


# ============================================================================
# Client
# ============================================================================


class Optimizer(Protocol):
    def submit(self, request: ControlRequest) -> VelocityCommand: ...


class OptimizerClient:
    """Synchronous WebSocket client for the external optimizer.

    Attributes:
        uri: WebSocket URI of the optimizer service.
        timeout: Reply timeout in seconds, or None to block until it answers.
        open_timeout: Timeout for establishing the connection (seconds).
    """

    def __init__(
        self,
        uri: str = OPTIMIZER_URI,
        timeout: Optional[float] = OPTIMIZER_TIMEOUT_SECONDS,
        open_timeout: Optional[float] = 10.0,
    ) -> None:
        """Initialize the client without connecting.

        Raises:
            ValueError: If URI format is invalid.
        """
        if not uri or not uri.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URI: {uri}. Must start with 'ws://' or 'wss://'")
        if timeout is not None and timeout <= 0.0:
            raise ValueError("Optimizer timeout must be positive or None.")

        self.uri = uri
        self.timeout = timeout
        self.open_timeout = open_timeout
        self._websocket: Optional[ClientConnection] = None
        self._stack = contextlib.ExitStack()

    @property
    def connected(self) -> bool:
        return self._websocket is not None

    def connect(self) -> None:
        """Open the connection if it is not already open.

        Raises:
            OptimizerUnavailableError: If the service cannot be reached.
        """
        if self._websocket is not None:
            return
        try:
            self._websocket = self._stack.enter_context(connect(self.uri, open_timeout=self.open_timeout))
        except (OSError, TimeoutError, WebSocketException) as e:
            raise OptimizerUnavailableError(f"Optimizer service unreachable at {self.uri}: {e}") from e
        logger.info(f"{TERM_BLUE}✓ Connected to optimizer at {self.uri}{TERM_RESET}")

    def wait_for_service(
        self,
        max_wait: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> bool:
        """Block until the optimizer accepts a connection.

        Retries with exponential backoff, starting at
        OPTIMIZER_RETRY_DELAY_SECONDS and capped at
        OPTIMIZER_MAX_RETRY_DELAY_SECONDS.

        Args:
            max_wait: Give up after this many seconds. None waits forever.
            sleep: Sleep function, replaceable in tests.

        Returns:
            True once connected, False if ``max_wait`` elapsed first.
        """
        retry_delay = OPTIMIZER_RETRY_DELAY_SECONDS
        waited = 0.0
        while True:
            try:
                self.connect()
                return True
            except OptimizerUnavailableError as e:
                logger.debug(str(e))
                if max_wait is not None and waited >= max_wait:
                    logger.error(f"Optimizer service not available after {waited:.1f}s")
                    return False
                logger.info("service not available, waiting again...")
                sleep(retry_delay)
                waited += retry_delay
                retry_delay = min(retry_delay * 2, OPTIMIZER_MAX_RETRY_DELAY_SECONDS)

    def submit(self, request: ControlRequest) -> VelocityCommand:
        """Send one request and wait for the optimizer's velocity command.

        Raises:
            OptimizerUnavailableError: If the request cannot be sent, no reply
                arrives within ``timeout``, or the reply is malformed.
        """
        self.connect()
        try:
            self._websocket.send(encode_request(request))
            reply = self._websocket.recv(timeout=self.timeout)
        except TimeoutError as e:
            self.close()
            raise OptimizerUnavailableError(f"Optimizer did not reply within {self.timeout}s") from e
        except (OSError, WebSocketException) as e:
            self.close()
            raise OptimizerUnavailableError(f"Optimizer call failed: {e}") from e

        return decode_response(reply)

    def close(self) -> None:
        if self._websocket is not None:
            self._websocket = None
            try:
                self._stack.close()
            except (OSError, WebSocketException) as e:
                logger.debug(f"Error closing optimizer connection: {e}")

    def __enter__(self) -> "OptimizerClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
