"""Tests for request building, the JSON codec and the WebSocket client."""

from __future__ import annotations

import contextlib
import json
import math
import socket
import threading
from typing import Callable, Iterator

import pytest
from websockets.sync.server import serve

from carrot_planner.errors import OptimizerUnavailableError
from carrot_planner.geometry import Pose, Twist
from carrot_planner.optimizer_client import (
    OptimizerClient,
    build_request,
    decode_response,
    encode_request,
    pose_from_dict,
    pose_to_dict,
)


def _build_request(near_goal: bool = False):
    return build_request(
        position=Pose(1.0, 2.0, 0.1, "map", 5.0),
        speed=Twist(0.3, 0.0, 0.05),
        carrot=Pose(0.8, 0.1, 0.2, "base_link", 5.0),
        goal=Pose(4.0, 2.0, 0.0, "map"),
        near_goal=near_goal,
        period=0.05,
    )


def _reply(linear_x: float = 0.25, angular_z: float = -0.1) -> str:
    return json.dumps(
        {
            "message_type": "output_vel",
            "output_vel": {
                "frame_id": "base_link",
                "stamp": 5.0,
                "twist": {"linear": {"x": linear_x, "y": 0.0, "z": 0.0}, "angular": {"x": 0.0, "y": 0.0, "z": angular_z}},
            },
        }
    )


@contextlib.contextmanager
def _optimizer_server(handler: Callable) -> Iterator[str]:
    with serve(handler, "127.0.0.1", 0) as server:
        port = server.socket.getsockname()[1]
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        yield f"ws://127.0.0.1:{port}"
    thread.join(timeout=5.0)


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_build_request_fields() -> None:
    request = _build_request(near_goal=True)
    assert request.switch_opt is True
    assert request.control_interval == 0.05
    assert request.carrot_pose.frame_id == "base_link"
    assert request.current_pose.x == 1.0
    assert request.goal_pose.x == 4.0

    with pytest.raises(ValueError):
        build_request(Pose(0.0, 0.0), Twist(), Pose(1.0, 0.0), None, False, 0.05)


def test_encode_request_message() -> None:
    message = json.loads(encode_request(_build_request()))
    assert message["message_type"] == "optimize"
    assert message["switch_opt"] is False
    assert message["control_interval"] == 0.05
    assert message["current_vel"]["linear"]["x"] == 0.3
    assert message["carrot_pose"]["position"]["x"] == 0.8
    assert pose_from_dict(message["goal_pose"]).same_pose(Pose(4.0, 2.0, 0.0))


def test_pose_dict_keeps_orientation() -> None:
    pose = Pose(1.0, -1.0, 2.0, "odom", 3.0)
    restored = pose_from_dict(pose_to_dict(pose))
    assert restored.yaw == pytest.approx(2.0)
    assert restored.frame_id == "odom"
    assert restored.stamp == 3.0
    assert math.isclose(pose_to_dict(pose)["orientation"]["w"], math.cos(1.0))


def test_decode_response() -> None:
    command = decode_response(_reply(0.4, 0.2))
    assert command.linear_x == 0.4
    assert command.angular_z == 0.2
    assert command.frame_id == "base_link"
    assert decode_response(_reply().encode("utf-8")).linear_x == 0.25


@pytest.mark.parametrize(
    "message",
    [
        "not json",
        json.dumps({"message_type": "error", "reason": "infeasible"}),
        json.dumps({"message_type": "status"}),
        json.dumps({"message_type": "output_vel", "output_vel": {"twist": {}}}),
        json.dumps(["output_vel"]),
    ],
)
def test_decode_response_rejects_bad_replies(message: str) -> None:
    with pytest.raises(OptimizerUnavailableError):
        decode_response(message)


def test_client_rejects_bad_configuration() -> None:
    with pytest.raises(ValueError):
        OptimizerClient("http://localhost:8765")
    with pytest.raises(ValueError):
        OptimizerClient("ws://localhost:8765", timeout=0.0)


def test_submit_round_trip() -> None:
    received = []

    def handler(websocket) -> None:
        for message in websocket:
            received.append(json.loads(message))
            websocket.send(_reply(0.5, 0.1))

    with _optimizer_server(handler) as uri:
        with OptimizerClient(uri, timeout=5.0) as client:
            command = client.submit(_build_request())
            assert client.connected

    assert command.linear_x == 0.5
    assert command.angular_z == 0.1
    assert received[0]["message_type"] == "optimize"
    assert not client.connected


def test_submit_times_out_without_reply() -> None:
    def handler(websocket) -> None:
        for _ in websocket:
            pass

    with _optimizer_server(handler) as uri:
        client = OptimizerClient(uri, timeout=0.2)
        with pytest.raises(OptimizerUnavailableError, match="did not reply"):
            client.submit(_build_request())
        assert not client.connected


def test_submit_surfaces_optimizer_error() -> None:
    def handler(websocket) -> None:
        for _ in websocket:
            websocket.send(json.dumps({"message_type": "error", "reason": "infeasible"}))

    with _optimizer_server(handler) as uri:
        with OptimizerClient(uri, timeout=5.0) as client:
            with pytest.raises(OptimizerUnavailableError, match="infeasible"):
                client.submit(_build_request())


def test_submit_without_service() -> None:
    client = OptimizerClient(f"ws://127.0.0.1:{_unused_port()}", timeout=1.0, open_timeout=1.0)
    with pytest.raises(OptimizerUnavailableError, match="unreachable"):
        client.submit(_build_request())


def test_wait_for_service_backs_off_and_gives_up() -> None:
    client = OptimizerClient(f"ws://127.0.0.1:{_unused_port()}", open_timeout=1.0)
    delays = []

    assert not client.wait_for_service(max_wait=2.0, sleep=delays.append)
    assert delays == [1, 2]


def test_wait_for_service_connects() -> None:
    def handler(websocket) -> None:
        for _ in websocket:
            pass

    with _optimizer_server(handler) as uri:
        client = OptimizerClient(uri)
        assert client.wait_for_service(max_wait=1.0, sleep=lambda _: None)
        client.close()


@pytest.mark.filterwarnings("error::DeprecationWarning")
def test_reconnect_after_close_without_deprecation_warnings() -> None:
    def handler(websocket) -> None:
        for _ in websocket:
            websocket.send(_reply(0.2, 0.0))

    with _optimizer_server(handler) as uri:
        client = OptimizerClient(uri, timeout=5.0)
        assert client.submit(_build_request()).linear_x == 0.2
        client.close()
        assert not client.connected

        # The same client opens a fresh connection on the next request
        assert client.submit(_build_request()).linear_x == 0.2
        client.close()
