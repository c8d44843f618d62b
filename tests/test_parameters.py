"""Tests for lookahead parameters and the reconfiguration gate."""

from __future__ import annotations

import math
import threading

import pytest

from carrot_planner.parameters import BUSY_REASON, LookaheadParameters, ReconfigurationGate


class _Holder:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.parameters = LookaheadParameters(0.4, 1.0, 0.5)
        self.gate = ReconfigurationGate(self.lock, lambda: self.parameters, self._install)

    def _install(self, parameters: LookaheadParameters) -> None:
        assert self.lock.locked()
        self.parameters = parameters


def test_parameters_validate_values() -> None:
    with pytest.raises(ValueError):
        LookaheadParameters(min_distance=-0.1)
    with pytest.raises(ValueError):
        LookaheadParameters(max_distance=math.inf)
    with pytest.raises(ValueError):
        LookaheadParameters(close_to_goal_distance=math.nan)
    with pytest.raises(ValueError):
        LookaheadParameters.from_mapping({"lookahead_dist_min": "x"})
    with pytest.raises(ValueError):
        LookaheadParameters(max_distance=None)


def test_from_mapping_and_as_dict() -> None:
    parameters = LookaheadParameters.from_mapping({"lookahead_dist_max": 2, "other": 5})
    assert parameters.max_distance == 2.0
    assert parameters.as_dict()["lookahead_dist_max"] == 2.0
    assert set(parameters.as_dict()) == {
        "lookahead_dist_min",
        "lookahead_dist_max",
        "lookahead_dist_close_to_goal",
    }


def test_batch_applied_when_idle() -> None:
    holder = _Holder()
    result = holder.gate.apply({"lookahead_dist_min": 0.2, "lookahead_dist_max": 1.5})

    assert result.successful
    assert holder.parameters == LookaheadParameters(0.2, 1.5, 0.5)
    assert not holder.lock.locked()


def test_batch_refused_while_tick_holds_lock() -> None:
    holder = _Holder()
    before = holder.parameters

    with holder.lock:
        result = holder.gate.apply({"lookahead_dist_min": 0.1, "lookahead_dist_close_to_goal": 0.9})

    assert not result.successful
    assert result.reason == BUSY_REASON
    assert holder.parameters is before


def test_refusal_does_not_wait_for_lock() -> None:
    holder = _Holder()
    holder.lock.acquire()
    results = []
    worker = threading.Thread(target=lambda: results.append(holder.gate.apply({"lookahead_dist_max": 3.0})))
    worker.start()
    worker.join(timeout=2.0)
    holder.lock.release()

    assert not worker.is_alive()
    assert results and not results[0].successful


def test_dotted_unknown_and_non_numeric_names_are_skipped() -> None:
    holder = _Holder()
    before = holder.parameters
    result = holder.gate.apply(
        {
            "critic.lookahead_dist_min": 0.1,
            "unknown_param": 3.0,
            "lookahead_dist_max": "fast",
            "lookahead_dist_min": True,
        }
    )

    assert result.successful
    assert holder.parameters is before


def test_invalid_value_rejects_whole_batch() -> None:
    holder = _Holder()
    before = holder.parameters
    result = holder.gate.apply({"lookahead_dist_max": 2.0, "lookahead_dist_min": -1.0})

    assert not result.successful
    assert holder.parameters is before
    assert not holder.lock.locked()
