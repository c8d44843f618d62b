"""Tests for diagnostics publishers."""

from __future__ import annotations

from carrot_planner.diagnostics import Publisher


def test_publish_only_while_active() -> None:
    received = []
    publisher: Publisher[int] = Publisher("test")
    publisher.subscribe(received.append)

    publisher.publish(1)
    publisher.on_activate()
    publisher.publish(2)
    publisher.on_deactivate()
    publisher.publish(3)

    assert received == [2]
    assert publisher.published_count == 1


def test_failing_subscriber_does_not_stop_delivery() -> None:
    received = []

    def broken(_: int) -> None:
        raise RuntimeError("disk full")

    publisher: Publisher[int] = Publisher("test")
    publisher.subscribe(broken)
    publisher.subscribe(received.append)
    publisher.on_activate()

    publisher.publish(7)
    assert received == [7]

    publisher.unsubscribe(broken)
    publisher.unsubscribe(broken)
    publisher.publish(8)
    assert received == [7, 8]
