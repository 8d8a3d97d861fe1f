# test_telemetry.py -- Telemetry publisher state machine and batches

from __future__ import annotations

import asyncio

import pytest

from chat_relay.protocol import SampleKind
from chat_relay.session import SessionRegistry
from chat_relay.telemetry import TelemetryPublisher, build_samples
from conftest import FakeTransport


def test_build_samples_deterministic():
    samples = build_samples(4)
    assert [s.tag_name for s in samples] == ["Tag0", "Tag1", "Tag2", "Tag3"]
    assert [s.value for s in samples] == [0.0, 1.0, 2.0, 3.0]
    assert all(s.kind is SampleKind.FLOAT for s in samples)
    assert build_samples(4) == samples


@pytest.mark.asyncio
async def test_start_publishes_within_one_interval(
    registry: SessionRegistry, publisher: TelemetryPublisher, transport: FakeTransport
) -> None:
    registry.add("a")
    registry.add("b")
    assert not publisher.is_running
    assert publisher.start() is True
    assert publisher.is_running

    await asyncio.sleep(publisher.interval)
    for cid in ("a", "b"):
        batches = transport.batches(cid)
        assert batches
        assert [s["tagName"] for s in batches[0]] == [f"Tag{i}" for i in range(5)]
        assert batches[0][3] == {"tagName": "Tag3", "label": "", "kind": 2, "value": 3.0}
    await publisher.aclose()


@pytest.mark.asyncio
async def test_start_is_idempotent(publisher: TelemetryPublisher) -> None:
    assert publisher.start() is True
    assert publisher.start() is False
    assert publisher.generation == 1
    await publisher.aclose()


@pytest.mark.asyncio
async def test_keeps_publishing_until_stopped(
    registry: SessionRegistry, publisher: TelemetryPublisher, transport: FakeTransport
) -> None:
    registry.add("a")
    publisher.start()
    await asyncio.sleep(publisher.interval * 5)
    assert len(transport.batches("a")) >= 2

    publisher.stop()
    await asyncio.sleep(publisher.interval * 2)
    count = len(transport.batches("a"))
    await asyncio.sleep(publisher.interval * 3)
    assert len(transport.batches("a")) == count
    assert not publisher.is_running


@pytest.mark.asyncio
async def test_new_sessions_join_the_stream(
    registry: SessionRegistry, publisher: TelemetryPublisher, transport: FakeTransport
) -> None:
    publisher.start()
    await asyncio.sleep(publisher.interval)
    registry.add("late")
    await asyncio.sleep(publisher.interval * 3)
    assert transport.batches("late")
    await publisher.aclose()


@pytest.mark.asyncio
async def test_stop_then_start_supersedes_old_loop(
    registry: SessionRegistry, publisher: TelemetryPublisher
) -> None:
    registry.add("a")
    publisher.start()
    await asyncio.sleep(0)
    publisher.stop()
    publisher.start()
    assert publisher.generation == 2
    await asyncio.sleep(publisher.interval * 3)
    # Only the second loop is still alive
    assert len(publisher._tasks) == 1
    await publisher.aclose()
    assert not publisher._tasks


@pytest.mark.asyncio
async def test_failed_target_does_not_stop_loop(
    registry: SessionRegistry, publisher: TelemetryPublisher, transport: FakeTransport
) -> None:
    registry.add("dead")
    registry.add("ok")
    transport.failing.add("dead")
    publisher.start()
    await asyncio.sleep(publisher.interval * 4)
    assert len(transport.batches("ok")) >= 2
    assert publisher.is_running
    await publisher.aclose()


@pytest.mark.asyncio
async def test_aclose_without_start(publisher: TelemetryPublisher) -> None:
    await publisher.aclose()
    assert not publisher.is_running
