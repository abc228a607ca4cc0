"""
Slot lifecycle of the tracker runtime.

- Rebinding with an unchanged key keeps invoker identity
- Rebinding with a changed key never resets tokens or Pending
- Subscribers, disposal and auto-invoke
"""

import asyncio
from typing import Any

import pytest

import tracker.runtime as runtime_mod
from config import TrackerConfig
from tracker.enums.status import Status
from tracker.operation_state import OperationState, Pending, Succeeded
from tracker.runtime import create


async def echo(value: Any = "echo") -> Any:
    await asyncio.sleep(0)
    return value


def gated(tag: str, gate: asyncio.Event):
    async def operation(*_: Any) -> str:
        await gate.wait()
        return tag
    return operation


# ---------------------------------------------------------------------
# Rebinding
# ---------------------------------------------------------------------

def test_unchanged_key_returns_same_invoker(quiet_config: TrackerConfig):
    tracker = create(echo, ["user", 1], config=quiet_config)
    invoker = tracker.invoke

    async def other() -> str:
        return "other"

    # Equal but distinct key object
    assert tracker.rebind(other, ["user", 1]) is invoker
    assert tracker.invoke is invoker
    assert invoker.operation is echo


def test_changed_key_swaps_operation(quiet_config: TrackerConfig):
    tracker = create(echo, ("a",), config=quiet_config)
    old = tracker.invoke

    async def other() -> str:
        return "other"

    new = tracker.rebind(other, ("b",))

    assert new is not old
    assert new.operation is other
    assert new.invalidation_key == ("b",)
    assert tracker.invoke is new


def test_rebind_rejects_non_callable(quiet_config: TrackerConfig):
    tracker = create(echo, config=quiet_config)

    with pytest.raises(TypeError):
        tracker.rebind(None, ("x",))  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_key_change_mid_flight_keeps_counter_and_pending(quiet_config: TrackerConfig):
    old_gate = asyncio.Event()
    new_gate = asyncio.Event()
    tracker = create(gated("old", old_gate), ("a",), config=quiet_config)

    old_task = tracker.invoke()
    old_invoker = tracker.invoke
    assert tracker.latest_token == 1

    tracker.rebind(gated("new", new_gate), ("b",))

    assert tracker.latest_token == 1
    assert tracker.state.status is Status.PENDING

    new_task = tracker.invoke()
    assert tracker.latest_token == 2

    # Old call settles after the swap: stale
    old_gate.set()
    assert await old_task == "old"
    assert tracker.state.status is Status.PENDING

    new_gate.set()
    assert await new_task == "new"
    assert tracker.state == Succeeded(data="new")

    # An invoker from the earlier binding still draws from the same counter
    again = old_invoker()
    assert tracker.latest_token == 3
    assert await again == "old"
    assert tracker.state == Succeeded(data="old")


# ---------------------------------------------------------------------
# Subscribers
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_subscribers_notified_in_order_and_can_unsubscribe(quiet_config: TrackerConfig):
    tracker = create(echo, config=quiet_config)
    calls: list[tuple[str, OperationState]] = []

    tracker.subscribe(lambda s: calls.append(("first", s)))
    unsubscribe = tracker.subscribe(lambda s: calls.append(("second", s)))

    await tracker.invoke("x")
    assert calls == [
        ("first", Pending()),
        ("second", Pending()),
        ("first", Succeeded(data="x")),
        ("second", Succeeded(data="x")),
    ]

    unsubscribe()
    unsubscribe()
    calls.clear()

    await tracker.invoke("y")
    assert [name for name, _ in calls] == ["first", "first"]


@pytest.mark.asyncio
async def test_stale_settlement_notifies_nobody(quiet_config: TrackerConfig):
    gate = asyncio.Event()
    tracker = create(gated("slow", gate), config=quiet_config)

    stale = tracker.invoke()
    latest = tracker.rebind(echo, ("fast",))("fast")
    await latest

    seen: list[OperationState] = []
    tracker.subscribe(seen.append)

    gate.set()
    await stale

    assert not seen
    assert tracker.state == Succeeded(data="fast")


@pytest.mark.asyncio
async def test_failing_subscriber_is_logged_and_others_still_run(
    quiet_config: TrackerConfig,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(runtime_mod, "log_event", emitted.append)

    tracker = create(echo, name="profile", config=quiet_config)
    seen: list[OperationState] = []

    def broken(_: OperationState) -> None:
        raise RuntimeError("render failed")

    tracker.subscribe(broken)
    tracker.subscribe(seen.append)

    assert await tracker.invoke("v") == "v"

    assert seen == [Pending(), Succeeded(data="v")]
    errors = [e for e in emitted if e["event_type"] == "SUBSCRIBER_ERROR"]
    assert len(errors) == 2
    assert errors[0]["tracker"] == "profile"
    assert errors[0]["error"] == {"type": "RuntimeError", "message": "render failed"}


# ---------------------------------------------------------------------
# Disposal
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_dispose_freezes_state_but_callers_get_results(quiet_config: TrackerConfig):
    gate = asyncio.Event()
    tracker = create(gated("late", gate), config=quiet_config)
    seen: list[OperationState] = []
    tracker.subscribe(seen.append)

    task = tracker.invoke()
    tracker.dispose()
    tracker.dispose()
    assert tracker.disposed

    gate.set()
    assert await task == "late"
    assert tracker.state == Pending()
    assert seen == [Pending()]

    # Still callable after teardown; consumes a token, never commits
    assert await tracker.invoke() == "late"
    assert tracker.latest_token == 2
    assert tracker.state == Pending()


def test_subscribe_after_dispose_is_a_no_op(quiet_config: TrackerConfig):
    tracker = create(echo, config=quiet_config)
    tracker.dispose()

    unsubscribe = tracker.subscribe(lambda s: None)
    unsubscribe()


# ---------------------------------------------------------------------
# Auto-invoke
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_auto_invoke_runs_on_create_and_on_key_change(quiet_config: TrackerConfig):
    calls: list[str] = []

    def make(tag: str):
        async def operation() -> str:
            calls.append(tag)
            return tag
        return operation

    tracker = create(make("first"), ("a",), config=quiet_config, auto_invoke=True)
    assert tracker.latest_token == 1
    await tracker.drain()
    assert tracker.state == Succeeded(data="first")

    tracker.rebind(make("ignored"), ("a",))
    assert tracker.latest_token == 1

    tracker.rebind(make("second"), ("b",))
    assert tracker.latest_token == 2
    await tracker.drain()

    assert calls == ["first", "second"]
    assert tracker.state == Succeeded(data="second")


@pytest.mark.asyncio
async def test_auto_invoke_skipped_after_dispose(quiet_config: TrackerConfig):
    tracker = create(echo, ("a",), config=quiet_config, auto_invoke=True)
    await tracker.drain()
    tracker.dispose()

    tracker.rebind(echo, ("b",))

    assert tracker.latest_token == 1
    assert tracker.in_flight == 0


# ---------------------------------------------------------------------
# Subscribers acting on the tracker during notification
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_subscriber_invoking_during_notification_sees_final_state_last(
    quiet_config: TrackerConfig,
):
    tracker = create(echo, config=quiet_config)
    refetches: list[asyncio.Task[Any]] = []
    recorded: list[OperationState] = []

    def refetch(state: OperationState) -> None:
        if state == Succeeded(data="first"):
            refetches.append(tracker.invoke("second"))

    tracker.subscribe(refetch)
    tracker.subscribe(recorded.append)

    assert await tracker.invoke("first") == "first"

    assert tracker.latest_token == 2
    assert tracker.state == Pending(data="first")
    assert recorded == [Pending(), Succeeded(data="first"), Pending(data="first")]
    assert recorded[-1] == tracker.state

    assert await refetches[0] == "second"
    assert recorded[-1] == Succeeded(data="second")
    assert recorded[-1] == tracker.state


@pytest.mark.asyncio
async def test_nested_invoke_logs_in_event_order(monkeypatch: pytest.MonkeyPatch):
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(runtime_mod, "log_event", emitted.append)
    tracker = create(echo, config=TrackerConfig(enable_metrics=False))

    def refetch(state: OperationState) -> None:
        if state == Succeeded(data="first"):
            tracker.invoke("second")

    tracker.subscribe(refetch)
    await tracker.invoke("first")

    assert [(e["event_type"], e["latest_token"]) for e in emitted] == [
        ("INVOKE_ISSUED", 1),
        ("OPERATION_SUCCEEDED", 1),
        ("INVOKE_ISSUED", 2),
    ]
    await tracker.drain()


@pytest.mark.asyncio
async def test_subscriber_disposing_during_notification_stops_delivery(
    quiet_config: TrackerConfig,
):
    tracker = create(echo, config=quiet_config)
    recorded: list[OperationState] = []

    def teardown(state: OperationState) -> None:
        if state == Succeeded(data="x"):
            tracker.dispose()

    tracker.subscribe(teardown)
    tracker.subscribe(recorded.append)

    assert await tracker.invoke("x") == "x"

    assert tracker.disposed
    assert tracker.state == Succeeded(data="x")
    assert recorded == [Pending()]


@pytest.mark.asyncio
async def test_unsubscribed_during_notification_is_not_called(quiet_config: TrackerConfig):
    tracker = create(echo, config=quiet_config)
    recorded: list[OperationState] = []
    unsubscribe_recorder: list[Any] = []

    def remove_recorder(_: OperationState) -> None:
        unsubscribe_recorder[0]()

    tracker.subscribe(remove_recorder)
    unsubscribe_recorder.append(tracker.subscribe(recorded.append))

    await tracker.invoke("x")

    assert recorded == []
