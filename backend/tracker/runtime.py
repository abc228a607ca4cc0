"""
Runtime execution shell for one async operation slot.

Responsibilities:
- Own the authoritative tracker state
- Issue tokens and schedule operations as asyncio tasks
- Convert task settlement into reducer events
- Execute emitted commands (publish to subscribers, log)
- Hold strong references to in-flight tasks until they settle

Non-responsibilities:
- NO staleness decisions (reducer)
- NO cancellation of in-flight operations
- NO retries
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Any, Awaitable, Callable, Iterable

from config import TrackerConfig
from observability.logger import describe_error, log_event
from observability.metrics import start_timer, stop_timer
from spec import (
    DEFAULT_TRACKER_NAME,
    KEY_REPR_MAX_CHARS,
    METRIC_OPERATION_DURATION,
    TASK_NAME_SEPARATOR,
)
from tracker.commands import Command, LogEvent, PublishState
from tracker.events import (
    Event,
    EventType,
    InvokeIssued,
    OperationFailed,
    OperationRebound,
    OperationSucceeded,
    TrackerDisposed,
)
from tracker.invalidation import InvalidationKey, keys_match, normalize_key
from tracker.operation_state import Idle, OperationState
from tracker.reducer import reduce
from tracker.sequence import is_current
from tracker.tracker_state import TrackerState


# ---------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------

OperationFn = Callable[..., Awaitable[Any]]
Subscriber = Callable[[OperationState], None]
Unsubscribe = Callable[[], None]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _key_repr(key: InvalidationKey) -> str:
    text = repr(key)
    if len(text) > KEY_REPR_MAX_CHARS:
        return text[:KEY_REPR_MAX_CHARS] + "..."
    return text


def _is_stale_ignore(event: dict[str, Any]) -> bool:
    return (
        event.get("decision") == "ignore"
        and event.get("details", {}).get("reason") == "stale_token"
    )


async def _run(operation: OperationFn, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
    return await operation(*args, **kwargs)


# ---------------------------------------------------------------------
# Invoker
# ---------------------------------------------------------------------

class Invoker:
    """
    Stable callable bound to one operation reference.

    The tracker hands out the same Invoker object for as long as the
    invalidation key is unchanged, so identity-based memoization in the
    caller stays valid. Invokers from earlier bindings remain usable and
    draw tokens from the same tracker.
    """

    __slots__ = ("_tracker", "_operation", "_invalidation_key")

    def __init__(
        self,
        tracker: AsyncOperationTracker,
        operation: OperationFn,
        invalidation_key: InvalidationKey,
    ) -> None:
        self._tracker = tracker
        self._operation = operation
        self._invalidation_key = invalidation_key

    @property
    def operation(self) -> OperationFn:
        return self._operation

    @property
    def invalidation_key(self) -> InvalidationKey:
        return self._invalidation_key

    def __call__(self, *args: Any, **kwargs: Any) -> asyncio.Task[Any]:
        return self._tracker._issue(self._operation, args, kwargs)  # pylint: disable=protected-access

    def __repr__(self) -> str:
        return f"Invoker(tracker={self._tracker.name!r}, key={_key_repr(self._invalidation_key)})"


# ---------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------

class AsyncOperationTracker:
    """
    Latest-call-wins tracker for one logical async operation slot.

    Every invocation is assigned a strictly increasing token. Only the
    settlement carrying the most recently issued token may update the
    observable state; earlier settlements still resolve their own task
    but leave the state untouched.

    Guarantees:
    - Token issuance and the transition to Pending happen in one
      synchronous dispatch, so no two invocations share a token
    - State is updated before subscribers are notified
    - Commands are executed in reducer-emitted order
    - The task returned by invoke() carries that call's own outcome

    Must be used from a single event loop.
    """

    def __init__(
        self,
        operation: OperationFn,
        invalidation_key: Iterable[Any] | None = (),
        *,
        initial_state: OperationState | None = None,
        name: str = DEFAULT_TRACKER_NAME,
        config: TrackerConfig | None = None,
        auto_invoke: bool = False,
    ) -> None:
        if not callable(operation):
            raise TypeError(f"operation must be callable, got {type(operation).__name__}")

        self._name = name
        self._config = config if config is not None else TrackerConfig.load_from_env()
        self._auto_invoke = auto_invoke
        self._state = TrackerState(
            operation_state=initial_state if initial_state is not None else Idle(),
        )
        self._subscribers: list[Subscriber] = []
        self._pending_commands: deque[Command] = deque()
        self._dispatching = False
        self._in_flight: set[asyncio.Task[Any]] = set()
        self._invoker = Invoker(self, operation, normalize_key(invalidation_key))

        if auto_invoke:
            self._invoker()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> OperationState:
        """
        Current observable operation state.

        The returned object is immutable; only the tracker replaces it.
        """
        return self._state.operation_state

    @property
    def latest_token(self) -> int:
        return self._state.tokens.latest

    @property
    def disposed(self) -> bool:
        return self._state.disposed

    @property
    def invoke(self) -> Invoker:
        """The invoker for the current binding (stable while the key is unchanged)."""
        return self._invoker

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    # ------------------------------------------------------------------
    # Slot lifecycle
    # ------------------------------------------------------------------

    def rebind(
        self,
        operation: OperationFn,
        invalidation_key: Iterable[Any] | None = (),
    ) -> Invoker:
        """
        Re-create the binding for this slot.

        If the key matches the current one, the current invoker is returned
        and the operation is NOT swapped. Otherwise a new invoker wraps
        `operation`. Tokens and state are never reset here, so calls still
        in flight from older invokers stay subject to the staleness check.
        """
        if not callable(operation):
            raise TypeError(f"operation must be callable, got {type(operation).__name__}")

        key = normalize_key(invalidation_key)
        if keys_match(self._invoker.invalidation_key, key):
            return self._invoker

        self._invoker = Invoker(self, operation, key)
        self._dispatch(
            OperationRebound(
                event_type=EventType.OPERATION_REBOUND,
                ts_ms=_now_ms(),
                key_repr=_key_repr(key),
                key_arity=len(key),
            )
        )

        if self._auto_invoke and not self._state.disposed:
            self._invoker()

        return self._invoker

    def subscribe(self, callback: Subscriber) -> Unsubscribe:
        """
        Register an observer of state transitions.

        Observers are called synchronously, in subscription order, with
        the new OperationState. Returns a function that unsubscribes.
        """
        if self._state.disposed:
            return lambda: None

        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def dispose(self) -> None:
        """
        Tear down the slot.

        Subscribers are dropped and no later settlement updates state.
        In-flight operations are left running; their callers still get
        their results. Idempotent.
        """
        self._dispatch(
            TrackerDisposed(
                event_type=EventType.TRACKER_DISPOSED,
                ts_ms=_now_ms(),
            )
        )
        self._subscribers.clear()

    async def drain(self) -> None:
        """
        Wait until every in-flight invocation has settled.

        Outcomes are not raised here; they belong to the callers' tasks.
        Cancelling drain() does not cancel the operations.
        """
        while self._in_flight:
            await asyncio.wait(tuple(self._in_flight))

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    def _issue(
        self,
        operation: OperationFn,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> asyncio.Task[Any]:
        # Raises RuntimeError before any token is consumed
        loop = asyncio.get_running_loop()

        self._dispatch(
            InvokeIssued(
                event_type=EventType.INVOKE_ISSUED,
                ts_ms=_now_ms(),
            )
        )
        token = self._state.tokens.latest

        timer_id = (
            start_timer(METRIC_OPERATION_DURATION)
            if self._config.enable_metrics
            else None
        )

        task = loop.create_task(
            _run(operation, args, kwargs),
            name=f"{self._name}{TASK_NAME_SEPARATOR}{token}",
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        task.add_done_callback(
            lambda done: self._on_settled(token, timer_id, done)
        )
        return task

    def _on_settled(
        self,
        token: int,
        timer_id: str | None,
        task: asyncio.Task[Any],
    ) -> None:
        """Convert a finished task into a settlement event."""
        cancelled = False
        try:
            error = task.exception()
        except asyncio.CancelledError as exc:
            error = exc
            cancelled = True

        event: Event
        if error is None:
            outcome = "succeeded"
            event = OperationSucceeded(
                event_type=EventType.OPERATION_SUCCEEDED,
                ts_ms=_now_ms(),
                token=token,
                data=task.result(),
            )
        else:
            outcome = "cancelled" if cancelled else "failed"
            event = OperationFailed(
                event_type=EventType.OPERATION_FAILED,
                ts_ms=_now_ms(),
                token=token,
                error=error,
                cancelled=cancelled,
            )

        stale = self._state.disposed or not is_current(self._state.tokens, token)
        self._dispatch(event)

        if timer_id is not None:
            stop_timer(
                timer_id,
                tracker=self._name,
                details={"token": token, "outcome": outcome, "stale": stale},
            )

    # ------------------------------------------------------------------
    # Dispatch (synchronous; atomic within the event loop)
    # ------------------------------------------------------------------

    def _dispatch(self, event: Event) -> None:
        """
        Reduce one event and execute its commands.

        State is swapped immediately, so a nested invoke() reads its own
        token. Commands are queued and executed FIFO by the outermost
        dispatch only: a subscriber that invokes or disposes while being
        notified has its events published after the current ones, and
        every subscriber's last notification equals `state`.
        """
        new_state, commands = reduce(self._state, event)
        self._state = new_state
        self._pending_commands.extend(commands)

        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending_commands:
                self._execute_command(self._pending_commands.popleft())
        finally:
            self._dispatching = False

    def _execute_command(self, cmd: Command) -> None:
        if isinstance(cmd, PublishState):
            self._publish(cmd.state)

        elif isinstance(cmd, LogEvent):
            if not self._config.enable_json_logs:
                return
            if not self._config.log_stale_decisions and _is_stale_ignore(cmd.event):
                return
            log_event({**cmd.event, "tracker": self._name})

    def _publish(self, state: OperationState) -> None:
        # Snapshot: subscribers may unsubscribe while being notified
        for callback in tuple(self._subscribers):
            if callback not in self._subscribers:
                continue
            try:
                callback(state)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "SUBSCRIBER_ERROR",
                    "tracker": self._name,
                    "status": state.status.value,
                    "error": describe_error(exc),
                })

    def __repr__(self) -> str:
        return (
            f"AsyncOperationTracker(name={self._name!r}, "
            f"status={self.state.status.value}, latest_token={self.latest_token})"
        )


# ---------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------

def create(
    operation: OperationFn,
    invalidation_key: Iterable[Any] | None = (),
    *,
    initial_state: OperationState | None = None,
    name: str = DEFAULT_TRACKER_NAME,
    config: TrackerConfig | None = None,
    auto_invoke: bool = False,
) -> AsyncOperationTracker:
    """
    Create a tracker for one logical slot.

    With auto_invoke=True the operation is invoked with no arguments
    immediately and again after every rebind that swaps it; a running
    event loop is then required.
    """
    return AsyncOperationTracker(
        operation,
        invalidation_key,
        initial_state=initial_state,
        name=name,
        config=config,
        auto_invoke=auto_invoke,
    )
