from __future__ import annotations

from threading import Event, Lock
from time import monotonic
from typing import Callable

from recordhub.core.errors import QUERY_CANCELLED, QUERY_DEADLINE, QueryError


class _CancelState:
    def __init__(self):
        self.event = Event()
        self.lock = Lock()
        self.callbacks: list[Callable[[], None]] = []


class CallContext:
    """Cancellation flag plus optional deadline carried through every repository call.

    Contexts derived with ``with_timeout`` share the parent's cancel state and
    never extend the parent's deadline.
    """

    def __init__(self, *, deadline: float | None = None, _state: _CancelState | None = None):
        self._deadline = deadline
        self._state = _state or _CancelState()

    @classmethod
    def background(cls) -> "CallContext":
        return cls()

    @classmethod
    def with_timeout_seconds(cls, seconds: float | None) -> "CallContext":
        return cls().with_timeout(seconds)

    def with_timeout(self, seconds: float | None) -> "CallContext":
        if seconds is None or seconds <= 0:
            return CallContext(deadline=self._deadline, _state=self._state)
        deadline = monotonic() + float(seconds)
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        return CallContext(deadline=deadline, _state=self._state)

    def cancel(self) -> None:
        with self._state.lock:
            if self._state.event.is_set():
                return
            self._state.event.set()
            callbacks = list(self._state.callbacks)
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` when the context is cancelled; returns a function that unregisters it.

        Runs immediately when the context is already cancelled.
        """
        with self._state.lock:
            fire_now = self._state.event.is_set()
            if not fire_now:
                self._state.callbacks.append(callback)
        if fire_now:
            callback()

        def unregister() -> None:
            with self._state.lock:
                if callback in self._state.callbacks:
                    self._state.callbacks.remove(callback)

        return unregister

    @property
    def cancelled(self) -> bool:
        return self._state.event.is_set()

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def raise_if_done(self, operation: str) -> None:
        if self.cancelled:
            raise QueryError(f"{operation} cancelled by caller", reason=QUERY_CANCELLED, operation=operation)
        if self.expired:
            raise QueryError(f"{operation} deadline exceeded", reason=QUERY_DEADLINE, operation=operation)
