"""One-shot completion handle for transitions.

An ``Outcome`` starts pending and settles exactly once, either succeeded or
failed. Continuations registered before settlement run synchronously when it
settles; continuations registered afterwards run immediately. Settling an
already-settled Outcome is a no-op, which is what lets a late signal from a
cancelled handler be discarded.

Handlers use an Outcome as their deferred-completion capability::

    def enter(ctx, *args):
        done = Outcome()
        ctx.loader.fetch(on_complete=done.signal)
        return done
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Generator, List, Optional, Tuple

from .exceptions import HandlerFailedError

_PENDING = "pending"
_SUCCEEDED = "succeeded"
_FAILED = "failed"

Continuation = Callable[["Outcome"], Any]


class Outcome:
    def __init__(self) -> None:
        self._state = _PENDING
        self._reason: Optional[BaseException] = None
        self._callbacks: List[Tuple[str, Continuation]] = []

    @classmethod
    def resolved(cls) -> "Outcome":
        outcome = cls()
        outcome.resolve()
        return outcome

    @classmethod
    def rejected(cls, reason: Optional[BaseException] = None) -> "Outcome":
        outcome = cls()
        outcome.reject(reason)
        return outcome

    @property
    def settled(self) -> bool:
        return self._state != _PENDING

    @property
    def succeeded(self) -> bool:
        return self._state == _SUCCEEDED

    @property
    def failed(self) -> bool:
        return self._state == _FAILED

    @property
    def reason(self) -> Optional[BaseException]:
        """Why the Outcome failed, if a reason was given."""
        return self._reason

    def resolve(self) -> bool:
        """Settle as succeeded. Returns False if already settled."""
        return self._settle(_SUCCEEDED, None)

    def reject(self, reason: Optional[BaseException] = None) -> bool:
        """Settle as failed. Returns False if already settled."""
        return self._settle(_FAILED, reason)

    def signal(self, passed: Any = True) -> bool:
        """Settle from a pass/fail value: anything but ``False`` passes."""
        if passed is False:
            return self.reject(HandlerFailedError("Handler signalled failure"))
        return self.resolve()

    def done(self, callback: Continuation) -> "Outcome":
        return self._add("done", callback)

    def fail(self, callback: Continuation) -> "Outcome":
        return self._add("fail", callback)

    def always(self, callback: Continuation) -> "Outcome":
        return self._add("always", callback)

    def then(
        self,
        on_success: Optional[Continuation] = None,
        on_failure: Optional[Continuation] = None,
    ) -> "Outcome":
        if on_success is not None:
            self.done(on_success)
        if on_failure is not None:
            self.fail(on_failure)
        return self

    def __await__(self) -> Generator[Any, None, bool]:
        """Wait for settlement; evaluates to True on success, False on failure."""
        if not self.settled:
            future = asyncio.get_running_loop().create_future()

            def _wake(_: "Outcome") -> None:
                if not future.done():
                    future.set_result(None)

            self.always(_wake)
            yield from future.__await__()
        return self.succeeded

    def __repr__(self) -> str:
        return f"<Outcome {self._state}>"

    def _add(self, kind: str, callback: Continuation) -> "Outcome":
        if not callable(callback):
            raise TypeError("callback must be callable")
        if self.settled:
            if self._wants(kind):
                callback(self)
        else:
            self._callbacks.append((kind, callback))
        return self

    def _wants(self, kind: str) -> bool:
        if kind == "always":
            return True
        return (kind == "done") == (self._state == _SUCCEEDED)

    def _settle(self, state: str, reason: Optional[BaseException]) -> bool:
        if self.settled:
            return False
        self._state = state
        self._reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for kind, callback in callbacks:
            if self._wants(kind):
                callback(self)
        return True


__all__ = ["Outcome"]
