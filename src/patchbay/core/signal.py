"""Cooperative cancellation for streaming calls."""

from __future__ import annotations

import asyncio
from typing import Any

from .errors import StreamAbortedError


def _wake(waiter: asyncio.Future[None]) -> None:
    if not waiter.done():
        waiter.set_result(None)


class AbortSignal:
    """A one-shot flag a caller can trip to cancel an in-flight stream.

    The signal may be aborted before the call starts, from inside the event
    loop, or from another thread. Waiters are woken on their own loop.
    """

    __slots__ = ("_aborted", "_reason", "_waiters")

    def __init__(self) -> None:
        self._aborted = False
        self._reason: Any = None
        self._waiters: list[asyncio.Future[None]] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> Any:
        return self._reason

    def abort(self, reason: Any = None) -> None:
        """Trip the signal. Later calls are ignored; the first reason wins."""

        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        for waiter in list(self._waiters):
            waiter.get_loop().call_soon_threadsafe(_wake, waiter)

    async def wait(self) -> None:
        """Block until the signal is aborted."""

        if self._aborted:
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        finally:
            self._waiters.remove(waiter)

    def raise_if_aborted(self) -> None:
        if self._aborted:
            raise self.to_error()

    def to_error(self) -> StreamAbortedError:
        reason = self._reason
        if reason is None:
            return StreamAbortedError()
        return StreamAbortedError(f"stream aborted: {reason}", reason=reason)

    @classmethod
    def aborted_with(cls, reason: Any = None) -> AbortSignal:
        """Return a signal that is already aborted."""

        signal = cls()
        signal.abort(reason)
        return signal
