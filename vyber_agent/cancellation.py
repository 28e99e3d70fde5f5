from __future__ import annotations

import asyncio


class RunCancelled(Exception):
    """Raised inside a run once its token has been cancelled."""

    def __init__(self, reason: str = "Run cancelled") -> None:
        super().__init__(reason)
        self.reason = reason


class CancellationToken:
    """Cooperative cancellation flag for one orchestration run.

    Checked by the orchestrator between iterations and tool calls, and by
    polling tools between polls. `sleep()` returns early when cancelled.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = "Run cancelled"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if reason:
            self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled(self.reason)

    async def sleep(self, seconds: float) -> None:
        """Sleep up to `seconds`; raise RunCancelled if cancelled meanwhile."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(0.0, seconds))
        except asyncio.TimeoutError:
            return
        raise RunCancelled(self.reason)


async def cancellable_sleep(seconds: float, cancel: CancellationToken | None) -> None:
    if cancel is None:
        await asyncio.sleep(seconds)
    else:
        await cancel.sleep(seconds)
