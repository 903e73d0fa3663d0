"""Cooperative cancellation for retention runs."""

import asyncio
from typing import Optional


class CancellationToken:
    """Cooperative cancellation signal.

    A token is cancelled when it was cancelled itself or when any of its
    parents is. Child tokens let a run combine the lock's abort signal with
    the manager's shutdown request without sharing process-wide state.

    Example:
        >>> shutdown = CancellationToken()
        >>> run = CancellationToken(lock.signal, shutdown)
        >>> shutdown.cancel("stop requested")
        >>> run.cancelled
        True
    """

    def __init__(self, *parents: "CancellationToken") -> None:
        self._parents = parents
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return any(parent.cancelled for parent in self._parents)

    @property
    def reason(self) -> Optional[str]:
        if self._event.is_set():
            return self._reason
        for parent in self._parents:
            if parent.cancelled:
                return parent.reason
        return None

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait until this token itself is cancelled.

        Returns:
            True if cancelled, False on timeout
        """
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled}, reason={self.reason!r})"
