"""Haven Backend — Single-writer fetch slots"""

import asyncio
from typing import Generic, Optional, TypeVar

from models import SlotStatus, SlotView

T = TypeVar("T")


class SlotAlreadySettled(RuntimeError):
    pass


class FetchSlot(Generic[T]):
    """Holds one source's result: pending, then exactly one terminal state.

    Only the owning fetch task writes; any number of readers may take
    views or await settlement.
    """

    def __init__(self, name: str):
        self.name = name
        self._status = SlotStatus.pending
        self._value: Optional[T] = None
        self._reason = ""
        self._settled = asyncio.Event()

    @property
    def status(self) -> SlotStatus:
        return self._status

    @property
    def value(self) -> Optional[T]:
        return self._value

    @property
    def reason(self) -> str:
        return self._reason

    @property
    def is_terminal(self) -> bool:
        return self._status is not SlotStatus.pending

    @property
    def succeeded(self) -> bool:
        return self._status is SlotStatus.succeeded

    def succeed(self, value: T) -> None:
        self._settle(SlotStatus.succeeded, value=value)

    def fail(self, reason: str) -> None:
        self._settle(SlotStatus.failed, reason=reason or "unavailable")

    def _settle(self, status: SlotStatus, value: Optional[T] = None, reason: str = "") -> None:
        if self.is_terminal:
            raise SlotAlreadySettled(f"{self.name} already {self._status.value}")
        self._status = status
        self._value = value
        self._reason = reason
        self._settled.set()

    async def wait(self, timeout: float) -> bool:
        """Wait up to `timeout` seconds for a terminal state. Returns is_terminal."""
        try:
            await asyncio.wait_for(self._settled.wait(), timeout)
        except asyncio.TimeoutError:
            pass
        return self.is_terminal

    def view(self, view_type: type[SlotView] = SlotView) -> SlotView:
        return view_type(status=self._status, value=self._value, reason=self._reason)
