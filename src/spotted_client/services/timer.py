"""Elapsed-time counter for the workout timer."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field


@dataclass
class ElapsedTimer:
    """Counts whole seconds while armed.

    The count is driven by a single scheduled task. ``disarm`` cancels that
    task, so a tick whose sleep already finished but has not yet resumed is
    dropped rather than applied.
    """

    interval_seconds: float = 1.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    on_tick: Callable[[int], None] | None = None
    _value: int = field(default=0, init=False)
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    @property
    def value(self) -> int:
        return self._value

    @property
    def armed(self) -> bool:
        return self._task is not None

    def arm(self) -> None:
        """Start or resume counting from the current value."""
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def disarm(self) -> None:
        """Stop counting and keep the current value."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()

    def reset(self) -> None:
        self._value = 0

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        while True:
            deadline += self.interval_seconds
            await self.sleep(max(0.0, deadline - loop.time()))
            self._value += 1
            if self.on_tick is not None:
                self.on_tick(self._value)
