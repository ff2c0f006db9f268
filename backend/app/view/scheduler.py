"""Cooperative frame loop running on the asyncio event loop."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

LOGGER = logging.getLogger(__name__)

FrameCallback = Callable[[], Awaitable[None]]


class FrameScheduler:
    """Invoke ``on_frame`` roughly every ``interval_seconds`` until stopped.

    Frames never overlap: the next frame is scheduled only after the previous
    callback finished, so pointer messages handled on the same loop always
    observe a consistent simulation state.
    """

    def __init__(self, on_frame: FrameCallback, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._on_frame = on_frame
        self._interval = interval_seconds
        self._task: Optional["asyncio.Task[None]"] = None
        self.frames = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def aclose(self) -> None:
        """Stop the loop and wait for the running frame to unwind."""

        task = self._task
        self.stop()
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            try:
                await self._on_frame()
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001 - frame failures end the loop and are logged
                LOGGER.exception("Frame callback failed; stopping frame loop")
                return
            self.frames += 1
            await asyncio.sleep(self._interval)


__all__ = ["FrameCallback", "FrameScheduler"]
