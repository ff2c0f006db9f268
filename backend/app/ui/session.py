"""Per-connection view session driving a graph view over a message channel."""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from typing_extensions import Annotated, Literal

from backend.app.config import AppConfig
from backend.app.extraction.graph_provider import GraphProvider
from backend.app.interaction.controller import PointerEvent, WheelEvent
from backend.app.persistence.snapshots import GraphSnapshotStoreProtocol, SnapshotStoreError
from backend.app.view.adapter import GraphViewAdapter
from backend.app.view.scheduler import FrameScheduler
from backend.app.view.submissions import SubmissionCoordinator

LOGGER = logging.getLogger(__name__)

SendCallable = Callable[[Dict[str, Any]], Awaitable[None]]


class _ClientMessage(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class ResizeMessage(_ClientMessage):
    type: Literal["resize"]
    width: int = Field(..., ge=1)
    height: int = Field(..., ge=1)


class PointerMessage(_ClientMessage):
    type: Literal["pointer"]
    kind: Literal["down", "move", "up", "cancel"]
    x: float
    y: float
    pointer_id: int = 0
    pointer_type: str = "mouse"
    button: int = 0
    target_tag: Optional[str] = None


class WheelMessage(_ClientMessage):
    type: Literal["wheel"]
    x: float
    y: float
    delta_y: float
    target_tag: Optional[str] = None


class SubmitMessage(_ClientMessage):
    type: Literal["submit"]
    input: str = ""


class ClearMessage(_ClientMessage):
    type: Literal["clear"]


ClientMessage = Annotated[
    Union[ResizeMessage, PointerMessage, WheelMessage, SubmitMessage, ClearMessage],
    Field(discriminator="type"),
]
_CLIENT_MESSAGE_ADAPTER: TypeAdapter[Any] = TypeAdapter(ClientMessage)


def parse_client_message(raw: Any) -> Any:
    """Validate a decoded client message.

    Raises:
        ValidationError: If the message has an unknown type or invalid fields.
    """

    return _CLIENT_MESSAGE_ADAPTER.validate_python(raw)


class ViewSession:
    """Mounted graph view bound to one connected client.

    Frames are produced by a :class:`FrameScheduler` on the event loop and
    pushed through ``send``; once the layout has settled no further frames are
    sent until input or a graph change makes the view dirty again.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        send: SendCallable,
        provider: Optional[GraphProvider] = None,
        snapshot_store: Optional[GraphSnapshotStoreProtocol] = None,
        executor: Optional[Executor] = None,
        seed: Optional[int] = None,
    ) -> None:
        self._config = config
        self._send = send
        self.adapter = GraphViewAdapter(config, seed=seed)
        self.coordinator = SubmissionCoordinator(
            self.adapter,
            provider,
            ambient=config.ambient,
            snapshot_store=snapshot_store,
            ambient_while_loading=config.view.ambient_while_loading,
            executor=executor,
            on_status=self._send_status,
        )
        self.scheduler = FrameScheduler(self._send_frame, config.view.frame_interval_ms / 1000.0)
        self._tasks: Set["asyncio.Task[Any]"] = set()
        self._dirty = True
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self, width: Optional[int] = None, height: Optional[int] = None) -> None:
        """Mount the view, show the initial graph and start streaming frames."""

        self.adapter.mount(width, height, scheduler=self.scheduler)
        graph = self.coordinator.show_initial()
        await self._send_status(
            {
                "type": "status",
                "state": "ready",
                "profile": self.adapter.profile_name,
                "has_labels": graph.has_labels,
            }
        )
        self.scheduler.start()

    async def handle(self, raw: Any) -> None:
        """Apply one decoded client message."""

        try:
            message = parse_client_message(raw)
        except ValidationError as exc:
            LOGGER.info("Rejected client message: %s", exc.errors()[:1])
            await self._send({"type": "error", "message": "Invalid message"})
            return
        if isinstance(message, ResizeMessage):
            self.adapter.resize(message.width, message.height)
            self._dirty = True
        elif isinstance(message, PointerMessage):
            event = PointerEvent(
                kind=message.kind,
                x=message.x,
                y=message.y,
                pointer_id=message.pointer_id,
                pointer_type=message.pointer_type,
                button=message.button,
                target_tag=message.target_tag,
            )
            self.adapter.handle_pointer(event)
            self._dirty = True
        elif isinstance(message, WheelMessage):
            wheel = WheelEvent(x=message.x, y=message.y, delta_y=message.delta_y, target_tag=message.target_tag)
            if self.adapter.handle_wheel(wheel):
                self._dirty = True
        elif isinstance(message, SubmitMessage):
            self._spawn(self.coordinator.submit(message.input))
        elif isinstance(message, ClearMessage):
            await self._clear()

    async def _clear(self) -> None:
        try:
            self.coordinator.clear()
        except SnapshotStoreError as exc:
            await self._send({"type": "error", "message": str(exc)})
            return
        self._dirty = True
        await self._send_status({"type": "status", "state": "cleared"})

    def _spawn(self, coroutine: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Wait until every in-flight submission has finished."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Stop frames, drop pending submissions and unmount the view."""

        if self._closed:
            return
        self._closed = True
        self.coordinator.cancel()
        for task in list(self._tasks):
            task.cancel()
        await self.scheduler.aclose()
        self.adapter.unmount()

    async def _send_frame(self) -> None:
        if self._closed:
            return
        state = self.adapter.state
        settled = state is None or state.converged
        if settled and not self._dirty:
            return
        self._dirty = False
        await self._send(self.adapter.frame_payload())

    async def _send_status(self, message: Dict[str, Any]) -> None:
        self._dirty = True
        if not self._closed:
            await self._send(message)


__all__ = [
    "ClearMessage",
    "PointerMessage",
    "ResizeMessage",
    "SubmitMessage",
    "ViewSession",
    "WheelMessage",
    "parse_client_message",
]
