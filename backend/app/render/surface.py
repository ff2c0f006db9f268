"""Drawing surfaces targeted by the graph renderer."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Protocol, Sequence, Tuple, runtime_checkable

Point = Tuple[float, float]


@runtime_checkable
class DrawingSurface(Protocol):
    """Minimal 2D canvas API used by :class:`GraphRenderer`.

    Coordinates passed to the drawing primitives are in graph space; the
    surface maps them to pixels with the transform from :meth:`set_transform`.
    """

    width: int
    height: int

    def resize(self, width: int, height: int) -> None:
        """Change the pixel dimensions of the surface."""

    def clear(self) -> None:
        """Erase everything to full transparency."""

    def set_transform(self, scale: float, offset_x: float, offset_y: float) -> None:
        """Map graph point ``p`` to pixel ``p * scale + offset``."""

    def circle(self, x: float, y: float, radius: float, *, fill: str) -> None:
        """Fill a circle."""

    def line(self, x1: float, y1: float, x2: float, y2: float, *, stroke: str, width: float) -> None:
        """Stroke a straight segment."""

    def polygon(self, points: Sequence[Point], *, fill: str) -> None:
        """Fill a closed polygon."""

    def text(
        self,
        x: float,
        y: float,
        value: str,
        *,
        font: str,
        fill: str,
        align: str = "center",
        baseline: str = "middle",
    ) -> None:
        """Draw a single line of text anchored at ``(x, y)``."""


@dataclass(frozen=True)
class DrawCommand:
    """One recorded drawing primitive."""

    op: str
    args: Dict[str, Any]

    def to_payload(self) -> Dict[str, Any]:
        return {"op": self.op, **self.args}


@dataclass
class DisplayList:
    """Surface that records commands instead of rasterizing them.

    The browser page replays the serialized list onto a real ``<canvas>``
    each frame, which keeps every drawing decision on the server side.
    """

    width: int
    height: int
    commands: List[DrawCommand] = field(default_factory=list)

    def resize(self, width: int, height: int) -> None:
        self.width = max(1, int(width))
        self.height = max(1, int(height))

    def clear(self) -> None:
        self.commands = [DrawCommand("clear", {"width": self.width, "height": self.height})]

    def set_transform(self, scale: float, offset_x: float, offset_y: float) -> None:
        self._record("transform", scale=scale, x=offset_x, y=offset_y)

    def circle(self, x: float, y: float, radius: float, *, fill: str) -> None:
        self._record("circle", x=x, y=y, r=radius, fill=fill)

    def line(self, x1: float, y1: float, x2: float, y2: float, *, stroke: str, width: float) -> None:
        self._record("line", x1=x1, y1=y1, x2=x2, y2=y2, stroke=stroke, width=width)

    def polygon(self, points: Sequence[Point], *, fill: str) -> None:
        self._record("polygon", points=[[px, py] for px, py in points], fill=fill)

    def text(
        self,
        x: float,
        y: float,
        value: str,
        *,
        font: str,
        fill: str,
        align: str = "center",
        baseline: str = "middle",
    ) -> None:
        self._record("text", x=x, y=y, text=value, font=font, fill=fill, align=align, baseline=baseline)

    def of(self, op: str) -> List[DrawCommand]:
        """Return the recorded commands of one kind, in drawing order."""

        return [command for command in self.commands if command.op == op]

    def to_payload(self) -> List[Dict[str, Any]]:
        return [command.to_payload() for command in self.commands]

    def _record(self, op: str, **args: Any) -> None:
        self.commands.append(DrawCommand(op, {key: _round(value) for key, value in args.items()}))


def _round(value: Any) -> Any:
    if isinstance(value, float):
        return round(value, 3)
    if isinstance(value, list):
        return [_round(item) for item in value]
    return value


SurfaceFactory = Callable[[int, int], DrawingSurface]


def display_list_factory(width: int, height: int) -> DisplayList:
    return DisplayList(width=max(1, int(width)), height=max(1, int(height)))


__all__ = [
    "DisplayList",
    "DrawCommand",
    "DrawingSurface",
    "Point",
    "SurfaceFactory",
    "display_list_factory",
]
