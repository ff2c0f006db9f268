"""Pointer and wheel interaction handling."""

from backend.app.interaction.controller import (
    InteractionController,
    PointerEvent,
    Spotlight,
    WheelEvent,
)

__all__ = ["InteractionController", "PointerEvent", "Spotlight", "WheelEvent"]
