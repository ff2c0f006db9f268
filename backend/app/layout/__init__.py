"""Force-directed layout engine."""

from backend.app.layout.forces import CenterForce, Force, LinkForce, ManyBodyForce
from backend.app.layout.simulation import (
    SimulationState,
    initialize,
    pin,
    reheat,
    set_alpha_target,
    settle,
    step,
    unpin,
    warm,
)

__all__ = [
    "CenterForce",
    "Force",
    "LinkForce",
    "ManyBodyForce",
    "SimulationState",
    "initialize",
    "pin",
    "reheat",
    "set_alpha_target",
    "settle",
    "step",
    "unpin",
    "warm",
]
