"""View lifecycle: mounted adapter, frame loop and submission handling."""

from backend.app.view.adapter import GraphViewAdapter, ViewNotMountedError, ViewPhase
from backend.app.view.scheduler import FrameScheduler
from backend.app.view.submissions import (
    SubmissionCoordinator,
    SubmissionOutcome,
    SubmissionStatus,
)

__all__ = [
    "FrameScheduler",
    "GraphViewAdapter",
    "SubmissionCoordinator",
    "SubmissionOutcome",
    "SubmissionStatus",
    "ViewNotMountedError",
    "ViewPhase",
]
