"""Domain layer definitions."""

from .jobs import (
    InputItem,
    JobControlState,
    JobKind,
    JobStatus,
    ProgressEvent,
    Stage,
    StageResponse,
    TerminalEvent,
    TerminalKind,
)

__all__ = [
    "InputItem",
    "JobControlState",
    "JobKind",
    "JobStatus",
    "ProgressEvent",
    "Stage",
    "StageResponse",
    "TerminalEvent",
    "TerminalKind",
]
