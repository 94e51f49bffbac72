"""Process-wide store of bulk job control state.

Runners and the control channel share one :class:`JobRegistry` instance owned
by the application.  Every method is synchronous and is only called from the
event loop thread, which makes the loop the single mutual-exclusion domain for
status reads and writes.

Each entry carries two signals next to its status:

* a cancellation token, set once the job is ended or removed, which
  interruptible delays wait on;
* a resume signal, cleared while the job is paused, which the pause wait
  blocks on.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from invoicer.domain import JobControlState, JobKind, JobStatus

logger = logging.getLogger("invoicer.registry")

CONTROL_ACTIONS: dict[str, JobStatus] = {
    "pause": JobStatus.PAUSED,
    "resume": JobStatus.RUNNING,
    "end": JobStatus.ENDED,
}


def create_job_id(session_id: str, profile_name: str, kind: JobKind | str) -> str:
    """Build the registry key for a (session, profile, job kind) triple."""

    kind_value = kind.value if isinstance(kind, JobKind) else str(kind)
    return f"{session_id}_{profile_name}_{kind_value}"


@dataclass(slots=True)
class _JobEntry:
    state: JobControlState = field(default_factory=JobControlState)
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)
    resumed: asyncio.Event = field(default_factory=asyncio.Event)

    def __post_init__(self) -> None:
        self.resumed.set()

    def apply(self, status: JobStatus) -> bool:
        # ended is final; a late resume must not revive a job being torn down
        if self.state.status is JobStatus.ENDED:
            return False
        self.state.status = status
        if status is JobStatus.PAUSED:
            self.resumed.clear()
            return True
        self.resumed.set()
        if status is JobStatus.ENDED:
            self.cancelled.set()
        return True


class JobRegistry:
    """Mapping of job id to :class:`JobControlState`."""

    def __init__(self) -> None:
        self._jobs: dict[str, _JobEntry] = {}

    def create(self, job_id: str) -> None:
        previous = self._jobs.get(job_id)
        if previous is not None:
            logger.warning("job_overwritten job_id=%s status=%s", job_id, previous.state.status.value)
            previous.cancelled.set()
            previous.resumed.set()
        self._jobs[job_id] = _JobEntry()

    def set_status(self, job_id: str, status: JobStatus | str) -> bool:
        # False when the job is unknown, and also when it is already ended:
        # ended is final, so a late pause or resume is dropped.
        entry = self._jobs.get(job_id)
        if entry is None:
            logger.debug("status_ignored job_id=%s status=%s", job_id, status)
            return False
        applied = entry.apply(JobStatus(status))
        logger.info("job_status job_id=%s status=%s applied=%s", job_id, entry.state.status.value, applied)
        return applied

    def apply_control(self, job_id: str, action: str) -> bool:
        """Translate an operator action (pause, resume, end) into a status change."""

        if action not in CONTROL_ACTIONS:
            raise ValueError(f"unknown job control action: {action}")
        return self.set_status(job_id, CONTROL_ACTIONS[action])

    def get(self, job_id: str) -> JobControlState | None:
        entry = self._jobs.get(job_id)
        if entry is None:
            return None
        return JobControlState(status=entry.state.status)

    def status(self, job_id: str) -> JobStatus:
        """Return the job status, reading unknown jobs as ended."""

        entry = self._jobs.get(job_id)
        if entry is None:
            return JobStatus.ENDED
        return entry.state.status

    def is_active(self, job_id: str) -> bool:
        return self.status(job_id) is not JobStatus.ENDED

    def remove(self, job_id: str) -> None:
        entry = self._jobs.pop(job_id, None)
        if entry is None:
            return
        entry.cancelled.set()
        entry.resumed.set()

    def cancellation_token(self, job_id: str) -> asyncio.Event | None:
        entry = self._jobs.get(job_id)
        return entry.cancelled if entry else None

    def resume_signal(self, job_id: str) -> asyncio.Event | None:
        entry = self._jobs.get(job_id)
        return entry.resumed if entry else None

    def snapshot(self) -> list[dict[str, str]]:
        return [
            {"job_id": job_id, "status": entry.state.status.value}
            for job_id, entry in self._jobs.items()
        ]

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def reset(self) -> None:
        """Drop every job and wake anything waiting on them (app shutdown)."""

        for entry in self._jobs.values():
            entry.cancelled.set()
            entry.resumed.set()
        self._jobs.clear()
