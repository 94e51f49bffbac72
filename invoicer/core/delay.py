"""Suspension points of a running job."""
from __future__ import annotations

import asyncio

from invoicer.core.registry import JobRegistry
from invoicer.domain import JobStatus

PAUSE_POLL_SECONDS = 0.5


async def interruptible_sleep(registry: JobRegistry, job_id: str, duration_ms: float) -> None:
    """Sleep for ``duration_ms`` unless the job is ended or removed first.

    Paused jobs keep sleeping; pausing is handled between items by the runner.
    """

    if duration_ms <= 0:
        return
    token = registry.cancellation_token(job_id)
    if token is None or token.is_set():
        return
    try:
        await asyncio.wait_for(token.wait(), timeout=duration_ms / 1000)
    except asyncio.TimeoutError:
        pass


async def wait_while_paused(
    registry: JobRegistry,
    job_id: str,
    *,
    poll_interval: float = PAUSE_POLL_SECONDS,
) -> None:
    """Block while the job is paused, re-checking on every wake."""

    while registry.status(job_id) is JobStatus.PAUSED:
        signal = registry.resume_signal(job_id)
        if signal is None:
            return
        try:
            await asyncio.wait_for(signal.wait(), timeout=poll_interval)
        except asyncio.TimeoutError:
            continue
