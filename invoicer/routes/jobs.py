from __future__ import annotations

from fastapi import APIRouter, Depends

from invoicer.core.registry import JobRegistry
from invoicer.core.schema import JobControlRequest
from invoicer.routes.deps import get_job_registry

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("")
async def list_jobs(registry: JobRegistry = Depends(get_job_registry)) -> dict:
    return {"items": registry.snapshot()}


@router.post("/{job_id}/control")
async def control_job(
    job_id: str,
    payload: JobControlRequest,
    registry: JobRegistry = Depends(get_job_registry),
) -> dict:
    """Pause, resume or end a running job; unknown jobs are a silent no-op."""
    applied = registry.apply_control(job_id, payload.action)
    state = registry.get(job_id)
    return {
        "job_id": job_id,
        "action": payload.action,
        "applied": applied,
        "status": state.status.value if state else None,
    }
