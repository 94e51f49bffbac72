from __future__ import annotations

from fastapi import APIRouter, Depends

from invoicer.application import InvoicingService
from invoicer.core.schema import OrganizationUpdateRequest
from invoicer.routes.deps import get_invoicing_service

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("")
async def list_profiles(service: InvoicingService = Depends(get_invoicing_service)) -> dict:
    return {"items": service.list_profiles()}


@router.get("/{profile_name}/status")
async def check_api_status(profile_name: str, service: InvoicingService = Depends(get_invoicing_service)) -> dict:
    return await service.check_api_status(profile_name)


@router.get("/{profile_name}/organization")
async def get_organization(profile_name: str, service: InvoicingService = Depends(get_invoicing_service)) -> dict:
    return await service.get_organization(profile_name)


@router.put("/{profile_name}/organization")
async def update_organization(
    profile_name: str,
    payload: OrganizationUpdateRequest,
    service: InvoicingService = Depends(get_invoicing_service),
) -> dict:
    return await service.update_display_name(profile_name, payload.display_name)
