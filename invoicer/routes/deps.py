from __future__ import annotations

from fastapi import Request

from invoicer.application import InvoicingService
from invoicer.core.registry import JobRegistry


def get_job_registry(request: Request) -> JobRegistry:
    return request.app.state.job_registry


def get_invoicing_service(request: Request) -> InvoicingService:
    return request.app.state.invoicing
