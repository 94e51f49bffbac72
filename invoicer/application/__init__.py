"""Application services."""

from .invoicing import InvoicingService, build_organization_update

__all__ = [
    "InvoicingService",
    "build_organization_update",
]
