"""Per-recipient invoice pipeline: contact, invoice, notification.

Each stage either advances the item or ends it with a failing ``complete``
event.  Failures never leave :meth:`InvoicePipeline.process`; they are turned
into progress events carrying the short message and the raw API payload.
"""
from __future__ import annotations

import logging
from typing import Any

from invoicer.core.delay import interruptible_sleep
from invoicer.core.registry import JobRegistry
from invoicer.core.schema import LineItem, Profile
from invoicer.core.templates import line_item_payload
from invoicer.domain import InputItem, ProgressEvent, Stage, StageResponse
from invoicer.infrastructure.inventory import InventoryApiError, InventoryClient, parse_error
from invoicer.workers.events import PROGRESS_EVENT, EventSink

logger = logging.getLogger("invoicer.pipeline")

DEFAULT_SETTLE_DELAY_MS = 1000


class InvoicePipeline:
    def __init__(
        self,
        client: InventoryClient,
        registry: JobRegistry,
        sink: EventSink,
        *,
        profile: Profile,
        profile_name: str,
        line_item: LineItem,
        settle_delay_ms: int = DEFAULT_SETTLE_DELAY_MS,
    ) -> None:
        self._client = client
        self._registry = registry
        self._sink = sink
        self._profile = profile
        self._profile_name = profile_name
        self._line_item = line_item
        self._settle_delay_ms = settle_delay_ms

    async def _emit(self, item: InputItem, stage: Stage, details: str, **fields: Any) -> None:
        event = ProgressEvent(
            row_number=item.row_number,
            email=item.email,
            stage=stage,
            details=details,
            profile_name=self._profile_name,
            **fields,
        )
        await self._sink.emit(PROGRESS_EVENT, event.to_payload())

    @staticmethod
    def _log_failure(stage: str, item: InputItem, exc: Exception) -> None:
        if isinstance(exc, InventoryApiError):
            logger.warning(
                "stage_failed stage=%s row=%s status=%s error=%s",
                stage, item.row_number, exc.status_code, exc.message,
            )
        else:
            logger.exception("stage_failed stage=%s row=%s", stage, item.row_number)

    # ------------------------------------------------------------------
    # stages
    # ------------------------------------------------------------------
    async def _resolve_contact(self, item: InputItem) -> dict[str, Any]:
        search = await self._client.find_contacts_by_email(self._profile, item.email)
        contacts = search.get("contacts") or []
        if contacts:
            contact = contacts[0]
            response = search
        else:
            logger.info("contact_missing row=%s creating=%s", item.row_number, item.contact_name)
            payload = {
                "contact_name": item.contact_name,
                "contact_persons": [{"email": item.email, "is_primary_contact": True}],
            }
            response = await self._client.create_contact(self._profile, payload)
            contact = response.get("contact") or {}

        contact_id = contact.get("contact_id")
        if not contact_id:
            raise InventoryApiError("Contact response did not include a contact id.", full_response=response)
        item.contact_id = str(contact_id)
        item.contact_person_ids = [
            str(person["contact_person_id"])
            for person in contact.get("contact_persons") or []
            if isinstance(person, dict) and person.get("contact_person_id")
        ]
        return response

    async def _create_invoice(self, item: InputItem) -> dict[str, Any]:
        payload = {
            "customer_id": item.contact_id,
            "contact_persons": item.contact_person_ids,
            "line_items": [line_item_payload(self._line_item)],
        }
        response = await self._client.create_invoice(self._profile, payload)
        invoice = response.get("invoice") or {}
        if not invoice.get("invoice_id"):
            raise InventoryApiError("Invoice response did not include an invoice id.", full_response=response)
        item.invoice_id = str(invoice["invoice_id"])
        number = invoice.get("invoice_number")
        item.invoice_number = str(number) if number is not None else None
        return response

    async def _send_notification(self, item: InputItem, subject: str, body: str) -> dict[str, Any]:
        payload = {"to_mail_ids": [item.email], "subject": subject, "body": body}
        return await self._client.email_contact(self._profile, item.contact_id or "", payload)

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def process(self, job_id: str, item: InputItem, *, subject: str, body: str) -> bool:
        """Run all stages for ``item``; return whether the email went out."""

        await self._emit(item, Stage.CONTACT, "Searching for contact...")

        try:
            contact_data = await self._resolve_contact(item)
        except Exception as exc:
            self._log_failure("contact", item, exc)
            message, full_response = parse_error(exc)
            await self._emit(
                item,
                Stage.COMPLETE,
                f"Contact Error: {message}",
                success=False,
                contact_response=StageResponse(False, full_response),
            )
            return False

        contact_response = StageResponse(True, contact_data)
        await self._emit(
            item,
            Stage.INVOICE,
            "Contact processed. Creating invoice...",
            contact_response=contact_response,
        )

        try:
            invoice_data = await self._create_invoice(item)
        except Exception as exc:
            self._log_failure("invoice", item, exc)
            message, full_response = parse_error(exc)
            await self._emit(
                item,
                Stage.COMPLETE,
                f"Invoice Creation Error: {message}",
                success=False,
                contact_response=contact_response,
                invoice_response=StageResponse(False, full_response),
            )
            return False

        invoice_response = StageResponse(True, invoice_data)

        # Give the API time to index the new invoice before mailing.
        await interruptible_sleep(self._registry, job_id, self._settle_delay_ms)
        if not self._registry.is_active(job_id):
            logger.info("notification_skipped row=%s invoice=%s reason=ended", item.row_number, item.invoice_number)
            await self._emit(
                item,
                Stage.COMPLETE,
                f"Job ended before the email was sent for Invoice #{item.invoice_number}.",
                success=False,
                invoice_number=item.invoice_number,
                invoice_response=invoice_response,
            )
            return False

        try:
            email_data = await self._send_notification(item, subject, body)
        except Exception as exc:
            self._log_failure("notification", item, exc)
            message, full_response = parse_error(exc)
            await self._emit(
                item,
                Stage.COMPLETE,
                f"Email Send Error: {message}",
                success=False,
                invoice_number=item.invoice_number,
                invoice_response=invoice_response,
                email_response=StageResponse(False, full_response),
            )
            return False

        await self._emit(
            item,
            Stage.COMPLETE,
            f"Email sent for Invoice #{item.invoice_number}.",
            success=True,
            invoice_number=item.invoice_number,
            invoice_response=invoice_response,
            email_response=StageResponse(True, email_data),
        )
        return True
