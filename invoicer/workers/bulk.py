"""Bulk invoice job runner.

The runner owns one job from registry creation to removal.  Between items it
honours the operator's control requests: ``ended`` stops the loop, ``paused``
blocks before the next item until resumed.  Exactly one terminal event is
emitted per run and the registry entry is removed right after it is decided.
"""
from __future__ import annotations

import logging
from typing import Sequence

from invoicer.core.delay import PAUSE_POLL_SECONDS, interruptible_sleep, wait_while_paused
from invoicer.core.errors import ConfigurationError
from invoicer.core.registry import JobRegistry
from invoicer.core.schema import LineItem, Profile
from invoicer.core.templates import default_line_item
from invoicer.domain import InputItem, JobKind, JobStatus, TerminalEvent, TerminalKind
from invoicer.infrastructure.inventory import InventoryClient
from invoicer.workers.events import EventSink
from invoicer.workers.pipeline import DEFAULT_SETTLE_DELAY_MS, InvoicePipeline

logger = logging.getLogger("invoicer.runner")


class BulkInvoiceRunner:
    def __init__(
        self,
        client: InventoryClient,
        registry: JobRegistry,
        sink: EventSink,
        *,
        settle_delay_ms: int = DEFAULT_SETTLE_DELAY_MS,
        pause_poll_interval: float = PAUSE_POLL_SECONDS,
    ) -> None:
        self._client = client
        self._registry = registry
        self._sink = sink
        self._settle_delay_ms = settle_delay_ms
        self._pause_poll_interval = pause_poll_interval

    @staticmethod
    def _require_profile(profile: Profile | None) -> Profile:
        if profile is None or profile.inventory is None or not profile.inventory.org_id:
            raise ConfigurationError("Inventory profile configuration is missing.")
        return profile

    async def run(
        self,
        job_id: str,
        items: Sequence[str],
        subject: str,
        body: str,
        inter_item_delay_ms: float,
        *,
        profile: Profile | None,
        profile_name: str,
        line_item: LineItem | None = None,
    ) -> TerminalEvent:
        registry = self._registry
        registry.create(job_id)
        logger.info("job_started job_id=%s items=%s delay_ms=%s", job_id, len(items), inter_item_delay_ms)

        terminal: TerminalEvent | None = None
        processed = 0
        try:
            pipeline = InvoicePipeline(
                self._client,
                registry,
                self._sink,
                profile=self._require_profile(profile),
                profile_name=profile_name,
                line_item=line_item or default_line_item("bulk"),
                settle_delay_ms=self._settle_delay_ms,
            )

            for index, email in enumerate(items):
                if not registry.is_active(job_id):
                    break
                await wait_while_paused(registry, job_id, poll_interval=self._pause_poll_interval)
                if index > 0 and inter_item_delay_ms > 0:
                    await interruptible_sleep(registry, job_id, inter_item_delay_ms)
                    # a pause may have arrived while sleeping
                    await wait_while_paused(registry, job_id, poll_interval=self._pause_poll_interval)
                if not registry.is_active(job_id):
                    break

                item = InputItem(row_number=index + 1, email=email)
                await pipeline.process(job_id, item, subject=subject, body=body)
                processed += 1
        except Exception as exc:
            logger.exception("job_failed job_id=%s", job_id)
            terminal = TerminalEvent(
                TerminalKind.CRITICAL_ERROR,
                profile_name,
                JobKind.INVOICE,
                message=str(exc) or "A critical server error occurred.",
            )
        finally:
            if terminal is None:
                ended = registry.status(job_id) is JobStatus.ENDED
                terminal = TerminalEvent(
                    TerminalKind.ENDED if ended else TerminalKind.COMPLETED,
                    profile_name,
                    JobKind.INVOICE,
                )
            registry.remove(job_id)
            logger.info(
                "job_finished job_id=%s outcome=%s processed=%s/%s",
                job_id, terminal.kind.value, processed, len(items),
            )
            await self._sink.emit(terminal.event_name, terminal.to_payload())

        return terminal
