"""WebSocket channel for starting bulk jobs and streaming their progress.

Messages in both directions are JSON objects ``{"event": ..., "data": ...}``.
Client events: ``start_bulk_invoice``, ``pause_job``, ``resume_job`` and
``end_job``.  Server events: ``connected``, ``job_started``,
``invoice_result``, ``bulk_complete``, ``bulk_ended``, ``bulk_error`` and
``error``.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from invoicer.core.registry import JobRegistry, create_job_id
from invoicer.core.schema import BulkInvoiceRequest, SocketJobReference
from invoicer.domain import JobKind
from invoicer.workers.bulk import BulkInvoiceRunner

logger = logging.getLogger("invoicer.socket")

router = APIRouter(tags=["socket"])

CONTROL_EVENTS = {"pause_job": "pause", "resume_job": "resume", "end_job": "end"}


class WebSocketEventSink:
    """Serialises events from concurrent jobs onto one client socket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._lock = asyncio.Lock()
        self._closed = False

    async def emit(self, event: str, payload: dict[str, Any]) -> None:
        if self._closed:
            logger.debug("event_dropped event=%s reason=closed", event)
            return
        async with self._lock:
            try:
                await self._websocket.send_json({"event": event, "data": payload})
            except (WebSocketDisconnect, RuntimeError) as exc:
                # The client went away; the jobs are ended by the disconnect handler.
                self._closed = True
                logger.warning("event_dropped event=%s error=%r", event, exc)

    def close(self) -> None:
        self._closed = True


class SocketSession:
    """Jobs started from one WebSocket connection."""

    def __init__(self, websocket: WebSocket, session_id: str) -> None:
        state = websocket.app.state
        self.session_id = session_id
        self.sink = WebSocketEventSink(websocket)
        self._registry: JobRegistry = state.job_registry
        self._client = state.inventory_client
        self._invoicing = state.invoicing
        self._settle_delay_ms: int = state.settings.SETTLE_DELAY_MS
        self._tasks: dict[str, asyncio.Task] = {}

    async def _error(self, message: str, **extra: Any) -> None:
        await self.sink.emit("error", {"message": message, **extra})

    async def start_bulk_invoice(self, data: Any) -> None:
        try:
            request = BulkInvoiceRequest.model_validate(data)
        except ValidationError as exc:
            await self._error("Invalid bulk invoice request.", details=json.loads(exc.json()))
            return

        profile_name = request.selected_profile_name
        job_id = create_job_id(self.session_id, profile_name, JobKind.INVOICE)
        running = self._tasks.get(job_id)
        if job_id in self._registry or (running is not None and not running.done()):
            await self.sink.emit(
                "bulk_error",
                {
                    "message": "A bulk invoice job is already running for this profile.",
                    "profile_name": profile_name,
                    "job_type": JobKind.INVOICE.value,
                },
            )
            return

        runner = BulkInvoiceRunner(
            self._client,
            self._registry,
            self.sink,
            settle_delay_ms=self._settle_delay_ms,
        )
        await self.sink.emit(
            "job_started",
            {
                "job_id": job_id,
                "profile_name": profile_name,
                "job_type": JobKind.INVOICE.value,
                "total": len(request.emails),
            },
        )
        task = asyncio.create_task(
            runner.run(
                job_id,
                request.emails,
                request.subject,
                request.body,
                request.delay * 1000,
                profile=self._invoicing.find_profile(profile_name),
                profile_name=profile_name,
                line_item=request.line_item,
            ),
            name=f"bulk-invoice:{job_id}",
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda done, key=job_id: self._forget(key, done))

    def _forget(self, job_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    async def control(self, action: str, data: Any) -> None:
        try:
            reference = SocketJobReference.model_validate(data)
        except ValidationError as exc:
            await self._error("Invalid job control request.", details=json.loads(exc.json()))
            return
        job_id = create_job_id(self.session_id, reference.selected_profile_name, reference.job_type)
        self._registry.apply_control(job_id, action)

    async def dispatch(self, message: Any) -> None:
        if not isinstance(message, dict) or not isinstance(message.get("event"), str):
            await self._error("Messages must be objects with an 'event' field.")
            return
        event = message["event"]
        data = message.get("data") or {}
        if event == "start_bulk_invoice":
            await self.start_bulk_invoice(data)
        elif event in CONTROL_EVENTS:
            await self.control(CONTROL_EVENTS[event], data)
        else:
            await self._error(f"Unknown event '{event}'.")

    def shutdown(self) -> None:
        self.sink.close()
        for job_id in list(self._tasks):
            self._registry.apply_control(job_id, "end")


@router.websocket("/ws")
async def job_socket(websocket: WebSocket) -> None:
    await websocket.accept()
    session = SocketSession(websocket, uuid4().hex)
    logger.info("ws_connected session=%s", session.session_id)
    await session.sink.emit("connected", {"session_id": session.session_id})
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await session.sink.emit("error", {"message": "Messages must be JSON."})
                continue
            await session.dispatch(message)
    except WebSocketDisconnect as exc:
        logger.info("ws_disconnect session=%s code=%s", session.session_id, exc.code)
    finally:
        session.shutdown()
