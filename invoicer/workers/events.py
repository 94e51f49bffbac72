from __future__ import annotations

from typing import Any, Protocol

PROGRESS_EVENT = "invoice_result"


class EventSink(Protocol):
    """Receiver of job progress and terminal events, e.g. a client socket."""

    async def emit(self, event: str, payload: dict[str, Any]) -> None: ...
