"""
Realtime message flow.

Handles one inbound private_message event: persist the message, fan it out
to the recipient's room, then confirm to the sending connection. The result
is returned as a FlowResult so the transport adapter decides how to surface
it (acknowledgement frame or error event).
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from api.metrics import messages_created_total, message_flow_duration_seconds
from api.schemas import MessageCreate
from api.websocket_manager import SessionRegistry
from core.errors import AppError, BadRequest
from core.security import AuthenticatedRequest, Identity
from db.repository import Repository
from services.message_service import MessageService

logger = logging.getLogger(__name__)

MESSAGE_EVENT = "message"
MESSAGE_SENT_EVENT = "message_sent"


@dataclass(frozen=True)
class FlowResult:
    """Outcome of one realtime event: {ok: true, value} or {ok: false, error}."""
    ok: bool
    value: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Dict[str, Any]) -> "FlowResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "FlowResult":
        return cls(ok=False, error=error)

    def as_ack(self) -> Dict[str, Any]:
        """Acknowledgement payload sent back to the client."""
        if self.ok:
            return {"success": True, "message": self.value}
        return {"success": False, "error": self.error}


class MessageFlow:
    """Orchestrates receive -> persist -> fan-out -> confirm for private messages."""

    def __init__(self, registry: SessionRegistry, session_factory: Callable[[], Session]):
        self.registry = registry
        self.session_factory = session_factory

    def _persist(self, identity: Identity, data: MessageCreate) -> Dict[str, Any]:
        """Store the message in its own session; runs in a worker thread."""
        db = self.session_factory()
        try:
            service = MessageService(Repository(db))
            saved = service.create_message(AuthenticatedRequest(identity=identity, payload=data))
            return saved.model_dump(mode="json", by_alias=True)
        finally:
            db.close()

    @staticmethod
    def _log_detached_persist(future: "asyncio.Future") -> None:
        """Report the outcome of a write whose caller was cancelled."""
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.warning(f"private_message write failed after the connection went away: {error}")
        else:
            logger.info(f"Message {future.result()['id']} stored after the connection went away")

    async def handle_private_message(self, identity: Identity, websocket, payload: Any) -> FlowResult:
        """
        Handle a private_message event from an authenticated connection.

        Persistence always completes before the recipient fan-out, and the
        fan-out is issued before the sender confirmation. On failure nothing
        is fanned out and only the result reports the error.

        Args:
            identity: Identity bound to the sending connection
            websocket: The sending connection
            payload: Raw event data, expected {"to": str, "content": str}

        Returns:
            FlowResult with the saved message or the error message
        """
        started = time.perf_counter()
        try:
            if not isinstance(payload, dict):
                raise BadRequest("Invalid payload: expected an object with 'to' and 'content'")
            try:
                data = MessageCreate.model_validate(payload)
            except ValidationError:
                raise BadRequest("Invalid payload: 'to' and 'content' must be strings")

            # Shielded so a connection closing mid-flight never aborts the write
            persist = asyncio.ensure_future(run_in_threadpool(self._persist, identity, data))
            try:
                saved = await asyncio.shield(persist)
            except asyncio.CancelledError:
                persist.add_done_callback(self._log_detached_persist)
                raise


        except AppError as e:
            logger.info(f"private_message from user {identity.id} rejected: {e.message}")
            message_flow_duration_seconds.labels(status="rejected", instance="api").observe(
                time.perf_counter() - started
            )
            return FlowResult.failure(e.message)
        except Exception as e:
            logger.error(f"Error storing private_message from user {identity.id}: {e}", exc_info=e)
            message_flow_duration_seconds.labels(status="error", instance="api").observe(
                time.perf_counter() - started
            )
            return FlowResult.failure("Internal server error")

        messages_created_total.labels(source="websocket", instance="api").inc()

        recipient_id = saved["to"]["id"]
        delivered = await self.registry.send_to_user(recipient_id, MESSAGE_EVENT, saved)
        await self.registry.send_to_connection(websocket, MESSAGE_SENT_EVENT, saved)

        logger.info(
            f"Message {saved['id']} from user {identity.id} delivered to "
            f"{delivered} connection(s) of user {recipient_id}"
        )
        message_flow_duration_seconds.labels(status="ok", instance="api").observe(
            time.perf_counter() - started
        )
        return FlowResult.success(saved)
