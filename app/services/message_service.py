"""
Message store access.

Every operation is performed on behalf of an authenticated caller and is
scoped by the conversation key of the participant pair.
"""
import logging
from typing import List, Optional

from api.schemas import MessageCreate, MessageDetail, MessagePatch, MessageRecord
from core.config import settings
from core.conversation import conversation_key, is_valid_identifier
from core.audit_logger import audit_logger
from core.errors import BadRequest, Forbidden, NotFound
from core.security import AuthenticatedRequest, Identity, require_identity
from db.models import Message
from db.repository import Repository

logger = logging.getLogger(__name__)


class MessageService:
    """CRUD operations on direct messages."""

    def __init__(self, repository: Repository, max_content_length: Optional[int] = None):
        self.repository = repository
        self.max_content_length = max_content_length or settings.message_max_length

    def list_conversation(self, request: AuthenticatedRequest[Optional[str]]) -> List[MessageDetail]:
        """
        List every message exchanged between the caller and another user.

        Args:
            request: Caller identity with the other user's ID as payload

        Returns:
            Messages ordered by creation time, oldest first

        Raises:
            Unauthorized: no caller identity
            BadRequest: other user ID missing or malformed
        """
        caller = require_identity(request)
        other_id = request.payload
        if not other_id:
            raise BadRequest('Missing "with" query param')

        key = conversation_key(caller.id, other_id)
        messages = self.repository.get_conversation_messages(key)
        return [MessageDetail.from_message(message) for message in messages]

    def create_message(self, request: AuthenticatedRequest[MessageCreate]) -> MessageDetail:
        """
        Persist a new message from the caller.

        Raises:
            Unauthorized: no caller identity
            BadRequest: recipient or content missing, content too long
            NotFound: recipient does not exist
        """
        caller = require_identity(request)
        data = request.payload
        if data is None or not data.to or not data.content or not data.content.strip():
            raise BadRequest("Invalid payload: 'to' and 'content' are required")
        if len(data.content) > self.max_content_length:
            raise BadRequest(f"Message content exceeds {self.max_content_length} characters")

        key = conversation_key(caller.id, data.to)
        if self.repository.get_user_by_id(data.to) is None:
            raise NotFound("Recipient not found")

        created = self.repository.create_message(
            conversation_key=key,
            sender_id=caller.id,
            recipient_id=data.to,
            content=data.content
        )
        logger.info(f"Message {created.id} stored in conversation {key}")

        message = self.repository.get_message(created.id, with_users=True)
        return MessageDetail.from_message(message)

    def get_message(self, request: AuthenticatedRequest[str]) -> MessageRecord:
        """
        Fetch a single message by ID.

        Raises:
            Unauthorized: no caller identity
            NotFound: message does not exist
            Forbidden: caller is neither sender nor recipient
        """
        caller = require_identity(request)
        message = self._get_owned_message(caller, request.payload)
        return MessageRecord.from_message(message)

    def update_message(self, request: AuthenticatedRequest[MessagePatch], message_id: str) -> MessageRecord:
        """
        Apply a patch to a message and return the updated record.

        Only read and content can change; participants and conversation key
        are fixed at creation.
        """
        caller = require_identity(request)
        message = self._get_owned_message(caller, message_id)

        changes = request.payload.model_dump(exclude_unset=True, exclude_none=True)
        if "content" in changes:
            if not changes["content"].strip():
                raise BadRequest("Message content cannot be empty")
            if len(changes["content"]) > self.max_content_length:
                raise BadRequest(f"Message content exceeds {self.max_content_length} characters")
        if changes:
            message = self.repository.update_message(message, changes)
            logger.info(f"Message {message.id} updated: {sorted(changes)}")
        return MessageRecord.from_message(message)

    def delete_message(self, request: AuthenticatedRequest[str]) -> None:
        """Delete a message by ID."""
        caller = require_identity(request)
        message = self._get_owned_message(caller, request.payload)
        self.repository.delete_message(message)
        logger.info(f"Message {request.payload} deleted by user {caller.id}")

    def _get_owned_message(self, caller: Identity, message_id: Optional[str]) -> Message:
        if not is_valid_identifier(message_id):
            raise NotFound("Message not found")
        message = self.repository.get_message(message_id)
        if message is None:
            raise NotFound("Message not found")
        if caller.id not in (message.sender_id, message.recipient_id):
            audit_logger.log_authorization_denied(caller.id, f"message:{message.id}", "access")
            raise Forbidden("Only the sender or recipient can access this message")
        return message
