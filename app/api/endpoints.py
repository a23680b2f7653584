"""
API endpoint implementations.
Defines REST endpoints for users, categories, videos and direct messages, and the
WebSocket endpoint for realtime messaging.
"""
import re
import json
import logging
from typing import Callable, List, Optional
from fastapi import APIRouter, Depends, Query, Response, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from api.dependencies import (
    get_auth_gateway, get_current_identity, get_message_service, get_repository, get_session_factory,
    get_video_service
)
from api.metrics import (
    messages_created_total, websocket_handshake_rejections_total, websocket_messages_received_total
)
from api.schemas import (
    CategoryCreate, CategoryResponse, ChangeUsernameRequest,
    MessageCreate, MessageDetail, MessagePatch, MessageRecord,
    UserProfile, UserPublic, VideoCreate, VideoPatch, VideoResponse, WSError, WSFrame
)
from api.websocket_manager import session_registry, room_for
from core.audit_logger import audit_logger
from core.conversation import is_valid_identifier
from core.errors import BadRequest, Forbidden, NotFound, Unauthorized
from core.security import AuthGateway, AuthenticatedRequest, Identity
from db.repository import Repository
from services.message_flow import MessageFlow
from services.message_service import MessageService
from services.video_service import VideoService

logger = logging.getLogger(__name__)

_USERNAME_RE = re.compile(r"^[a-z0-9]{3,30}$")

# Create routers
users_router = APIRouter()
categories_router = APIRouter()
messages_router = APIRouter()
videos_router = APIRouter()
websocket_router = APIRouter()


# User Endpoints
@users_router.get("", response_model=List[UserPublic])
def list_users(
    identity: Identity = Depends(get_current_identity),
    repository: Repository = Depends(get_repository)
):
    """List every user's public profile."""
    return [UserPublic.model_validate(user) for user in repository.list_users()]


@users_router.get("/search", response_model=List[UserPublic])
def search_users(
    q: Optional[str] = Query(None, description="Text to match against name or username"),
    identity: Identity = Depends(get_current_identity),
    repository: Repository = Depends(get_repository)
):
    """
    Search users by name or username (case-insensitive).

    Raises:
        BadRequest: 400 if q is missing
    """
    if not q or not q.strip():
        raise BadRequest("Query missing")
    return [UserPublic.model_validate(user) for user in repository.search_users(q.strip())]


@users_router.get("/{user_id}", response_model=UserPublic)
def get_user(
    user_id: str,
    identity: Identity = Depends(get_current_identity),
    repository: Repository = Depends(get_repository)
):
    """
    Get a user's public profile.

    Raises:
        BadRequest: 400 if the ID is malformed
        NotFound: 404 if the user does not exist
    """
    if not is_valid_identifier(user_id):
        raise BadRequest("Invalid user ID")
    user = repository.get_user_by_id(user_id)
    if user is None:
        raise NotFound("User not found")
    return UserPublic.model_validate(user)


@users_router.patch("/{user_id}/change-username", response_model=UserProfile)
def change_username(
    user_id: str,
    body: ChangeUsernameRequest,
    identity: Identity = Depends(get_current_identity),
    repository: Repository = Depends(get_repository)
):
    """
    Change the authenticated user's username.

    Usernames are 3-30 lowercase letters or digits and must be unique.

    Raises:
        Forbidden: 400 if the target is not the caller
        BadRequest: 400 if the username is invalid or already taken
        NotFound: 404 if the user does not exist
    """
    if user_id != identity.id:
        audit_logger.log_authorization_denied(identity.id, f"user:{user_id}", "change_username")
        raise Forbidden("You can only change your own username")

    user = repository.get_user_by_id(user_id)
    if user is None:
        raise NotFound("User not found")

    new_username = body.new_username.strip().lower()
    if not _USERNAME_RE.match(new_username):
        raise BadRequest("Username must be 3-30 lowercase letters or digits")
    if new_username == user.username:
        return UserProfile.model_validate(user)

    existing = repository.get_user_by_username(new_username)
    if existing is not None:
        raise BadRequest("Username already taken")

    user = repository.update_username(user, new_username)
    logger.info(f"User {user.id} changed username to {new_username}")
    return UserProfile.model_validate(user)


@users_router.delete("/{user_id}")
def delete_user(
    user_id: str,
    identity: Identity = Depends(get_current_identity),
    repository: Repository = Depends(get_repository)
):
    """
    Delete the authenticated user's account and all of their messages.

    Raises:
        Forbidden: 400 if the target is not the caller
        NotFound: 404 if the user does not exist
    """
    if user_id != identity.id:
        audit_logger.log_authorization_denied(identity.id, f"user:{user_id}", "delete")
        raise Forbidden("You can only delete your own account")

    user = repository.get_user_by_id(user_id)
    if user is None:
        raise NotFound("User not found")

    messages_deleted = repository.delete_user(user)
    logger.info(f"User {user_id} deleted ({messages_deleted} messages removed)")
    return {"id": user_id, "deleted": True, "messages_deleted": messages_deleted}


# Category Endpoints
@categories_router.get("", response_model=List[CategoryResponse])
def list_categories(repository: Repository = Depends(get_repository)):
    """List video categories with their subcategories."""
    return [CategoryResponse.model_validate(category) for category in repository.list_categories()]


@categories_router.get("/{category_id}", response_model=CategoryResponse)
def get_category(category_id: str, repository: Repository = Depends(get_repository)):
    """
    Get a single category.

    Raises:
        NotFound: 404 if the category does not exist
    """
    category = repository.get_category(category_id)
    if category is None:
        raise NotFound("Category not found")
    return CategoryResponse.model_validate(category)


@categories_router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    body: CategoryCreate,
    identity: Identity = Depends(get_current_identity),
    repository: Repository = Depends(get_repository)
):
    """
    Create a category.

    Raises:
        BadRequest: 400 if a category with the same name exists
    """
    name = body.name.strip()
    if not name:
        raise BadRequest("Category name is required")
    if repository.get_category_by_name(name) is not None:
        raise BadRequest("Category already exists")

    subcategories = [sub.strip() for sub in body.subcategories if sub.strip()]
    category = repository.create_category(name, subcategories)
    logger.info(f"Category {category.name} created by user {identity.id}")
    return CategoryResponse.model_validate(category)


# Message Endpoints
@messages_router.get("", response_model=List[MessageDetail])
def list_conversation(
    with_user: Optional[str] = Query(None, alias="with", description="ID of the other participant"),
    identity: Identity = Depends(get_current_identity),
    service: MessageService = Depends(get_message_service)
):
    """
    List the conversation between the caller and another user.

    Messages are returned oldest first with sender and recipient expanded.

    Raises:
        BadRequest: 400 if "with" is missing
        Unauthorized: 401 if the token is missing or invalid

    Example Request:
        ```
        GET /messages?with=5f0c...
        Authorization: Bearer <token>
        ```
    """
    return service.list_conversation(AuthenticatedRequest(identity=identity, payload=with_user))


@messages_router.post("", response_model=MessageDetail, status_code=status.HTTP_201_CREATED)
def create_message(
    body: MessageCreate,
    identity: Identity = Depends(get_current_identity),
    service: MessageService = Depends(get_message_service)
):
    """
    Send a direct message.

    Raises:
        BadRequest: 400 if "to" or "content" is missing
        NotFound: 404 if the recipient does not exist

    Example Request:
        ```json
        POST /messages
        {"to": "5f0c...", "content": "hello"}
        ```
    """
    saved = service.create_message(AuthenticatedRequest(identity=identity, payload=body))
    messages_created_total.labels(source="rest", instance="api").inc()
    return saved


@messages_router.get("/{message_id}", response_model=MessageRecord)
def get_message(
    message_id: str,
    identity: Identity = Depends(get_current_identity),
    service: MessageService = Depends(get_message_service)
):
    """Get a single message (participant IDs, not expanded)."""
    return service.get_message(AuthenticatedRequest(identity=identity, payload=message_id))


@messages_router.patch("/{message_id}", response_model=MessageRecord)
def update_message(
    message_id: str,
    body: MessagePatch,
    identity: Identity = Depends(get_current_identity),
    service: MessageService = Depends(get_message_service)
):
    """Mark a message read or edit its content."""
    return service.update_message(AuthenticatedRequest(identity=identity, payload=body), message_id)


@messages_router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    message_id: str,
    identity: Identity = Depends(get_current_identity),
    service: MessageService = Depends(get_message_service)
):
    """Delete a message."""
    service.delete_message(AuthenticatedRequest(identity=identity, payload=message_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Video Endpoints
@videos_router.get("", response_model=List[VideoResponse])
def list_videos(
    identity: Identity = Depends(get_current_identity),
    service: VideoService = Depends(get_video_service)
):
    """List every video, newest first, with uploader and like count."""
    return service.list_videos(AuthenticatedRequest(identity=identity, payload=(None, None)))


@videos_router.get("/search", response_model=List[VideoResponse])
def search_videos(
    category: Optional[str] = Query(None, description="Exact category name"),
    subcategory: Optional[str] = Query(None, description="Exact subcategory name"),
    identity: Identity = Depends(get_current_identity),
    service: VideoService = Depends(get_video_service)
):
    """
    Filter videos by category and/or subcategory.

    Example Request:
        ```
        GET /videos/search?category=Games&subcategory=FIFA%2023
        ```
    """
    return service.list_videos(AuthenticatedRequest(identity=identity, payload=(category, subcategory)))


@videos_router.get("/{video_id}", response_model=VideoResponse)
def get_video(
    video_id: str,
    identity: Identity = Depends(get_current_identity),
    service: VideoService = Depends(get_video_service)
):
    """
    Get a single video.

    Raises:
        BadRequest: 400 if the ID is malformed
        NotFound: 404 if the video does not exist
    """
    return service.get_video(AuthenticatedRequest(identity=identity, payload=video_id))


@videos_router.post("", response_model=VideoResponse, status_code=status.HTTP_201_CREATED)
def create_video(
    body: VideoCreate,
    identity: Identity = Depends(get_current_identity),
    service: VideoService = Depends(get_video_service)
):
    """Publish a video already uploaded to the CDN."""
    return service.create_video(AuthenticatedRequest(identity=identity, payload=body))


@videos_router.patch("/{video_id}", response_model=VideoResponse)
def update_video(
    video_id: str,
    body: VideoPatch,
    identity: Identity = Depends(get_current_identity),
    service: VideoService = Depends(get_video_service)
):
    """
    Like, unlike or edit a video.

    Example Request:
        ```json
        PATCH /videos/5f0c...
        {"action": "like"}
        ```
    """
    return service.update_video(AuthenticatedRequest(identity=identity, payload=body), video_id)


@videos_router.delete("/{video_id}")
def delete_video(
    video_id: str,
    identity: Identity = Depends(get_current_identity),
    service: VideoService = Depends(get_video_service)
):
    """
    Delete a video.

    Raises:
        Forbidden: 400 if the caller is not the uploader
    """
    return service.delete_video(AuthenticatedRequest(identity=identity, payload=video_id))


# WebSocket Endpoint
async def _send_error(websocket: WebSocket, error: str, code: str) -> None:
    await session_registry.send_to_connection(websocket, "error", WSError(error=error, code=code).model_dump())


async def dispatch_frame(websocket: WebSocket, identity: Identity, flow: MessageFlow, text: str) -> None:
    """
    Handle one inbound frame. Errors are reported to this connection only
    and never close it.
    """
    try:
        frame = WSFrame.model_validate(json.loads(text))
    except json.JSONDecodeError:
        await _send_error(websocket, "Invalid JSON format", "INVALID_JSON")
        return
    except ValidationError:
        await _send_error(websocket, "Frames must look like {\"event\": ..., \"data\": ...}", "INVALID_MESSAGE")
        return

    websocket_messages_received_total.labels(event=frame.event, instance="api").inc()

    if frame.event == "private_message":
        result = await flow.handle_private_message(identity, websocket, frame.data)
        if frame.ack is not None:
            await session_registry.send_to_connection(websocket, "ack", {"ack": frame.ack, **result.as_ack()})
        elif not result.ok:
            await _send_error(websocket, result.error, "MESSAGE_FAILED")

    elif frame.event == "pong":
        await session_registry.update_heartbeat(websocket)

    else:
        await _send_error(websocket, f"Unknown event: {frame.event}", "UNKNOWN_EVENT")


@websocket_router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="JWT access token, optionally prefixed with 'Bearer '"),
    gateway: AuthGateway = Depends(get_auth_gateway),
    session_factory: Callable[[], Session] = Depends(get_session_factory)
):
    """
    WebSocket endpoint for realtime direct messages.

    Connection Flow:
        1. Client connects with ws://api/ws?token={jwt} (or an Authorization header)
        2. Server verifies the token; invalid or expired tokens are refused (4001)
        3. Connection joins the room "user_<id>" and receives a "connected" event
        4. Client sends {"event": "private_message", "data": {"to": ..., "content": ...}, "ack": 1}
        5. Recipient connections receive "message"; this connection receives
           "message_sent" and, when an ack id was given, an "ack" event

    Events (Server -> Client):
        - connected: handshake accepted
        - message: new message addressed to this user
        - message_sent: confirmation of a message sent from this connection
        - ack: {"ack": id, "success": bool, "message" | "error": ...}
        - error: {"error": ..., "code": ...}
        - ping: heartbeat check (client should answer {"event": "pong"})

    Close Codes:
        - 4001: Authentication failed
        - 4002: Connection limit reached
    """
    raw_credential = token or websocket.headers.get("authorization")
    client_host = websocket.client.host if websocket.client else None
    try:
        identity = gateway.verify(raw_credential)
    except Unauthorized as e:
        logger.warning(f"WebSocket handshake refused: {e.message}")
        audit_logger.log_handshake_rejected(client_host, e.message)
        websocket_handshake_rejections_total.labels(reason="unauthorized", instance="api").inc()
        await websocket.close(code=4001, reason="Unauthorized")
        return

    connected = await session_registry.connect(websocket, identity)
    if not connected:
        websocket_handshake_rejections_total.labels(reason="connection_limit", instance="api").inc()
        await websocket.close(code=4002, reason="Connection limit reached")
        return

    flow = MessageFlow(session_registry, session_factory)

    try:
        await session_registry.send_to_connection(websocket, "connected", {
            "user_id": identity.id,
            "room": room_for(identity.id)
        })

        while True:
            text = await websocket.receive_text()
            await dispatch_frame(websocket, identity, flow, text)

    except WebSocketDisconnect as e:
        logger.info(f"User {identity.id} disconnected from WebSocket (code={e.code})")
    except Exception as e:
        logger.error(f"WebSocket error for user {identity.id}: {e}")
    finally:
        await session_registry.disconnect(websocket)
