"""
Pydantic schemas for request/response validation.
Defines all data transfer objects (DTOs) for the API.
"""
from datetime import datetime
from typing import Any, List, Literal, Optional, Union
from pydantic import BaseModel, Field, ConfigDict


# User Schemas
class UserPublic(BaseModel):
    """
    Public projection of a user, used when expanding message participants.

    Example:
        ```json
        {"id": "5f0c...", "name": "Ana Silva", "username": "anasilva", "avatar": "https://..."}
        ```
    """
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="User ID")
    name: str = Field(..., description="Display name")
    username: str = Field(..., description="Unique handle")
    avatar: Optional[str] = Field(None, description="Avatar URL")


class UserProfile(UserPublic):
    """Full profile of a user (returned to the user themselves)."""
    email: str = Field(..., description="Email address")
    created_at: datetime = Field(..., description="Account creation timestamp")


class ChangeUsernameRequest(BaseModel):
    """Request body for PATCH /users/{id}/change-username."""
    new_username: str = Field(..., min_length=1, max_length=100, description="Requested username")


# Authentication Schemas
class GoogleLoginRequest(BaseModel):
    """
    Google sign-in request.

    Attributes:
        token: Google ID token obtained by the client-side sign-in flow
    """
    token: str = Field(..., min_length=1, description="Google ID token")


class TokenResponse(BaseModel):
    """
    Access token response.

    Example:
        ```json
        {
            "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
            "token_type": "Bearer",
            "expires_in": 10800,
            "user": {"id": "5f0c...", "username": "anasilva", ...}
        }
        ```
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field("Bearer", description="Token type")
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    user: UserProfile


# Message Schemas
class MessageCreate(BaseModel):
    """
    Request schema for sending a direct message.

    Both fields are optional at the schema level so that missing values are
    reported by the message service as a BadRequest, the same way for REST
    and WebSocket callers.
    """
    to: Optional[str] = Field(None, description="Recipient user ID")
    content: Optional[str] = Field(None, description="Message text")


class MessagePatch(BaseModel):
    """
    Mutable message fields.

    Sender, recipient, conversation key and creation time are fixed at
    creation, so any other field is rejected.
    """
    model_config = ConfigDict(extra="forbid")

    read: Optional[bool] = Field(None, description="Read flag")
    content: Optional[str] = Field(None, min_length=1, description="Edited message text")


class MessageRecord(BaseModel):
    """Raw message record with participant IDs."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Message ID")
    conversation_key: str = Field(..., description="Conversation key of the participant pair")
    from_: str = Field(..., alias="from", description="Sender user ID")
    to: str = Field(..., description="Recipient user ID")
    content: str = Field(..., description="Message text")
    read: bool = Field(..., description="Read flag")
    created_at: datetime = Field(..., description="Creation timestamp")

    @classmethod
    def from_message(cls, message) -> "MessageRecord":
        return cls(
            id=message.id,
            conversation_key=message.conversation_key,
            from_=message.sender_id,
            to=message.recipient_id,
            content=message.content,
            read=message.read,
            created_at=message.created_at
        )


class MessageDetail(BaseModel):
    """Message with sender and recipient expanded to their public projection."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Message ID")
    conversation_key: str = Field(..., description="Conversation key of the participant pair")
    from_: UserPublic = Field(..., alias="from", description="Sender")
    to: UserPublic = Field(..., description="Recipient")
    content: str = Field(..., description="Message text")
    read: bool = Field(..., description="Read flag")
    created_at: datetime = Field(..., description="Creation timestamp")

    @classmethod
    def from_message(cls, message) -> "MessageDetail":
        return cls(
            id=message.id,
            conversation_key=message.conversation_key,
            from_=UserPublic.model_validate(message.sender),
            to=UserPublic.model_validate(message.recipient),
            content=message.content,
            read=message.read,
            created_at=message.created_at
        )


# Category Schemas
class CategoryCreate(BaseModel):
    """Request schema for creating a video category."""
    name: str = Field(..., min_length=1, max_length=100, description="Category name")
    subcategories: List[str] = Field(default_factory=list, description="Subcategory names")


class CategoryResponse(BaseModel):
    """Video category."""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Category ID")
    name: str = Field(..., description="Category name")
    subcategories: List[str] = Field(..., description="Subcategory names")


# Video Schemas
class VideoCreate(BaseModel):
    """
    Request schema for publishing a video.

    The file is uploaded to the CDN by the client; only its URL is sent here.

    Example:
        ```json
        {"title": "Best goals", "category": "Games", "subcategory": "FIFA 23", "url": "https://cdn.../v.mp4"}
        ```
    """
    title: str = Field(..., min_length=1, max_length=255, description="Video title")
    description: Optional[str] = Field(None, description="Video description")
    category: str = Field(..., min_length=1, max_length=100, description="Category name")
    subcategory: str = Field(..., min_length=1, max_length=100, description="Subcategory name")
    url: str = Field(..., min_length=1, max_length=1024, description="CDN URL of the video")
    thumbnail: Optional[str] = Field(None, max_length=1024, description="CDN URL of the thumbnail")


class VideoPatch(BaseModel):
    """
    Video update: either a like/unlike action or metadata changes.
    """
    model_config = ConfigDict(extra="forbid")

    action: Optional[Literal["like", "unlike"]] = Field(None, description="Like or unlike the video")
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    subcategory: Optional[str] = Field(None, min_length=1, max_length=100)
    thumbnail: Optional[str] = Field(None, max_length=1024)


class VideoResponse(BaseModel):
    """Video with its uploader expanded and the like count."""
    id: str = Field(..., description="Video ID")
    title: str
    description: Optional[str] = None
    category: str
    subcategory: str
    url: str
    thumbnail: Optional[str] = None
    uploader: UserPublic
    likes: int = Field(..., description="Number of users who liked the video")
    liked_by: List[str] = Field(default_factory=list, description="IDs of users who liked the video")
    created_at: datetime

    @classmethod
    def from_video(cls, video) -> "VideoResponse":
        return cls(
            id=video.id,
            title=video.title,
            description=video.description,
            category=video.category,
            subcategory=video.subcategory,
            url=video.url,
            thumbnail=video.thumbnail,
            uploader=UserPublic.model_validate(video.uploader),
            likes=video.likes,
            liked_by=[user.id for user in video.liked_by],
            created_at=video.created_at
        )


# WebSocket Message Schemas
class WSFrame(BaseModel):
    """
    Inbound WebSocket frame.

    Example:
        ```json
        {"event": "private_message", "data": {"to": "5f0c...", "content": "hi"}, "ack": 7}
        ```
    """
    event: str = Field(..., min_length=1, description="Event name")
    data: Any = Field(None, description="Event payload")
    ack: Optional[Union[int, str]] = Field(None, description="Client acknowledgement id")


class WSError(BaseModel):
    """WebSocket event: error reported to the originating connection."""
    error: str = Field(..., description="Error message")
    code: str = Field(..., description="Error code")
