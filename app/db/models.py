"""
SQLAlchemy ORM models for the vidchat database.
Defines all entities: User, Message, Category, Video.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Text, Boolean, JSON, Table
)
from sqlalchemy.orm import relationship
from db.database import Base


def generate_id() -> str:
    """Opaque identifier: 32 hex chars, never contains the conversation key separator."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """User entity - accounts created through Google sign-in."""
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=generate_id)
    google_id = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    avatar = Column(String(1024), nullable=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    sent_messages = relationship("Message", back_populates="sender", foreign_keys="Message.sender_id")
    received_messages = relationship("Message", back_populates="recipient", foreign_keys="Message.recipient_id")
    videos = relationship("Video", back_populates="uploader")


class Message(Base):
    """
    Direct message between two users.

    conversation_key, sender_id and recipient_id are fixed at creation;
    only read (and content) may change afterwards.
    """
    __tablename__ = "messages"

    id = Column(String(32), primary_key=True, default=generate_id)
    conversation_key = Column(String(255), nullable=False, index=True)
    sender_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    # Relationships
    sender = relationship("User", back_populates="sent_messages", foreign_keys=[sender_id])
    recipient = relationship("User", back_populates="received_messages", foreign_keys=[recipient_id])


class Category(Base):
    """Video category with its subcategories (e.g. "Games" -> ["FIFA 23", ...])."""
    __tablename__ = "categories"

    id = Column(String(32), primary_key=True, default=generate_id)
    name = Column(String(100), unique=True, nullable=False)
    subcategories = Column(JSON, nullable=False, default=list)


# Association table: which users liked which video
video_likes = Table(
    "video_likes",
    Base.metadata,
    Column("video_id", String(32), ForeignKey("videos.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(32), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
)


class Video(Base):
    """
    Video metadata. The media itself lives on a CDN; only its URL is stored.

    Likes are the rows of video_likes, so a user can like a video at most once.
    """
    __tablename__ = "videos"

    id = Column(String(32), primary_key=True, default=generate_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False, index=True)
    subcategory = Column(String(100), nullable=False, index=True)
    url = Column(String(1024), nullable=False)
    thumbnail = Column(String(1024), nullable=True)
    uploader_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    # Relationships
    uploader = relationship("User", back_populates="videos")
    liked_by = relationship("User", secondary=video_likes)

    @property
    def likes(self) -> int:
        return len(self.liked_by)
