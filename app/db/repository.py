"""
Repository layer for database operations.
Provides high-level methods for common database queries and operations.
"""
import re
from typing import Any, Dict, List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload
from db.models import User, Message, Category, Video, video_likes


class Repository:
    """Repository class for database operations."""

    def __init__(self, db: Session):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    # User operations
    def create_user(
        self,
        google_id: str,
        name: str,
        email: str,
        username: str,
        avatar: Optional[str] = None
    ) -> User:
        """Create a new user."""
        user = User(
            google_id=google_id,
            name=name,
            email=email,
            username=username,
            avatar=avatar
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_google_id(self, google_id: str) -> Optional[User]:
        """Get user by Google account ID."""
        return self.db.query(User).filter(User.google_id == google_id).first()

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Get user by username."""
        return self.db.query(User).filter(User.username == username).first()

    def list_users(self) -> List[User]:
        """Get all users."""
        return self.db.query(User).order_by(User.created_at.asc()).all()

    def search_users(self, query: str, limit: int = 50) -> List[User]:
        """Case-insensitive substring match on name or username."""
        pattern = f"%{query.lower()}%"
        return self.db.query(User).filter(
            or_(User.name.ilike(pattern), User.username.ilike(pattern))
        ).order_by(User.username.asc()).limit(limit).all()

    def generate_unique_username(self, name: str, email: str) -> str:
        """
        Derive a unique username from a display name or email local part.

        Keeps only [a-z0-9]; appends 1, 2, ... while the name is taken.
        """
        base = (name or (email or "").split("@")[0]).lower()
        base = re.sub(r"\s+", "", base)
        base = re.sub(r"[^a-z0-9]", "", base) or "user"

        username = base
        counter = 1
        while self.get_user_by_username(username) is not None:
            username = f"{base}{counter}"
            counter += 1
        return username

    def update_username(self, user: User, username: str) -> User:
        """Change a user's username."""
        user.username = username
        self.db.commit()
        self.db.refresh(user)
        return user

    def delete_user(self, user: User) -> int:
        """
        Delete a user together with every message they sent or received,
        the videos they uploaded and their likes.

        Returns:
            Number of messages deleted
        """
        deleted = self.db.query(Message).filter(
            or_(Message.sender_id == user.id, Message.recipient_id == user.id)
        ).delete(synchronize_session=False)
        for video in list(user.videos):
            self.db.delete(video)
        self.db.flush()
        self.db.execute(video_likes.delete().where(video_likes.c.user_id == user.id))
        self.db.delete(user)
        self.db.commit()
        return deleted

    # Message operations
    def create_message(
        self,
        conversation_key: str,
        sender_id: str,
        recipient_id: str,
        content: str
    ) -> Message:
        """Create a new unread message."""
        message = Message(
            conversation_key=conversation_key,
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=content,
            read=False
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def get_message(self, message_id: str, with_users: bool = False) -> Optional[Message]:
        """Get message by ID, optionally loading sender and recipient."""
        query = self.db.query(Message)
        if with_users:
            query = query.options(joinedload(Message.sender), joinedload(Message.recipient))
        return query.filter(Message.id == message_id).first()

    def get_conversation_messages(self, conversation_key: str) -> List[Message]:
        """Get every message of a conversation, oldest first, with sender and recipient loaded."""
        return self.db.query(Message).options(
            joinedload(Message.sender), joinedload(Message.recipient)
        ).filter(
            Message.conversation_key == conversation_key
        ).order_by(Message.created_at.asc()).all()

    def update_message(self, message: Message, changes: Dict[str, Any]) -> Message:
        """Apply field changes to a message."""
        for field, value in changes.items():
            setattr(message, field, value)
        self.db.commit()
        self.db.refresh(message)
        return message

    def delete_message(self, message: Message) -> None:
        """Delete a message."""
        self.db.delete(message)
        self.db.commit()

    # Category operations
    def list_categories(self) -> List[Category]:
        """Get all categories."""
        return self.db.query(Category).order_by(Category.name.asc()).all()

    def get_category(self, category_id: str) -> Optional[Category]:
        """Get category by ID."""
        return self.db.query(Category).filter(Category.id == category_id).first()

    def get_category_by_name(self, name: str) -> Optional[Category]:
        """Get category by name."""
        return self.db.query(Category).filter(Category.name == name).first()

    def create_category(self, name: str, subcategories: List[str]) -> Category:
        """Create a new category."""
        category = Category(name=name, subcategories=subcategories)
        self.db.add(category)
        self.db.commit()
        self.db.refresh(category)
        return category

    # Video operations
    def create_video(
        self,
        uploader_id: str,
        title: str,
        category: str,
        subcategory: str,
        url: str,
        description: Optional[str] = None,
        thumbnail: Optional[str] = None
    ) -> Video:
        """Create video metadata for an uploaded file."""
        video = Video(
            uploader_id=uploader_id,
            title=title,
            description=description,
            category=category,
            subcategory=subcategory,
            url=url,
            thumbnail=thumbnail
        )
        self.db.add(video)
        self.db.commit()
        self.db.refresh(video)
        return video

    def get_video(self, video_id: str) -> Optional[Video]:
        """Get video by ID with uploader and likes loaded."""
        return self.db.query(Video).options(
            joinedload(Video.uploader), selectinload(Video.liked_by)
        ).filter(Video.id == video_id).first()

    def list_videos(self, category: Optional[str] = None, subcategory: Optional[str] = None) -> List[Video]:
        """Get videos, newest first, optionally filtered by category and subcategory."""
        query = self.db.query(Video).options(joinedload(Video.uploader), selectinload(Video.liked_by))
        if category:
            query = query.filter(Video.category == category)
        if subcategory:
            query = query.filter(Video.subcategory == subcategory)
        return query.order_by(Video.created_at.desc()).all()

    def like_video(self, video: Video, user: User) -> Video:
        """Add a like; liking twice keeps a single like."""
        if user not in video.liked_by:
            video.liked_by.append(user)
            self.db.commit()
            self.db.refresh(video)
        return video

    def unlike_video(self, video: Video, user: User) -> Video:
        """Remove a like if present."""
        if user in video.liked_by:
            video.liked_by.remove(user)
            self.db.commit()
            self.db.refresh(video)
        return video

    def update_video(self, video: Video, changes: Dict[str, Any]) -> Video:
        """Apply metadata changes to a video."""
        for field, value in changes.items():
            setattr(video, field, value)
        self.db.commit()
        self.db.refresh(video)
        return video

    def delete_video(self, video: Video) -> None:
        """Delete a video and its likes."""
        self.db.delete(video)
        self.db.commit()
