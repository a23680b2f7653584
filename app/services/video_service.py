"""
Video catalogue access: listing, search, likes and uploader-only changes.
"""
import logging
from typing import List, Optional, Tuple

from api.schemas import VideoCreate, VideoPatch, VideoResponse
from core.audit_logger import audit_logger
from core.conversation import is_valid_identifier
from core.errors import BadRequest, Forbidden, NotFound
from core.security import AuthenticatedRequest, Identity, require_identity
from db.models import Video
from db.repository import Repository

logger = logging.getLogger(__name__)


class VideoService:
    """Operations on video metadata on behalf of an authenticated caller."""

    def __init__(self, repository: Repository):
        self.repository = repository

    def list_videos(
        self, request: AuthenticatedRequest[Tuple[Optional[str], Optional[str]]]
    ) -> List[VideoResponse]:
        """
        List videos, newest first.

        Args:
            request: Caller identity with (category, subcategory) filters;
                either may be None
        """
        require_identity(request)
        category, subcategory = request.payload or (None, None)
        videos = self.repository.list_videos(category=category, subcategory=subcategory)
        return [VideoResponse.from_video(video) for video in videos]

    def get_video(self, request: AuthenticatedRequest[str]) -> VideoResponse:
        """
        Fetch a video by ID.

        Raises:
            BadRequest: malformed ID
            NotFound: video does not exist
        """
        require_identity(request)
        return VideoResponse.from_video(self._get_video(request.payload))

    def create_video(self, request: AuthenticatedRequest[VideoCreate]) -> VideoResponse:
        """
        Publish a video uploaded by the caller.

        Raises:
            NotFound: the caller's account no longer exists
        """
        caller = require_identity(request)
        if self.repository.get_user_by_id(caller.id) is None:
            raise NotFound("User not found")

        data = request.payload
        created = self.repository.create_video(
            uploader_id=caller.id,
            title=data.title.strip(),
            description=data.description,
            category=data.category.strip(),
            subcategory=data.subcategory.strip(),
            url=data.url,
            thumbnail=data.thumbnail
        )
        logger.info(f"Video {created.id} published by user {caller.id}")
        return VideoResponse.from_video(self.repository.get_video(created.id))

    def update_video(self, request: AuthenticatedRequest[VideoPatch], video_id: str) -> VideoResponse:
        """
        Like, unlike or edit a video.

        Any user may like or unlike (idempotent); only the uploader may edit
        metadata. An action and metadata changes cannot be combined.

        Raises:
            BadRequest: empty patch, or action combined with changes
            Forbidden: metadata change by someone other than the uploader
        """
        caller = require_identity(request)
        video = self._get_video(video_id)
        changes = request.payload.model_dump(exclude_unset=True, exclude_none=True)
        action = changes.pop("action", None)

        if action and changes:
            raise BadRequest("Send either an action or field changes, not both")

        if action:
            user = self.repository.get_user_by_id(caller.id)
            if user is None:
                raise NotFound("User not found")
            if action == "like":
                video = self.repository.like_video(video, user)
            else:
                video = self.repository.unlike_video(video, user)
            logger.info(f"User {caller.id} {action}d video {video.id}")
            return VideoResponse.from_video(video)

        if not changes:
            raise BadRequest("Nothing to update")
        self._require_uploader(caller, video, "update")
        video = self.repository.update_video(video, changes)
        logger.info(f"Video {video.id} updated: {sorted(changes)}")
        return VideoResponse.from_video(video)

    def delete_video(self, request: AuthenticatedRequest[str]) -> dict:
        """
        Delete a video. Only its uploader may do so.

        Raises:
            Forbidden: caller is not the uploader
        """
        caller = require_identity(request)
        video = self._get_video(request.payload)
        self._require_uploader(caller, video, "delete")
        self.repository.delete_video(video)
        logger.info(f"Video {request.payload} deleted by user {caller.id}")
        return {"message": "Video deleted", "id": request.payload}

    def _get_video(self, video_id: Optional[str]) -> Video:
        if not is_valid_identifier(video_id):
            raise BadRequest("Invalid video ID")
        video = self.repository.get_video(video_id)
        if video is None:
            raise NotFound("Video not found")
        return video

    @staticmethod
    def _require_uploader(caller: Identity, video: Video, action: str) -> None:
        if video.uploader_id != caller.id:
            audit_logger.log_authorization_denied(caller.id, f"video:{video.id}", action)
            raise Forbidden("Only the uploader can change this video")
