"""Services package initialization."""
from services.message_service import MessageService
from services.message_flow import MessageFlow, FlowResult
from services.google_client import GoogleIdentityClient, GoogleProfile
from services.video_service import VideoService

__all__ = ["MessageService", "MessageFlow", "FlowResult", "GoogleIdentityClient", "GoogleProfile", "VideoService"]
