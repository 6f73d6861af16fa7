"""
Pydantic schemas for the AURA HTTP API.

Response models mirror the record dataclasses in `shared.types`; routes
return those dataclasses directly and FastAPI validates them here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class SignupRequest(BaseModel):
    email: str
    password: str
    username: str


class LoginRequest(BaseModel):
    email: str
    password: str


class SessionResponse(BaseModel):
    uid: str
    id_token: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class UpdateProfileRequest(BaseModel):
    display_name: str
    bio: Optional[str] = None


class PrivacyRequest(BaseModel):
    is_private: bool


class DeviceTokenRequest(BaseModel):
    token: str = Field(..., min_length=1)


class LikeRequest(BaseModel):
    liked: bool


class CommentRequest(BaseModel):
    text: str


class OpenChatRequest(BaseModel):
    user_id: str


class MessageRequest(BaseModel):
    text: str


class StatusResponse(BaseModel):
    status: str = "ok"


class FollowStateResponse(BaseModel):
    user_id: str
    following: bool


class LikeStateResponse(BaseModel):
    post_id: str
    liked: bool


class UnreadCountResponse(BaseModel):
    count: int


class ProfileResponse(BaseModel):
    uid: str
    username: str
    display_name: str = ""
    bio: str = ""
    photo_url: str = ""
    followers_count: int = 0
    following_count: int = 0
    is_private: bool = False
    created_at: Optional[datetime] = None


class PostResponse(BaseModel):
    id: str
    author_id: str
    caption: str
    image_url: Optional[str] = None
    like_count: int = 0
    comment_count: int = 0
    likes_hidden: bool = False
    commenting_disabled: bool = False
    created_at: Optional[datetime] = None
    author: Optional[ProfileResponse] = None


class CommentResponse(BaseModel):
    id: str
    author_id: str
    post_id: str
    text: str
    created_at: Optional[datetime] = None
    author: Optional[ProfileResponse] = None
    post: Optional[PostResponse] = None


class NotificationResponse(BaseModel):
    id: str
    recipient_id: str
    sender_id: str
    type: str
    read: bool = False
    post_id: Optional[str] = None
    chat_id: Optional[str] = None
    created_at: Optional[datetime] = None
    sender: Optional[ProfileResponse] = None


class StoryResponse(BaseModel):
    id: str
    author_id: str
    image_url: Optional[str] = None
    text_content: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    author: Optional[ProfileResponse] = None


class ChatResponse(BaseModel):
    id: str
    members: list[str]
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    recipient: Optional[ProfileResponse] = None


class MessageResponse(BaseModel):
    id: str
    chat_id: str
    sender_id: str
    text: str
    created_at: Optional[datetime] = None
