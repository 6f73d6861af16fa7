# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, List, Optional, Type, TypeVar

from dacite import Config, from_dict

from shared.json_utils import convert_keys

T = TypeVar("T")


class NotificationType(StrEnum):
    LIKE = "like"
    COMMENT = "comment"
    FOLLOW = "follow"
    MESSAGE = "message"


@dataclass
class UserProfile:
    uid: str
    username: str
    email: Optional[str] = None
    display_name: str = ""
    bio: str = ""
    photo_url: str = ""
    followers_count: int = 0
    following_count: int = 0
    created_at: Any = None  # datetime once the write has committed
    is_private: bool = False


@dataclass
class Post:
    id: str
    author_id: str
    caption: str
    created_at: Any = None
    image_url: Optional[str] = None
    like_count: int = 0
    comment_count: int = 0
    likes_hidden: bool = False
    commenting_disabled: bool = False
    author: Optional[UserProfile] = None


@dataclass
class Comment:
    id: str
    author_id: str
    post_id: str
    text: str
    created_at: Any = None
    author: Optional[UserProfile] = None
    post: Optional[Post] = None


@dataclass
class Notification:
    """A recipient-scoped event record. Only `read` is ever mutated."""

    id: str
    recipient_id: str
    sender_id: str
    type: str
    read: bool = False
    created_at: Any = None
    post_id: Optional[str] = None
    chat_id: Optional[str] = None
    sender: Optional[UserProfile] = None


@dataclass
class Story:
    id: str
    author_id: str
    created_at: Any = None
    expires_at: Any = None
    image_url: Optional[str] = None
    text_content: Optional[str] = None
    author: Optional[UserProfile] = None


@dataclass
class Chat:
    id: str
    members: List[str] = field(default_factory=list)
    created_at: Any = None
    updated_at: Any = None
    last_message: Optional[str] = None
    last_message_at: Any = None
    recipient: Optional[UserProfile] = None


@dataclass
class Message:
    id: str
    chat_id: str
    sender_id: str
    text: str
    created_at: Any = None


def from_document(data_class: Type[T], doc_id: str, data: dict) -> T:
    """Builds a record dataclass from a stored (camelCase) document."""
    payload = convert_keys(data, "camel_to_snake")
    payload["id"] = doc_id
    return from_dict(
        data_class=data_class,
        data=payload,
        config=Config(check_types=False),
    )
