"""
HTTP and WebSocket routes for the AURA API.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import Any, Callable, Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Header,
    Query,
    UploadFile,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.encoders import jsonable_encoder
from starlette.concurrency import run_in_threadpool

from aura import feed, follows, messages, notifications, posts, profiles, stories
from aura.auth import AuthClient
from aura.dependencies import get_auth_client, get_storage_client, get_store
from aura.errors import AuthenticationError, AuraError
from aura.schemas import (
    ChangePasswordRequest,
    ChatResponse,
    CommentRequest,
    CommentResponse,
    DeviceTokenRequest,
    FollowStateResponse,
    LikeRequest,
    LikeStateResponse,
    LoginRequest,
    MessageRequest,
    MessageResponse,
    NotificationResponse,
    OpenChatRequest,
    PostResponse,
    PrivacyRequest,
    ProfileResponse,
    SessionResponse,
    SignupRequest,
    StatusResponse,
    StoryResponse,
    UnreadCountResponse,
    UpdateProfileRequest,
)
from aura.storage import StorageClient, Upload
from aura.store import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter()


def get_current_uid(
    authorization: Optional[str] = Header(None),
    auth: AuthClient = Depends(get_auth_client),
) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Missing bearer token.")
    return auth.verify_token(token.strip())


def _read_upload(file: Optional[UploadFile]) -> Optional[Upload]:
    if file is None or not file.filename:
        return None
    return Upload(data=file.file.read(), content_type=file.content_type or "")


# Auth


@router.post("/auth/signup", response_model=ProfileResponse, status_code=201)
def signup(
    payload: SignupRequest,
    store: DocumentStore = Depends(get_store),
    auth: AuthClient = Depends(get_auth_client),
):
    return profiles.sign_up(store, auth, payload.email, payload.password, payload.username)


@router.post("/auth/login", response_model=SessionResponse)
def login(payload: LoginRequest, auth: AuthClient = Depends(get_auth_client)):
    return profiles.sign_in(auth, payload.email, payload.password)


@router.post("/auth/password", response_model=StatusResponse)
def change_password(
    payload: ChangePasswordRequest,
    uid: str = Depends(get_current_uid),
    auth: AuthClient = Depends(get_auth_client),
):
    profiles.change_password(auth, uid, payload.current_password, payload.new_password)
    return StatusResponse()


# Profiles


@router.get("/profiles/me", response_model=ProfileResponse)
def my_profile(uid: str = Depends(get_current_uid), store: DocumentStore = Depends(get_store)):
    return profiles.get_profile(store, uid)


@router.patch("/profiles/me", response_model=ProfileResponse)
def edit_profile(
    payload: UpdateProfileRequest,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return profiles.update_profile(store, uid, payload.display_name, payload.bio)


@router.post("/profiles/me/avatar", response_model=ProfileResponse)
def upload_avatar(
    display_name: str = Form(...),
    bio: Optional[str] = Form(None),
    photo: UploadFile = File(...),
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
    storage: StorageClient = Depends(get_storage_client),
):
    return profiles.update_profile(
        store, uid, display_name, bio, photo=_read_upload(photo), storage=storage
    )


@router.put("/profiles/me/privacy", response_model=ProfileResponse)
def set_privacy(
    payload: PrivacyRequest,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return profiles.set_private(store, uid, payload.is_private)


@router.put("/profiles/me/device-token", response_model=StatusResponse)
def register_device_token(
    payload: DeviceTokenRequest,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    profiles.register_device_token(store, uid, payload.token)
    return StatusResponse()


@router.get("/profiles/search", response_model=list[ProfileResponse])
def search_profiles(
    q: str = Query(""),
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return profiles.search_users(store, q)


@router.get("/profiles/suggestions", response_model=list[ProfileResponse])
def suggestions(uid: str = Depends(get_current_uid), store: DocumentStore = Depends(get_store)):
    return profiles.suggested_users(store, uid)


@router.get("/profiles/{username}", response_model=ProfileResponse)
def profile_by_username(
    username: str,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return profiles.get_profile_by_username(store, username)


@router.get("/profiles/{username}/followers", response_model=list[ProfileResponse])
def followers(
    username: str,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    profile = profiles.get_profile_by_username(store, username)
    return profiles.list_followers(store, profile.uid)


@router.get("/profiles/{username}/following", response_model=list[ProfileResponse])
def following(
    username: str,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    profile = profiles.get_profile_by_username(store, username)
    return profiles.list_following(store, profile.uid)


# Follows


@router.get("/users/{user_id}/follow", response_model=FollowStateResponse)
def follow_status(
    user_id: str,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return FollowStateResponse(user_id=user_id, following=follows.is_following(store, uid, user_id))


@router.put("/users/{user_id}/follow", response_model=FollowStateResponse)
def follow_user(
    user_id: str,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return FollowStateResponse(user_id=user_id, following=follows.follow(store, uid, user_id))


@router.delete("/users/{user_id}/follow", response_model=FollowStateResponse)
def unfollow_user(
    user_id: str,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return FollowStateResponse(user_id=user_id, following=follows.unfollow(store, uid, user_id))


@router.post("/users/{user_id}/follow/toggle", response_model=FollowStateResponse)
def toggle_follow(
    user_id: str,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return FollowStateResponse(
        user_id=user_id, following=follows.toggle_follow(store, uid, user_id)
    )


# Posts


@router.post("/posts", response_model=PostResponse, status_code=201)
def create_post(
    caption: str = Form(...),
    image: Optional[UploadFile] = File(None),
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
    storage: StorageClient = Depends(get_storage_client),
):
    return posts.create_post(store, uid, caption, image=_read_upload(image), storage=storage)


@router.get("/posts/{post_id}", response_model=PostResponse)
def get_post(
    post_id: str,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return posts.get_post(store, post_id)


@router.get("/users/{user_id}/posts", response_model=list[PostResponse])
def user_posts(
    user_id: str,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return posts.list_user_posts(store, user_id)


@router.put("/posts/{post_id}/like", response_model=LikeStateResponse)
def set_like(
    post_id: str,
    payload: LikeRequest,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return LikeStateResponse(post_id=post_id, liked=posts.set_like(store, uid, post_id, payload.liked))


@router.post("/posts/{post_id}/like/toggle", response_model=LikeStateResponse)
def toggle_like(
    post_id: str,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return LikeStateResponse(post_id=post_id, liked=posts.toggle_like(store, uid, post_id))


@router.get("/posts/{post_id}/comments", response_model=list[CommentResponse])
def list_comments(
    post_id: str,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return posts.list_comments(store, post_id)


@router.post("/posts/{post_id}/comments", response_model=CommentResponse, status_code=201)
def add_comment(
    post_id: str,
    payload: CommentRequest,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return posts.add_comment(store, uid, post_id, payload.text)


@router.get("/comments/me", response_model=list[CommentResponse])
def my_comments(uid: str = Depends(get_current_uid), store: DocumentStore = Depends(get_store)):
    return posts.list_user_comments(store, uid)


@router.get("/feed", response_model=list[PostResponse])
def home_feed(uid: str = Depends(get_current_uid), store: DocumentStore = Depends(get_store)):
    return feed.build_feed(store, uid)


# Stories


@router.post("/stories", response_model=StoryResponse, status_code=201)
def create_story(
    text_content: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
    storage: StorageClient = Depends(get_storage_client),
):
    return stories.create_story(
        store, uid, text_content=text_content, image=_read_upload(image), storage=storage
    )


@router.get("/stories", response_model=list[StoryResponse])
def active_stories(uid: str = Depends(get_current_uid), store: DocumentStore = Depends(get_store)):
    return stories.list_active_stories(store, uid)


# Chats


@router.post("/chats", response_model=ChatResponse)
def open_chat(
    payload: OpenChatRequest,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return messages.get_or_create_chat(store, uid, payload.user_id)


@router.get("/chats", response_model=list[ChatResponse])
def list_chats(uid: str = Depends(get_current_uid), store: DocumentStore = Depends(get_store)):
    return messages.list_chats(store, uid)


@router.get("/chats/{chat_id}/messages", response_model=list[MessageResponse])
def list_messages(
    chat_id: str,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return messages.list_messages(store, uid, chat_id)


@router.post("/chats/{chat_id}/messages", response_model=MessageResponse, status_code=201)
def send_message(
    chat_id: str,
    payload: MessageRequest,
    uid: str = Depends(get_current_uid),
    store: DocumentStore = Depends(get_store),
):
    return messages.send_message(store, uid, chat_id, payload.text)


# Notifications


@router.get("/notifications", response_model=list[NotificationResponse])
def list_notifications(
    uid: str = Depends(get_current_uid), store: DocumentStore = Depends(get_store)
):
    return notifications.list_notifications(store, uid)


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
def unread_count(uid: str = Depends(get_current_uid), store: DocumentStore = Depends(get_store)):
    return UnreadCountResponse(count=notifications.unread_count(store, uid))


# Live streams


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


async def _stream(websocket: WebSocket, subscribe: Callable[[Callable[[Any], None]], Any]) -> None:
    """
    Forwards every update delivered to the subscription callback as a JSON
    message until the client disconnects, then unsubscribes.
    """
    loop = asyncio.get_running_loop()
    updates: asyncio.Queue = asyncio.Queue()

    def _push(payload: Any) -> None:
        loop.call_soon_threadsafe(updates.put_nowait, jsonable_encoder(payload))

    subscription = await run_in_threadpool(subscribe, _push)
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        while True:
            next_update = asyncio.create_task(updates.get())
            done, _ = await asyncio.wait(
                {next_update, disconnected}, return_when=asyncio.FIRST_COMPLETED
            )
            if disconnected in done:
                next_update.cancel()
                break
            await websocket.send_json(next_update.result())
    finally:
        subscription.unsubscribe()
        disconnected.cancel()


async def _accept(websocket: WebSocket, token: str) -> Optional[str]:
    try:
        uid = await run_in_threadpool(get_auth_client().verify_token, token)
    except AuthenticationError:
        await websocket.close(code=1008)
        return None
    await websocket.accept()
    return uid


@router.websocket("/ws/chats/{chat_id}")
async def chat_stream(websocket: WebSocket, chat_id: str, token: str = ""):
    uid = await _accept(websocket, token)
    if uid is None:
        return
    store = get_store()

    def _subscribe(push):
        return messages.watch_messages(
            store, uid, chat_id, lambda items: push([MessageResponse.model_validate(asdict(m)) for m in items])
        )

    try:
        await _stream(websocket, _subscribe)
    except AuraError as exc:
        logger.warning("Chat stream for %s refused: %s", chat_id, exc)
        await websocket.close(code=1008)


@router.websocket("/ws/notifications/unread")
async def unread_stream(websocket: WebSocket, token: str = ""):
    uid = await _accept(websocket, token)
    if uid is None:
        return
    store = get_store()

    def _subscribe(push):
        return notifications.watch_unread_count(
            store, uid, lambda count: push(UnreadCountResponse(count=count))
        )

    await _stream(websocket, _subscribe)
