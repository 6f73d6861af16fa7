"""
Push notification gateway: Firebase Cloud Messaging and an in-memory double.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol

from firebase_admin import messaging

PUSH_ICON = "/favicon.ico"
CLICK_ACTION_LINK = "/"


class PushGateway(Protocol):
    def send(
        self, token: str, title: str, body: str, data: Optional[dict] = None
    ) -> str:
        """Delivers one notification and returns the gateway's message id."""
        ...


@dataclass
class SentPush:
    token: str
    title: str
    body: str
    data: dict


@dataclass
class InMemoryPushGateway:
    """Records pushes instead of sending them. Set `fail_with` to simulate errors."""

    sent: list[SentPush] = field(default_factory=list)
    fail_with: Optional[Exception] = None

    def send(
        self, token: str, title: str, body: str, data: Optional[dict] = None
    ) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(SentPush(token=token, title=title, body=body, data=dict(data or {})))
        return f"in-memory/{len(self.sent)}"


class FcmPushGateway:
    """Sends through `firebase_admin.messaging`; requires an initialized app."""

    def send(
        self, token: str, title: str, body: str, data: Optional[dict] = None
    ) -> str:
        message = messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data={k: str(v) for k, v in (data or {}).items()},
            token=token,
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(badge=1, sound="default"),
                ),
            ),
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(sound="default"),
            ),
            webpush=messaging.WebpushConfig(
                notification=messaging.WebpushNotification(icon=PUSH_ICON),
                fcm_options=messaging.WebpushFCMOptions(link=CLICK_ACTION_LINK),
            ),
        )
        return messaging.send(message)
