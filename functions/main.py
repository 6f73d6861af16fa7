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

# Cloud functions for the AURA backend - push notifications for new
# notification records.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
from typing import Optional

# Third-party library imports
from firebase_admin import initialize_app
from firebase_functions import logger, options
from firebase_functions.firestore_fn import (
    on_document_created,
    Event,
    DocumentSnapshot,
)

# Local application imports
from aura.firestore_store import FirestoreDocumentStore
from aura.push import FcmPushGateway, PushGateway
from aura.push_dispatch import dispatch_once
from aura.notifications import notification_path
from aura.store import DocumentStore
from shared.firebase_constants import (
    NOTIFICATIONS_COLLECTION,
    USER_NOTIFICATIONS_COLLECTION,
)

initialize_app()


def _handle_created_notification(
    store: DocumentStore,
    gateway: PushGateway,
    user_id: str,
    notification_id: str,
    data: Optional[dict],
) -> bool:
    if not data:
        logger.info("No data associated with the event")
        return False
    path = notification_path(user_id, notification_id)
    sent = dispatch_once(store, gateway, path, data)
    logger.info(f"Push for {path}: {'sent' if sent else 'skipped'}")
    return sent


@on_document_created(
    memory=options.MemoryOption.MB_256,
    document=NOTIFICATIONS_COLLECTION
    + "/{userId}/"
    + USER_NOTIFICATIONS_COLLECTION
    + "/{notificationId}",
)
def send_push_notification(event: Event[Optional[DocumentSnapshot]]) -> None:
    """
    Sends one push notification to the recipient of a newly created
    notification record.
    """
    snapshot = event.data
    data = snapshot.to_dict() if snapshot is not None else None
    _handle_created_notification(
        FirestoreDocumentStore(),
        FcmPushGateway(),
        event.params["userId"],
        event.params["notificationId"],
        data,
    )
