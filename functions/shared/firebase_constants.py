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

# Top-level collections
USERS_COLLECTION = "users"
USERNAMES_COLLECTION = "usernames"
POSTS_COLLECTION = "posts"
STORIES_COLLECTION = "stories"
CHATS_COLLECTION = "chats"
NOTIFICATIONS_COLLECTION = "notifications"
FCM_TOKENS_COLLECTION = "fcmTokens"
PUSH_DELIVERIES_COLLECTION = "pushDeliveries"

# Subcollections
FOLLOWING_COLLECTION = "following"
FOLLOWERS_COLLECTION = "followers"
LIKES_COLLECTION = "likes"
COMMENTS_COLLECTION = "comments"
MESSAGES_COLLECTION = "messages"
USER_NOTIFICATIONS_COLLECTION = "userNotifications"
