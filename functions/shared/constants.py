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

APP_NAME = "AURA"

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
PASSWORD_MIN_LENGTH = 6
DISPLAY_NAME_MAX_LENGTH = 50
BIO_MAX_LENGTH = 150
CAPTION_MAX_LENGTH = 2200
SEARCH_MIN_LENGTH = 2
SEARCH_RESULT_LIMIT = 10
SUGGESTION_LIMIT = 10
NOTIFICATION_PAGE_SIZE = 30

# Upload size limits, in megabytes.
MAX_UPLOAD_SIZE_MB = 5
MAX_PROFILE_PHOTO_SIZE_MB = 2

STORY_LIFETIME_HOURS = 24

DEFAULT_PHOTO_URL_TEMPLATE = "https://picsum.photos/seed/{uid}/200"
