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

import re
from typing import Any, Literal

# Stored field names that do not follow plain camelCase.
_SNAKE_TO_CAMEL_OVERRIDES = {
    "photo_url": "photoURL",
}
_CAMEL_TO_SNAKE_OVERRIDES = {v: k for k, v in _SNAKE_TO_CAMEL_OVERRIDES.items()}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def camel_to_snake(name: str) -> str:
    if name in _CAMEL_TO_SNAKE_OVERRIDES:
        return _CAMEL_TO_SNAKE_OVERRIDES[name]
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def snake_to_camel(name: str) -> str:
    if name in _SNAKE_TO_CAMEL_OVERRIDES:
        return _SNAKE_TO_CAMEL_OVERRIDES[name]
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def convert_keys(
    obj: Any, direction: Literal["camel_to_snake", "snake_to_camel"]
) -> Any:
    """
    Recursively converts dictionary keys between camelCase and snake_case.

    Lists are walked element by element; any other value (including
    datetimes and timestamp sentinels) is returned unchanged.
    """
    if direction == "camel_to_snake":
        convert = camel_to_snake
    elif direction == "snake_to_camel":
        convert = snake_to_camel
    else:
        raise ValueError(f"Unknown direction: {direction}")

    if isinstance(obj, dict):
        return {
            (convert(k) if isinstance(k, str) else k): convert_keys(v, direction)
            for k, v in obj.items()
        }
    if isinstance(obj, list):
        return [convert_keys(item, direction) for item in obj]
    return obj
