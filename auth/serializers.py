"""
Translation between UserProfile and each boundary's field spelling.

- Local store records use camelCase (landSize, avatar, agriCreds, joinDate),
  matching what existing on-device data already contains.
- Hosted `users` rows use snake_case (land_size, avatar_url, agri_creds,
  join_date).
- The web client reads either spelling, so the unified dict carries both.

Pure functions only; no backend knows about the other's spelling.
"""

import logging
from typing import Any

from pydantic import ValidationError

from auth.exceptions import InvalidProfileError
from auth.types import UserProfile
from utils.timezone import parse_iso

logger = logging.getLogger(__name__)

# canonical name -> local (camelCase) name, for fields whose spelling differs
LOCAL_ALIASES = {
    "land_size": "landSize",
    "avatar_url": "avatar",
    "agri_creds": "agriCreds",
    "join_date": "joinDate",
}

# every accepted input spelling -> canonical name
_INPUT_NAMES = {
    **{name: name for name in UserProfile.model_fields},
    **{alias: name for name, alias in LOCAL_ALIASES.items()},
    "avatarUrl": "avatar_url",
}

IMMUTABLE_FIELDS = frozenset({"id", "email", "join_date"})

REMOTE_ONLY_COLUMNS = ("created_at", "updated_at")


def profile_to_local(profile: UserProfile) -> dict[str, Any]:
    data = profile.model_dump(mode="json")
    return {LOCAL_ALIASES.get(name, name): value for name, value in data.items()}


def profile_from_local(record: dict[str, Any]) -> UserProfile:
    canonical = {_INPUT_NAMES[k]: v for k, v in record.items() if k in _INPUT_NAMES}
    return UserProfile.model_validate(canonical)


def profile_to_remote_row(profile: UserProfile) -> dict[str, Any]:
    return profile.model_dump(mode="json")


def profile_from_remote_row(row: dict[str, Any]) -> UserProfile:
    data = {k: v for k, v in row.items() if k not in REMOTE_ONLY_COLUMNS}
    # Columns are nullable on the hosted side
    data = {k: v for k, v in data.items() if v is not None}
    if isinstance(data.get("join_date"), str):
        data["join_date"] = parse_iso(data["join_date"])
    return UserProfile.model_validate(data)


def to_unified(profile: UserProfile) -> dict[str, Any]:
    """UI-facing dict exposing both the snake_case and camelCase spellings."""
    unified = profile.model_dump(mode="json")
    for name, alias in LOCAL_ALIASES.items():
        unified[alias] = unified[name]
    return unified


def normalize_profile_fields(fields: dict[str, Any] | None) -> dict[str, Any]:
    """
    Map caller-supplied profile fields (either spelling) to canonical names.

    Immutable fields and unknown keys are dropped. None values are dropped
    so partial forms do not blank out existing data.
    """
    normalized: dict[str, Any] = {}
    for key, value in (fields or {}).items():
        name = _INPUT_NAMES.get(key)
        if name is None:
            logger.debug("Ignoring unknown profile field %r", key)
            continue
        if name in IMMUTABLE_FIELDS or value is None:
            continue
        normalized[name] = value
    return normalized


def validated_profile(data: dict[str, Any]) -> UserProfile:
    """Build a UserProfile, reporting bad field values as InvalidProfileError."""
    try:
        return UserProfile.model_validate(data)
    except ValidationError as e:
        names = sorted({str(error["loc"][0]) for error in e.errors() if error["loc"]})
        raise InvalidProfileError(f"Invalid profile fields: {', '.join(names)}") from e
