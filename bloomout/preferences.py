from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from loguru import logger

from .errors import PersistenceReadError
from .storage import (
    AVATAR_KEY,
    FIRST_LAUNCH_KEY,
    MOOD_KEY,
    PROFILE_KEY,
    THEME_KEY,
    KeyValueStore,
    dump_json,
    load_json,
)


THEMES: Dict[str, str] = {
    "nebula": "Nebula",
    "forest": "Serene Forest",
    "sunset": "Sunset Glow",
    "ocean": "Deep Ocean",
}
DEFAULT_THEME = "nebula"

MOODS = ("default", "calm")
DEFAULT_MOOD = "default"

USER_AVATARS: Dict[str, str] = {
    "cat": "🐱",
    "dog": "🐶",
    "fox": "🦊",
    "bear": "🐻",
    "panda": "🐼",
    "robot": "🤖",
    "star": "🌟",
    "alien": "👽",
}
DEFAULT_AVATAR = "star"


@dataclass
class UserProfile:
    username: str = ""
    age: str = ""
    gender: str = "prefer_not_to_say"
    status: str = ""
    hobby: str = ""
    purpose: str = ""

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "UserProfile":
        known = {f.name for f in fields(cls)}
        values = {k: "" if v is None else str(v) for k, v in raw.items() if k in known}
        return cls(**values)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class Preferences:
    """Small persisted settings: profile, avatar, theme, mood and first launch."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    def profile(self) -> Optional[UserProfile]:
        try:
            raw = load_json(self.kv, PROFILE_KEY)
        except PersistenceReadError as e:
            logger.warning(f"profile_unreadable | {e}")
            return None
        if not isinstance(raw, dict):
            return None
        return UserProfile.from_dict(raw)

    def save_profile(self, profile: UserProfile) -> None:
        dump_json(self.kv, PROFILE_KEY, profile.to_dict())

    def theme(self) -> str:
        saved = self.kv.get(THEME_KEY)
        return saved if saved in THEMES else DEFAULT_THEME

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValueError(f"unknown theme: {theme}")
        self.kv.set(THEME_KEY, theme)

    def mood(self) -> str:
        saved = self.kv.get(MOOD_KEY)
        return saved if saved in MOODS else DEFAULT_MOOD

    def set_mood(self, mood: str) -> None:
        if mood not in MOODS:
            raise ValueError(f"unknown mood: {mood}")
        self.kv.set(MOOD_KEY, mood)

    def avatar(self) -> str:
        saved = self.kv.get(AVATAR_KEY)
        return saved if saved in USER_AVATARS else DEFAULT_AVATAR

    def set_avatar(self, avatar_id: str) -> None:
        if avatar_id not in USER_AVATARS:
            raise ValueError(f"unknown avatar: {avatar_id}")
        self.kv.set(AVATAR_KEY, avatar_id)

    def is_first_launch(self) -> bool:
        return not self.kv.get(FIRST_LAUNCH_KEY)

    def complete_onboarding(self, profile: UserProfile) -> None:
        if not profile.username.strip():
            profile.username = "friend"
        self.save_profile(profile)
        self.kv.set(FIRST_LAUNCH_KEY, "true")
        logger.info(f"onboarding_complete | username={profile.username}")
