"""
Flat-File Stores

The dashboard and the connector share a data directory:

- settings.json            club-level admission settings
- bot_configuration.json   bot name, tone and welcome template
- admins.txt               comma-separated admin usernames
- spam.txt                 one spam word per line
- banned_patterns.txt      comma-separated patterns
- exemptions.txt           comma-separated usernames/ids exempt from moderation
- loyal_members.txt        comma-separated usernames/ids allowed to request a mic
- club_members.json        member list as a JSON array of {UID, NM, LVL}

All methods are synchronous and never raise on I/O errors: failures are
logged and reported as False/None/defaults. Callers on the event loop run
them in the default executor.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .events import Member
from .moderation import ModerationPolicy

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"
BOT_CONFIG_FILE = "bot_configuration.json"
ADMINS_FILE = "admins.txt"
SPAM_FILE = "spam.txt"
BANNED_PATTERNS_FILE = "banned_patterns.txt"
EXEMPTIONS_FILE = "exemptions.txt"
LOYAL_MEMBERS_FILE = "loyal_members.txt"
MEMBERS_FILE = "club_members.json"

DEFAULT_WELCOME = "✨️˚.⭒Wᴇʟᴄᴏᴍᴇ {name}˚✨️"

# list name -> (file, line-delimited?)
LIST_FILES = {
    "admins": (ADMINS_FILE, False),
    "spam-words": (SPAM_FILE, True),
    "banned-patterns": (BANNED_PATTERNS_FILE, False),
    "exemptions": (EXEMPTIONS_FILE, False),
    "loyal-members": (LOYAL_MEMBERS_FILE, False),
}


class ClubSettings(BaseModel):
    """Admission settings edited from the dashboard."""
    model_config = ConfigDict(populate_by_name=True)

    allow_avatars: bool = Field(default=True, alias="allowAvatars")
    ban_level: int = Field(default=10, alias="banLevel")
    allow_guest_ids: bool = Field(default=False, alias="allowGuestIds")
    violation_actions: dict[str, str] = Field(default_factory=dict, alias="violationActions")


class BotProfile(BaseModel):
    """Bot persona edited from the dashboard."""
    model_config = ConfigDict(populate_by_name=True)

    bot_name: str = Field(default="Elijah", alias="botName")
    bot_tone: str = Field(default="upbeat", alias="botTone")
    welcome_message: str = Field(default=DEFAULT_WELCOME, alias="welcomeMessage")

    def format_welcome(self, name: str) -> str:
        return self.welcome_message.replace("{name}", name)


def parse_list(text: str, line_delimited: bool) -> list[str]:
    if line_delimited:
        items = text.split("\n")
    else:
        items = text.split(",")
    return [item.strip() for item in items if item.strip()]


class ConfigStore:
    """Reads the dashboard-owned configuration files."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def _path(self, name: str) -> Path:
        return self.data_dir / name

    def _write_defaults(self, path: Path, data: dict) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            data = {**data, "createdAt": datetime.now(timezone.utc).isoformat()}
            path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write default {path.name}: {e}")

    def _load_json(self, name: str) -> Optional[dict]:
        path = self._path(name)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading {name}: {e}")
            return None
        if not isinstance(data, dict):
            logger.error(f"Error loading {name}: not a JSON object")
            return None
        return data

    def load_settings(self) -> ClubSettings:
        data = self._load_json(SETTINGS_FILE)
        if data is None:
            settings = ClubSettings()
            if not self._path(SETTINGS_FILE).exists():
                self._write_defaults(self._path(SETTINGS_FILE), settings.model_dump(by_alias=True))
            return settings
        try:
            return ClubSettings.model_validate(data)
        except ValidationError as e:
            logger.error(f"Invalid settings, using defaults: {e}")
            return ClubSettings()

    def load_bot_profile(self) -> BotProfile:
        data = self._load_json(BOT_CONFIG_FILE)
        if data is None:
            profile = BotProfile()
            if not self._path(BOT_CONFIG_FILE).exists():
                self._write_defaults(self._path(BOT_CONFIG_FILE), profile.model_dump(by_alias=True))
            return profile
        try:
            return BotProfile.model_validate(data)
        except ValidationError as e:
            logger.error(f"Invalid bot configuration, using defaults: {e}")
            return BotProfile()

    def load_list(self, name: str) -> list[str]:
        """Load one of the LIST_FILES by name. Missing files are empty lists."""
        filename, line_delimited = LIST_FILES[name]
        try:
            text = self._path(filename).read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning(f"Config file not found: {name}")
            return []
        except OSError as e:
            logger.error(f"Error loading config {name}: {e}")
            return []
        return parse_list(text, line_delimited)

    def append_spam_word(self, word: str) -> bool:
        """Append a word to spam.txt. The only write the connector makes."""
        word = word.strip()
        if not word:
            return False
        path = self._path(SPAM_FILE)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            prefix = ""
            if path.exists():
                existing = path.read_text(encoding="utf-8")
                if existing and not existing.endswith("\n"):
                    prefix = "\n"
            with path.open("a", encoding="utf-8") as f:
                f.write(f"{prefix}{word}\n")
            logger.info(f"Word \"{word}\" added to spam list")
            return True
        except OSError as e:
            logger.error(f"Error adding spam word: {e}")
            return False

    def build_policy(self, settings: Optional[ClubSettings] = None) -> ModerationPolicy:
        """Build a fresh moderation snapshot from the files on disk."""
        settings = settings or self.load_settings()
        return ModerationPolicy(
            spam_words=tuple(self.load_list("spam-words")),
            banned_patterns=tuple(self.load_list("banned-patterns")),
            min_level=settings.ban_level,
            allow_avatars=settings.allow_avatars,
            allow_guest_ids=settings.allow_guest_ids,
            exemptions=frozenset(self.load_list("exemptions")),
            violation_actions=settings.violation_actions,
        )


class MemberStore:
    """The member list file, overwritten on every roster snapshot."""

    def __init__(self, data_dir: Path):
        self.path = Path(data_dir) / MEMBERS_FILE

    def load(self) -> list[Member]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading club members: {e}")
            return []
        if not isinstance(data, list):
            logger.error("Error loading club members: not a JSON array")
            return []

        members = []
        for entry in data:
            try:
                members.append(Member.model_validate(entry))
            except ValidationError:
                logger.warning(f"Skipping malformed member entry: {entry!r}")
        return members

    def save(self, members: list[Member]) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp = self.path.with_suffix(".tmp")
            temp.write_text(
                json.dumps([m.to_store() for m in members], indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            temp.replace(self.path)
            logger.info(f"Club members saved ({len(members)})")
            return True
        except OSError as e:
            logger.error(f"Error saving club members: {e}")
            return False

    def remove(self, uid: str) -> Optional[Member]:
        """Remove one member by id. Returns the removed member, or None."""
        members = self.load()
        for i, member in enumerate(members):
            if member.uid == uid:
                removed = members.pop(i)
                if not self.save(members):
                    return None
                return removed
        return None

    def bulk_remove(self, level: int, count: int) -> list[str]:
        """Remove up to count members at exactly level. Returns removed ids."""
        members = self.load()
        at_level = [m.uid for m in members if m.level == level][:max(count, 0)]
        if not at_level:
            return []
        doomed = set(at_level)
        if not self.save([m for m in members if m.uid not in doomed]):
            return []
        return at_level
