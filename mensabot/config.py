"""
Bot configuration.

Loaded from a TOML file with three tables:

    [general]
    token = "123:abc"          # or $MENSABOT_TOKEN
    tomorrow = "20:00:00"      # switch to tomorrow's menu from this time on
    retries = 3                # attempts per API call, 0 = unlimited
    retrywait = 30             # seconds between attempts, 0 = retry at once
    mensas = ["Alte Mensa"]    # shown by /mensa without an argument
    patterns = ["(?i)hunger"]  # messages matching these get the menu too

    [allow]                    # [deny] takes the same keys
    chats = [-100123]
    users = ["@someone", "4711"]
"""

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, TypeVar, Union

from .env import load_env
from .logger import get_logger
from .menu import TimeOfDay, parse_tomorrow
from .retry import retry_call
from .telegram import Message, User

logger = get_logger()

TOKEN_ENV = "MENSABOT_TOKEN"

DEFAULT_TOMORROW = "20:00:00"
DEFAULT_RETRIES = 3
DEFAULT_RETRYWAIT = 30
DEFAULT_MENSAS = ["Alte Mensa", "Zeltschlösschen"]

_USER_ID = re.compile(r"[+-]?[0-9]+")

T = TypeVar("T")


class ConfigError(Exception):
    """Raised when the configuration cannot be loaded or is invalid."""
    pass


def _typed(table: Dict[str, Any], key: str, kind, default):
    value = table.get(key, default)
    if not isinstance(value, kind) or isinstance(value, bool) and kind is not bool:
        raise ConfigError(f"'{key}' has the wrong type")
    return value


def _string_list(table: Dict[str, Any], key: str, default: List[str]) -> List[str]:
    value = _typed(table, key, list, default)
    if not all(isinstance(item, str) for item in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return list(value)


@dataclass
class GeneralConfig:
    token: str
    tomorrow: str = DEFAULT_TOMORROW
    retries: int = DEFAULT_RETRIES
    retrywait: int = DEFAULT_RETRYWAIT
    mensas: List[str] = field(default_factory=lambda: list(DEFAULT_MENSAS))
    patterns: List[str] = field(default_factory=list)
    tomorrow_time: TimeOfDay = field(init=False)
    compiled_patterns: List[re.Pattern] = field(init=False)

    def __post_init__(self):
        if not self.mensas:
            self.mensas = list(DEFAULT_MENSAS)
        if self.retries < 0 or self.retrywait < 0:
            raise ConfigError("'retries' and 'retrywait' must not be negative")
        try:
            self.tomorrow_time = parse_tomorrow(self.tomorrow)
        except ValueError as e:
            raise ConfigError(str(e))
        self.compiled_patterns = []
        for pattern in self.patterns:
            try:
                self.compiled_patterns.append(re.compile(pattern))
            except re.error as e:
                raise ConfigError(f"invalid regular expression {pattern}: {e}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeneralConfig":
        token = os.getenv(TOKEN_ENV) or data.get("token")
        if not token or not isinstance(token, str):
            raise ConfigError(f"missing 'token' in [general] (or set {TOKEN_ENV})")
        return cls(
            token=token,
            tomorrow=_typed(data, "tomorrow", str, DEFAULT_TOMORROW),
            retries=_typed(data, "retries", int, DEFAULT_RETRIES),
            retrywait=_typed(data, "retrywait", int, DEFAULT_RETRYWAIT),
            mensas=_string_list(data, "mensas", DEFAULT_MENSAS),
            patterns=_string_list(data, "patterns", []),
        )

    def retry(self, description: str, action: Callable[[], T]) -> T:
        """
        Run ``action`` until it succeeds or the retries are used up.

        ``retries`` counts attempts; with ``retries = 0`` the action is
        retried forever. ``retrywait = 0`` also retries forever without
        waiting, unless ``retries = 1`` asks for a single attempt.

        Raises:
            RetryError: When ``retries`` attempts failed
        """
        unlimited = self.retries == 0 or (self.retrywait == 0 and self.retries > 1)

        def on_retry(attempt, error, delay):
            if self.retrywait == 0:
                logger.warning(f"cannot {description}: {error}, retrying...")
            else:
                logger.warning(
                    f"cannot {description} (try {attempt}/{self.retries or '∞'}): {error}, "
                    f"retrying in {delay} seconds..."
                )

        def on_give_up(attempts, error):
            logger.error(f"cannot {description} (try {attempts}/{self.retries}): {error}")

        return retry_call(
            action,
            max_retries=None if unlimited else self.retries - 1,
            base_delay=self.retrywait,
            max_delay=self.retrywait,
            exponential_base=1.0,
            on_retry=on_retry,
            on_give_up=on_give_up,
        )


@dataclass
class AccessList:
    """Chats and users named in an [allow] or [deny] table."""

    chat_ids: Set[int] = field(default_factory=set)
    user_ids: Set[int] = field(default_factory=set)
    usernames: Set[str] = field(default_factory=set)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccessList":
        chats = _typed(data, "chats", list, [])
        if not all(isinstance(c, int) and not isinstance(c, bool) for c in chats):
            raise ConfigError("'chats' must be a list of chat ids")
        access = cls(chat_ids=set(chats))
        for user in _string_list(data, "users", []):
            access.add_user(user)
        return access

    def add_user(self, user: str):
        """Numeric entries are user ids, ``@name`` and bare names are usernames."""
        if _USER_ID.fullmatch(user):
            self.user_ids.add(int(user))
        else:
            self.usernames.add(user[1:] if user.startswith("@") else user)

    def contains_user(self, user: Optional[User]) -> bool:
        if user is None:
            return False
        return user.id in self.user_ids or (
            user.username is not None and user.username in self.usernames
        )

    def contains_chat(self, chat_id: int) -> bool:
        return chat_id in self.chat_ids

    def is_empty(self) -> bool:
        return not (self.chat_ids or self.user_ids or self.usernames)


@dataclass
class Config:
    general: GeneralConfig
    allow: AccessList = field(default_factory=AccessList)
    deny: AccessList = field(default_factory=AccessList)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        general = data.get("general")
        if not isinstance(general, dict):
            raise ConfigError("missing [general] table")
        return cls(
            general=GeneralConfig.from_dict(general),
            allow=AccessList.from_dict(_typed(data, "allow", dict, {})),
            deny=AccessList.from_dict(_typed(data, "deny", dict, {})),
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Config":
        """
        Read the TOML file at ``path``. A .env file in the working
        directory is loaded first so it can provide the token.

        Raises:
            ConfigError: If the file is unreadable or invalid
        """
        load_env()
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except OSError as e:
            raise ConfigError(f"cannot open `{path}`: {e}")
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"cannot load `{path}`: {e}")
        try:
            return cls.from_dict(data)
        except ConfigError as e:
            raise ConfigError(f"cannot load `{path}`: {e}")

    def is_allowed(self, message: Message) -> bool:
        """
        Decide whether to answer ``message``.

        Users are checked before chats and allow entries before deny
        entries; if nothing matches, the message is allowed only when the
        allow list is empty.
        """
        if self.allow.contains_user(message.from_user):
            return True
        if self.deny.contains_user(message.from_user):
            return False
        if self.allow.contains_chat(message.chat.id):
            return True
        if self.deny.contains_chat(message.chat.id):
            return False
        return self.allow.is_empty()

    @property
    def access_mode(self) -> str:
        if self.allow.is_empty():
            return "public" if self.deny.is_empty() else "blacklist"
        return "whitelist" if self.deny.is_empty() else "whitelist, blacklist"
