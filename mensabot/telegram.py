"""
Minimal Telegram Bot API client.

Covers the calls the bot needs: getMe, getUpdates (long polling) and
sendMessage, plus the message types they exchange.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .logger import get_logger

logger = get_logger()

API_BASE = "https://api.telegram.org/bot{token}/"

# Seconds getUpdates waits on the server side for new updates.
POLL_TIMEOUT = 30


class TelegramError(Exception):
    """Raised when a Bot API call fails."""
    pass


def _format_name(first_name: Optional[str], username: Optional[str], last_name: Optional[str]) -> str:
    parts = []
    if first_name:
        parts.append(first_name)
    if username:
        parts.append(f"'{username}'")
    if last_name:
        parts.append(last_name)
    return " ".join(parts) or "<unknown>"


@dataclass
class User:
    id: int
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            first_name=data["first_name"],
            last_name=data.get("last_name"),
            username=data.get("username"),
        )

    def __str__(self):
        return _format_name(self.first_name, self.username, self.last_name)


@dataclass
class Chat:
    id: int
    title: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chat":
        return cls(
            id=data["id"],
            title=data.get("title"),
            username=data.get("username"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
        )

    def __str__(self):
        if self.title is not None:
            return self.title
        return _format_name(self.first_name, self.username, self.last_name)


@dataclass
class MessageEntity:
    type: str
    offset: int
    length: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MessageEntity":
        return cls(type=data["type"], offset=data["offset"], length=data["length"])

    def extract(self, text: str) -> str:
        """
        Return the part of ``text`` this entity covers.

        The Bot API counts offsets and lengths in UTF-16 code units.

        Raises:
            UnicodeDecodeError: If the entity splits a surrogate pair
        """
        units = text.encode("utf-16-le")
        return units[2 * self.offset:2 * (self.offset + self.length)].decode("utf-16-le")


def utf16_length(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


@dataclass
class OutgoingText:
    chat_id: int
    text: str
    disable_notification: bool = False
    parse_mode: Optional[str] = None
    reply_to_message_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"chat_id": self.chat_id, "text": self.text}
        if self.disable_notification:
            data["disable_notification"] = True
        if self.parse_mode is not None:
            data["parse_mode"] = self.parse_mode
        if self.reply_to_message_id is not None:
            data["reply_to_message_id"] = self.reply_to_message_id
        return data


@dataclass
class Message:
    message_id: int
    chat: Chat
    from_user: Optional[User] = None
    text: Optional[str] = None
    entities: List[MessageEntity] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        sender = data.get("from")
        return cls(
            message_id=data["message_id"],
            chat=Chat.from_dict(data["chat"]),
            from_user=User.from_dict(sender) if sender else None,
            text=data.get("text"),
            entities=[MessageEntity.from_dict(e) for e in data.get("entities", [])],
        )

    def reply_text(self, text: str) -> OutgoingText:
        return OutgoingText(
            chat_id=self.chat.id,
            text=text,
            reply_to_message_id=self.message_id,
        )


@dataclass
class Update:
    update_id: int
    message: Optional[Message] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Update":
        message = data.get("message")
        return cls(
            update_id=data["update_id"],
            message=Message.from_dict(message) if message else None,
        )


class TelegramApi:
    """Bot API client keeping track of the getUpdates offset."""

    def __init__(self, token: str, session: Optional[requests.Session] = None, timeout: int = POLL_TIMEOUT):
        self.base_url = API_BASE.format(token=token)
        self.session = session or requests.Session()
        self.timeout = timeout
        self.offset = 0

    def _call(self, method: str, data: Optional[Dict[str, Any]] = None) -> Any:
        """
        POST ``data`` as JSON to ``method`` and return the ``result`` field.

        Raises:
            TelegramError: On transport errors, non-2xx responses, malformed
                JSON or ``ok: false`` responses
        """
        logger.record_api_call()
        try:
            resp = self.session.post(self.base_url + method, json=data or {}, timeout=self.timeout + 10)
        except requests.exceptions.RequestException as e:
            logger.record_api_error("RequestException")
            raise TelegramError(f"request error: {e}")

        if not 200 <= resp.status_code < 300:
            logger.record_api_error(f"HTTPError_{resp.status_code}")
            raise TelegramError(f"Telegram Bot API HTTP error: {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            logger.record_api_error("DecodeError")
            raise TelegramError(f"deserialization error: {e}")

        if not isinstance(body, dict):
            logger.record_api_error("UnexpectedResponse")
            raise TelegramError("unexpected JSON response")
        if body.get("ok"):
            if "result" not in body:
                logger.record_api_error("UnexpectedResponse")
                raise TelegramError("unexpected JSON response")
            return body["result"]

        logger.record_api_error("ApiError")
        if body.get("error_code") is not None and body.get("description") is not None:
            raise TelegramError(f"Telegram Bot API Error: {body['error_code']} {body['description']}")
        raise TelegramError("unexpected JSON response")

    @staticmethod
    def _convert(converter, result):
        try:
            return converter(result)
        except (KeyError, TypeError, AttributeError):
            raise TelegramError("unexpected JSON result")

    def get_me(self) -> User:
        return self._convert(User.from_dict, self._call("getMe"))

    def get_updates(self, allowed_updates: Optional[List[str]] = None) -> List[Update]:
        """Long-poll for updates after the last confirmed one."""
        data: Dict[str, Any] = {"offset": self.offset, "timeout": self.timeout}
        if allowed_updates:
            data["allowed_updates"] = list(allowed_updates)
        result = self._call("getUpdates", data)
        return self._convert(lambda r: [Update.from_dict(u) for u in r], result)

    def send_text(self, outgoing: OutgoingText) -> Message:
        return self._convert(Message.from_dict, self._call("sendMessage", outgoing.to_dict()))

    def set_latest_update(self, update_id: int):
        """Confirm every update up to and including ``update_id``."""
        self.offset = update_id + 1
