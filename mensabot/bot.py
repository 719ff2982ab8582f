"""
Command handling and the long-polling loop.

Understood commands:
    /mensa [name]  menu of the cafeterias best matching ``name``, or of
                   the configured default cafeterias
    /about         access mode and configuration summary

Messages matching one of the configured patterns are answered like a bare
/mensa.
"""

import html
from datetime import datetime
from enum import Flag, auto
from typing import List, Optional, Sequence, Tuple

from .config import Config
from .logger import get_logger
from .menu import MenuError, fetch_menu, menu_url
from .ranking import format_menu_message
from .retry import RetryError
from .telegram import Message, MessageEntity, OutgoingText, TelegramApi, utf16_length

logger = get_logger()

ABOUT_HEADER = "<b>Copyright 2017-2018 Schnusch</b>\nhttps://www.github.com/schnusch/mensabot/\n\n"
FETCH_FAILED = "Speiseplan konnte nicht abgerufen werden!\n{url}"


class Command(Flag):
    NONE = 0
    MENSA = auto()
    ABOUT = auto()


def strip_bot_name(command: str, bot_name: Optional[str]) -> str:
    """Turn ``/mensa@SomeBot`` into ``/mensa`` when addressed to this bot."""
    if bot_name and command.endswith("@" + bot_name) and len(command) > len(bot_name) + 1:
        return command[:-(len(bot_name) + 1)]
    return command


def parse_commands(
    message: Message, bot_name: Optional[str], patterns: Sequence = ()
) -> Tuple[Command, Optional[str]]:
    """
    Find the commands in ``message`` and the /mensa search argument.

    The argument runs from the end of the /mensa entity to the next entity
    (or the end of the text), is trimmed and lower-cased; an empty argument
    is returned as None.
    """
    text = message.text or ""
    commands = Command.NONE
    arg_start = arg_end = 0

    for entity in message.entities:
        if entity.type != "bot_command":
            continue
        try:
            command = entity.extract(text)
        except UnicodeDecodeError as e:
            logger.error(f"cannot extract entity: {e}")
            continue
        command = strip_bot_name(command, bot_name)
        if command == "/mensa":
            commands |= Command.MENSA
            arg_start = entity.offset + entity.length
            arg_end = utf16_length(text)
        elif command == "/about":
            commands |= Command.ABOUT
        else:
            logger.info("Unknown command", command=command)

    if commands & Command.MENSA:
        for entity in message.entities:
            if arg_start <= entity.offset < arg_end:
                arg_end = entity.offset
    elif any(pattern.search(text) for pattern in patterns):
        commands |= Command.MENSA
        arg_end = 0

    query = None
    if commands & Command.MENSA and arg_start < arg_end:
        span = MessageEntity(type="", offset=arg_start, length=arg_end - arg_start)
        try:
            query = span.extract(text).strip().lower() or None
        except UnicodeDecodeError as e:
            logger.error(f"cannot extract argument: {e}")
    return commands, query


def make_menu_text(
    message: Message, query: Optional[str], config: Config, now: Optional[datetime] = None
) -> OutgoingText:
    url = menu_url(config.general.tomorrow_time, now)
    logger.info("fetching menu", url=url, query=query)
    try:
        text = format_menu_message(fetch_menu(url, query, config.general.mensas))
    except MenuError as e:
        logger.error(f"cannot fetch menu: {e}")
        text = FETCH_FAILED.format(url=url)
    reply = message.reply_text(text)
    reply.disable_notification = True
    return reply


def _code(s: str) -> str:
    return f"<code>{html.escape(s, quote=False)}</code>"


def make_about_text(message: Message, config: Config) -> OutgoingText:
    general = config.general
    lines = [
        f"access: {config.access_mode}",
        "default: " + ", ".join(_code(mensa) for mensa in general.mensas),
        f"tomorrow: {_code(general.tomorrow)}",
    ]
    if general.patterns:
        lines.append("patterns:")
        lines.extend(" " + _code(pattern) for pattern in general.patterns)
    reply = message.reply_text(ABOUT_HEADER + "\n".join(lines))
    reply.disable_notification = True
    reply.parse_mode = "html"
    return reply


class MensaBot:
    """Answers /mensa and /about messages received through ``api``."""

    def __init__(self, config: Config, api: TelegramApi):
        self.config = config
        self.api = api
        self.bot_name: Optional[str] = None

    def handle_message(self, message: Message, now: Optional[datetime] = None) -> List[OutgoingText]:
        """Build the replies for one incoming message."""
        if not self.config.is_allowed(message):
            if message.from_user is None:
                logger.info(f"message {message.message_id} in {message.chat} ignored")
            else:
                logger.info(f"message {message.message_id} from {message.from_user} in {message.chat} ignored")
            logger.record_message(handled=False)
            return []
        if message.text is None:
            return []

        commands, query = parse_commands(message, self.bot_name, self.config.general.compiled_patterns)
        if not commands:
            logger.info(f"chat {message.chat} message {message.message_id} ignored")
            logger.record_message(handled=False)
            return []

        logger.record_message(handled=True)
        replies = []
        if commands & Command.MENSA:
            replies.append(make_menu_text(message, query, self.config, now))
        if commands & Command.ABOUT:
            replies.append(make_about_text(message, self.config))
        return replies

    def resolve_bot_name(self):
        try:
            me = self.config.general.retry("retrieve bot name", self.api.get_me)
        except RetryError:
            return
        self.bot_name = me.username

    def poll_once(self):
        """
        Fetch one batch of updates and answer them.

        Raises:
            RetryError: If updates cannot be fetched
        """
        general = self.config.general
        updates = general.retry("get updates", lambda: self.api.get_updates(["message"]))
        for update in updates:
            if update.message is not None:
                for reply in self.handle_message(update.message):
                    try:
                        general.retry("send reply", lambda: self.api.send_text(reply))
                    except RetryError:
                        # already logged by the retry policy; drop the reply
                        continue
            self.api.set_latest_update(update.update_id)

    def run(self):
        """Answer messages until fetching updates fails for good."""
        self.resolve_bot_name()
        logger.info("Bot started", bot_name=self.bot_name)
        try:
            while True:
                self.poll_once()
        finally:
            logger.log_metrics_summary()
