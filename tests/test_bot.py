"""
Tests for command parsing, reply building and the poll loop.
"""

import re
from datetime import datetime
from unittest import mock

import pytest

from mensabot.bot import (
    Command,
    MensaBot,
    make_about_text,
    make_menu_text,
    parse_commands,
    strip_bot_name,
)
from mensabot.config import AccessList, Config, GeneralConfig
from mensabot.menu import MENU_URL_TODAY, MENU_URL_TOMORROW, MenuError
from mensabot.ranking import MatchCandidate, MenuEntry
from mensabot.retry import RetryError
from mensabot.telegram import MessageEntity, Update

EVENING = datetime(2024, 5, 6, 21, 0, 0)
NOON = datetime(2024, 5, 6, 12, 0, 0)

ENTRIES = [MenuEntry(MatchCandidate(9, "Alte Mensa"), ["Nudeln", "Suppe"])]


@pytest.fixture
def config():
    return Config(general=GeneralConfig(token="t", retries=1, retrywait=1, patterns=["(?i)hunger"]))


class TestParseCommands:
    """Test finding commands and the /mensa argument."""

    def test_strip_bot_name(self):
        assert strip_bot_name("/mensa@MensaBot", "MensaBot") == "/mensa"
        assert strip_bot_name("/mensa@OtherBot", "MensaBot") == "/mensa@OtherBot"
        assert strip_bot_name("/mensa", None) == "/mensa"
        assert strip_bot_name("@MensaBot", "MensaBot") == "@MensaBot"

    def test_bare_mensa(self, make_message):
        assert parse_commands(make_message("/mensa"), None) == (Command.MENSA, None)

    def test_mensa_with_argument(self, make_message):
        """The argument is trimmed and lower-cased."""
        commands, query = parse_commands(make_message("/mensa   Alte MENSA  "), None)
        assert commands == Command.MENSA
        assert query == "alte mensa"

    def test_argument_ends_at_next_entity(self, make_message):
        commands, query = parse_commands(make_message("/mensa zelt /about"), None)
        assert commands == Command.MENSA | Command.ABOUT
        assert query == "zelt"

    def test_addressed_command(self, make_message):
        commands, query = parse_commands(make_message("/mensa@MensaBot siedepunkt"), "MensaBot")
        assert commands == Command.MENSA
        assert query == "siedepunkt"

    def test_command_for_other_bot_ignored(self, make_message):
        commands, _ = parse_commands(make_message("/mensa@OtherBot"), "MensaBot")
        assert commands == Command.NONE

    def test_argument_after_emoji(self, make_message):
        """Offsets are UTF-16 based, so characters before the command are handled."""
        commands, query = parse_commands(make_message("🍲 /mensa Zeltschlösschen"), None)
        assert commands == Command.MENSA
        assert query == "zeltschlösschen"

    def test_pattern_triggers_menu(self, make_message):
        patterns = [re.compile("(?i)hunger")]
        assert parse_commands(make_message("Ich hab Hunger"), None, patterns) == (Command.MENSA, None)
        assert parse_commands(make_message("Ich bin satt"), None, patterns) == (Command.NONE, None)

    def test_unknown_command(self, make_message):
        assert parse_commands(make_message("/start"), None) == (Command.NONE, None)

    def test_non_command_entities_ignored(self, make_message):
        message = make_message("/mensa #alte", entities=[
            MessageEntity("bot_command", 0, 6),
            MessageEntity("hashtag", 7, 5),
        ])
        assert parse_commands(message, None) == (Command.MENSA, None)


class TestReplies:
    """Test building reply messages."""

    def test_menu_text(self, make_message, config):
        with mock.patch("mensabot.bot.fetch_menu", return_value=ENTRIES) as fetch:
            reply = make_menu_text(make_message("/mensa alte"), "alte", config, now=NOON)

        fetch.assert_called_once_with(MENU_URL_TODAY, "alte", config.general.mensas)
        assert reply.text == "Alte Mensa\n * Nudeln\n * Suppe"
        assert reply.disable_notification
        assert reply.reply_to_message_id == 10

    def test_menu_text_uses_tomorrow_page_in_the_evening(self, make_message, config):
        with mock.patch("mensabot.bot.fetch_menu", return_value=ENTRIES) as fetch:
            make_menu_text(make_message("/mensa"), None, config, now=EVENING)

        assert fetch.call_args[0][0] == MENU_URL_TOMORROW

    def test_menu_text_on_failure(self, make_message, config):
        with mock.patch("mensabot.bot.fetch_menu", side_effect=MenuError("HTTP error 500")):
            reply = make_menu_text(make_message("/mensa"), None, config, now=NOON)

        assert reply.text == f"Speiseplan konnte nicht abgerufen werden!\n{MENU_URL_TODAY}"

    def test_about_text(self, make_message):
        config = Config(
            general=GeneralConfig(token="t", mensas=["A & B", "<C>"], patterns=["a<b"]),
            allow=AccessList(chat_ids={1}),
        )
        reply = make_about_text(make_message("/about"), config)

        assert reply.parse_mode == "html"
        assert reply.disable_notification
        assert "access: whitelist" in reply.text
        assert "default: <code>A &amp; B</code>, <code>&lt;C&gt;</code>" in reply.text
        assert "tomorrow: <code>20:00:00</code>" in reply.text
        assert reply.text.endswith("patterns:\n <code>a&lt;b</code>")

    def test_about_text_without_patterns(self, make_message):
        reply = make_about_text(make_message("/about"), Config(general=GeneralConfig(token="t")))
        assert "patterns" not in reply.text
        assert "access: public" in reply.text


class TestMensaBot:
    """Test message handling and polling."""

    def test_handle_mensa(self, make_message, config):
        bot = MensaBot(config, mock.Mock())
        with mock.patch("mensabot.bot.fetch_menu", return_value=ENTRIES):
            replies = bot.handle_message(make_message("/mensa alte /about"), now=NOON)

        assert len(replies) == 2
        assert replies[0].text.startswith("Alte Mensa")
        assert replies[1].parse_mode == "html"

    def test_handle_denied(self, make_message):
        config = Config(general=GeneralConfig(token="t"), deny=AccessList(chat_ids={1}))
        bot = MensaBot(config, mock.Mock())
        with mock.patch("mensabot.bot.fetch_menu") as fetch:
            assert bot.handle_message(make_message("/mensa", chat_id=1)) == []
        fetch.assert_not_called()

    def test_handle_without_text(self, make_message, config):
        message = make_message("")
        message.text = None
        assert MensaBot(config, mock.Mock()).handle_message(message) == []

    def test_handle_plain_text(self, make_message, config):
        assert MensaBot(config, mock.Mock()).handle_message(make_message("hello")) == []

    def test_resolve_bot_name(self, config):
        api = mock.Mock()
        api.get_me.return_value = mock.Mock(username="MensaBot")
        bot = MensaBot(config, api)
        bot.resolve_bot_name()
        assert bot.bot_name == "MensaBot"

    def test_resolve_bot_name_failure(self, config):
        api = mock.Mock()
        api.get_me.side_effect = IOError("down")
        bot = MensaBot(config, api)
        bot.resolve_bot_name()
        assert bot.bot_name is None

    def test_poll_once(self, make_message, config):
        api = mock.Mock()
        api.get_updates.return_value = [
            Update(update_id=7, message=make_message("/mensa")),
            Update(update_id=8, message=None),
        ]
        bot = MensaBot(config, api)

        with mock.patch("mensabot.bot.fetch_menu", return_value=ENTRIES):
            bot.poll_once()

        api.get_updates.assert_called_once_with(["message"])
        api.send_text.assert_called_once()
        assert api.send_text.call_args[0][0].text.startswith("Alte Mensa")
        assert api.set_latest_update.call_args_list[-1] == mock.call(8)

    def test_poll_once_survives_send_failure(self, make_message, config):
        api = mock.Mock()
        api.get_updates.return_value = [Update(update_id=3, message=make_message("/about"))]
        api.send_text.side_effect = IOError("blocked")
        bot = MensaBot(config, api)

        bot.poll_once()

        api.set_latest_update.assert_called_with(3)

    def test_poll_once_fails_when_updates_unavailable(self, config):
        api = mock.Mock()
        api.get_updates.side_effect = IOError("down")
        with pytest.raises(RetryError):
            MensaBot(config, api).poll_once()

    def test_run_stops_on_retry_error(self, config):
        api = mock.Mock()
        api.get_me.return_value = mock.Mock(username="MensaBot")
        api.get_updates.side_effect = [[], IOError("down")]
        with pytest.raises(RetryError):
            MensaBot(config, api).run()
        assert api.get_updates.call_count == 2
