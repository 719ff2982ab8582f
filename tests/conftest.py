"""
Pytest configuration and shared fixtures.
"""

import pytest
from pathlib import Path

from mensabot.telegram import Chat, Message, MessageEntity, User


@pytest.fixture
def sample_menu_html() -> str:
    """Menu page with two cafeterias serving food and one without meals."""
    return """
    <html>
    <body>
    <table class="speiseplan">
        <thead><tr><th class="text">Angebote   Alte
            Mensa</th><th>Preise</th></tr></thead>
        <tbody>
            <tr><td class="text"><a href="/1">Nudeln   mit <b>frischer</b> Tomatensoße</a></td></tr>
            <tr><td class="text"><a href="/2">Linsensuppe</a></td></tr>
            <tr><td class="other">kein Essen</td></tr>
        </tbody>
        <tbody><tr><td class="text"><a href="/3">Abendkarte</a></td></tr></tbody>
        <tbody><tr><td class="text"><a href="/4">Pasta Bar</a></td></tr></tbody>
        <tbody><tr><td class="text"><a href="/5">Salatbuffet<!-- neu --></a></td></tr></tbody>
    </table>
    <table class="speiseplan">
        <thead><tr><th>Angebote Zeltschlösschen</th></tr></thead>
        <tbody>
            <tr><td class="text"><a href="/6">Gemüsecurry</a></td></tr>
        </tbody>
    </table>
    <table class="speiseplan">
        <thead><tr><th>Angebote Mensa Siedepunkt</th></tr></thead>
        <tbody>
            <tr><td class="text">geschlossen</td></tr>
        </tbody>
    </table>
    <table class="other">
        <thead><tr><th>Angebote Mensa Johannstadt</th></tr></thead>
        <tbody><tr><td class="text"><a href="/7">Schnitzel</a></td></tr></tbody>
    </table>
    </body>
    </html>
    """


@pytest.fixture
def config_file(tmp_path, monkeypatch) -> Path:
    """Minimal valid config file; runs from tmp_path so no stray .env is read."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MENSABOT_TOKEN", raising=False)
    path = tmp_path / "config.toml"
    path.write_text(
        '[general]\n'
        'token = "123:abc"\n'
        'retries = 2\n'
        'retrywait = 1\n'
        'patterns = ["(?i)hunger"]\n'
        '\n'
        '[allow]\n'
        'users = ["@friend", "42"]\n'
        '\n'
        '[deny]\n'
        'chats = [-100]\n',
        encoding="utf-8",
    )
    return path


@pytest.fixture
def make_message():
    """Factory for text messages; commands are detected like the Bot API does."""
    def factory(text, chat_id=1, user_id=7, username="someone", entities=None, message_id=10):
        if entities is None:
            entities = []
            units = 0
            for word in text.split(" "):
                if word.startswith("/"):
                    entities.append(MessageEntity("bot_command", units, len(word.encode("utf-16-le")) // 2))
                units += len((word + " ").encode("utf-16-le")) // 2
        user = User(id=user_id, first_name="Some", username=username) if user_id is not None else None
        return Message(
            message_id=message_id,
            chat=Chat(id=chat_id, first_name="Some"),
            from_user=user,
            text=text,
            entities=entities,
        )
    return factory
