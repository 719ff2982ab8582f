"""
Tests for the command line interface.
"""

from unittest import mock

import pytest

from mensabot import __version__
from mensabot.app import main
from mensabot.menu import MENU_URL_TODAY, MENU_URL_TOMORROW, MenuError
from mensabot.ranking import MatchCandidate, MenuEntry
from mensabot.retry import RetryError


class TestCli:
    """Test the mensabot command."""

    def test_version(self, capsys):
        main(["--version"])
        assert capsys.readouterr().out.strip() == __version__

    def test_distance(self, capsys):
        main(["distance", "ab", "ba"])
        out = capsys.readouterr().out
        assert "Cost: 2" in out
        assert "Trace: -=+" in out

    def test_match(self, capsys):
        main(["match", "alte mensa", "Zeltschlösschen", "Alte Mensa"])
        lines = capsys.readouterr().out.splitlines()
        assert lines[0].split(None, 1) == ["9", "Alte Mensa"]
        assert lines[1].endswith("Zeltschlösschen")

    def test_menu(self, capsys):
        entries = [MenuEntry(MatchCandidate(9, "Alte Mensa"), ["Nudeln"])]
        with mock.patch("mensabot.app.fetch_menu", return_value=entries) as fetch:
            main(["menu", "Alte Mensa", "--tomorrow", "24:00"])

        fetch.assert_called_once_with(MENU_URL_TODAY, "alte mensa", ["Alte Mensa", "Zeltschlösschen"])
        assert capsys.readouterr().out == "Alte Mensa\n * Nudeln\n"

    def test_menu_from_midnight(self, capsys):
        with mock.patch("mensabot.app.fetch_menu", return_value=[]) as fetch:
            main(["menu", "--tomorrow", "00:00"])

        assert fetch.call_args[0][:2] == (MENU_URL_TOMORROW, None)
        assert capsys.readouterr().out == "No menu found.\n"

    def test_menu_with_config(self, config_file):
        with mock.patch("mensabot.app.fetch_menu", return_value=[]) as fetch:
            main(["menu", "--config", str(config_file)])
        assert fetch.call_args[0][2] == ["Alte Mensa", "Zeltschlösschen"]

    def test_menu_failure(self):
        with mock.patch("mensabot.app.fetch_menu", side_effect=MenuError("HTTP error 500")):
            with pytest.raises(SystemExit, match="cannot fetch menu"):
                main(["menu"])

    def test_menu_bad_time(self):
        with pytest.raises(SystemExit, match="invalid timestamp"):
            main(["menu", "--tomorrow", "99:00"])

    def test_run_missing_config(self, tmp_path):
        with pytest.raises(SystemExit, match="cannot open"):
            main(["run", "--config", str(tmp_path / "missing.toml")])

    def test_run_gives_up(self, config_file):
        with mock.patch("mensabot.app.MensaBot") as bot_class:
            bot_class.return_value.run.side_effect = RetryError("Failed after 2 attempts")
            with pytest.raises(SystemExit, match="giving up"):
                main(["run", "--config", str(config_file)])

    def test_usage_error(self):
        with pytest.raises(SystemExit) as excinfo:
            main(["distance", "only-one"])
        assert excinfo.value.code == 2

    def test_no_command_prints_help(self, capsys):
        main([])
        assert "usage: mensabot" in capsys.readouterr().out
