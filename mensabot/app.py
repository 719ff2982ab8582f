import argparse
import sys

from . import __version__
from .bot import MensaBot
from .config import Config, ConfigError, GeneralConfig
from .levenshtein import distance
from .menu import MenuError, fetch_menu, menu_url, parse_tomorrow
from .ranking import format_menu_message, score_candidate
from .retry import RetryError
from .telegram import TelegramApi


def cmd_run(args: argparse.Namespace) -> None:
    try:
        config = Config.load(args.config)
    except ConfigError as e:
        raise SystemExit(f"mensabot: {e}")
    bot = MensaBot(config, TelegramApi(config.general.token))
    try:
        bot.run()
    except RetryError as e:
        raise SystemExit(f"mensabot: giving up: {e}")
    except KeyboardInterrupt:
        print("Stopped.", file=sys.stderr)


def cmd_menu(args: argparse.Namespace) -> None:
    if args.config:
        try:
            general = Config.load(args.config).general
        except ConfigError as e:
            raise SystemExit(f"mensabot: {e}")
    else:
        general = GeneralConfig(token="")
    tomorrow = general.tomorrow_time
    if args.tomorrow:
        try:
            tomorrow = parse_tomorrow(args.tomorrow)
        except ValueError as e:
            raise SystemExit(f"mensabot: {e}")

    query = args.query.strip().lower() if args.query and args.query.strip() else None
    url = menu_url(tomorrow)
    try:
        entries = fetch_menu(url, query, general.mensas)
    except MenuError as e:
        raise SystemExit(f"mensabot: cannot fetch menu: {e}")
    text = format_menu_message(entries)
    print(text if text else "No menu found.")


def cmd_distance(args: argparse.Namespace) -> None:
    script = distance(args.a, args.b)
    print(f"Cost: {script.cost}")
    print(f"Trace: {script.trace()}")


def cmd_match(args: argparse.Namespace) -> None:
    candidates = sorted(score_candidate(name, args.query, ()) for name in args.names)
    for candidate in candidates:
        print(f"{candidate.similarity:>4}  {candidate.name}")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="mensabot", description="Cafeteria menu bot for Telegram")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    run = subparsers.add_parser("run", help="Run the bot until interrupted")
    run.add_argument("--config", default="config.toml", help="Path to TOML config (default: config.toml)")
    run.set_defaults(func=cmd_run)

    menu = subparsers.add_parser("menu", help="Print the menu once")
    menu.add_argument("query", nargs="?", help="Cafeteria name to look for (default: configured cafeterias)")
    menu.add_argument("--config", help="Path to TOML config for default cafeterias and switch-over time")
    menu.add_argument("--tomorrow", help="Show tomorrow's menu from this time on (HH:MM[:SS])")
    menu.set_defaults(func=cmd_menu)

    dist = subparsers.add_parser("distance", help="Show the edit distance and trace between two strings")
    dist.add_argument("a")
    dist.add_argument("b")
    dist.set_defaults(func=cmd_distance)

    match = subparsers.add_parser("match", help="Rank names against a query")
    match.add_argument("query")
    match.add_argument("names", nargs="+")
    match.set_defaults(func=cmd_match)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
