"""Fetch and parse the Studentenwerk Dresden menu page."""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

import requests
from bs4 import BeautifulSoup, Comment, NavigableString

from .logger import get_logger
from .ranking import MenuEntry, rank, score_candidate
from .retry import RetryError, exponential_backoff

logger = get_logger()

MENU_URL_TODAY = "https://www.studentenwerk-dresden.de/mensen/speiseplan/"
MENU_URL_TOMORROW = "https://www.studentenwerk-dresden.de/mensen/speiseplan/morgen.html"

NAME_PREFIX = "Angebote "

# Of the tbody elements following the table head, these hold meals.
MEAL_TBODIES = (0, 3)

TimeOfDay = Tuple[int, int, int]


class MenuError(Exception):
    """Raised when the menu page cannot be retrieved."""
    pass


def parse_tomorrow(value: str) -> TimeOfDay:
    """
    Parse the switch-over time ``HH:MM`` or ``HH:MM:SS``.

    Raises:
        ValueError: On malformed input or times after 24:00:00
    """
    fields = value.split(":")
    if 2 <= len(fields) <= 3 and all(f.isascii() and f.isdigit() and int(f) <= 255 for f in fields):
        parsed = [int(f) for f in fields] + [0]
        t = (parsed[0], parsed[1], parsed[2])
        if t <= (24, 0, 0):
            return t
    raise ValueError(f"invalid timestamp '{value}'")


def menu_url(tomorrow: TimeOfDay, now: Optional[datetime] = None) -> str:
    """Tomorrow's menu once the time of day has reached ``tomorrow``, else today's."""
    if now is None:
        now = datetime.now()
    if (now.hour, now.minute, now.second) >= tomorrow:
        return MENU_URL_TOMORROW
    return MENU_URL_TODAY


def strip_white(s: str) -> str:
    return " ".join(s.split())


def text_content(node) -> str:
    """Whitespace-collapsed text of the node's direct text children."""
    return strip_white("".join(
        child for child in node.children
        if isinstance(child, NavigableString) and not isinstance(child, Comment)
    ))


def _meals(thead) -> List[str]:
    tbodies = thead.find_next_siblings("tbody", limit=max(MEAL_TBODIES) + 1)
    meals = []
    for index in MEAL_TBODIES:
        if index >= len(tbodies):
            continue
        for tr in tbodies[index].find_all("tr", recursive=False):
            td = tr.find("td", class_="text")
            if td is None:
                continue
            a = td.find("a")
            if a is None:
                continue
            meals.append(text_content(a))
    return meals


def parse_menu(html: str, query: Optional[str], allowed: Iterable[str]) -> List[MenuEntry]:
    """
    Extract cafeterias and their meals from a menu page.

    Every ``table.speiseplan`` is one cafeteria: the first header cell of
    its ``thead`` names it, meal names are the links in the ``td.text``
    cells of the first and fourth ``tbody``. Names are scored against
    ``query`` (or filtered by ``allowed`` without one); tables without
    meals are left out. The result is ranked best match first.
    """
    allowed = list(allowed)
    soup = BeautifulSoup(html, "html.parser")
    entries = []
    for table in soup.find_all("table", class_="speiseplan"):
        thead = table.find("thead", recursive=False)
        if thead is None:
            continue
        th = thead.find("th")
        if th is None:
            continue

        name = text_content(th)
        if name.startswith(NAME_PREFIX):
            name = name[len(NAME_PREFIX):]

        candidate = score_candidate(name, query, allowed)
        if candidate is None:
            continue

        meals = _meals(thead)
        if not meals:
            logger.debug("Skipping cafeteria without meals", name=name)
            continue
        entries.append(MenuEntry(candidate, meals))

    return rank(entries)


@exponential_backoff(max_retries=3, base_delay=1.0, exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError))
def _fetch_with_retry(url: str):
    """Fetch URL with automatic retry on transient errors."""
    return requests.get(url, timeout=15)


def fetch_page(url: str) -> str:
    """
    Download the menu page.

    Raises:
        MenuError: On any HTTP error, timeout, or request failure
    """
    logger.record_fetch_attempt()
    try:
        resp = _fetch_with_retry(url)
        resp.raise_for_status()
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else "HTTPError"
        logger.record_fetch_failure(f"HTTPError_{status}")
        logger.error("Menu request failed", url=url, status=status)
        raise MenuError(f"HTTP error {status}")
    except RetryError as e:
        logger.record_fetch_failure("RetryError")
        logger.warning("Menu request kept failing", url=url, error=str(e))
        raise MenuError(f"menu request failed: {e.__cause__ or e}")
    except requests.exceptions.RequestException as e:
        logger.record_fetch_failure("RequestException")
        logger.error("Menu request error", url=url, error=str(e))
        raise MenuError(f"menu request error: {e}")

    logger.record_fetch_success()
    return resp.text


def fetch_menu(url: str, query: Optional[str], allowed: Iterable[str]) -> List[MenuEntry]:
    """Download and parse the menu page at ``url``."""
    entries = parse_menu(fetch_page(url), query, allowed)
    logger.info("Fetched menu", url=url, cafeterias=len(entries))
    return entries
