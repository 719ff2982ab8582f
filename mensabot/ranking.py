"""Ranking of cafeteria names against a query and rendering of the result."""

import functools
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .words import best_alignment

# Telegram rejects message bodies above 4096 characters.
MESSAGE_LIMIT = 4093

# Similarity given to allow-listed names when there is no query.
EXACT = 0

ELLIPSIS = "...\n\n"


@functools.total_ordering
@dataclass(frozen=True)
class MatchCandidate:
    """A cafeteria name with its similarity to the query.

    Sorts by higher similarity first, then by name.
    """

    similarity: int
    name: str

    def sort_key(self):
        return (-self.similarity, self.name)

    def __lt__(self, other):
        if not isinstance(other, MatchCandidate):
            return NotImplemented
        return self.sort_key() < other.sort_key()


@dataclass
class MenuEntry:
    candidate: MatchCandidate
    meals: List[str] = field(default_factory=list)


def score_candidate(
    name: str, query: Optional[str], allowed: Iterable[str]
) -> Optional[MatchCandidate]:
    """
    Score ``name`` against ``query``.

    Without a query only names from ``allowed`` pass, all with the EXACT
    score. Returns None for names that are filtered out.
    """
    if query is None:
        if name in allowed:
            return MatchCandidate(EXACT, name)
        return None
    return MatchCandidate(best_alignment(query.lower(), name.lower()), name)


def rank(entries: Iterable[MenuEntry]) -> List[MenuEntry]:
    return sorted(entries, key=lambda entry: entry.candidate)


def best_group(entries: Iterable[MenuEntry]) -> List[MenuEntry]:
    """Entries sharing the top similarity, in ranking order."""
    ranked = rank(entries)
    if not ranked:
        return []
    top = ranked[0].candidate.similarity
    return [entry for entry in ranked if entry.candidate.similarity == top]


def format_entry(entry: MenuEntry) -> str:
    return entry.candidate.name + "".join(f"\n * {meal}" for meal in entry.meals)


def format_menu_message(entries: Iterable[MenuEntry], limit: int = MESSAGE_LIMIT) -> str:
    """
    Render the best-matching entries as plain text.

    Each entry becomes its name followed by one `` * meal`` line per meal,
    entries are separated by a blank line. Rendering stops at the first
    entry with a lower score, or, when the next entry would push the UTF-8
    size past ``limit``, with an ``...`` marker instead of that entry.
    """
    blocks = []
    size = 0
    for entry in best_group(entries):
        block = format_entry(entry) + "\n\n"
        block_size = len(block.encode("utf-8"))
        if size + block_size > limit:
            blocks.append(ELLIPSIS)
            break
        blocks.append(block)
        size += block_size
    return "".join(blocks)[:-2]
