"""
Character-level edit distance with a reconstructible edit trace.

The distance engine computes the cheapest sequence of single code point
insertions, deletions and substitutions that turns one string into another.
The result is an EditScript: the total cost plus the full operation
sequence, packed two bits per operation.
"""

import logging
from enum import IntEnum
from typing import Iterator, List, Tuple

from .logger import get_logger

logger = get_logger()

BITS_PER_OP = 2
OPS_PER_WORD = 32
_OP_MASK = (1 << BITS_PER_OP) - 1


class InvalidStateError(Exception):
    """Raised when an operation is requested that the script cannot provide."""
    pass


class Operation(IntEnum):
    """Single edit operation. Values are the 2-bit codes used for packing."""

    KEEP = 0
    SUBST = 1
    DELETE = 2
    INSERT = 3

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]


_SYMBOLS = {
    Operation.KEEP: "=",
    Operation.SUBST: "!",
    Operation.DELETE: "-",
    Operation.INSERT: "+",
}


class EditScript:
    """
    Immutable sequence of edit operations together with its cost.

    Operations are packed into integer words of OPS_PER_WORD operations.
    Completed words live in an append-only list shared by every script
    extended from the same ancestor; a script only ever reads the first
    ``len(script) // OPS_PER_WORD`` entries. The partially filled last word
    is kept separately. Extending at the end of the shared list appends in
    place, extending an older script starts a new list from its own prefix.

    Ordering and equality are deliberately different:
    - ``<``, ``<=``, ``>``, ``>=`` compare ``cost`` only (see also
      ``same_cost``), which is what the distance table needs to pick a
      minimum.
    - ``==`` compares cost, length and the operation sequence.

    Two scripts with the same cost are therefore neither smaller nor
    greater than each other but may still be unequal.
    """

    __slots__ = ("_cost", "_words", "_tail", "_length")

    def __init__(self):
        self._cost = 0
        self._words: List[int] = []
        self._tail = 0
        self._length = 0

    @classmethod
    def _make(cls, cost: int, words: List[int], tail: int, length: int) -> "EditScript":
        script = cls.__new__(cls)
        script._cost = cost
        script._words = words
        script._tail = tail
        script._length = length
        return script

    @classmethod
    def from_operations(cls, operations) -> "EditScript":
        """Build a script by extending the empty script one operation at a time."""
        script = cls()
        for op in operations:
            script = script.extend(op)
        return script

    @property
    def cost(self) -> int:
        """Number of operations that are not KEEP."""
        return self._cost

    def extend(self, op: Operation) -> "EditScript":
        """Return a new script with ``op`` appended."""
        op = Operation(op)
        offset = self._length % OPS_PER_WORD
        tail = self._tail | (int(op) << (offset * BITS_PER_OP))
        words = self._words
        length = self._length + 1
        if length % OPS_PER_WORD == 0:
            owned = self._length // OPS_PER_WORD
            if len(words) != owned:
                words = words[:owned]
            words.append(tail)
            tail = 0
        cost = self._cost + (op is not Operation.KEEP)
        return EditScript._make(cost, words, tail, length)

    def __len__(self) -> int:
        return self._length

    def __getitem__(self, index: int) -> Operation:
        if index < 0:
            index += self._length
        if not 0 <= index < self._length:
            raise IndexError("edit script index out of range")
        word_index, offset = divmod(index, OPS_PER_WORD)
        word = self._words[word_index] if word_index < self._length // OPS_PER_WORD else self._tail
        return Operation((word >> (offset * BITS_PER_OP)) & _OP_MASK)

    def __iter__(self) -> Iterator[Operation]:
        for index in range(self._length):
            yield self[index]

    def last_operation(self) -> Operation:
        """Return the final operation of the script."""
        if self._length == 0:
            raise InvalidStateError("edit script is empty")
        return self[self._length - 1]

    def trace(self) -> str:
        """Human-readable trace, one symbol per operation (``=!-+``)."""
        return "".join(op.symbol for op in self)

    def apply(self, a: str, b: str) -> str:
        """
        Replay the script against ``a``, taking new characters from ``b``.

        KEEP copies the next character of ``a``, DELETE skips it, INSERT
        emits the next character of ``b`` and SUBST emits the next
        character of ``b`` while skipping one of ``a``. For a script
        returned by ``distance(a, b)`` the result is ``b``.

        Raises:
            ValueError: If the script does not fit the two strings
        """
        out = []
        i = j = 0
        for op in self:
            takes_a = op is not Operation.INSERT
            takes_b = op is not Operation.DELETE
            if (takes_a and i >= len(a)) or (takes_b and j >= len(b)):
                raise ValueError("edit script is longer than its input strings")
            if op is Operation.KEEP:
                out.append(a[i])
            elif takes_b:
                out.append(b[j])
            i += takes_a
            j += takes_b
        if i != len(a) or j != len(b):
            raise ValueError("edit script does not consume both strings")
        return "".join(out)

    def same_cost(self, other: "EditScript") -> bool:
        """Cost-only comparison, the counterpart of the ordering operators."""
        return self._cost == other._cost

    def __lt__(self, other):
        if not isinstance(other, EditScript):
            return NotImplemented
        return self._cost < other._cost

    def __le__(self, other):
        if not isinstance(other, EditScript):
            return NotImplemented
        return self._cost <= other._cost

    def __gt__(self, other):
        if not isinstance(other, EditScript):
            return NotImplemented
        return self._cost > other._cost

    def __ge__(self, other):
        if not isinstance(other, EditScript):
            return NotImplemented
        return self._cost >= other._cost

    def _packed_words(self) -> Tuple[int, ...]:
        return tuple(self._words[:self._length // OPS_PER_WORD])

    def __eq__(self, other):
        if not isinstance(other, EditScript):
            return NotImplemented
        return (
            self._cost == other._cost
            and self._length == other._length
            and self._packed_words() == other._packed_words()
            and self._tail == other._tail
        )

    def __hash__(self):
        return hash((self._cost, self._length, self._packed_words(), self._tail))

    def __repr__(self):
        return f"EditScript(cost={self._cost}, trace={self.trace()!r})"


def distance(a: str, b: str) -> EditScript:
    """
    Compute a minimal-cost EditScript transforming ``a`` into ``b``.

    Dynamic programming over code points, one row of the table at a time.
    Each cell takes the cheapest of

    - the cell to the left extended with INSERT,
    - the cell above extended with DELETE,
    - the diagonal cell extended with KEEP or SUBST,

    preferring them in that order when costs are equal. The preference
    only decides which of several minimal traces is reported.

    Runs in O(len(a) * len(b)) and keeps a single row of scripts.
    """
    row = [EditScript()]
    for _ in b:
        row.append(row[-1].extend(Operation.INSERT))

    dump = logger.is_enabled_for(logging.DEBUG)
    if dump:
        logger.debug("    " + "".join(f"  {cb}" for cb in b))
        logger.debug("   0" + "".join(f" {s.cost:>2}" for s in row[1:]))

    for ca in a:
        diagonal = row[0]
        row[0] = diagonal.extend(Operation.DELETE)
        for j, cb in enumerate(b, 1):
            left = row[j - 1]
            above = row[j]
            keep = ca == cb
            diagonal_cost = diagonal.cost + (not keep)
            if left.cost <= above.cost and left.cost + 1 <= diagonal_cost:
                best = left.extend(Operation.INSERT)
            elif above.cost + 1 <= diagonal_cost:
                best = above.extend(Operation.DELETE)
            else:
                best = diagonal.extend(Operation.KEEP if keep else Operation.SUBST)
            diagonal = above
            row[j] = best
        if dump:
            logger.debug(
                f"{ca} {row[0].cost:>2}"
                + "".join(f" {s.cost:>2}{s.last_operation().symbol}" for s in row[1:])
            )

    result = row[-1]
    if dump:
        logger.debug(f"{a} -> {b} = {result.trace()}")
    return result


def similarity(a: str, b: str) -> int:
    """Similarity of two words: the longer length minus the edit cost."""
    return max(len(a), len(b)) - distance(a, b).cost
