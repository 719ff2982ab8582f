"""
Word-level alignment of two strings.

Both strings are split into tokens, every token pair is scored with the
character distance engine, and the best one-to-one pairing of tokens
decides the overall score.
"""

import re
from typing import List, Sequence

from .levenshtein import similarity

# Above this matrix size the factorial search is replaced by the Hungarian method.
EXHAUSTIVE_LIMIT = 6

_DELIMITERS = re.compile(r"[():]")

Matrix = List[List[int]]


def tokenize(s: str) -> List[str]:
    """Split on whitespace, then on ``(``, ``)`` and ``:``. Empty pieces are dropped."""
    return [piece for word in s.split() for piece in _DELIMITERS.split(word) if piece]


def similarity_matrix(a_tokens: Sequence[str], b_tokens: Sequence[str]) -> Matrix:
    """
    Square similarity matrix for two token lists.

    Rows belong to ``a_tokens``, columns to ``b_tokens``. The shorter side is
    padded with zero rows or columns up to ``max(len(a), len(b))``.
    """
    size = max(len(a_tokens), len(b_tokens))
    matrix = [[0] * size for _ in range(size)]
    for i, a_word in enumerate(a_tokens):
        for j, b_word in enumerate(b_tokens):
            matrix[i][j] = similarity(a_word, b_word)
    return matrix


def exhaustive_assignment(matrix: Matrix) -> int:
    """
    Maximum total weight of a row/column bijection by exhaustive search.

    The last row is paired with every remaining column in turn, the column
    is removed from the other rows for the recursive call and put back
    afterwards. O(n!) in the matrix size, so only usable for a handful of
    tokens.
    """
    return _search([list(row) for row in matrix])


def _search(rows: Matrix) -> int:
    if not rows:
        return 0
    row = rows.pop()
    best = 0
    for i, weight in enumerate(row):
        column = [other.pop(i) for other in rows]
        total = weight + _search(rows)
        for other, value in zip(rows, column):
            other.insert(i, value)
        if total > best:
            best = total
    rows.append(row)
    return best


def hungarian_assignment(matrix: Matrix) -> int:
    """
    Maximum total weight of a row/column bijection, O(n^3).

    Kuhn-Munkres with row/column potentials, run on ``top - weight`` so the
    minimising formulation yields the maximum-weight assignment.
    """
    n = len(matrix)
    if n == 0:
        return 0
    top = max(max(row) for row in matrix)
    cost = [[top - weight for weight in row] for row in matrix]

    inf = float("inf")
    u = [0] * (n + 1)
    v = [0] * (n + 1)
    # match[j]: row assigned to column j, 1-based; column 0 is a sentinel
    match = [0] * (n + 1)
    way = [0] * (n + 1)
    for i in range(1, n + 1):
        match[0] = i
        j0 = 0
        minv = [inf] * (n + 1)
        used = [False] * (n + 1)
        while True:
            used[j0] = True
            i0 = match[j0]
            delta = inf
            j1 = 0
            for j in range(1, n + 1):
                if used[j]:
                    continue
                cur = cost[i0 - 1][j - 1] - u[i0] - v[j]
                if cur < minv[j]:
                    minv[j] = cur
                    way[j] = j0
                if minv[j] < delta:
                    delta = minv[j]
                    j1 = j
            for j in range(n + 1):
                if used[j]:
                    u[match[j]] += delta
                    v[j] -= delta
                else:
                    minv[j] -= delta
            j0 = j1
            if match[j0] == 0:
                break
        while j0:
            j1 = way[j0]
            match[j0] = match[j1]
            j0 = j1

    return sum(matrix[match[j] - 1][j - 1] for j in range(1, n + 1))


def best_assignment(matrix: Matrix) -> int:
    """Maximum-weight bijection, picking the search strategy by matrix size."""
    if len(matrix) <= EXHAUSTIVE_LIMIT:
        return exhaustive_assignment(matrix)
    return hungarian_assignment(matrix)


def best_alignment(a: str, b: str) -> int:
    """
    Score how well the words of ``a`` line up with the words of ``b``.

    The result is the largest sum of token similarities over all one-to-one
    pairings of tokens; unpaired tokens contribute nothing. No case folding
    is done here.
    """
    return best_assignment(similarity_matrix(tokenize(a), tokenize(b)))
