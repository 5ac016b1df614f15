# examdesk_platform/exams/shuffling.py
"""
Per-student option ordering.

The order in which a student sees the options of a question is never stored.
It is recomputed from ``(user id, question id, attempt id)`` whenever it is
needed: once when the exam paper is handed out and again when the submitted
answer indices are graded. Both sides must therefore run exactly the same
algorithm, which is why every algorithm here is tagged with a version number
and an attempt records the version it was started with. Released versions
must never change.

Version 1
    Seed = sum of the character codes of the key, linear congruential
    generator evaluated with IEEE double arithmetic (the legacy web client's
    behaviour), Fisher-Yates from the end.

Version 2
    Seed = first four bytes of SHA-256(key) masked to 31 bits, same generator
    in exact integer arithmetic, same Fisher-Yates.
"""
from __future__ import annotations

import hashlib
from operator import attrgetter
from typing import Iterator, List, NamedTuple, Optional, Sequence

SHUFFLE_V1_CHARSUM = 1
SHUFFLE_V2_SHA256 = 2
CURRENT_SHUFFLE_VERSION = SHUFFLE_V2_SHA256
SUPPORTED_SHUFFLE_VERSIONS = (SHUFFLE_V1_CHARSUM, SHUFFLE_V2_SHA256)

_LCG_MULTIPLIER = 1103515245
_LCG_INCREMENT = 12345
_LCG_MASK = 0x7FFFFFFF


class OrderedOption(NamedTuple):
    """Minimal option shape the resolver needs; model instances work too."""
    id: object
    sequence: int = 0


_base_key = attrgetter('sequence', 'id')


def base_order(options: Sequence) -> list:
    """Authoring order: by sequence, ties broken by id."""
    return sorted(options, key=_base_key)


def shuffle_key(user_id, question_id, attempt_id=None) -> str:
    if attempt_id:
        return f"{user_id}-{question_id}-{attempt_id}"
    # Attempts always carry an id; the two-part key is kept for old papers.
    return f"{user_id}-{question_id}"


def shuffle_seed(key: str, version: int = CURRENT_SHUFFLE_VERSION) -> int:
    if version == SHUFFLE_V1_CHARSUM:
        return sum(ord(ch) for ch in key)
    if version == SHUFFLE_V2_SHA256:
        digest = hashlib.sha256(key.encode('utf-8')).digest()
        return int.from_bytes(digest[:4], 'big') & _LCG_MASK
    raise ValueError(f"Unknown shuffle algorithm version: {version}")


def _random_stream(seed: int, version: int) -> Iterator[float]:
    state = seed
    while True:
        if version == SHUFFLE_V1_CHARSUM:
            # The legacy client multiplied in double precision, which loses
            # low bits once the product passes 2**53.
            state = int(float(state) * float(_LCG_MULTIPLIER) + float(_LCG_INCREMENT)) & _LCG_MASK
        else:
            state = (state * _LCG_MULTIPLIER + _LCG_INCREMENT) & _LCG_MASK
        yield state / _LCG_MASK


def seeded_shuffle(items: Sequence, seed: int, version: int = CURRENT_SHUFFLE_VERSION) -> list:
    """Fisher-Yates over a copy of ``items`` driven by the seeded generator."""
    if version not in SUPPORTED_SHUFFLE_VERSIONS:
        raise ValueError(f"Unknown shuffle algorithm version: {version}")

    shuffled = list(items)
    stream = _random_stream(seed, version)
    for i in range(len(shuffled) - 1, 0, -1):
        # r can reach exactly 1.0 when the state hits the mask
        j = min(int(next(stream) * (i + 1)), i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def resolve_option_order(
    options: Sequence,
    user_id,
    question_id,
    shuffle: bool,
    attempt_id: Optional[object] = None,
    version: int = CURRENT_SHUFFLE_VERSION,
) -> List:
    """
    Return the options in the order the given student sees them.

    ``options`` is any sequence of objects exposing ``id`` and ``sequence``.
    The input is never mutated. With ``shuffle`` off the result is the
    authoring order; with it on the result is a permutation that depends only
    on the identifiers and ``version``.
    """
    ordered = base_order(options)
    if not shuffle or len(ordered) <= 1:
        return ordered

    seed = shuffle_seed(shuffle_key(user_id, question_id, attempt_id), version)
    return seeded_shuffle(ordered, seed, version)
