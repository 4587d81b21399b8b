"""Encoding of structured answers into the strings stored in ``Result.answers``.

Every answer is persisted as a string. Plain question types store the
chosen text directly; the structured ones use these encodings:

* TRUE_FALSE   -> JSON array of booleans, one per row: ``[true, false]``
* MATCHING     -> JSON object, pair index -> chosen right value: ``{"0": "1"}``
* COMPLEX_MULTIPLE_CHOICE -> comma joined choices: ``"a,b"``

Decoders raise ``AnswerDecodeError``; callers that grade treat it as a
wrong answer.
"""

import json
from typing import Dict, Iterable, List, Mapping, Sequence


class AnswerDecodeError(ValueError):
    """The encoded answer does not have the expected shape."""


def encode_true_false(values: Sequence[bool]) -> str:
    return json.dumps([bool(v) for v in values])


def decode_true_false(encoded: str) -> List[bool]:
    try:
        values = json.loads(encoded)
    except (TypeError, ValueError, RecursionError) as exc:
        raise AnswerDecodeError(f"Not a JSON array: {encoded!r}") from exc
    if not isinstance(values, list) or not all(isinstance(v, bool) for v in values):
        raise AnswerDecodeError(f"Expected a list of booleans: {encoded!r}")
    return values


def encode_matching(mapping: Mapping[int, str]) -> str:
    return json.dumps({str(index): value for index, value in mapping.items()})


def decode_matching(encoded: str) -> Dict[int, str]:
    try:
        raw = json.loads(encoded)
    except (TypeError, ValueError, RecursionError) as exc:
        raise AnswerDecodeError(f"Not a JSON object: {encoded!r}") from exc
    if not isinstance(raw, dict):
        raise AnswerDecodeError(f"Expected an object of index -> value: {encoded!r}")
    decoded: Dict[int, str] = {}
    for key, value in raw.items():
        try:
            index = int(key)
        except (TypeError, ValueError) as exc:
            raise AnswerDecodeError(f"Pair index {key!r} is not an integer") from exc
        if value is not None and not isinstance(value, str):
            raise AnswerDecodeError(f"Pair {index} value must be a string")
        decoded[index] = value
    return decoded


def encode_choice_set(choices: Iterable[str]) -> str:
    return ",".join(choices)


def canonical_choice_set(encoded: str) -> str:
    """Comma split, trim every token, sort and re-join.

    ``"b, a"`` and ``"a,b"`` share the canonical form ``"a,b"``.
    """
    return ",".join(sorted(token.strip() for token in encoded.split(",")))
