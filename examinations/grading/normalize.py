"""
Answer normalization shared by the evaluators and the integrity service.

Both paths must agree on when two answers are equivalent, so every
comparison and every hash goes through ``normalize_answer``.
"""
from typing import Any, List


def normalize_answer(answer: Any) -> str:
    """Normalize any JSON-like answer to a canonical string."""
    if answer is None:
        return ''

    if isinstance(answer, str):
        return answer.strip().lower()

    if isinstance(answer, bool):
        return 'true' if answer else 'false'

    if isinstance(answer, float) and answer.is_integer():
        return str(int(answer))

    if isinstance(answer, (int, float)):
        return str(answer)

    if isinstance(answer, (list, tuple, set)):
        return ','.join(sorted(normalize_answer(item) for item in answer))

    if isinstance(answer, dict):
        return ','.join(
            f"{key}:{normalize_answer(answer[key])}"
            for key in sorted(answer, key=str)
        )

    return str(answer).strip().lower()


def as_identifier_list(value: Any) -> List[str]:
    """Coerce a scalar or sequence of option identifiers to normalized strings."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [normalize_answer(item) for item in value]
    return [normalize_answer(value)]
