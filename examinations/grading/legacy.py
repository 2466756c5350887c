"""
Legacy option-text matching for multiple choice answers.

Older clients stored the option *text* instead of the option id. This module
resolves such answers back to option ids so the regular id comparison can be
retried. It is only consulted after the id comparison has failed and can be
switched off with ``EXAM_ENGINE['ALLOW_LEGACY_OPTION_TEXT']``.
"""
from typing import Any, Iterable, List, Optional, Tuple

from .normalize import normalize_answer, as_identifier_list


def _option_pairs(options: Iterable[Any]) -> List[Tuple[str, str]]:
    """Return (normalized id, normalized text) for string or {id, text} options."""
    pairs = []
    for option in options:
        if isinstance(option, dict):
            option_id = option.get('id')
            text = option.get('text', '')
            if option_id is None:
                continue
        else:
            option_id = option
            text = option
        pairs.append((normalize_answer(option_id), normalize_answer(text)))
    return pairs


def resolve_option_text(response: Any, options: Optional[list]) -> Optional[List[str]]:
    """
    Map each submitted value to the id of the option whose text matches it.

    Returns None when nothing could be resolved, so callers can tell a
    failed lookup from an empty answer.
    """
    if not options or not isinstance(options, list):
        return None

    text_to_id = {}
    for option_id, text in _option_pairs(options):
        text_to_id.setdefault(text, option_id)

    resolved = []
    matched = False
    for value in as_identifier_list(response):
        if value in text_to_id:
            resolved.append(text_to_id[value])
            matched = True
        else:
            resolved.append(value)

    return resolved if matched else None
