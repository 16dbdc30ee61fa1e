"""Flag conditions.

A condition set is a mapping of flag name to required value. It holds when
every named flag is present with an equal value. Equality is strict: a
boolean flag never matches a number, so ``{"met": True}`` is not satisfied
by ``{"met": 1}``.

An empty (or missing) condition set always holds; it is the "no gate"
default on events and choices.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

_MISSING = object()


def _same(actual: Any, expected: Any) -> bool:
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    return actual == expected


def evaluate(conditions: Mapping[str, Any] | None, flags: Mapping[str, Any]) -> bool:
    """Return True iff every condition is present in flags with an equal value."""
    if not conditions:
        return True
    for key, expected in conditions.items():
        actual = flags.get(key, _MISSING)
        if actual is _MISSING or not _same(actual, expected):
            return False
    return True


def evaluate_any(
    conditions_list: Iterable[Mapping[str, Any] | None], flags: Mapping[str, Any]
) -> bool:
    """Return True iff at least one condition set holds. Empty list → False."""
    return any(evaluate(conditions, flags) for conditions in conditions_list)
