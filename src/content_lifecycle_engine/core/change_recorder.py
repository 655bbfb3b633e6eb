"""Field-level diff engine.

Pure functions, no storage and no errors: diff() is total over any pair of
attribute maps. Nested mappings and sequences are compared structurally, and
booleans never compare equal to numbers (``True`` vs ``1`` is a change, as it
would be once serialized to JSON).
"""

from collections.abc import Mapping, Sequence
from typing import Any


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def values_equal(old: Any, new: Any) -> bool:
    """Deep structural equality with JSON semantics.

    Args:
        old: Previous value.
        new: Current value.

    Returns:
        True if the two values would serialize to the same JSON document.
    """
    if isinstance(old, bool) or isinstance(new, bool):
        return type(old) is type(new) and old == new
    if isinstance(old, Mapping) and isinstance(new, Mapping):
        if old.keys() != new.keys():
            return False
        return all(values_equal(old[key], new[key]) for key in old)
    if _is_sequence(old) and _is_sequence(new):
        if len(old) != len(new):
            return False
        return all(values_equal(a, b) for a, b in zip(old, new))
    return old == new


def diff(old: Mapping[str, Any], new: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Return only the keys whose values differ between two attribute maps.

    A key present only in ``new`` yields ``{"old": None, "new": value}``; a
    key present only in ``old`` yields ``{"old": value, "new": None}``.
    Keys keep the order they appear in ``old`` followed by keys new in ``new``.

    Args:
        old: Attribute map before the change.
        new: Attribute map after the change.

    Returns:
        Mapping of changed key -> {"old": ..., "new": ...}.
    """
    changes: dict[str, dict[str, Any]] = {}
    for key, old_value in old.items():
        if key not in new:
            changes[key] = {"old": old_value, "new": None}
        elif not values_equal(old_value, new[key]):
            changes[key] = {"old": old_value, "new": new[key]}
    for key, new_value in new.items():
        if key not in old:
            changes[key] = {"old": None, "new": new_value}
    return changes
