"""Path extraction of a scalar price from a decoded JSON document.

Sources are described declaratively by a URL and a dotted path such as
``data.0.last``. Each segment is either an object key or, if it is made
only of digits, a list index.

.. code-block:: python

    >>> extract_price_from_path({"a": {"b": {"c": "42.5"}}}, "a.b.c")
    42.5
    >>> extract_price_from_path({"data": [{"last": "3.55"}]}, "data.0.last")
    3.55
    >>> extract_price_from_path({"a": {}}, "a.price") is None
    True
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any


def split_path(path: str) -> list[str]:
    """Split a dotted path into stripped, non-empty segments.

    :param path: Path string like ``"data.0.last"``.
    :returns: List of segments; consecutive dots are skipped.
    """
    return [part.strip() for part in path.split(".") if part.strip()]


def _is_index(segment: str) -> bool:
    # "-1", "1.5" and "+2" stay key lookups
    return segment.isascii() and segment.isdigit()


def resolve_path(data: Any, path: str) -> tuple[bool, Any]:
    """Walk ``data`` along ``path``.

    :param data: Decoded JSON value (dict, list, scalar).
    :param path: Dotted/indexed path string.
    :returns: Tuple of (found, value). ``found`` is False if any segment
        could not be resolved.
    """
    current = data
    for segment in split_path(path):
        if current is None:
            return False, None

        if _is_index(segment):
            if not isinstance(current, (list, tuple)):
                return False, None
            index = int(segment)
            if index >= len(current):
                return False, None
            current = current[index]
            continue

        if not isinstance(current, Mapping) or segment not in current:
            return False, None
        current = current[segment]

    if current is None:
        return False, None
    return True, current


def coerce_price(value: Any) -> float | None:
    """Coerce a terminal JSON value into a finite float.

    :param value: Value found at the end of a path.
    :returns: Finite float, or None if the value is not numeric.
    """
    if isinstance(value, bool):
        return None

    try:
        if isinstance(value, (int, float)):
            number = float(value)
        else:
            text = value if isinstance(value, str) else str(value)
            number = float(text.strip())
    except (TypeError, ValueError, OverflowError):
        # OverflowError: JSON integers beyond the float range
        return None

    return number if math.isfinite(number) else None


def extract_price_from_path(data: Any, path: str) -> float | None:
    """Extract a numeric value from ``data`` at ``path``.

    Never raises: returns None when the path cannot be resolved or the
    value found there is not a finite number.

    :param data: Decoded JSON document.
    :param path: Dotted/indexed path string.
    :returns: Finite float or None.
    """
    found, value = resolve_path(data, path)
    if not found:
        return None
    return coerce_price(value)
