"""Standardized API response helpers.

List endpoints return a consistent envelope:
    {"items": [...], "total": <int>}

Endpoints may add their own top-level keys next to ``items`` and ``total``
(the grouped movement listing adds ``partial_groups``).
"""

from typing import Any


def list_response(items: list, total: int = None, **extra: Any) -> dict:
    """Wrap a list in the standard envelope.

    Args:
        items: The list of serialized items.
        total: Total count (defaults to len(items) when the full list is returned).
        **extra: Additional top-level keys.
    """
    envelope = {
        "items": items,
        "total": total if total is not None else len(items),
    }
    envelope.update(extra)
    return envelope
