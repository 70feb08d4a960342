"""Shaping of API envelopes into caller-selected return formats."""

from collections.abc import Mapping
from typing import Any

from .types import ReturnMode


def prepare_result(
    envelope: Mapping[str, Any],
    ret_mode: ReturnMode | str | None = ReturnMode.ARRAY,
    ret_fields_only: bool = True,
) -> Any:
    """Convert a raw API envelope into the requested return format.

    ``objects: null`` is treated as an empty mapping in every mode. The
    opaque keys of the ``objects`` mapping (``"Person::12"``) are dropped in
    array mode; callers rely on position instead.

    Args:
        envelope: Decoded JSON envelope returned by the API.
        ret_mode: ``"array"`` (default) for a list of records, ``"object"``
            for the objects mapping, ``"all"`` for the whole envelope. Unknown
            modes behave like ``"all"``.
        ret_fields_only: In array mode, return each record's ``fields``
            instead of the whole record.

    Returns:
        A list, the objects mapping, or the envelope.
    """
    objects = envelope.get("objects")
    if objects is None:
        objects = {}
        envelope = {**envelope, "objects": objects}

    if ret_mode is None:
        ret_mode = ReturnMode.ARRAY

    if ret_mode == ReturnMode.ARRAY:
        if ret_fields_only:
            return [record.get("fields") or {} for record in objects.values()]
        return list(objects.values())
    if ret_mode == ReturnMode.OBJECT:
        return objects
    return envelope
