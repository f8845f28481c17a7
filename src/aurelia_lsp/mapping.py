"""
Position mapping between templates and their virtual documents.

All functions here are pure and take the :class:`MappingRecord` they
translate through as an argument. Out-of-range offsets are clamped into
the record, never rejected; the only "no result" outcome is a virtual
span that lies entirely inside inserted receiver text, which has no
template counterpart.
"""

from __future__ import annotations

import bisect
from typing import Sequence

from aurelia_lsp.virtual_document import MappingRecord


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def to_virtual(offset: int, record: MappingRecord) -> int:
    """Translate a template offset into the record's virtual value range.

    Offsets at or after a rewritten identifier are shifted past the
    receiver text inserted before it.
    """
    relative = offset - record.template_start
    shift = sum(rw.width for rw in record.rewrites if rw.template_start <= offset)
    return _clamp(record.value_start + relative + shift, record.value_start, record.value_end)


def to_template(offset: int, record: MappingRecord) -> int:
    """Translate a virtual offset back into the record's template range.

    An offset inside inserted receiver text snaps to the identifier the
    text was inserted before.
    """
    offset = _clamp(offset, record.value_start, record.value_end)
    shift = 0
    for rw in record.rewrites:
        if rw.virtual_end <= offset:
            shift += rw.width
        elif rw.virtual_start <= offset:
            return _clamp(rw.template_start, record.template_start, record.template_end)
        else:
            break
    return _clamp(
        record.template_start + (offset - record.value_start) - shift,
        record.template_start,
        record.template_end,
    )


def in_receiver_prefix(start: int, end: int, record: MappingRecord) -> bool:
    """True if the virtual span ``[start, end]`` lies entirely inside inserted receiver text."""
    for rw in record.rewrites:
        if rw.virtual_start <= start and end <= rw.virtual_end and start < rw.virtual_end:
            return True
    return False


def to_template_range(start: int, end: int, record: MappingRecord) -> tuple[int, int] | None:
    """Translate a virtual span into a template range.

    Returns:
        ``(start, end)`` clamped to the template expression, or None when
        the span is unmappable.
    """
    if end < start:
        start, end = end, start
    if in_receiver_prefix(start, end, record):
        return None
    template_start = to_template(start, record)
    template_end = to_template(end, record)
    return template_start, max(template_start, template_end)


def find_record(records: Sequence[MappingRecord], offset: int) -> MappingRecord | None:
    """Find the record whose template range contains *offset* (ends inclusive).

    Records are sorted and non-overlapping; when two records touch at
    *offset* the earlier one wins.
    """
    index = bisect.bisect_right(records, offset, key=lambda r: r.template_start) - 1
    if index < 0:
        return None
    if index > 0 and records[index - 1].template_end >= offset:
        return records[index - 1]
    record = records[index]
    if record.template_start <= offset <= record.template_end:
        return record
    return None


def find_record_by_virtual(
    records: Sequence[MappingRecord], start: int, end: int
) -> MappingRecord | None:
    """Find the record whose virtual value range contains the span ``[start, end]``."""
    index = bisect.bisect_right(records, start, key=lambda r: r.value_start) - 1
    if index < 0:
        return None
    record = records[index]
    if record.value_start <= start and end <= record.value_end:
        return record
    return None


def find_records_overlapping(
    records: Sequence[MappingRecord], start: int, end: int
) -> list[MappingRecord]:
    """Records whose virtual value range overlaps ``[start, end)``."""
    result = []
    for record in records:
        if start == end:
            if record.value_start <= start <= record.value_end:
                result.append(record)
        elif max(start, record.value_start) < min(end, record.value_end):
            result.append(record)
    return result
