"""
kpi/dimensions.py

Category keys derived from raw records: booking channel types and
cleaning shifts.

Channel mapping (booking origin id)
-----------------------------------
1, 6 → INTERNAL
3    → GUIA_GO when the service date equals the booking start date,
       otherwise GUIA_SCHEDULED
4    → WEBSITE_IMMEDIATE / WEBSITE_SCHEDULED by the same rule
7    → BOOKING
8    → EXPEDIA
other → no channel

Shift mapping (employee shift start)
------------------------------------
06:00–10:59 → MORNING
11:00–18:59 → AFTERNOON
19:00–23:59 → NIGHT
otherwise   → OUTSOURCED
"""

from __future__ import annotations

from datetime import time
from enum import Enum

from app.domain.records import BookingRecord, CleaningRecord


class ChannelType(str, Enum):
    INTERNAL = "INTERNAL"
    GUIA_GO = "GUIA_GO"
    GUIA_SCHEDULED = "GUIA_SCHEDULED"
    WEBSITE_IMMEDIATE = "WEBSITE_IMMEDIATE"
    WEBSITE_SCHEDULED = "WEBSITE_SCHEDULED"
    BOOKING = "BOOKING"
    EXPEDIA = "EXPEDIA"


class Shift(str, Enum):
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"
    NIGHT = "NIGHT"
    OUTSOURCED = "OUTSOURCED"


_FIXED_CHANNELS: dict[int, ChannelType] = {
    1: ChannelType.INTERNAL,
    6: ChannelType.INTERNAL,
    7: ChannelType.BOOKING,
    8: ChannelType.EXPEDIA,
}

_SAME_DAY_CHANNELS: dict[int, tuple[ChannelType, ChannelType]] = {
    3: (ChannelType.GUIA_GO, ChannelType.GUIA_SCHEDULED),
    4: (ChannelType.WEBSITE_IMMEDIATE, ChannelType.WEBSITE_SCHEDULED),
}


def channel_type_for(booking: BookingRecord) -> ChannelType | None:
    origin = booking.origin_type_id
    if origin is None:
        return None
    if origin in _FIXED_CHANNELS:
        return _FIXED_CHANNELS[origin]
    if origin in _SAME_DAY_CHANNELS:
        immediate, scheduled = _SAME_DAY_CHANNELS[origin]
        same_day = (
            booking.start_date is not None
            and booking.date_service.date() == booking.start_date.date()
        )
        return immediate if same_day else scheduled
    return None


def shift_for(cleaning: CleaningRecord) -> Shift:
    start = cleaning.shift_start
    if start is None:
        return Shift.OUTSOURCED
    if time(6) <= start < time(11):
        return Shift.MORNING
    if time(11) <= start < time(19):
        return Shift.AFTERNOON
    if time(19) <= start:
        return Shift.NIGHT
    return Shift.OUTSOURCED
