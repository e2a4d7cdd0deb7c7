"""Conversion of the compact API time stamps (``yyMMddHHmmss``).

Time stamps reported by the devices are in the local time zone of the
device (or of the smart meter behind it), not in UTC. Pass the zone of the
device as ``tz``; without it the zone of the machine running this code is
assumed.
"""

from __future__ import annotations

from datetime import datetime, tzinfo

API_TIMESTAMP_FORMAT = "%y%m%d%H%M%S"


def parse_api_timestamp(value: int | str | None, tz: tzinfo | None = None) -> datetime | None:
    """Convert an API time stamp into an aware datetime.

    Returns None when there is no time stamp or it can't be parsed.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        naive = datetime.strptime(f"{int(value):012d}", API_TIMESTAMP_FORMAT)
    except (TypeError, ValueError):
        return None
    if tz is None:
        return naive.astimezone()
    return naive.replace(tzinfo=tz)


def to_api_timestamp(moment: datetime, tz: tzinfo | None = None) -> int:
    """Convert a datetime into an API time stamp in the given zone."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return int(moment.strftime(API_TIMESTAMP_FORMAT))
