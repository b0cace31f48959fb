"""Parse utilities for configuration values and server-directed settings."""

import logging
import re
from datetime import timedelta

__author__ = "ft"


logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^(\d+?)([WDHMS])(.*)")


def duration_to_timedelta(duration: str | None) -> timedelta:
    """Parse strings such as P3D or PT1H5M (ISO8601 durations) into timedeltas."""
    if not duration:
        return timedelta()
    if not duration.startswith("P"):
        raise ValueError(f'Duration does not start with "P": {duration}')
    duration = duration[1:]
    res = timedelta()
    # 'M' means month until we see a 'T', then it means minutes
    time_section = False
    while duration:
        if duration.startswith("T"):
            time_section = True
            duration = duration[1:]
        m = _DURATION_RE.match(duration)
        if not m:
            raise ValueError(f"Invalid ISO8601 duration (at {duration})")
        num_str, what, rest = m.groups()
        num = int(num_str)
        if what == "W":
            res += timedelta(days=7 * num)
        elif what == "D":
            res += timedelta(days=num)
        elif what == "H":
            res += timedelta(hours=num)
        elif what == "M":
            if not time_section:
                # the length of one month is different depending on start date
                raise NotImplementedError("Months are not supported")
            res += timedelta(minutes=num)
        elif what == "S":
            res += timedelta(seconds=num)
        duration = rest
    return res


def timedelta_to_duration(td: timedelta) -> str:
    """Format a timedelta as an ISO8601 duration accepted by duration_to_timedelta()."""
    if td < timedelta():
        raise ValueError(f"Negative durations are not supported: {td}")
    seconds = int(td.total_seconds())
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    res = "P"
    if days:
        res += f"{days}D"
    if hours or minutes or seconds or not days:
        res += "T"
        if hours:
            res += f"{hours}H"
        if minutes:
            res += f"{minutes}M"
        if seconds or not (hours or minutes):
            res += f"{seconds}S"
    return res


def duration_or_timedelta(value: str | int | float | timedelta) -> timedelta:
    """Accept a duration given as ISO8601 string, number of seconds or timedelta."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    return duration_to_timedelta(value)


def epoch_millis(td: timedelta) -> int:
    """Return a timedelta as a whole number of milliseconds."""
    return td // timedelta(milliseconds=1)
