import re
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict

from .errors import InvalidTimeFormat
from .zones import get_zoneinfo

TIME_PATTERN = re.compile(r"([01][0-9]|2[0-3]):([0-5][0-9])")


class TimeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    timezone: str
    datetime: str


class TimeConversionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: TimeResult
    target: TimeResult
    time_difference: str


def parse_time(time_str: str) -> tuple[int, int]:
    """Parse a strict 24-hour ``HH:MM`` string into ``(hour, minute)``."""
    match = TIME_PATTERN.fullmatch(time_str) if isinstance(time_str, str) else None
    if match is None:
        raise InvalidTimeFormat(time_str)
    return int(match.group(1)), int(match.group(2))


def format_time_difference(minutes: int) -> str:
    """Render an offset delta in minutes as signed hours, e.g. ``+8h`` or ``+5.75h``."""
    hours = minutes / 60
    if hours.is_integer():
        return f"{int(hours):+d}h"
    # Nepal (UTC+5:45) and friends
    return f"{hours:+.2f}".rstrip("0").rstrip(".") + "h"


def _offset_minutes(delta: timedelta | None) -> int:
    return round((delta or timedelta()).total_seconds() / 60)


class TimeServer:
    def get_current_time(self, timezone_name: str) -> TimeResult:
        """Get current time in specified timezone"""
        timezone = get_zoneinfo(timezone_name)
        current_time = datetime.now(timezone)

        return TimeResult(
            timezone=timezone_name,
            datetime=current_time.isoformat(timespec="seconds"),
        )

    def convert_time(
        self, source_tz: str, time_str: str, target_tz: str
    ) -> TimeConversionResult:
        """Convert a wall-clock time today in ``source_tz`` to ``target_tz``"""
        source_timezone = get_zoneinfo(source_tz, role="source")
        target_timezone = get_zoneinfo(target_tz, role="target")
        hour, minute = parse_time(time_str)

        now = datetime.now(source_timezone)
        source_time = datetime(
            now.year,
            now.month,
            now.day,
            hour,
            minute,
            tzinfo=source_timezone,
        )
        target_time = source_time.astimezone(target_timezone)

        difference = _offset_minutes(target_time.utcoffset()) - _offset_minutes(
            source_time.utcoffset()
        )

        return TimeConversionResult(
            source=TimeResult(
                timezone=source_tz,
                datetime=source_time.isoformat(timespec="seconds"),
            ),
            target=TimeResult(
                timezone=target_tz,
                datetime=target_time.isoformat(timespec="seconds"),
            ),
            time_difference=format_time_difference(difference),
        )
