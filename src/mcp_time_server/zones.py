import logging
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import tzlocal

from .errors import InvalidTimezone

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"


@lru_cache(maxsize=1024)
def _load(name: str) -> ZoneInfo | None:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        # ValueError covers empty and path-like keys, OSError directories inside tzdata
        return None


def is_valid_timezone(name: object) -> bool:
    """Return True if ``name`` is an IANA zone known to the local zone database."""
    if not isinstance(name, str) or not name:
        return False
    return _load(name) is not None


def get_zoneinfo(timezone_name: str, role: str | None = None) -> ZoneInfo:
    if not is_valid_timezone(timezone_name):
        raise InvalidTimezone(timezone_name, role)
    return _load(timezone_name)


def get_local_tz(local_tz_override: str | None = None) -> str:
    """Resolve the IANA name of the zone used when a caller omits one.

    An explicit override must be valid. Otherwise the host's configured zone is
    used, falling back to UTC when it cannot be determined.
    """
    if local_tz_override:
        get_zoneinfo(local_tz_override)
        return local_tz_override

    try:
        name = tzlocal.get_localzone_name()
    except (LookupError, ValueError, OSError) as e:
        logger.warning("Could not determine local timezone (%s), using %s", e, DEFAULT_TIMEZONE)
        return DEFAULT_TIMEZONE

    if not is_valid_timezone(name):
        logger.warning("Local timezone %r is not an IANA zone, using %s", name, DEFAULT_TIMEZONE)
        return DEFAULT_TIMEZONE
    return name
