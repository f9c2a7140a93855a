"""Display helpers for captions, comments and timestamps."""

from datetime import datetime, timezone
from typing import Optional, Union

from photofeed.config_secrets import MAX_CAPTION_LENGTH

DEFAULT_TRUNCATE_LENGTH = 100

_RELATIVE_TIME_UNITS = {
    "en": {
        "now": "just now",
        "minutes": "{}m ago",
        "hours": "{}h ago",
        "days": "{}d ago",
    },
    "ko": {
        "now": "방금 전",
        "minutes": "{}분 전",
        "hours": "{}시간 전",
        "days": "{}일 전",
    },
}


def _parse_timestamp(value: Union[str, datetime]) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_relative_time(
    value: Union[str, datetime],
    now: Optional[datetime] = None,
    locale: str = "en",
) -> str:
    """
    Format a timestamp relative to now.

    Under a minute is "just now", then minutes, hours and days. From seven
    days on the date itself is shown as "YYYY. MM. DD".

    Args:
        value: ISO 8601 string or datetime; naive values are taken as UTC
        now: Reference time, defaults to the current time
        locale: "en" or "ko"
    """
    moment = _parse_timestamp(value)
    reference = _parse_timestamp(now) if now is not None else datetime.now(timezone.utc)
    units = _RELATIVE_TIME_UNITS.get(locale, _RELATIVE_TIME_UNITS["en"])

    seconds = int((reference - moment).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 60:
        return units["now"]
    if minutes < 60:
        return units["minutes"].format(minutes)
    if hours < 24:
        return units["hours"].format(hours)
    if days < 7:
        return units["days"].format(days)
    return moment.strftime("%Y. %m. %d")


def truncate_text(text: Optional[str], max_length: int = DEFAULT_TRUNCATE_LENGTH) -> str:
    """Cut text to max_length characters and append "..." when it was longer"""
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def is_text_truncated(text: Optional[str], max_length: int = DEFAULT_TRUNCATE_LENGTH) -> bool:
    if not text:
        return False
    return len(text) > max_length


def clean_caption(caption: Optional[str], max_length: int = MAX_CAPTION_LENGTH) -> Optional[str]:
    """Trim a caption; blank captions become None. Raises ValueError when too long."""
    if caption is None:
        return None
    caption = caption.strip()
    if not caption:
        return None
    if len(caption) > max_length:
        raise ValueError(f"Caption exceeds maximum length of {max_length} characters")
    return caption
