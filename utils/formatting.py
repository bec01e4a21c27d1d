from datetime import datetime
from typing import Optional

from constants.messages import Messages


def format_time(seconds: int) -> str:
    """Countdown as mm:ss (minutes are not wrapped into hours)."""
    seconds = max(0, int(seconds))
    m, s = divmod(seconds, 60)
    return f"{m:02d}:{s:02d}"


def format_date(value: Optional[datetime], lang: str = None) -> str:
    if value is None:
        return Messages.get("NOT_SPECIFIED", lang)
    return value.strftime("%d %b %Y %H:%M")


def format_score(value: Optional[float]) -> str:
    if value is None:
        return "-"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def format_duration(minutes: Optional[int], lang: str = None) -> str:
    if not minutes:
        return Messages.get("UNTIMED", lang)
    return Messages.get("MINUTES", lang).format(minutes=minutes)
