# tgsync/utils.py
"""
Value conversion helpers shared by the sync services.

Everything here is a pure function: Telegram URL parsing, counter and
duration normalization, link validation, and the text features stored
for each post (word count, detected language).
"""
import re
import time
from datetime import datetime, timedelta, timezone, tzinfo
from typing import NamedTuple, Optional, Tuple
from urllib.parse import urlparse

from langdetect import DetectorFactory, detect_langs
from langdetect.lang_detect_exception import LangDetectException

# Makes language detection deterministic for the same input
DetectorFactory.seed = 0

TG_URL_RE = re.compile(r"^https?://(?:www\.)?t\.me/(?:s/)?([\w]+)(?:/(\d+))?", re.IGNORECASE)
COUNTER_RE = re.compile(r"(\d+(?:\.\d+)?|\.\d+)\s*([A-Za-z])?")
TAG_RE = re.compile(r"<[^>]*>?")
WORD_RE = re.compile(r"\w+(?:['’-]\w+)*")

MIN_HANDLE_LENGTH = 5
MIN_TEXT_FEATURE_LENGTH = 10
MULTIPLIERS = {"K": 1000, "M": 1000000}


class TgUrl(NamedTuple):
    tg_id: Optional[str]
    post_id: Optional[str]


def parse_tg_url(url: Optional[str]) -> TgUrl:
    """
    Split a t.me link into (channel handle, post id).

    A purely numeric first segment is a post id without a handle.
    Handles shorter than five characters are not valid channel handles.
    """
    match = TG_URL_RE.match(url or "")
    if not match:
        return TgUrl(None, None)

    tg_id, post_id = match.groups()
    if tg_id.isdigit():
        return TgUrl(None, tg_id)
    if len(tg_id) < MIN_HANDLE_LENGTH:
        return TgUrl(None, None)
    return TgUrl(tg_id, post_id)


def is_bot_handle(tg_id: Optional[str]) -> bool:
    return bool(tg_id) and tg_id.lower().endswith("_bot")


def is_invite_reference(value: Optional[str]) -> bool:
    return bool(value) and "joinchat" in value.lower()


def convert_to_full_number(value) -> int:
    """Convert a counter like "845", "1.2K" or "3M" to an integer."""
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return int(value)

    match = COUNTER_RE.search(str(value).replace(" ", "").replace(",", ""))
    if not match:
        return 0
    number, suffix = match.groups()
    multiplier = MULTIPLIERS.get((suffix or "").upper(), 1)
    return int(round(float(number) * multiplier))


def parse_subscribers(value: Optional[str]) -> int:
    # "12 345 subscribers", "1.2K subscribers"
    if not value:
        return 0
    return convert_to_full_number(value.replace(" ", ""))


def convert_time_to_seconds(value: Optional[str]) -> int:
    """Convert "m:ss" or "h:mm:ss" to seconds; anything else counts as 0."""
    if not value:
        return 0
    seconds = 0
    for part in value.strip().split(":"):
        if not part.isdigit():
            return 0
        seconds = seconds * 60 + int(part)
    return seconds


def is_valid_http_url(value: Optional[str]) -> bool:
    try:
        parsed = urlparse(value or "")
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def link_host(url: str) -> str:
    host = urlparse(url).hostname or ""
    return re.sub(r"^www\.", "", host)


def strip_tags(text: Optional[str]) -> str:
    return TAG_RE.sub("", text or "")


def _has_enough_text(text: str) -> bool:
    return len(re.sub(r"\s", "", text)) > MIN_TEXT_FEATURE_LENGTH


def get_words_count(text: Optional[str]) -> int:
    plain = strip_tags(text)
    if not _has_enough_text(plain):
        return 0
    return len(WORD_RE.findall(plain))


def detect_lang(text: Optional[str]) -> Optional[str]:
    """Most probable ISO 639-1 language code, or None for short/undetectable text."""
    plain = strip_tags(text)
    if not _has_enough_text(plain):
        return None
    try:
        candidates = detect_langs(plain)
    except LangDetectException:
        return None
    return candidates[0].lang if candidates else None


def now_ms() -> float:
    return time.time() * 1000


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values (SQLite drops tzinfo) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return to_utc(value)
    try:
        return to_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None


def local_midnight(value: datetime, tz: tzinfo) -> datetime:
    local = to_utc(value).astimezone(tz)
    return datetime(local.year, local.month, local.day, tzinfo=tz)


def local_day_window(now: datetime, tz: tzinfo) -> Tuple[datetime, datetime]:
    """Half-open [start, end) bounds of the local calendar day containing ``now``, in UTC."""
    start = local_midnight(now, tz)
    next_day = start.date() + timedelta(days=1)
    end = datetime(next_day.year, next_day.month, next_day.day, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)
