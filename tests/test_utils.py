"""Tests for value conversion helpers."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from tgsync.utils import (
    convert_time_to_seconds,
    convert_to_full_number,
    detect_lang,
    get_words_count,
    is_bot_handle,
    is_invite_reference,
    is_valid_http_url,
    link_host,
    local_day_window,
    local_midnight,
    parse_datetime,
    parse_subscribers,
    parse_tg_url,
    to_utc,
)

MOSCOW = ZoneInfo("Europe/Moscow")


class TestParseTgUrl:
    """Tests for splitting t.me links into handle and post id."""

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://t.me/newchan", ("newchan", None)),
            ("https://t.me/newchan/45", ("newchan", "45")),
            ("https://t.me/s/durovchan/123", ("durovchan", "123")),
            ("https://www.t.me/somechan", ("somechan", None)),
            ("http://T.ME/MixedCase", ("MixedCase", None)),
            ("https://t.me/12345", (None, "12345")),
            ("https://t.me/abc", (None, None)),
            ("https://example.com/newchan", (None, None)),
            ("", (None, None)),
            (None, (None, None)),
        ],
    )
    def test_parse(self, url, expected):
        assert tuple(parse_tg_url(url)) == expected

    def test_invite_link_handle(self):
        """Invite links parse to the literal "joinchat" handle."""
        tg_id, post_id = parse_tg_url("https://t.me/joinchat/AAAAbbbb")
        assert tg_id == "joinchat"
        assert post_id is None
        assert is_invite_reference(tg_id)


class TestHandleChecks:
    """Tests for bot and invite detection."""

    def test_bot_suffix(self):
        assert is_bot_handle("helper_bot")
        assert is_bot_handle("Helper_BOT")
        assert not is_bot_handle("botanics")
        assert not is_bot_handle(None)

    def test_invite_reference(self):
        assert is_invite_reference("https://t.me/joinchat/XYZ")
        assert not is_invite_reference("https://t.me/newchan")
        assert not is_invite_reference(None)


class TestCounters:
    """Tests for counter normalization."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("845", 845),
            ("1.2K", 1200),
            ("1.5k", 1500),
            ("3M", 3000000),
            ("2.25M", 2250000),
            ("12 345", 12345),
            ("1,024", 1024),
            (".5K", 500),
            ("", 0),
            ("n/a", 0),
            (None, 0),
            (77, 77),
        ],
    )
    def test_convert_to_full_number(self, value, expected):
        assert convert_to_full_number(value) == expected

    def test_subscribers_with_label(self):
        assert parse_subscribers("1.2K subscribers") == 1200
        assert parse_subscribers("12 345 subscribers") == 12345
        assert parse_subscribers(None) == 0


class TestDurations:
    """Tests for media duration parsing."""

    @pytest.mark.parametrize(
        "value, expected",
        [("0:15", 15), ("1:05", 65), ("1:02:03", 3723), ("abc", 0), ("1:xx", 0), ("", 0), (None, 0)],
    )
    def test_convert_time_to_seconds(self, value, expected):
        assert convert_time_to_seconds(value) == expected


class TestLinks:
    def test_valid_http_url(self):
        assert is_valid_http_url("https://example.com/a")
        assert is_valid_http_url("http://example.com")
        assert not is_valid_http_url("ftp://files.example.com/x")
        assert not is_valid_http_url("tg://resolve?domain=x")
        assert not is_valid_http_url("/relative/path")
        assert not is_valid_http_url(None)

    def test_link_host_strips_www(self):
        assert link_host("https://www.example.com/a") == "example.com"
        assert link_host("https://t.me/newchan") == "t.me"


class TestTextFeatures:
    """Tests for word count and language detection."""

    def test_short_text_has_no_features(self):
        assert get_words_count("Short") == 0
        assert detect_lang("Short") is None
        assert detect_lang("") is None
        assert detect_lang(None) is None

    def test_words_count_ignores_markup(self):
        text = "Hello <b>world</b>, this is a longer sentence"
        assert get_words_count(text) == 7

    def test_detects_english(self):
        text = "This is a fairly long English sentence about the weather and the news of the day."
        assert detect_lang(text) == "en"

    def test_detection_is_deterministic(self):
        text = "Сегодня в городе прошел сильный дождь, и многие улицы оказались затоплены."
        lang = detect_lang(text)
        assert lang is not None
        assert all(detect_lang(text) == lang for _ in range(5))


class TestDates:
    """Tests for timezone handling."""

    def test_to_utc_treats_naive_as_utc(self):
        assert to_utc(datetime(2024, 5, 10, 12)) == datetime(2024, 5, 10, 12, tzinfo=timezone.utc)

    def test_parse_datetime(self):
        assert parse_datetime("2024-05-10T09:00:00+03:00") == datetime(2024, 5, 10, 6, tzinfo=timezone.utc)
        assert parse_datetime("2024-05-10T09:00:00Z") == datetime(2024, 5, 10, 9, tzinfo=timezone.utc)
        assert parse_datetime("yesterday") is None
        assert parse_datetime(None) is None

    def test_local_midnight(self):
        # 22:30 UTC is already the next day in Moscow
        value = datetime(2024, 5, 9, 22, 30, tzinfo=timezone.utc)
        midnight = local_midnight(value, MOSCOW)
        assert midnight.astimezone(timezone.utc) == datetime(2024, 5, 9, 21, tzinfo=timezone.utc)

    def test_local_day_window(self):
        start, end = local_day_window(datetime(2024, 5, 10, 12, tzinfo=timezone.utc), MOSCOW)
        assert start == datetime(2024, 5, 9, 21, tzinfo=timezone.utc)
        assert end == datetime(2024, 5, 10, 21, tzinfo=timezone.utc)

    def test_local_day_window_utc(self):
        start, end = local_day_window(datetime(2024, 5, 10, 23, 59, tzinfo=timezone.utc), timezone.utc)
        assert start == datetime(2024, 5, 10, tzinfo=timezone.utc)
        assert end == datetime(2024, 5, 11, tzinfo=timezone.utc)
