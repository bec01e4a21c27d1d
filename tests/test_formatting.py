from datetime import datetime, timezone

from constants.messages import Messages
from utils.formatting import format_date, format_duration, format_score, format_time


def test_format_time():
    assert format_time(600) == "10:00"
    assert format_time(59) == "00:59"
    assert format_time(3725) == "62:05"
    assert format_time(-4) == "00:00"


def test_format_score():
    assert format_score(None) == "-"
    assert format_score(80.0) == "80"
    assert format_score(33.333) == "33.33"


def test_format_date_and_duration():
    assert format_date(None, "ID") == "Tidak ditentukan"
    assert format_date(datetime(2026, 1, 10, 8, 5, tzinfo=timezone.utc)) == "10 Jan 2026 08:05"
    assert format_duration(None, "EN") == "No time limit"
    assert format_duration(15, "ID") == "15 menit"


def test_messages_fall_back_to_indonesian_then_key():
    assert Messages.get("ATTEMPT_ALREADY_SUBMITTED", "ID") == "Kuis ini sudah dikumpulkan."
    assert Messages.get("ATTEMPT_ALREADY_SUBMITTED", "en") == "This quiz has already been submitted."
    assert Messages.get("ATTEMPT_ALREADY_SUBMITTED", "UZ") == "Kuis ini sudah dikumpulkan."
    assert Messages.get("NO_SUCH_MESSAGE", "EN") == "NO_SUCH_MESSAGE"
    assert Messages.get("UNSAVED_ANSWERS", "EN").format(count=2) == "2 answers are not saved on the server."
