from datetime import datetime, timedelta, timezone

from app.services.deadlines import (
    attempt_deadline, elapsed_seconds, ensure_utc, is_expired, remaining_seconds
)

START = datetime(2025, 3, 14, 10, 0, 0, tzinfo=timezone.utc)


def test_deadline_is_start_plus_duration():
    assert attempt_deadline(START, 30) == START + timedelta(minutes=30)


def test_deadline_is_clamped_by_exam_window_end():
    ends_at = START + timedelta(minutes=10)
    assert attempt_deadline(START, 30, ends_at) == ends_at


def test_window_end_after_duration_does_not_extend_deadline():
    ends_at = START + timedelta(hours=5)
    assert attempt_deadline(START, 30, ends_at) == START + timedelta(minutes=30)


def test_naive_datetimes_are_read_as_utc():
    naive = datetime(2025, 3, 14, 10, 0, 0)
    assert ensure_utc(naive) == START
    assert attempt_deadline(naive, 1) == START + timedelta(minutes=1)
    assert ensure_utc(None) is None


def test_remaining_seconds_floors_and_never_goes_negative():
    deadline = START + timedelta(seconds=90)
    assert remaining_seconds(deadline, START + timedelta(seconds=0.4)) == 89
    assert remaining_seconds(deadline, deadline) == 0
    assert remaining_seconds(deadline, deadline + timedelta(minutes=3)) == 0


def test_expiry_is_strictly_after_deadline():
    deadline = START + timedelta(minutes=30)
    assert is_expired(deadline, deadline) is False
    assert is_expired(deadline, deadline + timedelta(microseconds=1)) is True


def test_elapsed_seconds():
    assert elapsed_seconds(START, START + timedelta(minutes=2, seconds=5.9)) == 125
    assert elapsed_seconds(START, START - timedelta(seconds=3)) == 0


def test_remaining_seconds_is_non_increasing_and_hits_zero_at_deadline():
    deadline = attempt_deadline(START, 2)
    samples = [remaining_seconds(deadline, START + timedelta(seconds=s)) for s in range(0, 150, 7)]
    assert samples == sorted(samples, reverse=True)
    assert remaining_seconds(deadline, deadline - timedelta(seconds=1)) == 1
    assert remaining_seconds(deadline, deadline) == 0
