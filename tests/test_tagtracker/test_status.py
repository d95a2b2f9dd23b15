"""Tests for the lifecycle classifier."""

import unittest
from datetime import datetime, timedelta, timezone

from tagtracker.status import (
    EXPIRING_SOON_WINDOW,
    StatusVerdict,
    TagStatus,
    classify,
    classify_tag,
    format_time_remaining,
)
from tagtracker.models import Tag

UTC = timezone.utc


def at(hour, minute=0, second=0):
    return datetime(2024, 1, 1, hour, minute, second, tzinfo=UTC)


class TestClassify(unittest.TestCase):

    def setUp(self):
        self.ready = at(11)
        self.discard = at(14)

    def test_preparing_before_ready(self):
        verdict = classify(self.ready, self.discard, at(10, 30))
        self.assertEqual(verdict.status, TagStatus.PREPARING)
        self.assertEqual(verdict.minutes_to_discard, 210)

    def test_ready_between_ready_and_window(self):
        verdict = classify(self.ready, self.discard, at(12))
        self.assertEqual(verdict.status, TagStatus.READY)
        self.assertEqual(verdict.label, "READY")

    def test_ready_exactly_at_ready_time(self):
        self.assertEqual(classify(self.ready, self.discard, at(11)).status, TagStatus.READY)

    def test_expiring_soon(self):
        verdict = classify(self.ready, self.discard, at(13, 45))
        self.assertEqual(verdict.status, TagStatus.EXPIRING_SOON)
        self.assertEqual(verdict.minutes_to_discard, 15)

    def test_expiring_soon_at_window_edge(self):
        verdict = classify(self.ready, self.discard, self.discard - EXPIRING_SOON_WINDOW)
        self.assertEqual(verdict.status, TagStatus.EXPIRING_SOON)
        self.assertEqual(verdict.minutes_to_discard, 30)

    def test_just_outside_window_is_ready(self):
        now = self.discard - EXPIRING_SOON_WINDOW - timedelta(seconds=1)
        self.assertEqual(classify(self.ready, self.discard, now).status, TagStatus.READY)

    def test_expiring_minutes_round_up(self):
        verdict = classify(self.ready, self.discard, at(13, 59, 50))
        self.assertEqual(verdict.status, TagStatus.EXPIRING_SOON)
        self.assertEqual(verdict.minutes_to_discard, 1)

    def test_expired_at_discard_time(self):
        verdict = classify(self.ready, self.discard, self.discard)
        self.assertEqual(verdict.status, TagStatus.EXPIRED)
        self.assertEqual(verdict.minutes_to_discard, 0)

    def test_expired_minutes_negative(self):
        verdict = classify(self.ready, self.discard, at(14, 5))
        self.assertEqual(verdict.status, TagStatus.EXPIRED)
        self.assertEqual(verdict.minutes_to_discard, -5)

    def test_expired_minutes_round_down(self):
        verdict = classify(self.ready, self.discard, at(14, 0, 10))
        self.assertEqual(verdict.minutes_to_discard, -1)

    def test_discard_before_ready_reports_discard_first(self):
        ready, discard = at(15), at(12)
        self.assertEqual(classify(ready, discard, at(11, 45)).status, TagStatus.EXPIRING_SOON)
        self.assertEqual(classify(ready, discard, at(12, 30)).status, TagStatus.EXPIRED)
        self.assertEqual(classify(ready, discard, at(10)).status, TagStatus.PREPARING)

    def test_naive_inputs_read_as_utc(self):
        verdict = classify(
            datetime(2024, 1, 1, 11), datetime(2024, 1, 1, 14), at(13, 45),
        )
        self.assertEqual(verdict.status, TagStatus.EXPIRING_SOON)

    def test_idempotent(self):
        now = at(13, 50)
        first = classify(self.ready, self.discard, now)
        for _ in range(5):
            self.assertEqual(classify(self.ready, self.discard, now), first)

    def test_outcomes_exhaustive_and_exclusive(self):
        now = at(9)
        while now <= at(15):
            verdict = classify(self.ready, self.discard, now)
            remaining = self.discard - now
            self.assertEqual(verdict.status == TagStatus.EXPIRED, now >= self.discard)
            self.assertEqual(
                verdict.status == TagStatus.EXPIRING_SOON,
                timedelta(0) < remaining <= EXPIRING_SOON_WINDOW,
            )
            self.assertIn(verdict.status, set(TagStatus))
            now += timedelta(minutes=7, seconds=30)


class TestVerdictHelpers(unittest.TestCase):

    def test_time_remaining_format(self):
        self.assertEqual(format_time_remaining(-3), "EXPIRED")
        self.assertEqual(format_time_remaining(0), "EXPIRED")
        self.assertEqual(format_time_remaining(45), "45m")
        self.assertEqual(format_time_remaining(60), "1h 0m")
        self.assertEqual(format_time_remaining(135), "2h 15m")

    def test_to_dict(self):
        data = StatusVerdict(TagStatus.EXPIRING_SOON, 12).to_dict()
        self.assertEqual(data["status"], "expiring_soon")
        self.assertEqual(data["label"], "EXPIRING SOON")
        self.assertEqual(data["time_remaining"], "12m")

    def test_classify_tag(self):
        tag = Tag(
            product_id="p", location_id="l", created_by="e",
            made_at=at(10), ready_at=at(11), discard_at=at(14),
        )
        self.assertEqual(classify_tag(tag, now=at(14, 5)).minutes_to_discard, -5)


if __name__ == "__main__":
    unittest.main()
