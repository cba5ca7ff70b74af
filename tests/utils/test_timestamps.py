import unittest
from datetime import datetime, timedelta, timezone

from ems_routing.utils.timestamps import seconds_between, to_datetime

EXPECTED = datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc)


class TestToDatetime(unittest.TestCase):

    def test_iso_string_with_z(self):
        self.assertEqual(to_datetime("2026-10-17T09:30:00Z"), EXPECTED)

    def test_iso_string_with_offset(self):
        self.assertEqual(to_datetime("2026-10-17T11:30:00+02:00"), EXPECTED)

    def test_naive_datetime_is_utc(self):
        self.assertEqual(to_datetime(datetime(2026, 10, 17, 9, 30)), EXPECTED)

    def test_epoch_seconds_and_milliseconds(self):
        epoch = EXPECTED.timestamp()
        self.assertEqual(to_datetime(epoch), EXPECTED)
        self.assertEqual(to_datetime(epoch * 1000), EXPECTED)

    def test_document_store_objects(self):
        epoch = int(EXPECTED.timestamp())
        self.assertEqual(to_datetime({"_seconds": epoch}), EXPECTED)
        self.assertEqual(to_datetime({"seconds": epoch, "nanoseconds": 0}), EXPECTED)

    def test_unusable_values(self):
        for value in (None, "", "not a date", True, float("nan"), {"other": 1}, [1, 2]):
            with self.subTest(value=value):
                self.assertIsNone(to_datetime(value))


class TestSecondsBetween(unittest.TestCase):

    def test_elapsed(self):
        self.assertEqual(seconds_between(EXPECTED, EXPECTED + timedelta(minutes=2)), 120)

    def test_missing_or_reversed(self):
        self.assertIsNone(seconds_between(None, EXPECTED))
        self.assertIsNone(seconds_between(EXPECTED, EXPECTED - timedelta(seconds=1)))

    def test_mixed_naive_and_aware(self):
        naive = EXPECTED.replace(tzinfo=None)
        self.assertEqual(seconds_between(naive, EXPECTED + timedelta(seconds=30)), 30)


if __name__ == "__main__":
    unittest.main()
