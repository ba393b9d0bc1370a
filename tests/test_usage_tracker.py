import unittest
from datetime import datetime, timedelta, timezone

from services.usage_tracker import UsageTracker, month_key
from support import add_image, add_user, fixed_clock, make_session


class UsageTrackerTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session()
        add_user(self.db)
        self.image = add_image(self.db)
        self.other = add_image(self.db, title="Harbor")

    def tearDown(self):
        self.db.close()

    def test_repeat_download_in_month_counts_once(self):
        tracker = UsageTracker(self.db, clock=fixed_clock(2026, 3, 10, 12))

        self.assertTrue(tracker.record_download("user-1", self.image.id))
        self.assertFalse(tracker.record_download("user-1", self.image.id))
        self.assertTrue(tracker.record_download("user-1", self.other.id))

        self.assertEqual(tracker.month_to_date_count("user-1"), 2)

    def test_month_rollover_is_utc(self):
        january = UsageTracker(self.db, clock=fixed_clock(2026, 1, 31, 23, 59, 59))
        january.record_download("user-1", self.image.id)
        self.assertEqual(january.month_to_date_count("user-1"), 1)

        february = UsageTracker(self.db, clock=fixed_clock(2026, 2, 1, 0, 0, 0))
        self.assertEqual(february.month_to_date_count("user-1"), 0)
        # same image counts again in the new month
        self.assertTrue(february.record_download("user-1", self.image.id))
        self.assertEqual(february.month_to_date_count("user-1"), 1)

    def test_counts_are_per_user(self):
        tracker = UsageTracker(self.db, clock=fixed_clock(2026, 3, 10))
        tracker.record_download("user-1", self.image.id)
        tracker.record_download("user-2", self.image.id)
        self.assertEqual(tracker.month_to_date_count("user-1"), 1)

    def test_invalid_download_type(self):
        tracker = UsageTracker(self.db)
        with self.assertRaises(ValueError):
            tracker.record_download("user-1", self.image.id, "bonus")

    def test_all_time_stats(self):
        UsageTracker(self.db, clock=fixed_clock(2026, 1, 15)).record_download("user-1", self.image.id)
        march = UsageTracker(self.db, clock=fixed_clock(2026, 3, 2))
        march.record_download("user-1", self.image.id, "purchase")

        stats = march.all_time_stats("user-1")
        self.assertEqual(stats.this_month, 1)
        self.assertEqual(stats.all_time, 2)
        self.assertIsNotNone(stats.last_download)

    def test_stats_without_downloads(self):
        stats = UsageTracker(self.db).all_time_stats("nobody")
        self.assertEqual((stats.this_month, stats.all_time, stats.last_download), (0, 0, None))

    def test_month_key_converts_to_utc(self):
        local = datetime(2026, 2, 1, 1, 30, tzinfo=timezone(timedelta(hours=2)))
        self.assertEqual(month_key(local), (2026, 1))


if __name__ == "__main__":
    unittest.main()
