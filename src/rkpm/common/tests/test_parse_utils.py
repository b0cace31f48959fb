from datetime import timedelta
from unittest import TestCase

from rkpm.common.parse_utils import (
    duration_or_timedelta,
    duration_to_timedelta,
    epoch_millis,
    timedelta_to_duration,
)


class Test_duration_to_timedelta(TestCase):
    def test_duration_to_timedelta_empty(self):
        """Test empty input"""
        td = duration_to_timedelta("")
        self.assertEqual(td.total_seconds(), 0)

    def test_duration_to_timedelta_basic(self):
        """Test the most basic case"""
        td = duration_to_timedelta("P3D")
        self.assertEqual(td.total_seconds(), 3 * 86400)

    def test_duration_to_timedelta_day_minute(self):
        """Test both day and minute"""
        td = duration_to_timedelta("P1DT1M")
        self.assertEqual(td.total_seconds(), 86460)

    def test_duration_to_timedelta_week(self):
        td = duration_to_timedelta("P2W")
        self.assertEqual(td, timedelta(days=14))

    def test_duration_to_timedelta_time(self):
        td = duration_to_timedelta("PT1H5M10S")
        self.assertEqual(td, timedelta(hours=1, minutes=5, seconds=10))

    def test_duration_to_timedelta_month(self):
        """Test that months are refused"""
        with self.assertRaises(NotImplementedError):
            duration_to_timedelta("P1M")

    def test_bad_input(self):
        with self.assertRaises(ValueError):
            duration_to_timedelta("3D")
        with self.assertRaises(ValueError):
            duration_to_timedelta("P3X")


class Test_timedelta_to_duration(TestCase):
    def test_days(self):
        self.assertEqual(timedelta_to_duration(timedelta(days=3)), "P3D")

    def test_seconds(self):
        self.assertEqual(timedelta_to_duration(timedelta(seconds=1)), "PT1S")

    def test_zero(self):
        self.assertEqual(timedelta_to_duration(timedelta()), "PT0S")

    def test_mixed(self):
        td = timedelta(days=1, hours=2, seconds=30)
        self.assertEqual(timedelta_to_duration(td), "P1DT2H30S")
        self.assertEqual(duration_to_timedelta(timedelta_to_duration(td)), td)

    def test_negative(self):
        with self.assertRaises(ValueError):
            timedelta_to_duration(timedelta(seconds=-1))


class Test_misc(TestCase):
    def test_duration_or_timedelta(self):
        self.assertEqual(duration_or_timedelta(5), timedelta(seconds=5))
        self.assertEqual(duration_or_timedelta("PT5S"), timedelta(seconds=5))
        self.assertEqual(
            duration_or_timedelta(timedelta(seconds=5)), timedelta(seconds=5)
        )

    def test_epoch_millis(self):
        self.assertEqual(epoch_millis(timedelta(days=3)), 259200000)
        self.assertEqual(epoch_millis(timedelta(milliseconds=1500)), 1500)
