"""Tests for time_range module."""

from datetime import datetime, timedelta, timezone

import pytest

from standup.errors import InvalidIntervalError, InvalidOperationError
from standup.time_range import TimeRange, overlaps

ROOT = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
ONE_MINUTE = timedelta(minutes=1)
ONE_HOUR = TimeRange(ROOT, ROOT + timedelta(hours=1))


class TestOverlaps:
    """Tests for overlaps()."""

    def test_identical_ranges_overlap(self):
        """Test a range overlaps itself."""
        assert overlaps(ONE_HOUR, ONE_HOUR) is True

    def test_adjacent_ranges_do_not_overlap(self):
        """Test end-exclusive ranges that touch do not overlap."""
        after = TimeRange(ONE_HOUR.end, ONE_HOUR.end + timedelta(hours=1))

        assert overlaps(ONE_HOUR, after) is False
        assert overlaps(after, ONE_HOUR) is False

    def test_overlapping_on_end(self):
        """Test a range starting one minute before the end overlaps."""
        other = TimeRange(ONE_HOUR.end - ONE_MINUTE, ONE_HOUR.end + timedelta(hours=1))

        assert overlaps(ONE_HOUR, other) is True
        assert overlaps(other, ONE_HOUR) is True

    def test_contained_range_overlaps(self):
        """Test a range inside another overlaps in both orders."""
        inner = TimeRange(ROOT + timedelta(minutes=15), ROOT + timedelta(minutes=30))

        assert overlaps(ONE_HOUR, inner) is True
        assert overlaps(inner, ONE_HOUR) is True

    def test_disjoint_ranges(self):
        """Test ranges on different hours do not overlap."""
        later = TimeRange(ROOT + timedelta(hours=3), ROOT + timedelta(hours=4))

        assert overlaps(ONE_HOUR, later) is False

    @pytest.mark.parametrize("other", [
        TimeRange(ROOT),
        TimeRange(ROOT - timedelta(hours=2)),
        TimeRange(ROOT + timedelta(minutes=30)),
    ])
    def test_open_range_never_overlaps(self, other):
        """Test a running range is never reported as overlapping."""
        assert overlaps(ONE_HOUR, other) is False
        assert overlaps(other, ONE_HOUR) is False

    def test_two_open_ranges(self):
        """Test two running ranges do not overlap."""
        assert overlaps(TimeRange(ROOT), TimeRange(ROOT)) is False

    def test_invalid_range_raises_in_both_orders(self):
        """Test end before begin fails validation regardless of argument order."""
        invalid = TimeRange(ROOT + ONE_MINUTE, ROOT)

        with pytest.raises(InvalidIntervalError):
            overlaps(ONE_HOUR, invalid)
        with pytest.raises(InvalidIntervalError):
            overlaps(invalid, ONE_HOUR)

    def test_invalid_range_checked_before_open_range(self):
        """Test validation runs even when the other range is open."""
        with pytest.raises(InvalidIntervalError):
            overlaps(TimeRange(ROOT), TimeRange(ROOT + ONE_MINUTE, ROOT))

    def test_invalid_interval_is_invalid_operation(self):
        """Test InvalidIntervalError is an InvalidOperationError."""
        assert issubclass(InvalidIntervalError, InvalidOperationError)

    def test_zero_width_range_is_valid(self):
        """Test an instant is accepted and does not overlap itself."""
        instant = TimeRange(ROOT, ROOT)

        instant.validate()
        assert overlaps(instant, instant) is False


class TestDuration:
    """Tests for TimeRange.duration()."""

    def test_closed_range(self):
        """Test duration of a stopped range ignores now."""
        assert ONE_HOUR.duration(ROOT + timedelta(days=1)) == timedelta(hours=1)

    def test_open_range_uses_now(self):
        """Test a running range is measured against now."""
        running = TimeRange(ROOT)

        assert running.duration(ROOT + timedelta(minutes=45)) == timedelta(minutes=45)

    def test_now_before_begin(self):
        """Test duration never goes negative."""
        assert TimeRange(ROOT).duration(ROOT - ONE_MINUTE) == timedelta(0)

    def test_is_open(self):
        """Test is_open reflects a missing end."""
        assert TimeRange(ROOT).is_open is True
        assert ONE_HOUR.is_open is False
