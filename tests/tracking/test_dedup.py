"""Tests for the time+distance dedup filter."""

from datetime import timedelta

from tracking.dedup import DedupFilter, should_record

# ~0.00045 deg latitude is ~50 m; 0.009 deg is ~1 km
FIFTY_M = 0.00045
ONE_KM = 0.009


class TestShouldRecord:
    """The reject-only-if-both rule."""

    def test_first_fix_always_accepted(self, make_fix):
        assert should_record(make_fix(), None) is True

    def test_soon_and_close_rejected(self, make_fix):
        last = make_fix()
        fix = make_fix(lat=last.latitude + FIFTY_M, minutes=10)
        assert should_record(fix, last) is False

    def test_soon_but_far_accepted(self, make_fix):
        last = make_fix()
        fix = make_fix(lat=last.latitude + ONE_KM, minutes=10)
        assert should_record(fix, last) is True

    def test_late_but_close_accepted(self, make_fix):
        last = make_fix()
        fix = make_fix(lat=last.latitude + FIFTY_M, minutes=31)
        assert should_record(fix, last) is True

    def test_interval_threshold_is_exclusive(self, make_fix):
        """Exactly min_interval apart is not 'too soon'."""
        last = make_fix()
        fix = make_fix(minutes=30)
        assert should_record(fix, last, min_interval=timedelta(seconds=1800)) is True

    def test_same_place_same_time_rejected(self, make_fix):
        last = make_fix()
        assert should_record(make_fix(), last) is False

    def test_fix_older_than_last_rejected(self, make_fix):
        """Out-of-order fixes never replace a newer one."""
        last = make_fix(minutes=60)
        fix = make_fix(lat=last.latitude + ONE_KM, minutes=0)
        assert should_record(fix, last) is False

    def test_custom_thresholds(self, make_fix):
        last = make_fix()
        fix = make_fix(lat=last.latitude + FIFTY_M, minutes=5)
        assert should_record(fix, last, min_interval=timedelta(minutes=1), min_distance_m=10.0) is True


class TestDedupFilter:
    """Stateful wrapper holding the last recorded fix."""

    def test_acceptance_updates_last(self, make_fix):
        dedup = DedupFilter()
        fix = make_fix()

        assert dedup.evaluate(fix) is True
        assert dedup.last_recorded == fix

    def test_rejection_keeps_last(self, make_fix):
        dedup = DedupFilter()
        first = make_fix()
        dedup.evaluate(first)

        assert dedup.evaluate(make_fix(lat=first.latitude + FIFTY_M, minutes=10)) is False
        assert dedup.last_recorded == first

    def test_last_is_monotonic(self, make_fix):
        dedup = DedupFilter()
        newer = make_fix(minutes=90)
        dedup.evaluate(newer)

        dedup.evaluate(make_fix(lat=newer.latitude + ONE_KM, minutes=0))

        assert dedup.last_recorded == newer

    def test_reset(self, make_fix):
        dedup = DedupFilter()
        dedup.evaluate(make_fix())
        dedup.reset()

        assert dedup.last_recorded is None
        assert dedup.evaluate(make_fix()) is True
