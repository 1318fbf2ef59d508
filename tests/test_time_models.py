import pytest

from timeline_engine.errors import InvalidRateError
from timeline_engine.models.time_models import RationalTime, TimeRange


class TestRationalTime:
    def test_add_rescales_right_operand_to_left_rate(self):
        result = RationalTime(value=24, rate=24) + RationalTime(value=48, rate=48)

        assert result.rate == 24
        assert result.value == 48

    def test_subtract_keeps_left_rate(self):
        result = RationalTime(value=10, rate=24).subtract(RationalTime(value=1, rate=12))

        assert result.rate == 24
        assert result.value == 8

    def test_fractional_values_are_not_rounded(self):
        result = RationalTime(value=1, rate=24).rescaled_to(30)

        assert result.value == pytest.approx(1.25)
        assert result.to_frames() == pytest.approx(1.25)

    def test_compare_across_rates(self):
        one_second_24 = RationalTime(value=24, rate=24)
        one_second_30 = RationalTime(value=30, rate=30)

        assert one_second_24 == one_second_30
        assert one_second_24.compare(one_second_30) == 0
        assert RationalTime(value=23, rate=24).compare(one_second_30) == -1
        assert RationalTime(value=25, rate=24) > one_second_30
        assert RationalTime(value=23, rate=24) <= one_second_30

    def test_equality_is_exact(self):
        assert RationalTime(value=10, rate=24) != RationalTime(value=10.0001, rate=24)

    def test_rescale_to_zero_rate_fails(self):
        with pytest.raises(InvalidRateError):
            RationalTime(value=10, rate=24).rescaled_to(0)

        with pytest.raises(InvalidRateError):
            RationalTime(value=10, rate=24).rescaled_to(-24)

    def test_zero_rate_rejected_on_construction(self):
        with pytest.raises(ValueError):
            RationalTime(value=1, rate=0)

    def test_conversions(self):
        time = RationalTime.from_seconds(2.5, rate=24)

        assert time.value == 60
        assert time.to_seconds() == 2.5
        assert time.to_milliseconds() == 2500
        assert time.to_frames(48) == 120
        assert RationalTime.from_milliseconds(500, rate=30).value == 15
        assert RationalTime.from_frames(12, rate=25).to_seconds() == pytest.approx(0.48)

    def test_scalar_multiply_and_negate(self):
        time = RationalTime(value=10, rate=24)

        assert (time * 1.5).value == 15
        assert (-time).value == -10

    def test_almost_equal(self):
        a = RationalTime(value=10, rate=24)

        assert a.almost_equal(RationalTime(value=10.4, rate=24), delta=0.5)
        assert not a.almost_equal(RationalTime(value=11, rate=24), delta=0.5)

    def test_str(self):
        assert str(RationalTime(value=5, rate=24)) == "5@24"


class TestTimeRange:
    def test_end_time_exclusive(self):
        time_range = TimeRange.from_frames(10, 20)

        assert time_range.end_time_exclusive == RationalTime(value=30, rate=24)
        assert time_range.end_time_inclusive == RationalTime(value=29, rate=24)

    def test_contains_is_half_open(self):
        time_range = TimeRange.from_frames(10, 20)

        assert time_range.contains(RationalTime(value=10, rate=24))
        assert time_range.contains(RationalTime(value=29.5, rate=24))
        assert not time_range.contains(RationalTime(value=30, rate=24))
        assert not time_range.contains(RationalTime(value=9, rate=24))

    def test_overlaps(self):
        a = TimeRange.from_frames(0, 10)

        assert a.overlaps(TimeRange.from_frames(5, 10))
        assert not a.overlaps(TimeRange.from_frames(10, 10))

    def test_contains_range(self):
        outer = TimeRange.from_frames(0, 100)

        assert outer.contains_range(TimeRange.from_frames(10, 90))
        assert not outer.contains_range(TimeRange.from_frames(10, 91))

    def test_extended_by_and_clamped_to(self):
        a = TimeRange.from_frames(0, 10)
        b = TimeRange.from_frames(5, 10)

        assert a.extended_by(b) == TimeRange.from_frames(0, 15)
        assert a.clamped_to(b) == TimeRange.from_frames(5, 5)
        assert a.clamped_to(TimeRange.from_frames(20, 5)) is None

    def test_from_start_end(self):
        time_range = TimeRange.from_start_end(
            RationalTime(value=12, rate=24),
            RationalTime(value=36, rate=24),
        )

        assert time_range.duration.value == 24

    def test_milliseconds(self):
        time_range = TimeRange.from_milliseconds(1000, 500, rate=24)

        assert time_range.start_time.value == 24
        assert time_range.duration.value == 12
        assert time_range.to_milliseconds() == (1000, 500)
