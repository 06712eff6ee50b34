import itertools

import pytest

from campus_booking.services.errors import InvalidFormat, InvalidRange
from campus_booking.services.time_window import (
    format_wall_clock,
    is_before,
    overlaps,
    parse_wall_clock,
    parse_wall_clock_range,
    require_range,
)


@pytest.mark.parametrize(
    "value, expected",
    [("00:00", 0), ("09:30", 570), ("12:00", 720), ("23:59", 1439)],
)
def test_parse_wall_clock_valid(value, expected):
    assert parse_wall_clock(value) == expected


@pytest.mark.parametrize(
    "value",
    ["24:00", "12:60", "9:30", "09:3", "ab:cd", "", "12:30:00", "12-30", "12:30\n", None, 930],
)
def test_parse_wall_clock_rejects_malformed(value):
    with pytest.raises(InvalidFormat):
        parse_wall_clock(value)


def test_format_wall_clock_pads():
    assert format_wall_clock(570) == "09:30"
    assert format_wall_clock(0) == "00:00"


def test_touching_ranges_do_not_overlap():
    assert not overlaps(600, 660, 660, 720)
    assert not overlaps(660, 720, 600, 660)


def test_contained_and_partial_ranges_overlap():
    assert overlaps(600, 720, 630, 660)
    assert overlaps(600, 660, 630, 690)
    assert overlaps(600, 660, 600, 660)


def test_overlap_is_symmetric():
    points = [0, 30, 60, 90, 120]
    ranges = [(a, b) for a, b in itertools.combinations(points, 2)]
    for (a, b), (c, d) in itertools.product(ranges, repeat=2):
        assert overlaps(a, b, c, d) == overlaps(c, d, a, b)


def test_is_before_and_require_range():
    assert is_before(1, 2)
    assert not is_before(2, 2)
    require_range(1, 2)
    with pytest.raises(InvalidRange):
        require_range(2, 2)
    with pytest.raises(InvalidRange):
        require_range(3, 2)


def test_parse_wall_clock_range():
    assert parse_wall_clock_range("10:00", "12:00") == (600, 720)
    with pytest.raises(InvalidRange):
        parse_wall_clock_range("12:00", "10:00")
    with pytest.raises(InvalidRange):
        parse_wall_clock_range("10:00", "10:00")
    with pytest.raises(InvalidFormat):
        parse_wall_clock_range("10:00", "25:00")
