from sniffer.highlight import FilterRule
from sniffer.timeline import Timeline


def test_boundaries_track_every_append():
    timeline = Timeline()
    timeline.append("0101")
    timeline.append("")
    timeline.append("11x1")

    assert timeline.boundary_count() == 3
    assert timeline.boundaries == [4, 4, 7]
    assert timeline.boundaries[-1] == timeline.bit_count()
    assert timeline.bits == "0101111"
    assert timeline.frame_ranges() == [(0, 4), (4, 4), (4, 7)]


def test_clear_resets_bits_and_boundaries():
    timeline = Timeline()
    timeline.append("0101")
    timeline.clear()
    assert timeline.bit_count() == 0
    assert timeline.boundaries == []


def test_pixel_mapping():
    timeline = Timeline()
    timeline.append("0101")

    assert timeline.bit_to_pixel(0) == 60
    assert timeline.bit_to_pixel(3) == 120
    assert timeline.pixel_to_bit(60) == 0
    assert timeline.pixel_to_bit(79) == 0
    assert timeline.pixel_to_bit(80) == 1
    assert timeline.pixel_to_bit(59) is None
    assert timeline.pixel_to_bit(140) is None
    assert timeline.boundary_pixels() == [140]


def test_preferred_width_and_time():
    timeline = Timeline()
    timeline.append("01" * 10)
    assert timeline.preferred_width() == 600
    timeline.append("01" * 20)
    assert timeline.preferred_width() == 100 + 60 * 20
    assert timeline.time_ms(5) == 5.0


def test_bit_colors_cross_frame_boundaries():
    timeline = Timeline()
    timeline.append("0011")
    timeline.append("1100")

    colors = timeline.bit_colors([FilterRule("1111", "#FF0000")], default="#0000FF")
    assert colors == ["#0000FF"] * 2 + ["#FF0000"] * 4 + ["#0000FF"] * 2


def test_bit_colors_no_overlap_and_non_bit_rules_ignored():
    timeline = Timeline()
    timeline.append("111")

    colors = timeline.bit_colors([FilterRule("11", "#FF0000"), FilterRule("4A", "#00FF00")])
    assert colors == ["#FF0000", "#FF0000", "#0000FF"]


def test_snapshot():
    timeline = Timeline()
    timeline.append("0101")
    assert timeline.snapshot() == {
        "bit_count": 4,
        "boundaries": [4],
        "bit_width": 20,
        "origin": 40,
        "bit_duration_ms": 1.0,
    }
