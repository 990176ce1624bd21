"""Tests for CVT timing generation."""

import pytest

from dp_bandwidth import cvt


class TestRoundHalfUp:
    def test_halves_round_up(self):
        assert cvt.round_half_up(2.5) == 3
        assert cvt.round_half_up(572.5) == 573

    def test_below_half_rounds_down(self):
        assert cvt.round_half_up(2.49) == 2

    def test_integral_values_unchanged(self):
        assert cvt.round_half_up(2080.0) == 2080


class TestAspectRatio:
    @pytest.mark.parametrize('h, v, expected', [
        (1024, 768, '4:3'),
        (1920, 1080, '16:9'),
        (1920, 1200, '16:10'),
        (1280, 1024, '5:4'),
        (1280, 768, '15:9'),
        (3440, 1440, '43:18'),
        (2560, 1080, '64:27'),
    ])
    def test_known_ratios(self, h, v, expected):
        assert cvt.detect_aspect_ratio(h, v) == expected

    def test_unknown_ratio(self):
        assert cvt.detect_aspect_ratio(1000, 1000) == 'Unknown'

    def test_vsync_for_aspect(self):
        assert cvt.vsync_for_aspect('4:3') == 4
        assert cvt.vsync_for_aspect('16:9') == 5
        assert cvt.vsync_for_aspect('16:10') == 6
        assert cvt.vsync_for_aspect('5:4') == 7
        assert cvt.vsync_for_aspect('15:9') == 7

    def test_vsync_falls_back_for_wide_and_unknown(self):
        assert cvt.vsync_for_aspect('43:18') == cvt.DEFAULT_VSYNC
        assert cvt.vsync_for_aspect('Unknown') == 10


class TestStandardCvt:
    """1920x1080 @ 60 with the standard CVT formula."""

    @pytest.fixture
    def timing(self):
        return cvt.generate(1920, 1080, 60, 'cvt')

    def test_pixel_clock(self, timing):
        assert timing.pixel_clock_mhz == pytest.approx(173.0)

    def test_horizontal(self, timing):
        assert timing.h_total == 2576
        assert timing.h_blank == 656
        assert (timing.h_front, timing.h_sync, timing.h_back) == (128, 200, 328)

    def test_vertical(self, timing):
        assert timing.v_total == 1120
        assert timing.v_blank == 40
        assert (timing.v_front, timing.v_sync, timing.v_back) == (3, 5, 32)

    def test_porches_are_integers(self, timing):
        assert isinstance(timing.h_back, int)
        assert isinstance(timing.h_front, int)


class TestReducedBlanking:
    def test_rb_1080p60(self):
        t = cvt.generate(1920, 1080, 60, 'cvt_rb')
        assert t.pixel_clock_mhz == pytest.approx(138.5)
        assert t.h_total == 2080
        assert t.v_total == 1111
        assert (t.h_front, t.h_sync, t.h_back) == (48, 32, 80)
        assert (t.v_front, t.v_sync, t.v_back) == (3, 5, 23)

    def test_rb2_1080p60(self):
        t = cvt.generate(1920, 1080, 60, 'cvt_rb2')
        assert t.pixel_clock_mhz == pytest.approx(133.32)
        assert t.h_total == 2000
        assert t.v_total == 1111
        assert (t.h_front, t.h_sync, t.h_back) == (8, 32, 40)
        assert (t.v_front, t.v_sync, t.v_back) == (17, 8, 6)

    def test_rb2_4k144(self):
        t = cvt.generate(3840, 2160, 144, 'cvt_rb2')
        assert t.pixel_clock_mhz == pytest.approx(1306.206)
        assert t.h_total == 3920
        assert t.v_total == 2314
        assert (t.v_front, t.v_sync, t.v_back) == (140, 8, 6)

    def test_rb2_always_uses_vsync_8(self):
        assert cvt.generate(1024, 768, 60, 'cvt_rb2').v_sync == 8

    def test_rb_unknown_aspect_uses_default_vsync(self):
        assert cvt.generate(1000, 1000, 60, 'cvt_rb').v_sync == 10

    def test_rb_blanking_sums(self):
        t = cvt.generate(2560, 1440, 144, 'cvt_rb')
        assert t.h_blank == t.h_front + t.h_sync + t.h_back == 160
        assert t.v_blank == t.v_front + t.v_sync + t.v_back
        assert t.v_total == 1440 + t.v_blank

    def test_rb2_clock_step_is_one_khz(self):
        t = cvt.generate(2560, 1440, 144, 'cvt_rb2')
        assert round(t.pixel_clock_mhz * 1000) == pytest.approx(t.pixel_clock_mhz * 1000)

    def test_video_optimized_scales_rb2_clock(self):
        t = cvt.generate(1920, 1080, 60, 'cvt_rb2', video_optimized=True)
        assert t.pixel_clock_mhz == pytest.approx(133.32 * 1000 / 1001)

    def test_video_optimized_ignored_for_rb1(self):
        t = cvt.generate(1920, 1080, 60, 'cvt_rb', video_optimized=True)
        assert t.pixel_clock_mhz == pytest.approx(138.5)


class TestOptions:
    def test_interlaced_rb(self):
        t = cvt.generate(1920, 1080, 60, 'cvt_rb', interlaced=True)
        # 540 field lines + 32 VBI lines + half line
        assert t.v_total == 573
        assert t.pixel_clock_mhz == pytest.approx(142.75)

    def test_margins_rb(self):
        t = cvt.generate(1920, 1080, 60, 'cvt_rb', margins=True)
        assert t.h_total == 1920 + 2 * 32 + 160
        assert t.v_total == 1080 + 2 * 19 + 32


class TestInvalidInput:
    def test_manual_is_not_generated(self):
        with pytest.raises(ValueError, match='Unknown CVT profile'):
            cvt.generate(1920, 1080, 60, 'manual')

    @pytest.mark.parametrize('h, v, hz', [(0, 1080, 60), (1920, -1, 60), (1920, 1080, 0)])
    def test_non_positive_inputs(self, h, v, hz):
        with pytest.raises(ValueError, match='must be positive'):
            cvt.generate(h, v, hz, 'cvt_rb2')
