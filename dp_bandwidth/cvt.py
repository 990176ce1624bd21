"""
CVT timing generation for display modes.

Derives blanking, sync and pixel clock for an active resolution and refresh
rate using one of three generation profiles:

    cvt      Standard CVT (CRT-style blanking, duty-cycle formula)
    cvt_rb   CVT Reduced Blanking v1 (fixed 160 pixel H blank)
    cvt_rb2  CVT Reduced Blanking v2 (fixed 80 pixel H blank, 1 kHz clock step)

Guard-band and duty-cycle edge cases are approximate: this follows the
VESA CVT 1.2 worksheet closely but is not a conformance implementation.
"""

import math
from dataclasses import dataclass
from typing import List, Tuple

# CVT constants
CELL_GRAN = 8             # Character cell width (pixels)
HSYNC_PERCENT = 0.08      # Standard CVT H sync width as fraction of H total
MIN_V_PORCH = 3           # Minimum V front porch (lines)
MIN_VSYNC_BP = 550        # Minimum V sync + back porch time (µs)
MIN_V_BPORCH = 6          # Minimum V back porch (lines)
MARGIN_PERCENT = 1.8      # Margin size as percentage of active
C_PRIME = 30              # Blanking formula offset (%)
M_PRIME = 300             # Blanking formula gradient (%/kHz)
MIN_DUTY_CYCLE = 20       # Floor for the ideal H blanking duty cycle (%)

GENERATED_PROFILES = ('cvt', 'cvt_rb', 'cvt_rb2')


@dataclass(frozen=True)
class ProfileParams:
    """Per-profile clock and reduced blanking parameters."""
    clock_step_inv: int    # Clock steps per MHz
    rb_h_blank: int        # H blank (pixels), reduced blanking only
    rb_h_sync: int         # H sync (pixels), reduced blanking only
    rb_min_v_blank: int    # Minimum V blank time (µs), reduced blanking only
    rb_v_front_porch: int  # V front porch used for the minimum VBI check
    rb_h_back_porch: int   # H back porch (pixels), reduced blanking only

    @property
    def clock_step(self) -> float:
        return 1.0 / self.clock_step_inv


PROFILE_PARAMS = {
    'cvt': ProfileParams(clock_step_inv=4, rb_h_blank=160, rb_h_sync=32,
                         rb_min_v_blank=460, rb_v_front_porch=3, rb_h_back_porch=80),
    'cvt_rb': ProfileParams(clock_step_inv=4, rb_h_blank=160, rb_h_sync=32,
                            rb_min_v_blank=460, rb_v_front_porch=3, rb_h_back_porch=80),
    'cvt_rb2': ProfileParams(clock_step_inv=1000, rb_h_blank=80, rb_h_sync=32,
                             rb_min_v_blank=460, rb_v_front_porch=1, rb_h_back_porch=40),
}

RB2_VSYNC = 8
RB2_VIDEO_OPTIMIZED_MULTIPLIER = 1000 / 1001

# Ordered: the first match wins, so 15:9 is only reached when 5:4 fails.
ASPECT_CANDIDATES: List[Tuple[str, float]] = [
    ('4:3', 4 / 3),
    ('16:9', 16 / 9),
    ('16:10', 16 / 10),
    ('5:4', 5 / 4),
    ('15:9', 15 / 9),
    ('43:18', 43 / 18),
    ('64:27', 64 / 27),
    ('12:5', 12 / 5),
]

ASPECT_VSYNC = {
    '4:3': 4,
    '16:9': 5,
    '16:10': 6,
    '5:4': 7,
    '15:9': 7,
}
DEFAULT_VSYNC = 10


@dataclass(frozen=True)
class TimingDescriptor:
    """Complete timing for one mode. Pixel clock in MHz, everything else in pixels/lines."""
    pixel_clock_mhz: float
    h_total: int
    v_total: int
    h_blank: int
    v_blank: int
    h_front: int
    h_sync: int
    h_back: int
    v_front: int
    v_sync: int
    v_back: int


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (x.5 -> x+1)."""
    return int(math.floor(value + 0.5))


def detect_aspect_ratio(h_pixels_rounded: int, ver_pixels: int,
                        cell_gran: int = CELL_GRAN) -> str:
    """
    Identify the aspect ratio of a mode from its cell-rounded width.

    Each candidate ratio predicts a width from the line count; the first
    candidate whose prediction (rounded to the cell granularity) equals the
    actual width wins.

    Returns:
        Ratio label such as '16:9', or 'Unknown'
    """
    for label, ratio in ASPECT_CANDIDATES:
        if cell_gran * round_half_up(ver_pixels * ratio / cell_gran) == h_pixels_rounded:
            return label
    return 'Unknown'


def vsync_for_aspect(aspect: str) -> int:
    """V sync width (lines) for an aspect ratio label."""
    return ASPECT_VSYNC.get(aspect, DEFAULT_VSYNC)


def generate(active_h: int, active_v: int, refresh_hz: float, profile: str,
             margins: bool = False, interlaced: bool = False,
             video_optimized: bool = False) -> TimingDescriptor:
    """
    Generate full timing for a mode with the given CVT profile.

    Args:
        active_h: Active pixels per line
        active_v: Active lines per frame
        refresh_hz: Requested vertical refresh rate (Hz)
        profile: 'cvt', 'cvt_rb' or 'cvt_rb2'
        margins: Add 1.8% margins on each side
        interlaced: Generate an interlaced mode (field rate = 2x refresh)
        video_optimized: RB2 only, scale the pixel clock by 1000/1001

    Returns:
        TimingDescriptor with integer porches/totals and the quantized clock

    Raises:
        ValueError: if the profile is not a generated one or an input is not positive
    """
    if profile not in PROFILE_PARAMS:
        raise ValueError(f"Unknown CVT profile: {profile!r}")
    if active_h <= 0 or active_v <= 0 or refresh_hz <= 0:
        raise ValueError(
            f"Active size and refresh must be positive "
            f"(got {active_h}x{active_v} @ {refresh_hz} Hz)")

    params = PROFILE_PARAMS[profile]
    refresh_multiplier = 1.0
    if profile == 'cvt_rb2' and video_optimized:
        refresh_multiplier = RB2_VIDEO_OPTIMIZED_MULTIPLIER

    cell_gran = CELL_GRAN
    field_rate = refresh_hz * 2 if interlaced else refresh_hz

    h_pixels_rounded = math.floor(active_h / cell_gran) * cell_gran
    left_margin = 0
    if margins:
        left_margin = math.floor((h_pixels_rounded * MARGIN_PERCENT / 100) / cell_gran) * cell_gran
    total_active_pixels = h_pixels_rounded + left_margin * 2

    v_lines_rounded = math.floor(active_v / 2) if interlaced else math.floor(active_v)
    top_margin = math.floor(v_lines_rounded * MARGIN_PERCENT / 100) if margins else 0
    bottom_margin = top_margin
    interlace = 0.5 if interlaced else 0

    ver_pixels = 2 * v_lines_rounded if interlaced else v_lines_rounded
    aspect = detect_aspect_ratio(h_pixels_rounded, ver_pixels, cell_gran)
    v_sync = RB2_VSYNC if profile == 'cvt_rb2' else vsync_for_aspect(aspect)

    if profile == 'cvt':
        # H period estimate (µs)
        h_period_est = (((1 / field_rate) - MIN_VSYNC_BP / 1e6)
                        / (v_lines_rounded + 2 * top_margin + MIN_V_PORCH + interlace)
                        * 1e6)

        v_sync_bp = math.floor(MIN_VSYNC_BP / h_period_est) + 1
        if v_sync_bp < v_sync + MIN_V_BPORCH:
            v_sync_bp = v_sync + MIN_V_BPORCH

        v_blank = v_sync_bp + MIN_V_PORCH
        v_front = MIN_V_PORCH
        v_back = v_sync_bp - v_sync
        total_v_lines = (v_lines_rounded + top_margin + bottom_margin
                         + v_sync_bp + interlace + MIN_V_PORCH)

        ideal_duty_cycle = C_PRIME - (M_PRIME * h_period_est / 1000)
        duty_cycle = max(ideal_duty_cycle, MIN_DUTY_CYCLE)
        h_blank = (math.floor(total_active_pixels * duty_cycle / (100 - duty_cycle)
                              / (2 * cell_gran))
                   * (2 * cell_gran))
        total_pixels = total_active_pixels + h_blank

        h_sync = math.floor(HSYNC_PERCENT * total_pixels / cell_gran) * cell_gran
        h_back = h_blank / 2
        h_front = h_blank - h_sync - h_back

        pixel_clock = params.clock_step * math.floor(
            total_pixels / h_period_est / params.clock_step)
    else:
        h_period_est = (((1e6 / field_rate) - params.rb_min_v_blank)
                        / (v_lines_rounded + top_margin + bottom_margin))
        h_blank = params.rb_h_blank

        vbi_lines = math.floor(params.rb_min_v_blank / h_period_est) + 1
        rb_min_vbi = params.rb_v_front_porch + v_sync + MIN_V_BPORCH
        act_vbi_lines = max(vbi_lines, rb_min_vbi)

        v_blank = act_vbi_lines
        total_v_lines = (act_vbi_lines + v_lines_rounded + top_margin
                         + bottom_margin + interlace)
        total_pixels = total_active_pixels + h_blank

        pixel_clock = (math.floor(field_rate * total_v_lines * total_pixels
                                  * params.clock_step_inv / 1e6)
                       * refresh_multiplier / params.clock_step_inv)

        if profile == 'cvt_rb2':
            v_front = act_vbi_lines - v_sync - MIN_V_BPORCH
            v_back = MIN_V_BPORCH
        else:
            v_front = MIN_V_PORCH
            v_back = act_vbi_lines - v_front - v_sync
        h_sync = params.rb_h_sync
        h_back = params.rb_h_back_porch
        h_front = h_blank - h_sync - h_back

    return TimingDescriptor(
        pixel_clock_mhz=pixel_clock,
        h_total=round_half_up(total_pixels),
        v_total=round_half_up(total_v_lines),
        h_blank=round_half_up(h_blank),
        v_blank=round_half_up(v_blank),
        h_front=round_half_up(h_front),
        h_sync=round_half_up(h_sync),
        h_back=round_half_up(h_back),
        v_front=round_half_up(v_front),
        v_sync=round_half_up(v_sync),
        v_back=round_half_up(v_back),
    )
