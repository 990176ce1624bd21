"""
Session state for the multi-timing bandwidth check.

A session holds 1-4 stream slots and one link configuration. Every value
here is a frozen dataclass: operations return new values and never touch
module state, so each caller owns its own session.

Per-slot generation profile state machine:

    manual  <->  cvt  <->  cvt_rb  <->  cvt_rb2     (any to any, re-enterable)

Selecting a generated profile re-runs the CVT generator for the slot's mode
(or its current H/V/Hz when no predefined mode is selected). Selecting
'manual' keeps the current porches and derives the clock from the totals.
"""

import math
import uuid
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

from . import cvt
from .aggregate import (FIT_EPSILON, LOW_MARGIN_PCT, MAX_STREAMS,
                        AggregateReport, aggregate)
from .bandwidth import (BPC_OPTIONS, CODINGS, COLOR_FORMATS, DEFAULT_PRESET_ID,
                        DSC_RATIOS, LANE_OPTIONS, LinkConfig, bits_per_pixel,
                        compressed_rate_gbps, find_preset,
                        pixel_clock_from_totals, raw_rate_gbps)

PROFILES = ('manual',) + cvt.GENERATED_PROFILES

DEFAULT_PROFILE = 'cvt_rb2'
DEFAULT_BPC = 8
DEFAULT_COLOR_FORMAT = 'rgb'
DEFAULT_DSC_RATIO = 3.0

# Fallbacks for a slot with no usable active size/refresh
DEFAULT_H = 1920
DEFAULT_V = 1080
DEFAULT_HZ = 60

# Fallback porches for manual totals (pixels / lines)
DEFAULT_H_FRONT = 8
DEFAULT_H_SYNC = 32
DEFAULT_H_BACK = 120
DEFAULT_V_FRONT = 3
DEFAULT_V_SYNC = 6
DEFAULT_V_BACK = 9

ACTIVE_FIELDS = ('h', 'v', 'hz')
BLANKING_FIELDS = ('h_front', 'h_sync', 'h_back', 'v_front', 'v_sync', 'v_back')
TIMING_FIELDS = ACTIVE_FIELDS + BLANKING_FIELDS + ('pixel_clock',)


@dataclass(frozen=True)
class PredefinedMode:
    label: str
    h: int
    v: int
    hz: float


PREDEFINED_MODES: List[PredefinedMode] = [
    PredefinedMode('1920×1080 @ 60', 1920, 1080, 60),
    PredefinedMode('1920×1080 @ 144', 1920, 1080, 144),
    PredefinedMode('2560×1440 @ 60', 2560, 1440, 60),
    PredefinedMode('2560×1440 @ 144', 2560, 1440, 144),
    PredefinedMode('3440×1440 @ 144', 3440, 1440, 144),
    PredefinedMode('3840×2160 @ 60', 3840, 2160, 60),
    PredefinedMode('3840×2160 @ 120', 3840, 2160, 120),
    PredefinedMode('3840×2160 @ 144', 3840, 2160, 144),
    PredefinedMode('3840×2160 @ 240', 3840, 2160, 240),
    PredefinedMode('5120×1440 @ 120', 5120, 1440, 120),
]
DEFAULT_MODE_INDEX = 7  # 3840×2160 @ 144


@dataclass(frozen=True)
class TimingSpec:
    """
    One stream's timing. Fields stay None until known.

    When profile is not 'manual' the blanking fields and pixel clock are
    generator output; edit_timing() reverts the profile to 'manual' before
    accepting hand edits to them.
    """
    profile: str = DEFAULT_PROFILE
    h: Optional[int] = None
    v: Optional[int] = None
    hz: Optional[float] = None
    h_front: Optional[int] = None
    h_sync: Optional[int] = None
    h_back: Optional[int] = None
    v_front: Optional[int] = None
    v_sync: Optional[int] = None
    v_back: Optional[int] = None
    pixel_clock: Optional[float] = None  # MHz

    @property
    def h_blank(self) -> Optional[int]:
        if None in (self.h_front, self.h_sync, self.h_back):
            return None
        return self.h_front + self.h_sync + self.h_back

    @property
    def v_blank(self) -> Optional[int]:
        if None in (self.v_front, self.v_sync, self.v_back):
            return None
        return self.v_front + self.v_sync + self.v_back

    @property
    def h_total(self) -> Optional[int]:
        if self.h is None or self.h_blank is None:
            return None
        return self.h + self.h_blank

    @property
    def v_total(self) -> Optional[int]:
        if self.v is None or self.v_blank is None:
            return None
        return self.v + self.v_blank

    @property
    def is_complete(self) -> bool:
        return all(getattr(self, name) is not None for name in ACTIVE_FIELDS + BLANKING_FIELDS)


@dataclass(frozen=True)
class ColorMode:
    bpc: int = DEFAULT_BPC
    color_format: str = DEFAULT_COLOR_FORMAT

    @property
    def bpp(self) -> float:
        return bits_per_pixel(self.bpc, self.color_format)


@dataclass(frozen=True)
class CompressionSetting:
    ratio: float = DEFAULT_DSC_RATIO
    active: bool = True  # Aggregate the compressed rate instead of the raw one


def parse_rate(text) -> float:
    """Parse a stored rate string; blank or non-numeric text counts as 0."""
    try:
        value = float(text)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return value


def format_rate(gbps: float) -> str:
    return f"{gbps:.4f}"


@dataclass(frozen=True)
class StreamSlot:
    """
    One timing row.

    peak_bw and peak_bw_dsc are the stored decimal strings that aggregation
    reads. They are refilled whenever the timing, color or compression
    changes, and may also be typed in directly with set_peak_rates().
    """
    id: str
    label: str
    timing: TimingSpec = field(default_factory=TimingSpec)
    color: ColorMode = field(default_factory=ColorMode)
    compression: CompressionSetting = field(default_factory=CompressionSetting)
    peak_bw: str = ''
    peak_bw_dsc: str = ''
    calc_open: bool = False
    mode_index: Optional[int] = None

    @property
    def peak(self) -> float:
        return parse_rate(self.peak_bw)

    @property
    def peak_dsc(self) -> float:
        return parse_rate(self.peak_bw_dsc)

    @property
    def selected_rate(self) -> float:
        return self.peak_dsc if self.compression.active else self.peak


@dataclass(frozen=True)
class SessionState:
    slots: Tuple[StreamSlot, ...]
    link: LinkConfig
    preset_id: str


@dataclass(frozen=True)
class ResolvedInputs:
    """Slot inputs with every default applied."""
    h: int
    v: int
    hz: float
    h_front: int
    h_sync: int
    h_back: int
    v_front: int
    v_sync: int
    v_back: int
    bpc: int
    color_format: str
    dsc_ratio: float


def _positive_or(value, default):
    return value if value is not None and value > 0 else default


def _present_or(value, default):
    return value if value is not None else default


def resolve_inputs(slot: StreamSlot) -> ResolvedInputs:
    """
    Apply the documented defaults to a slot's optional inputs.

    Active size and refresh must be positive (else 1920x1080 @ 60). Porches
    may be zero; only missing porches take the manual defaults. Unsupported
    bpc or color format fall back to 8 bpc RGB, a non-positive DSC ratio to 3.
    """
    t = slot.timing
    bpc = slot.color.bpc if slot.color.bpc in BPC_OPTIONS else DEFAULT_BPC
    color_format = slot.color.color_format
    if color_format not in COLOR_FORMATS:
        color_format = DEFAULT_COLOR_FORMAT

    return ResolvedInputs(
        h=_positive_or(t.h, DEFAULT_H),
        v=_positive_or(t.v, DEFAULT_V),
        hz=_positive_or(t.hz, DEFAULT_HZ),
        h_front=_present_or(t.h_front, DEFAULT_H_FRONT),
        h_sync=_present_or(t.h_sync, DEFAULT_H_SYNC),
        h_back=_present_or(t.h_back, DEFAULT_H_BACK),
        v_front=_present_or(t.v_front, DEFAULT_V_FRONT),
        v_sync=_present_or(t.v_sync, DEFAULT_V_SYNC),
        v_back=_present_or(t.v_back, DEFAULT_V_BACK),
        bpc=bpc,
        color_format=color_format,
        dsc_ratio=_positive_or(slot.compression.ratio, DEFAULT_DSC_RATIO),
    )


def _with_rates(slot: StreamSlot) -> StreamSlot:
    peak = raw_rate_gbps(slot.timing.pixel_clock, slot.color.bpp)
    peak_dsc = compressed_rate_gbps(peak, slot.compression.ratio)
    return replace(slot, peak_bw=format_rate(peak), peak_bw_dsc=format_rate(peak_dsc))


def _apply_timing(slot: StreamSlot, h: int, v: int, hz: float,
                  mode_index: Optional[int]) -> StreamSlot:
    """Fill blanking and clock for H/V/Hz under the slot's profile, then the rates."""
    inputs = resolve_inputs(slot)
    profile = slot.timing.profile

    if profile == 'manual':
        porches = dict(
            h_front=inputs.h_front, h_sync=inputs.h_sync, h_back=inputs.h_back,
            v_front=inputs.v_front, v_sync=inputs.v_sync, v_back=inputs.v_back,
        )
        timing = TimingSpec(profile=profile, h=h, v=v, hz=hz,
                            pixel_clock=pixel_clock_from_totals(h, v, hz, **porches),
                            **porches)
    else:
        d = cvt.generate(h, v, hz, profile)
        timing = TimingSpec(
            profile=profile, h=h, v=v, hz=hz,
            h_front=d.h_front, h_sync=d.h_sync, h_back=d.h_back,
            v_front=d.v_front, v_sync=d.v_sync, v_back=d.v_back,
            pixel_clock=d.pixel_clock_mhz,
        )

    slot = replace(
        slot,
        timing=timing,
        color=ColorMode(bpc=inputs.bpc, color_format=inputs.color_format),
        compression=replace(slot.compression, ratio=inputs.dsc_ratio),
        mode_index=mode_index,
    )
    return _with_rates(slot)


def _refresh(slot: StreamSlot) -> StreamSlot:
    if slot.timing.pixel_clock is None:
        return recompute_slot(slot)
    return _with_rates(slot)


# =============================================================================
# Slot operations
# =============================================================================

def choose_mode(slot: StreamSlot, mode_index: int) -> StreamSlot:
    """Populate a slot from a predefined mode under its current profile."""
    if not 0 <= mode_index < len(PREDEFINED_MODES):
        raise ValueError(f"No predefined mode at index {mode_index}")
    mode = PREDEFINED_MODES[mode_index]
    return _apply_timing(slot, mode.h, mode.v, mode.hz, mode_index)


def recompute_slot(slot: StreamSlot) -> StreamSlot:
    """Regenerate timing and rates from the slot's own fields."""
    inputs = resolve_inputs(slot)
    return _apply_timing(slot, inputs.h, inputs.v, inputs.hz, slot.mode_index)


def set_profile(slot: StreamSlot, profile: str) -> StreamSlot:
    """Switch the generation profile and recompute the slot."""
    if profile not in PROFILES:
        raise ValueError(f"Unknown profile: {profile!r}")
    slot = replace(slot, timing=replace(slot.timing, profile=profile))
    if slot.mode_index is not None:
        return choose_mode(slot, slot.mode_index)
    return recompute_slot(slot)


def _check_timing_value(name: str, value):
    """Resolve one hand-entered timing value the way an import would, or raise."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) \
            or (isinstance(value, float) and not math.isfinite(value)):
        raise ValueError(f"{name} must be a finite number, got {value!r}")
    if name in ('hz', 'pixel_clock'):
        if value <= 0:
            raise ValueError(f"{name} must be positive, got {value!r}")
        return value
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{name} must be a whole number, got {value!r}")
    value = int(value)
    if value < 0 or (name in ('h', 'v') and value == 0):
        raise ValueError(f"{name} out of range: {value}")
    return value


def edit_timing(slot: StreamSlot, **fields) -> StreamSlot:
    """
    Hand-edit timing fields (h, v, hz, porches, pixel_clock).

    Editing the active size or refresh detaches the slot from its predefined
    mode. Editing blanking or the pixel clock of a generated timing turns the
    slot into a manual one. A hand-entered pixel clock is kept as is; any
    other edit recomputes the slot.

    Raises:
        ValueError: for unknown fields, negative or fractional sizes and porches,
            or a non-positive refresh or pixel clock
    """
    unknown = set(fields) - set(TIMING_FIELDS)
    if unknown:
        raise ValueError(f"Unknown timing fields: {', '.join(sorted(unknown))}")
    fields = {name: _check_timing_value(name, value) for name, value in fields.items()}

    timing = replace(slot.timing, **fields)
    if timing.profile != 'manual' and any(
            name in fields for name in BLANKING_FIELDS + ('pixel_clock',)):
        timing = replace(timing, profile='manual')

    mode_index = slot.mode_index
    if any(name in fields for name in ACTIVE_FIELDS):
        mode_index = None

    slot = replace(slot, timing=timing, mode_index=mode_index)
    if 'pixel_clock' in fields and fields['pixel_clock'] is not None:
        return _with_rates(slot)
    return recompute_slot(slot)


def set_color(slot: StreamSlot, bpc: Optional[int] = None,
              color_format: Optional[str] = None) -> StreamSlot:
    if bpc is not None and bpc not in BPC_OPTIONS:
        raise ValueError(f"Unsupported bits per component: {bpc}")
    if color_format is not None and color_format not in COLOR_FORMATS:
        raise ValueError(f"Unknown color format: {color_format!r}")
    color = replace(
        slot.color,
        bpc=slot.color.bpc if bpc is None else bpc,
        color_format=slot.color.color_format if color_format is None else color_format,
    )
    return _refresh(replace(slot, color=color))


def set_compression(slot: StreamSlot, ratio: Optional[float] = None,
                    active: Optional[bool] = None) -> StreamSlot:
    """Change the DSC ratio and/or whether the compressed rate is aggregated."""
    if ratio is not None and ratio not in DSC_RATIOS:
        raise ValueError(f"Unsupported DSC ratio: {ratio}")
    compression = slot.compression
    if active is not None:
        compression = replace(compression, active=bool(active))
    if ratio is None:
        return replace(slot, compression=compression)
    return _refresh(replace(slot, compression=replace(compression, ratio=float(ratio))))


def set_peak_rates(slot: StreamSlot, peak_bw: str,
                   peak_bw_dsc: Optional[str] = None) -> StreamSlot:
    """Store hand-typed rates; they are aggregated without recomputation."""
    if peak_bw_dsc is None:
        peak_bw_dsc = slot.peak_bw_dsc
    return replace(slot, peak_bw=str(peak_bw), peak_bw_dsc=str(peak_bw_dsc))


def set_label(slot: StreamSlot, label: str) -> StreamSlot:
    return replace(slot, label=label)


def new_slot_id(index: int) -> str:
    return f"{index}_{uuid.uuid4().hex[:8]}"


def new_slot(index: int) -> StreamSlot:
    """Default slot: CVT-RB2 3840×2160 @ 144, 8 bpc RGB, DSC 3:1 in use."""
    slot = StreamSlot(id=new_slot_id(index), label=f"Timing {index + 1}",
                      timing=TimingSpec(profile=DEFAULT_PROFILE))
    return choose_mode(slot, DEFAULT_MODE_INDEX)


# =============================================================================
# Session operations
# =============================================================================

def clamp_lanes(lanes) -> int:
    """Lane counts outside the enumerated options become the largest option."""
    return lanes if lanes in LANE_OPTIONS else LANE_OPTIONS[-1]


def new_session(preset_id: str = DEFAULT_PRESET_ID) -> SessionState:
    preset = find_preset(preset_id)
    return SessionState(slots=(new_slot(0),), link=LinkConfig.from_preset(preset),
                        preset_id=preset.id)


def find_slot(state: SessionState, slot_id: str) -> StreamSlot:
    for slot in state.slots:
        if slot.id == slot_id:
            return slot
    raise KeyError(slot_id)


def add_slot(state: SessionState) -> SessionState:
    if len(state.slots) >= MAX_STREAMS:
        return state
    return replace(state, slots=state.slots + (new_slot(len(state.slots)),))


def remove_slot(state: SessionState, slot_id: str) -> SessionState:
    if len(state.slots) <= 1:
        return state
    return replace(state, slots=tuple(s for s in state.slots if s.id != slot_id))


def replace_slot(state: SessionState, slot: StreamSlot) -> SessionState:
    """Swap in an updated slot with the same id."""
    find_slot(state, slot.id)
    return replace(state, slots=tuple(slot if s.id == slot.id else s for s in state.slots))


def select_preset(state: SessionState, preset_id: str) -> SessionState:
    """Replace the link configuration with a preset's values."""
    preset = find_preset(preset_id)
    return replace(state, link=LinkConfig.from_preset(preset), preset_id=preset.id)


def edit_link(state: SessionState, rate: Optional[float] = None,
              lanes: Optional[int] = None, coding: Optional[str] = None) -> SessionState:
    """Edit link fields in place of a preset. The per-lane rate must be positive."""
    if coding is not None and coding not in CODINGS:
        raise ValueError(f"Unknown line coding: {coding!r}")
    if rate is not None and not (math.isfinite(rate) and rate > 0):
        raise ValueError(f"Per-lane rate must be positive, got {rate!r}")
    link = state.link
    if rate is not None:
        link = replace(link, rate=float(rate))
    if lanes is not None:
        link = replace(link, lanes=clamp_lanes(lanes))
    if coding is not None:
        link = replace(link, coding=coding)
    return replace(state, link=link)


def recompute(state: SessionState, epsilon: float = FIT_EPSILON,
              low_margin_pct: float = LOW_MARGIN_PCT) -> AggregateReport:
    """Aggregate report for the session's current slots and link."""
    return aggregate([slot.selected_rate for slot in state.slots],
                     state.link.payload_capacity,
                     epsilon=epsilon, low_margin_pct=low_margin_pct)
