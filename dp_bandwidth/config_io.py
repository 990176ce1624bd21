"""
JSON import/export of a session.

File layout:

    {
      "timings": [ { "id", "label", "peakBw", "peakBwDsc", "useDsc",
                     "calcOpen", "modeIndex", "cvtKind", "h", "v", "hz",
                     "hFront", "hSync", "hBack", "vFront", "vSync", "vBack",
                     "bpp", "bpc", "colorFormat", "dscRatio", "pixelClock" } ],
      "transport": { "rate", "lanes", "coding", "eff" },
      "presetId": "dp13_hbr3"
    }

Field-level problems (missing or non-numeric values) are resolved with
defaults and never abort an import. Structural problems raise
StateImportError before any state is built, so the caller's current
session is never partially replaced.
"""

import json
import math
from typing import Optional, Union

from .aggregate import MAX_STREAMS
from .bandwidth import (BPC_OPTIONS, CODINGS, COLOR_FORMATS, DSC_RATIOS,
                        LinkConfig, pixel_clock_from_totals)
from .state import (DEFAULT_BPC, DEFAULT_COLOR_FORMAT, DEFAULT_DSC_RATIO,
                    DEFAULT_PROFILE, PREDEFINED_MODES, PROFILES,
                    ColorMode, CompressionSetting, SessionState, StreamSlot,
                    TimingSpec, clamp_lanes, new_session, new_slot, new_slot_id)

NO_MODE_INDEX = -1

# (JSON key, TimingSpec attribute), in export order
TIMING_KEYS = [
    ('h', 'h'),
    ('v', 'v'),
    ('hz', 'hz'),
    ('hFront', 'h_front'),
    ('hSync', 'h_sync'),
    ('hBack', 'h_back'),
    ('vFront', 'v_front'),
    ('vSync', 'v_sync'),
    ('vBack', 'v_back'),
]
TOP_LEVEL_KEYS = ('timings', 'transport', 'presetId')

Number = Union[int, float]


class StateImportError(ValueError):
    """The import payload is not a usable session."""


def _warn(verbose: bool, message: str):
    if verbose:
        print(f"Warning: {message}")


def parse_number(value) -> Optional[Number]:
    """
    Read a JSON number or numeric string.

    Returns None for missing, boolean, non-numeric or non-finite values.
    Integral values come back as int.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    elif not isinstance(value, (int, float)):
        return None

    try:
        number = float(value)
    except (OverflowError, ValueError):
        return None

    if not math.isfinite(number):
        return None
    if number.is_integer():
        return int(number)
    return number


def parse_int(value) -> Optional[int]:
    number = parse_number(value)
    return number if isinstance(number, int) else None


def _text(value) -> str:
    return '' if value is None else str(value)


# =============================================================================
# Import
# =============================================================================

def parse_timing(entry: dict, index: int, verbose: bool = False) -> StreamSlot:
    """Build one stream slot from a "timings" entry, applying defaults."""
    label = entry.get('label')
    label = f"Timing {index + 1}" if label is None else str(label)

    profile = entry.get('cvtKind')
    if profile not in PROFILES:
        if profile is not None:
            _warn(verbose, f"{label}: unknown cvtKind {profile!r}, using {DEFAULT_PROFILE}")
        profile = DEFAULT_PROFILE

    values = {}
    for key, name in TIMING_KEYS:
        raw = entry.get(key)
        value = parse_number(raw) if name == 'hz' else parse_int(raw)
        if value is None and raw is not None:
            _warn(verbose, f"{label}: ignoring non-numeric {key}={raw!r}")
        values[name] = value

    pixel_clock = parse_number(entry.get('pixelClock'))
    if pixel_clock is None or pixel_clock <= 0:
        if all(value is not None for value in values.values()):
            pixel_clock = pixel_clock_from_totals(**values)
        else:
            pixel_clock = None

    bpc = parse_number(entry.get('bpc'))
    if bpc not in BPC_OPTIONS:
        if entry.get('bpc') is not None:
            _warn(verbose, f"{label}: unsupported bpc {entry.get('bpc')!r}, using {DEFAULT_BPC}")
        bpc = DEFAULT_BPC

    color_format = entry.get('colorFormat')
    if not isinstance(color_format, str) or color_format not in COLOR_FORMATS:
        if color_format is not None:
            _warn(verbose, f"{label}: unknown colorFormat {color_format!r}, "
                           f"using {DEFAULT_COLOR_FORMAT}")
        color_format = DEFAULT_COLOR_FORMAT

    dsc_ratio = parse_number(entry.get('dscRatio'))
    if dsc_ratio not in DSC_RATIOS:
        if entry.get('dscRatio') is not None:
            _warn(verbose, f"{label}: unsupported dscRatio {entry.get('dscRatio')!r}, "
                           f"using {DEFAULT_DSC_RATIO}")
        dsc_ratio = DEFAULT_DSC_RATIO

    mode_index = entry.get('modeIndex')
    if (not isinstance(mode_index, int) or isinstance(mode_index, bool)
            or not 0 <= mode_index < len(PREDEFINED_MODES)):
        mode_index = None

    return StreamSlot(
        id=str(entry.get('id') or new_slot_id(index)),
        label=label,
        timing=TimingSpec(profile=profile, pixel_clock=pixel_clock, **values),
        color=ColorMode(bpc=int(bpc), color_format=color_format),
        compression=CompressionSetting(ratio=float(dsc_ratio),
                                       active=bool(entry.get('useDsc'))),
        peak_bw=_text(entry.get('peakBw')),
        peak_bw_dsc=_text(entry.get('peakBwDsc')),
        calc_open=bool(entry.get('calcOpen')),
        mode_index=mode_index,
    )


def parse_transport(transport: dict, current: LinkConfig,
                    verbose: bool = False) -> LinkConfig:
    """Build the link configuration; unusable fields keep the current values."""
    rate = parse_number(transport.get('rate'))
    if rate is None or rate <= 0:
        _warn(verbose, f"transport: unusable rate {transport.get('rate')!r}, "
                       f"keeping {current.rate}")
        rate = current.rate

    raw_lanes = parse_number(transport.get('lanes'))
    lanes = clamp_lanes(raw_lanes)
    if lanes != raw_lanes:
        _warn(verbose, f"transport: lane count {transport.get('lanes')!r} "
                       f"not in (1, 2, 4), using {lanes}")

    coding = transport.get('coding')
    if coding not in CODINGS:
        _warn(verbose, f"transport: unknown coding {coding!r}, keeping {current.coding}")
        coding = current.coding

    return LinkConfig(rate=float(rate), lanes=lanes, coding=coding)


def parse_state(payload, base: Optional[SessionState] = None,
                verbose: bool = False) -> SessionState:
    """
    Build a session from a decoded JSON payload.

    Sections missing from the payload keep the values of `base` (a fresh
    default session when not given). More than four timings are truncated;
    an empty list yields a single default slot.

    Raises:
        StateImportError: if the payload does not have the session layout
    """
    if not isinstance(payload, dict):
        raise StateImportError("Top-level JSON value must be an object")
    if not any(key in payload for key in TOP_LEVEL_KEYS):
        raise StateImportError(
            f"No session data found (expected one of: {', '.join(TOP_LEVEL_KEYS)})")

    timings = payload.get('timings')
    if timings is not None:
        if not isinstance(timings, list):
            raise StateImportError("'timings' must be a list")
        for i, entry in enumerate(timings):
            if not isinstance(entry, dict):
                raise StateImportError(f"Timing entry {i + 1} is not an object")

    transport = payload.get('transport')
    if transport is not None and not isinstance(transport, dict):
        raise StateImportError("'transport' must be an object")

    if base is None:
        base = new_session()

    slots = base.slots
    if timings is not None:
        if len(timings) > MAX_STREAMS:
            _warn(verbose, f"{len(timings)} timings in file, keeping the first {MAX_STREAMS}")
        slots = tuple(parse_timing(entry, i, verbose)
                      for i, entry in enumerate(timings[:MAX_STREAMS]))
        if not slots:
            slots = (new_slot(0),)

    link = base.link
    if transport is not None:
        link = parse_transport(transport, base.link, verbose)

    preset_id = payload.get('presetId')
    if not isinstance(preset_id, str):
        preset_id = base.preset_id

    return SessionState(slots=slots, link=link, preset_id=preset_id)


def loads_state(text: str, base: Optional[SessionState] = None,
                verbose: bool = False) -> SessionState:
    try:
        payload = json.loads(text)
    except (ValueError, RecursionError) as e:
        raise StateImportError(f"Invalid JSON: {e}") from e
    return parse_state(payload, base=base, verbose=verbose)


def load_state(path: str, base: Optional[SessionState] = None,
               verbose: bool = False) -> SessionState:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise StateImportError(f"{path} is not UTF-8 text: {e}") from e
    return loads_state(text, base=base, verbose=verbose)


# =============================================================================
# Export
# =============================================================================

def dump_slot(slot: StreamSlot) -> dict:
    t = slot.timing
    data = {
        'id': slot.id,
        'label': slot.label,
        'peakBw': slot.peak_bw,
        'peakBwDsc': slot.peak_bw_dsc,
        'useDsc': slot.compression.active,
        'calcOpen': slot.calc_open,
        'modeIndex': NO_MODE_INDEX if slot.mode_index is None else slot.mode_index,
        'cvtKind': t.profile,
    }
    for key, name in TIMING_KEYS:
        value = getattr(t, name)
        if value is not None:
            data[key] = value
    data['bpp'] = slot.color.bpp
    data['bpc'] = slot.color.bpc
    data['colorFormat'] = slot.color.color_format
    data['dscRatio'] = slot.compression.ratio
    if t.pixel_clock is not None:
        data['pixelClock'] = t.pixel_clock
    return data


def dump_state(state: SessionState) -> dict:
    """Session as a JSON-ready dict."""
    link = state.link
    return {
        'timings': [dump_slot(slot) for slot in state.slots],
        'transport': {
            'rate': link.rate,
            'lanes': link.lanes,
            'coding': link.coding,
            'eff': link.efficiency,
        },
        'presetId': state.preset_id,
    }


def dumps_state(state: SessionState) -> str:
    return json.dumps(dump_state(state), indent=2, ensure_ascii=False)


def save_state(state: SessionState, path: str) -> str:
    with open(path, 'w', encoding='utf-8') as f:
        f.write(dumps_state(state))
        f.write('\n')
    return path
