"""
Stream bit rates and link payload capacity.

Stream side: pixel clock x bits per pixel, optionally divided by a DSC
compression ratio. Link side: per-lane rate x lane count x line coding
efficiency. Only line coding overhead is modeled; protocol framing is not.
"""

from dataclasses import dataclass
from typing import List

# Color formats: channel factor applied to bits per component
COLOR_FORMATS = {
    'rgb': ('RGB', 3),
    'yuv444': ('YUV 4:4:4', 3),
    'yuv422': ('YUV 4:2:2', 2),
    'yuv420': ('YUV 4:2:0', 1.5),
}
BPC_OPTIONS = (5, 6, 8, 10, 12, 16)
DSC_RATIOS = (3.0, 2.4)

CODINGS = ('8b10b', '128b132b')
LANE_OPTIONS = (1, 2, 4)


@dataclass(frozen=True)
class LinkPreset:
    """One selectable DisplayPort link configuration."""
    id: str
    label: str
    rate: float    # Per-lane raw rate (Gbps)
    coding: str
    lanes: int


LINK_PRESETS: List[LinkPreset] = [
    LinkPreset('custom', 'Custom', 8.1, '8b10b', 4),
    LinkPreset('dp20_uhbr20', 'DP 2.0 – UHBR20 (20 Gbps ×4, 128b/132b)', 20.0, '128b132b', 4),
    LinkPreset('dp20_uhbr13_5', 'DP 2.0 – UHBR13.5 (13.5 Gbps ×4, 128b/132b)', 13.5, '128b132b', 4),
    LinkPreset('dp20_uhbr10', 'DP 2.0 – UHBR10 (10 Gbps ×4, 128b/132b)', 10.0, '128b132b', 4),
    LinkPreset('dp13_hbr3', 'DP 1.3/1.4 – HBR3 (8.1 Gbps ×4, 8b/10b)', 8.1, '8b10b', 4),
    LinkPreset('dp12_hbr2', 'DP 1.2 – HBR2 (5.4 Gbps ×4, 8b/10b)', 5.4, '8b10b', 4),
    LinkPreset('dp12_hbr', 'DP 1.1 – HBR (2.7 Gbps ×4, 8b/10b)', 2.7, '8b10b', 4),
    LinkPreset('dp11_rbr', 'DP 1.1 – RBR (1.62 Gbps ×4, 8b/10b)', 1.62, '8b10b', 4),
]
DEFAULT_PRESET_ID = 'dp13_hbr3'


def find_preset(preset_id: str) -> LinkPreset:
    """Look up a link preset by id, falling back to the first entry."""
    for preset in LINK_PRESETS:
        if preset.id == preset_id:
            return preset
    return LINK_PRESETS[0]


def color_factor(color_format: str) -> float:
    return COLOR_FORMATS[color_format][1]


def bits_per_pixel(bpc: float, color_format: str) -> float:
    """Bits per pixel for a component depth and chroma format."""
    return bpc * color_factor(color_format)


def raw_rate_gbps(pixel_clock_mhz: float, bpp: float) -> float:
    """Uncompressed stream rate in Gbps."""
    return (pixel_clock_mhz * 1e6 * bpp) / 1e9


def compressed_rate_gbps(raw_gbps: float, ratio: float) -> float:
    """Stream rate after DSC at the given compression ratio."""
    return raw_gbps / ratio


def pixel_clock_from_totals(h: float, v: float, hz: float,
                            h_front: float, h_sync: float, h_back: float,
                            v_front: float, v_sync: float, v_back: float) -> float:
    """Pixel clock (MHz) implied by explicit blanking totals."""
    h_total = h + h_front + h_sync + h_back
    v_total = v + v_front + v_sync + v_back
    return (h_total * v_total * hz) / 1e6


def coding_efficiency(coding: str) -> float:
    """Payload fraction left after line coding."""
    return 0.8 if coding == '8b10b' else 128 / 132


def raw_capacity_gbps(rate_gbps: float, lanes: int) -> float:
    return rate_gbps * lanes


def payload_capacity_gbps(rate_gbps: float, lanes: int, coding: str) -> float:
    """Usable payload capacity of the whole link in Gbps."""
    return raw_capacity_gbps(rate_gbps, lanes) * coding_efficiency(coding)


@dataclass(frozen=True)
class LinkConfig:
    """Process-wide link settings: per-lane rate, lane count and coding."""
    rate: float = 8.1
    lanes: int = 4
    coding: str = '8b10b'

    @property
    def efficiency(self) -> float:
        return coding_efficiency(self.coding)

    @property
    def raw_capacity(self) -> float:
        return raw_capacity_gbps(self.rate, self.lanes)

    @property
    def payload_capacity(self) -> float:
        return payload_capacity_gbps(self.rate, self.lanes, self.coding)

    @classmethod
    def from_preset(cls, preset: LinkPreset) -> 'LinkConfig':
        return cls(rate=preset.rate, lanes=preset.lanes, coding=preset.coding)
