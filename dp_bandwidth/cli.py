#!/usr/bin/env python3
"""
DisplayPort multi-timing bandwidth checker.

Checks whether up to four video timings fit together on one DisplayPort
link after line coding overhead.

Usage:
    dp-bandwidth modes
    dp-bandwidth timing 3840 2160 144 --profile cvt_rb2
    dp-bandwidth check --mode 7 --mode 0 --preset dp13_hbr3
    dp-bandwidth check session.json --html report.html
"""

import argparse
import os
import shlex
import sys

from . import cvt
from .bandwidth import (BPC_OPTIONS, CODINGS, COLOR_FORMATS, DSC_RATIOS,
                        LANE_OPTIONS, LINK_PRESETS, bits_per_pixel,
                        compressed_rate_gbps, raw_rate_gbps)
from .aggregate import MAX_STREAMS, STATUS_OVER_CAPACITY
from .config_io import StateImportError, load_state, save_state
from .report import format_summary, generate_html_report
from .state import (PREDEFINED_MODES, PROFILES, ColorMode, CompressionSetting,
                    SessionState, StreamSlot, TimingSpec, choose_mode,
                    edit_link, new_session, new_slot_id, recompute,
                    select_preset, set_color, set_compression, set_profile)

EXIT_FITS = 0
EXIT_ERROR = 1
EXIT_OVER_CAPACITY = 2


def cmd_modes(args) -> int:
    print("Predefined modes:")
    for i, mode in enumerate(PREDEFINED_MODES):
        print(f"  {i:2d}  {mode.label}")
    print()
    print("Link presets:")
    for preset in LINK_PRESETS:
        print(f"  {preset.id:<15s} {preset.label}")
    return EXIT_FITS


def cmd_timing(args) -> int:
    try:
        d = cvt.generate(args.h, args.v, args.hz, args.profile,
                         margins=args.margins, interlaced=args.interlaced,
                         video_optimized=args.video_optimized)
    except ValueError as e:
        print(f"Error: {e}")
        return EXIT_ERROR

    bpp = bits_per_pixel(args.bpc, args.format)
    raw = raw_rate_gbps(d.pixel_clock_mhz, bpp)

    print(f"{args.h} x {args.v} @ {args.hz:g} Hz ({args.profile})")
    print(f"  Pixel clock: {d.pixel_clock_mhz:.3f} MHz")
    print(f"  H total:     {d.h_total} (blank {d.h_blank}: "
          f"front {d.h_front}, sync {d.h_sync}, back {d.h_back})")
    print(f"  V total:     {d.v_total} (blank {d.v_blank}: "
          f"front {d.v_front}, sync {d.v_sync}, back {d.v_back})")
    print(f"  Bandwidth:   {raw:.4f} Gbps at {args.bpc} bpc "
          f"{COLOR_FORMATS[args.format][0]} ({bpp:g} bpp)")
    for ratio in DSC_RATIOS:
        print(f"  DSC {ratio:g}:1:     {compressed_rate_gbps(raw, ratio):.4f} Gbps")
    return EXIT_FITS


def apply_stream_options(slot: StreamSlot, args) -> StreamSlot:
    """Apply --profile/--bpc/--format/--dsc-ratio/--no-dsc to a loaded slot."""
    if args.profile is not None:
        slot = set_profile(slot, args.profile)
    if args.bpc is not None or args.format is not None:
        slot = set_color(slot, bpc=args.bpc, color_format=args.format)
    if args.dsc_ratio is not None or args.no_dsc:
        slot = set_compression(slot, ratio=args.dsc_ratio,
                               active=False if args.no_dsc else None)
    return slot


def build_mode_slots(args):
    slots = []
    for i, mode_index in enumerate(args.mode[:MAX_STREAMS]):
        slot = StreamSlot(
            id=new_slot_id(i),
            label=f"Timing {i + 1}",
            timing=TimingSpec(profile=args.profile or 'cvt_rb2'),
            color=ColorMode(bpc=args.bpc or 8, color_format=args.format or 'rgb'),
            compression=CompressionSetting(ratio=args.dsc_ratio or 3.0,
                                           active=not args.no_dsc),
        )
        slots.append(choose_mode(slot, mode_index))
    return tuple(slots)


def cmd_check(args) -> int:
    state = new_session()

    if args.config:
        if not os.path.exists(args.config):
            print(f"Error: File not found: {args.config}")
            return EXIT_ERROR
        print(f"Loading {args.config}...")
        try:
            state = load_state(args.config, base=state, verbose=True)
        except StateImportError as e:
            print(f"Error: {e}")
            return EXIT_ERROR

    if args.preset:
        state = select_preset(state, args.preset)
    try:
        state = edit_link(state, rate=args.rate, lanes=args.lanes, coding=args.coding)
    except ValueError as e:
        print(f"Error: {e}")
        return EXIT_ERROR

    if args.mode:
        for mode_index in args.mode:
            if not 0 <= mode_index < len(PREDEFINED_MODES):
                print(f"Error: No predefined mode at index {mode_index} "
                      f"(see 'modes')")
                return EXIT_ERROR
        if len(args.mode) > MAX_STREAMS:
            print(f"Warning: {len(args.mode)} modes given, keeping the first {MAX_STREAMS}")
        state = SessionState(slots=build_mode_slots(args), link=state.link,
                             preset_id=state.preset_id)
    else:
        state = SessionState(slots=tuple(apply_stream_options(s, args) for s in state.slots),
                             link=state.link, preset_id=state.preset_id)

    report = recompute(state)
    print(format_summary(state, report))

    if args.export:
        save_state(state, args.export)
        print(f"\nSession exported: {args.export}")

    if args.html:
        output_dir = os.path.dirname(args.html) or '.'
        os.makedirs(output_dir, exist_ok=True)
        command_line = ' '.join(shlex.quote(a) for a in sys.argv)
        generate_html_report(state, report, args.html, title=args.title,
                             command_line=command_line)
        print(f"\nReport generated: {args.html}")

    return EXIT_OVER_CAPACITY if report.status == STATUS_OVER_CAPACITY else EXIT_FITS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='dp-bandwidth',
        description='Check whether several video timings fit on one DisplayPort link',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s modes                                  # List modes and link presets
    %(prog)s timing 2560 1440 144 --profile cvt_rb  # Show generated timing
    %(prog)s check --mode 7 --mode 5                # Two 4K streams on HBR3
    %(prog)s check --mode 8 --preset dp20_uhbr20 --no-dsc
    %(prog)s check session.json --html report.html  # Check an exported session

Exit status: 0 fits, 2 over capacity, 1 error.
        """
    )
    sub = parser.add_subparsers(dest='command', required=True)

    modes = sub.add_parser('modes', help='List predefined modes and link presets')
    modes.set_defaults(func=cmd_modes)

    timing = sub.add_parser('timing', help='Generate CVT timing for one mode')
    timing.add_argument('h', type=int, help='Active pixels per line')
    timing.add_argument('v', type=int, help='Active lines')
    timing.add_argument('hz', type=float, help='Refresh rate (Hz)')
    timing.add_argument('--profile', choices=cvt.GENERATED_PROFILES, default='cvt_rb2',
                        help='Generation profile (default: cvt_rb2)')
    timing.add_argument('--margins', action='store_true',
                        help='Add 1.8%% margins')
    timing.add_argument('--interlaced', action='store_true',
                        help='Interlaced mode')
    timing.add_argument('--video-optimized', action='store_true',
                        help='RB2 only: scale the clock by 1000/1001')
    timing.add_argument('--bpc', type=int, choices=BPC_OPTIONS, default=8,
                        help='Bits per component (default: 8)')
    timing.add_argument('--format', choices=list(COLOR_FORMATS), default='rgb',
                        help='Color format (default: rgb)')
    timing.set_defaults(func=cmd_timing)

    check = sub.add_parser('check', help='Check streams against a link')
    check.add_argument('config', nargs='?', default=None,
                       help='Exported session JSON to load')
    check.add_argument('--mode', '-m', type=int, action='append', default=[],
                       metavar='IDX',
                       help='Predefined mode index, repeat for up to 4 streams')
    check.add_argument('--profile', choices=PROFILES, default=None,
                       help='Generation profile for every stream')
    check.add_argument('--bpc', type=int, choices=BPC_OPTIONS, default=None,
                       help='Bits per component for every stream')
    check.add_argument('--format', choices=list(COLOR_FORMATS), default=None,
                       help='Color format for every stream')
    check.add_argument('--dsc-ratio', type=float, choices=DSC_RATIOS, default=None,
                       help='DSC compression ratio for every stream')
    check.add_argument('--no-dsc', action='store_true',
                       help='Aggregate raw rates instead of DSC rates')
    check.add_argument('--preset', choices=[p.id for p in LINK_PRESETS], default=None,
                       help='Link preset (default: dp13_hbr3)')
    check.add_argument('--lanes', type=int, choices=LANE_OPTIONS, default=None,
                       help='Lane count')
    check.add_argument('--rate', type=float, default=None,
                       help='Per-lane rate in Gbps')
    check.add_argument('--coding', choices=CODINGS, default=None,
                       help='Line coding')
    check.add_argument('--export', metavar='PATH',
                       help='Write the session as JSON')
    check.add_argument('--html', metavar='PATH',
                       help='Write an HTML report')
    check.add_argument('--title', '-t', metavar='TITLE',
                       help='Report title (default: derived from HTML filename)')
    check.set_defaults(func=cmd_check)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
