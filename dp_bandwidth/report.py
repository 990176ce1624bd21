"""
Text and HTML reports for a bandwidth check.

The text summary is what the command line prints. The HTML report adds a
per-stream bandwidth chart against the link payload capacity.
"""

import html as html_module
import os
from pathlib import Path
from typing import Optional

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
import matplotlib.pyplot as plt
import numpy as np

from .aggregate import (STATUS_HEALTHY, STATUS_LOW_MARGIN, STATUS_OVER_CAPACITY,
                        AggregateReport)
from .bandwidth import COLOR_FORMATS, find_preset
from .state import SessionState, StreamSlot

STATUS_COLORS = {
    STATUS_OVER_CAPACITY: '#ef4444',
    STATUS_LOW_MARGIN: '#fbbf24',
    STATUS_HEALTHY: '#10b981',
}

STATUS_HEADLINES = {
    STATUS_OVER_CAPACITY: 'Exceeds selected DP payload',
    STATUS_LOW_MARGIN: 'Fits within selected DP payload (low margin)',
    STATUS_HEALTHY: 'Fits within selected DP payload',
}

CODING_NOTES = {
    '8b10b': '8b/10b (×0.8)',
    '128b132b': '128b/132b (×128/132)',
}


def format_optional(value, fmt: str = '{}', missing: str = '—') -> str:
    return missing if value is None else fmt.format(value)


def describe_slot(slot: StreamSlot) -> str:
    """One-line description: resolution, refresh, profile, color and clock."""
    t = slot.timing
    active = (f"{format_optional(t.h)}×{format_optional(t.v)} @ "
              f"{format_optional(t.hz, '{:g}')} Hz")
    color = f"{slot.color.bpc} bpc {COLOR_FORMATS[slot.color.color_format][0]}"
    clock = format_optional(t.pixel_clock, '{:.3f} MHz')
    return f"{active}, {t.profile}, {color}, {clock}"


def format_summary(state: SessionState, report: AggregateReport) -> str:
    """Plain-text summary of link, streams and aggregate result."""
    link = state.link
    preset = find_preset(state.preset_id)
    lines = []

    lines.append("=" * 70)
    lines.append("DISPLAYPORT LINK")
    lines.append("=" * 70)
    lines.append(f"  Preset:            {preset.label} ({state.preset_id})")
    lines.append(f"  Raw line rate:     {link.raw_capacity:.2f} Gbps "
                 f"({link.rate:.2f} × {link.lanes} lanes)")
    lines.append(f"  Coding efficiency: {link.efficiency * 100:.2f}% "
                 f"{CODING_NOTES.get(link.coding, link.coding)}")
    lines.append(f"  Usable payload:    {link.payload_capacity:.2f} Gbps")

    lines.append("")
    lines.append("=" * 70)
    lines.append("TIMINGS")
    lines.append("=" * 70)
    for i, slot in enumerate(state.slots, 1):
        t = slot.timing
        using = 'DSC' if slot.compression.active else 'raw'
        lines.append(f"  {i}. {slot.label}: {describe_slot(slot)}")
        lines.append(f"     H blank {format_optional(t.h_blank)} px, "
                     f"V blank {format_optional(t.v_blank)} lines, "
                     f"totals {format_optional(t.h_total)}×{format_optional(t.v_total)}")
        lines.append(f"     Peak {slot.peak:.2f} Gbps, "
                     f"DSC {slot.compression.ratio:g}:1 {slot.peak_dsc:.2f} Gbps, "
                     f"using {using}: {slot.selected_rate:.2f} Gbps")

    lines.append("")
    lines.append("=" * 70)
    lines.append("SUMMARY")
    lines.append("=" * 70)
    mark = "✗" if not report.fits else ("⚠" if report.status == STATUS_LOW_MARGIN else "✓")
    lines.append(f"  {mark} {STATUS_HEADLINES[report.status]}")
    lines.append(f"  Total required:    {report.total_required:.2f} Gbps")
    lines.append(f"  Payload capacity:  {report.payload_capacity:.2f} Gbps")
    lines.append(f"  Margin:            {report.margin:.2f} Gbps "
                 f"({report.margin_pct:.1f}% of capacity)")
    lines.append(f"  Utilization:       {report.utilization_pct:.1f}% used")
    lines.append("")
    lines.append("  Assumes only line coding overhead. Protocol framing is ignored.")

    return "\n".join(lines)


def chart_upper_bound(state: SessionState) -> float:
    """Y-axis limit: 10% above the larger of the tallest bar and the capacity."""
    rates = [max(slot.selected_rate, slot.peak) for slot in state.slots]
    peak = max(rates) if rates else 0.0
    capacity = state.link.payload_capacity
    if peak > 0 or capacity > 0:
        return max(peak, capacity) * 1.1
    return 1.0


def create_bandwidth_chart(state: SessionState, output_path: str) -> str:
    """
    Bar chart of raw and selected rate per stream against payload capacity.

    Args:
        state: Session to plot
        output_path: Path to save the image

    Returns:
        output_path
    """
    labels = [slot.label or f"Timing {i + 1}" for i, slot in enumerate(state.slots)]
    raw = np.array([slot.peak for slot in state.slots])
    selected = np.array([slot.selected_rate for slot in state.slots])
    x = np.arange(len(labels))
    width = 0.38

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.bar(x - width / 2, raw, width, label='Raw', color='#94a3b8')
    ax.bar(x + width / 2, selected, width, label='Selected', color='#3b82f6')

    capacity = state.link.payload_capacity
    ax.axhline(capacity, color='red', linestyle='--', linewidth=1,
               label=f'Payload capacity ({capacity:.2f} Gbps)')

    ax.set_xticks(x)
    ax.set_xticklabels(labels)
    ax.set_ylim(0, chart_upper_bound(state))
    ax.set_ylabel('Bandwidth (Gbps)')
    ax.set_title('Per-Timing Bandwidth')
    ax.legend()

    # Tufte style
    ax.spines['top'].set_visible(False)
    ax.spines['right'].set_visible(False)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)

    return output_path


def title_from_filename(output_path: str) -> str:
    """
    Generate a human-readable title from the output filename.

    Examples:
        bandwidth_report_dual_4k.html -> "Dual 4K"
        report-office-setup.html -> "Office Setup"
    """
    stem = Path(output_path).stem
    for prefix in ['bandwidth_report_', 'bandwidth_report-', 'report_', 'report-']:
        if stem.lower().startswith(prefix):
            stem = stem[len(prefix):]
            break
    title = stem.replace('_', ' ').replace('-', ' ')
    return title.title()


def generate_html_report(state: SessionState, report: AggregateReport,
                         output_path: str, title: Optional[str] = None,
                         command_line: Optional[str] = None) -> str:
    """
    Write a static HTML report for a session.

    The chart is written to '<stem>_images/' next to the HTML file.

    Args:
        state: Session to report on
        report: Aggregate result for the session
        output_path: Path for the output HTML file
        title: Report title (default: derived from output filename)
        command_line: Command line used to generate this report
    """
    if title is None:
        title = title_from_filename(output_path)
    report_title = f"Bandwidth Report: {title}"

    output_dir = os.path.dirname(output_path)
    base_name = os.path.splitext(os.path.basename(output_path))[0]
    image_dir = os.path.join(output_dir, f"{base_name}_images")
    os.makedirs(image_dir, exist_ok=True)

    chart_path = create_bandwidth_chart(state, os.path.join(image_dir, 'bandwidth.png'))
    rel_chart = os.path.relpath(chart_path, output_dir) if output_dir else chart_path

    esc = html_module.escape
    link = state.link
    preset = find_preset(state.preset_id)

    link_rows = ""
    link_rows += f"        <tr><td>Preset</td><td>{esc(preset.label)}</td></tr>\n"
    link_rows += (f"        <tr><td>Raw line rate</td><td>{link.raw_capacity:.2f} Gbps "
                  f"({link.rate:.2f} × {link.lanes} lanes)</td></tr>\n")
    link_rows += (f"        <tr><td>Coding efficiency</td><td>{link.efficiency * 100:.2f}% "
                  f"{esc(CODING_NOTES.get(link.coding, link.coding))}</td></tr>\n")
    link_rows += (f"        <tr><td>Usable payload</td>"
                  f"<td>{link.payload_capacity:.2f} Gbps</td></tr>\n")

    timing_rows = ""
    for i, slot in enumerate(state.slots, 1):
        t = slot.timing
        timing_rows += f"""        <tr>
            <td>{i}</td>
            <td>{esc(slot.label)}</td>
            <td>{format_optional(t.h)}×{format_optional(t.v)} @ {format_optional(t.hz, '{:g}')}</td>
            <td>{t.profile}</td>
            <td>{format_optional(t.h_front)} / {format_optional(t.h_sync)} / {format_optional(t.h_back)}</td>
            <td>{format_optional(t.v_front)} / {format_optional(t.v_sync)} / {format_optional(t.v_back)}</td>
            <td>{format_optional(t.pixel_clock, '{:.3f}')} MHz</td>
            <td>{slot.color.bpc} bpc {COLOR_FORMATS[slot.color.color_format][0]}</td>
            <td>{slot.peak:.2f}</td>
            <td>{slot.peak_dsc:.2f} ({slot.compression.ratio:g}:1)</td>
            <td><strong>{slot.selected_rate:.2f}</strong></td>
        </tr>
"""

    status_color = STATUS_COLORS[report.status]
    headline = STATUS_HEADLINES[report.status]

    if command_line is not None:
        command_line_appendix = f"""<h2>Appendix: Reproduction</h2>

    <p>Command used to generate this report:</p>
    <pre style="background: #f5f5f5; padding: 15px; overflow-x: auto; border-radius: 4px;"><code>{esc(command_line)}</code></pre>"""
    else:
        command_line_appendix = ""

    html = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>{esc(report_title)}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            max-width: 1400px;
            margin: 0 auto;
            padding: 20px;
            line-height: 1.6;
            color: #333;
        }}
        h1, h2, h3 {{
            color: #2c3e50;
            border-bottom: 1px solid #eee;
            padding-bottom: 10px;
        }}
        table {{
            border-collapse: collapse;
            width: 100%;
            margin: 20px 0;
        }}
        th, td {{
            border: 1px solid #ddd;
            padding: 10px;
            text-align: right;
        }}
        th {{
            background-color: #f8f9fa;
        }}
        td:first-child, th:first-child {{
            text-align: left;
        }}
        .status {{
            padding: 15px;
            border-left: 6px solid {status_color};
            background: #fafafa;
            font-size: 1.2em;
        }}
        .bar {{
            height: 12px;
            background: #e2e8f0;
            border-radius: 6px;
            overflow: hidden;
        }}
        .bar > div {{
            height: 100%;
            width: {report.utilization_pct:.1f}%;
            background: {status_color};
        }}
        .image-container {{
            text-align: center;
            margin: 20px 0;
        }}
        .image-container img {{
            max-width: 100%;
        }}
    </style>
</head>
<body>
    <h1>{esc(report_title)}</h1>

    <div class="status">{headline}</div>

    <h2>Summary</h2>
    <table>
        <tr><td>Total required (selected)</td><td>{report.total_required:.2f} Gbps</td></tr>
        <tr><td>Payload capacity</td><td>{report.payload_capacity:.2f} Gbps</td></tr>
        <tr><td>Margin</td><td>{report.margin:.2f} Gbps ({report.margin_pct:.1f}% of capacity)</td></tr>
        <tr><td>Utilization</td><td>{report.utilization_pct:.1f}% used</td></tr>
    </table>
    <div class="bar"><div></div></div>

    <h2>DisplayPort Link</h2>
    <table>
        <tr><th>Parameter</th><th>Value</th></tr>
{link_rows}    </table>

    <h2>Timings</h2>
    <table>
        <tr><th>#</th><th>Label</th><th>Mode</th><th>Generator</th>
            <th>H fp / sync / bp</th><th>V fp / sync / bp</th><th>Pixel clock</th>
            <th>Color</th><th>Peak (Gbps)</th><th>DSC (Gbps)</th><th>Using (Gbps)</th></tr>
{timing_rows}    </table>

    <div class='image-container'><img src='{esc(rel_chart)}' alt='Per-Timing Bandwidth'></div>

    <p><em>Assumes only line coding overhead. Protocol framing is ignored.</em></p>

    {command_line_appendix}
</body>
</html>
"""

    with open(output_path, 'w', encoding='utf-8') as f:
        f.write(html)

    return output_path
