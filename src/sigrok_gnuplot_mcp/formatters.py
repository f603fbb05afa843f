"""Human-readable strings for the gnuplot header and tool responses.

The gnuplot document can be huge (one row per sample change over millions of
samples). The view helpers here cut it down to a window of rows or a compact
per-channel summary that an LLM can reason about.
"""

from __future__ import annotations

import operator
from fractions import Fraction

_FREQUENCY_UNITS = (
    (1_000_000_000, "GHz"),
    (1_000_000, "MHz"),
    (1_000, "kHz"),
    (1, "Hz"),
)

# Decimal exponent of each unit relative to one second.
_PERIOD_UNITS = (
    (0, "s"),
    (3, "ms"),
    (6, "us"),
    (9, "ns"),
    (12, "ps"),
)


def _as_rate(rate_hz) -> int:
    try:
        rate = operator.index(rate_hz)
    except TypeError as e:
        raise ValueError(f"Sample rate must be an integer, got {rate_hz!r}") from e
    if rate <= 0:
        raise ValueError(f"Sample rate must be positive, got {rate}")
    return rate


def _trim(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def samplerate_string(rate_hz: int) -> str:
    """Render a sample rate like 1000000 as '1 MHz' (or 1500000 as '1.5 MHz')."""
    rate = _as_rate(rate_hz)
    for scale, unit in _FREQUENCY_UNITS:
        if rate >= scale:
            if rate % scale == 0:
                return f"{rate // scale} {unit}"
            return f"{_trim(rate / scale)} {unit}"
    raise ValueError(f"Sample rate out of range: {rate}")


def period_string(rate_hz: int) -> str:
    """Render the period of one sample at the given rate, e.g. 1 MHz -> '1 us'.

    Picks the largest unit in which the period is at least 1, falling back
    to picoseconds for rates above 1 THz.
    """
    rate = _as_rate(rate_hz)
    for exponent, unit in _PERIOD_UNITS:
        value = Fraction(10**exponent, rate)
        if value >= 1 or unit == "ps":
            if value.denominator == 1:
                return f"{value.numerator} {unit}"
            return f"{_trim(float(value))} {unit}"
    raise ValueError(f"Sample rate out of range: {rate}")


def _data_rows(text: str) -> list[str]:
    return [
        line for line in text.splitlines()
        if line.strip() and not line.startswith("#")
    ]


def format_gnuplot_rows(
    text: str,
    start_row: int = 0,
    window_size: int = 1000,
) -> str:
    """Extract a window of data rows from a gnuplot document.

    Header comments and blank lines are skipped, so row 0 is the first
    sample row. Each row keeps its own sample counter.
    """
    rows = _data_rows(text)
    total = len(rows)

    if total == 0:
        return "No sample rows available."

    # Clamp window to available data
    start = max(0, min(start_row, total - 1))
    end = min(start + max(window_size, 1), total)
    window = rows[start:end]

    header = (
        f"Rows {start}-{end - 1} of {total} total "
        f"(showing {end - start} rows):\n"
    )

    return header + "\n".join(window)


def _header_channels(text: str) -> list[str]:
    """Channel names from the '# <n>\\t\\t<name>' column lines, column 0 excluded."""
    names = []
    for line in text.splitlines():
        if not line.startswith("# "):
            if line.strip():
                break
            continue
        column, sep, name = line[2:].partition("\t\t")
        if sep and column.isdigit() and int(column) > 0:
            names.append(name)
    return names


def summarize_gnuplot_data(text: str) -> str:
    """Generate a high-level summary of a gnuplot capture.

    Rows are deduplicated, so each row's value holds until the counter of the
    next row. High percentages are weighted by that gap:
        0\t1 0
        5\t0 0
        9\t0 1
    means channel 1 was high for samples 0-4 and channel 2 only at sample 9.
    """
    rows = _data_rows(text)
    if not rows:
        return "No sample data to summarize."

    counters: list[int] = []
    values: list[list[str]] = []
    for row in rows:
        counter, _, bits = row.partition("\t")
        if not counter.strip().isdigit():
            continue
        counters.append(int(counter))
        values.append(bits.split())

    if not values:
        return "No sample data to summarize (could not parse rows)."

    num_channels = len(values[0])
    names = _header_channels(text)
    if len(names) != num_channels:
        names = [f"Column {i + 1}" for i in range(num_channels)]

    total_samples = counters[-1] - counters[0] + 1
    spans = [b - a for a, b in zip(counters, counters[1:])] + [1]

    summary_lines = [
        f"Capture summary: {total_samples} samples, {num_channels} channels "
        f"({len(values)} rows after deduplication)",
        "",
        f"{'Channel':<10} {'High %':>8} {'Edges':>8}   {'Activity'}",
        "-" * 45,
    ]

    for ch, name in enumerate(names):
        high = 0
        edges = 0
        previous = None
        for span, row in zip(spans, values):
            bit = row[ch] if ch < len(row) else "0"
            if bit == "1":
                high += span
            if previous is not None and bit != previous:
                edges += 1
            previous = bit
        pct_high = high / total_samples * 100
        if edges > 0:
            activity = "active"
        elif high == total_samples:
            activity = "always high"
        else:
            activity = "always low"
        summary_lines.append(
            f"{name:<10} {pct_high:>7.1f}% {edges:>8}   {activity}"
        )

    return "\n".join(summary_lines)
