"""MCP server that captures logic analyzer data as gnuplot column text.

Exposes capture and inspection of gnuplot-formatted sample data as MCP
tools. Uses stdio transport.

Usage:
    python -m sigrok_gnuplot_mcp.server
    # or via the entry point:
    sigrok-gnuplot-mcp
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from dataclasses import dataclass

from mcp.server.fastmcp import FastMCP, Context

from sigrok_gnuplot_mcp import sigrok_native
from sigrok_gnuplot_mcp.capture_store import CaptureStore, CaptureNotFoundError
from sigrok_gnuplot_mcp.config import (
    CAPTURE_DIR,
    DEFAULT_DRIVER,
    MAX_ROWS_PER_CALL,
    configure_logging,
)
from sigrok_gnuplot_mcp.formatters import (
    format_gnuplot_rows,
    samplerate_string,
    summarize_gnuplot_data,
)
from sigrok_gnuplot_mcp.gnuplot import OutputError


# ---------------------------------------------------------------------------
# Lifespan — initializes and tears down the CaptureStore
# ---------------------------------------------------------------------------


@dataclass
class AppContext:
    store: CaptureStore


@asynccontextmanager
async def app_lifespan(server: FastMCP):
    store = CaptureStore(base_dir=CAPTURE_DIR)
    try:
        yield AppContext(store=store)
    finally:
        store.cleanup()


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "sigrok-gnuplot",
    instructions=(
        "Logic analyzer capture to gnuplot data files. "
        "Use capture to acquire samples; the result is a gnuplot-ready "
        "column file (sample counter, then one 0/1 column per channel). "
        "Use get_gnuplot_rows to read rows back and analyze_capture for a "
        "per-channel summary. Captures are referenced by ID (e.g. cap_001)."
    ),
    lifespan=app_lifespan,
)


def _get_store(ctx: Context) -> CaptureStore:
    """Extract the CaptureStore from the lifespan context."""
    return ctx.request_context.lifespan_context.store


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def scan_devices(
    driver: str = DEFAULT_DRIVER,
) -> str:
    """Scan for connected sigrok-compatible logic analyzers.

    Args:
        driver: sigrok driver name. Default is "zeroplus-logic-cube" for
                ZeroPlus LAP-C devices. Other common drivers: "fx2lafw",
                "saleae-logic-pro", "dreamsourcelab-dslogic", "demo".
    """
    try:
        devices = await sigrok_native.scan_devices(driver=driver)
    except sigrok_native.SigrokError as e:
        return str(e)

    lines = [f"Found {len(devices)} device(s):"]
    for dev in devices:
        lines.append(f"  - {dev['description']}")
    return "\n".join(lines)


@mcp.tool()
async def capture(
    ctx: Context,
    sample_rate: str = "1m",
    num_samples: int | None = None,
    duration_ms: int | None = None,
    channels: str | None = None,
    driver: str = DEFAULT_DRIVER,
    description: str = "",
) -> str:
    """Capture digital signals and save them as a gnuplot data file.

    Repeated samples are collapsed: a row is only written when some channel
    changes, plus the first sample and the last sample of each packet.

    Args:
        sample_rate: Sample rate — e.g. "1m" (1 MHz), "200k", "10m", "100m".
        num_samples: Number of samples to capture. Use this OR duration_ms.
        duration_ms: Capture duration in milliseconds. Use this OR num_samples.
        channels: Channel indices to enable — e.g. "0-7" or "0,1,4". Default: all.
        driver: sigrok driver name.
        description: Optional label for this capture.
    """
    store = _get_store(ctx)
    capture_id, file_path = store.new_capture(description=description)

    try:
        result = await sigrok_native.run_capture(
            output_file=file_path,
            driver=driver,
            channels=channels,
            sample_rate=sample_rate,
            num_samples=num_samples,
            duration_ms=duration_ms,
        )
    except sigrok_native.SigrokError as e:
        return f"Capture failed: {e}"
    except OutputError as e:
        return f"Capture failed: {e}"

    store.store_result(
        capture_id,
        num_samples=result.num_samples,
        num_channels=result.num_channels,
        sample_rate=result.sample_rate,
        channel_names=result.channel_names,
    )

    size = os.path.getsize(file_path) if os.path.exists(file_path) else 0

    parts = [
        f"Capture saved as {capture_id}",
        f"  File: {file_path} ({size} bytes)",
    ]
    if result.sample_rate:
        parts.append(f"  Sample rate: {samplerate_string(result.sample_rate)}")
    else:
        parts.append(f"  Sample rate: {sample_rate}")
    parts.append(f"  Samples: {result.num_samples}")
    if result.channel_names:
        parts.append(f"  Channels: {', '.join(result.channel_names)}")
    if description:
        parts.append(f"  Description: {description}")

    parts.append("")
    parts.append(
        f"Plot it with gnuplot (column 1 is the sample counter), or use "
        f'get_gnuplot_rows / analyze_capture with capture_id="{capture_id}".'
    )
    return "\n".join(parts)


@mcp.tool()
async def get_gnuplot_rows(
    ctx: Context,
    capture_id: str,
    start_row: int = 0,
    num_rows: int = 100,
) -> str:
    """Read data rows from a capture's gnuplot file.

    Each row is "<sample counter>\\t<bit> <bit> ...", one bit per channel.

    Args:
        capture_id: ID from a previous capture (e.g. "cap_001").
        start_row: First data row to return (0-based, header excluded).
        num_rows: Number of rows to return (max 5000 by default).
    """
    store = _get_store(ctx)
    try:
        text = store.read_text(capture_id)
    except CaptureNotFoundError as e:
        return str(e)

    num_rows = min(num_rows, MAX_ROWS_PER_CALL)
    return format_gnuplot_rows(text, start_row=start_row, window_size=num_rows)


@mcp.tool()
async def analyze_capture(
    ctx: Context,
    capture_id: str,
) -> str:
    """Get a high-level summary of a capture.

    Reports per-channel activity: edge counts, percentage high, whether the
    channel is active or static.

    Args:
        capture_id: ID from a previous capture (e.g. "cap_001").
    """
    store = _get_store(ctx)
    try:
        text = store.read_text(capture_id)
    except CaptureNotFoundError as e:
        return str(e)

    return summarize_gnuplot_data(text)


@mcp.tool()
async def list_captures(ctx: Context) -> str:
    """List all captures from this session.

    Shows capture IDs, file sizes, sample counts, and descriptions.
    """
    store = _get_store(ctx)
    captures = store.list_captures()

    if not captures:
        return "No captures yet. Use the capture tool to acquire signals."

    lines = [f"Captures ({len(captures)}):"]
    for cap in captures:
        desc = f" — {cap['description']}" if cap.get("description") else ""
        lines.append(
            f"  {cap['id']}  {cap['size_bytes']:>8} bytes"
            f"  {cap['num_samples']:>8} samples{desc}"
        )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    configure_logging()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
