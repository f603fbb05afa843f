"""Native Python interface to sigrok via libsigrok bindings.

Uses the sigrok.core SWIG bindings for device scanning, configuration, and
capture. Logic packets are streamed straight through a GnuplotSession into
a text file as they arrive, so conversion never collects the whole capture
first. Reading a capture back (rows, summary) loads its text file.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from sigrok_gnuplot_mcp.config import DEFAULT_DRIVER
from sigrok_gnuplot_mcp.gnuplot import (
    Channel,
    DeviceInfo,
    EventType,
    GnuplotSession,
    OutputError,
    get_output_format,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SigrokError(Exception):
    """Generic sigrok error."""


class SigrokNotFoundError(SigrokError):
    """sigrok Python bindings not available."""


class DeviceNotFoundError(SigrokError):
    """No device found during scan."""


class CaptureError(SigrokError):
    """Capture failed."""


# ---------------------------------------------------------------------------
# Lazy import of sigrok bindings
# ---------------------------------------------------------------------------

_sr = None  # sigrok.core.classes module, loaded lazily


def _get_sr():
    """Lazily import sigrok.core.classes, raising SigrokNotFoundError on failure."""
    global _sr
    if _sr is None:
        try:
            import sigrok.core.classes as sr
            _sr = sr
        except ImportError as e:
            raise SigrokNotFoundError(
                "sigrok Python bindings not found. Install libsigrok with "
                "Python bindings enabled (e.g. 'apt install python3-libsigrok' "
                "or build from source with --enable-python)."
            ) from e
    return _sr


def _get_context():
    """Create and return a libsigrok Context."""
    sr = _get_sr()
    return sr.Context.create()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_sample_rate(rate_str: str) -> int:
    """Parse a sample rate string like '1m', '200k', '100' into Hz."""
    rate_str = rate_str.strip().lower()
    multipliers = {"k": 1_000, "m": 1_000_000, "g": 1_000_000_000}
    for suffix, mult in multipliers.items():
        if rate_str.endswith(suffix):
            return int(float(rate_str[:-1]) * mult)
    return int(float(rate_str))


def _parse_channel_spec(spec: str) -> set[int]:
    """Parse a channel spec like '0-3' or '0,1,4,5' into a set of ints."""
    channels: set[int] = set()
    for part in spec.split(","):
        part = part.strip()
        if "-" in part:
            start, end = part.split("-", 1)
            channels.update(range(int(start), int(end) + 1))
        else:
            channels.add(int(part))
    return channels


def _as_logic_rows(data) -> np.ndarray:
    """View logic data as uint8 rows of shape [num_samples, bytes_per_sample].

    Wider dtypes are read by their bytes (little-endian on the host), one
    element per sample, so a uint16 array of 16 channel samples becomes
    [num_samples, 2].
    """
    data = np.ascontiguousarray(data)
    if data.ndim == 1:
        data = data.reshape(-1, 1)
    return data.view(np.uint8)


def _repack_logic(data: np.ndarray, enabled_indices: Sequence[int]) -> np.ndarray:
    """Repack device logic data to one bit per enabled channel.

    Devices pack samples by channel index at their own unit size (a 16
    channel device sends 2 bytes per sample even with 3 channels enabled).
    The gnuplot converter expects bit ``p`` to be the ``p``-th enabled
    channel, in ``ceil(len(enabled_indices) / 8)`` bytes.

    Args:
        data: numpy uint8 array of shape [num_samples, device_unit_size].
        enabled_indices: device channel index of each enabled channel.

    Returns:
        numpy uint8 array of shape [num_samples, ceil(enabled / 8)].
    """
    data = _as_logic_rows(data)
    bits = np.unpackbits(data, axis=1, bitorder="little")
    selected = bits[:, list(enabled_indices)]
    return np.packbits(selected, axis=1, bitorder="little")


def device_info_from_device(sr, device) -> DeviceInfo:
    """Describe a libsigrok device for a gnuplot session.

    The sample rate is only reported when the device supports it.
    """
    samplerate = None
    if sr.ConfigKey.SAMPLERATE in device.config_keys():
        samplerate = int(device.config_get(sr.ConfigKey.SAMPLERATE))
    channels = [Channel(name=ch.name, enabled=bool(ch.enabled)) for ch in device.channels]
    return DeviceInfo(channels=channels, samplerate=samplerate)


@dataclass
class CaptureResult:
    file_path: str
    num_samples: int = 0
    num_channels: int = 0
    sample_rate: int | None = None
    channel_names: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Public API — Device scanning
# ---------------------------------------------------------------------------

async def scan_devices(driver: str = DEFAULT_DRIVER) -> list[dict]:
    """Scan for connected devices using the specified driver.

    Returns a list of dicts with keys: driver, description, channels, channel_names.
    """
    def _scan():
        context = _get_context()
        if driver not in context.drivers:
            available = ", ".join(sorted(context.drivers.keys()))
            raise DeviceNotFoundError(
                f"Unknown driver '{driver}'. Available drivers: {available}"
            )
        drv = context.drivers[driver]
        devices = drv.scan()
        if not devices:
            raise DeviceNotFoundError(
                f"No devices found with driver '{driver}'. "
                "Check USB connection and permissions (udev rules)."
            )
        result = []
        for dev in devices:
            channel_names = [ch.name for ch in dev.channels]
            desc = f"{dev.vendor} {dev.model}".strip()
            if dev.version:
                desc += f" {dev.version}"
            desc += f" with {len(channel_names)} channels"
            result.append({
                "driver": driver,
                "description": desc,
                "channels": len(channel_names),
                "channel_names": channel_names,
            })
        return result

    return await asyncio.get_event_loop().run_in_executor(None, _scan)


# ---------------------------------------------------------------------------
# Public API — Capture
# ---------------------------------------------------------------------------

async def run_capture(
    output_file: str,
    driver: str = DEFAULT_DRIVER,
    channels: str | None = None,
    sample_rate: str = "1m",
    num_samples: int | None = None,
    duration_ms: int | None = None,
    output_format: str = "gnuplot",
) -> CaptureResult:
    """Run a capture and write it to ``output_file`` in ``output_format``.

    Every logic packet is converted as soon as it arrives. Trigger and end
    packets are forwarded to the output session.
    """
    sr = _get_sr()
    fmt = get_output_format(output_format)
    rate_hz = _parse_sample_rate(sample_rate)
    requested_channels = _parse_channel_spec(channels) if channels else None
    limit_samples = num_samples if num_samples is not None else (None if duration_ms else 1024)

    def _capture():
        context = _get_context()
        if driver not in context.drivers:
            raise CaptureError(f"Unknown driver '{driver}'.")
        drv = context.drivers[driver]
        devices = drv.scan()
        if not devices:
            raise CaptureError(f"No devices found with driver '{driver}'.")
        device = devices[0]
        device.open()

        try:
            # Configure sample rate
            device.config_set(
                sr.ConfigKey.SAMPLERATE,
                sr.ConfigKey.SAMPLERATE.parse_string(str(rate_hz)),
            )

            # Configure sample limit
            if limit_samples is not None:
                device.config_set(
                    sr.ConfigKey.LIMIT_SAMPLES,
                    sr.ConfigKey.LIMIT_SAMPLES.parse_string(str(limit_samples)),
                )
            elif duration_ms is not None:
                device.config_set(
                    sr.ConfigKey.LIMIT_MSEC,
                    sr.ConfigKey.LIMIT_MSEC.parse_string(str(duration_ms)),
                )

            # Select channels
            if requested_channels is not None:
                for ch in device.channels:
                    ch.enabled = (ch.index in requested_channels)

            enabled_indices = [ch.index for ch in device.channels if ch.enabled]
            info = device_info_from_device(sr, device)
            gnuplot = fmt.init(info)

            result = CaptureResult(
                file_path=output_file,
                num_channels=len(gnuplot.channel_names),
                sample_rate=info.samplerate,
                channel_names=list(gnuplot.channel_names),
            )
            failures: list[Exception] = []

            session = context.create_session()
            session.add_device(device)

            with open(output_file, "w", encoding="utf-8") as out:

                def finish():
                    if gnuplot.closed:
                        return
                    if gnuplot.header is not None:
                        # Nothing arrived, still write the header.
                        out.write(fmt.data(gnuplot, b""))
                    fmt.event(gnuplot, EventType.END)

                def datafeed_cb(dev, packet):
                    # Exceptions don't propagate through the bindings' callback.
                    try:
                        if packet.type == sr.PacketType.LOGIC:
                            data = _repack_logic(packet.payload.data, enabled_indices)
                            out.write(fmt.data(gnuplot, data))
                            result.num_samples += len(data)
                        elif packet.type == sr.PacketType.TRIGGER:
                            fmt.event(gnuplot, EventType.TRIGGER)
                        elif packet.type == sr.PacketType.END:
                            finish()
                    except (OutputError, OSError) as e:
                        logger.error("capture: conversion failed: %s", e)
                        failures.append(e)
                        session.stop()

                session.add_datafeed_callback(datafeed_cb)

                # Run the capture (blocking)
                session.start()
                session.run()

                if failures:
                    raise CaptureError(f"Conversion failed: {failures[0]}") from failures[0]
                finish()

            logger.info(
                "capture: %d samples on %d channels written to %s",
                result.num_samples, result.num_channels, output_file,
            )
            return result

        except (SigrokError, OutputError):
            raise
        except Exception as e:
            raise CaptureError(str(e)) from e
        finally:
            device.close()

    return await asyncio.get_event_loop().run_in_executor(None, _capture)


# ---------------------------------------------------------------------------
# Public API — Conversion of in-memory data
# ---------------------------------------------------------------------------

def export_gnuplot_from_array(
    data: np.ndarray,
    channel_names: Sequence[str],
    samplerate: int | None = None,
    chunk_size: int | None = None,
    timestamp: float | None = None,
) -> str:
    """Convert packed logic data held in memory to gnuplot text.

    Args:
        data: numpy uint8 array of shape [num_samples, unit_size], packed
            one bit per channel in ``channel_names`` order.
        channel_names: names of the channels, all treated as enabled.
        samplerate: sample rate in Hz, or None if unknown.
        chunk_size: feed the session this many samples at a time, the way
            a device delivers packets. None converts everything at once.
        timestamp: time shown in the header (defaults to now).

    Returns:
        The complete gnuplot document.
    """
    info = DeviceInfo(
        channels=[Channel(name=name) for name in channel_names],
        samplerate=samplerate,
    )
    session = GnuplotSession.open(info, timestamp=timestamp)
    data = _as_logic_rows(data)

    parts = []
    if chunk_size is None or len(data) == 0:
        parts.append(session.convert(data))
    else:
        for start in range(0, len(data), chunk_size):
            parts.append(session.convert(data[start:start + chunk_size]))
    session.handle_event(EventType.END)
    return "".join(parts)
