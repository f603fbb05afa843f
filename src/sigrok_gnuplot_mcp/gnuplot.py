"""Gnuplot output format for logic analyzer sample data.

Turns a stream of packed logic samples (one bit per enabled channel, least
significant bit first, ``ceil(channels / 8)`` bytes per sample) into the
space-separated column text that gnuplot can plot directly:

    # Sample data in space-separated columns format usable by gnuplot
    # ...
    # 0		Sample counter (for internal gnuplot purposes)
    # 1		D0
    # 2		D1

    0	1 0
    7	0 0

A session is driven by the host in a fixed order: ``GnuplotSession.open``
once, ``convert`` for every chunk of samples as it arrives, then
``handle_event(EventType.END)``. Rows whose sample is unchanged from the
previous one are suppressed, except for the first sample of the session and
the last sample of each chunk.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Sequence

import numpy as np

from sigrok_gnuplot_mcp.config import MAX_NUM_CHANNELS, PACKAGE_STRING
from sigrok_gnuplot_mcp.formatters import period_string, samplerate_string

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class OutputError(Exception):
    """Generic output format error."""


class InvalidArgumentError(OutputError):
    """A required argument was missing or malformed."""


class AllocationError(OutputError):
    """The output text could not be produced within its computed capacity."""


class FormatError(OutputError):
    """A human-readable rate or period string could not be produced."""


class InvalidStateError(OutputError):
    """The session was already finished."""


class ChannelLimitExceededError(OutputError):
    """More channels are enabled than a logic packet can carry."""


# ---------------------------------------------------------------------------
# Collaborator types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Channel:
    name: str
    enabled: bool = True


@dataclass
class DeviceInfo:
    """What the acquisition side knows about the device being captured.

    ``samplerate`` is None when the device has no samplerate capability.
    """

    channels: Sequence[Channel] | None
    samplerate: int | None = None


class EventType(Enum):
    TRIGGER = "trigger"
    END = "end"


# ---------------------------------------------------------------------------
# Header
# ---------------------------------------------------------------------------

_HEADER = (
    "# Sample data in space-separated columns format usable by gnuplot\n"
    "#\n"
    "# Generated by: {generator} on {timestamp}\n"
    "{comment}"
    "# Period: {period}\n"
    "#\n"
    "# Column\tProbe\n"
    "# " + "-" * 77 + "\n"
    "# 0\t\tSample counter (for internal gnuplot purposes)\n"
    "{columns}\n"
)

_HEADER_COMMENT = "# Comment: Acquisition with {enabled}/{total} probes at {rate}\n"

# Counter digits plus the tab and newline around the bit columns.
_LINE_OVERHEAD = 16


def _build_header(
    channel_names: Sequence[str],
    num_channels: int,
    samplerate: int | None,
    timestamp: float | None,
) -> str:
    comment = ""
    period = "unknown"
    if samplerate is not None:
        try:
            rate_s = samplerate_string(samplerate)
            period = period_string(samplerate)
        except ValueError as e:
            raise FormatError(f"Cannot format sample rate {samplerate!r}: {e}") from e
        comment = _HEADER_COMMENT.format(
            enabled=len(channel_names), total=num_channels, rate=rate_s
        )

    columns = "".join(
        f"# {i}\t\t{name}\n" for i, name in enumerate(channel_names, start=1)
    )
    return _HEADER.format(
        generator=PACKAGE_STRING,
        timestamp=time.ctime(timestamp),
        comment=comment,
        period=period,
        columns=columns,
    )


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class GnuplotSession:
    """State of one capture-to-gnuplot conversion.

    The sample counter and the last seen sample live here rather than at
    module level, so independent sessions never see each other's data.
    """

    def __init__(
        self,
        channel_names: Sequence[str],
        header: str,
        log: logging.Logger | None = None,
    ) -> None:
        self.channel_names: tuple[str, ...] = tuple(channel_names)
        self.unit_size = (len(self.channel_names) + 7) // 8
        self.header: str | None = header
        self.sample_count = 0
        self.last_sample: int = 0
        self.closed = False
        self._log = log or logger

    @classmethod
    def open(
        cls,
        device: DeviceInfo | None,
        *,
        max_channels: int = MAX_NUM_CHANNELS,
        timestamp: float | None = None,
        log: logging.Logger | None = None,
    ) -> GnuplotSession:
        """Start a session for the enabled channels of ``device``.

        Raises InvalidArgumentError if the device or its channel list is
        missing, ChannelLimitExceededError if more than ``max_channels``
        are enabled and FormatError if the sample rate cannot be rendered.
        """
        log = log or logger
        if device is None:
            log.error("open: device was None")
            raise InvalidArgumentError("No device given.")
        if device.channels is None:
            log.error("open: device channel list was None")
            raise InvalidArgumentError("Device has no channel list.")

        enabled = [ch.name for ch in device.channels if ch.enabled]
        if len(enabled) > max_channels:
            log.error("open: %d channels enabled, limit is %d", len(enabled), max_channels)
            raise ChannelLimitExceededError(
                f"{len(enabled)} channels enabled, at most {max_channels} supported."
            )

        header = _build_header(
            enabled, len(device.channels), device.samplerate, timestamp
        )
        session = cls(enabled, header, log=log)
        log.debug(
            "open: %d/%d channels enabled, unit size %d",
            len(enabled), len(device.channels), session.unit_size,
        )
        return session

    @property
    def max_line_length(self) -> int:
        return _LINE_OVERHEAD + 2 * len(self.channel_names)

    def output_size(self, length_in: int) -> int:
        """Upper bound on the characters ``convert`` emits for ``length_in`` bytes.

        A row is the counter, a tab, two characters per channel and a
        newline. ``max_line_length`` covers counters of up to 14 digits;
        past that the row length grows with the widest counter in the chunk.
        """
        if self.unit_size == 0:
            num_samples = 0
        else:
            num_samples = length_in // self.unit_size
        line = self.max_line_length
        if num_samples:
            widest = len(str(self.sample_count + num_samples - 1)) + 2
            line = max(_LINE_OVERHEAD, widest) + 2 * len(self.channel_names)
        size = num_samples * line
        if self.header is not None:
            size += len(self.header)
        return size

    def _samples(self, data: Any) -> np.ndarray:
        """View ``data`` as a uint8 array of shape [num_samples, unit_size]."""
        if isinstance(data, np.ndarray):
            if data.dtype.hasobject:
                raise InvalidArgumentError("Sample data must be a numeric array.")
            # Read the array by its bytes, like any other buffer.
            buf = np.ascontiguousarray(data).reshape(-1).view(np.uint8)
        else:
            try:
                buf = np.frombuffer(data, dtype=np.uint8)
            except TypeError as e:
                raise InvalidArgumentError(
                    f"Sample data must be bytes-like, got {type(data).__name__}"
                ) from e

        if self.unit_size == 0:
            return np.empty((0, 0), dtype=np.uint8)

        num_samples = len(buf) // self.unit_size
        remainder = len(buf) - num_samples * self.unit_size
        if remainder:
            self._log.warning(
                "convert: dropping %d trailing bytes of an incomplete sample",
                remainder,
            )
        return buf[: num_samples * self.unit_size].reshape(num_samples, self.unit_size)

    def convert(self, data: Any) -> str:
        """Convert one chunk of packed samples to gnuplot rows.

        The header is prepended to the output of the first call. Any
        trailing bytes that do not make up a complete sample are ignored.
        The session is only updated once the whole chunk has been converted.
        """
        if self.closed:
            raise InvalidStateError("Session already ended.")
        if data is None:
            self._log.error("convert: data was None")
            raise InvalidArgumentError("No sample data given.")

        samples = self._samples(data)
        num_samples = len(samples)
        capacity = self.output_size(num_samples * self.unit_size)

        try:
            parts = []
            if self.header is not None:
                # The header is still here, this must be the first packet.
                parts.append(self.header)
            if num_samples:
                parts.append(self._rows(samples))
            text = "".join(parts)
        except MemoryError as e:
            self._log.error("convert: out of memory for %d samples", num_samples)
            raise AllocationError(
                f"Cannot allocate output for {num_samples} samples."
            ) from e

        if len(text) > capacity:
            raise AllocationError(
                f"Output of {len(text)} characters exceeds capacity {capacity}."
            )

        self.header = None
        if num_samples:
            self.last_sample = int.from_bytes(samples[-1].tobytes(), "little")
            self.sample_count += num_samples
        self._log.debug(
            "convert: %d samples in, %d characters out", num_samples, len(text)
        )
        return text

    def _rows(self, samples: np.ndarray) -> str:
        num_samples = len(samples)
        num_channels = len(self.channel_names)

        # Don't output the same samples multiple times. However, make sure
        # to output at least the first and last sample.
        keep = np.empty(num_samples, dtype=bool)
        keep[1:] = np.any(samples[1:] != samples[:-1], axis=1)
        if self.sample_count == 0:
            keep[0] = True
        else:
            first = int.from_bytes(samples[0].tobytes(), "little")
            keep[0] = first != self.last_sample
        keep[-1] = True

        indices = np.flatnonzero(keep)
        bits = np.unpackbits(samples[indices], axis=1, bitorder="little")
        cells = np.full((len(indices), 2 * num_channels), ord(" "), dtype=np.uint8)
        cells[:, 0::2] = bits[:, :num_channels] + ord("0")
        columns = cells.tobytes().decode("ascii")

        width = 2 * num_channels
        counters = (indices + self.sample_count).tolist()
        return "".join(
            f"{counter}\t{columns[i * width:(i + 1) * width]}\n"
            for i, counter in enumerate(counters)
        )

    def handle_event(self, event: Any) -> str:
        """React to a non-data packet. Always produces no output.

        END finishes the session; any later call fails with
        InvalidStateError. TRIGGER has no representation in the gnuplot
        format and is ignored, as is any unrecognised event.
        """
        if self.closed:
            raise InvalidStateError("Session already ended.")

        if event is EventType.TRIGGER:
            self._log.debug("event: trigger ignored")
        elif event is EventType.END:
            self.header = None
            self.closed = True
            self._log.debug("event: end after %d samples", self.sample_count)
        else:
            self._log.error("event: unsupported event type: %r", event)
        return ""


# ---------------------------------------------------------------------------
# Output format registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OutputFormat:
    id: str
    description: str
    df_type: str
    init: Callable[..., GnuplotSession]
    data: Callable[[GnuplotSession, Any], str]
    event: Callable[[GnuplotSession, Any], str]


output_gnuplot = OutputFormat(
    id="gnuplot",
    description="Gnuplot",
    df_type="logic",
    init=GnuplotSession.open,
    data=GnuplotSession.convert,
    event=GnuplotSession.handle_event,
)

OUTPUT_FORMATS: dict[str, OutputFormat] = {output_gnuplot.id: output_gnuplot}


def get_output_format(format_id: str) -> OutputFormat:
    if format_id not in OUTPUT_FORMATS:
        available = ", ".join(sorted(OUTPUT_FORMATS))
        raise InvalidArgumentError(
            f"Unknown output format '{format_id}'. Available formats: {available}"
        )
    return OUTPUT_FORMATS[format_id]
