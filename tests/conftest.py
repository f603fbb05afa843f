"""Shared fixtures for the gnuplot tests."""

import pytest

from sigrok_gnuplot_mcp.gnuplot import Channel, DeviceInfo

# Fixed header time so whole documents can be compared.
HEADER_TIME = 1_700_000_000.0


def make_device(names, samplerate=None, disabled=()):
    channels = [Channel(name=name, enabled=name not in disabled) for name in names]
    return DeviceInfo(channels=channels, samplerate=samplerate)


@pytest.fixture
def header_time():
    return HEADER_TIME


@pytest.fixture
def abc_device():
    return make_device(["A", "B", "C"])
