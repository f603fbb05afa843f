"""Tests for capture_store.py."""

import os
import tempfile

import pytest

from sigrok_gnuplot_mcp.capture_store import CaptureStore, CaptureNotFoundError


def test_new_capture_returns_incrementing_ids():
    store = CaptureStore()
    try:
        id1, path1 = store.new_capture()
        id2, path2 = store.new_capture()

        assert id1 == "cap_001"
        assert id2 == "cap_002"
        assert path1.endswith("cap_001.dat")
        assert path2.endswith("cap_002.dat")
    finally:
        store.cleanup()


def test_get_existing_capture():
    store = CaptureStore()
    try:
        cap_id, path = store.new_capture(description="test capture")
        info = store.get(cap_id)

        assert info.capture_id == cap_id
        assert info.file_path == path
        assert info.description == "test capture"
        assert info.created_at > 0
        assert info.sample_rate is None
    finally:
        store.cleanup()


def test_get_missing_capture_raises():
    store = CaptureStore()
    try:
        with pytest.raises(CaptureNotFoundError, match="cap_999"):
            store.get("cap_999")
    finally:
        store.cleanup()


def test_store_result():
    store = CaptureStore()
    try:
        cap_id, _ = store.new_capture()
        store.store_result(
            cap_id, num_samples=1024, num_channels=2,
            sample_rate=1_000_000, channel_names=["D0", "D1"],
        )
        info = store.get(cap_id)
        assert info.num_samples == 1024
        assert info.num_channels == 2
        assert info.sample_rate == 1_000_000
        assert info.channel_names == ["D0", "D1"]
    finally:
        store.cleanup()


def test_read_text():
    store = CaptureStore()
    try:
        cap_id, path = store.new_capture()
        assert store.read_text(cap_id) == ""

        with open(path, "w", encoding="utf-8") as f:
            f.write("# header\n\n0\t1 \n")
        assert store.read_text(cap_id) == "# header\n\n0\t1 \n"

        with pytest.raises(CaptureNotFoundError):
            store.read_text("cap_999")
    finally:
        store.cleanup()


def test_list_captures_empty():
    store = CaptureStore()
    try:
        assert store.list_captures() == []
    finally:
        store.cleanup()


def test_list_captures_with_entries():
    store = CaptureStore()
    try:
        store.new_capture(description="first")
        cap_id2, path2 = store.new_capture(description="second")
        store.store_result(cap_id2, num_samples=3, num_channels=1)

        # Create a fake file for the second capture
        with open(path2, "w", encoding="utf-8") as f:
            f.write("0\t1 \n")

        caps = store.list_captures()
        assert len(caps) == 2
        assert caps[0]["id"] == "cap_001"
        assert caps[0]["size_bytes"] == 0  # no file created
        assert caps[1]["id"] == "cap_002"
        assert caps[1]["size_bytes"] == 5
        assert caps[1]["num_samples"] == 3
        assert caps[1]["description"] == "second"
    finally:
        store.cleanup()


def test_cleanup_removes_directory():
    store = CaptureStore()
    base_dir = store.base_dir
    assert os.path.exists(base_dir)

    store.cleanup()
    assert not os.path.exists(base_dir)


def test_custom_base_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        custom_dir = os.path.join(tmpdir, "my_captures")
        store = CaptureStore(base_dir=custom_dir)

        assert os.path.exists(custom_dir)
        cap_id, path = store.new_capture()
        assert path.startswith(custom_dir)

        # cleanup should not remove a user-provided directory
        store.cleanup()
        assert os.path.exists(custom_dir)
