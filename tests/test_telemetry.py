"""
Tests for ffmpeg stderr parsing
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from telemetry import (
    RelayMetrics,
    LineSplitter,
    extract_fps,
    extract_bitrate,
    extract_speed,
    extract_time,
    parse_progress,
)

PROGRESS_LINE = (
    "frame=  255 fps= 30 q=-1.0 size=    1234kB time=00:00:08.50 "
    "bitrate=1188.5kbits/s speed=   1x"
)


class TestFieldExtraction:
    """Each field is extracted independently"""

    def test_extract_fps(self):
        assert extract_fps(PROGRESS_LINE) == "30"
        assert extract_fps("frame=10 fps=59.94 q=-1.0") == "59.94"
        assert extract_fps("no progress here") is None

    def test_extract_bitrate_keeps_unit_suffix(self):
        assert extract_bitrate(PROGRESS_LINE) == "1188.5kbits/s"
        assert extract_bitrate("frame=1 bitrate=N/A speed=N/A") == "N/A"
        assert extract_bitrate("frame=1 fps=0") is None

    def test_extract_speed(self):
        assert extract_speed(PROGRESS_LINE) == "1x"
        assert extract_speed("speed=1.02x") == "1.02x"

    def test_extract_time(self):
        assert extract_time(PROGRESS_LINE) == "00:00:08.50"
        assert extract_time("time=01:02:03.04") == "01:02:03.04"


class TestParseProgress:

    def test_full_progress_line(self):
        metrics = parse_progress(PROGRESS_LINE)
        assert metrics == RelayMetrics(
            fps="30", bitrate="1188.5kbits/s", speed="1x", time="00:00:08.50")

    def test_line_without_marker_is_not_progress(self):
        assert parse_progress("Input #0, hls, from 'https://example.com/x.m3u8':") is None
        # Has a bitrate but no frame counter
        assert parse_progress("  Duration: N/A, start: 0.000, bitrate: N/A") is None

    def test_progress_marker_without_bitrate_is_plain_log(self):
        assert parse_progress("frame=  10 fps=0.0 q=-1.0 size=0kB time=00:00:00.00") is None

    def test_missing_fields_fall_back_to_defaults(self):
        metrics = parse_progress("frame=  12 bitrate=2500kbits/s")
        assert metrics.fps == "0"
        assert metrics.speed == "1x"
        assert metrics.time == "00:00:00"
        assert metrics.bitrate == "2500kbits/s"

    def test_to_dict(self):
        assert parse_progress(PROGRESS_LINE).to_dict() == {
            "fps": "30",
            "bitrate": "1188.5kbits/s",
            "speed": "1x",
            "time": "00:00:08.50",
        }


class TestLineSplitter:

    def test_splits_on_carriage_return_and_newline(self):
        splitter = LineSplitter()
        lines = splitter.feed(b"Press [q] to stop\nframe=1 bitrate=1k\rframe=2 bitrate=2k\r")
        assert lines == ["Press [q] to stop", "frame=1 bitrate=1k", "frame=2 bitrate=2k"]

    def test_holds_partial_line_until_completed(self):
        splitter = LineSplitter()
        assert splitter.feed(b"frame=  1 fps=") == []
        assert splitter.feed(b"30 bitrate=1k\r") == ["frame=  1 fps=30 bitrate=1k"]

    def test_skips_blank_lines(self):
        splitter = LineSplitter()
        assert splitter.feed(b"\r\n\n   \nhello\n") == ["hello"]

    def test_multibyte_character_split_across_chunks(self):
        splitter = LineSplitter()
        data = "Métadonnées\n".encode("utf-8")
        assert splitter.feed(data[:2]) == []
        assert splitter.feed(data[2:]) == ["Métadonnées"]

    def test_flush_returns_trailing_partial_line(self):
        splitter = LineSplitter()
        splitter.feed(b"Conversion failed!")
        assert splitter.flush() == ["Conversion failed!"]
        assert splitter.flush() == []

    def test_invalid_utf8_is_replaced_not_dropped(self):
        splitter = LineSplitter()
        assert splitter.feed(b"abc\xff\xfedef\n") == ["abc\ufffd\ufffddef"]
