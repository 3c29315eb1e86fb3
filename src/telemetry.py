"""
FFmpeg Telemetry Parsing

Turns ffmpeg's stderr output into log lines and progress snapshots.

A typical progress line looks like:

    frame=  255 fps= 30 q=-1.0 size=    1234kB time=00:00:08.50 bitrate=1188.5kbits/s speed=   1x

Each field is extracted by its own function so a malformed or partial line
degrades to defaults instead of failing the whole parse.
"""

import codecs
import re
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

# Substring that marks a progress line
PROGRESS_MARKER = "frame="

DEFAULT_FPS = "0"
DEFAULT_SPEED = "1x"
DEFAULT_TIME = "00:00:00"

_FPS_PATTERN = re.compile(r"fps=\s*(\d+(\.\d+)?)")
_BITRATE_PATTERN = re.compile(r"bitrate=\s*([\w./]+)")
_SPEED_PATTERN = re.compile(r"speed=\s*([\w.]+)")
_TIME_PATTERN = re.compile(r"time=\s*([\d:.]+)")

# ffmpeg terminates progress updates with a carriage return, log lines with a newline
_LINE_BREAK = re.compile(r"[\r\n]")


@dataclass(frozen=True)
class RelayMetrics:
    """Latest progress snapshot reported by ffmpeg."""
    fps: str
    bitrate: str
    speed: str
    time: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def extract_fps(line: str) -> Optional[str]:
    match = _FPS_PATTERN.search(line)
    return match.group(1) if match else None


def extract_bitrate(line: str) -> Optional[str]:
    match = _BITRATE_PATTERN.search(line)
    return match.group(1) if match else None


def extract_speed(line: str) -> Optional[str]:
    match = _SPEED_PATTERN.search(line)
    return match.group(1) if match else None


def extract_time(line: str) -> Optional[str]:
    match = _TIME_PATTERN.search(line)
    return match.group(1) if match else None


def is_progress_line(line: str) -> bool:
    return PROGRESS_MARKER in line


def parse_progress(line: str) -> Optional[RelayMetrics]:
    """
    Parse a progress line into a RelayMetrics snapshot.

    Returns None when the line carries no progress marker or no bitrate;
    such lines are ordinary diagnostics. Missing fps, speed or time fall
    back to their defaults.
    """
    if not is_progress_line(line):
        return None

    bitrate = extract_bitrate(line)
    if bitrate is None:
        return None

    return RelayMetrics(
        fps=extract_fps(line) or DEFAULT_FPS,
        bitrate=bitrate,
        speed=extract_speed(line) or DEFAULT_SPEED,
        time=extract_time(line) or DEFAULT_TIME,
    )


class LineSplitter:
    """
    Reassembles raw stderr chunks into complete, stripped, non-empty lines.

    Chunks may end mid-line or mid-character; the remainder is held until
    the next feed() or flush().
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> List[str]:
        text = self._pending + self._decoder.decode(chunk)
        parts = _LINE_BREAK.split(text)
        self._pending = parts.pop()
        return [part.strip() for part in parts if part.strip()]

    def flush(self) -> List[str]:
        """Return whatever partial line remains once the stream has ended."""
        text = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        text = text.strip()
        return [text] if text else []
