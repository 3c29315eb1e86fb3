"""
Shared fixtures: a fake ffmpeg process and a fake Twitch resolver so relay
tests run without network access or an ffmpeg binary.
"""
import asyncio
import itertools
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

SOURCE_URL = "https://video-weaver.fra05.hls.ttvnw.net/v1/playlist/abc.m3u8"

_pids = itertools.count(4000)


class FakeProcess:
    """Stands in for asyncio.subprocess.Process. Must be created inside a running loop."""

    def __init__(self, exit_on_kill=True):
        self.pid = next(_pids)
        self.stderr = asyncio.StreamReader()
        self.returncode = None
        self.killed = False
        self.exit_on_kill = exit_on_kill
        self._exited = asyncio.Event()

    def emit(self, text: str):
        self.stderr.feed_data(text.encode("utf-8"))

    def exit(self, code: int = 0):
        if self.returncode is None:
            self.returncode = code
            self.stderr.feed_eof()
            self._exited.set()

    def kill(self):
        self.killed = True
        if self.exit_on_kill:
            self.exit(-9)

    async def wait(self):
        await self._exited.wait()
        return self.returncode


class FakeResolver:
    def __init__(self, url=SOURCE_URL, error=None):
        self.url = url
        self.error = error
        self.calls = []
        self.closed = False

    async def resolve(self, channel, quality):
        self.calls.append((channel, quality))
        if self.error is not None:
            raise self.error
        return self.url

    async def close(self):
        self.closed = True


class FakeSpawner:
    """Replacement for asyncio.create_subprocess_exec that records each spawn."""

    def __init__(self):
        self.commands = []
        self.processes = []
        self.exit_on_kill = True
        self.error = None

    async def __call__(self, *command, **kwargs):
        if self.error is not None:
            raise self.error
        process = FakeProcess(exit_on_kill=self.exit_on_kill)
        self.commands.append(list(command))
        self.processes.append(process)
        return process


async def settle(rounds: int = 5):
    """Let background watcher tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def spawner(monkeypatch):
    import relay_manager

    fake = FakeSpawner()
    monkeypatch.setattr(relay_manager.asyncio, "create_subprocess_exec", fake)
    return fake


@pytest.fixture
def resolver():
    return FakeResolver()
