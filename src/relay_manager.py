"""
Relay Manager

Owns the single Twitch -> Kick relay: resolves the source, spawns ffmpeg,
feeds its stderr through the telemetry parser into the session store, and
handles both ways a relay ends (operator stop or ffmpeg exiting on its own).
"""

import asyncio
import logging
import shutil
from typing import Any, Dict, List, Optional, Set, Union

from config import settings
from errors import (
    RelayError,
    RelayValidationError,
    RelayAlreadyActiveError,
    NoActiveRelayError,
    RelaySpawnError,
)
from models import EventType, Quality, RelayEvent
from session_state import SessionStore, RelayStatus
from telemetry import LineSplitter, parse_progress
from twitch import TwitchResolver

logger = logging.getLogger(__name__)

STDERR_CHUNK_SIZE = 4096


def find_ffmpeg() -> str:
    """Locate the ffmpeg binary: explicit FFMPEG_PATH, then PATH, then the bare name."""
    if settings.FFMPEG_PATH:
        return settings.FFMPEG_PATH
    return shutil.which("ffmpeg") or "ffmpeg"


def build_destination_url(stream_key: str) -> str:
    return f"{settings.KICK_INGEST_URL.rstrip('/')}/{stream_key}"


def build_ffmpeg_command(ffmpeg_path: str, source_url: str, destination_url: str) -> List[str]:
    """
    Stream-copy the source into an FLV mux pushed to the destination.

    Input is read at native rate. The enlarged buffer and muxing queue let
    ffmpeg ride out network jitter instead of aborting.
    """
    return [
        ffmpeg_path,
        "-re",
        "-i", source_url,
        "-c", "copy",
        "-f", "flv",
        "-bufsize", settings.FFMPEG_BUFSIZE,
        "-max_muxing_queue_size", str(settings.FFMPEG_MAX_MUXING_QUEUE_SIZE),
        destination_url,
    ]


def mask_secret(command: List[str], secret: str) -> str:
    """Render a command for logging with the stream key hidden."""
    return " ".join(arg.replace(secret, "****") for arg in command)


class RelayManager:
    def __init__(self,
                 resolver: Optional[TwitchResolver] = None,
                 store: Optional[SessionStore] = None,
                 notifier=None,
                 ffmpeg_path: Optional[str] = None):
        self._resolver = resolver
        self._owns_resolver = resolver is None
        self.store = store or SessionStore()
        self.notifier = notifier
        self.ffmpeg_path = ffmpeg_path
        # Keep references so watcher tasks are not garbage collected mid-run
        self._watch_tasks: Set[asyncio.Task] = set()

    @property
    def resolver(self) -> TwitchResolver:
        if self._resolver is None:
            self._resolver = TwitchResolver()
        return self._resolver

    def set_notifier(self, notifier):
        self.notifier = notifier

    async def _publish(self, event_type: EventType, channel: str, data: dict):
        """Notify listeners of a lifecycle change. Notification failures never affect the relay."""
        if self.notifier is None:
            return
        try:
            await self.notifier.publish(RelayEvent(event_type=event_type, channel=channel, data=data))
        except Exception as e:
            logger.error(f"Error publishing {event_type.value} event: {e}")

    # ---------- operations ----------

    async def start(self, channel: Optional[str], stream_key: Optional[str],
                    quality: Union[Quality, str, None] = None) -> Dict[str, Any]:
        """
        Start relaying `channel` to the Kick stream identified by `stream_key`.

        Returns a snapshot of the new session.

        Raises:
            RelayValidationError: channel or stream key missing.
            RelayAlreadyActiveError: a relay is already running or starting.
            StreamNotLiveError / UpstreamProtocolError: source resolution failed.
            RelaySpawnError: ffmpeg could not be launched.
        """
        channel = (channel or "").strip()
        stream_key = (stream_key or "").strip()
        if not channel or not stream_key:
            raise RelayValidationError("Missing twitchUsername or kickStreamKey")

        if not isinstance(quality, Quality):
            quality = Quality.parse(quality)

        if not self.store.try_reserve():
            raise RelayAlreadyActiveError("A stream is already active")

        opened = False
        try:
            source_url = await self.resolver.resolve(channel, quality)

            command = build_ffmpeg_command(
                self.ffmpeg_path or find_ffmpeg(),
                source_url,
                build_destination_url(stream_key),
            )
            logger.info(f"Starting stream for {channel} to Kick...")
            logger.debug(f"FFmpeg command: {mask_secret(command, stream_key)}")

            process = await self._spawn(command)
            session = self.store.open_session(
                channel=channel,
                process=process,
                source_url=source_url,
                quality=quality.value,
            )
            opened = True
        except RelayError as e:
            await self._publish(EventType.RELAY_FAILED, channel, {
                "reason": e.message,
                "status_code": e.status_code,
            })
            raise
        finally:
            if not opened:
                self.store.release_reservation()

        task = asyncio.create_task(self._watch_process(process, channel))
        self._watch_tasks.add(task)
        task.add_done_callback(self._watch_tasks.discard)

        logger.info(f"FFmpeg process started with PID: {process.pid}")
        await self._publish(EventType.RELAY_STARTED, channel, {
            "quality": quality.value,
            "source_url": source_url,
            "pid": process.pid,
        })
        return session.snapshot()

    async def stop(self) -> Dict[str, Any]:
        """
        Kill the active relay and clear the session without waiting for
        ffmpeg to exit.

        Raises:
            NoActiveRelayError: no relay is running.
        """
        session = self.store.take_session("Relay stopped by operator")
        if session is None:
            raise NoActiveRelayError("No active stream found")

        logger.info(f"Stopping stream for {session.channel} (PID: {session.pid})")
        self._kill(session.process)

        snapshot = session.snapshot()
        await self._publish(EventType.RELAY_STOPPED, session.channel, {
            "reason": "operator",
            "pid": session.pid,
            "uptime_seconds": snapshot["uptimeSeconds"],
        })
        return snapshot

    def get_status(self) -> RelayStatus:
        return self.store.get_status()

    async def shutdown(self):
        """Kill any running relay and release network resources."""
        session = self.store.take_session("Relay stopped on shutdown")
        if session is not None:
            logger.info(f"Shutting down active stream for {session.channel}")
            self._kill(session.process)

        if self._watch_tasks:
            done, pending = await asyncio.wait(list(self._watch_tasks), timeout=5.0)
            for task in pending:
                task.cancel()

        if self._resolver is not None and self._owns_resolver:
            await self._resolver.close()
            self._resolver = None

        logger.info("Relay manager stopped")

    # ---------- process supervision ----------

    async def _spawn(self, command: List[str]):
        try:
            return await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to start FFmpeg process: {e}")
            raise RelaySpawnError(f"Failed to start ffmpeg: {e}") from e

    def _kill(self, process):
        try:
            process.kill()
        except ProcessLookupError:
            logger.debug(f"FFmpeg process {getattr(process, 'pid', None)} had already exited")

    async def _watch_process(self, process, channel: str):
        """
        Pump ffmpeg stderr into the store until EOF, then wait for the exit
        and clear the session if it still belongs to this process.
        """
        splitter = LineSplitter()
        try:
            if process.stderr is not None:
                while True:
                    chunk = await process.stderr.read(STDERR_CHUNK_SIZE)
                    if not chunk:
                        break
                    for line in splitter.feed(chunk):
                        self._handle_output(process, line)
                for line in splitter.flush():
                    self._handle_output(process, line)
        except Exception as e:
            logger.error(f"Error reading FFmpeg stderr for {channel}: {e}")

        returncode = await process.wait()

        if self.store.clear_session_if(process, f"Process exited with code {returncode}"):
            logger.warning(f"FFmpeg process for {channel} exited with code {returncode}")
            await self._publish(EventType.RELAY_EXITED, channel, {
                "exit_code": returncode,
                "pid": process.pid,
                "last_logs": self.store.get_status().logs[-settings.EXIT_LOG_TAIL:],
            })
        else:
            logger.info(
                f"FFmpeg process {process.pid} for {channel} exited with code {returncode} "
                f"after its session ended")

    def _handle_output(self, process, line: str):
        metrics = parse_progress(line)
        if not self.store.record_output(process, line, metrics):
            return
        if metrics is None:
            logger.debug(f"FFmpeg: {line}")
