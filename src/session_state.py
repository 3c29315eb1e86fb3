"""
Single-slot relay session store.

Holds the one permitted relay session, its rolling log and its latest
metrics. All reads and writes go through one lock so a status query never
sees a half-built session. The lock is never held across an await.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from config import settings
from telemetry import RelayMetrics


@dataclass
class RelaySession:
    channel: str
    process: Any  # asyncio.subprocess.Process owned by the relay manager
    source_url: str
    quality: str = "auto"
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def pid(self) -> Optional[int]:
        return getattr(self.process, "pid", None)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "channel": self.channel,
            "quality": self.quality,
            "startedAt": self.started_at.isoformat(),
            "uptimeSeconds": round(
                (datetime.now(timezone.utc) - self.started_at).total_seconds(), 1),
        }


@dataclass
class RelayStatus:
    active: bool
    session: Optional[Dict[str, Any]] = None
    metrics: Optional[RelayMetrics] = None
    logs: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "sessionInfo": self.session,
            "latestMetrics": self.metrics.to_dict() if self.metrics else None,
            "recentLogs": list(self.logs),
        }


class SessionStore:
    """Process-wide record of the active relay, if any."""

    def __init__(self, log_capacity: Optional[int] = None):
        self._lock = threading.Lock()
        self._session: Optional[RelaySession] = None
        self._starting = False
        self._metrics: Optional[RelayMetrics] = None
        self._logs: Deque[str] = deque(
            maxlen=log_capacity or settings.LOG_BUFFER_SIZE)

    # ---------- admission control ----------

    def try_reserve(self) -> bool:
        """Claim the single relay slot. False if a relay is active or starting."""
        with self._lock:
            if self._session is not None or self._starting:
                return False
            self._starting = True
            return True

    def release_reservation(self) -> None:
        with self._lock:
            self._starting = False

    # ---------- session lifecycle ----------

    def open_session(self, channel: str, process: Any, source_url: str,
                     quality: str = "auto") -> RelaySession:
        """Record a freshly spawned relay and reset the log and metrics for it."""
        session = RelaySession(
            channel=channel,
            process=process,
            source_url=source_url,
            quality=quality,
        )
        with self._lock:
            self._session = session
            self._starting = False
            self._metrics = None
            self._logs.clear()
            self._logs.append(f"Starting stream for {channel}...")
            self._logs.append(f"Source: {source_url}")
        return session

    def take_session(self, message: Optional[str] = None) -> Optional[RelaySession]:
        """Remove and return the active session, or None if there is none."""
        with self._lock:
            session = self._session
            if session is None:
                return None
            self._session = None
            self._metrics = None
            if message:
                self._logs.append(message)
            return session

    def clear_session_if(self, process: Any, message: Optional[str] = None) -> bool:
        """
        Clear the active session only if it still belongs to `process`.

        Returns False for a stale exit: the session was already stopped, or
        replaced by a newer relay.
        """
        with self._lock:
            if self._session is None or self._session.process is not process:
                return False
            self._session = None
            self._metrics = None
            if message:
                self._logs.append(message)
            return True

    # ---------- telemetry ----------

    def append_log(self, line: str) -> None:
        with self._lock:
            self._logs.append(line)

    def record_output(self, process: Any, line: str,
                      metrics: Optional[RelayMetrics] = None) -> bool:
        """
        Log one line of ffmpeg output and, for progress lines, overwrite the
        latest metrics. Output from a process that is no longer current is
        dropped.
        """
        with self._lock:
            if self._session is None or self._session.process is not process:
                return False
            self._logs.append(line)
            if metrics is not None:
                self._metrics = metrics
            return True

    # ---------- reads ----------

    @property
    def active(self) -> bool:
        with self._lock:
            return self._session is not None

    def current_session(self) -> Optional[RelaySession]:
        with self._lock:
            return self._session

    def get_status(self) -> RelayStatus:
        with self._lock:
            session = self._session
            return RelayStatus(
                active=session is not None,
                session=session.snapshot() if session else None,
                metrics=self._metrics,
                logs=list(self._logs),
            )
