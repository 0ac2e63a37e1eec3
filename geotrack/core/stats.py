"""Tracking statistics and active-user tracking.

Tracks in-memory counters and a sliding window of users currently pinging.
No framework dependencies.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass


@dataclass
class UserActivity:
    """Tracks a single user's recent ping activity."""
    last_seen: float          # time.monotonic() timestamp
    pings_sent: int = 0
    last_inside: bool = False  # inside at least one geofence at last accepted ping


class TrackingStats:
    """Thread-safe tracking statistics with active-user tracking.

    A user is considered active if their last ping arrived within
    ``active_window_seconds`` (default 120s), accepted or not.
    """

    def __init__(self, active_window_seconds: float = 120.0) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()
        self._active_window = active_window_seconds

        # Counters
        self.pings_received: int = 0
        self.pings_accepted: int = 0
        self.pings_rejected: int = 0
        self.pings_malformed: int = 0
        self.pings_suspicious: int = 0
        self.transitions_emitted: int = 0
        self.clock_ins: int = 0
        self.clock_outs: int = 0
        self.clock_conflicts: int = 0

        # User tracking: user_id → UserActivity
        self._users: dict[str, UserActivity] = {}

    def record_ping(self, user_id: str, *, accepted: bool, suspicious: bool = False,
                    inside_any: bool = False) -> None:
        """Record the outcome of one well-formed ping."""
        now = time.monotonic()
        with self._lock:
            self.pings_received += 1
            if accepted:
                self.pings_accepted += 1
            else:
                self.pings_rejected += 1
            if suspicious:
                self.pings_suspicious += 1

            user = self._users.get(user_id)
            if user is None:
                user = self._users[user_id] = UserActivity(last_seen=now)
            user.last_seen = now
            user.pings_sent += 1
            if accepted:
                user.last_inside = inside_any

    def record_malformed(self) -> None:
        with self._lock:
            self.pings_received += 1
            self.pings_malformed += 1

    def record_transitions(self, count: int) -> None:
        with self._lock:
            self.transitions_emitted += count

    def record_clock_in(self) -> None:
        with self._lock:
            self.clock_ins += 1

    def record_clock_out(self) -> None:
        with self._lock:
            self.clock_outs += 1

    def record_conflict(self) -> None:
        with self._lock:
            self.clock_conflicts += 1

    def _prune_stale_users(self, now: float) -> None:
        """Remove users not seen within the active window. Caller holds lock."""
        cutoff = now - self._active_window
        stale = [uid for uid, user in self._users.items() if user.last_seen < cutoff]
        for uid in stale:
            del self._users[uid]

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        now_mono = time.monotonic()
        with self._lock:
            self._prune_stale_users(now_mono)

            inside = sum(1 for user in self._users.values() if user.last_inside)

            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "pings_received": self.pings_received,
                "pings_accepted": self.pings_accepted,
                "pings_rejected": self.pings_rejected,
                "pings_malformed": self.pings_malformed,
                "pings_suspicious": self.pings_suspicious,
                "transitions_emitted": self.transitions_emitted,
                "clock_ins": self.clock_ins,
                "clock_outs": self.clock_outs,
                "clock_conflicts": self.clock_conflicts,
                "active_users": {
                    "total": len(self._users),
                    "inside_geofence": inside,
                    "outside_geofence": len(self._users) - inside,
                    "window_seconds": self._active_window,
                },
            }
