"""Ping processor — validates incoming location pings and updates tracking state.

This is the core orchestration logic. It depends on the TrackingStore and
TrackingStats, not on any HTTP framework. The engine functions it calls are
pure; all state reads and writes for a user happen under that user's lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from geotrack.core.geofence import evaluate_transitions
from geotrack.core.trails import DEFAULT_MAX_GAP, build_trails
from geotrack.core.validator import (
    SpoofingReport,
    SpoofingThresholds,
    ValidationReport,
    ValidationRules,
    detect_spoofing,
    validate,
    validation_report,
)

if TYPE_CHECKING:
    from geotrack.core.models import (
        Coordinate,
        LocationSample,
        Trail,
        TransitionEvent,
        ValidationVerdict,
    )
    from geotrack.core.stats import TrackingStats
    from geotrack.storage.base import TrackingStore

log = structlog.get_logger()


@dataclass(frozen=True)
class PingResult:
    verdict: ValidationVerdict
    spoofing: SpoofingReport
    events: list[TransitionEvent] = field(default_factory=list)
    inside: list[str] = field(default_factory=list)


class PingProcessor:
    """Validates pings, keeps accepted ones, and emits geofence transitions."""

    def __init__(
        self,
        store: TrackingStore,
        stats: TrackingStats,
        rules: ValidationRules | None = None,
        thresholds: SpoofingThresholds | None = None,
        history_size: int = 20,
        max_gap: timedelta = DEFAULT_MAX_GAP,
    ) -> None:
        self._store = store
        self._stats = stats
        self._rules = rules or ValidationRules()
        self._thresholds = thresholds or SpoofingThresholds()
        self._history_size = history_size
        self._max_gap = max_gap

    @property
    def rules(self) -> ValidationRules:
        return self._rules

    def process_ping(
        self,
        user_id: str,
        sample: LocationSample,
        target: Coordinate,
        now: datetime,
        rules: ValidationRules | None = None,
    ) -> PingResult:
        """Validate one sanitized sample against ``target`` at time ``now``.

        The sample is stored and fed to the geofence evaluator only if the
        verdict accepts it. The spoofing report covers the user's recent
        accepted history plus this sample, and is advisory.
        """
        rules = rules or self._rules

        with self._store.user_lock(user_id):
            history = self._store.recent_samples(user_id, self._history_size)
            verdict = validate(sample, target, rules, now, history)
            spoofing = detect_spoofing([*history, sample], self._thresholds)

            events: list[TransitionEvent] = []
            inside: list[str] = []
            if verdict.accepted:
                self._store.append_sample(user_id, sample)
                regions = self._store.list_regions()
                transitions = evaluate_transitions(
                    sample.coordinate,
                    regions,
                    self._store.membership(user_id),
                    sample.captured_at,
                )
                self._store.save_membership(user_id, transitions.states)
                events = transitions.events
                active = {r.id for r in regions if r.active}
                inside = sorted(rid for rid, state in transitions.states.items()
                                if state.inside and rid in active)

        self._stats.record_ping(
            user_id,
            accepted=verdict.accepted,
            suspicious=spoofing.suspicious,
            inside_any=bool(inside),
        )
        if events:
            self._stats.record_transitions(len(events))

        if verdict.accepted:
            log.info("ping_accepted", user=user_id, tier=verdict.tier.value,
                     distance_m=round(verdict.distance_m, 1), reasons=list(verdict.reasons))
        else:
            log.info("ping_rejected", user=user_id,
                     distance_m=round(verdict.distance_m, 1), reasons=list(verdict.reasons))
        if spoofing.suspicious:
            log.warning("spoofing_suspected", user=user_id, score=spoofing.score,
                        reasons=list(spoofing.reasons))
        for event in events:
            log.info("geofence_transition", user=user_id, region=event.region_id,
                     kind=event.kind.value, at=event.at.isoformat())

        return PingResult(verdict=verdict, spoofing=spoofing, events=events, inside=inside)

    def report(
        self,
        user_id: str,
        sample: LocationSample,
        target: Coordinate,
        now: datetime,
        rules: ValidationRules | None = None,
    ) -> ValidationReport:
        """Assess a sample against the user's history without storing anything."""
        history = self._store.recent_samples(user_id, self._history_size)
        return validation_report(sample, target, rules or self._rules, now, history,
                                 self._thresholds)

    def trail_for(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[Trail]:
        """Rebuild trails from the user's stored, accepted samples."""
        points = self._store.samples(user_id, start=start, end=end, limit=limit)
        return build_trails(points, self._max_gap)
