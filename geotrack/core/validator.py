"""Location validation — decides whether a ping is trustworthy enough to act on.

Single-sample checks (accuracy, freshness, proximity to a target) combine into
a ValidationVerdict. Across a history of samples, ``detect_spoofing`` looks for
patterns a real device would not produce: teleporting, perfect accuracy,
frozen coordinates, metronome-regular timing.

Every function here is pure and total over sanitized input. The evaluation
time is always passed in, never read from the wall clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from geotrack.core.geo import distance_m
from geotrack.core.models import ConfidenceTier, Coordinate, LocationSample, ValidationVerdict

# Verdict reason codes.
REASON_OUT_OF_RANGE = "out_of_range"
REASON_LOW_ACCURACY = "low_accuracy"
REASON_STALE = "stale_location"
REASON_FALLBACK = "fallback_range"

# Suspicion added by each spoofing heuristic.
IMPOSSIBLE_SPEED_WEIGHT = 0.8
HIGH_SPEED_WEIGHT = 0.4
PERFECT_ACCURACY_WEIGHT = 0.3
IDENTICAL_LOCATIONS_WEIGHT = 0.6
REGULAR_INTERVALS_WEIGHT = 0.3

# Confidence blend.
ACCURACY_WEIGHT = 0.4
FRESHNESS_WEIGHT = 0.3
CONSISTENCY_WEIGHT = 0.3
NEUTRAL_CONSISTENCY = 0.5


@dataclass(frozen=True)
class ValidationRules:
    """Every option a validation call recognizes, with its default."""

    max_distance_m: float = 100.0
    min_accuracy_m: float = 50.0
    time_window_minutes: float = 5.0
    allow_fallback: bool = False
    strict_mode: bool = False
    high_accuracy_m: float = 10.0
    medium_accuracy_m: float = 30.0
    fallback_multiplier: float = 1.5
    max_speed_kmh: float = 60.0


@dataclass(frozen=True)
class SpoofingThresholds:
    impossible_speed_kmh: float = 300.0
    high_speed_kmh: float = 150.0
    perfect_accuracy_m: float = 1.0
    identical_min_samples: int = 4
    regular_min_samples: int = 5
    regular_variance_ratio: float = 0.1
    suspicious_above: float = 0.5


@dataclass(frozen=True)
class AccuracyCheck:
    accepted: bool
    tier: ConfidenceTier


@dataclass(frozen=True)
class FreshnessCheck:
    accepted: bool
    age_minutes: float


@dataclass(frozen=True)
class ProximityCheck:
    accepted: bool
    tier: ConfidenceTier
    distance_m: float
    within_range: bool
    fallback: bool


@dataclass(frozen=True)
class SpoofingReport:
    suspicious: bool
    reasons: tuple[str, ...]
    score: float


@dataclass(frozen=True)
class ConfidenceScore:
    confidence: float
    accuracy: float
    freshness: float
    consistency: float


@dataclass(frozen=True)
class ValidationReport:
    verdict: ValidationVerdict
    spoofing: SpoofingReport
    score: ConfidenceScore
    trusted: bool
    recommendations: tuple[str, ...]


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def validate_accuracy(
    accuracy_m: float,
    min_required: float = 50.0,
    *,
    high: float = 10.0,
    medium: float = 30.0,
) -> AccuracyCheck:
    if accuracy_m <= high:
        return AccuracyCheck(True, ConfidenceTier.HIGH)
    if accuracy_m <= medium:
        return AccuracyCheck(True, ConfidenceTier.MEDIUM)
    if accuracy_m <= min_required:
        return AccuracyCheck(True, ConfidenceTier.LOW)
    return AccuracyCheck(False, ConfidenceTier.LOW)


def validate_freshness(
    captured_at: datetime,
    now: datetime,
    max_age_minutes: float = 5.0,
) -> FreshnessCheck:
    """Reject samples older than ``max_age_minutes`` at evaluation time ``now``.

    Samples stamped slightly in the future (device clock skew) have a negative
    age and are accepted.
    """
    age = (now - captured_at).total_seconds() / 60.0
    return FreshnessCheck(accepted=age <= max_age_minutes, age_minutes=age)


def validate_proximity(
    sample: LocationSample,
    target: Coordinate,
    max_distance_m: float,
    strict: bool = False,
    allow_fallback: bool = False,
    fallback_multiplier: float = 1.5,
) -> ProximityCheck:
    """Check how far the sample is from ``target``.

    Inside ``max_distance_m`` the sample is accepted, with a tier from the
    distance ratio. Outside it, the sample is still accepted on the soft
    fallback path, but only when not strict, fallback is allowed, and the
    distance stays within ``fallback_multiplier`` times the limit.
    """
    distance = distance_m(sample.coordinate, target)
    ratio = distance / max_distance_m if max_distance_m > 0 else float("inf")

    if ratio <= 0.5:
        tier = ConfidenceTier.HIGH
    elif ratio <= 0.8:
        tier = ConfidenceTier.MEDIUM
    else:
        tier = ConfidenceTier.LOW

    within = distance <= max_distance_m
    fallback = (
        not within
        and not strict
        and allow_fallback
        and distance <= max_distance_m * fallback_multiplier
    )
    return ProximityCheck(
        accepted=within or fallback,
        tier=tier,
        distance_m=distance,
        within_range=within,
        fallback=fallback,
    )


def validate(
    sample: LocationSample,
    target: Coordinate,
    rules: ValidationRules,
    now: datetime,
    history: Sequence[LocationSample] = (),
) -> ValidationVerdict:
    """Combine proximity, accuracy and freshness into a single verdict.

    ``history`` holds the previously accepted samples for the same user,
    oldest first; it only feeds the numeric confidence.
    """
    proximity = validate_proximity(
        sample,
        target,
        rules.max_distance_m,
        strict=rules.strict_mode,
        allow_fallback=rules.allow_fallback,
        fallback_multiplier=rules.fallback_multiplier,
    )
    accuracy = validate_accuracy(
        sample.accuracy_m,
        rules.min_accuracy_m,
        high=rules.high_accuracy_m,
        medium=rules.medium_accuracy_m,
    )
    freshness = validate_freshness(sample.captured_at, now, rules.time_window_minutes)

    all_pass = proximity.accepted and accuracy.accepted and freshness.accepted
    fallback_ok = (
        not rules.strict_mode
        and rules.allow_fallback
        and proximity.distance_m <= rules.max_distance_m * rules.fallback_multiplier
    )
    accepted = all_pass or fallback_ok

    if all_pass and proximity.tier is ConfidenceTier.HIGH and accuracy.tier is ConfidenceTier.HIGH:
        tier = ConfidenceTier.HIGH
    elif accepted and ConfidenceTier.MEDIUM in (proximity.tier, accuracy.tier):
        tier = ConfidenceTier.MEDIUM
    else:
        tier = ConfidenceTier.LOW

    reasons: list[str] = []
    if not proximity.within_range:
        reasons.append(REASON_OUT_OF_RANGE)
    if not accuracy.accepted:
        reasons.append(REASON_LOW_ACCURACY)
    if not freshness.accepted:
        reasons.append(REASON_STALE)
    if accepted and (proximity.fallback or not all_pass):
        reasons.append(REASON_FALLBACK)

    score = confidence_score(sample, history, now, max_speed_kmh=rules.max_speed_kmh)
    return ValidationVerdict(
        accepted=accepted,
        confidence=score.confidence,
        tier=tier,
        distance_m=proximity.distance_m,
        reasons=tuple(reasons),
    )


def detect_spoofing(
    history: Sequence[LocationSample],
    thresholds: SpoofingThresholds = SpoofingThresholds(),
) -> SpoofingReport:
    """Score a time-ordered history for signs of falsified coordinates."""
    if len(history) < 2:
        return SpoofingReport(suspicious=False, reasons=(), score=0.0)

    reasons: list[str] = []
    score = 0.0

    for prev, cur in zip(history, history[1:]):
        elapsed_s = (cur.captured_at - prev.captured_at).total_seconds()
        if elapsed_s <= 0:
            continue
        speed_kmh = distance_m(prev.coordinate, cur.coordinate) / elapsed_s * 3.6
        if speed_kmh > thresholds.impossible_speed_kmh:
            reasons.append(f"impossible speed ({speed_kmh:.0f} km/h)")
            score += IMPOSSIBLE_SPEED_WEIGHT
        elif speed_kmh > thresholds.high_speed_kmh:
            reasons.append(f"very high speed ({speed_kmh:.0f} km/h)")
            score += HIGH_SPEED_WEIGHT

    perfect = sum(1 for s in history if s.accuracy_m < thresholds.perfect_accuracy_m)
    if perfect > len(history) * 0.5:
        reasons.append("suspiciously perfect accuracy")
        score += PERFECT_ACCURACY_WEIGHT

    if len(history) >= thresholds.identical_min_samples:
        if len({s.coordinate for s in history}) == 1:
            reasons.append("identical locations")
            score += IDENTICAL_LOCATIONS_WEIGHT

    if len(history) >= thresholds.regular_min_samples:
        # Intervals in milliseconds; variance is compared against the mean directly.
        intervals = [
            (cur.captured_at - prev.captured_at).total_seconds() * 1000.0
            for prev, cur in zip(history, history[1:])
        ]
        mean = sum(intervals) / len(intervals)
        variance = sum((i - mean) ** 2 for i in intervals) / len(intervals)
        if mean > 0 and variance < mean * thresholds.regular_variance_ratio:
            reasons.append("suspiciously regular intervals")
            score += REGULAR_INTERVALS_WEIGHT

    score = _clamp(score)
    return SpoofingReport(
        suspicious=score > thresholds.suspicious_above,
        reasons=tuple(reasons),
        score=score,
    )


def confidence_score(
    sample: LocationSample,
    previous: Sequence[LocationSample],
    now: datetime,
    max_speed_kmh: float = 60.0,
) -> ConfidenceScore:
    """Blend accuracy, freshness and movement consistency into a 0-1 score."""
    accuracy = _clamp((50.0 - sample.accuracy_m) / 50.0)

    age_minutes = (now - sample.captured_at).total_seconds() / 60.0
    freshness = _clamp((10.0 - age_minutes) / 10.0)

    consistency = NEUTRAL_CONSISTENCY
    if previous:
        last = previous[-1]
        elapsed_h = (sample.captured_at - last.captured_at).total_seconds() / 3600.0
        if elapsed_h > 0:
            reachable_m = max_speed_kmh * 1000.0 * elapsed_h
            travelled_m = distance_m(sample.coordinate, last.coordinate)
            if travelled_m <= reachable_m:
                consistency = 1.0
            elif reachable_m <= 0:
                consistency = 0.0
            else:
                consistency = _clamp(1.0 - (travelled_m - reachable_m) / reachable_m)

    confidence = (
        ACCURACY_WEIGHT * accuracy
        + FRESHNESS_WEIGHT * freshness
        + CONSISTENCY_WEIGHT * consistency
    )
    return ConfidenceScore(
        confidence=confidence,
        accuracy=accuracy,
        freshness=freshness,
        consistency=consistency,
    )


def validation_report(
    sample: LocationSample,
    target: Coordinate,
    rules: ValidationRules,
    now: datetime,
    history: Sequence[LocationSample] = (),
    thresholds: SpoofingThresholds = SpoofingThresholds(),
) -> ValidationReport:
    """Full trust assessment of one sample against its recent history.

    A sample is ``trusted`` only if the verdict accepts it, the history
    including it does not look spoofed, and its confidence exceeds 0.3.
    """
    verdict = validate(sample, target, rules, now, history)
    spoofing = detect_spoofing([*history, sample], thresholds)
    score = confidence_score(sample, history, now, max_speed_kmh=rules.max_speed_kmh)

    recommendations: list[str] = []
    if REASON_LOW_ACCURACY in verdict.reasons:
        recommendations.append("enable_high_accuracy")
    if REASON_STALE in verdict.reasons:
        recommendations.append("request_fresh_location")
    if spoofing.suspicious:
        recommendations.append("review_spoofing")
    if score.confidence < 0.6:
        recommendations.append("require_verification")

    return ValidationReport(
        verdict=verdict,
        spoofing=spoofing,
        score=score,
        trusted=verdict.accepted and not spoofing.suspicious and score.confidence > 0.3,
        recommendations=tuple(recommendations),
    )
