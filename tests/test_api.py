"""Tests for the HTTP endpoints."""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone

import pytest

SITE = {"lat": 6.9271, "lng": 79.8612}
# Roughly 55 m north of SITE.
NEAR = {"lat": 6.9276, "lng": 79.8612}
# Roughly 1.1 km north of SITE.
FAR = {"lat": 6.9371, "lng": 79.8612}


def ping_payload(user_id="emp-001", location=None, accuracy_m=8, captured_at_ms=None, **extra):
    payload = {
        "user_id": user_id,
        "location": {**(location or NEAR), "accuracy_m": accuracy_m},
        "captured_at_ms": captured_at_ms if captured_at_ms is not None else int(time.time() * 1000),
        "target": SITE,
    }
    payload.update(extra)
    return payload


async def put_site(client, radius_m=150):
    resp = await client.put(
        "/api/v1/geofences/hq",
        json={"name": "Head office", "circle": {"center": SITE, "radius_m": radius_m}},
    )
    assert resp.status_code == 200
    return resp


# Monitoring

@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert "uptime_seconds" in data
    assert data["regions"] == 0


@pytest.mark.asyncio
async def test_stats_empty(client):
    resp = await client.get("/api/v1/stats")
    assert resp.status_code == 200
    data = resp.json()
    assert data["pings_received"] == 0
    assert data["active_users"]["total"] == 0


@pytest.mark.asyncio
async def test_config_endpoint(client):
    resp = await client.get("/api/v1/config")
    assert resp.status_code == 200
    data = resp.json()
    assert data["max_distance_m"] == 100.0
    assert data["trail_max_gap_minutes"] == 30.0
    assert data["timezone"] == "UTC"
    assert data["site_region_id"] is None


# Geofences

@pytest.mark.asyncio
async def test_geofence_lifecycle(client):
    await put_site(client)
    resp = await client.put(
        "/api/v1/geofences/yard",
        json={"polygon": [SITE, NEAR, {"lat": 6.9276, "lng": 79.8620}], "active": False},
    )
    assert resp.status_code == 200
    assert resp.json()["active"] is False

    resp = await client.get("/api/v1/geofences")
    ids = [r["id"] for r in resp.json()["regions"]]
    assert ids == ["hq", "yard"]

    resp = await client.get("/api/v1/geofences/hq")
    assert resp.json()["circle"]["radius_m"] == 150

    resp = await client.delete("/api/v1/geofences/hq")
    assert resp.status_code == 204
    resp = await client.delete("/api/v1/geofences/hq")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_reject_bad_geofence(client):
    resp = await client.put("/api/v1/geofences/hq", json={"circle": {"center": SITE, "radius_m": 0}})
    assert resp.status_code == 422
    assert resp.json()["field"] == "radius_m"

    resp = await client.put("/api/v1/geofences/hq", json={"polygon": [SITE, NEAR]})
    assert resp.status_code == 422

    resp = await client.put("/api/v1/geofences/hq", json={"name": "no shape"})
    assert resp.status_code == 422


# Pings

@pytest.mark.asyncio
async def test_ping_accepted_and_enters_geofence(client):
    await put_site(client)
    resp = await client.post("/api/v1/tracking/ping", json=ping_payload())
    assert resp.status_code == 200
    data = resp.json()
    assert data["accepted"] is True
    assert data["tier"] == "medium"
    assert data["reasons"] == []
    assert data["spoofing"]["suspicious"] is False
    assert [(e["region_id"], e["kind"]) for e in data["events"]] == [("hq", "enter")]
    assert data["inside"] == ["hq"]

    resp = await client.post("/api/v1/tracking/ping", json=ping_payload())
    assert resp.json()["events"] == []

    stats = (await client.get("/api/v1/stats")).json()
    assert stats["pings_accepted"] == 2
    assert stats["transitions_emitted"] == 1
    assert stats["active_users"]["inside_geofence"] == 1


@pytest.mark.asyncio
async def test_ping_rejected_out_of_range(client):
    resp = await client.post("/api/v1/tracking/ping", json=ping_payload(location=FAR))
    assert resp.status_code == 200
    data = resp.json()
    assert data["accepted"] is False
    assert data["reasons"] == ["out_of_range"]
    assert data["distance_m"] > 1000


@pytest.mark.asyncio
async def test_ping_rule_overrides(client):
    payload = ping_payload(location=FAR, rules={"max_distance_m": 2000})
    resp = await client.post("/api/v1/tracking/ping", json=payload)
    assert resp.json()["accepted"] is True

    resp = await client.post("/api/v1/tracking/ping",
                             json=ping_payload(rules={"strict_mode": "yes"}))
    assert resp.status_code == 422
    assert resp.json()["field"] == "rules.strict_mode"


@pytest.mark.asyncio
async def test_stale_ping_rejected(client):
    old_ms = int(time.time() * 1000) - 20 * 60 * 1000
    resp = await client.post("/api/v1/tracking/ping", json=ping_payload(captured_at_ms=old_ms))
    data = resp.json()
    assert data["accepted"] is False
    assert "stale_location" in data["reasons"]


@pytest.mark.asyncio
@pytest.mark.parametrize("mutate, field", [
    (lambda p: p.pop("target"), "target"),
    (lambda p: p.update(user_id=""), "user_id"),
    (lambda p: p["location"].update(lat=95.0), "latitude"),
    (lambda p: p["location"].update(accuracy_m=-3), "accuracy_m"),
    (lambda p: p["location"].pop("accuracy_m"), "accuracy_m"),
    (lambda p: p.update(rules={"max_speed_kmh": 0}), "rules.max_speed_kmh"),
    (lambda p: p.update(captured_at_ms="yesterday"), "captured_at_ms"),
    (lambda p: p.update(battery_level=140), "battery_level"),
])
async def test_malformed_ping(client, mutate, field):
    payload = ping_payload()
    mutate(payload)
    resp = await client.post("/api/v1/tracking/ping", json=payload)
    assert resp.status_code == 422
    assert resp.json()["field"] == field

    stats = (await client.get("/api/v1/stats")).json()
    assert stats["pings_malformed"] == 1
    assert stats["pings_accepted"] == 0


@pytest.mark.asyncio
async def test_invalid_json(client):
    resp = await client.post(
        "/api/v1/tracking/ping",
        content=b"not json at all",
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_json"


@pytest.mark.asyncio
async def test_teleport_flagged(client):
    now_ms = int(time.time() * 1000)
    rules = {"max_distance_m": 5000}
    await client.post("/api/v1/tracking/ping",
                      json=ping_payload(captured_at_ms=now_ms - 2000, rules=rules))
    resp = await client.post("/api/v1/tracking/ping",
                             json=ping_payload(location=FAR, captured_at_ms=now_ms, rules=rules))
    data = resp.json()
    assert data["spoofing"]["suspicious"] is True
    assert any("impossible speed" in r for r in data["spoofing"]["reasons"])


@pytest.mark.asyncio
async def test_validation_report(client):
    resp = await client.post("/api/v1/tracking/report", json=ping_payload(accuracy_m=90))
    assert resp.status_code == 200
    data = resp.json()
    assert data["verdict"]["accepted"] is False
    assert data["trusted"] is False
    assert "enable_high_accuracy" in data["recommendations"]
    assert set(data["score"]) == {"confidence", "accuracy", "freshness", "consistency"}

    stats = (await client.get("/api/v1/stats")).json()
    assert stats["pings_received"] == 0


# Trails

@pytest.mark.asyncio
async def test_segment_trails(client):
    base = 1_709_280_000_000
    minute = 60_000
    points = [
        {**SITE, "accuracy_m": 8, "captured_at_ms": base},
        {**NEAR, "accuracy_m": 8, "captured_at_ms": base + 5 * minute},
        {**SITE, "accuracy_m": 8, "captured_at_ms": base + 45 * minute},
        {**NEAR, "accuracy_m": 8, "captured_at_ms": base + 50 * minute, "speed_kmh": 4.2},
    ]
    resp = await client.post("/api/v1/tracking/trails", json={"points": points})
    assert resp.status_code == 200
    trails = resp.json()["trails"]
    assert [len(t["points"]) for t in trails] == [2, 2]
    assert trails[1]["points"][1]["speed_kmh"] == 4.2
    assert trails[0]["started_at_ms"] == base

    resp = await client.post("/api/v1/tracking/trails",
                             json={"points": points, "max_gap_minutes": 60})
    assert len(resp.json()["trails"]) == 1


@pytest.mark.asyncio
async def test_unordered_trail_points(client):
    points = [
        {**SITE, "accuracy_m": 8, "captured_at_ms": 1_709_280_600_000},
        {**NEAR, "accuracy_m": 8, "captured_at_ms": 1_709_280_000_000},
    ]
    resp = await client.post("/api/v1/tracking/trails", json={"points": points})
    assert resp.status_code == 422
    data = resp.json()
    assert data["error"] == "unordered_points"
    assert data["index"] == 1


@pytest.mark.asyncio
async def test_stored_trail_geojson(client):
    now_ms = int(time.time() * 1000)
    for offset in (60_000, 30_000, 0):
        await client.post("/api/v1/tracking/ping",
                          json=ping_payload(captured_at_ms=now_ms - offset))
    await client.post("/api/v1/tracking/ping", json=ping_payload(location=FAR))

    resp = await client.get("/api/v1/tracking/trail/emp-001")
    assert resp.status_code == 200
    data = json.loads(resp.content)
    assert data["type"] == "FeatureCollection"
    assert len(data["features"]) == 1
    assert data["features"][0]["properties"]["points"] == 3

    resp = await client.get("/api/v1/tracking/trail/nobody")
    assert resp.json()["features"] == []


@pytest.mark.asyncio
async def test_stored_trail_keeps_newest_points(client, config):
    config.limits.max_trail_points = 3
    now_ms = int(time.time() * 1000)
    for offset in (4000, 3000, 2000, 1000, 0):
        await client.post("/api/v1/tracking/ping",
                          json=ping_payload(captured_at_ms=now_ms - offset))

    data = json.loads((await client.get("/api/v1/tracking/trail/emp-001")).content)
    props = data["features"][0]["properties"]
    assert props["points"] == 3
    assert props["ended_at"] == datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc).isoformat()


# Attendance

@pytest.mark.asyncio
async def test_clock_in_out_flow(client):
    # 2024-03-01 08:00 and 17:30 UTC; the test config uses UTC.
    clock_in_ms = 1_709_280_000_000
    clock_out_ms = clock_in_ms + int(9.5 * 3600 * 1000)

    resp = await client.post("/api/v1/attendance/clock-in",
                             json={"user_id": "emp-001", "location": SITE, "time_ms": clock_in_ms})
    assert resp.status_code == 200
    data = resp.json()
    assert data["date"] == "2024-03-01"
    assert data["status"] == "partial"
    assert data["anomalies"] == ["missing_clock_out"]

    resp = await client.post("/api/v1/attendance/clock-out",
                             json={"user_id": "emp-001", "location": SITE, "time_ms": clock_out_ms})
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "present"
    assert data["total_hours"] == 9.5
    assert data["anomalies"] == []

    resp = await client.get("/api/v1/attendance/emp-001/2024-03-01")
    assert resp.json()["status"] == "present"


@pytest.mark.asyncio
async def test_clock_conflicts(client):
    body = {"user_id": "emp-002", "location": SITE}
    resp = await client.post("/api/v1/attendance/clock-out", json=body)
    assert resp.status_code == 409
    assert resp.json()["error"] == "not_clocked_in"

    resp = await client.post("/api/v1/attendance/clock-in", json=body)
    assert resp.status_code == 200
    assert resp.json()["status"] == "pending"

    resp = await client.post("/api/v1/attendance/clock-in", json=body)
    assert resp.status_code == 409
    assert resp.json()["error"] == "already_clocked_in"

    await client.post("/api/v1/attendance/clock-out", json=body)
    resp = await client.post("/api/v1/attendance/clock-out", json=body)
    assert resp.status_code == 409
    assert resp.json()["error"] == "already_clocked_out"

    stats = (await client.get("/api/v1/stats")).json()
    assert stats["clock_conflicts"] == 3


@pytest.mark.asyncio
async def test_clock_in_malformed(client):
    resp = await client.post("/api/v1/attendance/clock-in",
                             json={"user_id": "emp-003", "location": {"lat": "x", "lng": 0}})
    assert resp.status_code == 422

    resp = await client.get("/api/v1/attendance/emp-003/not-a-date")
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_attendance_summary(client):
    day_ms = 86_400_000
    start_ms = 1_709_280_000_000  # 2024-03-01 08:00 UTC
    for i in range(3):
        t = start_ms + i * day_ms
        await client.post("/api/v1/attendance/clock-in",
                          json={"user_id": "emp-004", "location": SITE, "time_ms": t})
        if i < 2:
            await client.post("/api/v1/attendance/clock-out",
                              json={"user_id": "emp-004", "location": SITE,
                                    "time_ms": t + 9 * 3600 * 1000})

    resp = await client.post("/api/v1/attendance/summary",
                             json={"user_id": "emp-004", "start": "2024-03-01", "end": "2024-03-31"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["summary"]["total_records"] == 3
    assert data["summary"]["present_days"] == 2
    assert data["summary"]["partial_days"] == 1
    assert data["summary"]["total_hours"] == 18.0
    assert data["summary"]["attendance_rate"] == 66.67
    assert [r["date"] for r in data["records"]] == ["2024-03-03", "2024-03-02", "2024-03-01"]

    resp = await client.post("/api/v1/attendance/summary", json={"start": "March"})
    assert resp.status_code == 422
