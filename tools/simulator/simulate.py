#!/usr/bin/env python3
"""GeoTrack ping simulator.

Walks simulated employees around a site and sends their location pings to
the server. Each employee clocks in at the start and out at the end.

Usage:
    # 5 employees around the default site for 10 minutes
    python -m tools.simulator.simulate --server http://localhost:8000 --employees 5 --duration 600

    # Include one device that teleports every few pings
    python -m tools.simulator.simulate --server http://localhost:8000 --spoof

    # Specific site and geofence radius
    python -m tools.simulator.simulate --center 48.8566,2.3522 --radius-m 250
"""

from __future__ import annotations

import argparse
import asyncio
import random
import time
import uuid
from dataclasses import dataclass

import httpx

from geotrack.core.geo import bearing_deg, destination, distance_m
from geotrack.core.models import Coordinate

SITE_REGION_ID = "sim-site"


@dataclass
class SimEmployee:
    user_id: str
    position: Coordinate
    heading: float
    speed_mps: float
    spoofing: bool = False
    pings_sent: int = 0
    pings_accepted: int = 0
    errors: int = 0


def move_employee(employee: SimEmployee, dt_seconds: float, site: Coordinate,
                  radius_m: float) -> None:
    """Walk along the current heading with random turns, turning back near the boundary."""
    employee.heading = (employee.heading + random.uniform(-30, 30)) % 360
    employee.speed_mps = max(0.3, min(2.0, employee.speed_mps + random.uniform(-0.2, 0.2)))

    if distance_m(employee.position, site) > radius_m * 0.9:
        # Head roughly back towards the site center.
        employee.heading = (bearing_deg(employee.position, site) + random.uniform(-20, 20)) % 360

    employee.position = destination(employee.position, employee.heading,
                                    employee.speed_mps * dt_seconds)


def teleport(employee: SimEmployee, site: Coordinate, min_m: float = 2_000,
             max_m: float = 20_000) -> None:
    """Jump far away in one step, the way a mocked GPS provider does."""
    employee.position = destination(site, random.uniform(0, 360), random.uniform(min_m, max_m))


def make_ping_payload(employee: SimEmployee, timestamp_ms: int, site: Coordinate) -> dict:
    """Create a single ping JSON payload."""
    return {
        "user_id": employee.user_id,
        "location": {
            "lat": round(employee.position.latitude, 7),
            "lng": round(employee.position.longitude, 7),
            "accuracy_m": 0.5 if employee.spoofing else random.randint(4, 25),
        },
        "captured_at_ms": timestamp_ms,
        "battery_level": random.randint(20, 100),
        "speed_kmh": round(employee.speed_mps * 3.6, 1),
        "target": {"lat": site.latitude, "lng": site.longitude},
    }


def make_site_payload(site: Coordinate, radius_m: float) -> dict:
    return {
        "name": "Simulated site",
        "circle": {"center": {"lat": site.latitude, "lng": site.longitude}, "radius_m": radius_m},
    }


async def run_employee(
    client: httpx.AsyncClient,
    employee: SimEmployee,
    args: argparse.Namespace,
    site: Coordinate,
) -> None:
    """Simulate a single employee's shift."""
    interval = 60.0 / args.pings_per_minute
    end_time = time.monotonic() + args.duration
    clock_body = {"user_id": employee.user_id}

    try:
        await client.post(f"{args.server}/api/v1/attendance/clock-in",
                          json={**clock_body, "location": {"lat": employee.position.latitude,
                                                           "lng": employee.position.longitude}})
    except httpx.RequestError:
        employee.errors += 1

    while time.monotonic() < end_time:
        if employee.spoofing and employee.pings_sent % 3 == 2:
            teleport(employee, site)
        else:
            move_employee(employee, interval, site, args.radius_m)

        payload = make_ping_payload(employee, int(time.time() * 1000), site)
        try:
            resp = await client.post(f"{args.server}/api/v1/tracking/ping", json=payload)
            if resp.status_code == 200:
                employee.pings_sent += 1
                if resp.json().get("accepted"):
                    employee.pings_accepted += 1
            else:
                employee.errors += 1
        except httpx.RequestError:
            employee.errors += 1

        await asyncio.sleep(interval)

    try:
        await client.post(f"{args.server}/api/v1/attendance/clock-out",
                          json={**clock_body, "location": {"lat": employee.position.latitude,
                                                           "lng": employee.position.longitude}})
    except httpx.RequestError:
        employee.errors += 1


async def run_simulation(args: argparse.Namespace) -> None:
    """Run the full simulation."""
    site = Coordinate(*args.center)
    employees = []
    for _ in range(args.employees):
        start = destination(site, random.uniform(0, 360), random.uniform(0, args.radius_m * 0.5))
        employees.append(SimEmployee(
            user_id=f"sim-{uuid.uuid4().hex[:8]}",
            position=start,
            heading=random.uniform(0, 360),
            speed_mps=random.uniform(0.8, 1.5),
        ))
    if args.spoof:
        employees.append(SimEmployee(
            user_id=f"spoof-{uuid.uuid4().hex[:8]}",
            position=site,
            heading=0.0,
            speed_mps=1.0,
            spoofing=True,
        ))

    print(f"Starting simulation: {len(employees)} employees, {args.pings_per_minute} pings/min each")
    print(f"  Site: {site.latitude:.4f}, {site.longitude:.4f} (radius {args.radius_m} m)")
    print(f"  Duration: {args.duration}s")
    print(f"  Server: {args.server}")
    print()

    start = time.monotonic()

    async with httpx.AsyncClient(timeout=10.0) as client:
        resp = await client.put(f"{args.server}/api/v1/geofences/{SITE_REGION_ID}",
                                json=make_site_payload(site, args.radius_m))
        resp.raise_for_status()

        await asyncio.gather(*(run_employee(client, emp, args, site) for emp in employees))

        elapsed = time.monotonic() - start
        total_sent = sum(e.pings_sent for e in employees)
        total_accepted = sum(e.pings_accepted for e in employees)
        total_errors = sum(e.errors for e in employees)

        print(f"\nSimulation complete in {elapsed:.1f}s")
        print(f"  Pings sent: {total_sent}")
        print(f"  Pings accepted: {total_accepted}")
        print(f"  Errors: {total_errors}")

        resp = await client.get(f"{args.server}/api/v1/stats")
        if resp.status_code == 200:
            stats = resp.json()
            print("\nServer stats:")
            print(f"  Pings received: {stats['pings_received']}")
            print(f"  Pings suspicious: {stats['pings_suspicious']}")
            print(f"  Transitions: {stats['transitions_emitted']}")
            print(f"  Active users inside geofence: {stats['active_users']['inside_geofence']}")


def parse_center(value: str) -> tuple[float, float]:
    lat, lon = value.split(",")
    return float(lat), float(lon)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GeoTrack ping simulator")
    parser.add_argument("--server", default="http://localhost:8000", help="Server URL")
    parser.add_argument("--employees", type=int, default=5, help="Number of simulated employees")
    parser.add_argument("--duration", type=int, default=60, help="Simulation duration in seconds")
    parser.add_argument("--pings-per-minute", type=float, default=6, help="Pings per minute per employee")
    parser.add_argument("--center", type=parse_center, default=(6.9271, 79.8612),
                        help="Site center lat,lon (default: Colombo)")
    parser.add_argument("--radius-m", type=float, default=150.0, help="Site geofence radius in meters")
    parser.add_argument("--spoof", action="store_true", help="Add a teleporting device")
    return parser


def main():
    args = build_parser().parse_args()
    asyncio.run(run_simulation(args))


if __name__ == "__main__":
    main()
