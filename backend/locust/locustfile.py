"""
Locust Load Test Suite

Run scenarios:
  locust -f locust/locustfile.py --tags concurrency  # Test slot oversubscription
  locust -f locust/locustfile.py --tags verify       # Test double verification
  locust -f locust/locustfile.py --tags throughput   # Test availability cache
  locust -f locust/locustfile.py --tags edge         # Test bad input
  locust -f locust/locustfile.py                     # All tests

Tokens are minted locally with the server's SECRET_KEY, so run this with
the same environment (or .env) as the API.
"""

import random
from datetime import date, timedelta
from itertools import count

import httpx
from locust import HttpUser, task, between, tag, events

from gatehouse.core.security import Identity, Role, create_access_token

BUILDING_ID = 1
CONTENDED_DAY = (date.today() + timedelta(days=7)).isoformat()

# Shared state
AMENITY_IDS = []
PASS_CODES = []
CONCURRENCY_AMENITY_ID = None

_user_ids = count(10_000)


def headers_for(role: Role, building_id=BUILDING_ID) -> dict:
    user_id = next(_user_ids)
    identity = Identity(id=user_id, role=role, building_id=building_id, apartment_id=user_id)
    return {"Authorization": f"Bearer {create_access_token(identity)}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: Create an amenity with one 10-place slot for the concurrency test."""
    global CONCURRENCY_AMENITY_ID
    print("\n" + "=" * 60)
    print("SETUP: Creating concurrency test amenity...")
    print("=" * 60)

    if environment.host is None:
        return

    resp = httpx.post(
        f"{environment.host}/api/v1/amenities/",
        json={
            "name": "Load Test Court",
            "slots": [{"name": "Prime", "start": "18:00", "end": "19:00", "max_per_day": 10}],
        },
        headers=headers_for(Role.SUPER_ADMIN, building_id=None),
    )
    if resp.status_code == 201:
        CONCURRENCY_AMENITY_ID = resp.json()["id"]
        AMENITY_IDS.append(CONCURRENCY_AMENITY_ID)
        print(f"\n✓ Created amenity {CONCURRENCY_AMENITY_ID}, slot Prime, 10 places on {CONTENDED_DAY}\n")


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 residents → 10 places

    Run: locust -f locust/locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM bookings
      WHERE amenity_id = X AND date = D AND slot_name = 'Prime'
        AND status IN ('pending', 'approved');
    Should be ≤ 10
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = headers_for(Role.RESIDENT)

    @tag("concurrency")
    @task
    def book_contended_slot(self):
        """All residents fight for the same 10 places."""
        if not CONCURRENCY_AMENITY_ID:
            return

        with self.client.post("/api/v1/bookings",
            json={"amenity_id": CONCURRENCY_AMENITY_ID, "date": CONTENDED_DAY, "slot_name": "Prime"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: slot_full or duplicate_booking
            elif resp.status_code == 503:
                resp.success()  # Retry budget exhausted under contention
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class GateUser(HttpUser):
    """
    TEST 2: Verification race - several gates scan the same codes

    Run: locust -f locust/locustfile.py --tags verify -u 50 -r 25 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM audit_events WHERE type = 'visitor_verified'
    equals
      SELECT COUNT(*) FROM visitor_passes WHERE status = 'verified';
    """
    wait_time = between(0, 0.2)

    def on_start(self):
        self.resident = headers_for(Role.RESIDENT)
        self.watchman = headers_for(Role.WATCHMAN)

    @tag("verify")
    @task(1)
    def issue_pass(self):
        resp = self.client.post(f"/api/v1/buildings/{BUILDING_ID}/visitor-passes",
            json={"visitor_name": f"Guest {random.randint(1, 10000)}"},
            headers=self.resident)
        if resp.status_code == 201:
            PASS_CODES.append(resp.json()["pass"]["code"])

    @tag("verify")
    @task(5)
    def verify_pass(self):
        if not PASS_CODES:
            return
        code = random.choice(PASS_CODES[-20:])

        with self.client.post(f"/api/v1/buildings/{BUILDING_ID}/visitor-passes/verify",
            json={"code": code},
            headers=self.watchman,
            name="/api/v1/buildings/{id}/visitor-passes/verify",
            catch_response=True
        ) as resp:
            if resp.status_code == 200 and resp.json()["message"] in (
                "verified", "already verified", "expired", "cancelled"
            ):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 3: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locust/locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the API, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.headers = headers_for(Role.RESIDENT)

    @tag("throughput", "read")
    @task(10)
    def availability_cached(self):
        """Hammer the cached calendar."""
        if AMENITY_IDS:
            amenity_id = random.choice(AMENITY_IDS)
            self.client.get(f"/api/v1/amenities/{amenity_id}/availability",
                headers=self.headers,
                name="/api/v1/amenities/{id}/availability [cached]")

    @tag("throughput", "read")
    @task(3)
    def list_amenities(self):
        self.client.get("/api/v1/amenities/", headers=self.headers)

    @tag("throughput")
    @task(1)
    def health_check(self):
        """Monitor system health."""
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locust/locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = headers_for(Role.RESIDENT)

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_amenity_id(self):
        with self.client.post("/api/v1/bookings",
            json={"amenity_id": 999999, "date": CONTENDED_DAY, "slot_name": "Prime"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def past_date(self):
        yesterday = (date.today() - timedelta(days=1)).isoformat()
        with self.client.post("/api/v1/bookings",
            json={"amenity_id": CONCURRENCY_AMENITY_ID or 1, "date": yesterday, "slot_name": "Prime"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 404])

    @tag("edge")
    @task
    def unknown_pass_code(self):
        with self.client.post(f"/api/v1/buildings/{BUILDING_ID}/visitor-passes/verify",
            json={"code": "ZZZZZZ"},
            headers=headers_for(Role.WATCHMAN),
            catch_response=True
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def foreign_watchman(self):
        """Watchman of another building is refused before any lookup."""
        with self.client.post(f"/api/v1/buildings/{BUILDING_ID}/visitor-passes/verify",
            json={"code": "ZZZZZZ"},
            headers=headers_for(Role.WATCHMAN, building_id=BUILDING_ID + 1),
            catch_response=True
        ) as resp:
            self._expect(resp, [403])

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/bookings",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_auth(self):
        """Try booking without auth."""
        with self.client.post("/api/v1/bookings",
            json={"amenity_id": 1, "date": CONTENDED_DAY, "slot_name": "Prime"},
            catch_response=True
        ) as resp:
            self._expect(resp, [401])
