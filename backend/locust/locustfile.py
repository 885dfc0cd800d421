"""
Locust Load Test Suite

Events are authored outside this service, so point the run at an existing
published event that requires registration:

  LOCUST_EVENT_ID=1 SECRET_KEY=... locust -f locustfile.py --tags concurrency
  LOCUST_EVENT_ID=1 locust -f locustfile.py --tags churn        # Test promotion
  LOCUST_EVENT_ID=1 locust -f locustfile.py --tags throughput   # Test cache
  LOCUST_EVENT_ID=1 locust -f locustfile.py --tags edge         # Test bad input

Tokens are signed locally with the service's SECRET_KEY, the same way the
identity provider issues them.
"""

import itertools
import os
import random
from datetime import datetime, timedelta, timezone

import jwt
from locust import HttpUser, between, events, tag, task

EVENT_ID = int(os.environ.get("LOCUST_EVENT_ID", "1"))
SECRET_KEY = os.environ.get("SECRET_KEY", "super-secret-key-change-in-production")
ALGORITHM = os.environ.get("ALGORITHM", "HS256")

# Unique user ids across all simulated users of this process
_user_ids = itertools.count(random.randint(100_000, 900_000))


def issue_token(user_id: int) -> str:
    return jwt.encode(
        {
            "sub": str(user_id),
            "name": f"Load User {user_id}",
            "email": f"load_{user_id}@test.com",
            "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        },
        SECRET_KEY,
        algorithm=ALGORITHM,
    )


def registration_url(event_id: int = EVENT_ID) -> str:
    return f"/api/v1/events/{event_id}/registration"


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Target event: {EVENT_ID}")
    print("=" * 60)


class AuthenticatedUser(HttpUser):
    abstract = True

    def on_start(self):
        self.user_id = next(_user_ids)
        self.headers = {"Authorization": f"Bearer {issue_token(self.user_id)}"}


class ConcurrencyUser(AuthenticatedUser):
    """
    TEST 1: Concurrency - many users race for a limited event

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM event_registrations
       WHERE event_id = X AND status = 'confirmed';
    Should be <= max_participants and equal capacity_ledger.confirmed_count
    """
    wait_time = between(0, 0.1)

    @tag("concurrency")
    @task
    def register_once(self):
        with self.client.post(
            registration_url(),
            json={"participantName": f"Load User {self.user_id}"},
            headers=self.headers,
            name="/api/v1/events/{id}/registration [register]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 200:
                resp.success()
            elif resp.status_code == 400 and resp.json().get("code") == "already_registered":
                resp.success()  # Expected on every task after the first
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ChurnUser(AuthenticatedUser):
    """
    TEST 2: Churn - register and cancel in a loop to drive waitlist promotion

    Run: locust -f locustfile.py --tags churn -u 50 -r 10 --run-time 60s

    Each freed seat must go to the oldest waitlisted registration; the
    confirmed count must never exceed capacity.
    """
    wait_time = between(0.1, 0.5)

    @tag("churn")
    @task(3)
    def register(self):
        with self.client.post(
            registration_url(),
            headers=self.headers,
            name="/api/v1/events/{id}/registration [register]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 400):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("churn")
    @task(2)
    def cancel(self):
        with self.client.delete(
            registration_url(),
            headers=self.headers,
            name="/api/v1/events/{id}/registration [cancel]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 400):
                resp.success()  # 400 when not registered at the moment
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(AuthenticatedUser):
    """
    TEST 3: Throughput - status view backed by the summary cache

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the server, run again
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def registration_status(self):
        self.client.get(
            registration_url(),
            headers=self.headers,
            name="/api/v1/events/{id}/registration [status]",
        )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(AuthenticatedUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.post(
            registration_url(999_999_999),
            headers=self.headers,
            name="/api/v1/events/{id}/registration [unknown]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            registration_url(),
            data="not json at all",
            headers={**self.headers, "Content-Type": "application/json"},
            name="/api/v1/events/{id}/registration [malformed]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (400, 422):
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(
            registration_url(),
            name="/api/v1/events/{id}/registration [anonymous]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")

    @tag("edge")
    @task
    def forged_token(self):
        forged = jwt.encode({"sub": str(self.user_id)}, "wrong-secret", algorithm="HS256")
        with self.client.get(
            registration_url(),
            headers={"Authorization": f"Bearer {forged}"},
            name="/api/v1/events/{id}/registration [forged]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")
