"""
Khata Load Testing with Locust

Run against a seeded server (python -m flask system seed):
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5000

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5000 \
           --users 10 --spawn-rate 2 --run-time 60s --headless

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- Error rate < 1%

Sales and payments hammer the same few products and customers on purpose:
the stock and credit counters are the contended rows.
"""

import time
import random
from typing import Dict, List

from locust import HttpUser, task, between, events


# =============================================================================
# METRICS TRACKING
# =============================================================================

class MetricsCollector:
    """Collect and report metrics."""

    def __init__(self):
        self.request_counts: Dict[str, int] = {}
        self.error_counts: Dict[str, int] = {}
        self.response_times: Dict[str, List[float]] = {}

    def record(self, name: str, response_time: float, success: bool):
        if name not in self.request_counts:
            self.request_counts[name] = 0
            self.error_counts[name] = 0
            self.response_times[name] = []

        self.request_counts[name] += 1
        if not success:
            self.error_counts[name] += 1
        self.response_times[name].append(response_time)

    def get_summary(self) -> Dict:
        summary = {}
        for name in self.request_counts:
            times = sorted(self.response_times[name])
            count = len(times)
            if count == 0:
                continue

            p95_idx = int(count * 0.95)

            summary[name] = {
                "count": self.request_counts[name],
                "errors": self.error_counts[name],
                "error_rate": self.error_counts[name] / self.request_counts[name] * 100,
                "avg_ms": sum(times) / count,
                "p95_ms": times[p95_idx] if p95_idx < count else times[-1],
            }
        return summary


metrics = MetricsCollector()


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class KhataUser(HttpUser):
    """Base user that loads the catalog and customer list on start."""
    wait_time = between(0.5, 2)
    abstract = True

    products: List[Dict] = []
    customers: List[Dict] = []

    def on_start(self):
        response = self.client.get("/api/products", name="products/list")
        if response.status_code == 200:
            self.products = response.json().get("items", [])

        response = self.client.get("/api/customers", name="customers/list")
        if response.status_code == 200:
            self.customers = response.json().get("items", [])


class BrowsingUser(KhataUser):
    """
    User that primarily reads data.
    Simulates the shopkeeper checking stock, udhar and the dashboard.
    """
    weight = 3

    @task(5)
    def list_products(self):
        start = time.time()
        response = self.client.get("/api/products", name="products/list")
        metrics.record("products/list", (time.time() - start) * 1000, response.status_code == 200)

    @task(2)
    def list_low_stock(self):
        start = time.time()
        response = self.client.get("/api/products", params={"low_stock": "true"}, name="products/low_stock")
        metrics.record("products/low_stock", (time.time() - start) * 1000, response.status_code == 200)

    @task(3)
    def history(self):
        start = time.time()
        response = self.client.get("/api/billing/history", params={"limit": 20}, name="billing/history")
        metrics.record("billing/history", (time.time() - start) * 1000, response.status_code == 200)

    @task(2)
    def dashboard(self):
        start = time.time()
        response = self.client.get("/api/dashboard/summary", name="dashboard/summary")
        metrics.record("dashboard/summary", (time.time() - start) * 1000, response.status_code == 200)

    @task(1)
    def health_check(self):
        start = time.time()
        response = self.client.get("/api/health", name="system/health")
        metrics.record("system/health", (time.time() - start) * 1000, response.status_code == 200)


class CounterUser(KhataUser):
    """
    User that rings up sales and takes udhar payments.
    """
    weight = 2

    def _random_items(self) -> List[Dict]:
        picked = random.sample(self.products, k=min(len(self.products), random.randint(1, 3)))
        return [
            {
                "product_id": p["id"],
                "quantity": random.randint(1, 2),
                "unit_price_cents": p["price_cents"],
            }
            for p in picked
        ]

    @task(4)
    def cash_sale(self):
        if not self.products:
            return
        start = time.time()
        response = self.client.post(
            "/api/billing/sales",
            json={"items": self._random_items(), "payment_method": random.choice(["cash", "upi"])},
            name="sales/create_paid",
        )
        metrics.record("sales/create_paid", (time.time() - start) * 1000, response.status_code == 201)

    @task(2)
    def credit_sale(self):
        if not self.products or not self.customers:
            return
        start = time.time()
        response = self.client.post(
            "/api/billing/sales",
            json={
                "items": self._random_items(),
                "payment_method": "credit",
                "customer_id": random.choice(self.customers)["id"],
            },
            name="sales/create_credit",
        )
        metrics.record("sales/create_credit", (time.time() - start) * 1000, response.status_code == 201)

    @task(2)
    def add_payment(self):
        if not self.customers:
            return
        start = time.time()
        response = self.client.post(
            "/api/billing/payments",
            json={
                "customer_id": random.choice(self.customers)["id"],
                "amount_cents": random.randint(100, 5000),
                "payment_method": random.choice(["cash", "upi"]),
            },
            name="payments/add",
        )
        metrics.record("payments/add", (time.time() - start) * 1000, response.status_code == 201)


class StockUser(KhataUser):
    """
    User that books deliveries while sales are running.
    """
    weight = 1

    @task
    def receive_stock(self):
        if not self.products:
            return
        product = random.choice(self.products)
        start = time.time()
        response = self.client.put(
            f"/api/products/{product['id']}",
            json={"stock_delta": random.randint(1, 10)},
            name="products/receive",
        )
        metrics.record("products/receive", (time.time() - start) * 1000, response.status_code == 200)


# =============================================================================
# EVENT HANDLERS
# =============================================================================

@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary when test stops."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)

    summary = metrics.get_summary()

    print(f"\n{'Endpoint':<30} {'Count':>8} {'Errors':>8} {'Err%':>8} {'Avg(ms)':>10} {'P95(ms)':>10}")
    print("-" * 80)

    total_requests = 0
    total_errors = 0
    all_pass = True

    for name, stats in sorted(summary.items()):
        total_requests += stats["count"]
        total_errors += stats["errors"]

        p95_threshold = 1000 if "create" in name or "add" in name or "receive" in name else 500
        passed = stats["p95_ms"] < p95_threshold and stats["error_rate"] < 1

        status = "PASS" if passed else "FAIL"
        if not passed:
            all_pass = False

        print(f"{name:<30} {stats['count']:>8} {stats['errors']:>8} {stats['error_rate']:>7.2f}% {stats['avg_ms']:>9.1f} {stats['p95_ms']:>9.1f} [{status}]")

    print("-" * 80)
    print(f"{'TOTAL':<30} {total_requests:>8} {total_errors:>8} {total_errors/max(total_requests,1)*100:>7.2f}%")
    print("=" * 80)

    if all_pass:
        print("\n[PASS] All endpoints within thresholds")
    else:
        print("\n[FAIL] Some endpoints exceeded thresholds")
        print("  - Reads (list/history/summary): P95 < 500ms, Error rate < 1%")
        print("  - Writes (sales/payments/receive): P95 < 1000ms, Error rate < 1%")

    print("=" * 80)
