# app/obs/metrics.py
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

http_requests_total = Counter("http_requests_total", "HTTP requests", ["method", "path", "code"])
http_request_duration = Histogram(
    "http_request_duration_seconds", "HTTP request duration seconds", ["method", "path"]
)

# reservation lifecycle
reservations_created_total = Counter("reservations_created_total", "Reservations created")
reservation_transitions_total = Counter(
    "reservation_transitions_total", "Reservation status transitions", ["to"]
)
payments_total = Counter("payments_total", "Payment attempts", ["status"])

# inventory contention (out_of_stock / listing_unavailable)
inventory_conflicts_total = Counter(
    "inventory_conflicts_total", "Rejected inventory reservations", ["reason"]
)

# pickup-status sweeper
pickup_sweeper_runs_total = Counter("pickup_sweeper_runs_total", "Pickup-status sweeper runs")
pickup_sweeper_listings_updated_total = Counter(
    "pickup_sweeper_listings_updated_total", "Listings whose pickup status changed", ["to"]
)

notification_failures_total = Counter(
    "notification_failures_total", "Notification delivery failures", ["channel"]
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        # route template keeps label cardinality bounded (/reservations/{reservation_id})
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        http_requests_total.labels(request.method, path, str(response.status_code)).inc()
        http_request_duration.labels(request.method, path).observe(elapsed)
        return response
