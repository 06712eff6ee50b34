"""Prometheus collectors shared by the API and the engine."""

from prometheus_client import Counter, Histogram

REQUEST_COUNTER = Counter(
    "campus_booking_requests_total",
    "Total number of processed HTTP requests.",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "campus_booking_request_duration_seconds",
    "HTTP request latency in seconds.",
    ["method", "path"],
)
CONFLICT_COUNTER = Counter(
    "campus_booking_conflicts_total",
    "Booking or reservation requests rejected for overlapping an occupied window.",
    ["owner_kind"],
)
TRANSITION_COUNTER = Counter(
    "campus_booking_transitions_total",
    "Committed state changes of bookings and reservations.",
    ["entity", "status"],
)
