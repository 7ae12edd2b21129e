"""Application metrics using the Prometheus client library.

Single inventory of everything the service measures.  Other modules
import a metric and increment/observe it at the point of action.

Counters only go up (submissions, generations); gauges go up and down
(queue depth, in-flight requests); histograms bucket durations so
Prometheus can compute percentiles of the model-call latency.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, route, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Quiz scoring
# ---------------------------------------------------------------------------

QUIZ_SUBMISSIONS = Counter(
    "quiz_submissions_total",
    "Scored quiz attempts by verdict",
    ["verdict"],  # "passed" or "failed"
)

ATTEMPT_CONFLICTS = Counter(
    "quiz_attempt_conflicts_total",
    "Compare-and-set conflicts while recording an attempt",
)

# ---------------------------------------------------------------------------
# AI generation
# ---------------------------------------------------------------------------

GENERATION_OUTCOMES = Counter(
    "quiz_generation_outcomes_total",
    "Finished AI generation requests by terminal status and error code",
    ["status", "code"],  # code is "none" for completed requests
)

MODEL_CALL_DURATION = Histogram(
    "ai_model_call_duration_seconds",
    "Latency of calls to the generative-model provider",
    ["provider"],
    # Model calls are slow: seconds, not milliseconds.
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0],
)

# ---------------------------------------------------------------------------
# Notifications and queues
# ---------------------------------------------------------------------------

NOTIFICATIONS = Counter(
    "guardian_notifications_total",
    "Guardian notifications by outcome",
    ["outcome"],  # "enqueued", "skipped", "enqueue_failed", "delivered", "failed"
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # "quiz_generation", "quiz_result_notification"
)
