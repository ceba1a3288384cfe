"""Prometheus metric inventory.

Every metric the service exports is declared here; the modules that own
the behavior import the one they need and increment it at the point of
action. Counters only go up, so tests assert on deltas.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
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
# Attempt lifecycle
# ---------------------------------------------------------------------------

ATTEMPTS_STARTED = Counter(
    "quiz_attempts_started_total",
    "New assessment attempts created (idempotent re-starts excluded)",
)

ANSWERS_GRADED = Counter(
    "quiz_answers_graded_total",
    "Answers graded at submission time by result",
    ["question_type", "result"],  # result: "correct" or "incorrect"
)

ATTEMPTS_FINALIZED = Counter(
    "quiz_attempts_finalized_total",
    "Attempts moved to the submitted state",
)

ATTEMPT_PERCENTAGE = Histogram(
    "quiz_attempt_percentage",
    "Distribution of finalized attempt percentages",
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)

STATISTICS_REFRESH_FAILURES = Counter(
    "quiz_statistics_refresh_failures_total",
    "Statistics recomputations that exhausted their CAS retries",
)

QUIZ_REWARDS_DEFERRED = Counter(
    "quiz_rewards_deferred_total",
    "Quiz completion rewards handed to the worker after the ledger write failed",
)

# ---------------------------------------------------------------------------
# Progression ledger
# ---------------------------------------------------------------------------

XP_AWARDED = Counter(
    "progression_xp_awarded_total",
    "Experience points added to learner ledgers",
)

LEVEL_UPS = Counter(
    "progression_level_ups_total",
    "XP awards that moved a learner to a higher level",
)

# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

CAS_CONFLICTS = Counter(
    "cas_conflicts_total",
    "Compare-and-swap writes rejected because the stored version moved",
    ["resource"],  # "attempt", "statistics", "progression"
)

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["key_type"],  # "user" or "ip"
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)
