"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

# Swipe metrics
swipes_total = Counter("swipes_total", "Total number of recorded swipes", ["action"])

# Match metrics
matches_created_total = Counter("matches_created_total", "Total number of matches created")

match_create_conflicts_total = Counter(
    "match_create_conflicts_total", "Concurrent match creations resolved to an existing match"
)

matches_deactivated_total = Counter("matches_deactivated_total", "Total number of unmatches")

# Admission control metrics
rate_limit_denials_total = Counter(
    "rate_limit_denials_total", "Actions denied by admission control", ["action", "source"]
)

rate_limit_fallbacks_total = Counter(
    "rate_limit_fallbacks_total", "Admission checks served by the local fallback counter", ["action"]
)

# Background task metrics
background_task_failures_total = Counter(
    "background_task_failures_total", "Background tasks that raised or timed out", ["task"]
)

background_tasks_dropped_total = Counter(
    "background_tasks_dropped_total", "Background tasks dropped because the queue was full", ["task"]
)

# Scoring metrics
scoring_duration = Histogram("scoring_duration_seconds", "Time to score and rank candidates", ["operation"])

# Response time metrics
api_request_duration = Histogram(
    "api_request_duration_seconds", "API request duration in seconds", ["method", "endpoint", "status"]
)
