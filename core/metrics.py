"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

# Identity metrics
sessions_created_total = Counter("sessions_created_total", "Total number of sessions established", ["method"])

# Profile metrics
profiles_created_total = Counter("profiles_created_total", "Total number of profiles created")

profiles_edited_total = Counter("profiles_edited_total", "Total number of profile edits")

# Match metrics
swipes_total = Counter("swipes_total", "Total number of swipes recorded", ["action"])

matches_created_total = Counter("matches_created_total", "Total number of matches created", ["trigger"])

# Scheduling metrics
proposals_created_total = Counter("call_proposals_created_total", "Total number of call proposals", ["call_type"])

calls_confirmed_total = Counter("calls_confirmed_total", "Total number of confirmed call slots", ["call_type"])

call_transitions_total = Counter("call_transitions_total", "Call event state transitions", ["state"])

# Response time metrics
api_request_duration = Histogram(
    "api_request_duration_seconds", "API request duration in seconds", ["method", "endpoint", "status"]
)

# Safety & feedback metrics
feedback_total = Counter("feedback_total", "Total number of post-call feedback entries", ["rating"])

reports_total = Counter("reports_total", "Total number of reports created", ["category"])

reports_latency_seconds = Histogram(
    "reports_latency_seconds", "Time to process report creation from request to response"
)

blocks_total = Counter("blocks_total", "Total number of user blocks executed")

blocks_latency_seconds = Histogram("blocks_latency_seconds", "Time to process block action from request to response")
