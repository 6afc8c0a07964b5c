"""Prometheus metrics for the maintenance scheduler."""

from prometheus_client import Counter, Histogram

# Scheduler job counters (status: success | failure | skipped)
SCHEDULER_JOB_RUNS = Counter(
    "bazaar_scheduler_job_runs_total",
    "Total scheduler job executions",
    ["job_name", "status"],
)

SCHEDULER_JOB_DURATION = Histogram(
    "bazaar_scheduler_job_duration_seconds",
    "Duration of scheduler job executions",
    ["job_name"],
    buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0, 3600.0),
)

# Rows touched by retention jobs (action: deleted | anonymized | updated)
RETENTION_RECORDS_AFFECTED = Counter(
    "bazaar_retention_records_affected_total",
    "Total records affected by retention jobs",
    ["job_name", "action"],
)

DELETION_REQUESTS_FINALIZED = Counter(
    "bazaar_deletion_requests_finalized_total",
    "Account deletion requests finalized",
    ["mode"],
)
