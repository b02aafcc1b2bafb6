"""
Prometheus metrics for the catalog data layer.

Tracks unit-of-work commits, their outcome, and recovery runs.
"""

from prometheus_client import Counter, Histogram

# Commit metrics
repository_commits_total = Counter(
    "repository_commits_total",
    "Total unit-of-work commits",
    ["entity", "outcome"],
)

repository_commit_duration_seconds = Histogram(
    "repository_commit_duration_seconds",
    "Commit duration in seconds",
    ["entity"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

repository_rows_affected_total = Counter(
    "repository_rows_affected_total",
    "Total entities written by successful commits",
    ["entity"],
)

# Recovery metrics
repository_recoveries_total = Counter(
    "repository_recoveries_total",
    "Total failure recoveries run after a persistence conflict",
    ["entity"],
)


def track_commit(entity: str, outcome: str, duration: float, affected: int = 0) -> None:
    """
    Record a commit attempt.

    Args:
        entity: Entity type name
        outcome: success, conflict, recovery_failed or error
        duration: Commit duration in seconds
        affected: Number of entities written
    """
    repository_commits_total.labels(entity=entity, outcome=outcome).inc()
    repository_commit_duration_seconds.labels(entity=entity).observe(duration)
    if affected > 0:
        repository_rows_affected_total.labels(entity=entity).inc(affected)


def track_recovery(entity: str) -> None:
    """Record a recovery run."""
    repository_recoveries_total.labels(entity=entity).inc()
